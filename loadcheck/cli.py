"""
Command-line entry point.

Usage examples::

    # Run the bundled login + profile scenario against a local service:
    loadcheck run loadcheck/scenarios/user_profile.py

    # Tighten the gate from CI without touching the scenario:
    loadcheck run my_scenario.py --options ci/thresholds.yml \\
        --summary-export reports/summary.json

The process exit code is ``0`` when setup succeeded and every threshold
passed, ``1`` otherwise, and ``2`` when the scenario could not be loaded.
Ctrl-C ends the load phase early; the run still drains, tears down and
reports.
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
from pathlib import Path

from loadcheck.config import get_config
from loadcheck.options import load_module, load_options, scenario_from_module
from loadcheck.orchestrator import Runner
from loadcheck.report import EXIT_SCRIPT_ERROR, render_summary, write_summary_json

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(
        prog="loadcheck",
        description="Drive an HTTP service with staged virtual users and gate on thresholds.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run a scenario script")
    run_parser.add_argument("script", type=Path, help="Path to the scenario .py file")
    run_parser.add_argument(
        "--options",
        type=Path,
        help="YAML file whose stages/thresholds override the script's options",
    )
    run_parser.add_argument(
        "--summary-export",
        type=Path,
        help="Write the run summary as JSON to this path",
    )
    run_parser.add_argument(
        "--env",
        choices=["development", "testing", "production"],
        help="Configuration profile (defaults to $LOADCHECK_ENV)",
    )
    run_parser.add_argument("--log-level", help="Override the profile's log level")
    return parser.parse_args(argv)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def main(argv: list[str] | None = None) -> int:
    """
    Entry point: load the scenario, run it, print and export the summary.

    Returns:
        The run's exit code, or ``EXIT_SCRIPT_ERROR`` (2) when the
        scenario or its options can't be loaded.
    """
    args = parse_args(argv)
    config = get_config(args.env)
    _configure_logging(args.log_level or config.LOG_LEVEL)

    try:
        module = load_module(args.script)
        overrides = load_options(args.options) if args.options else None
        scenario = scenario_from_module(module, overrides)
    except Exception as exc:
        print(f"Cannot load scenario: {exc}", file=sys.stderr)
        return EXIT_SCRIPT_ERROR

    runner = Runner(scenario, config=config)
    previous_handler = signal.signal(signal.SIGINT, lambda *_: runner.stop())
    try:
        report = runner.run()
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    print(render_summary(report))
    if args.summary_export:
        write_summary_json(report, args.summary_export)
        logger.info("Summary written to %s", args.summary_export)
    return report.exit_code


if __name__ == "__main__":
    raise SystemExit(main())
