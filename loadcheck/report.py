"""
Run report rendering.

Turns a :class:`~loadcheck.models.RunReport` into the two artefacts CI
consumes: a human-readable summary table for the job log and a JSON
summary file for dashboards or later comparison.

Exit codes follow a three-state convention so that CI can distinguish
"thresholds breached" from "harness crashed":

- ``0``: setup succeeded and every threshold passed
- ``1``: setup failed or at least one threshold was breached
- ``2``: the harness itself failed (missing script, bad options, etc.)
"""

from __future__ import annotations

import json
from pathlib import Path

from loadcheck.models import (
    EXIT_PASS,
    EXIT_SCRIPT_ERROR,
    EXIT_THRESHOLD_BREACH,
    RunReport,
)
from loadcheck.thresholds import parse_expression

__all__ = [
    "EXIT_PASS",
    "EXIT_SCRIPT_ERROR",
    "EXIT_THRESHOLD_BREACH",
    "render_summary",
    "write_summary_json",
]

_RULE = "-" * 96


def _status(passed: bool) -> str:
    return "PASS" if passed else "FAIL"


def render_summary(report: RunReport) -> str:
    """Format *report* as a plain-text table."""
    lines: list[str] = ["Load Run Summary", _RULE]

    if report.checks:
        lines.append(f"{'Check':<50}{'Passes':>10}{'Fails':>10}{'Status':>8}")
        lines.append(_RULE)
        for name, counts in report.checks.items():
            lines.append(
                f"{name[:49]:<50}{counts.passes:>10}{counts.fails:>10}"
                f"{_status(counts.fails == 0):>8}"
            )
        lines.append(_RULE)

    if report.metrics:
        lines.append(
            f"{'Metric':<22}{'Count':>8}{'Avg':>9}{'Min':>9}{'Med':>9}"
            f"{'p(90)':>9}{'p(95)':>9}{'p(99)':>9}{'Max':>10}"
        )
        lines.append(_RULE)
        for name, agg in sorted(report.metrics.items()):
            lines.append(
                f"{name[:21]:<22}{agg.count:>8}{agg.avg:>9.2f}{agg.min:>9.2f}{agg.med:>9.2f}"
                f"{agg.p90:>9.2f}{agg.p95:>9.2f}{agg.p99:>9.2f}{agg.max:>10.2f}"
            )
        lines.append(_RULE)

    if report.thresholds:
        lines.append(f"{'Threshold':<46}{'Actual':>12}{'Limit':>12}{'Status':>8}")
        lines.append(_RULE)
        for result in report.thresholds:
            label = f"{result.threshold.metric} {result.threshold.expression}"
            actual = "no data" if result.observed is None else f"{result.observed:.2f}"
            limit = parse_expression(result.threshold.expression).limit
            lines.append(
                f"{label[:45]:<46}{actual:>12}{limit:>12.2f}{_status(result.passed):>8}"
            )
        lines.append(_RULE)

    lines.append(f"Iterations: {report.iterations}   Duration: {report.duration:.1f}s")
    if report.aborted:
        lines.append("Load phase was stopped early")
    if report.teardown_error:
        lines.append(f"Teardown error: {report.teardown_error}")
    if report.reason:
        lines.append(f"Reason: {report.reason}")
    lines.append(f"Overall: {_status(report.passed)}")
    return "\n".join(lines)


def write_summary_json(report: RunReport, path: Path) -> None:
    """Write ``report.to_dict()`` to *path* as indented JSON."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        json.dump(report.to_dict(), handle, indent=2)
        handle.write("\n")
