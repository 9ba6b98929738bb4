"""
Unit tests for the command-line entry point.

Scenario scripts are written to ``tmp_path`` and run through ``main()``
in-process; none of them touches the network.
"""

from __future__ import annotations

import json
import signal
import textwrap
import threading

import pytest

from loadcheck import cli
from loadcheck.cli import main, parse_args
from loadcheck.report import EXIT_PASS, EXIT_SCRIPT_ERROR, EXIT_THRESHOLD_BREACH

pytestmark = pytest.mark.unit

PASSING_SCRIPT = textwrap.dedent(
    """
    import time

    from loadcheck import check

    options = {
        "stages": [["100ms", 2], ["100ms", 0]],
        "thresholds": {"checks": ["rate==1"], "iterations": ["count>0"]},
    }

    def default(data):
        check(data, {"context is shared": lambda d: d["ready"] is True})
        time.sleep(0.002)

    def setup():
        return {"ready": True}
    """
)


@pytest.fixture
def script(tmp_path):
    path = tmp_path / "cli_scenario.py"
    path.write_text(PASSING_SCRIPT, encoding="utf-8")
    return path


def test_parse_args():
    args = parse_args(["run", "script.py", "--env", "testing", "--summary-export", "out.json"])

    assert args.command == "run"
    assert str(args.script) == "script.py"
    assert args.env == "testing"
    assert str(args.summary_export) == "out.json"
    assert args.options is None


def test_passing_run_exits_zero_and_exports_summary(script, tmp_path, capsys):
    # Arrange
    summary_path = tmp_path / "summary.json"

    # Act
    code = main(["run", str(script), "--env", "testing", "--summary-export", str(summary_path)])

    # Assert
    assert code == EXIT_PASS
    assert "Overall: PASS" in capsys.readouterr().out
    data = json.loads(summary_path.read_text(encoding="utf-8"))
    assert data["passed"] is True
    assert data["checks"]["context is shared"]["fails"] == 0


def test_options_file_can_force_a_breach(script, tmp_path, capsys):
    options = tmp_path / "strict.yml"
    options.write_text("thresholds:\n  iterations: ['count<0']\n", encoding="utf-8")

    code = main(["run", str(script), "--env", "testing", "--options", str(options)])

    assert code == EXIT_THRESHOLD_BREACH
    assert "Overall: FAIL" in capsys.readouterr().out


def test_missing_script_exits_two(tmp_path, capsys):
    code = main(["run", str(tmp_path / "nope.py"), "--env", "testing"])

    assert code == EXIT_SCRIPT_ERROR
    assert "Cannot load scenario" in capsys.readouterr().err


def test_malformed_options_exit_two(script, tmp_path, capsys):
    options = tmp_path / "bad.yml"
    options.write_text("stages: 10s\n", encoding="utf-8")

    code = main(["run", str(script), "--env", "testing", "--options", str(options)])

    assert code == EXIT_SCRIPT_ERROR
    assert "stages" in capsys.readouterr().err


def test_script_that_raises_on_import_exits_two(tmp_path):
    broken = tmp_path / "broken.py"
    broken.write_text("raise RuntimeError('bad import')\n", encoding="utf-8")

    assert main(["run", str(broken), "--env", "testing"]) == EXIT_SCRIPT_ERROR


LONG_SCRIPT = textwrap.dedent(
    """
    import time

    options = {
        "stages": [["30s", 1]],
        "thresholds": {"iterations": ["count>=0"]},
    }

    def default(data):
        time.sleep(0.002)
    """
)


def test_sigint_stops_the_run_early_and_restores_handler(tmp_path, monkeypatch, capsys):
    """Test that Ctrl-C ends the load phase and the run still reports."""
    # Arrange
    script = tmp_path / "long_scenario.py"
    script.write_text(LONG_SCRIPT, encoding="utf-8")
    previous_handler = object()
    installed = []
    timers = []

    def _fake_signal(signum, handler):
        installed.append((signum, handler))
        if len(installed) == 1:
            # Deliver Ctrl-C shortly after the handler is installed.
            timer = threading.Timer(0.2, handler, args=(signum, None))
            timers.append(timer)
            timer.start()
            return previous_handler
        return None

    monkeypatch.setattr(cli.signal, "signal", _fake_signal)

    # Act
    code = main(["run", str(script), "--env", "testing"])

    # Assert
    for timer in timers:
        timer.cancel()
    out = capsys.readouterr().out
    assert code == EXIT_PASS
    assert "Load phase was stopped early" in out
    assert installed[0][0] == signal.SIGINT
    assert installed[1] == (signal.SIGINT, previous_handler)
