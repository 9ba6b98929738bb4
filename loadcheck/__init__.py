"""
loadcheck: staged load generation with latency and correctness gates.

A scenario is a set of plain functions plus options:

- ``setup()`` runs once and returns a context shared read-only by
  every virtual user (VU),
- ``default(data)`` is one VU iteration, typically an HTTP request
  followed by :func:`check` calls,
- ``teardown(data)`` runs once at the end,
- ``options`` declares the stages (how many VUs over time) and the
  thresholds (e.g. ``http_req_duration: ["p(99)<200"]``) that decide
  whether the run passed.

Key Concepts Demonstrated:
- Piecewise-linear VU ramping with a cooperative-stop worker pool
- Publish-once setup state shared without locks
- Thread-safe sample collection with exact or reservoir quantiles
- Pass/fail gates evaluated once, after all workers have drained
"""

from loadcheck import http
from loadcheck.checks import check, run_checks
from loadcheck.models import RunReport, Scenario, Stage, Threshold
from loadcheck.orchestrator import Runner, run

__all__ = [
    "RunReport",
    "Runner",
    "Scenario",
    "Stage",
    "Threshold",
    "check",
    "http",
    "run",
    "run_checks",
]
