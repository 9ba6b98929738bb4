"""
Data model for a load run.

Defines the value types that flow between the harness components:
stages feed the scheduler, samples feed the collector, thresholds are
evaluated against the collector's aggregates, and a :class:`RunReport`
is produced exactly once at the end of every run.

Everything a worker thread can touch concurrently (``Sample``,
``CheckResult``) is a frozen dataclass so that a value, once recorded,
cannot be changed by anyone holding a reference to it.

Key Concepts Demonstrated:
- Frozen dataclasses for values shared across threads
- ``str`` enums for states that serialise cleanly into JSON summaries
- Fail-fast validation in ``__post_init__``
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any

from loadcheck.exceptions import OptionsError

# Three-state exit codes so CI can tell "test failed" from "harness crashed".
EXIT_PASS = 0
EXIT_THRESHOLD_BREACH = 1
EXIT_SCRIPT_ERROR = 2

SETUP_FAILURE_REASON = "setup failure"
NO_DATA_REASON = "no data"
LOAD_ERROR_REASON = "load phase error"


class RunState(str, Enum):
    """Lifecycle states of a run, in the order the orchestrator visits them."""

    IDLE = "idle"
    SETUP_RUNNING = "setup_running"
    SETUP_FAILED = "setup_failed"
    LOAD_RUNNING = "load_running"
    DRAINING = "draining"
    TEARDOWN = "teardown"
    EVALUATING = "evaluating"
    DONE = "done"


@dataclass(frozen=True)
class Stage:
    """
    One segment of the target-VU curve.

    Attributes:
        duration: Length of the stage in seconds.
        target: VU count reached at the end of the stage.
    """

    duration: float
    target: int

    def __post_init__(self) -> None:
        if self.duration <= 0:
            raise OptionsError(f"Stage duration must be > 0, got {self.duration}")
        if isinstance(self.target, bool) or not isinstance(self.target, int):
            raise OptionsError(f"Stage target must be an integer, got {self.target!r}")
        if self.target < 0:
            raise OptionsError(f"Stage target must be >= 0, got {self.target}")


@dataclass(frozen=True)
class Sample:
    """A single measurement appended to the collector."""

    metric: str
    value: float
    tags: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Copy into a read-only view so the caller's dict can't alter it later.
        frozen = MappingProxyType({str(k): str(v) for k, v in self.tags.items()})
        object.__setattr__(self, "tags", frozen)


@dataclass(frozen=True)
class CheckResult:
    name: str
    passed: bool


@dataclass(frozen=True)
class CheckCounts:
    passes: int = 0
    fails: int = 0

    @property
    def total(self) -> int:
        return self.passes + self.fails


@dataclass(frozen=True)
class Threshold:
    """
    A pass/fail gate on one metric.

    Attributes:
        metric: Metric name, optionally with a tag filter such as
            ``http_req_duration{status:200}``.
        expression: Aggregate, comparator and limit, e.g. ``p(99)<200``.
    """

    metric: str
    expression: str


@dataclass(frozen=True)
class ThresholdResult:
    threshold: Threshold
    passed: bool
    observed: float | None = None
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "metric": self.threshold.metric,
            "expression": self.threshold.expression,
            "passed": self.passed,
            "observed": self.observed,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class MetricAggregate:
    """Summary statistics for one metric at the moment of a snapshot."""

    count: int
    sum: float
    min: float
    max: float
    avg: float
    med: float
    p90: float
    p95: float
    p99: float
    rate: float

    def to_dict(self) -> dict[str, float]:
        return {
            "count": self.count,
            "sum": self.sum,
            "min": self.min,
            "max": self.max,
            "avg": self.avg,
            "med": self.med,
            "p(90)": self.p90,
            "p(95)": self.p95,
            "p(99)": self.p99,
            "rate": self.rate,
        }


@dataclass(frozen=True)
class RunReport:
    """
    The single result of a run.

    Attributes:
        passed: Logical AND of every threshold verdict and setup success.
        reason: Why the run failed outright (``"setup failure"`` or
            ``"load phase error"``), or ``None``.
        checks: Pass/fail counts keyed by check name.
        metrics: Final aggregates keyed by metric name.
        thresholds: One verdict per declared threshold, in declaration
            order.  Empty when setup failed.
        states: Every state the orchestrator visited, in order.
        duration: Wall-clock seconds from setup start to report.
        iterations: Iterations attempted across all VUs.
        aborted: ``True`` when the load phase was stopped early.
        teardown_error: ``repr`` of the teardown exception, if any.
    """

    passed: bool
    reason: str | None
    checks: Mapping[str, CheckCounts]
    metrics: Mapping[str, MetricAggregate]
    thresholds: Sequence[ThresholdResult]
    states: Sequence[RunState]
    duration: float
    iterations: int = 0
    aborted: bool = False
    teardown_error: str | None = None

    @property
    def exit_code(self) -> int:
        return EXIT_PASS if self.passed else EXIT_THRESHOLD_BREACH

    def to_dict(self) -> dict[str, Any]:
        return {
            "passed": self.passed,
            "reason": self.reason,
            "exit_code": self.exit_code,
            "aborted": self.aborted,
            "duration": round(self.duration, 3),
            "iterations": self.iterations,
            "teardown_error": self.teardown_error,
            "states": [state.value for state in self.states],
            "checks": {
                name: {"passes": counts.passes, "fails": counts.fails}
                for name, counts in self.checks.items()
            },
            "metrics": {name: agg.to_dict() for name, agg in self.metrics.items()},
            "thresholds": [result.to_dict() for result in self.thresholds],
        }


@dataclass
class Scenario:
    """
    Everything the orchestrator needs to drive one run.

    The callables are held by reference; the orchestrator never
    subclasses or wraps a scenario.  Threshold expressions are parsed
    here so a typo fails before any VU starts.
    """

    iteration: Callable[[Any], None]
    stages: Sequence[Stage]
    thresholds: Sequence[Threshold] = ()
    setup: Callable[[], Any] | None = None
    teardown: Callable[[Any], None] | None = None
    name: str = "default"

    def __post_init__(self) -> None:
        if not self.stages:
            raise OptionsError("A scenario needs at least one stage")
        self.stages = tuple(self.stages)
        self.thresholds = tuple(self.thresholds)

        # Imported here because the thresholds module depends on this one.
        from loadcheck.thresholds import parse_expression, parse_metric_key

        for threshold in self.thresholds:
            parse_metric_key(threshold.metric)
            parse_expression(threshold.expression)
