"""
Check evaluator.

A check is a named boolean predicate over a response-like subject.
Checks never raise: a predicate that throws counts as a failure, exactly
like one that returns ``False``.  Every outcome is appended to the
collector so the final report can show per-check pass counts and so
thresholds can gate on the ``checks`` metric (e.g. ``rate>0.99``).
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

from loadcheck import runtime
from loadcheck.metrics import SampleCollector
from loadcheck.models import CheckResult

logger = logging.getLogger(__name__)

Predicate = Callable[[Any], Any]


def run_checks(
    subject: Any,
    predicates: Mapping[str, Predicate],
    collector: SampleCollector,
    tags: Mapping[str, str] | None = None,
) -> list[CheckResult]:
    """
    Evaluate every predicate against *subject* and record the outcomes.

    Args:
        subject: Usually an :class:`~loadcheck.http.HttpResponse`.
        predicates: Check name to predicate.  Names are unique by
            construction of the mapping.
        collector: Where each outcome is recorded.
        tags: Extra tags attached to every recorded check sample.

    Returns:
        One :class:`CheckResult` per predicate, in mapping order.
    """
    results: list[CheckResult] = []
    for name, predicate in predicates.items():
        try:
            passed = bool(predicate(subject))
        except Exception:
            logger.debug("Check %r raised; counting it as failed", name, exc_info=True)
            passed = False
        collector.record_check(name, passed, tags)
        results.append(CheckResult(name=name, passed=passed))
    return results


def check(
    subject: Any,
    predicates: Mapping[str, Predicate],
    tags: Mapping[str, str] | None = None,
) -> bool:
    """
    Run checks against the active run's collector.

    Convenience for scenario code; returns ``True`` only if every check
    passed.
    """
    results = run_checks(subject, predicates, runtime.current().collector, tags)
    return all(result.passed for result in results)
