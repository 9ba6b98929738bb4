"""
Threshold engine.

A threshold pairs a metric with an expression of the form
``<aggregate> <comparator> <limit>``, e.g. ``p(99)<200``.  Supported
aggregates are ``avg``, ``min``, ``max``, ``med``, ``sum``, ``count``,
``rate`` and ``p(N)`` for N in [0, 100]; comparators are ``<``, ``<=``,
``>``, ``>=``, ``==`` (``===`` is accepted as an alias) and ``!=``.

The metric key may narrow the samples with a tag filter, e.g.
``http_req_duration{status:200}``.

Evaluation happens once, after every worker has stopped.  A threshold
whose metric has no samples fails with reason ``"no data"``; it never
raises, and the remaining thresholds are still evaluated.
"""

from __future__ import annotations

import logging
import operator
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from loadcheck.exceptions import ThresholdSyntaxError
from loadcheck.metrics import SampleCollector
from loadcheck.models import NO_DATA_REASON, MetricAggregate, Threshold, ThresholdResult

logger = logging.getLogger(__name__)

_EXPRESSION = re.compile(
    r"^\s*(?P<aggregate>avg|min|max|med|sum|count|rate|p\(\s*(?P<q>\d+(?:\.\d+)?)\s*\))"
    r"\s*(?P<op><=|>=|===|==|!=|<|>)"
    r"\s*(?P<limit>-?\d+(?:\.\d+)?)\s*$"
)
_METRIC_KEY = re.compile(r"^(?P<name>[A-Za-z_][\w.-]*)(?:\{(?P<tags>[^{}]*)\})?$")

COMPARATORS: dict[str, Callable[[float, float], bool]] = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "==": operator.eq,
    "===": operator.eq,
    "!=": operator.ne,
}


@dataclass(frozen=True)
class ParsedExpression:
    aggregate: str
    percentile: float | None
    comparator: str
    limit: float

    def compare(self, observed: float) -> bool:
        return COMPARATORS[self.comparator](observed, self.limit)


def parse_expression(expression: str) -> ParsedExpression:
    """
    Split an expression into aggregate, comparator and limit.

    Raises:
        ThresholdSyntaxError: If the expression is not understood.
    """
    match = _EXPRESSION.match(expression or "")
    if match is None:
        raise ThresholdSyntaxError(f"Invalid threshold expression: {expression!r}")

    percentile = None
    aggregate = match.group("aggregate")
    if match.group("q") is not None:
        percentile = float(match.group("q"))
        if percentile > 100:
            raise ThresholdSyntaxError(
                f"Percentile must be within [0, 100] in {expression!r}"
            )
        aggregate = "p"

    return ParsedExpression(
        aggregate=aggregate,
        percentile=percentile,
        comparator=match.group("op"),
        limit=float(match.group("limit")),
    )


def parse_metric_key(key: str) -> tuple[str, dict[str, str]]:
    """
    Split ``name{tag:value,...}`` into the name and a tag filter.

    Raises:
        ThresholdSyntaxError: If the key is malformed.
    """
    match = _METRIC_KEY.match(key.strip())
    if match is None:
        raise ThresholdSyntaxError(f"Invalid threshold metric: {key!r}")

    tags: dict[str, str] = {}
    raw_tags = match.group("tags")
    if raw_tags:
        for pair in raw_tags.split(","):
            tag, sep, value = pair.partition(":")
            if not sep or not tag.strip():
                raise ThresholdSyntaxError(f"Invalid tag filter {pair!r} in {key!r}")
            tags[tag.strip()] = value.strip()
    return match.group("name"), tags


def _observe(
    parsed: ParsedExpression,
    aggregate: MetricAggregate,
    collector: SampleCollector,
    name: str,
    tags: dict[str, str],
) -> float:
    if parsed.aggregate == "p":
        value = collector.quantile(name, parsed.percentile, tags or None)
        # The snapshot just proved there is data for this key.
        return value if value is not None else aggregate.avg
    if parsed.aggregate == "count":
        return float(aggregate.count)
    return float(getattr(aggregate, parsed.aggregate))


def evaluate_one(threshold: Threshold, collector: SampleCollector) -> ThresholdResult:
    parsed = parse_expression(threshold.expression)
    name, tags = parse_metric_key(threshold.metric)

    aggregate = collector.snapshot(name, tags or None)
    if aggregate is None:
        logger.warning(
            "Threshold %s %s has no data", threshold.metric, threshold.expression
        )
        return ThresholdResult(threshold=threshold, passed=False, reason=NO_DATA_REASON)

    observed = _observe(parsed, aggregate, collector, name, tags)
    passed = parsed.compare(observed)
    if not passed:
        logger.warning(
            "Threshold breached: %s %s (observed %.3f)",
            threshold.metric,
            threshold.expression,
            observed,
        )
    return ThresholdResult(threshold=threshold, passed=passed, observed=observed)


def evaluate(
    thresholds: Sequence[Threshold], collector: SampleCollector
) -> list[ThresholdResult]:
    """Evaluate every threshold, in order, against the collector."""
    return [evaluate_one(threshold, collector) for threshold in thresholds]
