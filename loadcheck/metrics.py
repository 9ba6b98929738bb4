"""
Sample collector.

The collector is the only mutable state shared between VU workers, so
every write goes through one lock.  Appends are O(1) amortised and no
sample is ever dropped or rewritten in exact mode.

Quantiles
---------
By default every sample is retained and percentiles are computed by
sorting and interpolating linearly between the closest ranks, which is
exact and deterministic.

When ``max_samples`` is set the collector keeps a uniform reservoir
(Vitter's Algorithm R) of at most that many samples per metric.  Count,
sum, min, max, avg and rate stay exact; quantiles are estimated from
the reservoir.  For a reservoir of size *k* the rank error of a
quantile estimate is roughly ``sqrt(q * (1 - q) / k)``: with
``k = 10_000`` a p99 estimate lands within about 0.1 percentile points
of the true rank.  The reservoir RNG is seeded so the same stream of
samples always yields the same estimate.
"""

from __future__ import annotations

import math
import random
import threading
from collections.abc import Mapping
from dataclasses import dataclass

from loadcheck.exceptions import CollectorClosedError
from loadcheck.models import CheckCounts, MetricAggregate, Sample

# Built-in metric names.
HTTP_REQS = "http_reqs"
HTTP_REQ_DURATION = "http_req_duration"
HTTP_REQ_FAILED = "http_req_failed"
CHECKS = "checks"
ITERATIONS = "iterations"
ITERATION_DURATION = "iteration_duration"
VUS = "vus"
VUS_MAX = "vus_max"

ITERATION_ERROR_CHECK = "iteration error"


def percentile(sorted_values: list[float], q: float) -> float:
    """
    Return the *q*-th percentile of already-sorted values.

    Interpolates linearly between the two closest ranks, so
    ``percentile([1..100], 99)`` is ``99.01``.

    Raises:
        ValueError: If *sorted_values* is empty or *q* is outside [0, 100].
    """
    if not sorted_values:
        raise ValueError("percentile of empty data")
    if not 0 <= q <= 100:
        raise ValueError(f"percentile must be within [0, 100], got {q}")

    k = (len(sorted_values) - 1) * (q / 100.0)
    f = math.floor(k)
    c = math.ceil(k)
    if f == c:
        return sorted_values[int(k)]
    return sorted_values[f] * (c - k) + sorted_values[c] * (k - f)


@dataclass
class _Series:
    """Exact running statistics for one (metric, tag set) combination."""

    count: int = 0
    total: float = 0.0
    minimum: float = math.inf
    maximum: float = -math.inf
    nonzero: int = 0

    def add(self, value: float) -> None:
        self.count += 1
        self.total += value
        self.minimum = min(self.minimum, value)
        self.maximum = max(self.maximum, value)
        if value != 0:
            self.nonzero += 1


class _MetricStore:
    def __init__(self) -> None:
        self.series: dict[frozenset[tuple[str, str]], _Series] = {}
        self.samples: list[Sample] = []
        self.seen = 0


def _matches(tags: Mapping[str, str], wanted: Mapping[str, str] | None) -> bool:
    if not wanted:
        return True
    return all(tags.get(key) == value for key, value in wanted.items())


class SampleCollector:
    """
    Thread-safe sink for samples and check outcomes.

    Args:
        max_samples: Reservoir size per metric, or ``None`` to keep every
            sample.
        seed: Seed for the reservoir RNG.
    """

    def __init__(self, max_samples: int | None = None, seed: int = 0):
        if max_samples is not None and max_samples < 1:
            raise ValueError(f"max_samples must be >= 1, got {max_samples}")
        self._max_samples = max_samples
        self._rng = random.Random(seed)
        self._lock = threading.Lock()
        self._metrics: dict[str, _MetricStore] = {}
        self._checks: dict[str, CheckCounts] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def record(self, sample: Sample) -> None:
        """Append *sample*.  Safe to call from any number of threads."""
        with self._lock:
            self._record_locked(sample)

    def add(self, metric: str, value: float, tags: Mapping[str, str] | None = None) -> Sample:
        """Build a :class:`Sample` from parts, record it and return it."""
        sample = Sample(metric=metric, value=float(value), tags=dict(tags or {}))
        self.record(sample)
        return sample

    def record_check(
        self, name: str, passed: bool, tags: Mapping[str, str] | None = None
    ) -> None:
        """Count one check outcome and append it to the ``checks`` metric."""
        sample = Sample(
            metric=CHECKS,
            value=1.0 if passed else 0.0,
            tags={**(tags or {}), "check": name},
        )
        with self._lock:
            self._record_locked(sample)
            counts = self._checks.get(name, CheckCounts())
            if passed:
                self._checks[name] = CheckCounts(counts.passes + 1, counts.fails)
            else:
                self._checks[name] = CheckCounts(counts.passes, counts.fails + 1)

    def _record_locked(self, sample: Sample) -> None:
        if self._closed:
            raise CollectorClosedError(
                f"Sample for {sample.metric!r} arrived after the collector was closed"
            )

        store = self._metrics.get(sample.metric)
        if store is None:
            store = self._metrics[sample.metric] = _MetricStore()

        key = frozenset(sample.tags.items())
        series = store.series.get(key)
        if series is None:
            series = store.series[key] = _Series()
        series.add(sample.value)

        store.seen += 1
        if self._max_samples is None or len(store.samples) < self._max_samples:
            store.samples.append(sample)
        else:
            slot = self._rng.randrange(store.seen)
            if slot < self._max_samples:
                store.samples[slot] = sample

    def snapshot(
        self, metric: str, tags: Mapping[str, str] | None = None
    ) -> MetricAggregate | None:
        """
        Aggregate every sample recorded for *metric* so far.

        Args:
            metric: Metric name.
            tags: Optional filter; only samples carrying all of these
                tag values are aggregated.

        Returns:
            The aggregate, or ``None`` when no sample matches.
        """
        with self._lock:
            store = self._metrics.get(metric)
            if store is None:
                return None

            matching = [
                series
                for key, series in store.series.items()
                if _matches(dict(key), tags)
            ]
            count = sum(series.count for series in matching)
            if count == 0:
                return None

            total = math.fsum(series.total for series in matching)
            minimum = min(series.minimum for series in matching)
            maximum = max(series.maximum for series in matching)
            nonzero = sum(series.nonzero for series in matching)
            values = sorted(
                sample.value for sample in store.samples if _matches(sample.tags, tags)
            )

        if not values:
            # A reservoir can evict every sample of a rare tag combination.
            values = [total / count]

        return MetricAggregate(
            count=count,
            sum=total,
            min=minimum,
            max=maximum,
            avg=total / count,
            med=percentile(values, 50),
            p90=percentile(values, 90),
            p95=percentile(values, 95),
            p99=percentile(values, 99),
            rate=nonzero / count,
        )

    def quantile(
        self, metric: str, q: float, tags: Mapping[str, str] | None = None
    ) -> float | None:
        """Return the *q*-th percentile of *metric*, or ``None`` without data."""
        with self._lock:
            store = self._metrics.get(metric)
            if store is None:
                return None
            values = sorted(
                sample.value for sample in store.samples if _matches(sample.tags, tags)
            )
        if not values:
            return None
        return percentile(values, q)

    def metric_names(self) -> list[str]:
        with self._lock:
            return list(self._metrics)

    def check_counts(self) -> dict[str, CheckCounts]:
        with self._lock:
            return dict(self._checks)

    def snapshot_all(self) -> dict[str, MetricAggregate]:
        """Snapshot every metric that has at least one sample."""
        aggregates: dict[str, MetricAggregate] = {}
        for name in self.metric_names():
            aggregate = self.snapshot(name)
            if aggregate is not None:
                aggregates[name] = aggregate
        return aggregates

    def close(self) -> None:
        """Reject further samples; called once thresholds are evaluated."""
        with self._lock:
            self._closed = True
