"""
Stage scheduler.

Turns an ordered list of stages into a piecewise-linear target-VU curve.
The curve starts at 0 VUs; each stage ramps linearly from the previous
stage's target to its own over its duration.  The orchestrator polls
:meth:`StageScheduler.desired_vus` once per tick and resizes the worker
pool to match; the scheduler itself holds no mutable state and never
sees sample data.

Key Concepts Demonstrated:
- Linear interpolation over cumulative stage boundaries
- Half-up rounding clamped in the direction of the ramp
- Human-readable durations (``"500ms"``, ``"10s"``, ``"1m30s"``)
"""

from __future__ import annotations

import math
import re
from collections.abc import Sequence

from loadcheck.exceptions import OptionsError
from loadcheck.models import Stage

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(value: str | int | float) -> float:
    """
    Convert a duration to seconds.

    Numbers are taken as seconds.  Strings are one or more
    ``<number><unit>`` parts with units ``ms``, ``s``, ``m`` or ``h``,
    e.g. ``"1m30s"``.

    Raises:
        OptionsError: If the value can't be parsed.
    """
    if isinstance(value, bool):
        raise OptionsError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)

    text = str(value).strip().lower()
    if not text:
        raise OptionsError("Duration must not be empty")

    position = 0
    seconds = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            break
        seconds += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        position = match.end()

    if position != len(text):
        raise OptionsError(f"Invalid duration: {value!r}")
    return seconds


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class StageScheduler:
    """
    Compute the desired active-VU count as a function of elapsed time.

    Args:
        stages: Non-empty ordered stages; validation of each duration and
            target happens in :class:`~loadcheck.models.Stage`.
    """

    def __init__(self, stages: Sequence[Stage]):
        if not stages:
            raise OptionsError("A schedule needs at least one stage")
        self._stages = tuple(stages)
        self._total = math.fsum(stage.duration for stage in self._stages)

    @property
    def stages(self) -> tuple[Stage, ...]:
        return self._stages

    @property
    def total_duration(self) -> float:
        """Sum of all stage durations, in seconds."""
        return self._total

    @property
    def max_vus(self) -> int:
        """The highest target across all stages; the pool never exceeds it."""
        return max(stage.target for stage in self._stages)

    def is_finished(self, elapsed: float) -> bool:
        return elapsed >= self._total

    def desired_vus(self, elapsed: float) -> int:
        """
        Return the target VU count at *elapsed* seconds into the run.

        At the end of stage *i* the result is exactly stage *i*'s target.
        Past the end of the last stage it is 0.

        Raises:
            ValueError: If *elapsed* is negative.
        """
        if elapsed < 0:
            raise ValueError(f"elapsed must be >= 0, got {elapsed}")
        if elapsed > self._total:
            return 0

        start = 0.0
        previous_target = 0
        for stage in self._stages:
            end = start + stage.duration
            if elapsed < end:
                progress = (elapsed - start) / stage.duration
                value = previous_target + (stage.target - previous_target) * progress
                low = min(previous_target, stage.target)
                high = max(previous_target, stage.target)
                return max(low, min(high, _round_half_up(value)))
            start = end
            previous_target = stage.target

        return self._stages[-1].target
