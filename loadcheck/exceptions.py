"""
Exception hierarchy for the load harness.

Only :class:`SetupFailure` changes the control flow of a run, and even
that one never escapes :func:`loadcheck.orchestrator.run`: the
orchestrator converts it into the ``SETUP_FAILED`` path.  The others are
either raised before any load starts (bad options, bad expressions) or
captured as report data.
"""

from __future__ import annotations


class LoadcheckError(Exception):
    """Base class for every error raised by the harness."""


class SetupFailure(LoadcheckError):
    """The setup function raised or returned no context."""

    def __init__(self, message: str, cause: BaseException | None = None):
        self.cause = cause
        super().__init__(message)


class IterationError(LoadcheckError):
    """Wraps an exception thrown by one run of the iteration function."""

    def __init__(self, vu_id: int, iteration: int, cause: BaseException):
        self.vu_id = vu_id
        self.iteration = iteration
        self.cause = cause
        super().__init__(f"VU {vu_id} iteration {iteration} failed: {cause!r}")


class ThresholdSyntaxError(LoadcheckError, ValueError):
    """A threshold expression could not be parsed."""


class OptionsError(LoadcheckError, ValueError):
    """Stages or thresholds in a scenario's options are malformed."""


class CollectorClosedError(LoadcheckError):
    """A sample arrived after the collector was closed for evaluation."""
