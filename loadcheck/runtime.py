"""
Per-thread binding of the active run.

Scenario code calls ``http.get(...)`` and ``check(...)`` without being
handed a client or a collector.  Those helpers look up the
:class:`Runtime` bound to the calling thread through a
:class:`~contextvars.ContextVar`.  A new thread starts with an empty
context, so each VU worker binds its own runtime and two runs in the
same process never see each other's collector.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from loadcheck.http import HttpClient
    from loadcheck.metrics import SampleCollector

_active: ContextVar[Runtime | None] = ContextVar("loadcheck_runtime", default=None)


@dataclass
class Runtime:
    """
    What a scenario function can reach while it runs.

    Attributes:
        collector: The run's shared sample collector.
        http: HTTP client owned by this VU (or by setup/teardown).
        vu_id: 1-based VU number, or 0 for setup and teardown.
        iteration: Number of iterations this VU has started, 0-based.
    """

    collector: SampleCollector
    http: HttpClient
    vu_id: int = 0
    iteration: int = 0


def current() -> Runtime:
    """
    Return the runtime bound to the calling thread.

    Raises:
        RuntimeError: If called outside setup, an iteration or teardown.
    """
    runtime = _active.get()
    if runtime is None:
        raise RuntimeError("No load run is active in this thread")
    return runtime


def bind_current(runtime: Runtime) -> None:
    """Bind *runtime* for the rest of the calling thread's life."""
    _active.set(runtime)


@contextmanager
def bound(runtime: Runtime) -> Iterator[Runtime]:
    """Bind *runtime* for the duration of a ``with`` block."""
    token = _active.set(runtime)
    try:
        yield runtime
    finally:
        _active.reset(token)
