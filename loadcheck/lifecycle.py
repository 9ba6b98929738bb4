"""
Setup and teardown runner.

Setup runs once, before any VU exists.  Its return value is frozen
(mappings become read-only views, lists become tuples) and then shared
by reference with every worker.  Nothing writes to it after that point,
so workers read it without locking.

A setup that raises, or returns ``None``, is a :class:`SetupFailure`.
Teardown runs once after the workers have stopped, also when setup
failed; in that case it receives ``None``.  A teardown error is
reported but never changes the run's verdict.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from types import MappingProxyType
from typing import Any

from loadcheck.exceptions import SetupFailure

logger = logging.getLogger(__name__)


def freeze(value: Any) -> Any:
    """
    Return a read-only deep copy of plain container data.

    ``dict`` → ``MappingProxyType``, ``list``/``tuple`` → ``tuple``,
    ``set`` → ``frozenset``.  Other objects are returned as they are.
    """
    if isinstance(value, Mapping):
        return MappingProxyType({key: freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(item) for item in value)
    if isinstance(value, (set, frozenset)):
        return frozenset(freeze(item) for item in value)
    return value


def run_setup(fn: Callable[[], Any] | None) -> Any:
    """
    Run *fn* once and publish its result.

    Returns:
        The frozen setup context, or ``None`` when there is no setup
        function.

    Raises:
        SetupFailure: If *fn* raised or returned ``None``.
    """
    if fn is None:
        return None

    try:
        result = fn()
    except Exception as exc:
        raise SetupFailure(f"setup raised {exc!r}", cause=exc) from exc

    if result is None:
        raise SetupFailure("setup returned no context")
    return freeze(result)


def run_teardown(fn: Callable[[Any], None] | None, context: Any) -> str | None:
    """
    Run *fn* once with *context*.

    Returns:
        ``repr`` of the raised exception, or ``None`` on success.
    """
    if fn is None:
        return None

    try:
        fn(context)
    except Exception as exc:
        logger.error("Teardown failed: %r", exc, exc_info=True)
        return repr(exc)
    return None
