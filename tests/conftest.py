"""
Shared pytest fixtures for the loadcheck test suite.

Provides the building blocks most tests need: a fresh collector, a
runtime bound to the test thread (so ``check()`` and ``http.*`` work
outside a run), a factory for response values, and short stage lists
that keep full runs well under a second.

Key Concepts Demonstrated:
- Fixture scopes and fixture dependencies
- Factory fixtures for value objects
- Environment overrides applied before the package is imported
"""

from __future__ import annotations

import os
from collections.abc import Callable, Iterator

import pytest
from faker import Faker

# Set testing environment before importing the package
os.environ["LOADCHECK_ENV"] = "testing"

from loadcheck import runtime
from loadcheck.config import TestingConfig
from loadcheck.http import HttpClient, HttpResponse
from loadcheck.metrics import SampleCollector
from loadcheck.models import Stage
from loadcheck.runtime import Runtime

fake = Faker()


# -----------------------------------------------------------------------------
# Collector / Runtime Fixtures
# -----------------------------------------------------------------------------

@pytest.fixture
def collector() -> SampleCollector:
    """A fresh exact-mode collector for each test."""
    return SampleCollector()


@pytest.fixture
def runtime_factory(collector) -> Callable[[int], Runtime]:
    """Build per-VU runtimes sharing the test's collector."""

    def _make(vu_id: int) -> Runtime:
        return Runtime(collector=collector, http=HttpClient(collector), vu_id=vu_id)

    return _make


@pytest.fixture
def bound_runtime(runtime_factory) -> Iterator[Runtime]:
    """
    Bind a runtime to the test thread.

    Lets tests call scenario helpers such as ``check()`` directly, the
    way setup and teardown code does during a run.
    """
    test_runtime = runtime_factory(0)
    with runtime.bound(test_runtime):
        yield test_runtime
    test_runtime.http.close()


@pytest.fixture
def testing_config() -> type[TestingConfig]:
    return TestingConfig


# -----------------------------------------------------------------------------
# Test Data Factory Fixtures
# -----------------------------------------------------------------------------

@pytest.fixture
def response_factory() -> Callable[..., HttpResponse]:
    """
    Factory fixture for :class:`HttpResponse` values.

    Example:
        def test_something(response_factory):
            response = response_factory(status=500)
    """

    def _make(
        status: int = 200,
        body: bytes = b'{"data": {}}',
        duration: float = 12.5,
        headers: dict[str, str] | None = None,
        error: str | None = None,
    ) -> HttpResponse:
        return HttpResponse(
            status=status,
            body=body,
            headers=headers or {"Content-Type": "application/json"},
            duration=duration,
            url=fake.url(),
            error=error,
        )

    return _make


@pytest.fixture
def short_stages() -> list[Stage]:
    """Ramp 0 -> 3 -> 3 -> 0 VUs over 0.3 s in total."""
    return [Stage(0.1, 3), Stage(0.1, 3), Stage(0.1, 0)]

