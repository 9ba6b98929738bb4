"""
Unit tests for VU workers and the worker pool.
"""

from __future__ import annotations

import threading
import time

import pytest

from loadcheck import runtime
from loadcheck.metrics import ITERATION_ERROR_CHECK, ITERATIONS
from loadcheck.pool import WorkerPool

pytestmark = pytest.mark.unit


def _idle(_context) -> None:
    time.sleep(0.002)


def _wait_for(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


@pytest.fixture
def pool(runtime_factory):
    worker_pool = WorkerPool(runtime_factory)
    yield worker_pool
    worker_pool.stop_all()
    worker_pool.await_all_stopped(timeout=2)


def test_spawned_worker_runs_until_stopped(pool, collector):
    # Arrange
    worker = pool.spawn(_idle, None)
    assert _wait_for(lambda: worker.iterations >= 3)

    # Act
    pool.request_stop(worker)

    # Assert
    assert worker.join(timeout=2)
    assert not worker.is_alive()
    assert collector.snapshot(ITERATIONS).count == worker.iterations


def test_throwing_iteration_is_recorded_and_worker_continues(pool, collector):
    """Test that every failed iteration becomes one failed check."""

    def _boom(_context):
        time.sleep(0.002)
        raise RuntimeError("boom")

    worker = pool.spawn(_boom, None)
    assert _wait_for(lambda: worker.iterations >= 5)
    pool.stop_all()
    assert pool.await_all_stopped(timeout=2)

    counts = collector.check_counts()[ITERATION_ERROR_CHECK]
    assert counts.fails == worker.iterations
    assert counts.passes == 0
    assert worker.errors == worker.iterations


def test_scale_to_spawns_and_stops_newest_first(pool):
    # Act
    pool.scale_to(4, _idle, None)
    first_four = pool.workers
    pool.scale_to(2, _idle, None)

    # Assert
    assert [worker.vu_id for worker in first_four] == [1, 2, 3, 4]
    assert [worker.stop_requested for worker in first_four] == [False, False, True, True]
    assert pool.active_count() == 2


def test_scale_to_zero_stops_everything(pool):
    pool.scale_to(3, _idle, None)

    pool.scale_to(0, _idle, None)

    assert pool.active_count() == 0
    assert pool.await_all_stopped(timeout=2)
    assert pool.live_count() == 0


def test_scale_to_is_clamped_by_max_vus(runtime_factory):
    pool = WorkerPool(runtime_factory, max_vus=2)
    try:
        reached = pool.scale_to(10, _idle, None)

        assert reached == 2
        assert len(pool.workers) == 2
    finally:
        pool.stop_all()
        pool.await_all_stopped(timeout=2)


def test_draining_workers_hold_their_slot(runtime_factory):
    """Test that live threads never exceed max_vus while one is finishing."""
    # Arrange
    release = threading.Event()

    def _blocking(_context):
        release.wait(2)

    pool = WorkerPool(runtime_factory, max_vus=2)
    try:
        pool.scale_to(2, _blocking, None)
        pool.scale_to(1, _blocking, None)

        # Act
        running = pool.scale_to(2, _blocking, None)

        # Assert
        assert running == 1
        assert pool.active_count() == 1
        assert pool.live_count() == 2
        assert len(pool.workers) == 2
    finally:
        release.set()
        pool.stop_all()
        pool.await_all_stopped(timeout=2)


def test_stop_lets_current_iteration_finish(pool, collector):
    """Test that a stop request never interrupts an iteration mid-way."""
    started = threading.Event()
    finished = []

    def _slow(_context):
        started.set()
        time.sleep(0.05)
        finished.append(True)

    worker = pool.spawn(_slow, None)
    assert started.wait(2)

    pool.request_stop(worker)
    assert worker.join(timeout=2)

    assert len(finished) == worker.iterations
    assert collector.snapshot(ITERATIONS).count == worker.iterations


def test_worker_binds_its_own_runtime(pool):
    seen = []

    def _record(_context):
        current = runtime.current()
        seen.append((current.vu_id, current.iteration))
        time.sleep(0.002)

    pool.scale_to(2, _record, None)
    assert _wait_for(lambda: len(seen) >= 6)
    pool.stop_all()
    pool.await_all_stopped(timeout=2)

    assert {vu_id for vu_id, _ in seen} <= {1, 2}
    assert (1, 0) in seen


def test_context_is_passed_to_every_iteration(pool):
    context = {"token": "abc"}
    received = []

    def _capture(ctx):
        received.append(ctx)
        time.sleep(0.002)

    pool.scale_to(2, _capture, context)
    assert _wait_for(lambda: len(received) >= 4)
    pool.stop_all()
    pool.await_all_stopped(timeout=2)

    assert all(ctx is context for ctx in received)


def test_total_iterations_sums_workers(pool):
    pool.scale_to(3, _idle, None)
    assert _wait_for(lambda: pool.total_iterations() >= 6)
    pool.stop_all()
    pool.await_all_stopped(timeout=2)

    assert pool.total_iterations() == sum(worker.iterations for worker in pool.workers)
