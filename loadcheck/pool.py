"""
VU worker pool.

Each virtual user is a thread that calls the iteration function in a
loop until asked to stop.  Stopping is cooperative: the stop flag is
checked only between iterations, so a worker always finishes the
iteration it is in.  During a ramp-down the number of live threads can
therefore trail the target by up to one iteration's duration.

An exception from the iteration function is caught per iteration,
recorded as a failed ``iteration error`` check and the worker carries
on; it never ends the worker or the run.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import Any

from loadcheck import runtime
from loadcheck.exceptions import IterationError
from loadcheck.metrics import ITERATION_DURATION, ITERATION_ERROR_CHECK, ITERATIONS
from loadcheck.runtime import Runtime

logger = logging.getLogger(__name__)

IterationFn = Callable[[Any], None]
RuntimeFactory = Callable[[int], Runtime]


class VUWorker:
    """
    One virtual user running iterations on its own thread.

    Args:
        vu_id: 1-based VU number.
        fn: The iteration function.
        context: The published setup context, passed to every call.
        runtime_factory: Builds this VU's :class:`Runtime` on its thread.
    """

    def __init__(
        self,
        vu_id: int,
        fn: IterationFn,
        context: Any,
        runtime_factory: RuntimeFactory,
    ):
        self.vu_id = vu_id
        self.iterations = 0
        self.errors = 0
        self._fn = fn
        self._context = context
        self._runtime_factory = runtime_factory
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._loop, name=f"vu-{vu_id}", daemon=True)

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    @property
    def running(self) -> bool:
        """Alive and not yet asked to stop."""
        return self._thread.is_alive() and not self._stop.is_set()

    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def start(self) -> None:
        self._thread.start()

    def request_stop(self) -> None:
        self._stop.set()

    def join(self, timeout: float | None = None) -> bool:
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def _loop(self) -> None:
        vu_runtime = self._runtime_factory(self.vu_id)
        runtime.bind_current(vu_runtime)
        try:
            while not self._stop.is_set():
                vu_runtime.iteration = self.iterations
                self._run_iteration(vu_runtime)
                self.iterations += 1
        finally:
            vu_runtime.http.close()

    def _run_iteration(self, vu_runtime: Runtime) -> None:
        started = time.perf_counter()
        try:
            self._fn(self._context)
        except Exception as exc:
            self.errors += 1
            error = IterationError(self.vu_id, self.iterations, exc)
            logger.debug("%s", error, exc_info=exc)
            vu_runtime.collector.record_check(ITERATION_ERROR_CHECK, False)

        collector = vu_runtime.collector
        collector.add(ITERATIONS, 1)
        collector.add(ITERATION_DURATION, (time.perf_counter() - started) * 1000.0)


class WorkerPool:
    """
    The set of VU workers of one run.

    Only the orchestrating thread calls into the pool; workers never
    read the pool or the scheduler.

    Args:
        runtime_factory: Builds the per-VU runtime.
        max_vus: Upper bound on running workers, or ``None``.
    """

    def __init__(self, runtime_factory: RuntimeFactory, max_vus: int | None = None):
        self._runtime_factory = runtime_factory
        self._max_vus = max_vus
        self._workers: list[VUWorker] = []
        self._next_id = 1

    @property
    def workers(self) -> list[VUWorker]:
        return list(self._workers)

    def spawn(self, fn: IterationFn, context: Any) -> VUWorker:
        """Start a new worker looping over *fn* with *context*."""
        worker = VUWorker(self._next_id, fn, context, self._runtime_factory)
        self._next_id += 1
        self._workers.append(worker)
        worker.start()
        return worker

    def request_stop(self, worker: VUWorker) -> None:
        """Ask *worker* to exit after its current iteration."""
        worker.request_stop()

    def active_count(self) -> int:
        """Workers that are running and have not been asked to stop."""
        return sum(1 for worker in self._workers if worker.running)

    def live_count(self) -> int:
        """Threads still alive, including those finishing a last iteration."""
        return sum(1 for worker in self._workers if worker.is_alive())

    def scale_to(self, desired: int, fn: IterationFn, context: Any) -> int:
        """
        Spawn or stop workers so that *desired* are running.

        Excess workers are stopped newest first.  With ``max_vus`` set, a
        worker still finishing its last iteration keeps its slot, so fewer
        than *desired* may be running afterwards.

        Returns:
            The running count after reconciling.
        """
        desired = max(0, desired)
        if self._max_vus is not None:
            desired = min(desired, self._max_vus)

        running = [worker for worker in self._workers if worker.running]
        if desired > len(running):
            to_spawn = desired - len(running)
            if self._max_vus is not None:
                # Workers still finishing their last iteration hold a slot.
                to_spawn = min(to_spawn, self._max_vus - self.live_count())
            for _ in range(max(0, to_spawn)):
                self.spawn(fn, context)
            logger.debug("Scaled up to %d VUs", desired)
        elif desired < len(running):
            for worker in reversed(running[desired:]):
                self.request_stop(worker)
            logger.debug("Scaling down to %d VUs", desired)
        return self.active_count()

    def stop_all(self) -> None:
        for worker in self._workers:
            worker.request_stop()

    def await_all_stopped(self, timeout: float | None = None) -> bool:
        """
        Block until every worker has left its loop.

        Args:
            timeout: Overall limit in seconds, or ``None`` to wait
                indefinitely.

        Returns:
            ``True`` if all workers exited.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        for worker in self._workers:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            worker.join(remaining)
        return all(not worker.is_alive() for worker in self._workers)

    def total_iterations(self) -> int:
        return sum(worker.iterations for worker in self._workers)
