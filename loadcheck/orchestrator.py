"""
Run orchestrator.

Wires the components together and walks the run through its states::

    IDLE -> SETUP_RUNNING -> SETUP_FAILED -> TEARDOWN -> DONE
                          -> LOAD_RUNNING -> DRAINING -> TEARDOWN -> EVALUATING -> DONE

No transition is reversible.  The load phase lasts for the sum of the
stage durations (or until :meth:`Runner.stop`); on every tick the
scheduler's desired VU count is pushed to the worker pool.  Thresholds
are evaluated only after every worker has left its loop and teardown has
finished, and the collector is closed right after, so no sample can
arrive once a verdict exists.

Each :class:`Runner` owns its collector, pool and state; two runners can
execute side by side in one process.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any

from loadcheck import runtime
from loadcheck.config import Config, get_config
from loadcheck.exceptions import SetupFailure
from loadcheck.http import HttpClient
from loadcheck.lifecycle import run_setup, run_teardown
from loadcheck.metrics import VUS, VUS_MAX, SampleCollector
from loadcheck.models import (
    LOAD_ERROR_REASON,
    SETUP_FAILURE_REASON,
    RunReport,
    RunState,
    Scenario,
)
from loadcheck.pool import WorkerPool
from loadcheck.runtime import Runtime
from loadcheck.scheduler import StageScheduler
from loadcheck.thresholds import evaluate

logger = logging.getLogger(__name__)

_TRANSITIONS: dict[RunState, set[RunState]] = {
    RunState.IDLE: {RunState.SETUP_RUNNING},
    RunState.SETUP_RUNNING: {RunState.SETUP_FAILED, RunState.LOAD_RUNNING},
    RunState.SETUP_FAILED: {RunState.TEARDOWN},
    RunState.LOAD_RUNNING: {RunState.DRAINING},
    RunState.DRAINING: {RunState.TEARDOWN},
    RunState.TEARDOWN: {RunState.EVALUATING, RunState.DONE},
    RunState.EVALUATING: {RunState.DONE},
    RunState.DONE: set(),
}


class Runner:
    """
    Drive one scenario from setup to report.

    Args:
        scenario: What to run.
        config: Configuration class; resolved from ``LOADCHECK_ENV`` when
            omitted.
        collector: Collector to record into; a new one sized from
            *config* is created when omitted.
    """

    def __init__(
        self,
        scenario: Scenario,
        config: type[Config] | None = None,
        collector: SampleCollector | None = None,
    ):
        self.scenario = scenario
        self.config = config or get_config()
        self.collector = collector or SampleCollector(
            max_samples=self.config.MAX_SAMPLES_PER_METRIC
        )
        self.scheduler = StageScheduler(scenario.stages)
        self.pool = WorkerPool(self._make_runtime, max_vus=self.scheduler.max_vus)
        self._state = RunState.IDLE
        self._history: list[RunState] = [RunState.IDLE]
        self._stop_event = threading.Event()
        self._aborted = False

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def history(self) -> list[RunState]:
        return list(self._history)

    def stop(self) -> None:
        """End the load phase early.  Safe to call from any thread."""
        self._stop_event.set()

    def _make_runtime(self, vu_id: int) -> Runtime:
        client = HttpClient(self.collector, timeout=self.config.REQUEST_TIMEOUT)
        return Runtime(collector=self.collector, http=client, vu_id=vu_id)

    def _transition(self, new_state: RunState) -> None:
        if new_state not in _TRANSITIONS[self._state]:
            raise RuntimeError(f"Illegal transition {self._state.value} -> {new_state.value}")
        logger.info("Run %s: %s -> %s", self.scenario.name, self._state.value, new_state.value)
        self._state = new_state
        self._history.append(new_state)

    def run(self) -> RunReport:
        """
        Execute the scenario and return its report.

        Raises:
            RuntimeError: If this runner has already been used.
        """
        if self._state is not RunState.IDLE:
            raise RuntimeError("A Runner can only be run once")

        started = time.monotonic()
        control_runtime = self._make_runtime(0)
        try:
            with runtime.bound(control_runtime):
                return self._run(control_runtime, started)
        finally:
            control_runtime.http.close()

    def _run(self, control_runtime: Runtime, started: float) -> RunReport:
        self._transition(RunState.SETUP_RUNNING)
        try:
            context = run_setup(self.scenario.setup)
        except SetupFailure as exc:
            logger.error("Setup failed, skipping load phase: %s", exc)
            self._transition(RunState.SETUP_FAILED)
            self._transition(RunState.TEARDOWN)
            teardown_error = run_teardown(self.scenario.teardown, None)
            self._transition(RunState.DONE)
            return self._report(
                started,
                passed=False,
                reason=SETUP_FAILURE_REASON,
                thresholds=[],
                teardown_error=teardown_error,
            )

        self._transition(RunState.LOAD_RUNNING)
        load_error = None
        try:
            self._load_phase(context)
        except Exception as exc:
            logger.error("Load phase failed, draining workers: %r", exc, exc_info=True)
            load_error = repr(exc)
            self._aborted = True
        finally:
            self.pool.stop_all()

        self._transition(RunState.DRAINING)
        self.pool.await_all_stopped()

        self._transition(RunState.TEARDOWN)
        teardown_error = run_teardown(self.scenario.teardown, context)

        self._transition(RunState.EVALUATING)
        results = evaluate(self.scenario.thresholds, self.collector)
        self._transition(RunState.DONE)

        return self._report(
            started,
            passed=load_error is None and all(result.passed for result in results),
            reason=None if load_error is None else LOAD_ERROR_REASON,
            thresholds=results,
            teardown_error=teardown_error,
        )

    def _load_phase(self, context: Any) -> None:
        tick = self.config.TICK_INTERVAL
        total = self.scheduler.total_duration
        self.collector.add(VUS_MAX, self.scheduler.max_vus)

        load_started = time.monotonic()
        while True:
            elapsed = time.monotonic() - load_started
            if self.scheduler.is_finished(elapsed):
                break
            if self._stop_event.is_set():
                logger.warning("Load phase stopped early at %.1fs of %.1fs", elapsed, total)
                self._aborted = True
                break

            desired = self.scheduler.desired_vus(elapsed)
            self.pool.scale_to(desired, self.scenario.iteration, context)
            self.collector.add(VUS, self.pool.live_count())
            self._stop_event.wait(min(tick, max(0.0, total - elapsed)))

    def _report(
        self,
        started: float,
        *,
        passed: bool,
        reason: str | None,
        thresholds: list,
        teardown_error: str | None,
    ) -> RunReport:
        report = RunReport(
            passed=passed,
            reason=reason,
            checks=self.collector.check_counts(),
            metrics=self.collector.snapshot_all(),
            thresholds=thresholds,
            states=self.history,
            duration=time.monotonic() - started,
            iterations=self.pool.total_iterations(),
            aborted=self._aborted,
            teardown_error=teardown_error,
        )
        self.collector.close()
        return report


def run(scenario: Scenario, config: type[Config] | None = None) -> RunReport:
    """Run *scenario* to completion and return its :class:`RunReport`."""
    return Runner(scenario, config=config).run()
