"""
Concurrency scheduler: run a fixed pool of virtual clients against one
scenario for a bounded wall-clock window.

One OS thread per virtual user, each with its own httpx.Client, so every
user's request can be in flight at the same time. A barrier releases all
users together; the shared deadline is fixed at release time.

Usage:
    from raceprobe import ConcurrencyScheduler, VirtualUserConfig
    from raceprobe.scenarios import withdrawal_scenario

    scheduler = ConcurrencyScheduler(token=token)
    report = scheduler.execute(
        VirtualUserConfig(vus=2, duration_seconds=1.0),
        withdrawal_scenario("http://localhost:3030"),
    )
    sys.exit(report.exit_code)
"""

from __future__ import annotations

import logging
import threading
import time
from typing import List, Optional, Union

import httpx
from pydantic import SecretStr

from raceprobe.builder import new_run_id, validate_scenario
from raceprobe.client import ParamsFactory, VirtualClient
from raceprobe.collector import DEFAULT_MAX_FAILURES, OutcomeCollector
from raceprobe.exceptions import SchedulerTimeout
from raceprobe.models import AggregateReport, VirtualUserConfig
from raceprobe.scenario import ScenarioDefinition

logger = logging.getLogger(__name__)


class _RunClock:
    """Deadline shared by all clients; written once by the barrier action."""

    def __init__(self, duration_seconds: float, collector: OutcomeCollector) -> None:
        self._duration = duration_seconds
        self._collector = collector
        self.released_at = 0.0
        self.deadline = 0.0
        self.released = threading.Event()

    def release(self) -> None:
        self._collector.mark_started()
        self.released_at = time.monotonic()
        self.deadline = self.released_at + self._duration
        self.released.set()


class _ClientThread(threading.Thread):
    def __init__(
        self,
        client: VirtualClient,
        barrier: threading.Barrier,
        clock: _RunClock,
    ) -> None:
        super().__init__(name=f"raceprobe-vu-{client.vu}", daemon=True)
        self.client = client
        self._barrier = barrier
        self._clock = clock
        self.error: Optional[BaseException] = None

    @property
    def vu(self) -> int:
        return self.client.vu

    def run(self) -> None:
        try:
            self._barrier.wait()
        except threading.BrokenBarrierError:
            return
        try:
            self.client.run(self._clock.deadline)
        except BaseException as exc:
            logger.exception("vu %d stopped on an internal error", self.vu)
            self.error = exc


class ConcurrencyScheduler:
    """
    Starts `config.vus` clients at once and joins them after the deadline.

    Args:
        token: Bearer credential bound to the `${token}` placeholder. Shared
            read-only by every client.
        transport: Optional httpx transport (e.g. httpx.MockTransport in tests).
        params: Optional (vu, iteration) -> bindings factory for per-iteration
            template parameters.
        max_failures: Cap on stored failure entries per run.
    """

    def __init__(
        self,
        *,
        token: Optional[Union[str, SecretStr]] = None,
        transport: Optional[httpx.BaseTransport] = None,
        params: Optional[ParamsFactory] = None,
        max_failures: Optional[int] = DEFAULT_MAX_FAILURES,
    ) -> None:
        if isinstance(token, str):
            token = SecretStr(token)
        self._token = token
        self._transport = transport
        self._params = params
        self._max_failures = max_failures
        self._stop_event = threading.Event()

    def stop(self) -> None:
        """Ask running clients to finish their in-flight request and stop."""
        self._stop_event.set()

    def execute(
        self, config: VirtualUserConfig, scenario: ScenarioDefinition
    ) -> AggregateReport:
        """
        Run the scenario and return the finalized report.

        Raises:
            TemplateError: The scenario cannot be built; no client started.
            SchedulerTimeout: A client did not return within
                deadline + request timeout + grace. The run is inconclusive.
        """
        token = self._token.get_secret_value() if self._token is not None else None
        validate_scenario(
            scenario,
            token=token,
            params=self._params(0, 0) if self._params else None,
        )

        run_id = new_run_id()
        self._stop_event = threading.Event()
        collector = OutcomeCollector(
            run_id,
            scenario.name,
            vus=config.vus,
            duration_seconds=config.duration_seconds,
            max_failures=self._max_failures,
        )
        clock = _RunClock(config.duration_seconds, collector)
        barrier = threading.Barrier(config.vus, action=clock.release)

        logger.info(
            "Starting run %s: scenario=%s target=%s vus=%d duration=%.3fs",
            run_id,
            scenario.name,
            scenario.target,
            config.vus,
            config.duration_seconds,
        )

        threads: List[_ClientThread] = []
        for vu in range(config.vus):
            http = httpx.Client(
                transport=self._transport,
                timeout=config.request_timeout_seconds,
            )
            client = VirtualClient(
                vu,
                scenario,
                run_id=run_id,
                collector=collector,
                http=http,
                token=token,
                params=self._params,
                max_iterations=config.max_iterations,
                stop_event=self._stop_event,
            )
            threads.append(_ClientThread(client, barrier, clock))

        for thread in threads:
            thread.start()

        aborted = False
        try:
            self._join(threads, clock, config)
        except KeyboardInterrupt:
            aborted = True
            logger.warning("Run %s interrupted; draining in-flight requests", run_id)
            self._stop_event.set()
            self._join(threads, clock, config, from_now=True)
        finally:
            if not clock.released.is_set():
                barrier.abort()
                for thread in threads:
                    thread.join(timeout=1.0)
            for thread in threads:
                if not thread.is_alive():
                    thread.client.close()

        hung = [thread.vu for thread in threads if thread.is_alive()]
        if hung:
            waited = time.monotonic() - clock.released_at
            # Hung clients exit after their request returns; closing the pool
            # fails any request still blocked on a socket.
            self._stop_event.set()
            for thread in threads:
                if thread.is_alive():
                    thread.client.close()
            logger.error(
                "Run %s inconclusive: vus %s still running %.3fs after release",
                run_id,
                hung,
                waited,
            )
            raise SchedulerTimeout(
                f"{len(hung)} virtual client(s) did not return within the grace period",
                hung_vus=hung,
                waited_seconds=waited,
                details={"run_id": run_id},
            )

        for thread in threads:
            if thread.error is not None:
                raise thread.error

        report = collector.finalize(aborted=aborted or self._stop_event.is_set())
        logger.info(
            "Finished run %s: total=%d passed=%d failed=%d transport_errors=%d",
            run_id,
            report.total,
            report.passed,
            report.failed,
            report.transport_errors,
        )
        return report

    @staticmethod
    def _join(
        threads: List[_ClientThread],
        clock: _RunClock,
        config: VirtualUserConfig,
        *,
        from_now: bool = False,
    ) -> None:
        allowance = config.request_timeout_seconds + config.grace_seconds
        if not clock.released.wait(timeout=allowance):
            return
        until = clock.deadline + allowance
        if from_now:
            until = max(until, time.monotonic() + allowance)
        for thread in threads:
            remaining = until - time.monotonic()
            if remaining <= 0:
                break
            thread.join(timeout=remaining)


def execute(
    config: VirtualUserConfig,
    scenario: ScenarioDefinition,
    *,
    token: Optional[Union[str, SecretStr]] = None,
    transport: Optional[httpx.BaseTransport] = None,
    params: Optional[ParamsFactory] = None,
) -> AggregateReport:
    """Convenience wrapper around ConcurrencyScheduler(...).execute()."""
    scheduler = ConcurrencyScheduler(token=token, transport=transport, params=params)
    return scheduler.execute(config, scenario)
