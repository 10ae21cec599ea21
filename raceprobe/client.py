"""
VirtualClient: one simulated caller looping until the run deadline.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Mapping, Optional

import httpx

from raceprobe.builder import build_request, new_context
from raceprobe.checks import ResponseView, evaluate
from raceprobe.collector import OutcomeCollector
from raceprobe.models import Outcome, RequestInstance
from raceprobe.scenario import ScenarioDefinition

logger = logging.getLogger(__name__)

ParamsFactory = Callable[[int, int], Mapping[str, Any]]


class VirtualClient:
    """
    Simulates one concurrent caller.

    Each iteration builds a fresh request (new unique id), issues it
    synchronously, evaluates the scenario checks and hands the Outcome to
    the collector. Transport failures become failed outcomes; the loop
    keeps going. The only state carried between iterations is the
    iteration counter.
    """

    def __init__(
        self,
        vu: int,
        scenario: ScenarioDefinition,
        *,
        run_id: str,
        collector: OutcomeCollector,
        http: httpx.Client,
        token: Optional[str] = None,
        params: Optional[ParamsFactory] = None,
        max_iterations: Optional[int] = None,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        self.vu = vu
        self._scenario = scenario
        self._run_id = run_id
        self._collector = collector
        self._http = http
        self._token = token
        self._params = params
        self._max_iterations = max_iterations
        self._stop_event = stop_event or threading.Event()
        self._iteration = 0

    @property
    def iterations(self) -> int:
        return self._iteration

    def close(self) -> None:
        self._http.close()

    def should_stop(self, deadline: float) -> bool:
        if self._stop_event.is_set():
            return True
        if self._max_iterations is not None and self._iteration >= self._max_iterations:
            return True
        return time.monotonic() >= deadline

    def run(self, deadline: float) -> int:
        """
        Issue requests until the deadline (a time.monotonic() value), the
        iteration cap, or a stop request.

        The deadline is only checked between iterations; an in-flight
        request always completes.

        Returns:
            Number of requests issued.
        """
        while not self.should_stop(deadline):
            self.run_once()
        return self._iteration

    def run_once(self) -> Outcome:
        iteration = self._iteration
        self._iteration += 1

        extra = self._params(self.vu, iteration) if self._params else None
        context = new_context(self._run_id, self.vu, iteration, params=extra)
        request = build_request(self._scenario, context, token=self._token)

        response = self._issue(request)
        outcome = Outcome(
            request_id=request.request_id,
            vu=self.vu,
            iteration=iteration,
            status_code=response.status_code,
            error=response.error,
            latency_seconds=response.latency_seconds,
            assertions=evaluate(response, self._scenario.checks),
        )
        self._collector.record(outcome)
        return outcome

    def _issue(self, request: RequestInstance) -> ResponseView:
        start = time.perf_counter()
        try:
            response = self._http.request(
                request.method,
                request.url,
                headers=request.headers,
                content=request.body,
            )
            text = response.text
        except httpx.RequestError as exc:
            latency = time.perf_counter() - start
            logger.debug(
                "vu %d iteration %d transport error: %r",
                request.vu,
                request.iteration,
                exc,
            )
            return ResponseView(
                status_code=None,
                body=None,
                text="",
                latency_seconds=latency,
                error=_describe(exc),
            )
        latency = time.perf_counter() - start

        try:
            body = response.json() if text else None
        except ValueError:
            body = None

        return ResponseView(
            status_code=response.status_code,
            body=body,
            text=text,
            latency_seconds=latency,
        )


def _describe(exc: Exception) -> str:
    detail = str(exc)
    name = type(exc).__name__
    return f"{name}: {detail}" if detail else name
