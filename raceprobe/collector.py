"""
OutcomeCollector: thread-safe aggregation of per-request outcomes.

Every virtual client calls record() concurrently; the scheduler calls
finalize() once all clients have joined. The collector is the only object
in a run mutated by more than one thread.
"""

from __future__ import annotations

import threading
import time
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from raceprobe.exceptions import CollectorClosed
from raceprobe.models import AggregateReport, FailureDetail, Outcome, utc_now

DEFAULT_MAX_FAILURES = 1000


class OutcomeCollector:
    """
    Accumulates outcomes into an AggregateReport.

    Counts are always exact. Only the first `max_failures` failure entries
    are kept; the rest are counted in `failures_dropped`.

    Example:
        collector = OutcomeCollector(run_id, "withdrawal", vus=2, duration_seconds=1.0)
        collector.record(outcome)       # from any thread
        report = collector.finalize()   # once, after all clients join
    """

    def __init__(
        self,
        run_id: str,
        scenario: str,
        *,
        vus: int,
        duration_seconds: float,
        max_failures: Optional[int] = DEFAULT_MAX_FAILURES,
    ) -> None:
        self._run_id = run_id
        self._scenario = scenario
        self._vus = vus
        self._duration_seconds = duration_seconds
        self._max_failures = max_failures

        self._lock = threading.Lock()
        self._total = 0
        self._failed = 0
        self._transport_errors = 0
        self._status: Dict[str, int] = defaultdict(int)
        self._iterations: Dict[int, int] = defaultdict(int)
        self._latency_sum = 0.0
        self._latency_max: Optional[float] = None
        self._failures: List[FailureDetail] = []
        self._failures_dropped = 0

        self._started_at: datetime = utc_now()
        self._started_mono = time.monotonic()
        self._report: Optional[AggregateReport] = None

    def mark_started(self) -> None:
        """Reset the run clock; called when clients are released."""
        with self._lock:
            self._started_at = utc_now()
            self._started_mono = time.monotonic()

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._report is not None

    def record(self, outcome: Outcome) -> None:
        """
        Record one outcome.

        Raises:
            CollectorClosed: finalize() has already been called.
        """
        with self._lock:
            if self._report is not None:
                raise CollectorClosed(
                    "Outcome recorded after finalize()",
                    details={
                        "run_id": self._run_id,
                        "request_id": outcome.request_id,
                        "vu": outcome.vu,
                    },
                )

            self._total += 1
            self._iterations[outcome.vu] += 1
            self._latency_sum += outcome.latency_seconds
            if self._latency_max is None or outcome.latency_seconds > self._latency_max:
                self._latency_max = outcome.latency_seconds

            if outcome.transport_error:
                self._transport_errors += 1
                self._status["error"] += 1
            else:
                self._status[str(outcome.status_code)] += 1

            if not outcome.passed:
                self._failed += 1
                for detail in _failure_details(outcome):
                    self._add_failure(detail)

    def _add_failure(self, detail: FailureDetail) -> None:
        if self._max_failures is not None and len(self._failures) >= self._max_failures:
            self._failures_dropped += 1
            return
        self._failures.append(detail)

    def finalize(self, *, aborted: bool = False) -> AggregateReport:
        """
        Close the collector and build the report.

        Later calls return the same report without touching any count.
        """
        with self._lock:
            if self._report is not None:
                return self._report

            finished_at = utc_now()
            self._report = AggregateReport(
                run_id=self._run_id,
                scenario=self._scenario,
                vus=self._vus,
                duration_seconds=self._duration_seconds,
                started_at=self._started_at,
                finished_at=finished_at,
                elapsed_seconds=max(0.0, time.monotonic() - self._started_mono),
                total=self._total,
                passed=self._total - self._failed,
                failed=self._failed,
                transport_errors=self._transport_errors,
                status_distribution=dict(self._status),
                iterations_by_vu=dict(self._iterations),
                latency_mean_seconds=(
                    self._latency_sum / self._total if self._total > 0 else None
                ),
                latency_max_seconds=self._latency_max,
                failures=list(self._failures),
                failures_dropped=self._failures_dropped,
                aborted=aborted,
            )
            return self._report


def _failure_details(outcome: Outcome) -> List[FailureDetail]:
    if outcome.transport_error:
        # All checks fail with the same cause; one entry says it once.
        return [
            FailureDetail(
                request_id=outcome.request_id,
                vu=outcome.vu,
                iteration=outcome.iteration,
                assertion="transport",
                expected="response",
                actual=None,
                message=outcome.error,
            )
        ]
    return [
        FailureDetail(
            request_id=outcome.request_id,
            vu=outcome.vu,
            iteration=outcome.iteration,
            assertion=result.name,
            expected=result.expected,
            actual=result.actual,
            message=result.message,
        )
        for result in outcome.assertions
        if not result.passed
    ]


def format_report(report: AggregateReport, *, max_failures_shown: int = 20) -> str:
    """
    Format an AggregateReport as human-readable text.

    Args:
        report: Finalized report.
        max_failures_shown: How many failure entries to list.

    Returns:
        Formatted string suitable for printing.
    """
    lines = []
    verdict = "PASSED" if report.ok else ("ABORTED" if report.failed == 0 else "FAILED")

    lines.append("=" * 60)
    lines.append(f"SCENARIO: {report.scenario}  [{verdict}]")
    lines.append("=" * 60)
    lines.append(f"Run: {report.run_id}")
    lines.append(
        f"VUs: {report.vus}  Duration: {report.duration_seconds:g}s  "
        f"Elapsed: {report.elapsed_seconds:.3f}s"
    )
    lines.append("")

    lines.append("--- Outcomes ---")
    lines.append(f"  total: {report.total}")
    lines.append(f"  passed: {report.passed}")
    lines.append(f"  failed: {report.failed}")
    lines.append(f"  transport errors: {report.transport_errors}")

    lines.append("")
    lines.append("--- Status codes ---")
    for status, count in sorted(report.status_distribution.items()):
        pct = count / report.total * 100 if report.total else 0.0
        lines.append(f"  {status}: {count} ({pct:.1f}%)")

    lines.append("")
    lines.append("--- Per VU ---")
    for vu, count in sorted(report.iterations_by_vu.items()):
        lines.append(f"  vu {vu}: {count} requests")

    lines.append("")
    lines.append("--- Latency ---")
    lines.append(
        f"  mean={_fmt(report.latency_mean_seconds, 4)}s "
        f"max={_fmt(report.latency_max_seconds, 4)}s"
    )

    if report.failures:
        lines.append("")
        lines.append("--- Failures ---")
        for detail in _head(report.failures, max_failures_shown):
            lines.append(
                f"  vu={detail.vu} iter={detail.iteration} id={detail.request_id} "
                f"{detail.assertion}: expected={detail.expected!r} actual={detail.actual!r}"
                + (f" ({detail.message})" if detail.message else "")
            )
        hidden = max(0, len(report.failures) - max_failures_shown) + report.failures_dropped
        if hidden > 0:
            lines.append(f"  ... {hidden} more")

    lines.append("")
    return "\n".join(lines)


def _head(items: Sequence[FailureDetail], n: int) -> Sequence[FailureDetail]:
    return items[: max(0, n)]


def _fmt(val: Optional[float], decimals: int = 1) -> str:
    """Format a value, handling None."""
    if val is None:
        return "N/A"
    return f"{val:.{decimals}f}"
