"""
Data models for raceprobe runs.

Per-request records (RequestInstance, Outcome, AssertionResult) and the
AggregateReport folded from them, plus the process exit codes a report
maps onto.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INCONCLUSIVE = 2
EXIT_CONFIG_ERROR = 3


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class VirtualUserConfig(BaseModel):
    """
    How many virtual users run, and for how long.

    Attributes:
        vus: Number of concurrent virtual users.
        duration_seconds: Wall-clock window shared by all users.
        max_iterations: Optional per-user cap on requests issued.
        request_timeout_seconds: httpx timeout for a single request; also the
            worst-case latency the scheduler allows past the deadline.
        grace_seconds: Extra wait after deadline + timeout before a client is
            declared hung.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    vus: int = Field(..., ge=1)
    duration_seconds: float = Field(..., gt=0)
    max_iterations: Optional[int] = Field(default=None, ge=1)
    request_timeout_seconds: float = Field(default=10.0, gt=0)
    grace_seconds: float = Field(default=5.0, ge=0)


class RequestInstance(BaseModel):
    """A fully materialized request, owned by the client that built it."""

    model_config = ConfigDict(extra="forbid")

    request_id: str
    vu: int
    iteration: int
    method: str
    url: str
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Optional[str] = None


class AssertionResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    passed: bool
    expected: Any = None
    actual: Any = None
    message: Optional[str] = None


class Outcome(BaseModel):
    """
    Result of one request.

    status_code is None when the request never produced a response
    (connection refused, timeout); error then describes the transport failure.
    """

    model_config = ConfigDict(extra="forbid")

    request_id: str
    vu: int
    iteration: int
    status_code: Optional[int] = None
    error: Optional[str] = None
    latency_seconds: float = Field(..., ge=0)
    assertions: List[AssertionResult] = Field(default_factory=list)

    @property
    def transport_error(self) -> bool:
        return self.error is not None

    @property
    def passed(self) -> bool:
        return self.error is None and all(a.passed for a in self.assertions)


class FailureDetail(BaseModel):
    """Enough context to reproduce one failed request."""

    model_config = ConfigDict(extra="forbid")

    request_id: str
    vu: int
    iteration: int
    assertion: str
    expected: Any = None
    actual: Any = None
    message: Optional[str] = None


class AggregateReport(BaseModel):
    """
    Final, read-only summary of a run.

    Counts are per outcome (request): an outcome with several failed
    assertions counts once in `failed` but contributes one FailureDetail
    per failed assertion.

    Attributes:
        total: Outcomes recorded.
        passed: Outcomes with no transport error and all assertions passing.
        failed: total - passed.
        transport_errors: Outcomes with no HTTP response at all.
        status_distribution: Count by status code ("error" for transport errors).
        iterations_by_vu: Requests issued per virtual user.
        failures: Diagnostic entries, capped by the collector.
        failures_dropped: Entries not stored because of the cap.
        aborted: True if an operator interrupt stopped the run early.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    run_id: str
    scenario: str
    vus: int
    duration_seconds: float

    started_at: datetime
    finished_at: datetime
    elapsed_seconds: float = Field(..., ge=0)

    total: int = Field(default=0, ge=0)
    passed: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
    transport_errors: int = Field(default=0, ge=0)

    status_distribution: Dict[str, int] = Field(default_factory=dict)
    iterations_by_vu: Dict[int, int] = Field(default_factory=dict)

    latency_mean_seconds: Optional[float] = None
    latency_max_seconds: Optional[float] = None

    failures: List[FailureDetail] = Field(default_factory=list)
    failures_dropped: int = Field(default=0, ge=0)

    aborted: bool = False

    @property
    def ok(self) -> bool:
        return self.failed == 0 and not self.aborted

    @property
    def exit_code(self) -> int:
        if self.failed > 0:
            return EXIT_FAILED
        if self.aborted:
            return EXIT_INCONCLUSIVE
        return EXIT_OK

    def to_log_dict(self) -> Dict[str, Any]:
        """
        Serialize to a dict suitable for JSON output.

        Returns a stable schema:
        {"type": "raceprobe.report.v1", "ok": ..., "exit_code": ..., ...fields...}
        """
        data = self.model_dump(mode="json")
        data["type"] = "raceprobe.report.v1"
        data["ok"] = self.ok
        data["exit_code"] = self.exit_code
        return data
