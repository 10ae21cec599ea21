"""
Typed exceptions for raceprobe.

Only configuration and internal-contract errors are raised out of a run.
Per-request problems (transport failures, failed or broken checks) are
absorbed into Outcome data and never unwind the scheduler.

- RaceProbeError: Base exception for all raceprobe errors
- ProbeConfigError: Invalid run configuration
- TemplateError: Scenario template cannot be resolved
- SchedulerTimeout: A virtual client did not return after the deadline
- CollectorClosed: record() called after finalize()
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class RaceProbeError(Exception):
    """Base exception for all raceprobe errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code for programmatic handling
        details: Additional context as key-value pairs
    """

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging or CLI output."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class ProbeConfigError(RaceProbeError):
    """Run configuration is missing or invalid.

    Raised when:
    - No target URL or token can be resolved
    - Duration strings cannot be parsed
    - A check specification is not recognized
    """

    pass


class TemplateError(ProbeConfigError):
    """A scenario header or body template cannot be resolved.

    Fatal at startup: the scheduler dry-builds one request before any
    client starts, so a broken template never produces traffic.

    Attributes:
        placeholder: Name of the unbound placeholder, if known
        location: Where in the template it occurred (e.g. "body.Withdrawal.id")
    """

    def __init__(
        self,
        message: str,
        *,
        placeholder: Optional[str] = None,
        location: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if placeholder:
            details["placeholder"] = placeholder
        if location:
            details["location"] = location

        self.placeholder = placeholder
        self.location = location

        super().__init__(message, code=code, details=details)


class SchedulerTimeout(RaceProbeError):
    """Virtual clients failed to return within the grace period.

    The run is inconclusive: neither passed nor failed.

    Attributes:
        hung_vus: Indices of the clients still running
        waited_seconds: How long the scheduler waited after release
    """

    def __init__(
        self,
        message: str,
        *,
        hung_vus: Optional[List[int]] = None,
        waited_seconds: Optional[float] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        self.hung_vus = list(hung_vus or [])
        details["hung_vus"] = self.hung_vus
        if waited_seconds is not None:
            details["waited_seconds"] = round(waited_seconds, 3)

        self.waited_seconds = waited_seconds

        super().__init__(message, code=code, details=details)


class CollectorClosed(RaceProbeError):
    """An outcome was recorded after the collector was finalized.

    Indicates a scheduler bug, never a target-service condition.
    """

    pass


__all__ = [
    "RaceProbeError",
    "ProbeConfigError",
    "TemplateError",
    "SchedulerTimeout",
    "CollectorClosed",
]
