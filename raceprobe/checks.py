"""
Declarative checks evaluated against every response.

Checks are small frozen dataclasses with a `name` and a `check()` method,
plus convenience constructors:

    from raceprobe import checks

    scenario_checks = [
        checks.status_is(200),
        checks.latency_under(0.5),
        checks.json_field_equals("status", "accepted"),
    ]

A check that raises (for example, a JSON field check against a body that is
not JSON) is recorded as a failed assertion; evaluation never aborts a run.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, List, Mapping, Optional, Protocol, Sequence

from raceprobe.exceptions import ProbeConfigError
from raceprobe.models import AssertionResult

_MISSING = object()


@dataclass(frozen=True)
class ResponseView:
    """
    What a check can see of one request.

    Attributes:
        status_code: HTTP status, or None on transport error.
        body: Parsed JSON body, or None if absent or not JSON.
        text: Raw response text ("" on transport error).
        latency_seconds: Time from send to full body read.
        error: Transport error description, if the request failed.
    """

    status_code: Optional[int]
    body: Any
    text: str
    latency_seconds: float
    error: Optional[str] = None

    @property
    def is_json(self) -> bool:
        return self.body is not None


class Check(Protocol):
    """Protocol for response checks."""

    name: str

    def check(self, response: ResponseView) -> AssertionResult:
        ...


@dataclass(frozen=True)
class StatusIs:
    expected: int
    name: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            object.__setattr__(self, "name", f"status is {self.expected}")

    def check(self, response: ResponseView) -> AssertionResult:
        return AssertionResult(
            name=self.name,
            passed=response.status_code == self.expected,
            expected=self.expected,
            actual=response.status_code,
        )


@dataclass(frozen=True)
class StatusIn:
    expected: frozenset
    name: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            codes = ", ".join(str(code) for code in sorted(self.expected))
            object.__setattr__(self, "name", f"status in ({codes})")

    def check(self, response: ResponseView) -> AssertionResult:
        return AssertionResult(
            name=self.name,
            passed=response.status_code in self.expected,
            expected=sorted(self.expected),
            actual=response.status_code,
        )


@dataclass(frozen=True)
class LatencyUnder:
    max_seconds: float
    name: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            object.__setattr__(self, "name", f"latency under {self.max_seconds}s")

    def check(self, response: ResponseView) -> AssertionResult:
        return AssertionResult(
            name=self.name,
            passed=response.latency_seconds < self.max_seconds,
            expected=f"< {self.max_seconds}",
            actual=round(response.latency_seconds, 6),
        )


@dataclass(frozen=True)
class JsonFieldEquals:
    """
    Compare a field of the JSON body to an expected value.

    `path` is dotted; integer segments index into lists ("items.0.id").
    """

    path: str
    expected: Any
    name: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            object.__setattr__(self, "name", f"{self.path} == {self.expected!r}")

    def check(self, response: ResponseView) -> AssertionResult:
        actual = lookup_field(_require_json(response), self.path)
        return AssertionResult(
            name=self.name,
            passed=actual is not _MISSING and actual == self.expected,
            expected=self.expected,
            actual=None if actual is _MISSING else actual,
            message=f"field {self.path!r} not found" if actual is _MISSING else None,
        )


@dataclass(frozen=True)
class JsonFieldPresent:
    path: str
    name: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            object.__setattr__(self, "name", f"{self.path} is present")

    def check(self, response: ResponseView) -> AssertionResult:
        found = lookup_field(_require_json(response), self.path) is not _MISSING
        return AssertionResult(
            name=self.name,
            passed=found,
            expected="present",
            actual="present" if found else "missing",
        )


@dataclass(frozen=True)
class Predicate:
    """Arbitrary callable check; passes when fn(response) is truthy."""

    name: str
    fn: Callable[[ResponseView], Any]

    def check(self, response: ResponseView) -> AssertionResult:
        return AssertionResult(
            name=self.name,
            passed=bool(self.fn(response)),
            expected=True,
            actual=response.status_code,
        )


def _require_json(response: ResponseView) -> Any:
    if not response.is_json:
        snippet = response.text[:80]
        raise ValueError(f"response body is not JSON: {snippet!r}")
    return response.body


def lookup_field(body: Any, path: str) -> Any:
    """Resolve a dotted path; returns a sentinel when any segment is missing."""
    current = body
    for segment in path.split("."):
        if isinstance(current, Mapping):
            if segment not in current:
                return _MISSING
            current = current[segment]
        elif isinstance(current, list) and segment.lstrip("-").isdigit():
            index = int(segment)
            if not -len(current) <= index < len(current):
                return _MISSING
            current = current[index]
        else:
            return _MISSING
    return current


def evaluate(response: ResponseView, checks: Sequence[Check]) -> List[AssertionResult]:
    """
    Evaluate checks in order against one response.

    A transport error fails every check, since none has a response to judge.
    Exceptions raised by a check are converted into failed results.
    """
    results: List[AssertionResult] = []
    for item in checks:
        name = getattr(item, "name", type(item).__name__)
        if response.error is not None:
            results.append(
                AssertionResult(
                    name=name,
                    passed=False,
                    actual=None,
                    message=f"transport error: {response.error}",
                )
            )
            continue
        try:
            results.append(item.check(response))
        except Exception as exc:
            results.append(
                AssertionResult(
                    name=name,
                    passed=False,
                    actual=response.status_code,
                    message=f"check raised {type(exc).__name__}: {exc}",
                )
            )
    return results


def status_is(expected: int = 200, *, name: str = "") -> StatusIs:
    """Convenience: status code equals expected."""
    return StatusIs(expected=expected, name=name)


def status_in(codes: Sequence[int], *, name: str = "") -> StatusIn:
    """Convenience: status code is one of codes."""
    return StatusIn(expected=frozenset(codes), name=name)


def latency_under(max_seconds: float, *, name: str = "") -> LatencyUnder:
    """Convenience: full response received within max_seconds."""
    return LatencyUnder(max_seconds=max_seconds, name=name)


def json_field_equals(path: str, expected: Any, *, name: str = "") -> JsonFieldEquals:
    """Convenience: JSON body field at path equals expected."""
    return JsonFieldEquals(path=path, expected=expected, name=name)


def json_field_present(path: str, *, name: str = "") -> JsonFieldPresent:
    """Convenience: JSON body has a field at path."""
    return JsonFieldPresent(path=path, name=name)


def predicate(name: str, fn: Callable[[ResponseView], Any]) -> Predicate:
    """Convenience: wrap a callable as a named check."""
    return Predicate(name=name, fn=fn)


def check_from_dict(spec: Mapping[str, Any]) -> Check:
    """
    Build a check from a configuration mapping.

    Recognized forms:
        {"status": 200}
        {"status_in": [200, 201]}
        {"latency_under": 0.5}
        {"json_field": "status", "equals": "accepted"}
        {"json_field": "id"}

    Any form may carry an optional "name".

    Raises:
        ProbeConfigError: Unknown form or a value of the wrong type.
    """
    if not isinstance(spec, Mapping):
        raise ProbeConfigError(
            "Check must be a mapping",
            code="invalid_check",
            details={"check": repr(spec)},
        )
    name = str(spec.get("name", ""))
    try:
        if "status" in spec:
            return status_is(_as_int(spec["status"]), name=name)
        if "status_in" in spec:
            codes = spec["status_in"]
            if isinstance(codes, (str, bytes)) or not isinstance(codes, Sequence):
                raise TypeError(f"status_in must be a list, got {codes!r}")
            return status_in([_as_int(code) for code in codes], name=name)
        if "latency_under" in spec:
            return latency_under(_as_float(spec["latency_under"]), name=name)
    except (TypeError, ValueError) as exc:
        raise ProbeConfigError(
            f"Invalid check value: {exc}",
            code="invalid_check",
            details={"check": dict(spec)},
        ) from exc
    if "json_field" in spec:
        path = str(spec["json_field"])
        if "equals" in spec:
            return json_field_equals(path, spec["equals"], name=name)
        return json_field_present(path, name=name)
    raise ProbeConfigError(
        "Unrecognized check specification",
        code="invalid_check",
        details={"check": dict(spec)},
    )


def _as_int(value: Any) -> int:
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(f"expected an integer, got {value!r}")
    return int(value)


def _as_float(value: Any) -> float:
    if isinstance(value, bool):
        raise TypeError(f"expected a number, got {value!r}")
    return float(value)


def checks_from_config(specs: Sequence[Mapping[str, Any]]) -> List[Check]:
    if isinstance(specs, (str, bytes, Mapping)) or not isinstance(specs, Sequence):
        raise ProbeConfigError(
            "Checks must be a list of mappings",
            code="invalid_check",
            details={"checks": repr(specs)},
        )
    return [check_from_dict(spec) for spec in specs]


__all__ = [
    "ResponseView",
    "Check",
    "StatusIs",
    "StatusIn",
    "LatencyUnder",
    "JsonFieldEquals",
    "JsonFieldPresent",
    "Predicate",
    "evaluate",
    "lookup_field",
    "status_is",
    "status_in",
    "latency_under",
    "json_field_equals",
    "json_field_present",
    "predicate",
    "check_from_dict",
    "checks_from_config",
]

