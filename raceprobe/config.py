"""
Run configuration.

The run configuration surface is a mapping (usually a JSON file):

    {
        "vus": 2,
        "duration": "1s",
        "target": "http://localhost:3030",
        "token": "...",
        "scenario": {"operation": "Withdrawal", "amount": "30", "currency": "TWD"}
    }

`target`, `token`, `timeout` and `grace` fall back to the environment:

    RACEPROBE_TARGET   base URL of the service
    RACEPROBE_TOKEN    bearer token (never stored in reports)
    RACEPROBE_TIMEOUT  per-request timeout, duration syntax (default 10s)
    RACEPROBE_GRACE    extra wait after the deadline, duration syntax (default 5s)
"""

from __future__ import annotations

import json
import os
import re
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator

from raceprobe.checks import checks_from_config, status_is
from raceprobe.exceptions import ProbeConfigError
from raceprobe.models import VirtualUserConfig
from raceprobe.scenario import ScenarioDefinition
from raceprobe.scenarios import BANK_ACCOUNT_PATH, bank_account_command, join_url

_SPAN_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(value: Union[str, int, float], *, allow_zero: bool = False) -> float:
    """
    Parse a time span into seconds.

    Accepts numbers (seconds) and k6-style strings: "1s", "500ms", "2m",
    "1h30m", "1.5s". A bare numeric string is read as seconds.
    Zero is accepted only with allow_zero=True.

    Raises:
        ValueError: The value is not a positive time span.
    """
    if isinstance(value, bool):
        raise ValueError(f"invalid duration {value!r}")
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        text = value.strip().lower()
        try:
            seconds = float(text)
        except ValueError:
            pos = 0
            seconds = 0.0
            for match in _SPAN_PART.finditer(text):
                if match.start() != pos:
                    break
                seconds += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
                pos = match.end()
            if pos != len(text) or pos == 0:
                raise ValueError(f"invalid duration {value!r}") from None
    if seconds < 0 or (seconds == 0 and not allow_zero):
        raise ValueError(f"duration must be positive, got {value!r}")
    return seconds


def _errors(exc: ValidationError) -> Any:
    return exc.errors(include_url=False, include_context=False, include_input=False)


class Settings:
    """
    Defaults loaded from environment variables.

    Raises:
        ProbeConfigError: RACEPROBE_TIMEOUT or RACEPROBE_GRACE is not a duration.
    """

    def __init__(self) -> None:
        self.target: Optional[str] = os.getenv("RACEPROBE_TARGET")
        self.token: Optional[str] = os.getenv("RACEPROBE_TOKEN")
        self.request_timeout_seconds: float = _env_duration("RACEPROBE_TIMEOUT", "10")
        self.grace_seconds: float = _env_duration(
            "RACEPROBE_GRACE", "5", allow_zero=True
        )


def _env_duration(name: str, default: str, *, allow_zero: bool = False) -> float:
    raw = os.getenv(name, default)
    try:
        return parse_duration(raw, allow_zero=allow_zero)
    except ValueError as exc:
        raise ProbeConfigError(
            f"{name} is not a valid duration: {exc}",
            code="invalid_environment",
            details={"variable": name, "value": raw},
        ) from exc


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def reset_settings() -> None:
    """Clear settings cache. For testing only."""
    get_settings.cache_clear()


class RunConfig(BaseModel):
    """
    Validated run configuration.

    Attributes:
        vus: Concurrent virtual users.
        duration: Run window in seconds (time-span strings accepted).
        target: Base URL of the service under test.
        scenario: Scenario mapping, either a bank-account shorthand
            ({"operation": ...}) or a full scenario definition.
        token: Bearer credential; kept secret in reprs and dumps.
        max_iterations: Optional per-user request cap.
        timeout: Per-request timeout in seconds.
        grace: Extra wait after deadline + timeout before declaring a hang.
    """

    model_config = ConfigDict(extra="forbid")

    vus: int = Field(..., ge=1)
    duration: float = Field(..., gt=0)
    target: str
    scenario: Dict[str, Any] = Field(default_factory=lambda: {"operation": "Withdrawal"})
    token: Optional[SecretStr] = None
    max_iterations: Optional[int] = Field(default=None, ge=1)
    timeout: float = Field(default=10.0, gt=0)
    grace: float = Field(default=5.0, ge=0)

    @field_validator("duration", "timeout", mode="before")
    @classmethod
    def _span(cls, value: Any) -> Any:
        if isinstance(value, (str, int, float)):
            return parse_duration(value)
        return value

    @field_validator("grace", mode="before")
    @classmethod
    def _grace_span(cls, value: Any) -> Any:
        if isinstance(value, (str, int, float)):
            return parse_duration(value, allow_zero=True)
        return value

    @classmethod
    def from_mapping(
        cls, data: Mapping[str, Any], *, settings: Optional[Settings] = None
    ) -> "RunConfig":
        """
        Validate a configuration mapping, filling gaps from the environment.

        Raises:
            ProbeConfigError: Missing target or invalid values.
        """
        settings = settings or get_settings()
        merged: Dict[str, Any] = dict(data)
        if not merged.get("target") and settings.target:
            merged["target"] = settings.target
        if not merged.get("token") and settings.token:
            merged["token"] = settings.token
        merged.setdefault("timeout", settings.request_timeout_seconds)
        merged.setdefault("grace", settings.grace_seconds)

        if not merged.get("target"):
            raise ProbeConfigError(
                "No target configured (set 'target' or RACEPROBE_TARGET)",
                code="missing_target",
            )
        try:
            return cls.model_validate(merged)
        except ValidationError as exc:
            raise ProbeConfigError(
                "Invalid run configuration",
                code="invalid_config",
                details={"errors": _errors(exc)},
            ) from exc

    def vu_config(self) -> VirtualUserConfig:
        return VirtualUserConfig(
            vus=self.vus,
            duration_seconds=self.duration,
            max_iterations=self.max_iterations,
            request_timeout_seconds=self.timeout,
            grace_seconds=self.grace,
        )

    def build_scenario(self) -> ScenarioDefinition:
        """
        Turn the scenario mapping into a ScenarioDefinition.

        Raises:
            ProbeConfigError: The mapping is not a valid scenario.
        """
        spec = dict(self.scenario)
        check_specs = spec.pop("checks", None)
        checks = checks_from_config(check_specs) if check_specs is not None else None

        if "operation" in spec:
            unknown = set(spec) - {"operation", "amount", "currency", "path", "name"}
            if unknown:
                raise ProbeConfigError(
                    "Unknown keys in bank-account scenario",
                    code="invalid_scenario",
                    details={"keys": sorted(unknown)},
                )
            return bank_account_command(
                str(spec["operation"]),
                self.target,
                amount=spec.get("amount", "30"),
                currency=str(spec.get("currency", "TWD")),
                path=str(spec.get("path", BANK_ACCOUNT_PATH)),
                name=spec.get("name"),
                checks=checks,
            )

        path = spec.pop("path", None)
        if "target" not in spec:
            spec["target"] = join_url(self.target, path) if path else self.target
        spec["checks"] = checks if checks is not None else [status_is(200)]
        try:
            return ScenarioDefinition.model_validate(spec)
        except ValidationError as exc:
            raise ProbeConfigError(
                "Invalid scenario definition",
                code="invalid_scenario",
                details={"errors": _errors(exc)},
            ) from exc


def load_run_config(
    path: Union[str, Path],
    *,
    overrides: Optional[Mapping[str, Any]] = None,
    settings: Optional[Settings] = None,
) -> RunConfig:
    """
    Load a JSON run configuration file.

    Args:
        path: JSON file containing a configuration object.
        overrides: Values replacing those from the file (None values ignored).
        settings: Environment defaults (defaults to get_settings()).
    """
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = json.load(handle)
    except OSError as exc:
        raise ProbeConfigError(
            f"Cannot read config file {path}: {exc}", code="config_unreadable"
        ) from exc
    except json.JSONDecodeError as exc:
        raise ProbeConfigError(
            f"Invalid JSON in {path}: {exc}", code="config_invalid_json"
        ) from exc
    if not isinstance(data, dict):
        raise ProbeConfigError("Config file must contain a JSON object.")
    for key, value in (overrides or {}).items():
        if value is not None:
            data[key] = value
    return RunConfig.from_mapping(data, settings=settings)
