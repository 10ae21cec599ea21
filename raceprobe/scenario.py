"""
Scenario and iteration-context definitions.
"""

from __future__ import annotations

from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field, field_validator

_METHODS = {"GET", "POST", "PUT", "PATCH", "DELETE"}


class ScenarioDefinition(BaseModel):
    """
    One mutation to issue repeatedly, with the checks every response must pass.

    Header values and every string leaf of `body` are templates using
    `${name}` placeholders. Bindings come from `variables`, per-iteration
    params, and the built-ins `request_id`, `run_id`, `vu`, `iteration`
    and `token`.

    Attributes:
        name: Human-readable scenario name.
        target: Absolute URL the request is sent to.
        method: HTTP method.
        headers: Header templates.
        body: JSON-compatible body template (None for no body).
        variables: Static bindings shared by all iterations.
        checks: Checks evaluated against every response, in order.
    """

    model_config = ConfigDict(extra="forbid", frozen=True, arbitrary_types_allowed=True)

    name: str = "scenario"
    target: str
    method: str = "POST"
    headers: Dict[str, str] = Field(
        default_factory=lambda: {"Content-Type": "application/json"}
    )
    body: Any = None
    variables: Dict[str, str] = Field(default_factory=dict)
    checks: List[Any] = Field(default_factory=list)

    @field_validator("target")
    @classmethod
    def _absolute_url(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError("target must be an absolute http(s) URL")
        if "${" in value:
            raise ValueError("target must not contain placeholders")
        return value

    @field_validator("method")
    @classmethod
    def _known_method(cls, value: str) -> str:
        method = value.upper()
        if method not in _METHODS:
            raise ValueError(f"unsupported method {value!r}")
        return method

    @field_validator("variables", mode="before")
    @classmethod
    def _stringify_variables(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {str(k): str(v) for k, v in value.items()}
        return value


class IterationContext(BaseModel):
    """
    Everything that varies between two requests of a run.

    Attributes:
        run_id: Identifier of the run (namespace for request ids).
        vu: Index of the virtual user issuing the request.
        iteration: Per-user iteration counter, starting at 0.
        request_id: Unique id for this request.
        params: Extra per-iteration bindings.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    run_id: str
    vu: int = Field(..., ge=0)
    iteration: int = Field(..., ge=0)
    request_id: str
    params: Dict[str, str] = Field(default_factory=dict)
