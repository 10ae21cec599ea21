"""
Request builder: materialize a ScenarioDefinition into a RequestInstance.

Pure functions. Request ids are UUIDv5 values derived from the run id and
(vu, iteration), so they are reproducible from the context and distinct
for every request issued within one run.
"""

from __future__ import annotations

import json
import uuid
from string import Template
from typing import Any, Dict, Mapping, Optional

from raceprobe.exceptions import TemplateError
from raceprobe.models import RequestInstance
from raceprobe.scenario import IterationContext, ScenarioDefinition


def new_run_id() -> str:
    return str(uuid.uuid4())


def request_id_for(run_id: str, vu: int, iteration: int) -> str:
    """Derive the unique request id for (vu, iteration) within a run."""
    try:
        namespace = uuid.UUID(run_id)
    except ValueError:
        namespace = uuid.uuid5(uuid.NAMESPACE_URL, run_id)
    return str(uuid.uuid5(namespace, f"{vu}:{iteration}"))


def new_context(
    run_id: str,
    vu: int,
    iteration: int,
    params: Optional[Mapping[str, Any]] = None,
) -> IterationContext:
    return IterationContext(
        run_id=run_id,
        vu=vu,
        iteration=iteration,
        request_id=request_id_for(run_id, vu, iteration),
        params={str(k): str(v) for k, v in (params or {}).items()},
    )


def _bindings(
    scenario: ScenarioDefinition,
    context: IterationContext,
    token: Optional[str],
) -> Dict[str, str]:
    bindings: Dict[str, str] = dict(scenario.variables)
    bindings.update(context.params)
    bindings.update(
        request_id=context.request_id,
        run_id=context.run_id,
        vu=str(context.vu),
        iteration=str(context.iteration),
    )
    if token is not None:
        bindings["token"] = token
    return bindings


def _render(template: str, bindings: Mapping[str, str], location: str) -> str:
    try:
        return Template(template).substitute(bindings)
    except KeyError as exc:
        name = exc.args[0] if exc.args else None
        raise TemplateError(
            f"No binding for placeholder ${{{name}}} in {location}",
            placeholder=name,
            location=location,
        ) from exc
    except ValueError as exc:
        raise TemplateError(
            f"Malformed placeholder in {location}: {exc}",
            location=location,
        ) from exc


def _render_tree(node: Any, bindings: Mapping[str, str], location: str) -> Any:
    if isinstance(node, str):
        return _render(node, bindings, location)
    if isinstance(node, Mapping):
        rendered = {}
        for key, value in node.items():
            new_key = _render(str(key), bindings, f"{location} key {key!r}")
            rendered[new_key] = _render_tree(value, bindings, f"{location}.{key}")
        return rendered
    if isinstance(node, (list, tuple)):
        return [
            _render_tree(item, bindings, f"{location}[{index}]")
            for index, item in enumerate(node)
        ]
    return node


def build_request(
    scenario: ScenarioDefinition,
    context: IterationContext,
    *,
    token: Optional[str] = None,
) -> RequestInstance:
    """
    Resolve every placeholder of the scenario against the context.

    Raises:
        TemplateError: A placeholder has no binding or is malformed.
    """
    bindings = _bindings(scenario, context, token)
    headers = {
        name: _render(value, bindings, f"header {name!r}")
        for name, value in scenario.headers.items()
    }
    body: Optional[str] = None
    if scenario.body is not None:
        body = json.dumps(_render_tree(scenario.body, bindings, "body"))

    return RequestInstance(
        request_id=context.request_id,
        vu=context.vu,
        iteration=context.iteration,
        method=scenario.method,
        url=scenario.target,
        headers=headers,
        body=body,
    )


def validate_scenario(
    scenario: ScenarioDefinition,
    *,
    token: Optional[str] = None,
    params: Optional[Mapping[str, Any]] = None,
) -> RequestInstance:
    """Dry-build one request so template errors surface before any traffic."""
    context = new_context(new_run_id(), vu=0, iteration=0, params=params)
    return build_request(scenario, context, token=token)
