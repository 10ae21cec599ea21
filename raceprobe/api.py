"""
Top-level entry point: run a probe from a RunConfig.
"""

from __future__ import annotations

from typing import Optional

import httpx

from raceprobe.client import ParamsFactory
from raceprobe.config import RunConfig
from raceprobe.models import AggregateReport
from raceprobe.scheduler import ConcurrencyScheduler


def run_probe(
    config: RunConfig,
    *,
    transport: Optional[httpx.BaseTransport] = None,
    params: Optional[ParamsFactory] = None,
) -> AggregateReport:
    """
    Build the scenario from `config` and execute it.

    The token is handed to the scheduler as a read-only credential; it is
    bound only where a template asks for `${token}`.

    Raises:
        ProbeConfigError: Invalid scenario mapping.
        TemplateError: Scenario templates cannot be resolved.
        SchedulerTimeout: A client hung past the grace period.
    """
    scenario = config.build_scenario()
    scheduler = ConcurrencyScheduler(
        token=config.token,
        transport=transport,
        params=params,
    )
    return scheduler.execute(config.vu_config(), scenario)
