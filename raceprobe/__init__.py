"""
raceprobe: concurrent mutation probe for transactional HTTP endpoints.

Launches N virtual users that fire the same kind of mutation (each with a
unique id) at a service simultaneously, checks every response, and reports
whether the service handled the concurrent requests correctly.

Usage:
    from raceprobe import ConcurrencyScheduler, VirtualUserConfig, checks
    from raceprobe.scenarios import withdrawal_scenario

    scenario = withdrawal_scenario(
        "http://localhost:3030",
        amount="30",
        currency="TWD",
        checks=[checks.status_is(200)],
    )
    report = ConcurrencyScheduler(token=token).execute(
        VirtualUserConfig(vus=2, duration_seconds=1.0),
        scenario,
    )
    print(report.failed, report.exit_code)
"""

from raceprobe import checks
from raceprobe.api import run_probe
from raceprobe.builder import build_request, request_id_for, validate_scenario
from raceprobe.client import VirtualClient
from raceprobe.collector import OutcomeCollector, format_report
from raceprobe.config import RunConfig, load_run_config, parse_duration
from raceprobe.exceptions import (
    CollectorClosed,
    ProbeConfigError,
    RaceProbeError,
    SchedulerTimeout,
    TemplateError,
)
from raceprobe.models import (
    AggregateReport,
    AssertionResult,
    FailureDetail,
    Outcome,
    RequestInstance,
    VirtualUserConfig,
)
from raceprobe.scenario import IterationContext, ScenarioDefinition
from raceprobe.scheduler import ConcurrencyScheduler, execute

__version__ = "0.1.0"

__all__ = [
    "checks",
    "run_probe",
    "build_request",
    "request_id_for",
    "validate_scenario",
    "VirtualClient",
    "OutcomeCollector",
    "format_report",
    "RunConfig",
    "load_run_config",
    "parse_duration",
    "RaceProbeError",
    "ProbeConfigError",
    "TemplateError",
    "SchedulerTimeout",
    "CollectorClosed",
    "AggregateReport",
    "AssertionResult",
    "FailureDetail",
    "Outcome",
    "RequestInstance",
    "VirtualUserConfig",
    "IterationContext",
    "ScenarioDefinition",
    "ConcurrencyScheduler",
    "execute",
]
