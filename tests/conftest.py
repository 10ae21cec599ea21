"""Pytest configuration and shared fixtures."""

import sys
from pathlib import Path

import pytest

# Ensure the project root is in sys.path so `tests.targets` imports resolve
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from raceprobe.config import reset_settings  # noqa: E402
from tests.targets.mock_target import MockTargetServer, find_free_port  # noqa: E402


@pytest.fixture(autouse=True)
def _clean_settings(monkeypatch):
    """Isolate tests from RACEPROBE_* variables in the developer environment."""
    for name in ("RACEPROBE_TARGET", "RACEPROBE_TOKEN", "RACEPROBE_TIMEOUT", "RACEPROBE_GRACE"):
        monkeypatch.delenv(name, raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def target_server():
    """Factory fixture: start a MockTargetServer with the given options."""
    servers = []

    def start(**kwargs) -> MockTargetServer:
        server = MockTargetServer(find_free_port(), **kwargs)
        server.start()
        servers.append(server)
        return server

    yield start
    for server in servers:
        server.stop()
