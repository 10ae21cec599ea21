"""Tests for the raceprobe command line."""

import json

import pytest

from raceprobe.cli import main
from raceprobe.models import EXIT_CONFIG_ERROR, EXIT_FAILED, EXIT_OK
from tests.targets.mock_target import always


def write_config(tmp_path, **fields):
    data = {"vus": 2, "duration": "300ms", "token": "cli-token", "timeout": "2s", "grace": "1s"}
    data.update(fields)
    path = tmp_path / "probe.json"
    path.write_text(json.dumps(data))
    return str(path)


@pytest.fixture(autouse=True)
def _no_dotenv(monkeypatch):
    monkeypatch.setattr("raceprobe.cli.load_dotenv", lambda: False)


def test_passing_run_exits_zero(tmp_path, target_server, capsys):
    server = target_server(responder=always(200))
    path = write_config(tmp_path, target=server.base_url)

    assert main(["run", path]) == EXIT_OK
    out = capsys.readouterr().out
    assert "[PASSED]" in out


def test_failing_run_exits_one(tmp_path, target_server, capsys):
    server = target_server(responder=always(409))
    path = write_config(tmp_path, target=server.base_url)

    assert main(["run", path]) == EXIT_FAILED
    assert "[FAILED]" in capsys.readouterr().out


def test_json_output(tmp_path, target_server, capsys):
    server = target_server(responder=always(200))
    path = write_config(tmp_path, target=server.base_url)

    assert main(["run", path, "--json", "--vus", "3"]) == EXIT_OK
    data = json.loads(capsys.readouterr().out)
    assert data["type"] == "raceprobe.report.v1"
    assert data["vus"] == 3
    assert data["failed"] == 0
    assert "cli-token" not in json.dumps(data)


def test_target_override(tmp_path, target_server, capsys):
    server = target_server(responder=always(200))
    path = write_config(tmp_path, target="http://127.0.0.1:1")

    assert main(["run", path, "--target", server.base_url, "--max-iterations", "2"]) == EXIT_OK
    assert len(server.received) == 4


def test_config_error_exits_three(tmp_path, capsys):
    path = write_config(tmp_path)  # no target, none in env

    assert main(["run", path]) == EXIT_CONFIG_ERROR
    err = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
    assert err["error"] == "missing_target"


def test_template_error_exits_three(tmp_path, target_server, capsys):
    server = target_server(responder=always(200))
    path = write_config(tmp_path, target=server.base_url, token=None)

    assert main(["run", path]) == EXIT_CONFIG_ERROR
    assert server.received == []
    err = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
    assert err["error"] == "TemplateError"


def test_bad_check_value_exits_three(tmp_path, target_server, capsys):
    server = target_server(responder=always(200))
    path = write_config(
        tmp_path,
        target=server.base_url,
        scenario={"operation": "Withdrawal", "checks": [{"status": "ok"}]},
    )

    assert main(["run", path]) == EXIT_CONFIG_ERROR
    assert server.received == []
    err = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
    assert err["error"] == "invalid_check"


def test_bad_environment_duration_exits_three(tmp_path, monkeypatch, capsys):
    monkeypatch.setenv("RACEPROBE_TIMEOUT", "ten seconds")
    path = write_config(tmp_path, target="http://127.0.0.1:1")

    assert main(["run", path]) == EXIT_CONFIG_ERROR
    err = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
    assert err["error"] == "invalid_environment"
    assert err["details"]["variable"] == "RACEPROBE_TIMEOUT"
