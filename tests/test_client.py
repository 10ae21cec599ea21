"""Tests for VirtualClient using httpx.MockTransport."""

import json
import threading
import time

import httpx
import pytest

from raceprobe import checks
from raceprobe.builder import new_run_id
from raceprobe.client import VirtualClient
from raceprobe.collector import OutcomeCollector
from raceprobe.exceptions import CollectorClosed
from raceprobe.scenarios import withdrawal_scenario

FAR_FUTURE = float("inf")


def make_client(handler, *, scenario=None, max_iterations=None, params=None, stop_event=None):
    scenario = scenario or withdrawal_scenario("http://bank.test")
    run_id = new_run_id()
    collector = OutcomeCollector(run_id, scenario.name, vus=1, duration_seconds=1.0)
    client = VirtualClient(
        0,
        scenario,
        run_id=run_id,
        collector=collector,
        http=httpx.Client(transport=httpx.MockTransport(handler)),
        token="test-token",
        params=params,
        max_iterations=max_iterations,
        stop_event=stop_event,
    )
    return client, collector


class TestIterationLoop:
    def test_stops_at_max_iterations(self):
        client, collector = make_client(lambda r: httpx.Response(200, json={}), max_iterations=5)

        assert client.run(FAR_FUTURE) == 5
        report = collector.finalize()
        assert report.total == 5
        assert report.failed == 0

    def test_stops_at_deadline(self):
        def slow(request):
            time.sleep(0.01)
            return httpx.Response(200)

        client, collector = make_client(slow)
        start = time.monotonic()
        client.run(start + 0.1)
        elapsed = time.monotonic() - start

        assert elapsed >= 0.1
        assert elapsed < 1.0
        assert collector.finalize().total == client.iterations

    def test_past_deadline_issues_nothing(self):
        client, collector = make_client(lambda r: httpx.Response(200))
        assert client.run(time.monotonic() - 1) == 0
        assert collector.finalize().total == 0

    def test_stop_event(self):
        stop = threading.Event()
        stop.set()
        client, _ = make_client(lambda r: httpx.Response(200), stop_event=stop)
        assert client.run(FAR_FUTURE) == 0

    def test_each_iteration_has_fresh_id(self):
        seen = []

        def handler(request):
            seen.append(json.loads(request.content)["Withdrawal"]["id"])
            return httpx.Response(200)

        client, _ = make_client(handler, max_iterations=20)
        client.run(FAR_FUTURE)
        assert len(set(seen)) == 20

    def test_sends_auth_and_content_type(self):
        captured = {}

        def handler(request):
            captured["auth"] = request.headers["Authorization"]
            captured["ctype"] = request.headers["Content-Type"]
            captured["method"] = request.method
            captured["url"] = str(request.url)
            return httpx.Response(200)

        client, _ = make_client(handler, max_iterations=1)
        client.run(FAR_FUTURE)
        assert captured == {
            "auth": "Bearer test-token",
            "ctype": "application/json",
            "method": "POST",
            "url": "http://bank.test/v1/bank_account",
        }

    def test_params_factory(self):
        amounts = []

        def handler(request):
            amounts.append(json.loads(request.content)["Withdrawal"]["amount"]["amount"])
            return httpx.Response(200)

        client, _ = make_client(
            handler,
            max_iterations=3,
            params=lambda vu, iteration: {"amount": 10 * (iteration + 1)},
        )
        client.run(FAR_FUTURE)
        assert amounts == ["10", "20", "30"]


class TestFailures:
    def test_transport_error_does_not_stop_loop(self):
        calls = {"n": 0}

        def flaky(request):
            calls["n"] += 1
            if calls["n"] == 2:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200)

        client, collector = make_client(flaky, max_iterations=4)
        client.run(FAR_FUTURE)

        report = collector.finalize()
        assert report.total == 4
        assert report.transport_errors == 1
        assert report.failed == 1
        (detail,) = report.failures
        assert detail.iteration == 1
        assert "ConnectError" in detail.message

    def test_timeout_recorded(self):
        def timeout(request):
            raise httpx.ReadTimeout("timed out", request=request)

        client, collector = make_client(timeout, max_iterations=2)
        client.run(FAR_FUTURE)
        report = collector.finalize()
        assert report.transport_errors == 2
        assert report.status_distribution == {"error": 2}

    def test_undecodable_body_recorded(self):
        def broken_gzip(request):
            return httpx.Response(
                200, headers={"Content-Encoding": "gzip"}, content=b"not gzip"
            )

        client, collector = make_client(broken_gzip, max_iterations=3)
        assert client.run(FAR_FUTURE) == 3

        report = collector.finalize()
        assert report.total == 3
        assert report.failed == 3
        assert report.transport_errors == 3
        assert all("DecodingError" in f.message for f in report.failures)

    def test_non_json_body_with_json_check(self):
        scenario = withdrawal_scenario(
            "http://bank.test",
            checks=[checks.status_is(200), checks.json_field_equals("status", "ok")],
        )
        client, collector = make_client(
            lambda r: httpx.Response(200, text="<html>maintenance</html>"),
            scenario=scenario,
            max_iterations=2,
        )
        client.run(FAR_FUTURE)

        report = collector.finalize()
        assert report.failed == 2
        assert all("not JSON" in f.message for f in report.failures)

    def test_run_once_returns_outcome(self):
        client, _ = make_client(lambda r: httpx.Response(409, json={"error": "conflict"}))
        outcome = client.run_once()
        assert outcome.status_code == 409
        assert not outcome.passed
        assert outcome.iteration == 0
        assert client.iterations == 1

    def test_recording_after_finalize_propagates(self):
        client, collector = make_client(lambda r: httpx.Response(200))
        collector.finalize()
        with pytest.raises(CollectorClosed):
            client.run_once()
