"""Threaded mock of the bank-account command endpoint."""

from __future__ import annotations

import json
import socket
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable, Dict, List, Optional, Tuple

Responder = Callable[[Dict[str, Any]], Tuple[int, Any]]


def find_free_port() -> int:
    """Find a free port for the test server."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("", 0))
        s.listen(1)
        return s.getsockname()[1]


def always(status: int) -> Responder:
    def respond(_body: Dict[str, Any]) -> Tuple[int, Any]:
        return status, {"status": status}

    return respond


def command_id(body: Dict[str, Any]) -> str:
    """The `id` field of the single top-level command in the body."""
    (command,) = body.values()
    return command["id"]


def odd_even(odd_status: int = 200, even_status: int = 409) -> Responder:
    """Odd-numbered ids (UUID read as an integer) get odd_status, even ones even_status."""

    def respond(body: Dict[str, Any]) -> Tuple[int, Any]:
        number = int(command_id(body).replace("-", ""), 16)
        if number % 2:
            return odd_status, {"result": "applied"}
        return even_status, {"error": "conflict"}

    return respond


class MockTargetServer:
    """
    HTTP server answering POST /v1/bank_account.

    Records every request body and Authorization header, and tracks how
    many requests were being handled at the same time.
    """

    def __init__(
        self,
        port: int,
        responder: Optional[Responder] = None,
        response_delay: float = 0.0,
        raw_response: Optional[bytes] = None,
    ) -> None:
        self.port = port
        self.responder = responder or always(200)
        self.response_delay = response_delay
        self.raw_response = raw_response
        self.received: List[Dict[str, Any]] = []
        self.auth_headers: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.server: Optional[ThreadingHTTPServer] = None
        self.thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

        server_ref = self

        class Handler(BaseHTTPRequestHandler):
            def log_message(self, format, *args):
                pass  # Suppress logging

            def _send(self, status: int, payload: bytes) -> None:
                self.send_response(status)
                self.send_header("Content-Type", "application/json")
                self.send_header("Content-Length", str(len(payload)))
                self.end_headers()
                self.wfile.write(payload)

            def do_POST(self):
                if self.path != "/v1/bank_account":
                    self._send(404, b'{"error": "not found"}')
                    return

                length = int(self.headers.get("Content-Length", 0))
                body = json.loads(self.rfile.read(length) or b"{}")

                with server_ref._lock:
                    server_ref.received.append(body)
                    server_ref.auth_headers.append(self.headers.get("Authorization", ""))
                    server_ref.in_flight += 1
                    server_ref.max_in_flight = max(
                        server_ref.max_in_flight, server_ref.in_flight
                    )
                try:
                    if server_ref.response_delay > 0:
                        time.sleep(server_ref.response_delay)
                    if server_ref.raw_response is not None:
                        self._send(200, server_ref.raw_response)
                        return
                    status, payload = server_ref.responder(body)
                    self._send(status, json.dumps(payload).encode())
                finally:
                    with server_ref._lock:
                        server_ref.in_flight -= 1

        self.handler_class = Handler

    @property
    def base_url(self) -> str:
        return f"http://127.0.0.1:{self.port}"

    def received_ids(self) -> List[str]:
        with self._lock:
            return [command_id(body) for body in self.received]

    def start(self) -> None:
        """Start the mock server."""
        self.server = ThreadingHTTPServer(("127.0.0.1", self.port), self.handler_class)
        self.server.daemon_threads = True
        self.thread = threading.Thread(target=self.server.serve_forever)
        self.thread.daemon = True
        self.thread.start()
        time.sleep(0.05)

    def stop(self) -> None:
        """Stop the mock server."""
        if self.server:
            self.server.shutdown()
            self.server.server_close()
        if self.thread:
            self.thread.join(timeout=5.0)
