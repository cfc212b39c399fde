"""Pytest configuration and fixtures for ec2-query tests.

This file provides:
- FakeEC2: In-memory httpx transport that records requests and replays canned responses
- PortReservation: Race-free port allocation for the mock EC2 server
- MockServer: Subprocess management for tests/integration/mock_server.py
- Fixtures: Shared credentials, region, clock and clients
"""

from __future__ import annotations

import socket
import subprocess
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Generator
from urllib.parse import parse_qsl

import httpx
import pytest

from ec2_query.client import EC2
from ec2_query.models import Credentials, Region

# Project root for subprocess cwd
PROJECT_ROOT = Path(__file__).parent.parent
MOCK_SERVER_MODULE = "tests.integration.mock_server"

TEST_ACCESS_KEY = "AKIDEXAMPLE"
TEST_SECRET_KEY = "wJalrXUtnFEMI/K7MDENG+bPxRfiCYEXAMPLEKEY"
TEST_ENDPOINT = "https://ec2.test.example.com"
FIXED_TIME = datetime(2013, 2, 1, 12, 30, 45, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return FIXED_TIME


class FakeEC2:
    """Records every request and answers from a queue of canned responses.

    When the queue is empty the last queued response is repeated, so a test
    that only cares about the request can queue one generic success body.

    Usage:
        fake = FakeEC2()
        fake.respond(200, DESCRIBE_IMAGES_XML)
        ec2 = EC2(credentials, region, http_client=fake.client)
        ec2.describe_images()
        assert fake.params["Action"] == "DescribeImages"
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._responses: list[tuple[int, bytes]] = []
        self._last: tuple[int, bytes] = (200, b"<Response/>")
        self._error: Exception | None = None
        self.client = httpx.Client(transport=httpx.MockTransport(self._handle))

    def respond(self, status_code: int, body: bytes | str) -> None:
        if isinstance(body, str):
            body = body.encode("utf-8")
        self._responses.append((status_code, body))

    def fail_with(self, error: Exception) -> None:
        """Raise *error* from the transport on the next request."""
        self._error = error

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self._error is not None:
            error, self._error = self._error, None
            raise error
        if self._responses:
            self._last = self._responses.pop(0)
        status_code, body = self._last
        return httpx.Response(status_code, content=body, headers={"Content-Type": "text/xml"})

    @property
    def params(self) -> dict[str, str]:
        """Query parameters of the most recent request."""
        return request_params(self.requests[-1])

    def close(self) -> None:
        self.client.close()


def request_params(request: httpx.Request) -> dict[str, str]:
    """Decode a request's query string into a plain dict."""
    pairs = parse_qsl(request.url.query.decode("ascii"), keep_blank_values=True)
    return dict(pairs)


class PortReservation:
    """Holds a reserved port with socket kept open to prevent races.

    Usage:
        reservation = PortReservation()
        # port is held exclusively until release()
        server = MockServer(reservation)
        server.start()  # calls release() internally, then binds
    """

    def __init__(self) -> None:
        self._socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._socket.bind(("127.0.0.1", 0))  # Port 0 = OS assigns ephemeral port
        self._port = self._socket.getsockname()[1]
        self._released = False

    @property
    def port(self) -> int:
        return self._port

    def release(self) -> int:
        """Release the socket and return the port for server use.

        Safe to call multiple times - subsequent calls are no-ops.
        """
        if not self._released:
            self._socket.close()
            self._released = True
        return self._port

    def __enter__(self) -> PortReservation:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.release()


def wait_for_server_ready(host: str, port: int, timeout: float = 10.0) -> bool:
    """Block until server accepts TCP connections, or timeout expires."""
    start = time.time()
    while time.time() - start < timeout:
        try:
            with socket.create_connection((host, port), timeout=1.0):
                return True
        except (ConnectionRefusedError, socket.timeout, OSError):
            time.sleep(0.1)
    return False


class MockServer:
    """Manages the mock EC2 server subprocess for integration tests.

    The server checks every request's SigV2 signature against the keys it
    was started with and answers with canned EC2 XML.
    """

    def __init__(
        self,
        port: int | PortReservation,
        access_key: str = TEST_ACCESS_KEY,
        secret_key: str = TEST_SECRET_KEY,
    ) -> None:
        if isinstance(port, PortReservation):
            self._reservation = port
            self.port = port.port
        else:
            self._reservation = None
            self.port = port
        self.access_key = access_key
        self.secret_key = secret_key
        self.host = "127.0.0.1"
        self.base_url = f"http://{self.host}:{self.port}"
        self._process: subprocess.Popen | None = None

    def start(self) -> None:
        """Start the mock server subprocess.

        Raises:
            RuntimeError: If server fails to start within 10 seconds.
        """
        if self._reservation:
            self._reservation.release()

        self._process = subprocess.Popen(
            [
                sys.executable, "-m", MOCK_SERVER_MODULE,
                "--host", self.host,
                "--port", str(self.port),
                "--access-key", self.access_key,
                "--secret-key", self.secret_key,
            ],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=PROJECT_ROOT,
        )

        if not wait_for_server_ready(self.host, self.port):
            stderr = ""
            if self._process and self._process.stderr:
                stderr = self._process.stderr.read().decode(errors="replace")
            self.stop()
            raise RuntimeError(
                f"MockServer failed to start on port {self.port}. "
                f"stderr: {stderr or '(empty)'}"
            )

    def stop(self) -> None:
        """Stop the mock server subprocess with graceful shutdown.

        Uses SIGTERM first, then SIGKILL after 5s if process doesn't exit.
        Safe to call multiple times or if server was never started.
        """
        if self._process:
            self._process.terminate()
            try:
                self._process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                self._process.kill()
                self._process.wait(timeout=5)
            self._process = None

    def __enter__(self) -> MockServer:
        self.start()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.stop()


# =============================================================================
# Pytest Fixtures
# =============================================================================


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(access_key=TEST_ACCESS_KEY, secret_key=TEST_SECRET_KEY)


@pytest.fixture
def region() -> Region:
    return Region(name="test-1", ec2_endpoint=TEST_ENDPOINT)


@pytest.fixture
def fake_ec2() -> Generator[FakeEC2, None, None]:
    fake = FakeEC2()
    yield fake
    fake.close()


@pytest.fixture
def ec2(credentials: Credentials, region: Region, fake_ec2: FakeEC2) -> EC2:
    """EC2 client wired to fake_ec2 with a fixed clock."""
    return EC2(credentials, region, http_client=fake_ec2.client, clock=fixed_clock)


@pytest.fixture(scope="session")
def mock_ec2_server() -> Generator[MockServer, None, None]:
    """Start the mock EC2 server once per test session.

    Example:
        def test_describe(mock_ec2_server):
            region = Region(name="mock", ec2_endpoint=mock_ec2_server.base_url)
    """
    with MockServer(PortReservation()) as server:
        yield server


# =============================================================================
# Pytest Hooks
# =============================================================================


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    """Automatically apply markers based on test location.

    Enables running subsets via:
        pytest -m integration  # only integration tests
        pytest -m unit         # only unit tests
    """
    for item in items:
        test_path = Path(item.fspath)
        if "integration" in test_path.parts:
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)
