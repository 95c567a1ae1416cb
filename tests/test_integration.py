"""
Integration tests for the gate and orchestrator.

Runs a real uvicorn server in a background thread and talks to it over
HTTP.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
import requests

from localsecret.config import bind_socket, build_share_url
from localsecret.orchestrator import ShutdownReason, ShutdownState
from localsecret.responders import FileResponder
from localsecret.server import LocalSecretServer


SECRET_PATH = "/k3Vn8QwErTy5UiOp2AsDfGhJkL9ZxCvBnM4qWeRtYu/test_file.txt"


class RunningServer:
    """A gate served from a background thread."""

    def __init__(self, server: LocalSecretServer):
        self.server = server
        self.sock = bind_socket("127.0.0.1", 0)
        self.port = self.sock.getsockname()[1]
        self.url = build_share_url("127.0.0.1", self.port, SECRET_PATH)
        self.base_url = f"http://127.0.0.1:{self.port}"
        self.result = None
        self.thread = threading.Thread(target=self._run, daemon=True)

    def _run(self):
        self.result = self.server.serve([self.sock])

    def start(self):
        # The socket is already listening, early requests wait in its backlog
        self.thread.start()
        return self

    def join(self, timeout=10):
        self.thread.join(timeout)
        return not self.thread.is_alive()


@pytest.fixture
def secret_file(tmp_path):
    path = tmp_path / "test_file.txt"
    path.write_text("secret: 42\n")
    return path


@pytest.fixture
def start_server(secret_file):
    """Start gates on free ports; make sure they are stopped afterwards."""
    running = []

    def factory(**options):
        options.setdefault("log_level", "ERROR")
        options.setdefault("grace_period", 1.0)
        server = LocalSecretServer(FileResponder(secret_file, SECRET_PATH), **options)
        instance = RunningServer(server)
        running.append(instance)
        return instance

    yield factory

    for instance in running:
        instance.server.orchestrator.request_shutdown(ShutdownReason.INTERRUPTED)
        if instance.thread.is_alive():
            instance.join()
        else:
            instance.sock.close()


class TestLifecycle:
    """Test full service lifetimes."""

    def test_single_use_then_gone(self, start_server):
        """The URL works once and the server disappears afterwards"""
        running = start_server(maximum_uses=1)
        running.start()

        response = requests.get(running.url, timeout=5)
        assert response.status_code == 200
        assert response.text == "secret: 42\n"

        assert running.join()
        assert running.result is ShutdownReason.CONSUMED
        assert running.server.orchestrator.state is ShutdownState.TERMINATED

        with pytest.raises(requests.exceptions.ConnectionError):
            requests.get(running.url, timeout=5)

    def test_abuse_stops_before_fourth_request(self, start_server):
        """Three misses end the service before a fourth can be answered"""
        running = start_server(maximum_failed_attempts=3)
        running.start()

        for _ in range(3):
            assert requests.get(f"{running.base_url}/favicon.ico", timeout=5).status_code == 404

        assert running.join()
        assert running.result is ShutdownReason.ABUSE

        with pytest.raises(requests.exceptions.ConnectionError):
            requests.get(f"{running.base_url}/favicon.ico", timeout=5)

    def test_interrupt_while_running(self, start_server):
        """An external interrupt ends the service with that reason"""
        running = start_server(maximum_uses=2)
        running.start()

        assert requests.get(running.url, timeout=5).status_code == 200
        running.server.orchestrator.request_shutdown(ShutdownReason.INTERRUPTED)

        assert running.join()
        assert running.result is ShutdownReason.INTERRUPTED
        assert running.server.session.uses.count == 1

    def test_in_flight_download_finishes_after_abuse_shutdown(self, tmp_path):
        """A download already running completes even though the service is stopping"""
        payload = bytes(range(256)) * (8 * 4096)  # 8 MiB
        large_file = tmp_path / "large.bin"
        large_file.write_bytes(payload)
        server = LocalSecretServer(
            FileResponder(large_file, SECRET_PATH),
            maximum_uses=2,
            maximum_failed_attempts=1,
            grace_period=5.0,
            log_level="ERROR"
        )
        running = RunningServer(server).start()

        try:
            with requests.get(running.url, stream=True, timeout=10) as response:
                assert response.status_code == 200
                chunks = response.iter_content(chunk_size=64 * 1024)
                received = bytearray(next(chunks))

                miss = requests.get(f"{running.base_url}/favicon.ico", timeout=5)
                assert miss.status_code == 404
                assert server.orchestrator.wait(timeout=5) is True
                assert server.orchestrator.reason is ShutdownReason.ABUSE

                for chunk in chunks:
                    received.extend(chunk)

            assert len(received) == len(payload)
            assert bytes(received) == payload
            assert running.join()
            assert running.result is ShutdownReason.ABUSE
        finally:
            server.orchestrator.request_shutdown(ShutdownReason.INTERRUPTED)
            running.join()

    def test_concurrent_requests_over_the_wire(self, start_server):
        """Five uses, many racing clients: exactly five get the secret"""
        running = start_server(maximum_uses=5, maximum_failed_attempts=1000)
        running.start()
        contenders = 12
        barrier = threading.Barrier(contenders)

        def fetch(_):
            barrier.wait()
            try:
                return requests.get(running.url, timeout=5).status_code
            except requests.exceptions.ConnectionError:
                # The server may already be gone for the slowest clients
                return None

        with ThreadPoolExecutor(max_workers=contenders) as pool:
            statuses = list(pool.map(fetch, range(contenders)))

        assert statuses.count(200) == 5
        assert running.join()
        assert running.result is ShutdownReason.CONSUMED
        assert running.server.session.uses.count == 5
