"""Async Socket Client - connect stages, ordering and exactly-once close against a real server."""

import socket
import threading
import time

import pytest

from spoolsync.core.errors import SocketConnectError
from spoolsync.infrastructure.socket_client import (
    WORKER_THREAD_NAME,
    AsyncSocketClient,
    ConnectStage,
)
from tests.push_server import PushTestServer, wait_until


@pytest.fixture
def server():
    push_server = PushTestServer().start()
    yield push_server
    push_server.stop()


@pytest.fixture
def client():
    socket_client = AsyncSocketClient(connect_timeout_seconds=2.0)
    yield socket_client
    socket_client.shutdown()


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class _HttpOnlyServer:
    """Accepts one TCP connection and answers the upgrade with a plain 404."""

    def __init__(self):
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._sock.bind(("127.0.0.1", 0))
        self._sock.listen(1)
        self.port = self._sock.getsockname()[1]
        threading.Thread(target=self._serve, daemon=True).start()

    def _serve(self):
        conn, _ = self._sock.accept()
        with conn:
            conn.recv(4096)
            conn.sendall(b"HTTP/1.1 404 Not Found\r\nContent-Length: 0\r\nConnection: close\r\n\r\n")
        self._sock.close()


# ─── Connect ─────────────────────────────────────────────────────


def test_async_connect_reports_success_on_the_worker_thread(server, client):
    outcomes = []
    client.on_connect = lambda failure: outcomes.append((failure, threading.current_thread().name))

    client.async_connect("127.0.0.1", server.port, "/api/v1/").result(5)

    assert outcomes == [(None, WORKER_THREAD_NAME)]
    assert client.is_connected
    assert not client.ready_to_connect
    assert wait_until(lambda: server.paths == ["/api/v1/"])


def test_connect_while_connected_is_a_no_op(server, client):
    client.connect("127.0.0.1", server.port)
    calls = []
    client.on_connect = calls.append

    future = client.async_connect("127.0.0.1", server.port)

    assert future.done() and future.result() is None
    assert calls == []
    assert len(server.connections) == 1


def test_refused_port_fails_at_connect_stage(client):
    failures = []
    client.on_connect = failures.append

    client.async_connect("127.0.0.1", _free_port()).result(5)

    assert failures[0].stage is ConnectStage.CONNECT
    assert client.ready_to_connect


def test_unresolvable_host_fails_at_resolve_stage(client):
    with pytest.raises(SocketConnectError) as exc_info:
        client.connect("no-such-host.invalid", 80)

    assert exc_info.value.stage == "resolve"
    assert exc_info.value.code == "SOCKET_CONNECT_FAILED"


def test_rejected_upgrade_fails_at_handshake_stage(client):
    http_only = _HttpOnlyServer()
    failures = []
    client.on_connect = failures.append

    client.async_connect("127.0.0.1", http_only.port).result(5)

    assert failures[0].stage is ConnectStage.HANDSHAKE


def test_blocking_connect_from_worker_thread_is_refused(server, client):
    errors = []

    def attempt():
        try:
            client.connect("127.0.0.1", server.port)
        except RuntimeError as e:
            errors.append(e)

    client.call_later(0, attempt).result(5)

    assert len(errors) == 1


# ─── Send / receive ──────────────────────────────────────────────


def test_sends_arrive_in_submission_order(server, client):
    sent = []
    client.on_send = lambda error, n: sent.append((error, n))
    client.connect("127.0.0.1", server.port)

    for message in ("one", "two", "three"):
        client.async_send(message)

    assert wait_until(lambda: server.received == ["one", "two", "three"])
    assert sent == [(None, 3), (None, 3), (None, 5)]


def test_pending_receives_complete_in_order(server, client):
    received = []
    client.on_receive = lambda message, error, n: received.append(message)
    client.connect("127.0.0.1", server.port)

    futures = [client.async_receive() for _ in range(3)]
    # let the receives queue up before anything is sent
    time.sleep(0.05)
    for message in ("a", "b", "c"):
        server.send(message)

    for future in futures:
        future.result(5)
    assert received == ["a", "b", "c"]


def test_raising_callback_does_not_stop_the_worker(server, client):
    def explode(error, n):
        raise ValueError("callback bug")

    client.on_send = explode
    client.connect("127.0.0.1", server.port)

    client.async_send("first").result(5)
    client.async_send("second").result(5)

    assert wait_until(lambda: server.received == ["first", "second"])


# ─── Close ───────────────────────────────────────────────────────


def test_client_close_fires_once_as_client_initiated(server, client):
    closes = []
    client.on_close = lambda reason, client_initiated: closes.append(client_initiated)
    client.connect("127.0.0.1", server.port)

    client.async_close().result(5)
    time.sleep(0.1)

    assert closes == [True]
    assert client.ready_to_connect


def test_server_close_fires_once_with_operations_in_flight(server, client):
    closes, sends, receives = [], [], []
    client.on_close = lambda reason, client_initiated: closes.append((reason, client_initiated))
    client.on_send = lambda error, n: sends.append(error)
    client.on_receive = lambda message, error, n: receives.append(message)
    client.connect("127.0.0.1", server.port)

    pending_receive = client.async_receive()
    server.close_all()
    pending_send = client.async_send("late")

    pending_receive.result(5)
    pending_send.result(5)
    assert wait_until(lambda: len(closes) == 1)
    time.sleep(0.1)

    assert len(closes) == 1
    assert closes[0][1] is False
    assert receives == []


def test_server_close_without_pending_operations_is_noticed(server, client):
    closes = []
    client.on_close = lambda reason, client_initiated: closes.append((reason, client_initiated))
    client.connect("127.0.0.1", server.port)

    server.close_all(code=1001, reason="bye")

    assert wait_until(lambda: len(closes) == 1)
    reason, client_initiated = closes[0]
    assert client_initiated is False
    assert reason.code == 1001
    assert reason.reason == "bye"


def test_reconnect_after_close(server, client):
    client.connect("127.0.0.1", server.port)
    client.async_close().result(5)

    client.connect("127.0.0.1", server.port)
    client.async_send("again").result(5)

    assert len(server.connections) == 2
    assert wait_until(lambda: server.received == ["again"])


# ─── Teardown ────────────────────────────────────────────────────


def test_shutdown_is_silent_and_idempotent(server):
    closes = []
    socket_client = AsyncSocketClient(connect_timeout_seconds=2.0)
    socket_client.on_close = lambda reason, client_initiated: closes.append(reason)
    socket_client.connect("127.0.0.1", server.port)

    socket_client.shutdown()
    socket_client.shutdown()

    assert closes == []
    with pytest.raises(RuntimeError):
        socket_client.async_send("after shutdown")


def test_call_later_can_be_cancelled(client):
    ran = []
    future = client.call_later(0.5, lambda: ran.append(True))

    assert future.cancel() or future.done()
    time.sleep(0.6)

    assert ran == []
