"""Async Socket Client - persistent websocket connection owned by a dedicated worker thread.

Invariants:
    - All connection I/O and every callback run on the worker thread's event loop
    - Sends complete in submission order, receives complete in submission order
    - The close callback fires exactly once per disconnect: every completion first checks
      whether the connection is still open and, if not, reports the close through a
      one-shot gate instead of invoking its own callback
    - async_close() marks the close client-initiated before the close handshake starts
    - A fault escaping the event loop restarts it; the worker only exits on shutdown()
    - No retry here: reconnect policy belongs to the owner

Design Decisions:
    - Coroutines submitted with run_coroutine_threadsafe: callers get a
      concurrent.futures.Future and never touch the connection directly
    - Resolve and TCP connect are done by hand so each connect stage fails with its own
      ConnectStage; the websocket handshake then runs on the connected socket
"""

import asyncio
import logging
import socket
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI
from websockets.protocol import State

from spoolsync.core.errors import SocketConnectError

logger = logging.getLogger(__name__)

WORKER_THREAD_NAME = "Async Socket Client"


class ConnectStage(str, Enum):
    RESOLVE = "resolve"
    CONNECT = "connect"
    HANDSHAKE = "handshake"


@dataclass(frozen=True)
class ConnectFailure:
    stage: ConnectStage
    message: str


@dataclass(frozen=True)
class CloseReason:
    code: int | None = None
    reason: str = ""


OnConnect = Callable[[ConnectFailure | None], None]
OnSend = Callable[[Exception | None, int], None]
OnReceive = Callable[[str, Exception | None, int], None]
OnClose = Callable[[CloseReason, bool], None]


class _ConnectFailed(Exception):
    def __init__(self, failure: ConnectFailure):
        super().__init__(failure.message)
        self.failure = failure


def _uri_host(host: str) -> str:
    return f"[{host}]" if ":" in host else host


class AsyncSocketClient:
    """Duplex text-frame connection with fire-and-forget operations and callbacks."""

    def __init__(self, connect_timeout_seconds: float = 5.0):
        self.connect_timeout_seconds = connect_timeout_seconds

        self.on_connect: OnConnect | None = None
        self.on_send: OnSend | None = None
        self.on_receive: OnReceive | None = None
        self.on_close: OnClose | None = None

        self._ws: ClientConnection | None = None
        self._connecting = False
        self._client_requested_close = False
        # False while a connection is up; set once its disconnect has been reported
        self._disconnect_handled = True
        self._state_lock = threading.Lock()
        self._send_lock = asyncio.Lock()
        self._receive_lock = asyncio.Lock()

        self._stopping = False
        self._loop = asyncio.new_event_loop()
        self._loop.set_exception_handler(self._log_loop_exception)
        self._thread = threading.Thread(
            target=self._run, name=WORKER_THREAD_NAME, daemon=True,
        )
        self._thread.start()

    # ─── Worker ──────────────────────────────────────────────────

    def _run(self) -> None:
        asyncio.set_event_loop(self._loop)
        while not self._stopping:
            try:
                self._loop.run_forever()
            except Exception:
                logger.exception("Socket worker loop raised, restarting it")

    def _log_loop_exception(self, loop: asyncio.AbstractEventLoop, context: dict) -> None:
        logger.error(
            f"Socket worker error: {context.get('message')}",
            exc_info=context.get("exception"),
        )

    def _submit(self, coro) -> Future:
        if self._stopping:
            coro.close()
            raise RuntimeError("Socket client has been shut down")
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        future.add_done_callback(self._log_future_failure)
        return future

    @staticmethod
    def _log_future_failure(future: Future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None and not isinstance(error, _ConnectFailed):
            logger.error(f"Socket operation failed: {error}", exc_info=error)

    @staticmethod
    def _completed(value=None) -> Future:
        future: Future = Future()
        future.set_result(value)
        return future

    def _fire(self, callback: Callable | None, *args) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception(f"Socket callback {getattr(callback, '__name__', callback)} raised")

    def _on_worker_thread(self) -> bool:
        return threading.current_thread() is self._thread

    # ─── State ───────────────────────────────────────────────────

    @property
    def is_connected(self) -> bool:
        ws = self._ws
        return ws is not None and ws.protocol.state is State.OPEN

    @property
    def is_connecting(self) -> bool:
        return self._connecting

    @property
    def ready_to_connect(self) -> bool:
        return not self._connecting and not self.is_connected

    # ─── Connect ─────────────────────────────────────────────────

    def async_connect(self, host: str, port: int, path: str = "/", secure: bool = False) -> Future:
        """Start resolve -> connect -> handshake; on_connect reports the outcome.

        No-op (already completed future) while connected or connecting.
        """
        with self._state_lock:
            if not self.ready_to_connect:
                return self._completed(None)
            self._connecting = True
        return self._submit(self._connect_and_report(host, port, path, secure, notify=True))

    def connect(self, host: str, port: int, path: str = "/", secure: bool = False) -> None:
        """Blocking connect. Raises SocketConnectError naming the failed stage."""
        if self._on_worker_thread():
            raise RuntimeError("connect() would deadlock on the socket worker thread")
        with self._state_lock:
            if not self.ready_to_connect:
                return
            self._connecting = True
        future = self._submit(self._connect_and_report(host, port, path, secure, notify=False))
        failure = future.result()
        if failure is not None:
            raise SocketConnectError(failure.stage.value, failure.message)

    async def _connect_and_report(
        self, host: str, port: int, path: str, secure: bool, notify: bool,
    ) -> ConnectFailure | None:
        try:
            ws = await self._open(host.rstrip("/"), port, path, secure)
        except _ConnectFailed as e:
            self._connecting = False
            logger.warning(
                f"Socket connect to {host}:{port}{path} failed at {e.failure.stage.value}: "
                f"{e.failure.message}",
                extra={"stage": e.failure.stage.value, "endpoint": f"{host}:{port}{path}"},
            )
            if notify:
                self._fire(self.on_connect, e.failure)
            return e.failure

        self._ws = ws
        self._client_requested_close = False
        self._disconnect_handled = False
        self._connecting = False
        asyncio.get_running_loop().create_task(self._watch_close(ws))
        logger.info(f"Socket connected to {host}:{port}{path}")
        if notify:
            self._fire(self.on_connect, None)
        return None

    async def _open(self, host: str, port: int, path: str, secure: bool) -> ClientConnection:
        loop = asyncio.get_running_loop()
        timeout = self.connect_timeout_seconds
        resolve_host = host.strip("[]")

        try:
            addresses = await asyncio.wait_for(
                loop.getaddrinfo(resolve_host, port, type=socket.SOCK_STREAM), timeout,
            )
        except (OSError, TimeoutError) as e:
            raise _ConnectFailed(ConnectFailure(ConnectStage.RESOLVE, str(e) or type(e).__name__))
        if not addresses:
            raise _ConnectFailed(ConnectFailure(ConnectStage.RESOLVE, f"No addresses for {host}"))

        sock = None
        last_error: Exception | None = None
        for family, sock_type, proto, _, address in addresses:
            candidate = socket.socket(family, sock_type, proto)
            candidate.setblocking(False)
            try:
                await asyncio.wait_for(loop.sock_connect(candidate, address), timeout)
            except (OSError, TimeoutError) as e:
                candidate.close()
                last_error = e
                continue
            sock = candidate
            break
        if sock is None:
            message = str(last_error) or type(last_error).__name__
            raise _ConnectFailed(ConnectFailure(ConnectStage.CONNECT, message))

        scheme = "wss" if secure else "ws"
        uri = f"{scheme}://{_uri_host(resolve_host)}:{port}{path or '/'}"
        try:
            return await connect(uri, sock=sock, open_timeout=timeout)
        except (InvalidHandshake, InvalidURI, ConnectionClosed, OSError, TimeoutError) as e:
            sock.close()
            raise _ConnectFailed(ConnectFailure(ConnectStage.HANDSHAKE, str(e) or type(e).__name__))

    async def _watch_close(self, ws: ClientConnection) -> None:
        await ws.wait_closed()
        if self._ws is ws:
            self._check_for_close()

    # ─── Send / receive ──────────────────────────────────────────

    def async_send(self, message: str) -> Future:
        """Queue one text frame; on_send reports completion."""
        return self._submit(self._send(message))

    async def _send(self, message: str) -> int | None:
        async with self._send_lock:
            if self._check_for_close():
                return None
            ws = self._ws
            error: Exception | None = None
            sent = 0
            try:
                await ws.send(message)
                sent = len(message.encode("utf-8"))
            except ConnectionClosed as e:
                error = e
        if ws is not self._ws or self._check_for_close():
            return None
        self._fire(self.on_send, error, sent)
        return sent

    def async_receive(self) -> Future:
        """Wait for one inbound frame; on_receive delivers it."""
        return self._submit(self._receive())

    async def _receive(self) -> str | None:
        async with self._receive_lock:
            if self._check_for_close():
                return None
            ws = self._ws
            error: Exception | None = None
            message = ""
            try:
                frame = await ws.recv()
                message = frame.decode("utf-8", "replace") if isinstance(frame, bytes) else frame
            except ConnectionClosed as e:
                error = e
        # a reconnect may have replaced the connection while this one was pending
        if ws is not self._ws or self._check_for_close():
            return None
        self._fire(self.on_receive, message, error, len(message.encode("utf-8")))
        return message

    # ─── Close ───────────────────────────────────────────────────

    def async_close(self) -> Future:
        """Client-initiated close; on_close fires with client_initiated=True."""
        self._client_requested_close = True
        return self._submit(self._close())

    async def _close(self) -> None:
        ws = self._ws
        if ws is not None and ws.protocol.state is not State.CLOSED:
            await ws.close()
        self._check_for_close()
        # nothing may have been open; the flag must not leak into the next connection
        self._client_requested_close = False

    def _check_for_close(self) -> bool:
        """True if the connection is gone; reports the disconnect once."""
        ws = self._ws
        if ws is not None and ws.protocol.state is State.OPEN:
            return False
        if not self._disconnect_handled:
            self._handle_close()
        return True

    def _handle_close(self) -> None:
        client_initiated = self._client_requested_close
        self._disconnect_handled = True
        self._client_requested_close = False
        reason = CloseReason()
        if self._ws is not None:
            reason = CloseReason(self._ws.protocol.close_code, self._ws.protocol.close_reason or "")
        logger.info(
            f"Socket closed (code={reason.code}, client_initiated={client_initiated})",
        )
        self._fire(self.on_close, reason, client_initiated)

    # ─── Scheduling / teardown ───────────────────────────────────

    def call_later(self, delay_seconds: float, fn: Callable[[], None]) -> Future:
        """Run fn on the worker after a delay; cancel via the returned future."""
        return self._submit(self._delayed(delay_seconds, fn))

    async def _delayed(self, delay_seconds: float, fn: Callable[[], None]) -> None:
        await asyncio.sleep(delay_seconds)
        self._fire(fn)

    def shutdown(self, timeout_seconds: float = 5.0) -> None:
        """Close without callbacks, stop the loop and join the worker."""
        if self._stopping:
            return
        if self._on_worker_thread():
            raise RuntimeError("shutdown() cannot be called from the socket worker thread")
        future = asyncio.run_coroutine_threadsafe(self._teardown(), self._loop)
        try:
            future.result(timeout_seconds)
        except TimeoutError:
            logger.warning("Socket teardown timed out; stopping the worker anyway")
        self._stopping = True
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout_seconds)
        if not self._thread.is_alive():
            self._loop.close()

    async def _teardown(self) -> None:
        self._disconnect_handled = True
        ws, self._ws = self._ws, None
        if ws is not None:
            try:
                await ws.close()
            except Exception as e:
                logger.error(f"Failed to close websocket gracefully: {e}")
        current = asyncio.current_task()
        pending = [t for t in asyncio.all_tasks() if t is not current]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    def __enter__(self) -> "AsyncSocketClient":
        return self

    def __exit__(self, *exc) -> None:
        self.shutdown()
