"""
Connection to the remote execution sandbox.

The link is created before any sandbox exists. Operations issued while the
sandbox is being provisioned are queued and replayed, in order, once a driver
is registered. Operations issued while disconnected fail fast.
"""

import asyncio
import logging
import os
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Any, Literal, Protocol

from .paths import sandbox_parent_dirs, to_sandbox_path

logger = logging.getLogger(__name__)


class SandboxResetError(Exception):
    """Queued operation was dropped because the sandbox link was reset."""


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class SandboxDriver(Protocol):
    """Capabilities a concrete sandbox backend must provide."""

    async def write_file(self, path: str, content: str) -> bool: ...

    async def make_directory(self, path: str) -> bool: ...

    async def run_command(self, command: str) -> None: ...

    async def send_terminal_input(self, terminal_id: str, data: str) -> None: ...

    async def create_sandbox(self) -> Any: ...

    def get_active_terminal_id(self) -> str | None: ...


@dataclass
class SandboxSession:
    """Observable connection state of the link."""

    connection_state: ConnectionState = ConnectionState.DISCONNECTED
    sandbox_id: str | None = None
    error_message: str | None = None
    syncing: bool = False


OperationKind = Literal["write", "mkdir", "run"]


@dataclass
class PendingOperation:
    """Operation waiting for a driver to be registered."""

    kind: OperationKind
    args: tuple
    future: asyncio.Future = field(repr=False)


def _max_pending_from_env() -> int | None:
    value = os.getenv("WORKBENCH_MAX_PENDING_OPS")
    return int(value) if value else None


class SandboxLink:
    """
    Single point of contact with the sandbox for the whole application.

    Dispatch policy for write/mkdir/run:
    - Driver registered: call it directly
    - Connecting (or draining the queue): enqueue, settle on drain
    - Disconnected: log and return the fallback value immediately
    """

    def __init__(self, max_pending: int | None = None):
        """
        Initialize link.

        Args:
            max_pending: Optional upper bound on queued operations. When the
                queue is full, calls behave as if the sandbox were disconnected.
                Defaults to WORKBENCH_MAX_PENDING_OPS, unbounded if unset.
        """
        self.session = SandboxSession()
        self.max_pending = max_pending if max_pending is not None else _max_pending_from_env()
        self._driver: SandboxDriver | None = None
        self._active_terminal_id: str | None = None
        self._pending: deque[PendingOperation] = deque()
        self._draining = False

    @property
    def connection_state(self) -> ConnectionState:
        return self.session.connection_state

    @property
    def has_driver(self) -> bool:
        return self._driver is not None

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def active_terminal_id(self) -> str | None:
        if self._active_terminal_id is not None:
            return self._active_terminal_id
        if self._driver is not None:
            return self._driver.get_active_terminal_id()
        return None

    def set_connecting(self, connecting: bool) -> None:
        if connecting:
            self.session.connection_state = ConnectionState.CONNECTING
        elif self.session.connection_state is ConnectionState.CONNECTING:
            self.session.connection_state = ConnectionState.DISCONNECTED

    def set_connected(self, connected: bool, sandbox_id: str | None = None) -> None:
        self.session.connection_state = (
            ConnectionState.CONNECTED if connected else ConnectionState.DISCONNECTED
        )
        self.session.sandbox_id = sandbox_id
        logger.info(f"Sandbox connection state: {self.session.connection_state.value} ({sandbox_id})")

    def set_error(self, message: str | None) -> None:
        self.session.error_message = message
        if message:
            logger.error(f"Sandbox error: {message}")

    def set_syncing(self, syncing: bool) -> None:
        self.session.syncing = syncing

    def set_active_terminal_id(self, terminal_id: str | None) -> None:
        self._active_terminal_id = terminal_id

    async def register_callbacks(self, driver: SandboxDriver) -> None:
        """Install ``driver`` and replay every queued operation in FIFO order."""
        self._driver = driver
        self._active_terminal_id = driver.get_active_terminal_id()
        logger.info(f"Sandbox driver registered ({len(self._pending)} queued operations)")
        await self._drain()

    def is_ready(self) -> bool:
        """True when connected with a driver, or while connecting."""
        state = self.session.connection_state
        if state is ConnectionState.CONNECTING:
            return True
        return state is ConnectionState.CONNECTED and self._driver is not None

    def write_file(self, path: str, content: str) -> "asyncio.Future[bool]":
        return self._dispatch("write", (path, content), fallback=False)

    def make_directory(self, path: str) -> "asyncio.Future[bool]":
        return self._dispatch("mkdir", (path,), fallback=False)

    def run_command(self, command: str) -> "asyncio.Future[None]":
        return self._dispatch("run", (command,), fallback=None)

    async def send_terminal_input(self, data: str) -> None:
        """Send raw input to the active terminal. Never queued."""
        terminal_id = self.active_terminal_id
        if self._driver is None or terminal_id is None:
            logger.warning("Sandbox terminal not ready - cannot send input")
            return
        await self._driver.send_terminal_input(terminal_id, data)

    async def create_sandbox(self) -> Any:
        if self._driver is None:
            logger.warning("Sandbox driver not registered - cannot create sandbox")
            return None
        return await self._driver.create_sandbox()

    def reset(self) -> None:
        """Return to the initial state and reject every queued operation."""
        self.session = SandboxSession()
        self._driver = None
        self._active_terminal_id = None

        pending, self._pending = self._pending, deque()
        for op in pending:
            if not op.future.done():
                op.future.set_exception(SandboxResetError("sandbox reset"))

        if pending:
            logger.info(f"Sandbox reset, rejected {len(pending)} queued operations")

    def _dispatch(self, kind: OperationKind, args: tuple, fallback: Any) -> asyncio.Future:
        loop = asyncio.get_running_loop()
        driver = self._driver

        if driver is not None and not self._draining:
            return asyncio.ensure_future(self._invoke(driver, kind, args))

        if driver is None and self.session.connection_state is ConnectionState.DISCONNECTED:
            logger.warning(f"Sandbox not connected - cannot {kind} {args[0]}")
            return self._settled(loop, fallback)

        if self.max_pending is not None and len(self._pending) >= self.max_pending:
            logger.warning(f"Sandbox queue full ({self.max_pending}) - dropping {kind} {args[0]}")
            return self._settled(loop, fallback)

        future = loop.create_future()
        self._pending.append(PendingOperation(kind, args, future))
        logger.debug(f"Queued sandbox {kind} {args[0]} ({len(self._pending)} pending)")
        return future

    async def _drain(self) -> None:
        if self._draining or not self._pending:
            return

        self._draining = True
        try:
            # Operations issued mid-drain are appended and replayed in the same pass.
            while self._pending and self._driver is not None:
                op = self._pending.popleft()
                if op.future.done():
                    continue

                try:
                    result = await self._invoke(self._driver, op.kind, op.args)
                except Exception as e:
                    logger.error(f"Queued sandbox {op.kind} {op.args[0]} failed: {e}")
                    if not op.future.done():
                        op.future.set_exception(e)
                else:
                    if not op.future.done():
                        op.future.set_result(result)
        finally:
            self._draining = False

    @staticmethod
    async def _invoke(driver: SandboxDriver, kind: OperationKind, args: tuple) -> Any:
        if kind == "write":
            return await driver.write_file(*args)
        if kind == "mkdir":
            return await driver.make_directory(*args)
        return await driver.run_command(*args)

    @staticmethod
    def _settled(loop: asyncio.AbstractEventLoop, value: Any) -> asyncio.Future:
        future = loop.create_future()
        future.set_result(value)
        return future


def _log_deferred(kind: str, path: str, future: asyncio.Future) -> None:
    if future.cancelled():
        return
    error = future.exception()
    if error is not None:
        logger.warning(f"Deferred sandbox {kind} failed for {path}: {error}")
    elif kind == "write":
        logger.debug(f"Deferred sandbox write settled for {path}: {future.result()}")


async def mirror_file(link: SandboxLink, path: str, content: str) -> bool | None:
    """Create the parent directories of ``path`` in the sandbox, then write it.

    With a registered driver the operations are awaited in order and the
    write result is returned. While the sandbox is still connecting they are
    only enqueued (the queue keeps them ordered) and ``None`` is returned.
    """
    sandbox_path = to_sandbox_path(path)
    directories = sandbox_parent_dirs(sandbox_path)

    if not link.has_driver:
        for directory in directories:
            link.make_directory(directory).add_done_callback(partial(_log_deferred, "mkdir", directory))
        link.write_file(sandbox_path, content).add_done_callback(
            partial(_log_deferred, "write", sandbox_path)
        )
        logger.info(f"Sandbox still connecting - queued write for {sandbox_path}")
        return None

    for directory in directories:
        await link.make_directory(directory)

    written = await link.write_file(sandbox_path, content)
    if written:
        logger.debug(f"File written to sandbox: {sandbox_path}")
    else:
        logger.warning(f"Failed to write file to sandbox: {sandbox_path}")
    return written
