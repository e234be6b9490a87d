"""Per-operation SSH session to one managed server.

Uses a paramiko ``SSHClient`` driven from a single-thread executor so the
FastAPI async event loop is never blocked and commands on one session run in
the order they were issued.
"""

from __future__ import annotations

import asyncio
import io
import socket
import time
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Callable, Optional

import paramiko

from webui_fleet.config import Settings, settings
from webui_fleet.errors import ExecutionError, RemoteConnectionError
from webui_fleet.models.commands import CommandResult
from webui_fleet.models.servers import AuthMethod, ServerDescriptor
from webui_fleet.utils.logging import get_logger

log = get_logger(__name__)

_KEY_CLASSES: tuple[type[paramiko.PKey], ...] = (
    paramiko.RSAKey,
    paramiko.ECDSAKey,
    paramiko.Ed25519Key,
)


class SessionState(str, Enum):
    disconnected = "disconnected"
    connected = "connected"
    closed = "closed"


def load_private_key(text: str) -> paramiko.PKey:
    """Parse PEM / OpenSSH private key text of any supported type."""
    last_exc: Exception | None = None
    for key_cls in _KEY_CLASSES:
        try:
            return key_cls.from_private_key(io.StringIO(text))
        except paramiko.SSHException as exc:
            last_exc = exc
    raise RemoteConnectionError(f"unsupported or malformed private key: {last_exc}")


class RemoteSession:
    """One live SSH connection used for a bounded sequence of commands.

    Use as an async context manager so the connection is closed on every exit
    path::

        async with RemoteSession(server) as session:
            result = await session.run("uptime")
    """

    def __init__(
        self,
        server: ServerDescriptor,
        cfg: Settings | None = None,
    ) -> None:
        self._cfg = cfg or settings
        self.name = server.name
        self.host = server.host
        self.port = server.port
        self.user = server.user
        self._auth_method = server.auth_method
        self._password = server.password
        self._private_key = server.private_key
        self._private_key_path = server.private_key_path
        self._client: Optional[paramiko.SSHClient] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self.state = SessionState.disconnected

    # ── connection lifecycle ──────────────────────────────────────────

    def _connect_kwargs(self) -> dict:
        kwargs: dict = dict(
            hostname=self.host,
            port=self.port,
            username=self.user,
            timeout=self._cfg.ssh_connect_timeout_seconds,
            banner_timeout=self._cfg.ssh_connect_timeout_seconds,
            auth_timeout=self._cfg.ssh_connect_timeout_seconds,
            allow_agent=False,
            look_for_keys=False,
        )
        if self._auth_method is AuthMethod.private_key:
            kwargs["pkey"] = load_private_key(self._private_key)
        elif self._auth_method is AuthMethod.private_key_file:
            kwargs["key_filename"] = self._private_key_path
        else:
            kwargs["password"] = self._password
        return kwargs

    def _open_sync(self) -> paramiko.SSHClient:
        log.info("ssh.connecting", server=self.name, host=self.host, port=self.port)
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(**self._connect_kwargs())
        except (paramiko.SSHException, OSError, socket.timeout) as exc:
            client.close()
            raise RemoteConnectionError(
                f"cannot connect to {self.user}@{self.host}:{self.port}: {exc}",
            ) from exc
        except RemoteConnectionError:
            client.close()
            raise
        log.info("ssh.connected", server=self.name)
        self._client = client
        return client

    def _close_sync(self) -> None:
        if self._client is not None:
            try:
                self._client.close()
            except Exception:
                pass
            self._client = None
            log.info("ssh.closed", server=self.name)

    async def connect(self) -> RemoteSession:
        if self.state is SessionState.connected:
            return self
        if self.state is SessionState.closed:
            raise RemoteConnectionError(f"session to {self.name} is already closed")
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"ssh-{self.name}")
        try:
            await self._run_blocking(self._open_sync)
        except BaseException:
            # a cancelled handshake may still finish on the worker; close it there
            self._executor.submit(self._close_sync)
            self._executor.shutdown(wait=False)
            self._executor = None
            self.state = SessionState.closed
            raise
        self.state = SessionState.connected
        return self

    async def close(self) -> None:
        if self.state is SessionState.closed:
            return
        if self._executor is not None:
            await self._run_blocking(self._close_sync)
            self._executor.shutdown(wait=False)
            self._executor = None
        self.state = SessionState.closed

    async def __aenter__(self) -> RemoteSession:
        return await self.connect()

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ── helpers ───────────────────────────────────────────────────────

    async def _run_blocking(self, fn, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, fn, *args)

    def _exec_sync(self, command: str) -> CommandResult:
        if self._client is None:
            raise RemoteConnectionError(f"session to {self.name} is not connected")
        started = time.monotonic()
        try:
            _, stdout, stderr = self._client.exec_command(
                command,
                timeout=self._cfg.ssh_command_timeout_seconds,
            )
            stdout.channel.set_combine_stderr(True)
            output = stdout.read().decode("utf-8", errors="replace")
            # stderr that arrived before combining is still buffered separately
            output += stderr.read().decode("utf-8", errors="replace")
            exit_status = stdout.channel.recv_exit_status()
        except (paramiko.SSHException, OSError, socket.timeout) as exc:
            raise RemoteConnectionError(
                f"lost connection to {self.name} while running command: {exc}",
            ) from exc
        return CommandResult(
            command=command,
            stdout=output,
            exit_status=exit_status,
            elapsed_time=time.monotonic() - started,
        )

    # ── public: command execution ─────────────────────────────────────

    async def run(self, command: str, *, check: bool = False) -> CommandResult:
        """Run one shell command and return its stdout and exit status.

        With *check* set, a non-zero exit status raises ExecutionError.
        """
        if self.state is not SessionState.connected:
            raise RemoteConnectionError(f"session to {self.name} is not connected")
        result = await self._run_blocking(self._exec_sync, command)
        log.debug(
            "ssh.exec",
            server=self.name,
            rc=result.exit_status,
            out=result.stdout[:200],
        )
        if check and not result.ok:
            raise ExecutionError(
                f"command exited with status {result.exit_status} on {self.name}",
                result,
            )
        return result


SessionFactory = Callable[[ServerDescriptor], RemoteSession]


def default_session_factory(server: ServerDescriptor) -> RemoteSession:
    return RemoteSession(server)
