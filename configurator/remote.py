"""
Remote management channel

One persistent SSH connection (asyncssh) to the configured host. Connecting
retries with bounded exponential backoff; losing the connection while a
command runs raises ``RemoteConnectionError``.
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Coroutine, List, Optional, TypeVar

import asyncssh
from loguru import logger

from .errors import RemoteConnectionError

T = TypeVar("T")

CONNECT_ERRORS = (OSError, asyncssh.Error, asyncio.TimeoutError)


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, str):
        return value
    return str(value)


def run_sync(coro: Coroutine[Any, Any, T]) -> T:
    """Run coroutine from sync code.

    If called from within an existing event loop, it runs the coroutine in
    a background thread to avoid "Cannot run the event loop while another
    loop is running".
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)

    with ThreadPoolExecutor(max_workers=1) as executor:
        fut = executor.submit(asyncio.run, coro)
        return fut.result()


@dataclass
class CommandResult:
    """Result of a remote command execution"""
    host: str
    success: bool
    stdout: str
    stderr: str
    return_code: int


class RemoteSession:
    """
    Persistent SSH session to a single host.

    Usage:
        async with RemoteSession(ip, ssh_user="ubuntu", ssh_key_path=key) as session:
            res = await session.run("uname -a")
    """

    def __init__(
        self,
        host: str,
        *,
        ssh_user: str = "ubuntu",
        ssh_key_path: Optional[str] = None,
        port: int = 22,
        known_hosts: Optional[str] = None,
        connect_timeout: float = 30.0,
        keepalive_interval: float = 30.0,
        max_attempts: int = 6,
        initial_delay: float = 2.0,
        max_delay: float = 30.0,
    ):
        """
        Args:
            host: Host IP or hostname
            ssh_user: SSH username
            ssh_key_path: Path to SSH private key
            port: SSH port
            known_hosts: Path to known_hosts file (or None to disable host key checks)
            connect_timeout: SSH connect timeout seconds
            keepalive_interval: SSH keepalive interval seconds
            max_attempts: Connection attempts before giving up
            initial_delay: Delay before the first retry, doubled on each further retry
            max_delay: Upper bound of the retry delay
        """
        self.host = host
        self.ssh_user = ssh_user
        self.ssh_key_path = ssh_key_path
        self.port = port
        self.known_hosts = known_hosts
        self.connect_timeout = connect_timeout
        self.keepalive_interval = keepalive_interval
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self._conn: Optional[asyncssh.SSHClientConnection] = None

    async def _connect_once(self) -> asyncssh.SSHClientConnection:
        client_keys: Optional[List[str]] = None
        if self.ssh_key_path:
            client_keys = [str(Path(self.ssh_key_path).expanduser())]

        return await asyncssh.connect(
            self.host,
            port=self.port,
            username=self.ssh_user,
            client_keys=client_keys,
            known_hosts=self.known_hosts,
            connect_timeout=self.connect_timeout,
            keepalive_interval=self.keepalive_interval,
        )

    async def connect(self) -> "RemoteSession":
        delay = self.initial_delay
        for attempt in range(1, self.max_attempts + 1):
            try:
                self._conn = await self._connect_once()
                logger.debug(f"SSH connected to {self.ssh_user}@{self.host}:{self.port}")
                return self
            except CONNECT_ERRORS as e:
                if attempt >= self.max_attempts:
                    raise RemoteConnectionError(
                        self.host, f"SSH connect failed after {attempt} attempts: {e}") from e
                logger.debug(f"SSH connect attempt {attempt} to {self.host} failed, retry in {delay:.0f}s: {e}")
                await asyncio.sleep(delay)
                delay = min(delay * 2, self.max_delay)
        raise RemoteConnectionError(self.host, "SSH connect was not attempted")

    async def run(self, command: str, *, input: Optional[str] = None, timeout: float = 300) -> CommandResult:
        if self._conn is None:
            raise RemoteConnectionError(self.host, "not connected")
        try:
            res = await asyncio.wait_for(self._conn.run(command, input=input, check=False), timeout=timeout)
        except asyncio.TimeoutError:
            return CommandResult(host=self.host, success=False, stdout="",
                                 stderr=f"command timed out after {timeout}s", return_code=-1)
        except (OSError, asyncssh.Error) as e:
            raise RemoteConnectionError(self.host, f"connection lost: {e}") from e

        exit_status = res.exit_status if res.exit_status is not None else -1
        return CommandResult(
            host=self.host,
            success=exit_status == 0,
            stdout=_as_text(res.stdout),
            stderr=_as_text(res.stderr),
            return_code=int(exit_status),
        )

    async def close(self):
        if self._conn is None:
            return
        self._conn.close()
        await self._conn.wait_closed()
        self._conn = None

    async def __aenter__(self) -> "RemoteSession":
        return await self.connect()

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
