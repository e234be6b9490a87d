"""Process detection by command-line fingerprint."""

from __future__ import annotations

from typing import Optional, Protocol

from webui_fleet.models.commands import CommandResult
from webui_fleet.utils import shell
from webui_fleet.utils.shell_parser import parse_etime, parse_pids


class CommandRunner(Protocol):
    async def run(self, command: str, *, check: bool = False) -> CommandResult: ...


class ProcessProbe:
    """Find remote processes whose command line contains a fingerprint.

    ``pgrep`` exits 1 when nothing matches, so a non-zero status is treated
    as "not running" rather than an error.
    """

    def __init__(self, session: CommandRunner) -> None:
        self._session = session

    async def find_pids(self, fingerprint: str) -> list[int]:
        result = await self._session.run(shell.pgrep_command(fingerprint))
        if not result.ok:
            return []
        return parse_pids(result.stdout)

    async def is_running(self, fingerprint: str) -> bool:
        return bool(await self.find_pids(fingerprint))

    async def uptime_seconds(self, pid: int) -> Optional[int]:
        result = await self._session.run(shell.etime_command(pid))
        if not result.ok:
            return None
        return parse_etime(result.stdout)
