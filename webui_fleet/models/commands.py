"""Command-related data structures."""

from __future__ import annotations

from pydantic import BaseModel


class CommandResult(BaseModel):
    """Internal result from remote command execution."""

    command: str
    stdout: str
    exit_status: int = 0
    elapsed_time: float = 0.0

    @property
    def ok(self) -> bool:
        return self.exit_status == 0
