"""Result and API models."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

NOT_RUNNING = "not running, consider restart"
UNKNOWN = "unknown"
NOT_FOUND = "not found"


class HealthResponse(BaseModel):
    status: str
    version: str


class StatusReport(BaseModel):
    """Per-server health and recency report."""

    server_name: str
    run_status: str = UNKNOWN
    last_used: str = NOT_FOUND
    service_url: Optional[str] = None

    def render(self) -> str:
        lines = [
            f"==== {self.server_name} ====",
            f"status: {self.run_status}",
            f"last used: {self.last_used}",
        ]
        if self.service_url:
            lines.append(f"url: {self.service_url}")
        return "\n".join(lines)


class DownloadPhase(str, Enum):
    idle = "idle"
    checking_existing = "checking_existing"
    rejected = "rejected"
    starting = "starting"
    polling = "polling"
    succeeded = "succeeded"
    failed = "failed"
    timed_out = "timed_out"
    cancelled = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_PHASES


_TERMINAL_PHASES = frozenset({
    DownloadPhase.rejected,
    DownloadPhase.succeeded,
    DownloadPhase.failed,
    DownloadPhase.timed_out,
    DownloadPhase.cancelled,
})


class DownloadResult(BaseModel):
    """Final outcome of one supervised download."""

    phase: DownloadPhase
    message: str
    log_excerpt: str = ""
    saved_path: Optional[str] = None
    move_output: Optional[str] = None
    elapsed_seconds: float = 0.0

    def render(self) -> str:
        parts = [self.message]
        if self.log_excerpt:
            parts.append(self.log_excerpt)
        if self.move_output is not None:
            parts.append(f"move result:\n{self.move_output}".rstrip())
        return "\n".join(parts)


class DownloadRequest(BaseModel):
    """Request body for POST /download."""

    url: str = Field(min_length=1)
    output_name: Optional[str] = None
    server_name: Optional[str] = None
