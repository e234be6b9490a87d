"""Exception taxonomy for fleet operations."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from webui_fleet.models.commands import CommandResult


class FleetError(Exception):
    """Base exception for all fleet management errors."""


class RemoteConnectionError(FleetError):
    """The SSH session could not be established or was lost."""


class ConfigurationError(FleetError):
    """Missing or invalid server / global configuration."""


class ServerNotFoundError(FleetError):
    """No registered server matches the requested name."""

    def __init__(self, name: str) -> None:
        super().__init__(f"server {name!r} is not configured")
        self.name = name


class ExecutionError(FleetError):
    """A remote command exited non-zero or produced unusable output."""

    def __init__(self, message: str, result: CommandResult | None = None) -> None:
        super().__init__(message)
        self.result = result
