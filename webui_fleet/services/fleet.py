"""Command dispatcher: list / status / restart / download as plain strings."""

from __future__ import annotations

from functools import partial
from typing import Optional

from webui_fleet.config import Settings, settings
from webui_fleet.errors import (
    ConfigurationError,
    ExecutionError,
    RemoteConnectionError,
    ServerNotFoundError,
)
from webui_fleet.models.servers import ServerRegistry
from webui_fleet.services.aggregate import aggregate_status, list_servers
from webui_fleet.services.download import ProgressSink, Sleep, download_asset
from webui_fleet.services.restart import restart_server
from webui_fleet.services.ssh_session import RemoteSession, SessionFactory
from webui_fleet.services.status import probe_status
from webui_fleet.utils.logging import get_logger

log = get_logger(__name__)


def not_found_message(name: str) -> str:
    return f"Server {name} not found."


class FleetService:
    """Front-end facing operations over one read-only server registry.

    Every outcome, including failures, comes back as a readable string.
    """

    def __init__(
        self,
        cfg: Settings | None = None,
        *,
        session_factory: SessionFactory | None = None,
        sleep: Sleep | None = None,
    ) -> None:
        self._cfg = cfg or settings
        self._registry = self._cfg.registry()
        self._session_factory = session_factory or partial(RemoteSession, cfg=self._cfg)
        self._sleep = sleep

    @property
    def registry(self) -> ServerRegistry:
        return self._registry

    def list(self) -> str:
        return list_servers(self._registry)

    async def status(self, *, concurrent: bool = False) -> str:
        return await aggregate_status(
            self._registry,
            probe=partial(probe_status, session_factory=self._session_factory),
            concurrent=concurrent,
        )

    async def restart(self, name: str) -> str:
        try:
            return await restart_server(
                self._registry,
                name,
                session_factory=self._session_factory,
            )
        except ServerNotFoundError:
            log.warning("restart.unknown_server", server=name, known=self._registry.names)
            return not_found_message(name)
        except (ConfigurationError, ExecutionError) as exc:
            return f"Cannot restart {name}: {exc}"
        except RemoteConnectionError as exc:
            log.error("restart.connection_failed", server=name, error=str(exc))
            return f"Cannot restart {name}: {exc}"

    async def download(
        self,
        url: str,
        output_name: Optional[str] = None,
        progress_sink: ProgressSink | None = None,
        server_name: Optional[str] = None,
    ) -> str:
        try:
            result = await download_asset(
                url,
                output_name,
                progress_sink,
                server_name,
                cfg=self._cfg,
                registry=self._registry,
                session_factory=self._session_factory,
                sleep=self._sleep,
            )
        except (ConfigurationError, ServerNotFoundError) as exc:
            log.error("download.not_started", url=url, error=str(exc))
            return f"Download not started: {exc}"
        except RemoteConnectionError as exc:
            log.error("download.connection_failed", url=url, error=str(exc))
            return f"Download failed: {exc}"
        return result.render()


# Singleton
fleet_service = FleetService()
