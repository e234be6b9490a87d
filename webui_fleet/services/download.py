"""Supervised background model download.

The supervisor is a small state machine::

    idle -> checking_existing -> rejected
                              -> starting -> polling -> succeeded
                                                     -> failed
                                                     -> timed_out
                                                     -> cancelled

:meth:`DownloadSupervisor.tick` performs one poll and can be driven directly
(tests simulate ticks without waiting); :meth:`DownloadSupervisor.run`
drives it on the configured interval with an awaitable sleep.
"""

from __future__ import annotations

import asyncio
import inspect
from functools import partial
from typing import Any, Awaitable, Callable, Optional

from webui_fleet.config import Settings, settings
from webui_fleet.errors import ConfigurationError
from webui_fleet.models.responses import DownloadPhase, DownloadResult
from webui_fleet.models.servers import ServerDescriptor, ServerRegistry
from webui_fleet.services.process_probe import CommandRunner, ProcessProbe
from webui_fleet.services.ssh_session import RemoteSession, SessionFactory
from webui_fleet.utils import shell
from webui_fleet.utils.logging import get_logger
from webui_fleet.utils.shell_parser import (
    dedupe_lines,
    find_download_errors,
    has_download_succeeded,
    parse_saved_path,
)

log = get_logger(__name__)

ProgressSink = Callable[[str], Any]
Sleep = Callable[[float], Awaitable[Any]]


class DownloadSupervisor:
    """Start, watch and finalise one wget download on a single server."""

    def __init__(
        self,
        session: CommandRunner,
        *,
        url: str,
        proxy: str,
        output_name: Optional[str] = None,
        server_name: str = "",
        progress_sink: ProgressSink | None = None,
        cfg: Settings | None = None,
        probe_cls: type[ProcessProbe] = ProcessProbe,
        sleep: Sleep | None = None,
    ) -> None:
        self._session = session
        self._cfg = cfg or settings
        self._probe = probe_cls(session)
        self._sink = progress_sink
        self._sleep = sleep or asyncio.sleep
        self._cancel_requested = False

        self.url = url
        self.proxy = proxy
        self.output_name = output_name
        self.server_name = server_name or getattr(session, "name", "")
        self.phase = DownloadPhase.idle
        self.elapsed_seconds = 0.0
        self.ticks = 0
        self.result: DownloadResult | None = None

    # ── helpers ───────────────────────────────────────────────────────

    @property
    def _fingerprint(self) -> str:
        return self._cfg.download_fingerprint

    def _finish(
        self,
        phase: DownloadPhase,
        message: str,
        *,
        log_excerpt: str = "",
        saved_path: str | None = None,
        move_output: str | None = None,
    ) -> DownloadPhase:
        self.phase = phase
        self.result = DownloadResult(
            phase=phase,
            message=message,
            log_excerpt=log_excerpt,
            saved_path=saved_path,
            move_output=move_output,
            elapsed_seconds=self.elapsed_seconds,
        )
        log.info(
            "download.finished",
            server=self.server_name,
            phase=phase.value,
            elapsed=self.elapsed_seconds,
        )
        return phase

    async def _emit(self, text: str) -> None:
        if self._sink is None or not text:
            return
        outcome = self._sink(text)
        if inspect.isawaitable(outcome):
            await outcome

    async def _read_log_window(self) -> str:
        result = await self._session.run(
            shell.log_window_command(
                self._cfg.download_dir,
                self._cfg.download_log_window_lines,
            ),
        )
        return dedupe_lines(result.stdout)

    async def _saved_path(self, excerpt: str) -> str | None:
        path = parse_saved_path(excerpt)
        if path:
            return path
        # the "Saving to:" line can sit past the head of a log with redirects
        log_file = shell.quote_path(shell.join_path(self._cfg.download_dir, shell.DOWNLOAD_LOG))
        result = await self._session.run(f"grep -m 1 'Saving to:' {log_file}")
        return parse_saved_path(result.stdout)

    # ── state transitions ─────────────────────────────────────────────

    async def begin(self) -> DownloadPhase:
        """Run checking_existing and starting; ends in polling or a terminal phase."""
        if self.phase is not DownloadPhase.idle:
            raise RuntimeError(f"download already begun (phase={self.phase.value})")

        self.phase = DownloadPhase.checking_existing
        if await self._probe.is_running(self._fingerprint):
            log.info("download.rejected", server=self.server_name)
            return self._finish(
                DownloadPhase.rejected,
                f"A download is already running on {self.server_name}, "
                "wait for it to finish before starting another.",
            )

        self.phase = DownloadPhase.starting
        result = await self._session.run(
            shell.start_download_command(
                self._cfg.download_dir,
                self.url,
                self.proxy,
                self.output_name,
            ),
        )
        if not result.ok:
            return self._finish(
                DownloadPhase.failed,
                f"Could not start the download (exit status {result.exit_status}).",
                log_excerpt=result.stdout.strip(),
            )

        log.info("download.started", server=self.server_name, url=self.url)
        self.phase = DownloadPhase.polling
        return self.phase

    async def tick(self) -> DownloadPhase:
        """One poll: advance time by the interval, then re-probe the process."""
        if self.phase is not DownloadPhase.polling:
            raise RuntimeError(f"cannot poll in phase {self.phase.value}")

        if self._cancel_requested:
            return self._finish(
                DownloadPhase.cancelled,
                "Stopped watching the download; it keeps running on the server.",
            )

        self.ticks += 1
        self.elapsed_seconds += self._cfg.download_poll_interval_seconds
        running = await self._probe.is_running(self._fingerprint)
        excerpt = await self._read_log_window()
        log.debug(
            "download.tick",
            server=self.server_name,
            tick=self.ticks,
            running=running,
        )

        if running:
            if self.elapsed_seconds >= self._cfg.download_timeout_seconds:
                return self._finish(
                    DownloadPhase.timed_out,
                    f"Download still running after {int(self.elapsed_seconds)}s; "
                    "it continues in the background. Latest log:",
                    log_excerpt=excerpt,
                )
            await self._emit(excerpt)
            return self.phase

        return await self._finalize(excerpt)

    async def _finalize(self, excerpt: str) -> DownloadPhase:
        if not has_download_succeeded(excerpt):
            errors = find_download_errors(excerpt)
            reason = f": {errors[-1]}" if errors else "."
            return self._finish(
                DownloadPhase.failed,
                f"Download failed{reason}",
                log_excerpt=excerpt,
            )

        saved_path = await self._saved_path(excerpt)
        if not saved_path:
            return self._finish(
                DownloadPhase.failed,
                "Download finished but the saved file name was not found in the log.",
                log_excerpt=excerpt,
            )

        destination = self._cfg.model_storage_path
        moved = await self._session.run(
            shell.move_command(self._cfg.download_dir, saved_path, destination),
        )
        move_output = moved.stdout.strip()
        if not moved.ok:
            log.warning("download.move_failed", server=self.server_name, rc=moved.exit_status)
            return self._finish(
                DownloadPhase.failed,
                f"Downloaded {saved_path} but moving it to {destination} failed "
                f"(exit status {moved.exit_status}).",
                log_excerpt=excerpt,
                saved_path=saved_path,
                move_output=move_output,
            )
        return self._finish(
            DownloadPhase.succeeded,
            f"Download finished, {saved_path} moved to {destination}.",
            log_excerpt=excerpt,
            saved_path=saved_path,
            move_output=move_output,
        )

    def cancel(self) -> None:
        """Stop supervising at the next tick; the remote wget is left alone."""
        self._cancel_requested = True

    async def run(self) -> DownloadResult:
        await self.begin()
        while not self.phase.is_terminal:
            await self._sleep(self._cfg.download_poll_interval_seconds)
            await self.tick()
        if self.result is None:
            raise RuntimeError(f"download stopped without a result (phase={self.phase.value})")
        return self.result


def resolve_download_target(
    registry: ServerRegistry,
    cfg: Settings,
    server_name: str | None = None,
) -> ServerDescriptor:
    name = server_name or cfg.download_server_name
    if name:
        return registry.get(name)
    for server in registry:
        return server
    raise ConfigurationError("no servers configured to download on")


async def download_asset(
    url: str,
    output_name: str | None = None,
    progress_sink: ProgressSink | None = None,
    server_name: str | None = None,
    *,
    cfg: Settings | None = None,
    registry: ServerRegistry | None = None,
    session_factory: SessionFactory | None = None,
    sleep: Sleep | None = None,
) -> DownloadResult:
    """Download *url* on a managed server through the egress proxy.

    Configuration problems raise before any connection is attempted;
    connection failures propagate as RemoteConnectionError.
    """
    _cfg = cfg or settings
    _registry = registry if registry is not None else _cfg.registry()
    proxy_server = _cfg.proxy_server(_registry)
    target = resolve_download_target(_registry, _cfg, server_name)
    proxy = shell.proxy_url(
        proxy_server.user,
        proxy_server.password,
        proxy_server.host,
        _cfg.proxy_port or proxy_server.port,
    )
    factory = session_factory or partial(RemoteSession, cfg=_cfg)

    async with factory(target) as session:
        supervisor = DownloadSupervisor(
            session,
            url=url,
            proxy=proxy,
            output_name=output_name,
            server_name=target.name,
            progress_sink=progress_sink,
            cfg=_cfg,
            sleep=sleep,
        )
        return await supervisor.run()
