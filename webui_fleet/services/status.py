"""Per-server status probe: web UI process state and last output time."""

from __future__ import annotations

from webui_fleet.errors import ExecutionError
from webui_fleet.models.responses import NOT_FOUND, NOT_RUNNING, UNKNOWN, StatusReport
from webui_fleet.models.servers import ServerDescriptor
from webui_fleet.services.process_probe import CommandRunner, ProcessProbe
from webui_fleet.services.ssh_session import SessionFactory, default_session_factory
from webui_fleet.utils import shell
from webui_fleet.utils.logging import get_logger
from webui_fleet.utils.shell_parser import (
    format_uptime,
    parse_last_used,
    parse_latest_date_dir,
)

log = get_logger(__name__)


async def probe_status(
    server: ServerDescriptor,
    *,
    session_factory: SessionFactory | None = None,
    probe_cls: type[ProcessProbe] = ProcessProbe,
) -> StatusReport:
    """Probe one server.

    Each step degrades to a placeholder on its own; only a connection
    failure escapes, and the aggregator isolates that per server.
    """
    factory = session_factory or default_session_factory
    report = StatusReport(server_name=server.name, service_url=server.service_url)

    async with factory(server) as session:
        # ── latest per-day output directories ─────────────────────────
        date_dirs = await latest_output_dirs(session, server)

        # ── newest file in those directories ──────────────────────────
        if date_dirs:
            try:
                result = await session.run(shell.newest_file_command(date_dirs), check=True)
                report.last_used = parse_last_used(result.stdout) or NOT_FOUND
            except ExecutionError as exc:
                log.warning("status.last_used_failed", server=server.name, error=str(exc))

        # ── web UI process ────────────────────────────────────────────
        try:
            report.run_status = await webui_run_status(probe_cls(session), server)
        except ExecutionError as exc:
            log.warning("status.process_failed", server=server.name, error=str(exc))
            report.run_status = UNKNOWN

    log.info(
        "status.probed",
        server=server.name,
        run_status=report.run_status,
        last_used=report.last_used,
    )
    return report


async def latest_output_dirs(session: CommandRunner, server: ServerDescriptor) -> list[str]:
    """Newest ``YYYY-MM-DD`` directory under each image output folder."""
    found: list[str] = []
    for subdir in shell.OUTPUT_SUBDIRS:
        try:
            result = await session.run(
                shell.latest_date_dir_command(server.remote_base_path, subdir),
                check=True,
            )
        except ExecutionError as exc:
            log.warning("status.output_dir_failed", server=server.name, subdir=subdir, error=str(exc))
            continue
        latest = parse_latest_date_dir(result.stdout)
        if latest:
            found.append(latest)
    return found


async def webui_run_status(probe: ProcessProbe, server: ServerDescriptor) -> str:
    pids = await probe.find_pids(server.process_fingerprint)
    if not pids:
        return NOT_RUNNING
    uptime = await probe.uptime_seconds(pids[0])
    if uptime is None:
        return "running"
    return f"running (up {format_uptime(uptime)})"
