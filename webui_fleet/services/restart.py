"""Stop and relaunch the web UI on one server."""

from __future__ import annotations

from webui_fleet.errors import ConfigurationError, ExecutionError
from webui_fleet.models.servers import ServerRegistry
from webui_fleet.services.process_probe import ProcessProbe
from webui_fleet.services.ssh_session import SessionFactory, default_session_factory
from webui_fleet.utils import shell
from webui_fleet.utils.logging import get_logger

log = get_logger(__name__)


async def restart_server(
    registry: ServerRegistry,
    name: str,
    *,
    session_factory: SessionFactory | None = None,
    probe_cls: type[ProcessProbe] = ProcessProbe,
) -> str:
    """Kill the running web UI (if any) and start it again, detached.

    Returns as soon as the launch has been issued; the service needs about a
    minute before it answers. Raises ServerNotFoundError / ConfigurationError
    before any connection is made, and ExecutionError when the launch itself
    fails.
    """
    server = registry.get(name)
    if not server.launch_command:
        raise ConfigurationError(f"server {name!r} has no launch_command configured")
    factory = session_factory or default_session_factory

    async with factory(server) as session:
        # ── stop ──────────────────────────────────────────────────────
        probe = probe_cls(session)
        pids = await probe.find_pids(server.process_fingerprint)
        if pids:
            result = await session.run(shell.kill_command(pids))
            if not result.ok:
                log.warning("restart.kill_failed", server=name, pids=pids, rc=result.exit_status)
            else:
                log.info("restart.killed", server=name, pids=pids)
        else:
            log.info("restart.not_running", server=name)

        # ── launch ────────────────────────────────────────────────────
        result = await session.run(
            shell.launch_command(server.remote_base_path, server.launch_command),
        )
        if not result.ok:
            log.warning("restart.launch_failed", server=name, rc=result.exit_status)
            raise ExecutionError(
                f"launch failed with exit status {result.exit_status}: {result.stdout.strip()}",
                result,
            )
        log.info("restart.launched", server=name)

    return f"Restarting {name}, wait about a minute before using it."
