"""Fleet-wide listing and status aggregation."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

from webui_fleet.models.responses import StatusReport
from webui_fleet.models.servers import ServerDescriptor, ServerRegistry
from webui_fleet.services.status import probe_status
from webui_fleet.utils.logging import get_logger

log = get_logger(__name__)

NO_SERVERS = "no configured servers"

Probe = Callable[[ServerDescriptor], Awaitable[StatusReport]]


def list_servers(registry: ServerRegistry) -> str:
    """One ``name: user@host:port`` line per server, in registration order."""
    if not registry:
        return NO_SERVERS
    return "\n".join(f"{s.name}: {s.address}" for s in registry)


async def aggregate_status(
    registry: ServerRegistry,
    *,
    probe: Probe | None = None,
    concurrent: bool = False,
) -> str:
    """Probe every server and join the rendered blocks in registration order.

    A server whose probe raises gets an ``unreachable`` block; the rest of
    the fleet still reports.
    """
    if not registry:
        return NO_SERVERS
    _probe = probe or probe_status
    servers = list(registry)

    if concurrent:
        outcomes = await asyncio.gather(
            *(_probe(s) for s in servers),
            return_exceptions=True,
        )
    else:
        outcomes = []
        for server in servers:
            try:
                outcomes.append(await _probe(server))
            except Exception as exc:
                outcomes.append(exc)

    blocks: list[str] = []
    for server, outcome in zip(servers, outcomes):
        if isinstance(outcome, BaseException):
            if not isinstance(outcome, Exception):
                raise outcome
            log.warning("aggregate.probe_failed", server=server.name, error=str(outcome))
            blocks.append(_failure_block(server, outcome))
        else:
            blocks.append(outcome.render())
    return "\n".join(blocks)


def _failure_block(server: ServerDescriptor, exc: Exception) -> str:
    return f"==== {server.name} ====\nunreachable: {exc}"
