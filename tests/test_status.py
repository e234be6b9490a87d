"""Tests for the status probe, aggregation and server listing."""

from __future__ import annotations

from functools import partial

import pytest

from tests.mock_ssh import (
    PGREP_WEBUI,
    PS_ETIME,
    MockSessionFactory,
    RemoteScript,
    raises,
    webui_host_script,
)
from webui_fleet.errors import RemoteConnectionError
from webui_fleet.models.responses import NOT_FOUND, NOT_RUNNING
from webui_fleet.models.servers import ServerRegistry
from webui_fleet.services.aggregate import NO_SERVERS, aggregate_status, list_servers
from webui_fleet.services.status import probe_status


# ---------------------------------------------------------------------------
# list
# ---------------------------------------------------------------------------


class TestListServers:
    def test_one_line_per_server_in_order(self, registry):
        lines = list_servers(registry).splitlines()
        assert lines == [
            "gpu-a: root@region-1.example.com:20451",
            "gpu-b: root@region-2.example.com:31022",
            "proxy: squid@10.0.0.5:22",
        ]

    def test_empty_registry(self):
        assert list_servers(ServerRegistry()) == NO_SERVERS


# ---------------------------------------------------------------------------
# probe
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_probe_running_server(servers, factory):
    report = await probe_status(servers[0], session_factory=factory)
    assert report.server_name == "gpu-a"
    assert report.run_status == "running (up 1d 02:03:04)"
    assert report.last_used == "2024-05-02 21:47 00042-1234567.png"
    assert report.service_url == "https://gpu-a.example.com"


@pytest.mark.asyncio
async def test_probe_closes_session(servers, factory):
    await probe_status(servers[0], session_factory=factory)
    assert factory.connections == ["gpu-a"]
    assert all(s.closed for s in factory.sessions)


@pytest.mark.asyncio
async def test_probe_not_running(servers):
    factory = MockSessionFactory({"gpu-a": webui_host_script(running=False)})
    report = await probe_status(servers[0], session_factory=factory)
    assert report.run_status == NOT_RUNNING
    assert "etime" not in " ".join(factory.scripts["gpu-a"].commands)


@pytest.mark.asyncio
async def test_probe_empty_output_dirs_degrades(servers):
    script = RemoteScript().on("[l]aunch", "", exit_status=1)
    factory = MockSessionFactory({"gpu-a": script})
    report = await probe_status(servers[0], session_factory=factory)
    assert report.last_used == NOT_FOUND
    assert report.run_status == NOT_RUNNING
    # no directories found, so the stat step never runs
    assert script.matching("stat -c") == []


@pytest.mark.asyncio
async def test_probe_step_failure_does_not_abort_others(servers):
    failing = RemoteScript()
    failing.on("txt2img-images -mindepth", "permission denied", exit_status=1)
    failing.on("img2img-images -mindepth", "permission denied", exit_status=1)
    failing.on("[l]aunch", PGREP_WEBUI)
    failing.on("ps -o etime=", PS_ETIME)
    factory = MockSessionFactory({"gpu-a": failing})

    report = await probe_status(servers[0], session_factory=factory)
    assert report.last_used == NOT_FOUND
    assert report.run_status.startswith("running")


@pytest.mark.asyncio
async def test_probe_uptime_unavailable(servers):
    script = RemoteScript().on("[l]aunch", "2381\n").on("ps -o etime=", "", exit_status=1)
    factory = MockSessionFactory({"gpu-a": script})
    report = await probe_status(servers[0], session_factory=factory)
    assert report.run_status == "running"


@pytest.mark.asyncio
async def test_probe_connection_failure_propagates(servers):
    factory = MockSessionFactory(unreachable={"gpu-a"})
    with pytest.raises(RemoteConnectionError):
        await probe_status(servers[0], session_factory=factory)


# ---------------------------------------------------------------------------
# aggregate
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_aggregate_in_registration_order(registry, factory):
    text = await aggregate_status(registry, probe=partial(probe_status, session_factory=factory))
    headers = [l for l in text.splitlines() if l.startswith("====")]
    assert headers == ["==== gpu-a ====", "==== gpu-b ====", "==== proxy ===="]


@pytest.mark.asyncio
async def test_aggregate_isolates_connection_failure(registry, factory):
    factory.unreachable = {"gpu-b"}
    text = await aggregate_status(registry, probe=partial(probe_status, session_factory=factory))
    blocks = text.split("==== ")
    assert "gpu-a ====\nstatus: running" in text
    assert "proxy ====\nstatus: running" in text
    gpu_b = next(b for b in blocks if b.startswith("gpu-b"))
    assert "unreachable:" in gpu_b
    assert factory.connections == ["gpu-a", "gpu-b", "proxy"]


@pytest.mark.asyncio
async def test_aggregate_isolates_mid_probe_failure(registry, factory):
    factory.scripts["gpu-b"] = RemoteScript().on(
        "txt2img-images", raises(RemoteConnectionError("connection reset")),
    )
    text = await aggregate_status(registry, probe=partial(probe_status, session_factory=factory))
    assert "==== gpu-b ====\nunreachable: connection reset" in text
    assert text.count("status: running") == 2


@pytest.mark.asyncio
async def test_aggregate_concurrent_keeps_order(registry, factory):
    factory.unreachable = {"gpu-a"}
    text = await aggregate_status(
        registry,
        probe=partial(probe_status, session_factory=factory),
        concurrent=True,
    )
    headers = [l for l in text.splitlines() if l.startswith("====")]
    assert headers == ["==== gpu-a ====", "==== gpu-b ====", "==== proxy ===="]
    assert text.startswith("==== gpu-a ====\nunreachable:")


@pytest.mark.asyncio
async def test_aggregate_empty_registry():
    assert await aggregate_status(ServerRegistry()) == NO_SERVERS


@pytest.mark.asyncio
async def test_session_closed_on_unexpected_error(servers):
    broken = RemoteScript().on("[l]aunch", raises(RuntimeError("boom")))
    factory = MockSessionFactory({"gpu-a": broken})
    with pytest.raises(RuntimeError):
        await probe_status(servers[0], session_factory=factory)
    assert factory.sessions[0].closed
