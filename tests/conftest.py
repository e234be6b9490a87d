"""Shared pytest fixtures."""

from __future__ import annotations

import os

# Force settings to use test-safe defaults before any import
os.environ.setdefault("WEBUI_API_KEY", "")
os.environ.setdefault("WEBUI_SERVERS", "[]")

import pytest
from httpx import ASGITransport, AsyncClient

from tests.mock_ssh import MockSessionFactory, no_sleep, webui_host_script
from webui_fleet.config import Settings
from webui_fleet.models.servers import ServerDescriptor, ServerRegistry


@pytest.fixture
def servers() -> list[ServerDescriptor]:
    return [
        ServerDescriptor(
            name="gpu-a",
            user="root",
            host="region-1.example.com",
            port=20451,
            password="hunter2",
            launch_command="python launch.py --listen --port 6006 --xformers",
            service_url="https://gpu-a.example.com",
        ),
        ServerDescriptor(
            name="gpu-b",
            user="root",
            host="region-2.example.com",
            port=31022,
            private_key_path="/keys/gpu-b",
        ),
        ServerDescriptor(
            name="proxy",
            user="squid",
            host="10.0.0.5",
            port=22,
            password="p@ss word",
        ),
    ]


@pytest.fixture
def registry(servers) -> ServerRegistry:
    return ServerRegistry(servers)


@pytest.fixture
def cfg(servers) -> Settings:
    return Settings(
        servers=servers,
        proxy_server_name="proxy",
        proxy_port=3128,
        download_server_name="gpu-a",
        download_dir="/tmp/x",
        model_storage_path="/root/autodl-tmp/stable-diffusion-webui/models/Stable-diffusion",
    )


@pytest.fixture
def factory() -> MockSessionFactory:
    """Fresh factory with a healthy web UI script for every server."""
    f = MockSessionFactory()
    for name in ("gpu-a", "gpu-b", "proxy"):
        f.scripts[name] = webui_host_script()
    return f


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def client(cfg, factory, monkeypatch):
    """Async test client with the mock session factory injected."""
    import webui_fleet.services.fleet as fleet_mod
    from webui_fleet.services.fleet import FleetService

    monkeypatch.setattr(
        fleet_mod,
        "fleet_service",
        FleetService(cfg, session_factory=factory, sleep=no_sleep),
    )

    from webui_fleet.main import app as fastapi_app

    transport = ASGITransport(app=fastapi_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
