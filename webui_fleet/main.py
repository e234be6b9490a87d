"""FastAPI application entry-point."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from webui_fleet import __version__
from webui_fleet.config import settings
from webui_fleet.routers import download, health, servers
from webui_fleet.utils.logging import get_logger, setup_logging

log = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown hooks."""
    setup_logging(settings.log_level, json=settings.log_json)
    log.info("app.started", servers=len(settings.servers))
    yield


app = FastAPI(
    title="WebUI Fleet",
    description="Remote management of stable-diffusion web UI GPU servers",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(servers.router)
app.include_router(download.router)
