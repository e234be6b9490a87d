"""Fleet list / status / restart endpoints (plain-text bodies)."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import PlainTextResponse

from webui_fleet.auth import require_api_key
from webui_fleet.services import fleet
from webui_fleet.services.fleet import not_found_message

router = APIRouter(
    prefix="/servers",
    tags=["servers"],
    dependencies=[Depends(require_api_key)],
)


@router.get("", response_class=PlainTextResponse)
async def list_servers() -> str:
    return fleet.fleet_service.list()


@router.get("/status", response_class=PlainTextResponse)
async def fleet_status(concurrent: bool = False) -> str:
    """Status block for every configured server, in configuration order."""
    return await fleet.fleet_service.status(concurrent=concurrent)


@router.post("/{name}/restart", response_class=PlainTextResponse)
async def restart(name: str) -> str:
    """Kill and relaunch the web UI; returns before the service is back up."""
    service = fleet.fleet_service
    if service.registry.find(name) is None:
        raise HTTPException(status_code=404, detail=not_found_message(name))
    return await service.restart(name)
