"""Model download endpoint with streamed progress."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from webui_fleet.auth import require_api_key
from webui_fleet.models.responses import DownloadRequest
from webui_fleet.services import fleet

router = APIRouter(tags=["download"], dependencies=[Depends(require_api_key)])

_DONE = object()


async def _stream_download(req: DownloadRequest) -> AsyncIterator[str]:
    """Yield each progress excerpt as it arrives, then the final result."""
    queue: asyncio.Queue = asyncio.Queue()

    async def _run() -> None:
        try:
            result = await fleet.fleet_service.download(
                req.url,
                req.output_name,
                queue.put_nowait,
                req.server_name,
            )
            queue.put_nowait(result)
        finally:
            queue.put_nowait(_DONE)

    task = asyncio.create_task(_run())
    try:
        while True:
            item = await queue.get()
            if item is _DONE:
                break
            yield f"{item}\n\n"
        await task
    finally:
        if not task.done():
            task.cancel()


@router.post("/download")
async def download(req: DownloadRequest) -> StreamingResponse:
    """Start a download on a managed server and stream its progress."""
    return StreamingResponse(_stream_download(req), media_type="text/plain")
