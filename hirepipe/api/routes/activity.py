import asyncio

from fastapi import APIRouter, Request
from starlette.responses import StreamingResponse

from hirepipe.services.event_bus import activity_fanout

router = APIRouter(tags=["activity"])

PING_SECONDS = 15


@router.get("/activity/stream")
async def stream_activity(request: Request):
    async def event_generator():
        async with activity_fanout.listen() as listener:
            while not await request.is_disconnected():
                try:
                    data = await asyncio.wait_for(listener.get(), timeout=PING_SECONDS)
                except asyncio.TimeoutError:
                    yield "event: ping\ndata: {}\n\n"
                else:
                    yield f"data: {data}\n\n"

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )
