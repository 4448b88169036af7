"""Server-Sent Events helpers for live snapshot streams."""
import asyncio
import json
import time
from typing import Any, AsyncGenerator, Callable, Optional

from fastapi import Request

KEEPALIVE_SECONDS = 15.0


def format_sse(data: str, event: Optional[str] = None, event_id: Optional[str] = None) -> str:
    lines = []
    if event_id:
        lines.append(f"id: {event_id}")
    if event:
        lines.append(f"event: {event}")
    for chunk in data.splitlines():
        lines.append(f"data: {chunk}")
    lines.append("")
    return "\n".join(lines) + "\n"


def keepalive_message() -> str:
    payload = json.dumps({"type": "heartbeat", "ts": time.time()})
    return format_sse(payload, event="heartbeat")


async def stream_queue(
    request: Request,
    q: asyncio.Queue,
    event: str,
    encode: Callable[[Any], str],
    on_close: Callable[[], None],
    keepalive_seconds: float = KEEPALIVE_SECONDS,
) -> AsyncGenerator[str, None]:
    """Drain q as SSE frames until the client disconnects, then call on_close."""
    try:
        while True:
            if await request.is_disconnected():
                break
            try:
                message = await asyncio.wait_for(q.get(), timeout=keepalive_seconds)
            except asyncio.TimeoutError:
                yield keepalive_message()
                continue
            yield format_sse(encode(message), event=event)
    finally:
        on_close()
