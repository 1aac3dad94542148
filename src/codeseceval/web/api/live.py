"""WebSocket endpoint for real-time scan and catalogue events."""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from codeseceval.events import Signal
from codeseceval.storage import codec

router = APIRouter(tags=["live"])

# Bounded so a stalled client cannot grow memory without limit
_QUEUE_SIZE = 1000


@router.websocket("/ws/events")
async def events_ws(websocket: WebSocket):
    """Stream every scan, rule and history notification as JSON."""
    await websocket.accept()

    ctx = websocket.app.state.ctx
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[tuple[str, object]] = asyncio.Queue(maxsize=_QUEUE_SIZE)

    def _forward(name: str):
        def _put(payload: object) -> None:
            def _enqueue() -> None:
                if not queue.full():
                    queue.put_nowait((name, payload))

            loop.call_soon_threadsafe(_enqueue)

        return _put

    signals: list[Signal] = [
        *_signals_of(ctx.orchestrator.events),
        *_signals_of(ctx.rules.events),
        *_signals_of(ctx.history.events),
    ]
    disconnects = [s.connect(_forward(s.name)) for s in signals]

    try:
        while True:
            name, payload = await queue.get()
            await websocket.send_text(codec.dumps({"type": name, "data": payload}))
    except WebSocketDisconnect:
        pass
    finally:
        for disconnect in disconnects:
            disconnect()


def _signals_of(events: object) -> list[Signal]:
    return [v for v in vars(events).values() if isinstance(v, Signal)]
