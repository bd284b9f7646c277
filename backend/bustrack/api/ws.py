"""WebSocket endpoint for room subscriptions and driver position updates.

Frames are JSON objects ``{"event": <name>, "data": <payload>}``.

Client events: ``joinBus``, ``leaveBus``, ``joinRoute``, ``leaveRoute``,
``updateLocation``. Server events: ``busSnapshot`` (registry state sent on
joining a bus room), ``busLocationUpdated``, ``locationUpdated``,
``routeStatus`` and ``error``.
"""

import asyncio
import logging

import orjson
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from bustrack.core.broadcaster import bus_room, encode_event, route_room
from bustrack.errors import BusTrackError, ValidationError
from bustrack.schemas.bus import BusOut
from bustrack.services import Services

logger = logging.getLogger(__name__)

router = APIRouter()


async def _pump(websocket: WebSocket, queue: asyncio.Queue) -> None:
    """Single writer for the socket; direct replies go through the same queue."""
    while True:
        data = await queue.get()
        await websocket.send_bytes(data)


def _reply(queue: asyncio.Queue, event: str, data) -> None:
    try:
        queue.put_nowait(encode_event(event, data))
    except asyncio.QueueFull:
        logger.debug("Subscriber queue full, dropping %s reply", event)


def _bus_id(data) -> int:
    """Bus id from an int or digit-string payload."""
    if isinstance(data, int) and not isinstance(data, bool):
        return data
    if isinstance(data, str) and data.strip().isdigit():
        return int(data.strip())
    raise ValidationError("A numeric bus id is required")


async def _handle(services: Services, queue: asyncio.Queue, event: str, data) -> None:
    broadcaster = services.broadcaster

    if event in ("joinBus", "leaveBus"):
        bus_id = _bus_id(data)
        room = bus_room(bus_id)
        if event == "leaveBus":
            broadcaster.leave(room, queue)
            return
        broadcaster.join(room, queue)
        # Late joiners catch up from the registry, events are never replayed
        try:
            bus = await services.registry.get(bus_id)
        except BusTrackError:
            return
        snapshot = BusOut.from_bus(bus).model_dump(mode="json", by_alias=True)
        _reply(queue, "busSnapshot", snapshot)

    elif event in ("joinRoute", "leaveRoute"):
        if not isinstance(data, str) or not data.strip():
            raise ValidationError("Route number is required")
        room = route_room(data)
        if event == "joinRoute":
            broadcaster.join(room, queue)
        else:
            broadcaster.leave(room, queue)

    elif event == "updateLocation":
        data = data if isinstance(data, dict) else {}
        await services.ingest.update_position(
            data.get("busId"), data.get("lat"), data.get("lng"),
            data.get("heading"), data.get("speed"),
        )

    else:
        raise ValidationError(f"Unknown event: {event}")


@router.websocket("/ws")
async def live_ws(websocket: WebSocket) -> None:
    """Bidirectional live channel."""
    await websocket.accept()
    services: Services = websocket.app.state.services

    queue = services.broadcaster.subscribe()
    pump = asyncio.create_task(_pump(websocket, queue))
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                msg = orjson.loads(raw)
                event, data = msg.get("event"), msg.get("data")
            except (orjson.JSONDecodeError, AttributeError):
                _reply(queue, "error", {"message": "Malformed message"})
                continue
            try:
                await _handle(services, queue, event, data)
            except BusTrackError as e:
                _reply(queue, "error", {"message": e.message})
    except WebSocketDisconnect:
        pass
    except asyncio.CancelledError:
        pass
    except Exception:
        logger.exception("WebSocket error")
    finally:
        pump.cancel()
        services.broadcaster.unsubscribe(queue)
