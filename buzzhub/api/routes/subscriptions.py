"""Live subscription endpoint - streams new messages over a WebSocket."""

import asyncio
import json
from uuid import uuid4

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
from starlette.websockets import WebSocketState

from buzzhub.api.dependencies import get_message_router, get_registry, resolve_user_id
from buzzhub.core.config import settings
from buzzhub.core.exceptions import AppException, StoreUnavailable
from buzzhub.services.delivery import DeliveryChannel

logger = structlog.get_logger()

router = APIRouter(tags=["Subscriptions"])


async def _pump(websocket: WebSocket, channel: DeliveryChannel) -> None:
    """Push channel events to the client until either side goes away."""
    async for event in channel:
        try:
            await websocket.send_json(event.to_wire())
        except (WebSocketDisconnect, RuntimeError):
            return


async def _listen(websocket: WebSocket) -> None:
    """Read client frames until it disconnects or asks to unsubscribe."""
    while True:
        try:
            raw = await websocket.receive_text()
        except WebSocketDisconnect:
            return

        try:
            frame = json.loads(raw)
        except json.JSONDecodeError:
            await websocket.send_json({"type": "error", "message": "Invalid JSON frame"})
            continue

        frame_type = frame.get("type") if isinstance(frame, dict) else None
        if frame_type == "unsubscribe":
            return
        if frame_type == "ping":
            await websocket.send_json({"type": "pong"})


@router.websocket("/conversations/{conversation_id}/subscribe")
async def subscribe_to_conversation(websocket: WebSocket, conversation_id: str) -> None:
    """Stream ``new_message`` events of a conversation to a participant.

    Frames sent by the server: ``subscribed`` once registered, then one
    ``new_message`` per message. The client may send ``ping`` or
    ``unsubscribe``; disconnecting also ends the subscription.
    """
    user_id = resolve_user_id(websocket)
    if not user_id:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="NOT_AUTHENTICATED")
        return

    try:
        await get_message_router(websocket).authorize(conversation_id, user_id)
    except StoreUnavailable as exc:
        logger.warning(
            "Subscription deferred, store unavailable",
            conversation_id=conversation_id,
            user_id=user_id,
        )
        # Retryable, unlike the 1008 rejections below
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR, reason=exc.code)
        return
    except AppException as exc:
        logger.info(
            "Subscription rejected",
            conversation_id=conversation_id,
            user_id=user_id,
            code=exc.code,
        )
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=exc.code)
        return

    await websocket.accept()

    registry = get_registry(websocket)
    session_id = websocket.query_params.get("session_id") or uuid4().hex
    channel = DeliveryChannel(maxsize=settings.channel_queue_size)
    handle = registry.subscribe(conversation_id, session_id, channel)
    tasks: set[asyncio.Task] = set()

    try:
        await websocket.send_json(
            {
                "type": "subscribed",
                "conversation_id": conversation_id,
                "subscription_id": handle.id,
            }
        )

        tasks = {
            asyncio.create_task(_pump(websocket, channel)),
            asyncio.create_task(_listen(websocket)),
        }
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        for task in done:
            if not task.cancelled() and task.exception() is not None:
                logger.warning(
                    "Subscription connection error",
                    conversation_id=conversation_id,
                    error=str(task.exception()),
                )
    except WebSocketDisconnect:
        pass
    finally:
        for task in tasks:
            task.cancel()
        registry.unsubscribe(handle)
        channel.close()

    if websocket.client_state == WebSocketState.CONNECTED:
        await websocket.close()
