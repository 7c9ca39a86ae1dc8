"""
Realtime relay for PrintHub

Browsers cannot talk to Redis, so this WebSocket forwards the owner's
print_jobs change channel to the print queue page.
"""

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Query
from typing import Optional
from datetime import datetime
import asyncio
import json
import logging

from printhub.core.exceptions import AuthenticationError
from printhub.core.redis_client import get_redis_client
from printhub.core.security import decode_access_token
from printhub.services import realtime_service

router = APIRouter()
logger = logging.getLogger(__name__)

PING_INTERVAL_SECONDS = 30.0


async def _forward(websocket: WebSocket, pubsub):
    async for message in pubsub.listen():
        if message.get("type") == "message":
            await websocket.send_text(message["data"])


async def _receive(websocket: WebSocket):
    while True:
        try:
            text = await asyncio.wait_for(websocket.receive_text(), timeout=PING_INTERVAL_SECONDS)
        except asyncio.TimeoutError:
            await websocket.send_text(json.dumps({"type": "ping", "timestamp": datetime.utcnow().isoformat()}))
            continue
        if text == "ping":
            await websocket.send_text(json.dumps({"type": "pong"}))


@router.websocket("/print-jobs")
async def print_jobs_feed(
    websocket: WebSocket,
    token: Optional[str] = Query(None)
):
    """
    Stream INSERT/UPDATE/DELETE events for the authenticated shop owner's jobs.
    """
    if not token:
        await websocket.close(code=4001, reason="Authentication required")
        return
    try:
        user = decode_access_token(token)
    except AuthenticationError:
        await websocket.close(code=4001, reason="Invalid token")
        return
    if not user.is_shop_owner:
        await websocket.close(code=4003, reason="Shop owner access required")
        return

    channel = realtime_service.channel_name("print_jobs", user.id)
    await websocket.accept()

    pubsub = get_redis_client().pubsub()
    tasks = []
    try:
        await pubsub.subscribe(channel)
        await websocket.send_text(json.dumps({"type": "subscribed", "channel": channel}))
        logger.info(f"Realtime WebSocket subscribed: {channel}")

        tasks = [
            asyncio.create_task(_forward(websocket, pubsub)),
            asyncio.create_task(_receive(websocket)),
        ]
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            task.result()

    except WebSocketDisconnect:
        logger.info(f"Realtime WebSocket disconnected: {channel}")
    except Exception as e:
        # Client falls back to polling when the channel errors
        logger.error(f"Realtime WebSocket error on {channel}: {e}")
        try:
            await websocket.send_text(json.dumps({"type": "error", "message": "channel error"}))
            await websocket.close(code=1011)
        except Exception as send_error:
            logger.warning(f"Could not notify client on {channel}: {send_error}")
    finally:
        for task in tasks:
            task.cancel()
        try:
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()
        except Exception as e:
            logger.warning(f"Error closing subscription {channel}: {e}")
