"""
Realtime subscription to the shop's print_jobs channel.

Events are applied to a JobBoard as they arrive. If the channel errors the
subscription drops to polling the backend every `poll_interval` seconds
until closed.
"""

import asyncio
import json
import logging
from typing import Callable, Optional

import redis.asyncio as redis

from shop_console.backend_client import BackendClient
from shop_console.job_board import JobBoard

logger = logging.getLogger(__name__)


def channel_name(shop_owner_id: str, table: str = "print_jobs") -> str:
    return f"realtime:{table}:shop_owner_id=eq.{shop_owner_id}"


class QueueSubscription:
    def __init__(
        self,
        redis_client: redis.Redis,
        shop_owner_id: str,
        board: JobBoard,
        backend: BackendClient,
        poll_interval: float = 30,
        on_change: Optional[Callable[[JobBoard], None]] = None,
    ):
        self.redis = redis_client
        self.channel = channel_name(shop_owner_id)
        self.board = board
        self.backend = backend
        self.poll_interval = poll_interval
        self.on_change = on_change
        self.polling = False
        self._listen_task: Optional[asyncio.Task] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._pubsub = None

    def _changed(self):
        if self.on_change:
            self.on_change(self.board)

    async def refetch(self) -> bool:
        jobs = await self.backend.list_jobs()
        if jobs is None:
            return False
        self.board.load(jobs)
        self._changed()
        return True

    async def handle_message(self, data: str):
        try:
            event = json.loads(data)
        except (TypeError, ValueError):
            event = None
        if not isinstance(event, dict):
            logger.warning(f"Dropping malformed event on {self.channel}")
            return
        if self.board.apply(event):
            self._changed()
        elif self.board.needs_refetch:
            await self.refetch()

    async def start(self):
        """Load the queue, then subscribe (or poll if subscribing fails)."""
        await self.refetch()
        try:
            self._pubsub = self.redis.pubsub()
            await self._pubsub.subscribe(self.channel)
        except (redis.RedisError, OSError) as e:
            logger.error(f"Realtime subscription failed: {e}")
            self.start_polling()
            return
        logger.info(f"Subscribed to {self.channel}")
        self._listen_task = asyncio.create_task(self._listen())

    async def _listen(self):
        try:
            async for message in self._pubsub.listen():
                if message.get("type") == "message":
                    await self.handle_message(message["data"])
        except asyncio.CancelledError:
            raise
        except (redis.RedisError, OSError) as e:
            logger.error(f"Realtime channel error on {self.channel}: {e}")
        except Exception as e:
            logger.error(f"Realtime listener failed on {self.channel}: {e}", exc_info=True)
        else:
            logger.warning(f"Realtime channel {self.channel} closed")
        self.start_polling()

    def start_polling(self):
        if self.polling:
            return
        self.polling = True
        logger.info(f"Falling back to polling every {self.poll_interval}s")
        self._poll_task = asyncio.create_task(self._poll())

    async def _poll(self):
        while True:
            await asyncio.sleep(self.poll_interval)
            await self.refetch()

    async def close(self):
        for task in (self._listen_task, self._poll_task):
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._listen_task = self._poll_task = None
        self.polling = False
        if self._pubsub is not None:
            try:
                await self._pubsub.unsubscribe(self.channel)
                await self._pubsub.aclose()
            except (redis.RedisError, OSError) as e:
                logger.warning(f"Error closing subscription: {e}")
            self._pubsub = None
