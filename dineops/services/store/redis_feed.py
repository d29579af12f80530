"""
Redis Change Feed

Relays tenant store changes between processes over Redis pub/sub, so a
block written by the operator console (or a plan change made by the
Celery worker) reaches entitlement gates in every API worker.

Each committed change is delivered to this process's subscribers first and
then published on ``{prefix}:{namespace}``. A listener task
pattern-subscribes to ``{prefix}:*`` and dispatches changes made by other
processes; messages carry the publishing feed's origin id, so a process
never sees its own changes twice.
"""

import asyncio
import json
import logging
import uuid
from typing import Optional

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from dineops.core.config import get_settings
from dineops.services.store.events import (
    ChangeCallback,
    ChangeEvent,
    ChangeFeed,
    ErrorCallback,
    Subscription,
)

logger = logging.getLogger(__name__)


class RedisChangeFeed(ChangeFeed):
    """
    Example:
        >>> feed = RedisChangeFeed()
        >>> await feed.start()
        >>> store = SqlTenantStore(get_session_maker(), feed=feed)
    """

    def __init__(
        self,
        client: Optional[aioredis.Redis] = None,
        prefix: Optional[str] = None,
    ):
        super().__init__()
        settings = get_settings()
        self.client = client or aioredis.from_url(settings.redis_url, decode_responses=True)
        self.prefix = prefix or settings.change_feed_prefix
        self.origin = uuid.uuid4().hex
        self._pubsub = None
        self._listener: Optional[asyncio.Task] = None
        self._starting: Optional[asyncio.Task] = None
        logger.info(f"RedisChangeFeed initialized (channels {self.prefix}:*)")

    def channel(self, namespace: str) -> str:
        return f"{self.prefix}:{namespace}"

    @property
    def listening(self) -> bool:
        return self._listener is not None and not self._listener.done()

    def subscribe(
        self,
        namespace: str,
        collection: str,
        on_change: ChangeCallback,
        doc_id: Optional[str] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        subscription = super().subscribe(namespace, collection, on_change, doc_id, on_error)
        if self._pubsub is None and self._starting is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                logger.warning("No running event loop; call start() to receive remote changes")
            else:
                self._starting = loop.create_task(self.start())
        return subscription

    async def start(self) -> None:
        """Subscribe to every namespace channel and start the listener task."""
        if self._pubsub is not None:
            return
        pubsub = self.client.pubsub()
        self._pubsub = pubsub
        try:
            await pubsub.psubscribe(f"{self.prefix}:*")
        except RedisError as e:
            # Gates still poll; only the push path is lost
            logger.error(f"Change feed could not subscribe to Redis: {e}")
            self._pubsub = None
            self._starting = None
            return
        self._listener = asyncio.create_task(self._listen(pubsub))
        logger.info(f"Change feed listening on {self.prefix}:*")

    async def close(self) -> None:
        for task in (self._starting, self._listener):
            if task is None or task.done():
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._listener = None
        if self._pubsub is not None:
            await self._pubsub.aclose()
            self._pubsub = None
        self._starting = None

    async def publish(self, event: ChangeEvent) -> None:
        await self.dispatch(event)
        payload = json.dumps({
            "origin": self.origin,
            "namespace": event.namespace,
            "collection": event.collection,
            "doc_id": event.doc_id,
            "kind": event.kind,
            "data": event.data,
        })
        try:
            await self.client.publish(self.channel(event.namespace), payload)
        except RedisError as e:
            # The write itself is committed
            logger.error(
                f"Could not relay change {event.namespace}/{event.collection}/{event.doc_id}: {e}"
            )

    async def _listen(self, pubsub) -> None:
        try:
            async for message in pubsub.listen():
                if message["type"] != "pmessage":
                    continue
                try:
                    payload = json.loads(message["data"])
                    if payload.get("origin") == self.origin:
                        continue
                    event = ChangeEvent(
                        namespace=payload["namespace"],
                        collection=payload["collection"],
                        doc_id=payload["doc_id"],
                        kind=payload["kind"],
                        data=payload.get("data"),
                    )
                except (ValueError, KeyError, TypeError, AttributeError) as e:
                    logger.warning(f"Ignoring malformed change message on {message.get('channel')}: {e}")
                    continue
                await self.dispatch(event)
        except RedisError as e:
            logger.error(f"Change feed listener stopped: {e}")
