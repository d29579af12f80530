"""
Change Feed

Publish/subscribe for tenant store mutations. A store publishes one
ChangeEvent after each committed put or remove; subscribers are scoped to
(namespace, collection) and optionally one document.

ChangeFeed delivers inside one process (development, tests);
RedisChangeFeed also relays events between processes.

Subscriptions must be released by their owner, either with unsubscribe()
or by using the Subscription as a context manager.
"""

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Union

logger = logging.getLogger(__name__)

ChangeCallback = Callable[["ChangeEvent"], Union[None, Awaitable[None]]]
ErrorCallback = Callable[[Exception], Union[None, Awaitable[None]]]


@dataclass(frozen=True)
class ChangeEvent:
    """
    A committed mutation.

    Attributes:
        namespace: Restaurant id, or the global namespace
        collection: Collection name
        doc_id: Affected document
        kind: "put" or "remove"
        data: Document after the change (None for removals)
    """
    namespace: str
    collection: str
    doc_id: str
    kind: str
    data: Optional[dict] = None

    @property
    def removed(self) -> bool:
        return self.kind == "remove"


@dataclass(eq=False)
class Subscription:
    """Handle to one registration on a ChangeFeed."""
    feed: "ChangeFeed"
    namespace: str
    collection: str
    on_change: ChangeCallback
    doc_id: Optional[str] = None
    on_error: Optional[ErrorCallback] = None
    active: bool = field(default=True)

    def matches(self, event: ChangeEvent) -> bool:
        if event.namespace != self.namespace or event.collection != self.collection:
            return False
        return self.doc_id is None or self.doc_id == event.doc_id

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self.feed._discard(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.unsubscribe()

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.unsubscribe()


class ChangeFeed:
    """Delivers ChangeEvents to matching subscriptions, in registration order."""

    def __init__(self):
        self._subscriptions: list[Subscription] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(
        self,
        namespace: str,
        collection: str,
        on_change: ChangeCallback,
        doc_id: Optional[str] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        subscription = Subscription(
            feed=self,
            namespace=namespace,
            collection=collection,
            on_change=on_change,
            doc_id=doc_id,
            on_error=on_error,
        )
        self._subscriptions.append(subscription)
        logger.debug(f"Subscribed to {namespace}/{collection}/{doc_id or '*'}")
        return subscription

    async def start(self) -> None:
        """Begin receiving events written elsewhere. Nothing to do in-process."""

    async def close(self) -> None:
        pass

    def _discard(self, subscription: Subscription) -> None:
        try:
            self._subscriptions.remove(subscription)
        except ValueError:
            pass

    async def publish(self, event: ChangeEvent) -> None:
        """
        Deliver an event. A failing subscriber is reported to its own
        on_error callback (or logged) and never affects the writer.
        """
        await self.dispatch(event)

    async def dispatch(self, event: ChangeEvent) -> None:
        """Deliver an event to the subscriptions registered in this process."""
        for subscription in list(self._subscriptions):
            if not subscription.active or not subscription.matches(event):
                continue
            try:
                result = subscription.on_change(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                await self._report(subscription, e)

    async def _report(self, subscription: Subscription, error: Exception) -> None:
        if subscription.on_error is None:
            logger.exception(
                f"Subscriber of {subscription.namespace}/{subscription.collection} failed: {error}"
            )
            return
        try:
            result = subscription.on_error(error)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Subscriber error handler failed")
