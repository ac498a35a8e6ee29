"""
ChangeFeed -- in-process fan-out of store change events.

Responsibility:
    Deliver every committed change to every open subscription, in commit
    order, and tell subscribers when the feed goes away so they can mark
    their state stale.

Architecture position:
    Kernel > Services.  Fed by db/change_capture.py; consumed by the
    ledger mirror through ``EntityStore.subscribe_changes``.

Failure modes:
    - A handler that raises is logged with its traceback.  Delivery to the
      remaining subscriptions continues.
"""

from typing import Callable

from kas_kernel.domain.events import ChangeEvent
from kas_kernel.logging_config import get_logger

logger = get_logger("services.change_feed")

ChangeHandler = Callable[[ChangeEvent], None]


class Subscription:
    """
    Handle for one subscriber.

    ``close()`` is idempotent; a closed subscription receives nothing more.
    """

    def __init__(
        self,
        feed: "ChangeFeed",
        handler: ChangeHandler,
        on_disconnect: Callable[[], None] | None = None,
    ):
        self._feed = feed
        self._handler = handler
        self._on_disconnect = on_disconnect
        self._closed = False

    @property
    def is_closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._feed._remove(self)

    def _deliver(self, change: ChangeEvent) -> None:
        if not self._closed:
            self._handler(change)

    def _disconnected(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._on_disconnect is not None:
            self._on_disconnect()


class ChangeFeed:
    """Synchronous publisher for ``ChangeEvent`` values."""

    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(
        self,
        handler: ChangeHandler,
        on_disconnect: Callable[[], None] | None = None,
    ) -> Subscription:
        subscription = Subscription(self, handler, on_disconnect)
        self._subscriptions.append(subscription)
        logger.debug("feed_subscribed", extra={"subscribers": len(self._subscriptions)})
        return subscription

    def publish(self, change: ChangeEvent) -> None:
        # Copy: a handler may close its own subscription mid-delivery
        for subscription in list(self._subscriptions):
            try:
                subscription._deliver(change)
            except Exception:
                logger.exception(
                    "feed_handler_failed",
                    extra={
                        "collection": change.collection.value,
                        "kind": change.kind.value,
                        "record_id": str(change.record_id),
                    },
                )

    def disconnect(self) -> None:
        """Drop every subscription, notifying each one."""
        subscriptions, self._subscriptions = self._subscriptions, []
        logger.warning("feed_disconnected", extra={"subscribers": len(subscriptions)})
        for subscription in subscriptions:
            subscription._disconnected()

    def _remove(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
