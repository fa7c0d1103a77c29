import asyncio
import logging
from collections.abc import AsyncIterator
from uuid import uuid4

from app.models.change import ChangeEvent

logger = logging.getLogger(__name__)


class SubscriptionClosedError(Exception):
    """Exception raised when reading from a released subscription."""

    pass


class Subscription:
    """A live subscription to row changes for one owner on one table.

    Events are queued in publish order and consumed by iterating the
    subscription. Iteration ends once `unsubscribe()` is called.

    Attributes:
        subscription_id: Unique identifier of this subscription
        table: Table the subscription listens to
        owner_id: Only events for this owner are delivered
    """

    def __init__(self, feed: "ChangeFeed", table: str, owner_id: str) -> None:
        self.subscription_id: str = str(uuid4())
        self.table: str = table
        self.owner_id: str = owner_id
        self._feed = feed
        self._queue: asyncio.Queue[ChangeEvent | None] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def matches(self, event: ChangeEvent) -> bool:
        return event.table == self.table and event.owner_id == self.owner_id

    def deliver(self, event: ChangeEvent) -> None:
        if not self._closed:
            self._queue.put_nowait(event)

    async def get(self) -> ChangeEvent:
        """Wait for the next event.

        Returns:
            The next change event in publish order

        Raises:
            SubscriptionClosedError: If the subscription has been released
        """
        if self._closed and self._queue.empty():
            raise SubscriptionClosedError(self.subscription_id)
        event = await self._queue.get()
        if event is None:
            raise SubscriptionClosedError(self.subscription_id)
        return event

    def unsubscribe(self) -> None:
        """Release the subscription. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._feed._remove(self)
        # Wake up a consumer blocked in get()
        self._queue.put_nowait(None)

    def __aiter__(self) -> AsyncIterator[ChangeEvent]:
        return self

    async def __anext__(self) -> ChangeEvent:
        try:
            return await self.get()
        except SubscriptionClosedError:
            raise StopAsyncIteration


class ChangeFeed:
    """In-process change-notification channel.

    Writers publish row changes; each subscription only receives events for
    its own table and owner, so owner scoping happens on the publishing side
    rather than in the subscriber.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[str, Subscription] = {}

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, table: str, owner_id: str) -> Subscription:
        """Open a subscription to insert, update and delete events.

        Args:
            table: Table to listen to
            owner_id: Owner whose rows should be delivered

        Returns:
            The new subscription handle
        """
        subscription = Subscription(self, table, owner_id)
        self._subscriptions[subscription.subscription_id] = subscription
        logger.debug(
            "Subscribed %s to %s for owner=%s",
            subscription.subscription_id,
            table,
            owner_id,
        )
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscription.unsubscribe()

    def publish(self, event: ChangeEvent) -> int:
        """Deliver an event to every matching subscription.

        Args:
            event: The row change

        Returns:
            Number of subscriptions the event was delivered to
        """
        delivered = 0
        for subscription in list(self._subscriptions.values()):
            if subscription.matches(event):
                subscription.deliver(event)
                delivered += 1
        logger.debug(
            "Published %s %s to %d subscriber(s)",
            event.kind.value,
            event.target_id,
            delivered,
        )
        return delivered

    def _remove(self, subscription: Subscription) -> None:
        self._subscriptions.pop(subscription.subscription_id, None)
