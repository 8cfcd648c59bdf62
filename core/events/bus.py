"""In-process publish/subscribe bus.

Subscribers are plain callables registered per channel. ``publish`` calls
them synchronously, in registration order, on the caller's event loop turn.
There is no persistence and no cross-process delivery.
"""

from collections.abc import Callable
from typing import Any

import structlog

from .models import Channel

logger = structlog.get_logger(__name__)

Subscriber = Callable[[Any], None]


class NotificationBus:
    """Channel-keyed list of subscriber callbacks."""

    def __init__(self) -> None:
        """Initialize an empty bus."""
        self._subscribers: dict[Channel, list[Subscriber]] = {}
        self._logger = logger.bind(component="notification_bus")

    def subscribe(self, channel: Channel, callback: Subscriber) -> Callable[[], None]:
        """Register a callback on a channel.

        Args:
            channel: Channel to listen on.
            callback: Called with the published payload.

        Returns:
            A function that removes this subscription.
        """
        self._subscribers.setdefault(Channel(channel), []).append(callback)

        def _unsubscribe() -> None:
            self.unsubscribe(channel, callback)

        return _unsubscribe

    def unsubscribe(self, channel: Channel, callback: Subscriber) -> bool:
        """Remove a callback from a channel.

        Returns:
            True if the callback was registered.
        """
        callbacks = self._subscribers.get(Channel(channel), [])
        if callback in callbacks:
            callbacks.remove(callback)
            return True
        return False

    def publish(self, channel: Channel, payload: Any) -> int:
        """Deliver a payload to every subscriber of a channel.

        A subscriber that raises is logged and skipped; the rest still run.

        Args:
            channel: Channel to publish on.
            payload: Notification payload.

        Returns:
            Number of subscribers invoked.
        """
        channel = Channel(channel)
        # Snapshot so callbacks may unsubscribe themselves mid-delivery
        callbacks = list(self._subscribers.get(channel, []))

        for callback in callbacks:
            try:
                callback(payload)
            except Exception as e:
                self._logger.error(
                    "subscriber_failed",
                    channel=channel.value,
                    error=str(e),
                )

        return len(callbacks)

    def subscriber_count(self, channel: Channel) -> int:
        """Number of subscribers on a channel."""
        return len(self._subscribers.get(Channel(channel), []))

    def clear(self) -> None:
        """Remove every subscription."""
        self._subscribers.clear()
