from __future__ import annotations

import itertools
import logging
from typing import Callable, Dict, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Listener = Callable[[T], None]


class Subscription:
    """Token returned by :meth:`EventChannel.subscribe`.

    Owners keep it for the lifetime of the consuming component and call
    :meth:`unsubscribe` (or leave the ``with`` block) when that ends.
    """

    def __init__(self, channel: "EventChannel", token: int) -> None:
        self._channel = channel
        self.token = token

    @property
    def active(self) -> bool:
        return self._channel.is_subscribed(self.token)

    def unsubscribe(self) -> bool:
        return self._channel.unsubscribe(self.token)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.unsubscribe()


class EventChannel(Generic[T]):
    """Synchronous publish/subscribe channel.

    Listeners run in subscription order. A failing listener is logged and
    does not prevent the others from being notified.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._listeners: Dict[int, Listener] = {}
        self._tokens = itertools.count(1)

    def subscribe(self, listener: Listener) -> Subscription:
        token = next(self._tokens)
        self._listeners[token] = listener
        return Subscription(self, token)

    def unsubscribe(self, token: int) -> bool:
        return self._listeners.pop(token, None) is not None

    def is_subscribed(self, token: int) -> bool:
        return token in self._listeners

    def publish(self, event: T) -> None:
        for listener in list(self._listeners.values()):
            try:
                listener(event)
            except Exception:
                logger.exception("Listener on channel %s failed", self.name)

    def close(self) -> None:
        self._listeners.clear()

    def __len__(self) -> int:
        return len(self._listeners)
