"""Status change notification."""

from __future__ import annotations

import logging
from typing import Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StatusBroadcaster(Generic[T]):
    """Fan-out of state snapshots to subscribed callbacks.

    A callback that raises is logged and does not prevent delivery to the
    remaining subscribers.
    """

    def __init__(self) -> None:
        self._subscribers: list[Callable[[T], None]] = []

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, snapshot: T) -> None:
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception:
                logger.exception("Status subscriber %r failed", callback)

    def clear(self) -> None:
        self._subscribers.clear()

    def __len__(self) -> int:
        return len(self._subscribers)


__all__ = ["StatusBroadcaster"]
