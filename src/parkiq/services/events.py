"""Listener registry used for change notification."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

T = TypeVar("T")

_logger = logging.getLogger(__name__)


@dataclass
class Listeners(Generic[T]):
    """Ordered set of callbacks receiving published values."""

    name: str = "listeners"
    _callbacks: list[Callable[[T], None]] = field(default_factory=list)

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """Register a callback and return a function that removes it."""
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def publish(self, value: T) -> None:
        """Deliver a value to every callback.

        A failing listener is logged and does not stop delivery to the rest.
        """
        for callback in list(self._callbacks):
            try:
                callback(value)
            except Exception:
                _logger.exception("Listener failed on %s", self.name)

    def __len__(self) -> int:
        return len(self._callbacks)
