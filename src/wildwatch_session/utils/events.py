from __future__ import annotations

import threading
from typing import Callable, Generic, TypeVar

from wildwatch_session.utils.logging import get_logger


logger = get_logger(__name__)

T_co = TypeVar("T_co", covariant=True)


class EventHook(Generic[T_co]):
    """Simple observer pattern helper for session notifications."""

    def __init__(self) -> None:
        self._subscribers: list[Callable[[T_co], None]] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Callable[[T_co], None]) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                try:
                    self._subscribers.remove(callback)
                except ValueError:  # pragma: no cover - best effort cleanup
                    pass

        return unsubscribe

    def emit(self, payload: T_co) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(payload)
            except Exception:  # noqa: BLE001 - listeners must not break the session
                logger.exception("Session event callback failed")

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscribers)


__all__ = ["EventHook"]
