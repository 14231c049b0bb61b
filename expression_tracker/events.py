from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

import numpy as np

from .utils.types import Frame, TransformedFrame

logger = logging.getLogger(__name__)

E = TypeVar("E")
Handler = Callable[[Any], None]


@dataclass(frozen=True)
class NewFrameEvent:
    domain: str
    frame: Frame


@dataclass(frozen=True)
class NewTransformedFrameEvent:
    domain: str
    frame: TransformedFrame


@dataclass(frozen=True)
class NewFilteredResultEvent:
    domain: str
    sequence: int
    values: np.ndarray


@dataclass(frozen=True)
class ExceptionEvent:
    domain: str
    stage: str
    error: BaseException


class EventBus:
    """Publish/subscribe keyed by event class.

    Handlers run synchronously on the publishing thread, in subscription
    order. A failing handler is logged and does not stop delivery to the rest.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handlers: dict[type, list[Handler]] = {}

    def subscribe(self, event_type: type[E], handler: Callable[[E], None]) -> None:
        with self._lock:
            handlers = self._handlers.setdefault(event_type, [])
            if handler not in handlers:
                handlers.append(handler)

    def unsubscribe(self, event_type: type[E], handler: Callable[[E], None]) -> None:
        with self._lock:
            handlers = self._handlers.get(event_type)
            if not handlers:
                return
            try:
                handlers.remove(handler)
            except ValueError:
                return
            if not handlers:
                del self._handlers[event_type]

    def subscriber_count(self, event_type: type) -> int:
        with self._lock:
            return len(self._handlers.get(event_type, ()))

    def publish(self, event: object) -> None:
        with self._lock:
            handlers = list(self._handlers.get(type(event), ()))
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Event handler failed",
                    extra={"event": "handler_failure", "event_type": type(event).__name__},
                )
