from __future__ import annotations

from queue import Empty, Full, Queue
from typing import TypeVar

T = TypeVar("T")


def put_latest(queue_obj: Queue[T], item: T) -> T | None:
    """Insert ``item`` dropping the oldest entry when full; returns what was dropped."""
    try:
        queue_obj.put_nowait(item)
        return None
    except Full:
        pass

    dropped: T | None = None
    try:
        dropped = queue_obj.get_nowait()
    except Empty:
        pass

    try:
        queue_obj.put_nowait(item)
    except Full:
        # Another producer won the race; the caller's item is the one discarded.
        return item
    return dropped


def take_latest(queue_obj: Queue[T]) -> T | None:
    latest: T | None = None
    while True:
        try:
            latest = queue_obj.get_nowait()
        except Empty:
            return latest


def clear_queue(queue_obj: Queue[T]) -> list[T]:
    drained: list[T] = []
    while True:
        try:
            drained.append(queue_obj.get_nowait())
        except Empty:
            return drained
