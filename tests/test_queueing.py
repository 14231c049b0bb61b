from queue import Queue

from expression_tracker.utils.queueing import clear_queue, put_latest, take_latest


def test_put_latest_replaces_oldest_item():
    queue = Queue(maxsize=1)
    assert put_latest(queue, 1) is None
    assert put_latest(queue, 2) == 1
    assert queue.get_nowait() == 2


def test_take_latest_drains_queue():
    queue = Queue()
    for item in (1, 2, 3):
        queue.put(item)
    assert take_latest(queue) == 3
    assert take_latest(queue) is None


def test_clear_queue_returns_drained_items():
    queue = Queue()
    queue.put("a")
    queue.put("b")
    assert clear_queue(queue) == ["a", "b"]
    assert queue.empty()
