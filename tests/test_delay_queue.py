from datetime import datetime, timedelta, timezone

from openingdrill.delay_queue import DelayQueue

T0 = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)


def test_pop_ready_returns_earliest_elapsed_entry(item_factory):
    queue = DelayQueue()
    late = item_factory()
    early = item_factory()
    queue.schedule(late, T0 + timedelta(minutes=5))
    queue.schedule(early, T0 + timedelta(minutes=1))

    assert queue.pop_ready(T0) is None
    assert queue.pop_ready(T0 + timedelta(minutes=10)) == early
    assert queue.pop_ready(T0 + timedelta(minutes=10)) == late
    assert len(queue) == 0


def test_pop_soonest_ignores_readiness(item_factory):
    queue = DelayQueue()
    item = item_factory()
    queue.schedule(item, T0 + timedelta(hours=1))
    assert queue.pop_soonest() == item
    assert queue.pop_soonest() is None


def test_rescheduling_replaces_the_entry(item_factory):
    queue = DelayQueue()
    item = item_factory()
    other = item_factory()
    queue.schedule(item, T0)
    queue.schedule(other, T0 + timedelta(minutes=3))
    queue.schedule(item, T0 + timedelta(minutes=7))

    assert len(queue) == 2
    assert queue.ready_at(item.line_id) == T0 + timedelta(minutes=7)
    assert [i.line_id for i in queue] == [other.line_id, item.line_id]
    assert queue.pop_soonest() == other
    assert queue.pop_soonest() == item
    assert queue.pop_soonest() is None


def test_discard_removes_entry_lazily(item_factory):
    queue = DelayQueue()
    first = item_factory()
    second = item_factory()
    queue.schedule(first, T0)
    queue.schedule(second, T0 + timedelta(minutes=1))

    assert queue.discard(first.line_id) is True
    assert queue.discard(first.line_id) is False
    assert first.line_id not in queue
    assert second.line_id in queue
    ready_at, item = queue.peek()
    assert item == second
    assert ready_at == T0 + timedelta(minutes=1)


def test_peek_on_empty_queue():
    assert DelayQueue().peek() is None
