import uuid
from datetime import date, timedelta
from unittest.mock import MagicMock

from openingdrill.counters import NEW_QUEUED_TABLE, NEW_SHOWN_TABLE, DailyCounterStore
from openingdrill.db.database import DrillDatabase

USER = "tester"
DAY = date(2024, 3, 10)


def test_new_shown_is_keyed_by_user_deck_and_day(memory_db):
    store = DailyCounterStore(memory_db)
    deck_a, deck_b = uuid.uuid4(), uuid.uuid4()
    line = uuid.uuid4()

    store.mark_new_shown(USER, deck_a, DAY, [line])
    store.mark_new_shown(USER, deck_a, DAY, [line])

    assert store.new_shown(USER, deck_a, DAY) == {line}
    assert store.new_shown(USER, deck_b, DAY) == set()
    assert store.new_shown("other", deck_a, DAY) == set()
    assert store.new_shown(USER, deck_a, DAY + timedelta(days=1)) == set()


def test_remaining_new_slots(memory_db):
    store = DailyCounterStore(memory_db)
    deck = uuid.uuid4()
    store.mark_new_shown(USER, deck, DAY, [uuid.uuid4() for _ in range(3)])
    assert store.remaining_new_slots(USER, deck, DAY, cap=10) == 7
    assert store.remaining_new_slots(USER, deck, DAY, cap=2) == 0


def test_set_queued_new_replaces_the_set(memory_db):
    store = DailyCounterStore(memory_db)
    deck = uuid.uuid4()
    a, b, c = (uuid.uuid4() for _ in range(3))

    store.set_queued_new(USER, deck, DAY, [a, b])
    store.set_queued_new(USER, deck, DAY, [b, c])
    assert store.queued_new(USER, deck, DAY) == {b, c}

    store.drop_queued_new(USER, deck, DAY, [c])
    assert store.queued_new(USER, deck, DAY) == {b}


def test_time_spent(memory_db):
    store = DailyCounterStore(memory_db)
    store.add_time_spent(USER, DAY, 90)
    store.add_time_spent(USER, DAY, 30)
    assert store.time_spent(USER, DAY) == 120


def test_empty_marks_do_not_touch_the_database():
    db = MagicMock(spec=DrillDatabase)
    store = DailyCounterStore(db)
    store.mark_new_shown(USER, uuid.uuid4(), DAY, [])
    store.drop_queued_new(USER, uuid.uuid4(), DAY, [])
    db.add_daily_line_ids.assert_not_called()
    db.remove_daily_line_ids.assert_not_called()


def test_store_uses_expected_tables():
    db = MagicMock(spec=DrillDatabase)
    db.get_daily_line_ids.return_value = set()
    store = DailyCounterStore(db)
    deck = uuid.uuid4()
    store.new_shown(USER, deck, DAY)
    store.queued_new(USER, deck, DAY)
    tables = [c.args[0] for c in db.get_daily_line_ids.call_args_list]
    assert tables == [NEW_SHOWN_TABLE, NEW_QUEUED_TABLE]
