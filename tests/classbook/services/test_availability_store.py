from datetime import date, time

import pytest

from classbook.core.errors import NotFound, ValidationError
from classbook.services.availability_store import SqlAvailabilityStore


def test_get_slots_returns_empty_list_for_owner_without_slots(db) -> None:
    assert SqlAvailabilityStore(db).get_slots('t1') == []


def test_add_slot_normalizes_day_of_week(db) -> None:
    slot = SqlAvailabilityStore(db).add_slot(
        't1', is_recurring=True, day_of_week=' Tuesday ', start_time=time(9, 0), end_time=time(11, 0),
    )

    assert slot.day_of_week == 'tuesday'
    assert slot.slot_date is None


@pytest.mark.parametrize(
    ('kwargs', 'detail_code'),
    [
        ({'is_recurring': True, 'day_of_week': None}, 'invalid_slot_shape'),
        ({'is_recurring': True, 'day_of_week': 'monday', 'slot_date': date(2026, 1, 12)}, 'invalid_slot_shape'),
        ({'is_recurring': False, 'slot_date': None}, 'invalid_slot_shape'),
        ({'is_recurring': False, 'day_of_week': 'monday', 'slot_date': date(2026, 1, 12)}, 'invalid_slot_shape'),
        ({'is_recurring': True, 'day_of_week': 'caturday'}, 'invalid_day_of_week'),
        (
            {'is_recurring': True, 'day_of_week': 'monday', 'start_time': time(10, 0), 'end_time': time(10, 0)},
            'invalid_slot_range',
        ),
    ],
)
def test_add_slot_rejects_invalid_shapes(db, kwargs: dict, detail_code: str) -> None:
    arguments = {'start_time': time(9, 0), 'end_time': time(10, 0)}
    arguments.update(kwargs)

    with pytest.raises(ValidationError) as exception_info:
        SqlAvailabilityStore(db).add_slot('t1', **arguments)

    assert exception_info.value.detail_code == detail_code


def test_overlapping_slots_are_stored_and_listed_in_calendar_order(db) -> None:
    store = SqlAvailabilityStore(db)
    store.add_slot('t1', is_recurring=False, slot_date=date(2026, 1, 14), start_time=time(9, 0), end_time=time(10, 0))
    store.add_slot('t1', is_recurring=True, day_of_week='friday', start_time=time(9, 0), end_time=time(12, 0))
    store.add_slot('t1', is_recurring=True, day_of_week='monday', start_time=time(10, 0), end_time=time(11, 0))
    store.add_slot('t1', is_recurring=True, day_of_week='monday', start_time=time(9, 0), end_time=time(10, 30))

    slots = store.get_slots('t1')

    assert [(slot.day_of_week, slot.slot_date, slot.start_time) for slot in slots] == [
        ('monday', None, time(9, 0)),
        ('monday', None, time(10, 0)),
        ('friday', None, time(9, 0)),
        (None, date(2026, 1, 14), time(9, 0)),
    ]


def test_remove_slot_deletes_and_reports_missing(db) -> None:
    store = SqlAvailabilityStore(db)
    slot = store.add_slot('t1', is_recurring=True, day_of_week='monday', start_time=time(9, 0), end_time=time(10, 0))

    store.remove_slot(slot.id)

    assert store.get_slots('t1') == []
    with pytest.raises(NotFound):
        store.remove_slot(slot.id)
