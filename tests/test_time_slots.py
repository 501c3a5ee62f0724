from datetime import date, datetime

import pytest

from clinic_queue.services.errors import ValidationError
from clinic_queue.services.time_slots import (
    generate_slots,
    is_within_booking_window,
    normalize_slot,
    parse_day,
    resolve_availability,
)

DAY = date(2024, 6, 1)


def test_grid_covers_clinic_hours_in_ten_minute_steps():
    slots = generate_slots(DAY, datetime(2024, 5, 30, 12, 0))
    assert len(slots) == 18
    assert slots[0].time == "09:00"
    assert slots[-1].time == "11:50"
    assert all(slot.available for slot in slots)


def test_grid_is_deterministic():
    now = datetime(2024, 6, 1, 10, 3)
    first = [s.time for s in generate_slots(DAY, now)]
    again = [s.time for s in generate_slots(DAY, now)]
    assert first == again


def test_display_labels_use_twelve_hour_clock():
    slots = generate_slots(DAY, datetime(2024, 5, 1), "11:50", "12:20", 10)
    assert [s.display_time for s in slots] == ["11:50 AM", "12:00 PM", "12:10 PM"]


def test_past_slots_only_blocked_on_the_current_day():
    now = datetime(2024, 6, 1, 9, 15)
    today = {s.time: s.available for s in generate_slots(DAY, now)}
    assert today["09:00"] is False
    assert today["09:10"] is False
    assert today["09:20"] is True

    tomorrow = generate_slots(date(2024, 6, 2), now)
    assert all(s.available for s in tomorrow)


def test_slot_starting_exactly_now_is_still_available():
    slots = generate_slots(DAY, datetime(2024, 6, 1, 9, 10))
    assert {s.time: s.available for s in slots}["09:10"] is True


def test_non_positive_interval_rejected():
    with pytest.raises(ValueError):
        generate_slots(DAY, datetime(2024, 6, 1), interval_minutes=0)


def test_booked_slots_marked_unavailable():
    now = datetime(2024, 6, 1, 9, 5)
    resolved = resolve_availability(generate_slots(DAY, now), ["09:30", "10:00"])
    unavailable = {s.time for s in resolved if not s.available}
    assert unavailable == {"09:00", "09:30", "10:00"}
    for slot in resolved:
        if not slot.available:
            assert slot.time in {"09:30", "10:00"} or slot.time < "09:05"


def test_booking_window_is_inclusive():
    today = date(2024, 6, 1)
    assert is_within_booking_window(today, today)
    assert is_within_booking_window(date(2024, 7, 1), today)
    assert not is_within_booking_window(date(2024, 7, 2), today)
    assert not is_within_booking_window(date(2024, 5, 31), today)


@pytest.mark.parametrize("raw", ["9:00", "09:00", " 09:00 "])
def test_normalize_slot_pads_hours(raw):
    assert normalize_slot(raw) == "09:00"


@pytest.mark.parametrize("raw", ["", "9", "25:00", "09:60", "nine"])
def test_normalize_slot_rejects_bad_values(raw):
    with pytest.raises(ValidationError) as info:
        normalize_slot(raw)
    assert info.value.reason == "invalid_time_slot"


def test_parse_day_rejects_garbage():
    assert parse_day("2024-06-01") == DAY
    with pytest.raises(ValidationError):
        parse_day("01/06/2024")
    assert parse_day("2024-06-01T10:30:00") == DAY
    with pytest.raises(ValidationError):
        parse_day("2024-06-01garbage")
