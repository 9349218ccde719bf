from __future__ import annotations

from datetime import date, datetime

import pytest

from salonbook.timeutils import (
    add_minutes,
    day_of_week,
    hours_until,
    intervals_overlap,
    is_past_date,
    is_valid_time,
    parse_date,
    slots_between,
    to_minutes,
)


def test_slots_between_is_inclusive_and_evenly_spaced():
    slots = slots_between("09:00", "10:30", 30)
    assert slots == ["09:00", "09:30", "10:00", "10:30"]


def test_slots_between_crosses_hour_boundaries():
    assert slots_between("09:45", "11:00", 25) == ["09:45", "10:10", "10:35", "11:00"]


def test_slots_between_last_slot_never_passes_end():
    slots = slots_between("10:00", "11:10", 20)
    assert slots[0] == "10:00"
    assert slots[-1] == "11:00"
    minutes = [to_minutes(s) for s in slots]
    assert all(b - a == 20 for a, b in zip(minutes, minutes[1:]))


def test_slots_between_start_after_end_is_empty():
    assert slots_between("12:00", "11:00", 15) == []


def test_slots_between_rejects_non_positive_step():
    with pytest.raises(ValueError):
        slots_between("10:00", "11:00", 0)


def test_add_minutes_wall_clock():
    assert add_minutes("10:45", 30) == "11:15"
    assert add_minutes("09:00", 0) == "09:00"


@pytest.mark.parametrize("value", ["24:00", "9:00", "10:60", "", None, "10:00:00"])
def test_is_valid_time_rejects_malformed(value):
    assert not is_valid_time(value)


def test_to_minutes_rejects_malformed():
    with pytest.raises(ValueError):
        to_minutes("25:00")


def test_touching_intervals_do_not_overlap():
    assert not intervals_overlap(600, 630, 630, 660)
    assert not intervals_overlap(630, 660, 600, 630)


def test_intervals_overlap_is_symmetric():
    assert intervals_overlap(600, 660, 630, 690)
    assert intervals_overlap(630, 690, 600, 660)
    assert intervals_overlap(600, 720, 630, 640)


def test_hours_until_is_signed():
    now = datetime(2030, 6, 3, 9, 0)
    assert hours_until(date(2030, 6, 4), "09:00", now) == 24.0
    assert hours_until(date(2030, 6, 3), "08:30", now) == -0.5


def test_is_past_date_compares_dates_only():
    today = date(2030, 6, 3)
    assert is_past_date(date(2030, 6, 2), today=today)
    assert not is_past_date(today, today=today)


def test_day_of_week_and_parse_date():
    assert day_of_week(date(2030, 6, 3)) == "monday"
    assert parse_date("2030-06-09") == date(2030, 6, 9)
    with pytest.raises(ValueError):
        parse_date("09/06/2030")
