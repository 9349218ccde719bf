"""Recurring availability windows: resolution for a date and slot expansion."""
from __future__ import annotations

import logging
from datetime import date
from typing import Any, Iterable, Mapping

from .errors import ConflictError, NotFoundError, ValidationError
from .models import DAYS_OF_WEEK
from .store import DocumentStore
from .timeutils import day_of_week, from_minutes, intervals_overlap, is_valid_time, slots_between, to_minutes

logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = (
    "service_id",
    "day_of_week",
    "start_time",
    "end_time",
    "is_available",
    "start_date",
    "end_date",
)


def _date_ranges_intersect(a, b) -> bool:
    a_start, a_end = a.start_date or date.min, a.end_date or date.max
    b_start, b_end = b.start_date or date.min, b.end_date or date.max
    return a_start <= b_end and b_start <= a_end


def _window_sort_key(window) -> tuple[int, int]:
    return DAYS_OF_WEEK.index(window.day_of_week), to_minutes(window.start_time)


def generate_slots(windows: Iterable[Any], duration_minutes: int) -> list[str]:
    """Expand windows into sorted, de-duplicated slot start times.

    Slots are ``duration_minutes`` apart and each one must end by the close
    of its window, so a 10:00-12:00 window with 30 minute slots yields
    10:00, 10:30, 11:00 and 11:30.
    """
    if duration_minutes <= 0:
        raise ValidationError("duration must be a positive number of minutes")

    slots: set[str] = set()
    for window in windows:
        last = to_minutes(window.end_time) - duration_minutes
        if last < to_minutes(window.start_time):
            continue
        slots.update(slots_between(window.start_time, from_minutes(last), duration_minutes))
    return sorted(slots)


class AvailabilityService:
    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    def list_windows(self, staff_id: str, service_id: str | None = None) -> list:
        """Windows for a staff member; a service filter keeps service-agnostic ones too."""
        windows = self.store.list("availability", {"staff_id": staff_id})
        if service_id:
            windows = [w for w in windows if not w.service_id or w.service_id == service_id]
        return sorted(windows, key=_window_sort_key)

    def resolve_windows(self, staff_id: str, service_id: str | None, target_date: date) -> list:
        """Active windows matching the weekday and validity range of ``target_date``."""
        windows = self.list_windows(staff_id, service_id)
        if service_id and not windows:
            windows = self.list_windows(staff_id)

        weekday = day_of_week(target_date)
        return [
            w
            for w in windows
            if w.is_available
            and w.day_of_week == weekday
            and (w.start_date is None or target_date >= w.start_date)
            and (w.end_date is None or target_date <= w.end_date)
        ]

    # -- write path -------------------------------------------------------

    def _validate(self, fields: Mapping[str, Any]) -> None:
        if fields.get("day_of_week") not in DAYS_OF_WEEK:
            raise ValidationError("day_of_week must be one of: " + ", ".join(DAYS_OF_WEEK))
        start, end = fields.get("start_time"), fields.get("end_time")
        if not is_valid_time(start) or not is_valid_time(end):
            raise ValidationError("start_time and end_time must use HH:MM format")
        if to_minutes(start) >= to_minutes(end):
            raise ValidationError("start_time must be before end_time")
        start_date, end_date = fields.get("start_date"), fields.get("end_date")
        if start_date and end_date and start_date > end_date:
            raise ValidationError("start_date must not be after end_date")

    def _check_overlap(self, candidate, exclude_id: str | None = None) -> None:
        siblings = self.store.list(
            "availability",
            {
                "staff_id": candidate.staff_id,
                "day_of_week": candidate.day_of_week,
                "service_id": candidate.service_id,
            },
        )
        start, end = to_minutes(candidate.start_time), to_minutes(candidate.end_time)
        for other in siblings:
            if other.availability_id == exclude_id:
                continue
            if not _date_ranges_intersect(candidate, other):
                continue
            if intervals_overlap(start, end, to_minutes(other.start_time), to_minutes(other.end_time)):
                raise ConflictError(
                    f"Window overlaps existing availability {other.start_time}-{other.end_time} "
                    f"on {other.day_of_week}"
                )

    def create_window(self, data: Mapping[str, Any]):
        if self.store.get("staff", data.get("staff_id")) is None:
            raise NotFoundError("Staff member not found")
        if data.get("service_id") and self.store.get("services", data["service_id"]) is None:
            raise NotFoundError("Service not found")

        fields = {"is_available": True, **{k: data.get(k) for k in ("staff_id", *_EDITABLE_FIELDS) if k in data}}
        self._validate(fields)

        candidate = _WindowView(fields)
        self._check_overlap(candidate)

        availability_id = self.store.create("availability", fields)
        logger.info("Created availability %s for staff %s", availability_id, fields["staff_id"])
        return self.store.get("availability", availability_id)

    def update_window(self, availability_id: str, changes: Mapping[str, Any]):
        window = self.store.get("availability", availability_id)
        if window is None:
            raise NotFoundError("Availability not found")

        updates = {k: v for k, v in changes.items() if k in _EDITABLE_FIELDS}
        if updates.get("service_id") and self.store.get("services", updates["service_id"]) is None:
            raise NotFoundError("Service not found")
        merged = {field: getattr(window, field) for field in ("staff_id", *_EDITABLE_FIELDS)}
        merged.update(updates)
        self._validate(merged)
        self._check_overlap(_WindowView(merged), exclude_id=availability_id)

        return self.store.update("availability", availability_id, updates)

    def delete_window(self, availability_id: str) -> None:
        if not self.store.delete("availability", availability_id):
            raise NotFoundError("Availability not found")


class _WindowView:
    """Attribute view over unsaved window fields."""

    def __init__(self, fields: Mapping[str, Any]) -> None:
        self.staff_id = fields.get("staff_id")
        self.service_id = fields.get("service_id")
        self.day_of_week = fields.get("day_of_week")
        self.start_time = fields.get("start_time")
        self.end_time = fields.get("end_time")
        self.start_date = fields.get("start_date")
        self.end_date = fields.get("end_date")
