"""Bookable slot computation for a staff member, service and day."""
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Callable, Iterable

from .availability import AvailabilityService, generate_slots
from .errors import NotFoundError, ValidationError
from .store import DocumentStore
from .timeutils import intervals_overlap, is_past_date, to_minutes

logger = logging.getLogger(__name__)

# Client bookings must start at least this far in the future.
MIN_BOOKING_BUFFER_MINUTES = 30


def booking_interval(booking: Any, default_duration: int) -> tuple[int, int]:
    start = to_minutes(booking.booking_time)
    return start, start + (booking.duration_minutes or default_duration)


def block_interval(block: Any, default_duration: int) -> tuple[int, int]:
    start = to_minutes(block.start_time)
    end = to_minutes(block.end_time) if block.end_time else start + default_duration
    return start, end


def filter_conflicts(
    slots: Iterable[str],
    *,
    duration_minutes: int,
    bookings: Iterable[Any],
    blocks: Iterable[Any],
    target_date: date,
    now: datetime,
    is_staff_booking: bool = False,
    buffer_minutes: int = MIN_BOOKING_BUFFER_MINUTES,
) -> list[dict[str, object]]:
    """Mark every slot available or not.

    A slot is unavailable when it starts before the lead-time cutoff (today
    only), or when ``[slot, slot + duration)`` overlaps a live booking or a
    blocked range. The full grid is returned so callers can render a day view.
    """
    booked = [
        booking_interval(b, duration_minutes)
        for b in bookings
        if b.status != "cancelled" and b.booking_date == target_date
    ]
    blocked = [block_interval(b, duration_minutes) for b in blocks if b.date == target_date]

    cutoff = None
    if target_date == now.date():
        cutoff = now.hour * 60 + now.minute
        if not is_staff_booking:
            cutoff += buffer_minutes

    result = []
    for slot in slots:
        start = to_minutes(slot)
        end = start + duration_minutes

        is_past = cutoff is not None and start < cutoff
        is_booked = any(intervals_overlap(start, end, b_start, b_end) for b_start, b_end in booked)
        is_blocked = any(intervals_overlap(start, end, b_start, b_end) for b_start, b_end in blocked)

        result.append({"time": slot, "available": not (is_past or is_booked or is_blocked)})
    return result


class SlotService:
    def __init__(
        self,
        store: DocumentStore,
        availability: AvailabilityService | None = None,
        buffer_minutes: int = MIN_BOOKING_BUFFER_MINUTES,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.store = store
        self.availability = availability or AvailabilityService(store)
        self.buffer_minutes = buffer_minutes
        self.clock = clock

    def blocks_for_day(self, staff_id: str, service_id: str | None, target_date: date) -> list:
        blocks = self.store.list("blocked_slots", {"staff_id": staff_id, "date": target_date})
        return [b for b in blocks if not b.service_id or b.service_id == service_id]

    def bookings_for_day(self, staff_id: str, target_date: date) -> list:
        bookings = self.store.list("bookings", {"staff_id": staff_id, "booking_date": target_date})
        return [b for b in bookings if b.status != "cancelled"]

    def available_slots(
        self,
        staff_id: str,
        service_id: str,
        target_date: date,
        duration_minutes: int | None = None,
        is_staff_booking: bool = False,
        now: datetime | None = None,
    ) -> dict[str, object]:
        now = now or self.clock()
        empty = {"date": target_date.isoformat(), "slots": []}

        if is_past_date(target_date, today=now.date()):
            return empty

        service = self.store.get("services", service_id)
        if service is None:
            raise NotFoundError("Service not found")

        duration = duration_minutes or service.duration_minutes
        if not duration or duration <= 0:
            raise ValidationError("Service duration is not configured")

        windows = self.availability.resolve_windows(staff_id, service_id, target_date)
        if not windows:
            return empty

        slots = generate_slots(windows, duration)
        grid = filter_conflicts(
            slots,
            duration_minutes=duration,
            bookings=self.bookings_for_day(staff_id, target_date),
            blocks=self.blocks_for_day(staff_id, service_id, target_date),
            target_date=target_date,
            now=now,
            is_staff_booking=is_staff_booking,
            buffer_minutes=self.buffer_minutes,
        )
        logger.debug(
            "Computed %d slots (%d available) for staff %s on %s",
            len(grid),
            sum(1 for s in grid if s["available"]),
            staff_id,
            target_date,
        )
        return {"date": target_date.isoformat(), "slots": grid}
