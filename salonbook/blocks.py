"""Manual blocks of a staff member's day. Created and deleted, never edited."""
from __future__ import annotations

import logging
from datetime import date
from typing import Any, Mapping

from .errors import NotFoundError, ValidationError
from .store import DocumentStore
from .timeutils import is_valid_time, to_minutes

logger = logging.getLogger(__name__)


class BlockedSlotService:
    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    def list_blocks(
        self,
        staff_id: str,
        service_id: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list:
        blocks = self.store.list(
            "blocked_slots",
            {"staff_id": staff_id},
            ranges={"date": (start_date, end_date)},
            order_by=("date", "start_time"),
        )
        if service_id:
            blocks = [b for b in blocks if not b.service_id or b.service_id == service_id]
        return blocks

    def create_block(self, data: Mapping[str, Any]):
        if self.store.get("staff", data.get("staff_id")) is None:
            raise NotFoundError("Staff member not found")
        if data.get("service_id") and self.store.get("services", data["service_id"]) is None:
            raise NotFoundError("Service not found")
        if not isinstance(data.get("date"), date):
            raise ValidationError("date is required")

        start, end = data.get("start_time"), data.get("end_time")
        if not is_valid_time(start):
            raise ValidationError("start_time must use HH:MM format")
        if end is not None:
            if not is_valid_time(end):
                raise ValidationError("end_time must use HH:MM format")
            if to_minutes(end) <= to_minutes(start):
                raise ValidationError("end_time must be after start_time")

        block_id = self.store.create(
            "blocked_slots",
            {
                "staff_id": data["staff_id"],
                "service_id": data.get("service_id"),
                "date": data["date"],
                "start_time": start,
                "end_time": end,
                "reason": data.get("reason"),
            },
        )
        logger.info("Blocked %s %s for staff %s", data["date"], start, data["staff_id"])
        return self.store.get("blocked_slots", block_id)

    def delete_block(self, block_id: str) -> None:
        if not self.store.delete("blocked_slots", block_id):
            raise NotFoundError("Blocked slot not found")
