"""Read-side money helpers: per-booking totals and the end-of-day report.

All amounts are integer minor units. Nothing in this module writes.
"""
from __future__ import annotations

from datetime import date
from typing import Any, Iterable, Mapping

from .errors import ValidationError
from .payments import DEPOSIT_PERCENTAGE, deposit_for
from .store import DocumentStore

REPORT_METHODS = ("all", "cash", "pos")


def extras_total(booking: Any) -> int:
    return sum(int(item.get("price") or 0) for item in booking.additional_services or [])


def calculate_booking_totals(
    booking: Any,
    service: Any = None,
    deposit_percentage: int = DEPOSIT_PERCENTAGE,
) -> dict[str, object]:
    """Base, extras, deposit and outstanding balance for a booking."""
    service = service if service is not None else booking.service
    base = (service.price_cents or 0) if service is not None else 0
    extras = extras_total(booking)
    total = base + extras

    if booking.deposit_paid:
        deposit = (
            booking.deposit_amount
            if booking.deposit_amount is not None
            else deposit_for(base, deposit_percentage)
        )
    else:
        deposit = 0

    fully_paid = booking.payment_status == "paid"
    outstanding = 0 if fully_paid else max(0, total - deposit)
    return {
        "base_price": base,
        "extras_total": extras,
        "total": total,
        "deposit": deposit,
        "outstanding": outstanding,
        "is_fully_paid": fully_paid,
    }


def has_registered_payment(booking: Any) -> bool:
    return bool(booking.deposit_paid) or booking.payment_status == "paid"


def retained_amount(
    booking: Any,
    service: Any = None,
    staff: Any = None,
    deposit_percentage: int = DEPOSIT_PERCENTAGE,
) -> int:
    """What the salon keeps from a booking.

    Self-employed staff keep the service price minus the deposit, so the salon
    only counts the deposit. Additional services always count in full.
    """
    service = service if service is not None else booking.service
    staff = staff if staff is not None else booking.staff
    base = (service.price_cents or 0) if service is not None else 0
    if staff is not None and staff.employment_type == "self-employed":
        base = deposit_for(base, deposit_percentage)
    return base + extras_total(booking)


def closer_id(booking: Any) -> str:
    return (
        booking.completed_by
        or booking.final_payment_received_by
        or booking.created_by_user_id
        or "unknown"
    )


def closer_name(booking: Any, staff_by_user_id: Mapping[str, Any]) -> str:
    name = booking.completed_by_name or booking.final_payment_received_by_name
    if name:
        return name
    key = closer_id(booking)
    if key == "unknown":
        return "Unspecified"
    staff = staff_by_user_id.get(key)
    if staff is not None:
        return staff.full_name
    return booking.created_by_name or "Unspecified"


def summarize_payments(
    bookings: Iterable[Any],
    staff_by_user_id: Mapping[str, Any],
    deposit_percentage: int = DEPOSIT_PERCENTAGE,
) -> dict[str, object]:
    by_method = {"cash": {"amount": 0, "count": 0}, "pos": {"amount": 0, "count": 0}}
    by_staff: dict[str, dict[str, object]] = {}
    payments = []

    for booking in bookings:
        amount = retained_amount(booking, deposit_percentage=deposit_percentage)
        method = booking.final_payment_method or "cash"
        by_method.setdefault(method, {"amount": 0, "count": 0})
        by_method[method]["amount"] += amount
        by_method[method]["count"] += 1

        staff_key = closer_id(booking)
        entry = by_staff.setdefault(
            staff_key,
            {"id": staff_key, "name": closer_name(booking, staff_by_user_id), "amount": 0, "count": 0},
        )
        entry["amount"] += amount
        entry["count"] += 1

        payments.append(
            {
                "booking_id": booking.booking_id,
                "booking_time": booking.booking_time,
                "client_name": booking.client_name,
                "service_name": booking.service.name if booking.service else None,
                "staff_id": booking.staff_id,
                "method": method,
                "amount": amount,
                "closed_by": staff_key,
                "closed_by_name": entry["name"],
            }
        )

    return {
        "total_cash": by_method["cash"]["amount"],
        "total_pos": by_method["pos"]["amount"],
        "total_amount": sum(p["amount"] for p in payments),
        "transaction_count": len(payments),
        "by_method": by_method,
        "by_staff": list(by_staff.values()),
        "payments": payments,
    }


class ReconciliationService:
    def __init__(self, store: DocumentStore, deposit_percentage: int = DEPOSIT_PERCENTAGE) -> None:
        self.store = store
        self.deposit_percentage = deposit_percentage

    def payments_for_day(self, target_date: date, method: str = "all", staff: str = "all") -> list:
        if method not in REPORT_METHODS:
            raise ValidationError("method must be one of: " + ", ".join(REPORT_METHODS))

        bookings = self.store.list("bookings", {"booking_date": target_date}, order_by=("booking_time",))
        selected = []
        for booking in bookings:
            if not has_registered_payment(booking):
                continue
            if method != "all" and booking.final_payment_method != method:
                continue
            if staff != "all" and closer_id(booking) != staff:
                continue
            selected.append(booking)
        return selected

    def end_of_day(self, target_date: date, method: str = "all", staff: str = "all") -> dict[str, object]:
        bookings = self.payments_for_day(target_date, method, staff)
        staff_by_user_id = {s.user_id: s for s in self.store.list("staff") if s.user_id}
        summary = summarize_payments(bookings, staff_by_user_id, self.deposit_percentage)
        return {"date": target_date.isoformat(), **summary}
