"""Append-only audit trail entries stored on a booking."""
from __future__ import annotations

import uuid
from typing import Any

from .models import utc_now
from .policy import Actor, Role

AUDIT_ACTIONS = (
    "created",
    "status_changed",
    "payment_received",
    "completed",
    "cancelled",
    "rescheduled",
    "updated",
)

STATUS_LABELS = {
    "pending": "Pending",
    "confirmed": "Confirmed",
    "completed": "Completed",
    "cancelled": "Cancelled",
    "no-show": "No-show",
}

METHOD_LABELS = {"cash": "Cash", "pos": "Card terminal"}


def _money(amount_cents: int) -> str:
    return f"{amount_cents / 100:.2f}"


def create_modification(
    actor: Actor,
    action: str,
    description: str,
    field: str | None = None,
    old_value: str | None = None,
    new_value: str | None = None,
) -> dict[str, Any]:
    if action not in AUDIT_ACTIONS:
        raise ValueError(f"Unknown audit action '{action}'")

    entry: dict[str, Any] = {
        "id": f"mod_{uuid.uuid4().hex}",
        "timestamp": utc_now().isoformat(),
        "user_id": actor.user_id,
        "user_name": actor.display_name,
        "user_role": actor.role.value,
        "action": action,
        "description": description,
    }
    if field is not None:
        entry["field"] = field
    if old_value is not None:
        entry["old_value"] = old_value
    if new_value is not None:
        entry["new_value"] = new_value
    return entry


def track_creation(actor: Actor) -> dict[str, Any]:
    labels = {Role.OWNER: "Owner", Role.ADMIN: "Admin", Role.EMPLOYEE: "Employee", Role.CLIENT: "Client"}
    return create_modification(
        actor, "created", f"Booking created by {actor.display_name} ({labels[actor.role]})"
    )


def track_status_change(actor: Actor, old_status: str, new_status: str) -> dict[str, Any]:
    old_label = STATUS_LABELS.get(old_status, old_status)
    new_label = STATUS_LABELS.get(new_status, new_status)
    return create_modification(
        actor,
        "status_changed",
        f'Status changed from "{old_label}" to "{new_label}" by {actor.display_name}',
        "status",
        old_status,
        new_status,
    )


def track_no_show(actor: Actor, old_status: str) -> dict[str, Any]:
    return create_modification(
        actor,
        "status_changed",
        f'Marked as "No-show" by {actor.display_name}',
        "status",
        old_status,
        "no-show",
    )


def track_payment_received(actor: Actor, amount_cents: int, method: str) -> dict[str, Any]:
    return create_modification(
        actor,
        "payment_received",
        f"Payment of {_money(amount_cents)} received ({METHOD_LABELS.get(method, method)}) "
        f"by {actor.display_name}",
    )


def track_reschedule(actor: Actor, old_date: str, old_time: str, new_date: str, new_time: str) -> dict[str, Any]:
    return create_modification(
        actor,
        "rescheduled",
        f"Rescheduled from {old_date} {old_time} to {new_date} {new_time} by {actor.display_name}",
        "schedule",
        f"{old_date} {old_time}",
        f"{new_date} {new_time}",
    )


def track_date_change(actor: Actor, old_date: str, new_date: str) -> dict[str, Any]:
    return create_modification(
        actor,
        "updated",
        f"Date changed from {old_date} to {new_date} by {actor.display_name}",
        "booking_date",
        old_date,
        new_date,
    )


def track_time_change(actor: Actor, old_time: str, new_time: str) -> dict[str, Any]:
    return create_modification(
        actor,
        "updated",
        f"Time changed from {old_time} to {new_time} by {actor.display_name}",
        "booking_time",
        old_time,
        new_time,
    )


def track_field_update(actor: Actor, fields: list[str]) -> dict[str, Any]:
    return create_modification(
        actor, "updated", f"Updated {', '.join(fields)} by {actor.display_name}"
    )


def track_additional_service(actor: Actor, service_name: str, price_cents: int) -> dict[str, Any]:
    return create_modification(
        actor,
        "updated",
        f"Additional service added: {service_name} ({_money(price_cents)}) by {actor.display_name}",
    )


def track_additional_service_removed(actor: Actor, service_name: str) -> dict[str, Any]:
    return create_modification(
        actor, "updated", f"Additional service removed: {service_name} by {actor.display_name}"
    )


def track_cancellation(actor: Actor, old_status: str, reason: str | None = None) -> dict[str, Any]:
    description = f"Booking cancelled by {actor.display_name}"
    if reason:
        description = f"{description}: {reason}"
    return create_modification(actor, "cancelled", description, "status", old_status, "cancelled")


def track_completion(actor: Actor) -> dict[str, Any]:
    return create_modification(
        actor, "completed", f"Booking completed and closed by {actor.display_name}"
    )


def append_modification(booking: Any, *entries: dict[str, Any]) -> list[dict[str, Any]]:
    """New modifications list with ``entries`` appended; the stored list is not mutated."""
    return [*(booking.modifications or []), *entries]


def recent_modifications(booking: Any, limit: int = 10) -> list[dict[str, Any]]:
    entries = list(booking.modifications or [])
    entries.sort(key=lambda entry: entry.get("timestamp", ""), reverse=True)
    return entries[:limit]
