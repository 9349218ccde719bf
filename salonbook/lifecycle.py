"""Booking state machine: creation, cancellation, status changes and edits.

This module is the only writer of booking state. Every transition goes
through :func:`salonbook.policy.authorize` and appends to the booking's
audit trail.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Iterable, Mapping

from . import audit
from .errors import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    PaymentError,
    PermissionDeniedError,
    ValidationError,
)
from .models import BOOKING_STATUSES, PAYMENT_METHODS, utc_now
from .notifications import BOOKING_CANCELLED, BOOKING_CONFIRMATION, STAFF_NEW_BOOKING
from .payments import DEPOSIT_PERCENTAGE, PaymentProcessorError, deposit_for
from .policy import MIN_CANCEL_HOURS, STAFF_ROLES, Action, Actor, Role, authorize
from .slots import booking_interval
from .store import DocumentStore
from .timeutils import hours_until, intervals_overlap, to_minutes

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = frozenset({"completed", "cancelled", "no-show"})

# Cancellation has its own operation and is deliberately absent here.
STATUS_TRANSITIONS = {
    "pending": frozenset({"confirmed", "no-show"}),
    "confirmed": frozenset({"completed", "no-show"}),
}

EDITABLE_FIELDS = (
    "client_name",
    "client_email",
    "client_phone",
    "notes",
    "booking_date",
    "booking_time",
    "staff_id",
)

REFUND_FAILED_STATUSES = frozenset({"failed", "canceled"})


@dataclass(frozen=True)
class CancellationResult:
    booking: Any
    refund_status: str
    hours_until: float

    def to_dict(self) -> dict[str, object]:
        return {
            "booking": self.booking.to_dict(),
            "refund_status": self.refund_status,
            "hours_until": self.hours_until,
        }


def _money(amount_cents: int | None) -> str:
    return f"{(amount_cents or 0) / 100:.2f}"


class BookingLifecycle:
    def __init__(
        self,
        store: DocumentStore,
        processor,
        notifier=None,
        *,
        deposit_percentage: int = DEPOSIT_PERCENTAGE,
        min_cancel_hours: float = MIN_CANCEL_HOURS,
        staff_notification_allowlist: Iterable[str] = (),
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.store = store
        self.processor = processor
        self.notifier = notifier
        self.deposit_percentage = deposit_percentage
        self.min_cancel_hours = min_cancel_hours
        self.staff_notification_allowlist = frozenset(e.lower() for e in staff_notification_allowlist)
        self.clock = clock

    # -- queries ----------------------------------------------------------

    def get_booking(self, booking_id: str):
        booking = self.store.get("bookings", booking_id)
        if booking is None:
            raise NotFoundError("Booking not found")
        return booking

    def list_bookings(
        self,
        staff_id: str | None = None,
        status: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list:
        filters = {}
        if staff_id:
            filters["staff_id"] = staff_id
        if status:
            if status not in BOOKING_STATUSES:
                raise ValidationError("status must be one of: " + ", ".join(BOOKING_STATUSES))
            filters["status"] = status
        return self.store.list(
            "bookings",
            filters,
            ranges={"booking_date": (start_date, end_date)},
            order_by=("booking_date", "booking_time"),
        )

    def _check_double_booking(
        self,
        staff_id: str,
        booking_date: date,
        booking_time: str,
        duration: int,
        exclude_id: str | None = None,
    ) -> None:
        start = to_minutes(booking_time)
        existing = self.store.list("bookings", {"staff_id": staff_id, "booking_date": booking_date})
        for other in existing:
            if other.booking_id == exclude_id or other.status == "cancelled":
                continue
            other_start, other_end = booking_interval(other, duration)
            if intervals_overlap(start, start + duration, other_start, other_end):
                raise ConflictError("Staff member has a conflicting booking at this time")

    # -- creation ---------------------------------------------------------

    def create_booking(self, request):
        """Create a booking from a validated :class:`~salonbook.schemas.BookingCreate`.

        Unless ``allow_unpaid`` is set by a staff member, the referenced
        payment intent must have succeeded and cover the deposit. Nothing is
        written when any check fails.
        """
        role = request.created_by_role or Role.CLIENT
        actor = Actor(
            role=role,
            user_id=request.created_by_user_id,
            name=request.created_by_name or (request.client_name if role is Role.CLIENT else None),
        )
        if request.allow_unpaid and role not in STAFF_ROLES:
            raise PermissionDeniedError("Only salon staff can create bookings without a deposit.")
        requires_deposit = not request.allow_unpaid

        service = self.store.get("services", request.service_id)
        if service is None:
            raise NotFoundError("Service not found")
        staff = self.store.get("staff", request.staff_id)
        if staff is None:
            raise NotFoundError("Staff member not found")
        if not service.duration_minutes or service.duration_minutes <= 0:
            raise ValidationError("Service duration is not configured correctly.")

        price = service.price_cents
        if not price or price <= 0:
            raise ValidationError("Service price is not configured correctly.")
        expected_deposit = deposit_for(price, self.deposit_percentage)

        self._check_double_booking(
            staff.staff_id, request.booking_date, request.booking_time, service.duration_minutes
        )

        collected = None
        if requires_deposit:
            collected = self._verify_payment(request.payment_intent_id, expected_deposit)

        booking_id = self.store.create(
            "bookings",
            {
                "staff_id": staff.staff_id,
                "service_id": service.service_id,
                "client_name": request.client_name,
                "client_email": request.client_email,
                "client_phone": request.client_phone,
                "booking_date": request.booking_date,
                "booking_time": request.booking_time,
                "duration_minutes": service.duration_minutes,
                "status": "confirmed" if requires_deposit else "pending",
                "notes": request.notes,
                "requires_deposit": requires_deposit,
                "deposit_amount": collected,
                "deposit_paid": requires_deposit,
                "payment_intent_id": request.payment_intent_id if requires_deposit else None,
                "payment_status": "paid" if requires_deposit else "pending",
                "created_by_role": role.value,
                "created_by_name": actor.display_name,
                "created_by_user_id": request.created_by_user_id,
                "modifications": [audit.track_creation(actor)],
                "additional_services": [],
            },
        )
        booking = self.store.get("bookings", booking_id)
        logger.info(
            "Created booking %s for staff %s on %s %s (%s)",
            booking_id,
            staff.staff_id,
            request.booking_date,
            request.booking_time,
            booking.status,
        )
        self._notify_created(booking, service, staff)
        return booking

    def _verify_payment(self, payment_intent_id: str | None, expected_deposit: int) -> int:
        if not payment_intent_id:
            raise ValidationError("payment_intent_id is required to confirm the deposit.")
        try:
            intent = self.processor.get_payment_intent(payment_intent_id)
        except PaymentProcessorError as exc:
            raise PaymentError("Unable to verify the payment for this booking.") from exc

        if intent.status != "succeeded":
            logger.info("Payment intent %s has status %s", payment_intent_id, intent.status)
            raise PaymentError("The payment for this booking was not completed. Please try again.")

        collected = intent.amount_received or intent.amount
        if collected < expected_deposit:
            raise ValidationError(
                f"Deposit of {_money(collected)} is below the required {_money(expected_deposit)}."
            )
        return collected

    # -- notifications ----------------------------------------------------

    def _staff_may_be_notified(self, staff) -> bool:
        if not staff or not staff.email:
            return False
        if not self.staff_notification_allowlist:
            return True
        return staff.email.lower() in self.staff_notification_allowlist

    @staticmethod
    def _notification_data(booking, service, staff) -> dict[str, object]:
        return {
            "booking_id": booking.booking_id,
            "client_name": booking.client_name,
            "service_name": service.name if service else None,
            "staff_name": staff.full_name if staff else None,
            "booking_date": booking.booking_date.isoformat(),
            "booking_time": booking.booking_time,
            "duration_minutes": booking.duration_minutes,
            "price": _money(service.price_cents) if service and service.price_cents else None,
        }

    def _notify_created(self, booking, service, staff) -> None:
        if self.notifier is None:
            return
        try:
            data = self._notification_data(booking, service, staff)
            if booking.client_email:
                self.notifier.dispatch(BOOKING_CONFIRMATION, booking.client_email, data)
            if self._staff_may_be_notified(staff):
                self.notifier.dispatch(STAFF_NEW_BOOKING, staff.email, data)
        except Exception:
            logger.warning("Could not queue notifications for booking %s", booking.booking_id, exc_info=True)

    def _notify_cancelled(self, booking, refund_status: str) -> None:
        if self.notifier is None or not booking.client_email:
            return
        try:
            data = self._notification_data(booking, booking.service, booking.staff)
            data["refund_status"] = refund_status
            self.notifier.dispatch(BOOKING_CANCELLED, booking.client_email, data)
        except Exception:
            logger.warning(
                "Could not queue cancellation notice for booking %s", booking.booking_id, exc_info=True
            )

    # -- cancellation -----------------------------------------------------

    def cancel_booking(
        self,
        booking_id: str,
        actor: Actor,
        reason: str | None = None,
        force: bool = False,
        now: datetime | None = None,
    ) -> CancellationResult:
        """Cancel a booking, refunding a paid deposit when possible.

        A failed refund never blocks the cancellation; the booking keeps its
        ``paid`` payment status so the failure is visible for follow-up.
        """
        booking = self.get_booking(booking_id)
        if booking.status == "cancelled":
            raise InvalidTransitionError("Booking is already cancelled.")
        if booking.status in TERMINAL_STATUSES:
            raise InvalidTransitionError(f"A booking marked {booking.status} cannot be cancelled.")

        now = now or self.clock()
        remaining = hours_until(booking.booking_date, booking.booking_time, now)
        authorize(
            Action.CANCEL,
            actor,
            booking,
            hours_until=remaining,
            force=force,
            min_cancel_hours=self.min_cancel_hours,
        )

        refund_status = "none"
        changes: dict[str, Any] = {}
        if booking.payment_status == "paid" and booking.payment_intent_id and booking.deposit_amount:
            refund_status = self._refund(booking)
            if refund_status == "refunded":
                changes.update(payment_status="refunded", deposit_paid=False)

        old_status = booking.status
        changes.update(
            status="cancelled",
            cancelled_at=utc_now(),
            cancelled_by=actor.user_id or actor.role.value,
            cancellation_reason=reason,
            refund_status=refund_status,
            modifications=audit.append_modification(
                booking, audit.track_cancellation(actor, old_status, reason)
            ),
        )
        booking = self.store.update("bookings", booking_id, changes)
        logger.info("Cancelled booking %s (refund: %s)", booking_id, refund_status)

        self._notify_cancelled(booking, refund_status)
        return CancellationResult(booking=booking, refund_status=refund_status, hours_until=round(remaining, 2))

    def _refund(self, booking) -> str:
        try:
            status = self.processor.create_refund(booking.payment_intent_id, booking.deposit_amount)
        except Exception:
            logger.exception(
                "Refund of %s for booking %s failed", booking.deposit_amount, booking.booking_id
            )
            return "failed"
        if status in REFUND_FAILED_STATUSES:
            logger.warning("Refund for booking %s returned status %s", booking.booking_id, status)
            return "failed"
        return "refunded"

    # -- status transitions -----------------------------------------------

    def _transition(self, booking, new_status: str, actor: Actor) -> tuple[dict[str, Any], dict[str, Any]]:
        if new_status not in BOOKING_STATUSES:
            raise ValidationError("status must be one of: " + ", ".join(BOOKING_STATUSES))
        if new_status == "cancelled":
            raise ValidationError("Use the cancellation operation to cancel a booking.")
        if new_status not in STATUS_TRANSITIONS.get(booking.status, ()):
            raise InvalidTransitionError(
                f"Cannot change status from {booking.status} to {new_status}."
            )

        stamp = utc_now()
        changes: dict[str, Any] = {"status": new_status}
        if new_status == "completed":
            changes.update(
                completed_at=stamp,
                completed_by=actor.user_id,
                completed_by_name=actor.display_name,
                completed_by_role=actor.role.value,
            )
            entry = audit.track_status_change(actor, booking.status, new_status)
        elif new_status == "no-show":
            changes.update(
                no_show_at=stamp,
                no_show_by=actor.user_id,
                no_show_by_name=actor.display_name,
            )
            entry = audit.track_no_show(actor, booking.status)
        else:
            entry = audit.track_status_change(actor, booking.status, new_status)
        return changes, entry

    def change_status(self, booking_id: str, new_status: str, actor: Actor):
        booking = self.get_booking(booking_id)
        authorize(Action.CHANGE_STATUS, actor, booking)
        changes, entry = self._transition(booking, new_status, actor)
        changes["modifications"] = audit.append_modification(booking, entry)
        logger.info("Booking %s: %s -> %s", booking_id, booking.status, new_status)
        return self.store.update("bookings", booking_id, changes)

    # -- edits ------------------------------------------------------------

    def update_booking(self, booking_id: str, changes: Mapping[str, Any], actor: Actor):
        booking = self.get_booking(booking_id)
        changes = dict(changes)
        new_status = changes.pop("status", None)
        if new_status == "cancelled":
            raise ValidationError(
                "Bookings must be cancelled through the cancellation operation so refunds are applied."
            )

        authorize(Action.EDIT, actor, booking)
        if changes.get("staff_id") and changes["staff_id"] != booking.staff_id:
            authorize(Action.REASSIGN, actor, booking)
            if self.store.get("staff", changes["staff_id"]) is None:
                raise NotFoundError("Staff member not found")

        if booking.status in TERMINAL_STATUSES:
            raise InvalidTransitionError(f"A booking marked {booking.status} can no longer be edited.")

        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError("Fields cannot be edited: " + ", ".join(sorted(unknown)))
        if changes.get("client_name") is not None and not changes["client_name"].strip():
            raise ValidationError("client_name cannot be empty")
        if "booking_time" in changes and changes["booking_time"] is None:
            raise ValidationError("booking_time cannot be empty")
        if "booking_date" in changes and changes["booking_date"] is None:
            raise ValidationError("booking_date cannot be empty")
        if "staff_id" in changes and not changes["staff_id"]:
            raise ValidationError("staff_id cannot be empty")

        fields = {k: v for k, v in changes.items() if getattr(booking, k) != v}

        status_changes: dict[str, Any] = {}
        entries = []
        if new_status is not None and new_status != booking.status:
            status_changes, status_entry = self._transition(booking, new_status, actor)
            entries.append(status_entry)

        if not fields and not status_changes:
            return booking

        if {"booking_date", "booking_time", "staff_id"} & set(fields):
            self._check_double_booking(
                fields.get("staff_id", booking.staff_id),
                fields.get("booking_date", booking.booking_date),
                fields.get("booking_time", booking.booking_time),
                booking.duration_minutes,
                exclude_id=booking.booking_id,
            )

        old_date, old_time = booking.booking_date.isoformat(), booking.booking_time
        if "booking_date" in fields and "booking_time" in fields:
            entries.append(
                audit.track_reschedule(
                    actor, old_date, old_time, fields["booking_date"].isoformat(), fields["booking_time"]
                )
            )
        elif "booking_date" in fields:
            entries.append(audit.track_date_change(actor, old_date, fields["booking_date"].isoformat()))
        elif "booking_time" in fields:
            entries.append(audit.track_time_change(actor, old_time, fields["booking_time"]))

        other = sorted(set(fields) - {"booking_date", "booking_time"})
        if other:
            entries.append(audit.track_field_update(actor, other))

        updates = {**fields, **status_changes, "modifications": audit.append_modification(booking, *entries)}
        logger.info("Updated booking %s: %s", booking_id, ", ".join(sorted(set(fields) | set(status_changes))))
        return self.store.update("bookings", booking_id, updates)

    def delete_booking(self, booking_id: str, actor: Actor) -> None:
        """Remove a booking outright. Owner/admin only; lifecycle rules do not apply."""
        booking = self.get_booking(booking_id)
        authorize(Action.DELETE, actor, booking)
        self.store.delete("bookings", booking_id)
        logger.info("Deleted booking %s by %s", booking_id, actor.display_name)

    # -- close-out --------------------------------------------------------

    def _open_for_close_out(self, booking_id: str, actor: Actor):
        booking = self.get_booking(booking_id)
        authorize(Action.CLOSE_SALE, actor, booking)
        if booking.status in TERMINAL_STATUSES:
            raise InvalidTransitionError(f"A booking marked {booking.status} is already closed.")
        return booking

    def add_additional_service(
        self,
        booking_id: str,
        actor: Actor,
        service_name: str | None = None,
        price_cents: int | None = None,
        service_id: str | None = None,
    ):
        booking = self._open_for_close_out(booking_id, actor)

        if service_id:
            service = self.store.get("services", service_id)
            if service is None:
                raise NotFoundError("Service not found")
            service_name = service_name or service.name
            price_cents = price_cents or service.price_cents

        if not service_name or not service_name.strip():
            raise ValidationError("service_name is required")
        if not price_cents or price_cents <= 0:
            raise ValidationError("price must be greater than zero")

        item = {
            "id": f"extra_{uuid.uuid4().hex}",
            "service_id": service_id,
            "service_name": service_name.strip(),
            "price": int(price_cents),
            "added_at": utc_now().isoformat(),
            "added_by": actor.user_id,
        }
        return self.store.update(
            "bookings",
            booking_id,
            {
                "additional_services": [*(booking.additional_services or []), item],
                "modifications": audit.append_modification(
                    booking, audit.track_additional_service(actor, item["service_name"], item["price"])
                ),
            },
        )

    def remove_additional_service(self, booking_id: str, item_id: str, actor: Actor):
        booking = self._open_for_close_out(booking_id, actor)
        items = list(booking.additional_services or [])
        removed = next((item for item in items if item.get("id") == item_id), None)
        if removed is None:
            raise NotFoundError("Additional service not found")

        return self.store.update(
            "bookings",
            booking_id,
            {
                "additional_services": [item for item in items if item is not removed],
                "modifications": audit.append_modification(
                    booking, audit.track_additional_service_removed(actor, removed.get("service_name", ""))
                ),
            },
        )

    def record_final_payment(
        self,
        booking_id: str,
        method: str,
        amount_cents: int,
        actor: Actor,
        notes: str | None = None,
    ):
        """Close the sale: collect the balance in the salon and complete the booking."""
        if method not in PAYMENT_METHODS:
            raise ValidationError("method must be one of: " + ", ".join(PAYMENT_METHODS))
        if amount_cents is None or amount_cents < 0:
            raise ValidationError("amount must not be negative")

        booking = self._open_for_close_out(booking_id, actor)
        stamp = utc_now()
        closer_id = actor.user_id or actor.employee_id
        changes = {
            "status": "completed",
            "completed_at": stamp,
            "completed_by": closer_id,
            "completed_by_name": actor.display_name,
            "completed_by_role": actor.role.value,
            "payment_status": "paid",
            "deposit_paid": True,
            "final_payment_method": method,
            "final_payment_amount": int(amount_cents),
            "final_payment_received_at": stamp,
            "final_payment_received_by": closer_id,
            "final_payment_received_by_name": actor.display_name,
            "payment_notes": notes,
            "modifications": audit.append_modification(
                booking,
                audit.track_payment_received(actor, int(amount_cents), method),
                audit.track_completion(actor),
            ),
        }
        logger.info("Closed booking %s: %s %s", booking_id, method, amount_cents)
        return self.store.update("bookings", booking_id, changes)
