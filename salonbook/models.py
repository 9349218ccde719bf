"""Database models for the salon booking backend."""
from __future__ import annotations

import uuid
from datetime import date, datetime, timezone

from .extensions import db


def utc_now() -> datetime:
    """Return a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Opaque identifier assigned by the storage layer."""
    return uuid.uuid4().hex


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value else None


DAYS_OF_WEEK = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)

BOOKING_STATUSES = ("pending", "confirmed", "completed", "cancelled", "no-show")
PAYMENT_STATUSES = ("pending", "paid", "refunded", "failed")
EMPLOYMENT_TYPES = ("employee", "self-employed")
PAYMENT_METHODS = ("cash", "pos")


class Staff(db.Model):
    __tablename__ = "staff"

    staff_id = db.Column(db.String(32), primary_key=True, default=new_id)
    user_id = db.Column(db.String(64), nullable=True, index=True)
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False, default="")
    email = db.Column(db.String(255))
    phone = db.Column(db.String(30))
    employment_type = db.Column(
        db.Enum(
            *EMPLOYMENT_TYPES,
            name="employment_type",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        server_default="employee",
    )
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name or ''}".strip()

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.staff_id,
            "user_id": self.user_id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "employment_type": self.employment_type,
            "is_active": bool(self.is_active),
        }


class Service(db.Model):
    """Services offered by the salon. Prices are stored in minor units."""

    __tablename__ = "services"

    service_id = db.Column(db.String(32), primary_key=True, default=new_id)
    name = db.Column(db.String(150), nullable=False)
    description = db.Column(db.Text)
    price_cents = db.Column(db.Integer, nullable=True)
    duration_minutes = db.Column(db.Integer, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.service_id,
            "name": self.name,
            "description": self.description,
            "price_cents": self.price_cents,
            "duration_minutes": self.duration_minutes,
            "is_active": bool(self.is_active),
        }


class Availability(db.Model):
    """Recurring weekly window during which a staff member takes bookings."""

    __tablename__ = "availability"

    availability_id = db.Column(db.String(32), primary_key=True, default=new_id)
    staff_id = db.Column(db.String(32), db.ForeignKey("staff.staff_id"), nullable=False, index=True)
    # NULL means the window applies to every service.
    service_id = db.Column(db.String(32), db.ForeignKey("services.service_id"), nullable=True)
    day_of_week = db.Column(
        db.Enum(
            *DAYS_OF_WEEK,
            name="day_of_week",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
    )
    start_time = db.Column(db.String(5), nullable=False)  # HH:MM
    end_time = db.Column(db.String(5), nullable=False)  # HH:MM
    is_available = db.Column(db.Boolean, nullable=False, default=True)
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.availability_id,
            "staff_id": self.staff_id,
            "service_id": self.service_id,
            "day_of_week": self.day_of_week,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "is_available": bool(self.is_available),
            "start_date": _iso(self.start_date),
            "end_date": _iso(self.end_date),
        }


class BlockedSlot(db.Model):
    """Manual unavailability (break, personal appointment) for a staff member."""

    __tablename__ = "blocked_slots"

    block_id = db.Column(db.String(32), primary_key=True, default=new_id)
    staff_id = db.Column(db.String(32), db.ForeignKey("staff.staff_id"), nullable=False, index=True)
    service_id = db.Column(db.String(32), db.ForeignKey("services.service_id"), nullable=True)
    date = db.Column(db.Date, nullable=False)
    start_time = db.Column(db.String(5), nullable=False)
    # Defaults to start + service duration when missing.
    end_time = db.Column(db.String(5), nullable=True)
    reason = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.block_id,
            "staff_id": self.staff_id,
            "service_id": self.service_id,
            "date": _iso(self.date),
            "start_time": self.start_time,
            "end_time": self.end_time,
            "reason": self.reason,
        }


class Booking(db.Model):
    """A client reservation with a staff member for a service."""

    __tablename__ = "bookings"

    booking_id = db.Column(db.String(32), primary_key=True, default=new_id)
    staff_id = db.Column(db.String(32), db.ForeignKey("staff.staff_id"), nullable=False, index=True)
    service_id = db.Column(db.String(32), db.ForeignKey("services.service_id"), nullable=False)
    client_name = db.Column(db.String(150), nullable=False)
    client_email = db.Column(db.String(255))
    client_phone = db.Column(db.String(30))
    booking_date = db.Column(db.Date, nullable=False, index=True)
    booking_time = db.Column(db.String(5), nullable=False)
    duration_minutes = db.Column(db.Integer, nullable=False)
    status = db.Column(
        db.Enum(
            *BOOKING_STATUSES,
            name="booking_status",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        server_default="pending",
    )
    notes = db.Column(db.Text)

    # Payment
    requires_deposit = db.Column(db.Boolean, nullable=False, default=True)
    deposit_amount = db.Column(db.Integer, nullable=True)  # minor units
    deposit_paid = db.Column(db.Boolean, nullable=False, default=False)
    payment_intent_id = db.Column(db.String(255), nullable=True)
    payment_status = db.Column(
        db.Enum(
            *PAYMENT_STATUSES,
            name="payment_status",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        server_default="pending",
    )

    # Who entered the booking
    created_by_role = db.Column(db.String(20), nullable=False, default="client")
    created_by_name = db.Column(db.String(150))
    created_by_user_id = db.Column(db.String(64))

    cancelled_at = db.Column(db.DateTime)
    cancelled_by = db.Column(db.String(64))
    cancellation_reason = db.Column(db.Text)
    refund_status = db.Column(db.String(20))

    completed_at = db.Column(db.DateTime)
    completed_by = db.Column(db.String(64))
    completed_by_name = db.Column(db.String(150))
    completed_by_role = db.Column(db.String(20))

    no_show_at = db.Column(db.DateTime)
    no_show_by = db.Column(db.String(64))
    no_show_by_name = db.Column(db.String(150))

    # Close-out
    final_payment_method = db.Column(db.String(10))
    final_payment_amount = db.Column(db.Integer)
    final_payment_received_at = db.Column(db.DateTime)
    final_payment_received_by = db.Column(db.String(64))
    final_payment_received_by_name = db.Column(db.String(150))
    payment_notes = db.Column(db.Text)

    # Append-only audit trail and close-out line items
    modifications = db.Column(db.JSON, nullable=False, default=list)
    additional_services = db.Column(db.JSON, nullable=False, default=list)

    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    staff = db.relationship("Staff")
    service = db.relationship("Service")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.booking_id,
            "staff_id": self.staff_id,
            "staff_name": self.staff.full_name if self.staff else None,
            "service_id": self.service_id,
            "service_name": self.service.name if self.service else None,
            "client_name": self.client_name,
            "client_email": self.client_email,
            "client_phone": self.client_phone,
            "booking_date": _iso(self.booking_date),
            "booking_time": self.booking_time,
            "duration_minutes": self.duration_minutes,
            "status": self.status,
            "notes": self.notes,
            "requires_deposit": bool(self.requires_deposit),
            "deposit_amount": self.deposit_amount,
            "deposit_paid": bool(self.deposit_paid),
            "payment_intent_id": self.payment_intent_id,
            "payment_status": self.payment_status,
            "created_by_role": self.created_by_role,
            "created_by_name": self.created_by_name,
            "created_by_user_id": self.created_by_user_id,
            "cancelled_at": _iso(self.cancelled_at),
            "cancellation_reason": self.cancellation_reason,
            "refund_status": self.refund_status,
            "completed_at": _iso(self.completed_at),
            "completed_by": self.completed_by,
            "completed_by_name": self.completed_by_name,
            "no_show_at": _iso(self.no_show_at),
            "no_show_by": self.no_show_by,
            "no_show_by_name": self.no_show_by_name,
            "final_payment_method": self.final_payment_method,
            "final_payment_amount": self.final_payment_amount,
            "final_payment_received_at": _iso(self.final_payment_received_at),
            "final_payment_received_by": self.final_payment_received_by,
            "final_payment_received_by_name": self.final_payment_received_by_name,
            "payment_notes": self.payment_notes,
            "modifications": list(self.modifications or []),
            "additional_services": list(self.additional_services or []),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
