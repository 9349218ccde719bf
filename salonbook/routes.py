"""HTTP routes for the salon booking service."""
from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from pydantic import ValidationError as PayloadError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from .errors import BookingError
from .extensions import db
from .payments import PaymentProcessorError
from .reconciliation import calculate_booking_totals
from .schemas import (
    AdditionalServiceIn,
    AvailabilityIn,
    AvailabilityUpdate,
    BlockedSlotIn,
    BlockedSlotQuery,
    BookingCreate,
    BookingListQuery,
    BookingUpdate,
    CancelRequest,
    EndOfDayQuery,
    FinalPaymentIn,
    PaymentIntentIn,
    SlotQuery,
    StatusUpdate,
    actor_from_args,
)

bp = Blueprint("api", __name__)


def _core():
    return current_app.extensions["salonbook"]


def _ok(data, status: int = 200):
    return jsonify({"success": True, "data": data}), status


def _database_error(message: str, exc: SQLAlchemyError):
    db.session.rollback()
    current_app.logger.exception(message, exc_info=exc)
    return jsonify({"error": "database_error"}), 500


@bp.errorhandler(BookingError)
def handle_booking_error(exc: BookingError):
    return jsonify(exc.to_dict()), exc.status_code


@bp.errorhandler(PayloadError)
def handle_payload_error(exc: PayloadError):
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = f"{location}: {first.get('msg')}" if location else str(first.get("msg", "invalid payload"))
    return jsonify({"error": "invalid_payload", "message": message}), 400


@bp.get("/health")
def health_check() -> tuple[dict[str, str], int]:
    """
    Expose a simple uptime check endpoint.
    ---
    tags:
      - Health
    responses:
      200:
        description: Service is healthy and the database answers.
      500:
        description: Database connection failed.
    """
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        current_app.logger.exception("Database connectivity check failed", exc_info=exc)
        return jsonify({"status": "degraded", "database": "unavailable"}), 500

    return jsonify({"status": "ok", "database": "ok"}), 200


# --- Slots ---


@bp.get("/slots/available")
def available_slots() -> tuple[dict[str, object], int]:
    """List every slot of a day for a staff member and service.
    ---
    tags:
      - Slots
    parameters:
      - name: staff_id
        in: query
        type: string
        required: true
      - name: service_id
        in: query
        type: string
        required: true
      - name: date
        in: query
        type: string
        format: date
        required: true
      - name: duration
        in: query
        type: integer
        description: Override of the service duration in minutes
      - name: is_staff_booking
        in: query
        type: boolean
        description: Walk-in entered by staff; skips the lead-time buffer
    responses:
      200:
        description: "{success, data: {date, slots: [{time, available}]}}"
      400:
        description: Invalid query
      404:
        description: Service not found
    """
    query = SlotQuery.model_validate(request.args.to_dict())
    try:
        result = _core().slots.available_slots(
            query.staff_id,
            query.service_id,
            query.date,
            duration_minutes=query.duration,
            is_staff_booking=query.is_staff_booking,
        )
    except SQLAlchemyError as exc:
        return _database_error("Failed to compute available slots", exc)

    return _ok(result)


# --- Availability ---


@bp.get("/availability")
def list_availability() -> tuple[dict[str, object], int]:
    staff_id = request.args.get("staff_id")
    if not staff_id:
        return jsonify({"error": "invalid_payload", "message": "staff_id is required"}), 400

    try:
        windows = _core().availability.list_windows(staff_id, request.args.get("service_id"))
    except SQLAlchemyError as exc:
        return _database_error("Failed to list availability", exc)

    return _ok([w.to_dict() for w in windows])


@bp.post("/availability")
def create_availability() -> tuple[dict[str, object], int]:
    """Create a recurring weekly availability window.
    ---
    tags:
      - Availability
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            staff_id:
              type: string
            service_id:
              type: string
            day_of_week:
              type: string
              example: monday
            start_time:
              type: string
              example: "09:00"
            end_time:
              type: string
              example: "17:00"
            start_date:
              type: string
              format: date
            end_date:
              type: string
              format: date
          required:
            - staff_id
            - day_of_week
            - start_time
            - end_time
    responses:
      201:
        description: Window created
      400:
        description: Invalid payload
      404:
        description: Staff member or service not found
      409:
        description: Overlaps an existing window
    """
    payload = AvailabilityIn.model_validate(request.get_json(silent=True) or {})
    try:
        window = _core().availability.create_window(payload.model_dump())
    except SQLAlchemyError as exc:
        return _database_error("Failed to create availability", exc)

    return _ok(window.to_dict(), 201)


@bp.put("/availability/<availability_id>")
def update_availability(availability_id: str) -> tuple[dict[str, object], int]:
    payload = AvailabilityUpdate.model_validate(request.get_json(silent=True) or {})
    try:
        window = _core().availability.update_window(availability_id, payload.model_dump(exclude_unset=True))
    except SQLAlchemyError as exc:
        return _database_error("Failed to update availability", exc)

    return _ok(window.to_dict())


@bp.delete("/availability/<availability_id>")
def delete_availability(availability_id: str) -> tuple[dict[str, object], int]:
    try:
        _core().availability.delete_window(availability_id)
    except SQLAlchemyError as exc:
        return _database_error("Failed to delete availability", exc)

    return _ok({"id": availability_id})


# --- Blocked slots ---


@bp.get("/blocked-slots")
def list_blocked_slots() -> tuple[dict[str, object], int]:
    query = BlockedSlotQuery.model_validate(request.args.to_dict())
    try:
        blocks = _core().blocks.list_blocks(
            query.staff_id, query.service_id, query.start_date, query.end_date
        )
    except SQLAlchemyError as exc:
        return _database_error("Failed to list blocked slots", exc)

    return _ok([b.to_dict() for b in blocks])


@bp.post("/blocked-slots")
def create_blocked_slot() -> tuple[dict[str, object], int]:
    payload = BlockedSlotIn.model_validate(request.get_json(silent=True) or {})
    try:
        block = _core().blocks.create_block(payload.model_dump())
    except SQLAlchemyError as exc:
        return _database_error("Failed to create blocked slot", exc)

    return _ok(block.to_dict(), 201)


@bp.delete("/blocked-slots/<block_id>")
def delete_blocked_slot(block_id: str) -> tuple[dict[str, object], int]:
    try:
        _core().blocks.delete_block(block_id)
    except SQLAlchemyError as exc:
        return _database_error("Failed to delete blocked slot", exc)

    return _ok({"id": block_id})


# --- Payments ---


@bp.post("/payments/create-intent")
def create_payment_intent() -> tuple[dict[str, object], int]:
    """Create a Stripe PaymentIntent for the deposit of a service.
    ---
    tags:
      - Payments
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            service_id:
              type: string
            booking_date:
              type: string
              format: date
            booking_time:
              type: string
            client_name:
              type: string
            client_email:
              type: string
          required:
            - service_id
    responses:
      200:
        description: "{success, data: {client_secret, payment_intent_id, amount}}"
      400:
        description: Service price not configured
      404:
        description: Service not found
      500:
        description: Stripe not configured or payment processing error
    """
    payload = PaymentIntentIn.model_validate(request.get_json(silent=True) or {})
    metadata = payload.model_dump(exclude={"service_id"}, exclude_none=True)
    try:
        result = _core().payments.create_deposit_intent(payload.service_id, metadata)
    except PaymentProcessorError:
        return jsonify({"error": "payment_error", "message": "An error occurred while processing the payment."}), 500
    except SQLAlchemyError as exc:
        return _database_error("Failed to create payment intent", exc)

    return _ok(result)


# --- Bookings ---


@bp.get("/bookings")
def list_bookings() -> tuple[dict[str, object], int]:
    query = BookingListQuery.model_validate(request.args.to_dict())
    try:
        bookings = _core().bookings.list_bookings(
            staff_id=query.staff_id,
            status=query.status,
            start_date=query.start_date,
            end_date=query.end_date,
        )
    except SQLAlchemyError as exc:
        return _database_error("Failed to list bookings", exc)

    return _ok([b.to_dict() for b in bookings])


@bp.post("/bookings")
def create_booking() -> tuple[dict[str, object], int]:
    """Create a booking.
    ---
    tags:
      - Bookings
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            service_id:
              type: string
            staff_id:
              type: string
            booking_date:
              type: string
              format: date
            booking_time:
              type: string
              example: "10:30"
            client_name:
              type: string
            client_email:
              type: string
            client_phone:
              type: string
            payment_intent_id:
              type: string
              description: Succeeded Stripe PaymentIntent covering the deposit
            allow_unpaid:
              type: boolean
              description: Staff walk-in without a deposit
            created_by_role:
              type: string
              enum: [client, employee, owner, admin]
          required:
            - service_id
            - staff_id
            - booking_date
            - booking_time
            - client_name
    responses:
      201:
        description: Booking created
      400:
        description: Invalid payload or payment not completed
      403:
        description: Unpaid booking requested by a client
      404:
        description: Service or staff member not found
      409:
        description: Staff member already booked at that time
    """
    payload = BookingCreate.model_validate(request.get_json(silent=True) or {})
    try:
        booking = _core().bookings.create_booking(payload)
    except SQLAlchemyError as exc:
        return _database_error("Failed to create booking", exc)

    return _ok(booking.to_dict(), 201)


@bp.get("/bookings/<booking_id>")
def get_booking(booking_id: str) -> tuple[dict[str, object], int]:
    try:
        booking = _core().bookings.get_booking(booking_id)
        data = booking.to_dict()
        data["totals"] = calculate_booking_totals(booking)
    except SQLAlchemyError as exc:
        return _database_error("Failed to fetch booking", exc)

    return _ok(data)


@bp.put("/bookings/<booking_id>")
def update_booking(booking_id: str) -> tuple[dict[str, object], int]:
    """Edit client details, notes, date/time or the assigned staff member.
    ---
    tags:
      - Bookings
    responses:
      200:
        description: Booking updated
      400:
        description: Invalid payload, or an attempt to cancel through this endpoint
      403:
        description: Actor may not edit or reassign this booking
      404:
        description: Booking not found
      409:
        description: New time conflicts with another booking
    """
    payload = BookingUpdate.model_validate(request.get_json(silent=True) or {})
    try:
        booking = _core().bookings.update_booking(booking_id, payload.to_changes(), payload.to_actor())
    except SQLAlchemyError as exc:
        return _database_error("Failed to update booking", exc)

    return _ok(booking.to_dict())


@bp.delete("/bookings/<booking_id>")
def delete_booking(booking_id: str) -> tuple[dict[str, object], int]:
    actor = actor_from_args(request.args)
    try:
        _core().bookings.delete_booking(booking_id, actor)
    except SQLAlchemyError as exc:
        return _database_error("Failed to delete booking", exc)

    return _ok({"id": booking_id})


@bp.post("/bookings/<booking_id>/cancel")
def cancel_booking(booking_id: str) -> tuple[dict[str, object], int]:
    """Cancel a booking and refund the deposit when one was paid.
    ---
    tags:
      - Bookings
    parameters:
      - name: body
        in: body
        schema:
          type: object
          properties:
            role:
              type: string
              enum: [client, employee, owner, admin]
            reason:
              type: string
            force:
              type: boolean
    responses:
      200:
        description: "{booking, refund_status: none|refunded|failed, hours_until}"
      403:
        description: Inside the 24 hour window for a client
      404:
        description: Booking not found
    """
    payload = CancelRequest.model_validate(request.get_json(silent=True) or {})
    try:
        result = _core().bookings.cancel_booking(
            booking_id, payload.to_actor(), reason=payload.reason, force=payload.force
        )
    except SQLAlchemyError as exc:
        return _database_error("Failed to cancel booking", exc)

    return _ok(result.to_dict())


@bp.put("/bookings/<booking_id>/status")
def update_booking_status(booking_id: str) -> tuple[dict[str, object], int]:
    payload = StatusUpdate.model_validate(request.get_json(silent=True) or {})
    try:
        booking = _core().bookings.change_status(booking_id, payload.status, payload.to_actor())
    except SQLAlchemyError as exc:
        return _database_error("Failed to update booking status", exc)

    return _ok(booking.to_dict())


@bp.post("/bookings/<booking_id>/additional-services")
def add_additional_service(booking_id: str) -> tuple[dict[str, object], int]:
    payload = AdditionalServiceIn.model_validate(request.get_json(silent=True) or {})
    try:
        booking = _core().bookings.add_additional_service(
            booking_id,
            payload.to_actor(),
            service_name=payload.service_name,
            price_cents=payload.price_cents,
            service_id=payload.service_id,
        )
        data = booking.to_dict()
        data["totals"] = calculate_booking_totals(booking)
    except SQLAlchemyError as exc:
        return _database_error("Failed to add additional service", exc)

    return _ok(data, 201)


@bp.delete("/bookings/<booking_id>/additional-services/<item_id>")
def remove_additional_service(booking_id: str, item_id: str) -> tuple[dict[str, object], int]:
    actor = actor_from_args(request.args)
    try:
        booking = _core().bookings.remove_additional_service(booking_id, item_id, actor)
    except SQLAlchemyError as exc:
        return _database_error("Failed to remove additional service", exc)

    return _ok(booking.to_dict())


@bp.post("/bookings/<booking_id>/final-payment")
def record_final_payment(booking_id: str) -> tuple[dict[str, object], int]:
    """Close the sale with the amount collected in the salon.
    ---
    tags:
      - Bookings
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            method:
              type: string
              enum: [cash, pos]
            amount_cents:
              type: integer
            notes:
              type: string
          required:
            - method
            - amount_cents
    responses:
      200:
        description: Booking completed
      400:
        description: Invalid payload or booking already closed
      403:
        description: Actor is not the assigned staff member or a manager
    """
    payload = FinalPaymentIn.model_validate(request.get_json(silent=True) or {})
    try:
        booking = _core().bookings.record_final_payment(
            booking_id, payload.method, payload.amount_cents, payload.to_actor(), notes=payload.notes
        )
    except SQLAlchemyError as exc:
        return _database_error("Failed to record final payment", exc)

    return _ok(booking.to_dict())


# --- Reports ---


@bp.get("/reports/end-of-day")
def end_of_day_report() -> tuple[dict[str, object], int]:
    """Money retained by the salon for one day, by payment method and closer.
    ---
    tags:
      - Reports
    parameters:
      - name: date
        in: query
        type: string
        format: date
        required: true
      - name: method
        in: query
        type: string
        enum: [all, cash, pos]
      - name: staff
        in: query
        type: string
        description: User id of the staff member who closed the sale, or "all"
    responses:
      200:
        description: Totals in minor units
    """
    query = EndOfDayQuery.model_validate(request.args.to_dict())
    try:
        report = _core().reconciliation.end_of_day(query.date, query.method, query.staff)
    except SQLAlchemyError as exc:
        return _database_error("Failed to build end-of-day report", exc)

    return _ok(report)
