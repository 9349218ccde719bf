from __future__ import annotations

from datetime import date, timedelta

import pytest
from conftest import NEXT_MONDAY, NOW, make_booking

from salonbook.errors import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    PaymentError,
    PermissionDeniedError,
    ValidationError,
)
from salonbook.payments import PaymentProcessorError
from salonbook.policy import Actor, Role

OWNER = Actor(role=Role.OWNER, user_id="owner-1", name="Sara")
CLIENT = Actor(role=Role.CLIENT, name="Giulia Verdi")
TOMORROW = NOW.date() + timedelta(days=1)


def _employee(seeded, key="staff_id", user_id="user-anna"):
    return Actor(role=Role.EMPLOYEE, user_id=user_id, name="Anna Rossi", employee_id=seeded[key])


def _walk_in(core, seeded, processor, **overrides):
    return make_booking(
        core,
        seeded,
        processor,
        allow_unpaid=True,
        created_by_role=Role.EMPLOYEE,
        created_by_user_id="user-anna",
        created_by_name="Anna Rossi",
        **overrides,
    )


# --- creation ---


def test_create_paid_booking_confirmed(ctx, core, seeded, processor, sender):
    booking = make_booking(core, seeded, processor)

    assert booking.status == "confirmed"
    assert booking.payment_status == "paid"
    assert booking.deposit_paid is True
    assert booking.deposit_amount == 1500
    assert booking.duration_minutes == 30
    assert booking.created_by_role == "client"
    assert [m["action"] for m in booking.modifications] == ["created"]
    assert [kind for kind, _, _ in sender.sent] == ["booking_confirmation", "staff_new_booking"]
    assert sender.sent[1][1] == "anna@salon.test"


def test_create_booking_payment_not_succeeded_persists_nothing(ctx, core, seeded, processor):
    processor.add_intent("pi_pending", status="requires_payment_method")

    with pytest.raises(PaymentError) as excinfo:
        make_booking(core, seeded, processor, payment_intent_id="pi_pending")

    assert "not completed" in excinfo.value.message
    assert excinfo.value.status_code == 400
    assert core.bookings.list_bookings() == []


def test_create_booking_unknown_intent_payment_error(ctx, core, seeded, processor):
    processor.intents.clear()
    with pytest.raises(PaymentError):
        core.bookings.create_booking(
            _request(seeded, payment_intent_id="pi_missing")
        )
    assert core.bookings.list_bookings() == []


def test_create_booking_deposit_below_expected_rejected(ctx, core, seeded, processor):
    processor.add_intent("pi_small", amount=1000)
    with pytest.raises(ValidationError):
        make_booking(core, seeded, processor, payment_intent_id="pi_small")
    assert core.bookings.list_bookings() == []


def test_create_booking_without_intent_rejected(ctx, core, seeded):
    with pytest.raises(ValidationError):
        core.bookings.create_booking(_request(seeded, payment_intent_id=None))


def test_create_booking_unknown_service_and_staff(ctx, core, seeded, processor):
    with pytest.raises(NotFoundError):
        make_booking(core, seeded, processor, service_id="missing")
    with pytest.raises(NotFoundError):
        make_booking(core, seeded, processor, staff_id="missing")


def test_create_booking_price_not_configured(ctx, core, seeded, processor):
    service_id = core.store.create("services", {"name": "Free chat", "duration_minutes": 15})
    with pytest.raises(ValidationError):
        make_booking(core, seeded, processor, service_id=service_id)


def test_create_owner_walk_in_for_unpriced_service_rejected(ctx, core, seeded, processor):
    service_id = core.store.create("services", {"name": "Free chat", "duration_minutes": 15})
    with pytest.raises(ValidationError, match="price"):
        make_booking(
            core,
            seeded,
            processor,
            service_id=service_id,
            allow_unpaid=True,
            created_by_role=Role.OWNER,
            created_by_user_id="owner-1",
        )
    assert core.store.list("bookings") == []


def test_create_walk_in_pending_without_deposit(ctx, core, seeded, processor):
    booking = _walk_in(core, seeded, processor)

    assert booking.status == "pending"
    assert booking.payment_status == "pending"
    assert booking.deposit_paid is False
    assert booking.payment_intent_id is None
    assert booking.created_by_role == "employee"
    assert booking.created_by_name == "Anna Rossi"


def test_create_unpaid_booking_as_client_forbidden(ctx, core, seeded, processor):
    with pytest.raises(PermissionDeniedError):
        make_booking(core, seeded, processor, allow_unpaid=True)


def test_create_overlapping_booking_conflict(ctx, core, seeded, processor):
    make_booking(core, seeded, processor, booking_time="10:00")
    with pytest.raises(ConflictError):
        make_booking(core, seeded, processor, booking_time="10:15")


def test_create_adjacent_booking_allowed(ctx, core, seeded, processor):
    make_booking(core, seeded, processor, booking_time="10:00")
    booking = make_booking(core, seeded, processor, booking_time="10:30")
    assert booking.booking_time == "10:30"


def test_create_booking_over_cancelled_one_allowed(ctx, core, seeded, processor):
    first = make_booking(core, seeded, processor, booking_time="10:00")
    core.bookings.cancel_booking(first.booking_id, OWNER)
    second = make_booking(core, seeded, processor, booking_time="10:00")
    assert second.status == "confirmed"


def test_notification_failure_does_not_block_creation(ctx, core, seeded, processor):
    class BrokenNotifier:
        def dispatch(self, *args, **kwargs):
            raise RuntimeError("queue is down")

    core.bookings.notifier = BrokenNotifier()
    booking = make_booking(core, seeded, processor)
    assert booking.status == "confirmed"


def test_staff_notification_respects_allowlist(ctx, core, seeded, processor, sender):
    core.bookings.staff_notification_allowlist = frozenset({"someone@salon.test"})
    make_booking(core, seeded, processor)
    assert [kind for kind, _, _ in sender.sent] == ["booking_confirmation"]


def _request(seeded, **overrides):
    from salonbook.schemas import BookingCreate

    data = {
        "service_id": seeded["service_id"],
        "staff_id": seeded["staff_id"],
        "booking_date": NEXT_MONDAY,
        "booking_time": "10:00",
        "client_name": "Giulia Verdi",
    }
    data.update(overrides)
    return BookingCreate(**data)


# --- cancellation ---


def test_client_cancel_exactly_24_hours_refunds_deposit(ctx, core, seeded, processor, sender):
    booking = make_booking(core, seeded, processor, booking_date=TOMORROW, booking_time="09:00")

    result = core.bookings.cancel_booking(booking.booking_id, CLIENT, reason="Change of plans")

    assert result.hours_until == 24.0
    assert result.refund_status == "refunded"
    assert processor.refunds == [("pi_deposit", 1500)]
    cancelled = result.booking
    assert cancelled.status == "cancelled"
    assert cancelled.cancelled_at is not None
    assert cancelled.payment_status == "refunded"
    assert cancelled.deposit_paid is False
    assert cancelled.cancellation_reason == "Change of plans"
    assert cancelled.modifications[-1]["action"] == "cancelled"
    assert sender.sent[-1][0] == "booking_cancelled"
    assert sender.sent[-1][2]["refund_status"] == "refunded"


def test_client_cancel_inside_24_hours_denied(ctx, core, seeded, processor):
    booking = make_booking(core, seeded, processor, booking_date=TOMORROW, booking_time="09:00")

    with pytest.raises(PermissionDeniedError):
        core.bookings.cancel_booking(booking.booking_id, CLIENT, now=NOW + timedelta(seconds=36))

    unchanged = core.bookings.get_booking(booking.booking_id)
    assert unchanged.status == "confirmed"
    assert unchanged.payment_status == "paid"
    assert processor.refunds == []


def test_client_cancel_inside_24_hours_with_force(ctx, core, seeded, processor):
    booking = make_booking(core, seeded, processor, booking_date=NOW.date(), booking_time="12:00")
    result = core.bookings.cancel_booking(booking.booking_id, CLIENT, force=True)
    assert result.booking.status == "cancelled"
    assert result.hours_until == 3.0


def test_employee_cancel_inside_24_hours_allowed(ctx, core, seeded, processor):
    booking = make_booking(core, seeded, processor, booking_date=NOW.date(), booking_time="12:00")
    result = core.bookings.cancel_booking(booking.booking_id, _employee(seeded))
    assert result.booking.status == "cancelled"


def test_refund_error_still_cancels_and_stays_paid(ctx, core, seeded, processor):
    booking = make_booking(core, seeded, processor)
    processor.refund_error = PaymentProcessorError("card_declined")

    result = core.bookings.cancel_booking(booking.booking_id, OWNER)

    assert result.refund_status == "failed"
    assert result.booking.status == "cancelled"
    assert result.booking.cancelled_at is not None
    assert result.booking.payment_status == "paid"
    assert result.booking.deposit_paid is True
    assert result.booking.refund_status == "failed"


def test_refund_failed_status_recorded_as_failed(ctx, core, seeded, processor):
    booking = make_booking(core, seeded, processor)
    processor.refund_status = "failed"

    result = core.bookings.cancel_booking(booking.booking_id, OWNER)

    assert result.refund_status == "failed"
    assert result.booking.payment_status == "paid"


def test_cancel_unpaid_booking_no_refund(ctx, core, seeded, processor):
    booking = _walk_in(core, seeded, processor)
    result = core.bookings.cancel_booking(booking.booking_id, OWNER)
    assert result.refund_status == "none"
    assert processor.refunds == []
    assert result.booking.payment_status == "pending"


def test_cancel_twice_rejected(ctx, core, seeded, processor):
    booking = make_booking(core, seeded, processor)
    core.bookings.cancel_booking(booking.booking_id, OWNER)
    with pytest.raises(InvalidTransitionError):
        core.bookings.cancel_booking(booking.booking_id, OWNER)
    assert len(processor.refunds) == 1


def test_cancel_unknown_booking_not_found(ctx, core, seeded):
    with pytest.raises(NotFoundError):
        core.bookings.cancel_booking("missing", OWNER)


# --- status transitions ---


def test_assigned_employee_confirms_walk_in(ctx, core, seeded, processor):
    booking = _walk_in(core, seeded, processor)
    updated = core.bookings.change_status(booking.booking_id, "confirmed", _employee(seeded))

    assert updated.status == "confirmed"
    entry = updated.modifications[-1]
    assert entry["action"] == "status_changed"
    assert (entry["old_value"], entry["new_value"]) == ("pending", "confirmed")
    assert entry["user_role"] == "employee"


def test_complete_stamps_completed_at(ctx, core, seeded, processor):
    booking = make_booking(core, seeded, processor)
    updated = core.bookings.change_status(booking.booking_id, "completed", OWNER)
    assert updated.status == "completed"
    assert updated.completed_at is not None
    assert updated.completed_by_name == "Sara"


def test_no_show_stamps_actor(ctx, core, seeded, processor):
    booking = make_booking(core, seeded, processor)
    updated = core.bookings.change_status(booking.booking_id, "no-show", _employee(seeded))
    assert updated.no_show_at is not None
    assert updated.no_show_by == "user-anna"
    assert updated.no_show_by_name == "Anna Rossi"
    assert updated.modifications[-1]["new_value"] == "no-show"


def test_other_employee_cannot_change_status(ctx, core, seeded, processor):
    booking = make_booking(core, seeded, processor)
    intruder = _employee(seeded, key="other_staff_id", user_id="user-marco")
    with pytest.raises(PermissionDeniedError):
        core.bookings.change_status(booking.booking_id, "completed", intruder)
    assert core.bookings.get_booking(booking.booking_id).status == "confirmed"


def test_status_cancelled_must_use_cancel(ctx, core, seeded, processor):
    booking = make_booking(core, seeded, processor)
    with pytest.raises(ValidationError):
        core.bookings.change_status(booking.booking_id, "cancelled", OWNER)


@pytest.mark.parametrize("new_status", ["confirmed", "pending", "no-show"])
def test_terminal_status_cannot_move(ctx, core, seeded, processor, new_status):
    booking = make_booking(core, seeded, processor)
    core.bookings.change_status(booking.booking_id, "completed", OWNER)
    with pytest.raises(InvalidTransitionError):
        core.bookings.change_status(booking.booking_id, new_status, OWNER)


def test_unknown_status_rejected(ctx, core, seeded, processor):
    booking = make_booking(core, seeded, processor)
    with pytest.raises(ValidationError):
        core.bookings.change_status(booking.booking_id, "archived", OWNER)


# --- edits ---


def test_owner_reschedule_records_both_values(ctx, core, seeded, processor):
    booking = make_booking(core, seeded, processor)
    new_date = NEXT_MONDAY + timedelta(days=1)

    updated = core.bookings.update_booking(
        booking.booking_id, {"booking_date": new_date, "booking_time": "11:00"}, OWNER
    )

    assert (updated.booking_date, updated.booking_time) == (new_date, "11:00")
    entry = updated.modifications[-1]
    assert entry["action"] == "rescheduled"
    assert entry["old_value"] == f"{NEXT_MONDAY.isoformat()} 10:00"
    assert entry["new_value"] == f"{new_date.isoformat()} 11:00"


def test_time_change_only_records_updated(ctx, core, seeded, processor):
    booking = make_booking(core, seeded, processor)
    updated = core.bookings.update_booking(booking.booking_id, {"booking_time": "11:30"}, _employee(seeded))
    entry = updated.modifications[-1]
    assert entry["action"] == "updated"
    assert entry["field"] == "booking_time"


def test_field_edits_single_entry(ctx, core, seeded, processor):
    booking = make_booking(core, seeded, processor)
    updated = core.bookings.update_booking(
        booking.booking_id, {"notes": "Allergic to ammonia", "client_phone": "+39 333 000"}, OWNER
    )
    assert updated.notes == "Allergic to ammonia"
    assert len(updated.modifications) == 2
    assert "client_phone, notes" in updated.modifications[-1]["description"]


def test_unchanged_edit_appends_nothing(ctx, core, seeded, processor):
    booking = make_booking(core, seeded, processor)
    updated = core.bookings.update_booking(booking.booking_id, {"booking_time": "10:00"}, OWNER)
    assert len(updated.modifications) == 1


def test_edit_status_cancelled_rejected(ctx, core, seeded, processor):
    booking = make_booking(core, seeded, processor)
    with pytest.raises(ValidationError):
        core.bookings.update_booking(booking.booking_id, {"status": "cancelled"}, OWNER)
    assert core.bookings.get_booking(booking.booking_id).status == "confirmed"


def test_edit_status_goes_through_transition(ctx, core, seeded, processor):
    booking = make_booking(core, seeded, processor)
    updated = core.bookings.update_booking(booking.booking_id, {"status": "completed", "notes": "Done"}, OWNER)
    assert updated.status == "completed"
    assert updated.completed_at is not None
    assert [m["action"] for m in updated.modifications] == ["created", "status_changed", "updated"]


def test_employee_cannot_reassign(ctx, core, seeded, processor):
    booking = make_booking(core, seeded, processor)
    with pytest.raises(PermissionDeniedError):
        core.bookings.update_booking(
            booking.booking_id, {"staff_id": seeded["other_staff_id"]}, _employee(seeded)
        )


def test_employee_cannot_edit_foreign_booking(ctx, core, seeded, processor):
    booking = make_booking(core, seeded, processor)
    intruder = _employee(seeded, key="other_staff_id", user_id="user-marco")
    with pytest.raises(PermissionDeniedError):
        core.bookings.update_booking(booking.booking_id, {"notes": "hi"}, intruder)


def test_owner_reassigns_staff(ctx, core, seeded, processor):
    booking = make_booking(core, seeded, processor)
    updated = core.bookings.update_booking(booking.booking_id, {"staff_id": seeded["other_staff_id"]}, OWNER)
    assert updated.staff_id == seeded["other_staff_id"]


def test_reschedule_into_conflict_rejected(ctx, core, seeded, processor):
    make_booking(core, seeded, processor, booking_time="11:00")
    booking = make_booking(core, seeded, processor, booking_time="10:00")
    with pytest.raises(ConflictError):
        core.bookings.update_booking(booking.booking_id, {"booking_time": "10:45"}, OWNER)


def test_edit_terminal_booking_rejected(ctx, core, seeded, processor):
    booking = make_booking(core, seeded, processor)
    core.bookings.cancel_booking(booking.booking_id, OWNER)
    with pytest.raises(InvalidTransitionError):
        core.bookings.update_booking(booking.booking_id, {"notes": "too late"}, OWNER)


# --- delete and queries ---


def test_delete_requires_manager(ctx, core, seeded, processor):
    booking = make_booking(core, seeded, processor)
    with pytest.raises(PermissionDeniedError):
        core.bookings.delete_booking(booking.booking_id, _employee(seeded))

    core.bookings.delete_booking(booking.booking_id, OWNER)
    with pytest.raises(NotFoundError):
        core.bookings.get_booking(booking.booking_id)


def test_list_bookings_filters_and_sorts(ctx, core, seeded, processor):
    make_booking(core, seeded, processor, booking_time="11:00")
    make_booking(core, seeded, processor, booking_date=date(2030, 6, 17), booking_time="10:00")
    early = make_booking(core, seeded, processor, booking_time="10:00")
    core.bookings.cancel_booking(early.booking_id, OWNER)

    all_bookings = core.bookings.list_bookings(staff_id=seeded["staff_id"])
    assert [(b.booking_date, b.booking_time) for b in all_bookings] == [
        (NEXT_MONDAY, "10:00"),
        (NEXT_MONDAY, "11:00"),
        (date(2030, 6, 17), "10:00"),
    ]
    assert len(core.bookings.list_bookings(status="cancelled")) == 1
    assert len(core.bookings.list_bookings(start_date=date(2030, 6, 11))) == 1

    with pytest.raises(ValidationError):
        core.bookings.list_bookings(status="archived")


# --- close-out ---


def test_add_custom_additional_service(ctx, core, seeded, processor):
    booking = make_booking(core, seeded, processor)
    updated = core.bookings.add_additional_service(
        booking.booking_id, _employee(seeded), service_name="Beard trim", price_cents=800
    )
    [item] = updated.additional_services
    assert item["service_name"] == "Beard trim"
    assert item["price"] == 800
    assert item["id"].startswith("extra_")
    assert "8.00" in updated.modifications[-1]["description"]


def test_add_catalog_additional_service(ctx, core, seeded, processor):
    booking = make_booking(core, seeded, processor)
    wash = core.store.create("services", {"name": "Wash", "price_cents": 1200, "duration_minutes": 15})
    updated = core.bookings.add_additional_service(booking.booking_id, OWNER, service_id=wash)
    assert updated.additional_services[0]["service_name"] == "Wash"
    assert updated.additional_services[0]["price"] == 1200


def test_add_additional_service_requires_price(ctx, core, seeded, processor):
    booking = make_booking(core, seeded, processor)
    with pytest.raises(ValidationError):
        core.bookings.add_additional_service(booking.booking_id, OWNER, service_name="Free", price_cents=0)


def test_remove_additional_service(ctx, core, seeded, processor):
    booking = make_booking(core, seeded, processor)
    booking = core.bookings.add_additional_service(booking.booking_id, OWNER, service_name="Wash", price_cents=500)
    item_id = booking.additional_services[0]["id"]

    updated = core.bookings.remove_additional_service(booking.booking_id, item_id, OWNER)
    assert updated.additional_services == []
    assert "removed" in updated.modifications[-1]["description"]

    with pytest.raises(NotFoundError):
        core.bookings.remove_additional_service(booking.booking_id, item_id, OWNER)


def test_record_final_payment_completes_booking(ctx, core, seeded, processor):
    booking = _walk_in(core, seeded, processor)
    updated = core.bookings.record_final_payment(
        booking.booking_id, "pos", 3000, _employee(seeded), notes="Paid in full"
    )

    assert updated.status == "completed"
    assert updated.payment_status == "paid"
    assert updated.deposit_paid is True
    assert updated.final_payment_method == "pos"
    assert updated.final_payment_amount == 3000
    assert updated.final_payment_received_by == "user-anna"
    assert updated.completed_by_role == "employee"
    assert updated.payment_notes == "Paid in full"
    assert [m["action"] for m in updated.modifications][-2:] == ["payment_received", "completed"]


def test_record_final_payment_on_cancelled_rejected(ctx, core, seeded, processor):
    booking = make_booking(core, seeded, processor)
    core.bookings.cancel_booking(booking.booking_id, OWNER)
    with pytest.raises(InvalidTransitionError):
        core.bookings.record_final_payment(booking.booking_id, "cash", 1500, OWNER)


def test_record_final_payment_bad_method(ctx, core, seeded, processor):
    booking = make_booking(core, seeded, processor)
    with pytest.raises(ValidationError):
        core.bookings.record_final_payment(booking.booking_id, "cheque", 1500, OWNER)


def test_record_final_payment_foreign_employee_denied(ctx, core, seeded, processor):
    booking = make_booking(core, seeded, processor)
    intruder = _employee(seeded, key="other_staff_id", user_id="user-marco")
    with pytest.raises(PermissionDeniedError):
        core.bookings.record_final_payment(booking.booking_id, "cash", 1500, intruder)
