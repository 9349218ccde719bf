"""pytest configuration: path management, app fixtures and fakes."""
from __future__ import annotations

import sys
from datetime import date, datetime
from pathlib import Path

import pytest

# Ensure the project root is available on sys.path so tests can import the package.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from salonbook import create_app  # noqa: E402
from salonbook.config import TestingConfig  # noqa: E402
from salonbook.extensions import db  # noqa: E402
from salonbook.notifications import NotificationDispatcher, SynchronousExecutor  # noqa: E402
from salonbook.payments import PaymentIntent, PaymentProcessorError  # noqa: E402

# Monday 3 June 2030, 09:00 local time.
NOW = datetime(2030, 6, 3, 9, 0)
TODAY = NOW.date()
NEXT_MONDAY = date(2030, 6, 10)


class FakePaymentProcessor:
    """In-memory stand-in for the Stripe adapter."""

    def __init__(self) -> None:
        self.intents: dict[str, PaymentIntent] = {}
        self.refunds: list[tuple[str, int]] = []
        self.refund_status = "succeeded"
        self.refund_error: Exception | None = None
        self.configured = True

    def add_intent(self, intent_id: str, status: str = "succeeded", amount: int = 1500) -> None:
        received = amount if status == "succeeded" else 0
        self.intents[intent_id] = PaymentIntent(
            id=intent_id, status=status, amount=amount, amount_received=received
        )

    def create_payment_intent(self, amount, currency=None, metadata=None) -> PaymentIntent:
        intent_id = f"pi_fake_{len(self.intents) + 1}"
        intent = PaymentIntent(
            id=intent_id,
            status="requires_payment_method",
            amount=amount,
            client_secret=f"{intent_id}_secret",
        )
        self.intents[intent_id] = intent
        return intent

    def get_payment_intent(self, payment_intent_id: str) -> PaymentIntent:
        try:
            return self.intents[payment_intent_id]
        except KeyError:
            raise PaymentProcessorError(f"No such payment_intent: '{payment_intent_id}'") from None

    def create_refund(self, payment_intent_id: str, amount: int) -> str:
        self.refunds.append((payment_intent_id, amount))
        if self.refund_error is not None:
            raise self.refund_error
        return self.refund_status


class RecordingSender:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str, dict]] = []

    def send(self, kind, recipient, data):
        self.sent.append((kind, recipient, dict(data)))
        return {"success": True}


@pytest.fixture
def processor() -> FakePaymentProcessor:
    return FakePaymentProcessor()


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
def app(processor, sender):
    notifier = NotificationDispatcher(sender, executor=SynchronousExecutor())
    app = create_app(TestingConfig, processor=processor, notifier=notifier, clock=lambda: NOW)
    with app.app_context():
        db.drop_all()
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def core(app):
    return app.extensions["salonbook"]


@pytest.fixture
def ctx(app):
    """Keep an app context pushed for tests that call the core directly."""
    with app.app_context():
        yield


@pytest.fixture
def seeded(app, core) -> dict[str, str]:
    """Two staff members, a 30 minute service and a Monday 10:00-12:00 window."""
    with app.app_context():
        staff_id = core.store.create(
            "staff",
            {
                "user_id": "user-anna",
                "first_name": "Anna",
                "last_name": "Rossi",
                "email": "anna@salon.test",
                "employment_type": "employee",
            },
        )
        other_staff_id = core.store.create(
            "staff",
            {
                "user_id": "user-marco",
                "first_name": "Marco",
                "last_name": "Bianchi",
                "email": "marco@salon.test",
                "employment_type": "self-employed",
            },
        )
        service_id = core.store.create(
            "services",
            {"name": "Haircut", "price_cents": 3000, "duration_minutes": 30},
        )
        window = core.availability.create_window(
            {"staff_id": staff_id, "day_of_week": "monday", "start_time": "10:00", "end_time": "12:00"}
        )
        return {
            "staff_id": staff_id,
            "other_staff_id": other_staff_id,
            "service_id": service_id,
            "availability_id": window.availability_id,
        }


def make_booking(core, seeded, processor, **overrides):
    """Create a paid booking through the lifecycle manager. Call inside an app context."""
    from salonbook.schemas import BookingCreate

    intent_id = overrides.pop("payment_intent_id", "pi_deposit")
    if intent_id not in processor.intents:
        processor.add_intent(intent_id, amount=1500)
    data = {
        "service_id": seeded["service_id"],
        "staff_id": seeded["staff_id"],
        "booking_date": NEXT_MONDAY,
        "booking_time": "10:00",
        "client_name": "Giulia Verdi",
        "client_email": "giulia@example.com",
        "payment_intent_id": intent_id,
    }
    data.update(overrides)
    return core.bookings.create_booking(BookingCreate(**data))
