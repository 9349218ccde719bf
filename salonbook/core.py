"""Wires the booking components to their capabilities."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Mapping

from .availability import AvailabilityService
from .blocks import BlockedSlotService
from .lifecycle import BookingLifecycle
from .notifications import NotificationDispatcher, ResendEmailSender
from .payments import PaymentService, StripePaymentProcessor
from .reconciliation import ReconciliationService
from .slots import SlotService
from .store import DocumentStore


class BookingCore:
    """One instance per app, stored on ``app.extensions["salonbook"]``."""

    def __init__(
        self,
        store: DocumentStore,
        processor,
        notifier=None,
        *,
        deposit_percentage: int = 50,
        buffer_minutes: int = 30,
        min_cancel_hours: float = 24,
        staff_notification_allowlist=(),
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.store = store
        self.processor = processor
        self.notifier = notifier
        self.availability = AvailabilityService(store)
        self.blocks = BlockedSlotService(store)
        self.slots = SlotService(store, self.availability, buffer_minutes=buffer_minutes, clock=clock)
        self.payments = PaymentService(store, processor, deposit_percentage)
        self.bookings = BookingLifecycle(
            store,
            processor,
            notifier,
            deposit_percentage=deposit_percentage,
            min_cancel_hours=min_cancel_hours,
            staff_notification_allowlist=staff_notification_allowlist,
            clock=clock,
        )
        self.reconciliation = ReconciliationService(store, deposit_percentage)

    @classmethod
    def build(
        cls,
        config: Mapping[str, Any],
        processor=None,
        sender=None,
        notifier=None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> "BookingCore":
        if processor is None:
            processor = StripePaymentProcessor(
                config.get("STRIPE_SECRET_KEY"), config.get("PAYMENT_CURRENCY", "eur")
            )
        if notifier is None:
            if sender is None:
                sender = ResendEmailSender(
                    config.get("RESEND_API_KEY"), config.get("NOTIFICATION_FROM_EMAIL", "onboarding@resend.dev")
                )
            notifier = NotificationDispatcher(sender, max_workers=int(config.get("NOTIFICATION_WORKERS", 2)))

        return cls(
            DocumentStore(),
            processor,
            notifier,
            deposit_percentage=int(config.get("DEPOSIT_PERCENTAGE", 50)),
            buffer_minutes=int(config.get("MIN_BOOKING_BUFFER_MINUTES", 30)),
            min_cancel_hours=float(config.get("MIN_CANCEL_HOURS", 24)),
            staff_notification_allowlist=config.get("STAFF_NOTIFICATION_ALLOWLIST") or (),
            clock=clock,
        )
