"""Stripe-backed payment processor and deposit helpers."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping

import stripe

from .errors import ConfigurationError, NotFoundError, ValidationError
from .store import DocumentStore

logger = logging.getLogger(__name__)

DEPOSIT_PERCENTAGE = 50


class PaymentProcessorError(Exception):
    """The payment processor rejected or failed a call."""


@dataclass(frozen=True)
class PaymentIntent:
    id: str
    status: str
    amount: int = 0
    amount_received: int = 0
    client_secret: str | None = None


def deposit_for(price_cents: int, percentage: int = DEPOSIT_PERCENTAGE) -> int:
    """Deposit in minor units, rounding half up."""
    return (price_cents * percentage + 50) // 100


class StripePaymentProcessor:
    """Thin adapter over the Stripe API.

    The key is applied right before each call so no process-wide client is
    configured at import time.
    """

    def __init__(self, api_key: str | None, currency: str = "eur") -> None:
        self.api_key = api_key
        self.currency = currency

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _configure(self) -> None:
        if not self.api_key:
            logger.warning("Stripe secret key not configured")
            raise ConfigurationError("Payments are not currently available. Please contact support.")
        stripe.api_key = self.api_key

    @staticmethod
    def _to_intent(obj) -> PaymentIntent:
        return PaymentIntent(
            id=obj.id,
            status=obj.status,
            amount=int(getattr(obj, "amount", 0) or 0),
            amount_received=int(getattr(obj, "amount_received", 0) or 0),
            client_secret=getattr(obj, "client_secret", None),
        )

    def create_payment_intent(
        self,
        amount: int,
        currency: str | None = None,
        metadata: Mapping[str, str] | None = None,
    ) -> PaymentIntent:
        self._configure()
        try:
            intent = stripe.PaymentIntent.create(
                amount=int(amount),
                currency=currency or self.currency,
                metadata=dict(metadata or {}),
                automatic_payment_methods={"enabled": True},
            )
        except stripe.StripeError as exc:
            logger.exception("Stripe API error while creating payment intent")
            raise PaymentProcessorError(str(exc)) from exc
        return self._to_intent(intent)

    def get_payment_intent(self, payment_intent_id: str) -> PaymentIntent:
        self._configure()
        try:
            intent = stripe.PaymentIntent.retrieve(payment_intent_id)
        except stripe.StripeError as exc:
            logger.exception("Stripe API error while retrieving payment intent %s", payment_intent_id)
            raise PaymentProcessorError(str(exc)) from exc
        return self._to_intent(intent)

    def create_refund(self, payment_intent_id: str, amount: int) -> str:
        self._configure()
        try:
            refund = stripe.Refund.create(payment_intent=payment_intent_id, amount=int(amount))
        except stripe.StripeError as exc:
            logger.exception("Stripe API error while refunding %s", payment_intent_id)
            raise PaymentProcessorError(str(exc)) from exc
        return refund.status


class PaymentService:
    def __init__(self, store: DocumentStore, processor, deposit_percentage: int = DEPOSIT_PERCENTAGE) -> None:
        self.store = store
        self.processor = processor
        self.deposit_percentage = deposit_percentage

    def create_deposit_intent(self, service_id: str, metadata: Mapping[str, str] | None = None) -> dict[str, object]:
        service = self.store.get("services", service_id)
        if service is None:
            raise NotFoundError("Service not found")
        if not service.price_cents or service.price_cents <= 0:
            raise ValidationError("Service price is not configured correctly.")

        amount = deposit_for(service.price_cents, self.deposit_percentage)
        details = {
            "service_id": service.service_id,
            "service_name": service.name,
            "booking_id": "pending",
            **{k: str(v) for k, v in (metadata or {}).items() if v is not None},
        }
        intent = self.processor.create_payment_intent(amount, metadata=details)
        return {
            "client_secret": intent.client_secret,
            "payment_intent_id": intent.id,
            "amount": amount,
        }
