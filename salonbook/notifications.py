"""Best-effort booking notifications.

Senders implement ``send(kind, recipient, data) -> {"success": bool, "error"?: str}``.
The dispatcher runs them off the request path and logs failures; nothing
here is ever raised back into a booking operation.
"""
from __future__ import annotations

import html
import logging
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Any, Callable, Mapping

import resend

logger = logging.getLogger(__name__)

BOOKING_CONFIRMATION = "booking_confirmation"
STAFF_NEW_BOOKING = "staff_new_booking"
BOOKING_CANCELLED = "booking_cancelled"

TEMPLATE_KINDS = (BOOKING_CONFIRMATION, STAFF_NEW_BOOKING, BOOKING_CANCELLED)


def render(kind: str, data: Mapping[str, Any]) -> tuple[str, str]:
    """Subject and HTML body for a template kind."""
    d = {key: html.escape(str(value)) for key, value in data.items() if value is not None}
    when = f"{d.get('booking_date', '')} at {d.get('booking_time', '')}"

    if kind == BOOKING_CONFIRMATION:
        subject = f"Your booking is confirmed: {data.get('service_name', 'appointment')}"
        body = (
            f"<h2>Hi {d.get('client_name', '')},</h2>"
            f"<p>Your appointment for <strong>{d.get('service_name', '')}</strong> "
            f"with {d.get('staff_name', 'our team')} is booked for {when}.</p>"
            f"<p>Duration: {d.get('duration_minutes', '')} minutes. Price: {d.get('price', '')}</p>"
        )
    elif kind == STAFF_NEW_BOOKING:
        subject = f"New booking: {data.get('client_name', 'client')} on {data.get('booking_date', '')}"
        body = (
            f"<h2>Hi {d.get('staff_name', '')},</h2>"
            f"<p>{d.get('client_name', '')} booked <strong>{d.get('service_name', '')}</strong> "
            f"for {when}.</p>"
        )
    elif kind == BOOKING_CANCELLED:
        subject = f"Your booking on {data.get('booking_date', '')} was cancelled"
        body = (
            f"<h2>Hi {d.get('client_name', '')},</h2>"
            f"<p>Your appointment for <strong>{d.get('service_name', '')}</strong> on {when} "
            f"has been cancelled.</p>"
        )
        if data.get("refund_status") == "refunded":
            body += "<p>Your deposit has been refunded.</p>"
    else:
        raise ValueError(f"Unknown notification kind '{kind}'")

    return subject, body


class ResendEmailSender:
    def __init__(self, api_key: str | None, from_email: str) -> None:
        self.api_key = api_key
        self.from_email = from_email

    def send(self, kind: str, recipient: str, data: Mapping[str, Any]) -> dict[str, object]:
        if not self.api_key:
            return {"success": False, "error": "RESEND_API_KEY is not configured"}
        if not recipient:
            return {"success": False, "error": "missing recipient"}

        subject, body = render(kind, data)
        resend.api_key = self.api_key
        try:
            response = resend.Emails.send(
                {
                    "from": self.from_email,
                    "to": [recipient],
                    "subject": subject,
                    "html": body,
                }
            )
        except Exception as exc:
            return {"success": False, "error": str(exc)}
        return {"success": True, "id": response.get("id") if isinstance(response, dict) else None}


class SynchronousExecutor(Executor):
    """Runs submitted work inline. Used when no worker threads are configured."""

    def submit(self, fn: Callable, /, *args, **kwargs) -> Future:
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as exc:
            future.set_exception(exc)
        return future


class NotificationDispatcher:
    def __init__(self, sender, executor: Executor | None = None, max_workers: int = 2) -> None:
        self.sender = sender
        if executor is None:
            executor = (
                ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="notify")
                if max_workers > 0
                else SynchronousExecutor()
            )
        self.executor = executor

    def dispatch(self, kind: str, recipient: str | None, data: Mapping[str, Any]) -> Future:
        future = self.executor.submit(self.sender.send, kind, recipient, dict(data))
        future.add_done_callback(lambda f: self._log_outcome(f, kind, recipient))
        return future

    @staticmethod
    def _log_outcome(future: Future, kind: str, recipient: str | None) -> None:
        exc = future.exception()
        if exc is not None:
            logger.error("Notification %s to %s raised", kind, recipient, exc_info=exc)
            return
        result = future.result() or {}
        if not result.get("success"):
            logger.warning("Notification %s to %s failed: %s", kind, recipient, result.get("error"))

    def shutdown(self, wait: bool = True) -> None:
        self.executor.shutdown(wait=wait)
