"""Roles and the authorization rule applied by every booking transition."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .errors import PermissionDeniedError

logger = logging.getLogger(__name__)

MIN_CANCEL_HOURS = 24


class Role(str, Enum):
    CLIENT = "client"
    EMPLOYEE = "employee"
    OWNER = "owner"
    ADMIN = "admin"


class Action(str, Enum):
    CANCEL = "cancel"
    CHANGE_STATUS = "change_status"
    CLOSE_SALE = "close_sale"
    EDIT = "edit"
    REASSIGN = "reassign"
    DELETE = "delete"


MANAGERS = frozenset({Role.OWNER, Role.ADMIN})
STAFF_ROLES = frozenset({Role.EMPLOYEE, Role.OWNER, Role.ADMIN})


@dataclass(frozen=True)
class Actor:
    """Who is performing an operation.

    ``employee_id`` is the staff record of an employee actor and is what
    ownership checks compare against ``booking.staff_id``.
    """

    role: Role = Role.CLIENT
    user_id: str | None = None
    name: str | None = None
    employee_id: str | None = None

    @property
    def display_name(self) -> str:
        return self.name or self.user_id or self.role.value

    @property
    def is_manager(self) -> bool:
        return self.role in MANAGERS

    def owns(self, booking: Any) -> bool:
        return (
            self.role is Role.EMPLOYEE
            and self.employee_id is not None
            and self.employee_id == booking.staff_id
        )


def authorize(
    action: Action,
    actor: Actor,
    booking: Any,
    *,
    hours_until: float | None = None,
    force: bool = False,
    min_cancel_hours: float = MIN_CANCEL_HOURS,
) -> None:
    """Raise :class:`PermissionDeniedError` unless ``actor`` may perform ``action``."""
    if action is Action.CANCEL:
        if force or actor.role in STAFF_ROLES:
            return
        if hours_until is not None and hours_until >= min_cancel_hours:
            return
        _deny(
            action,
            actor,
            f"Cancellations are only allowed up to {min_cancel_hours:g} hours before the appointment.",
        )

    if actor.is_manager:
        return

    if action in (Action.REASSIGN, Action.DELETE):
        _deny(action, actor, "Only the salon owner can perform this action.")

    if not actor.owns(booking):
        _deny(action, actor, "You can only manage bookings assigned to you.")


def _deny(action: Action, actor: Actor, message: str) -> None:
    logger.info(
        "Denied %s for %s (role=%s)", action.value, actor.user_id or "anonymous", actor.role.value
    )
    raise PermissionDeniedError(message)
