"""Request bodies validated at the HTTP boundary."""
from __future__ import annotations

import datetime as dt
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from .policy import Actor, Role
from .timeutils import is_valid_time

DayOfWeek = Literal["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


def _check_time(value: Optional[str]) -> Optional[str]:
    if value is not None and not is_valid_time(value):
        raise ValueError("must use HH:MM format")
    return value


class ActorIn(BaseModel):
    role: Role = Role.CLIENT
    user_id: Optional[str] = None
    name: Optional[str] = None
    employee_id: Optional[str] = None

    def to_actor(self) -> Actor:
        return Actor(role=self.role, user_id=self.user_id, name=self.name, employee_id=self.employee_id)


class _ActorBody(BaseModel):
    actor: ActorIn = Field(default_factory=ActorIn)

    def to_actor(self) -> Actor:
        return self.actor.to_actor()


class SlotQuery(BaseModel):
    staff_id: str = Field(min_length=1)
    service_id: str = Field(min_length=1)
    date: dt.date
    duration: Optional[int] = Field(default=None, gt=0)
    is_staff_booking: bool = False


class BookingCreate(BaseModel):
    service_id: str = Field(min_length=1)
    staff_id: str = Field(min_length=1)
    booking_date: dt.date
    booking_time: str
    client_name: str = Field(min_length=1, max_length=150)
    client_email: Optional[EmailStr] = None
    client_phone: Optional[str] = None
    created_by_role: Optional[Role] = None
    created_by_name: Optional[str] = None
    created_by_user_id: Optional[str] = None
    notes: Optional[str] = None
    payment_intent_id: Optional[str] = None
    allow_unpaid: bool = False

    check_time = field_validator("booking_time")(_check_time)


class CancelRequest(BaseModel):
    role: Optional[Role] = None
    actor: Optional[ActorIn] = None
    reason: Optional[str] = None
    force: bool = False

    def to_actor(self) -> Actor:
        actor = self.actor or ActorIn()
        if self.role is not None:
            actor = actor.model_copy(update={"role": self.role})
        return actor.to_actor()


class StatusUpdate(_ActorBody):
    status: str


class BookingUpdate(_ActorBody):
    model_config = ConfigDict(extra="forbid")

    client_name: Optional[str] = Field(default=None, min_length=1, max_length=150)
    client_email: Optional[EmailStr] = None
    client_phone: Optional[str] = None
    notes: Optional[str] = None
    booking_date: Optional[dt.date] = None
    booking_time: Optional[str] = None
    staff_id: Optional[str] = None
    status: Optional[str] = None

    check_time = field_validator("booking_time")(_check_time)

    def to_changes(self) -> dict[str, object]:
        return self.model_dump(exclude_unset=True, exclude={"actor"})


class AdditionalServiceIn(_ActorBody):
    service_name: Optional[str] = None
    price_cents: Optional[int] = Field(default=None, gt=0)
    service_id: Optional[str] = None

    @model_validator(mode="after")
    def _catalog_or_custom(self) -> "AdditionalServiceIn":
        if not self.service_id and not (self.service_name and self.price_cents):
            raise ValueError("service_id, or service_name and price_cents, are required")
        return self


class FinalPaymentIn(_ActorBody):
    method: Literal["cash", "pos"]
    amount_cents: int = Field(ge=0)
    notes: Optional[str] = None


class AvailabilityIn(BaseModel):
    staff_id: str = Field(min_length=1)
    service_id: Optional[str] = None
    day_of_week: DayOfWeek
    start_time: str
    end_time: str
    is_available: bool = True
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None

    check_times = field_validator("start_time", "end_time")(_check_time)


class AvailabilityUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    service_id: Optional[str] = None
    day_of_week: Optional[DayOfWeek] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    is_available: Optional[bool] = None
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None

    check_times = field_validator("start_time", "end_time")(_check_time)


class BlockedSlotIn(BaseModel):
    staff_id: str = Field(min_length=1)
    service_id: Optional[str] = None
    date: dt.date
    start_time: str
    end_time: Optional[str] = None
    reason: Optional[str] = Field(default=None, max_length=255)

    check_times = field_validator("start_time", "end_time")(_check_time)


class PaymentIntentIn(BaseModel):
    service_id: str = Field(min_length=1)
    booking_date: Optional[dt.date] = None
    booking_time: Optional[str] = None
    client_name: Optional[str] = None
    client_email: Optional[str] = None


class EndOfDayQuery(BaseModel):
    date: dt.date
    method: Literal["all", "cash", "pos"] = "all"
    staff: str = "all"


class BookingListQuery(BaseModel):
    staff_id: Optional[str] = None
    status: Optional[str] = None
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None


class BlockedSlotQuery(BaseModel):
    staff_id: str = Field(min_length=1)
    service_id: Optional[str] = None
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None


def actor_from_args(args) -> Actor:
    """Actor passed as ``actor_role``/``actor_user_id``/... query parameters."""
    fields = {key[len("actor_"):]: value for key, value in args.items() if key.startswith("actor_") and value}
    return ActorIn.model_validate(fields).to_actor()
