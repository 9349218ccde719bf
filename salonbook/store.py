"""Document-store style access to the booking tables.

The booking core talks to persistence only through :class:`DocumentStore`:
get/list/create/update/delete by collection name and id, with equality and
inclusive range filters. Each write commits on its own; no multi-record
transactions are assumed.
"""
from __future__ import annotations

from typing import Any, Iterable, Mapping

from sqlalchemy import inspect

from .extensions import db
from .models import Availability, BlockedSlot, Booking, Service, Staff

COLLECTIONS: dict[str, type[db.Model]] = {
    "staff": Staff,
    "services": Service,
    "availability": Availability,
    "blocked_slots": BlockedSlot,
    "bookings": Booking,
}


class DocumentStore:
    """Generic CRUD over the SQLAlchemy session."""

    def __init__(self, session=None) -> None:
        self._session = session

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    def _model(self, collection: str):
        try:
            return COLLECTIONS[collection]
        except KeyError:
            raise KeyError(f"Unknown collection '{collection}'") from None

    @staticmethod
    def _primary_key(model) -> str:
        return inspect(model).primary_key[0].name

    def get(self, collection: str, record_id: str | None):
        if not record_id:
            return None
        return self.session.get(self._model(collection), record_id)

    def list(
        self,
        collection: str,
        filters: Mapping[str, Any] | None = None,
        ranges: Mapping[str, tuple[Any, Any]] | None = None,
        order_by: Iterable[str] = (),
    ) -> list:
        model = self._model(collection)
        query = self.session.query(model)

        for field, value in (filters or {}).items():
            column = getattr(model, field)
            query = query.filter(column.is_(None) if value is None else column == value)

        for field, (low, high) in (ranges or {}).items():
            column = getattr(model, field)
            if low is not None:
                query = query.filter(column >= low)
            if high is not None:
                query = query.filter(column <= high)

        for field in order_by:
            query = query.order_by(getattr(model, field))

        return query.all()

    def create(self, collection: str, data: Mapping[str, Any]) -> str:
        model = self._model(collection)
        record = model(**data)
        self.session.add(record)
        self.session.commit()
        return getattr(record, self._primary_key(model))

    def update(self, collection: str, record_id: str, changes: Mapping[str, Any]):
        record = self.get(collection, record_id)
        if record is None:
            return None
        for field, value in changes.items():
            setattr(record, field, value)
        self.session.commit()
        return record

    def delete(self, collection: str, record_id: str) -> bool:
        record = self.get(collection, record_id)
        if record is None:
            return False
        self.session.delete(record)
        self.session.commit()
        return True

    def rollback(self) -> None:
        self.session.rollback()
