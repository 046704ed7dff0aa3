"""Inspection record model."""

from __future__ import annotations

import builtins
from datetime import date, datetime
from typing import Any, Final

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    select,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from carelog.db import Base
from carelog.exc import AlreadyExists, DoesNotExist
from carelog.utils import month_keys, to_utc_iso

#: Every editable field of an inspection record with its default value.
FIELD_DEFAULTS: Final[dict[str, Any]] = {
    "inspection_time": None,
    "cleaning_done": False,
    "disinfection_done": False,
    "maintenance_done": False,
    "animal_count_abnormal": False,
    "animal_state_abnormal": False,
    "inspector_name": None,
    "notes": None,
}

#: The boolean fields.
BOOLEAN_FIELDS: Final[frozenset[str]] = frozenset(
    name for name, value in FIELD_DEFAULTS.items() if isinstance(value, bool)
)


class InspectionRecord(Base):
    """
    Represents one day of a store's inspection logbook.

    There is at most one record per store and calendar day.
    """

    __tablename__ = "inspection_records"
    __table_args__ = (
        UniqueConstraint(
            "store_id", "inspection_date", name="uq_inspection_records_store_date"
        ),
    )

    #: The record ID.
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    #: The store ID.
    store_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False
    )
    #: The day this record covers.
    inspection_date: Mapped[date] = mapped_column(Date, nullable=False)
    #: The time of the inspection (``HH:MM``).
    inspection_time: Mapped[str | None] = mapped_column(String, nullable=True)
    #: Whether the facility was cleaned.
    cleaning_done: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    #: Whether the facility was disinfected.
    disinfection_done: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    #: Whether the equipment maintenance check was done.
    maintenance_done: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    #: Whether the animal head count was abnormal.
    animal_count_abnormal: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    #: Whether any animal's condition was abnormal.
    animal_state_abnormal: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    #: The name of the person who did the inspection.
    inspector_name: Mapped[str | None] = mapped_column(String, nullable=True)
    #: Free-form notes.
    notes: Mapped[str | None] = mapped_column(String, nullable=True)
    #: The date and time the record was created.
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.now, nullable=False
    )
    #: The date and time the record was last updated.
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.now, onupdate=datetime.now, nullable=False
    )

    @staticmethod
    def normalize(field_name: str, value: Any) -> Any:
        """
        Normalize a field value for storage.

        Booleans are coerced to ``bool`` and empty strings become ``None``.

        Args:
            field_name: Field name
            value: Submitted value

        Returns:
            The value to store

        """
        if field_name in BOOLEAN_FIELDS:
            return bool(value)
        if value is None or value == "":
            return None
        return str(value)

    @classmethod
    def get(
        cls, session: Session, store_id: int, inspection_date: str
    ) -> InspectionRecord | None:
        """
        Get the record of a store for a day.

        Args:
            session: SQLAlchemy session
            store_id: Store ID
            inspection_date: ISO date

        Returns:
            The record, or None if there is none for that day

        """
        return session.scalar(
            select(cls).where(
                cls.store_id == store_id,
                cls.inspection_date == date.fromisoformat(inspection_date),
            )
        )

    @classmethod
    def list_for_month(
        cls, session: Session, store_id: int, year: int, month: int
    ) -> builtins.list[InspectionRecord]:
        """
        Get all records of a store within a month, ordered by date.

        Args:
            session: SQLAlchemy session
            store_id: Store ID
            year: Year
            month: Month (1-12)

        Returns:
            List of records ordered by date

        """
        days = month_keys(year, month)
        return builtins.list(
            session.scalars(
                select(cls)
                .where(
                    cls.store_id == store_id,
                    cls.inspection_date >= date.fromisoformat(days[0]),
                    cls.inspection_date <= date.fromisoformat(days[-1]),
                )
                .order_by(cls.inspection_date)
            ).all()
        )

    @classmethod
    def create(
        cls,
        session: Session,
        store_id: int,
        inspection_date: str,
        fields: dict[str, Any],
    ) -> InspectionRecord:
        """
        Create the record of a store for a day.

        Args:
            session: SQLAlchemy session
            store_id: Store ID
            inspection_date: ISO date
            fields: Field values; fields not given take their defaults

        Raises:
            AlreadyExists: If the store already has a record for that day

        Returns:
            The new record

        """
        if cls.get(session, store_id, inspection_date) is not None:
            raise AlreadyExists("InspectionRecord", inspection_date)

        record = cls(
            store_id=store_id,
            inspection_date=date.fromisoformat(inspection_date),
            **FIELD_DEFAULTS,
        )
        record.apply(fields)
        session.add(record)
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            # Lost a race against another writer for the same day
            if cls.get(session, store_id, inspection_date) is not None:
                raise AlreadyExists("InspectionRecord", inspection_date) from None
            raise
        return record

    @classmethod
    def update(
        cls,
        session: Session,
        store_id: int,
        inspection_date: str,
        fields: dict[str, Any],
    ) -> InspectionRecord:
        """
        Replace the field values of the record of a store for a day.

        Args:
            session: SQLAlchemy session
            store_id: Store ID
            inspection_date: ISO date
            fields: Field values; each given field overwrites the stored one,
                including with ``None``

        Raises:
            DoesNotExist: If the store has no record for that day

        Returns:
            The updated record

        """
        record = cls.get(session, store_id, inspection_date)
        if record is None:
            raise DoesNotExist("InspectionRecord", inspection_date)
        record.apply(fields)
        session.commit()
        session.refresh(record)
        return record

    def apply(self, fields: dict[str, Any]) -> None:
        """
        Set field values, ignoring names that are not record fields.

        Args:
            fields: Field values

        """
        for name in FIELD_DEFAULTS:
            if name in fields:
                setattr(self, name, self.normalize(name, fields[name]))

    @property
    def fields(self) -> dict[str, Any]:
        """The editable field values."""
        return {name: getattr(self, name) for name in FIELD_DEFAULTS}

    def to_json(self) -> dict:
        """
        Serialize record to a JSON-compatible dictionary.

        Returns:
            Dictionary containing record data

        """
        return {
            "id": self.id,
            "inspection_date": self.inspection_date.isoformat(),
            **self.fields,
            "created_at": to_utc_iso(self.created_at),
            "updated_at": to_utc_iso(self.updated_at),
        }
