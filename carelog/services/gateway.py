"""Record-collection gateways consumed by the autosave engine."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import SQLAlchemyError

from carelog.exc import DoesNotExist, GatewayUnavailable
from carelog.models.inspection import FIELD_DEFAULTS, InspectionRecord
from carelog.models.staff import Staff
from carelog.models.store import Store

if TYPE_CHECKING:
    from sqlalchemy.orm import Session, sessionmaker

    from carelog.utils import Period


class RecordGateway(ABC):
    """
    The backend's record-collection endpoints.

    Records travel as flat dictionaries: ``{"key": ..., "id": ..., **fields}``.
    Implementations raise :class:`~carelog.exc.AlreadyExists` when a create
    hits an existing record, :class:`~carelog.exc.DoesNotExist` when an update
    hits a missing one, and another :class:`~carelog.exc.GatewayError` for
    anything else that went wrong.
    """

    #: Field defaults of the records this gateway serves.
    field_defaults: dict[str, Any] = {}

    @abstractmethod
    def fetch_collection(self, period: Any) -> list[dict[str, Any]]:
        """
        Fetch the authoritative snapshot of every record in a period.

        Args:
            period: The period to fetch

        Returns:
            The records that exist

        """

    @abstractmethod
    def create_record(self, key: Any, fields: dict[str, Any]) -> dict[str, Any]:
        """
        Create the record for a key.

        Args:
            key: The record key
            fields: Every field value

        Returns:
            The record as stored

        """

    @abstractmethod
    def update_record(self, key: Any, fields: dict[str, Any]) -> dict[str, Any]:
        """
        Overwrite the record for a key.

        Args:
            key: The record key
            fields: Every field value

        Returns:
            The record as stored

        """

    @abstractmethod
    def fetch_staff_list(self) -> list[dict[str, Any]]:
        """
        Fetch the staff reference list.

        Returns:
            ``{"id", "name"}`` dictionaries

        """

    @abstractmethod
    def fetch_export(self, period: Any) -> dict[str, Any]:
        """
        Fetch everything needed to print a period's logbook.

        Args:
            period: The period to export

        Returns:
            ``{"store", "records", "year", "month"}``

        """


class InspectionRecordGateway(RecordGateway):
    """
    Gateway serving a store's daily inspection records from the database.

    Each request runs in its own session so requests may be served from
    worker threads.

    Args:
        session_factory: SQLAlchemy session factory
        store_id: The store whose logbook is served

    """

    field_defaults = FIELD_DEFAULTS

    def __init__(self, session_factory: sessionmaker[Session], store_id: int) -> None:
        #: The SQLAlchemy session factory.
        self.session_factory = session_factory
        #: The store ID.
        self.store_id = store_id

    @staticmethod
    def _to_record(record: InspectionRecord) -> dict[str, Any]:
        return {
            "key": record.inspection_date.isoformat(),
            "id": record.id,
            **record.fields,
        }

    def fetch_collection(self, period: Period) -> list[dict[str, Any]]:
        year, month = period
        try:
            with self.session_factory() as session:
                return [
                    self._to_record(record)
                    for record in InspectionRecord.list_for_month(
                        session, self.store_id, year, month
                    )
                ]
        except SQLAlchemyError as e:
            raise GatewayUnavailable(e) from e

    def create_record(self, key: str, fields: dict[str, Any]) -> dict[str, Any]:
        try:
            with self.session_factory() as session:
                record = InspectionRecord.create(session, self.store_id, key, fields)
                return self._to_record(record)
        except SQLAlchemyError as e:
            raise GatewayUnavailable(e) from e

    def update_record(self, key: str, fields: dict[str, Any]) -> dict[str, Any]:
        try:
            with self.session_factory() as session:
                record = InspectionRecord.update(session, self.store_id, key, fields)
                return self._to_record(record)
        except SQLAlchemyError as e:
            raise GatewayUnavailable(e) from e

    def fetch_staff_list(self) -> list[dict[str, Any]]:
        try:
            with self.session_factory() as session:
                return [staff.to_json() for staff in Staff.list(session, self.store_id)]
        except SQLAlchemyError as e:
            raise GatewayUnavailable(e) from e

    def fetch_export(self, period: Period) -> dict[str, Any]:
        year, month = period
        try:
            with self.session_factory() as session:
                store = Store.get(session, self.store_id)
                if store is None:
                    raise DoesNotExist("Store", self.store_id)
                records = InspectionRecord.list_for_month(
                    session, self.store_id, year, month
                )
                return {
                    "store": store.to_json(),
                    "records": [record.to_json() for record in records],
                    "year": year,
                    "month": month,
                }
        except SQLAlchemyError as e:
            raise GatewayUnavailable(e) from e
