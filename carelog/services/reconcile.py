"""Create-or-update persistence of a single record."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from carelog.exc import AlreadyExists, PersistError

if TYPE_CHECKING:
    from collections.abc import Hashable

    from carelog.services.gateway import RecordGateway

logger = logging.getLogger(__name__)


class Verb(StrEnum):
    """The backend operation a persist ended up using."""

    CREATE = "create"
    UPDATE = "update"


@dataclass(frozen=True)
class PersistOutcome:
    """The result of a successful persist."""

    #: The record key.
    key: Hashable
    #: The verb that stored the record.
    verb: Verb
    #: The record as confirmed by the server.
    record: dict[str, Any] = field(default_factory=dict)
    #: Whether a create hit an existing record and was retried as an update.
    recovered_conflict: bool = False


class ReconciliationClient:
    """
    Persists one full record, choosing between create and update.

    A key believed to be persisted is updated.  Otherwise it is created; if
    the create is rejected because the record already exists (another
    session created it, or an earlier flush of ours did), the same record is
    sent once more as an update.  Any other exception, including one raised
    while validating the record, is raised as
    :class:`~carelog.exc.PersistError` without retrying.

    This class keeps no state and starts no timers; it only issues requests.

    Args:
        gateway: The backend to persist to

    """

    def __init__(self, gateway: RecordGateway) -> None:
        #: The record gateway.
        self.gateway = gateway

    def _update(self, key: Hashable, record: dict[str, Any]) -> dict[str, Any]:
        try:
            return self.gateway.update_record(key, record)
        except Exception as e:
            raise PersistError(key, Verb.UPDATE, e) from e

    def persist(
        self, key: Hashable, record: dict[str, Any], is_known_persisted: bool
    ) -> PersistOutcome:
        """
        Store ``record`` under ``key``.

        Args:
            key: The record key
            record: Every field value of the record
            is_known_persisted: Whether the server is known to have a record
                for ``key``

        Raises:
            PersistError: If the record could not be stored, whatever the
                gateway raised

        Returns:
            Which verb was used and the record the server stored

        """
        if is_known_persisted:
            return PersistOutcome(key, Verb.UPDATE, self._update(key, record))

        try:
            confirmed = self.gateway.create_record(key, record)
        except AlreadyExists:
            logger.info(f"Record {key!s} already exists; retrying as an update")
            return PersistOutcome(
                key, Verb.UPDATE, self._update(key, record), recovered_conflict=True
            )
        except Exception as e:
            raise PersistError(key, Verb.CREATE, e) from e
        return PersistOutcome(key, Verb.CREATE, confirmed)
