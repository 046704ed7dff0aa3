"""Per-key save status for the presentation layer."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING

from PySide6.QtCore import QObject, Signal

from carelog.services.scheduler import DebounceScheduler

if TYPE_CHECKING:
    from collections.abc import Hashable


class SaveStatus(StrEnum):
    """Where a key is in its save cycle."""

    IDLE = "idle"
    PENDING = "pending"
    SAVED = "saved"
    ERROR = "error"


class SaveStatusTracker(QObject):
    """
    Tracks ``idle -> pending -> (saved | error)`` for every key.

    ``saved`` decays back to ``idle`` after ``saved_display_ms``.  ``error``
    stays until the key's next successful flush or until
    :meth:`clear_errors` is called for an explicit resync.

    Args:
        saved_display_ms: How long ``saved`` is shown; 0 keeps it
        parent: Parent object

    """

    #: Emitted with ``(key, status)`` whenever a key's status changes.
    status_changed = Signal(object, str)

    def __init__(
        self, saved_display_ms: int = 3000, parent: QObject | None = None
    ) -> None:
        super().__init__(parent)
        #: How long ``saved`` is displayed, in milliseconds.
        self.saved_display_ms = saved_display_ms
        self._statuses: dict[Hashable, SaveStatus] = {}
        self._errors: dict[Hashable, str] = {}
        self._last_saved_at: dict[Hashable, datetime] = {}
        self._decay = DebounceScheduler(saved_display_ms, parent=self)

    def _set(self, key: Hashable, status: SaveStatus) -> None:
        if self._statuses.get(key, SaveStatus.IDLE) == status:
            return
        self._statuses[key] = status
        self.status_changed.emit(key, str(status))

    def status(self, key: Hashable) -> SaveStatus:
        """Get the status of ``key``."""
        return self._statuses.get(key, SaveStatus.IDLE)

    def statuses(self) -> dict[Hashable, SaveStatus]:
        """Get every key whose status is not ``idle``."""
        return {
            key: status
            for key, status in self._statuses.items()
            if status != SaveStatus.IDLE
        }

    def error_message(self, key: Hashable) -> str | None:
        """Get the message of the error ``key`` is in, if any."""
        return self._errors.get(key)

    def last_saved_at(self, key: Hashable) -> datetime | None:
        """Get when ``key`` was last saved successfully, if ever."""
        return self._last_saved_at.get(key)

    def begin(self, key: Hashable) -> None:
        """Mark that a flush for ``key`` started."""
        self._decay.cancel(key)
        self._set(key, SaveStatus.PENDING)

    def mark_saved(self, key: Hashable) -> None:
        """Mark that a flush for ``key`` succeeded."""
        self._errors.pop(key, None)
        self._last_saved_at[key] = datetime.now(UTC)
        self._set(key, SaveStatus.SAVED)
        if self.saved_display_ms > 0:
            self._decay.schedule(key, lambda: self._decay_saved(key))

    def _decay_saved(self, key: Hashable) -> None:
        if self.status(key) == SaveStatus.SAVED:
            self._set(key, SaveStatus.IDLE)

    def mark_error(self, key: Hashable, message: str) -> None:
        """Mark that a flush for ``key`` failed."""
        self._decay.cancel(key)
        self._errors[key] = message
        self._set(key, SaveStatus.ERROR)

    def clear_errors(self) -> None:
        """Return every key in ``error`` to ``idle``."""
        for key in [
            key
            for key, status in self._statuses.items()
            if status == SaveStatus.ERROR
        ]:
            self._errors.pop(key, None)
            self._set(key, SaveStatus.IDLE)

    def dispose(self) -> None:
        """Stop any pending ``saved`` decay."""
        self._decay.cancel_all()
