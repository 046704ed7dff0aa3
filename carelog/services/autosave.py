"""Field-level autosave of many independently persisted records."""

from __future__ import annotations

import copy
import logging
from functools import partial
from typing import TYPE_CHECKING, Any

from PySide6.QtCore import QObject, QTimer, Signal

from carelog.exc import ResyncFailed
from carelog.services.drafts import Draft, KeyedDraftStore
from carelog.services.existence import ExistenceTracker
from carelog.services.reconcile import PersistOutcome, ReconciliationClient
from carelog.services.runner import ThreadPoolRunner
from carelog.services.scheduler import DebounceScheduler
from carelog.services.settings import AutosaveSettings
from carelog.services.status import SaveStatus, SaveStatusTracker

if TYPE_CHECKING:
    from collections.abc import Hashable, Iterable

    from carelog.services.gateway import RecordGateway


logger = logging.getLogger(__name__)


class AutosaveController(QObject):
    """
    Lets a user edit one record per key through plain field edits, with no
    explicit save.

    Edits are applied to the key's :class:`~carelog.services.drafts.Draft`
    immediately.  After ``debounce_ms`` without further edits to that key the
    whole record is persisted, created or updated as the server requires.
    A failed persist marks the key as ``error`` and triggers a resync: the
    period is fetched again and the server's records replace the drafts,
    discarding edits the server never confirmed.

    One controller is created per editing session and disposed explicitly.
    Collaborators are built from ``gateway`` and ``settings`` unless passed
    in.

    Args:
        gateway: The backend the records live in
        period: The period whose records are edited
        keys: Every key of the period, whether or not a record exists yet

    Keyword Args:
        settings: Autosave timings
        store: Draft store
        existence: Existence tracker
        scheduler: Per-key debouncer
        client: Create-or-update client
        tracker: Save status tracker
        runner: Request runner
        parent: Parent object

    """

    #: Emitted with the key whose draft changed.
    draft_changed = Signal(object)
    #: Emitted after a resync replaced the drafts.
    resynced = Signal()
    #: Emitted with a message when a resync was abandoned.
    resync_failed = Signal(str)

    def __init__(  # noqa: PLR0913
        self,
        gateway: RecordGateway,
        period: Any,
        keys: Iterable[Hashable],
        *,
        settings: AutosaveSettings | None = None,
        store: KeyedDraftStore | None = None,
        existence: ExistenceTracker | None = None,
        scheduler: DebounceScheduler | None = None,
        client: ReconciliationClient | None = None,
        tracker: SaveStatusTracker | None = None,
        runner: Any = None,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        #: Autosave timings.
        self.settings = settings if settings is not None else AutosaveSettings()
        #: The record gateway.
        self.gateway = gateway
        #: The period being edited.
        self.period = period
        #: Every key of the period, in order.
        self.keys: list[Hashable] = list(keys)
        self._key_set = set(self.keys)
        #: The drafts.
        self.store = (
            store if store is not None else KeyedDraftStore(gateway.field_defaults)
        )
        #: Keys known to exist on the server.
        self.existence = existence if existence is not None else ExistenceTracker()
        #: The per-key debouncer.
        self.scheduler = (
            scheduler
            if scheduler is not None
            else DebounceScheduler(self.settings.debounce_ms, parent=self)
        )
        #: The create-or-update client.
        self.client = client if client is not None else ReconciliationClient(gateway)
        #: Per-key save statuses.
        self.tracker = (
            tracker
            if tracker is not None
            else SaveStatusTracker(self.settings.saved_display_ms, parent=self)
        )
        #: Runs backend requests.
        self.runner = runner if runner is not None else ThreadPoolRunner(parent=self)

        #: Keys with a persist running.
        self._in_flight: set[Hashable] = set()
        #: Keys whose timer fired while their persist was running.
        self._deferred: set[Hashable] = set()
        self._resync_in_flight = False
        self._resync_again = False
        self._resync_explicit = False
        self._resync_attempt = 0
        #: Draft revisions when the running resync started.
        self._resync_revisions: dict[Hashable, int] = {}
        #: Keys whose persist completed while the running resync fetched.
        self._resync_confirmed: set[Hashable] = set()
        self._retry_timer = QTimer(self)
        self._retry_timer.setSingleShot(True)
        self._retry_timer.timeout.connect(self._fetch_snapshot)
        self._disposed = False

    # ===============================
    # Reading
    # ===============================

    @property
    def is_disposed(self) -> bool:
        """Whether :meth:`dispose` has been called."""
        return self._disposed

    @property
    def is_resyncing(self) -> bool:
        """Whether a resync is running or waiting to retry."""
        return self._resync_in_flight

    @property
    def has_pending_work(self) -> bool:
        """
        Whether any edit is still waiting for, or in, a flush.

        After :meth:`dispose`, only the final flushes it started count.
        """
        if self._disposed:
            return bool(self._in_flight or self._deferred)
        return bool(
            self._in_flight
            or self.scheduler.pending_keys()
            or self.store.dirty_keys()
        )

    def draft(self, key: Hashable) -> Draft:
        """
        Get a copy of the draft for ``key``.

        Args:
            key: The record key

        Returns:
            A copy the caller may read but whose changes have no effect

        """
        self._check_key(key)
        return copy.deepcopy(self.store.get(key))

    def status(self, key: Hashable) -> SaveStatus:
        """Get the save status of ``key``."""
        return self.tracker.status(key)

    def is_in_flight(self, key: Hashable) -> bool:
        """Whether a persist for ``key`` is running."""
        return key in self._in_flight

    def _check_key(self, key: Hashable) -> None:
        if key not in self._key_set:
            msg = f"{key!s} is not a key of period {self.period!s}"
            raise ValueError(msg)

    # ===============================
    # Editing and flushing
    # ===============================

    def apply_edit(self, key: Hashable, field_name: str, value: Any) -> None:
        """
        Apply a field edit and schedule the key's flush.

        Never waits on the backend.

        Args:
            key: The record key
            field_name: The edited field
            value: The new value

        Raises:
            RuntimeError: If the controller has been disposed
            ValueError: If ``key`` is not in the period
            UnknownField: If the record has no such field

        """
        if self._disposed:
            msg = "Cannot edit through a disposed autosave controller"
            raise RuntimeError(msg)
        self._check_key(key)
        self.store.merge_edit(key, field_name, value)
        self.scheduler.schedule(
            key, partial(self.flush, key), self.settings.debounce_ms
        )
        self.draft_changed.emit(key)

    def flush(self, key: Hashable) -> None:
        """
        Persist the draft for ``key`` if it has unflushed edits.

        Normally called by the scheduler.  If a persist for ``key`` is already
        running, this flush starts as soon as that one completes.

        Args:
            key: The record key

        """
        if key in self._in_flight:
            logger.debug(f"Flush of {key!s} deferred until the running one ends")
            self._deferred.add(key)
            return
        if not self.store.get(key).is_dirty:
            return
        self._start_flush(key)

    def _start_flush(self, key: Hashable) -> None:
        draft = self.store.get(key)
        record = dict(draft.fields)
        is_known_persisted = self.existence.is_persisted(key)
        self._in_flight.add(key)
        if not self._disposed:
            self.tracker.begin(key)
        logger.debug(
            f"Flushing {key!s} ({'update' if is_known_persisted else 'create'})"
        )
        self.runner.submit(
            partial(self.client.persist, key, record, is_known_persisted),
            partial(self._on_persisted, key, draft.revision),
            partial(self._on_persist_failed, key),
        )

    def _on_persisted(
        self, key: Hashable, revision: int, outcome: PersistOutcome
    ) -> None:
        self._in_flight.discard(key)
        self.existence.mark_persisted(key)
        if self._disposed:
            # Only finish what dispose() asked for
            if key in self._deferred:
                self._deferred.discard(key)
                self._start_flush(key)
            return
        if self._resync_in_flight:
            self._resync_confirmed.add(key)
        self.store.mark_flushed(key, revision, confirmed=outcome.record)
        self.tracker.mark_saved(key)
        self.draft_changed.emit(key)
        if key in self._deferred:
            self._deferred.discard(key)
            self.flush(key)

    def _on_persist_failed(self, key: Hashable, error: Exception) -> None:
        self._in_flight.discard(key)
        self._deferred.discard(key)
        logger.warning(f"Autosave of {key!s} failed: {error!s}")
        if self._disposed:
            return
        self.tracker.mark_error(key, str(error))
        self._resync(explicit=False)

    def save_now(self) -> None:
        """Flush every key with unflushed edits now, bypassing the debounce."""
        if self._disposed:
            return
        for key in self.store.dirty_keys():
            self.scheduler.cancel(key)
            self.flush(key)

    # ===============================
    # Resync
    # ===============================

    def load(self) -> None:
        """Fetch the period's records for the first time."""
        self._resync(explicit=True)

    def resync(self) -> None:
        """
        Replace every draft with the server's records.

        Edits not confirmed by the server are discarded.  Keys in ``error``
        return to ``idle`` once the fetch succeeds.
        """
        self._resync(explicit=True)

    def _resync(self, explicit: bool) -> None:
        if self._disposed:
            return
        self._resync_explicit = self._resync_explicit or explicit
        if self._resync_in_flight:
            if self._retry_timer.isActive():
                # Waiting out a backoff: try again now
                self._retry_timer.stop()
                self._resync_attempt = 0
                self._fetch_snapshot()
            else:
                self._resync_again = True
            return
        self.scheduler.cancel_all()
        self._resync_revisions = {key: self.store.revision(key) for key in self.keys}
        self._resync_confirmed = set()
        self._resync_in_flight = True
        self._resync_attempt = 0
        self._fetch_snapshot()

    def _fetch_snapshot(self) -> None:
        self._resync_attempt += 1
        logger.debug(f"Fetching {self.period!s} (attempt {self._resync_attempt})")
        self.runner.submit(
            partial(self.gateway.fetch_collection, self.period),
            self._on_snapshot,
            self._on_snapshot_failed,
        )

    def _on_snapshot(self, records: list[dict[str, Any]]) -> None:
        if self._disposed:
            return
        fetched = self.store.load_snapshot(
            record for record in records if record["key"] in self._key_set
        )
        self.existence.reset(
            fetched | self._in_flight_persisted() | self._resync_confirmed
        )
        for key in self.keys:
            if (
                key in self._in_flight
                or key in self._resync_confirmed
                or self.store.revision(key) != self._resync_revisions.get(key, -1)
            ):
                # Edited or saved during the fetch, or about to be: keep it
                self.store.get(key).is_known_persisted = key in self.existence
                continue
            self.store.replace(
                key, self.store.fetched(key) or self.store.defaults, key in fetched
            )
            self.draft_changed.emit(key)
        self._resync_in_flight = False
        if self._resync_again:
            self._resync_again = False
            self._resync(explicit=False)
            return
        logger.info(f"Resynced {len(fetched)} record(s) of {self.period!s}")
        if self._resync_explicit:
            self.tracker.clear_errors()
        self._resync_explicit = False
        self.resynced.emit()

    def _in_flight_persisted(self) -> set[Hashable]:
        return {key for key in self._in_flight if key in self.existence}

    def _on_snapshot_failed(self, error: Exception) -> None:
        if self._disposed:
            return
        if self._resync_attempt < self.settings.resync_max_attempts:
            delay = self.settings.resync_retry_ms * 2 ** (self._resync_attempt - 1)
            logger.warning(
                f"Fetching {self.period!s} failed: {error!s}; retrying in {delay} ms"
            )
            self._retry_timer.start(delay)
            return
        failure = ResyncFailed(self._resync_attempt, error)
        logger.error(str(failure))
        self._resync_in_flight = False
        self._resync_again = False
        self._resync_explicit = False
        self.resync_failed.emit(str(failure))

    # ===============================
    # Teardown
    # ===============================

    def dispose(self, flush_pending: bool = True) -> None:
        """
        End the editing session.

        Pending timers are cancelled.  With ``flush_pending``, every key with
        unflushed edits is persisted one last time; those results no longer
        change statuses or trigger a resync.

        Keyword Args:
            flush_pending: Whether to persist unflushed edits

        """
        if self._disposed:
            return
        self.scheduler.cancel_all()
        self._retry_timer.stop()
        dirty = self.store.dirty_keys() if flush_pending else []
        self._disposed = True
        self.tracker.dispose()
        self._deferred = {key for key in dirty if key in self._in_flight}
        for key in dirty:
            if key not in self._in_flight:
                self._start_flush(key)
