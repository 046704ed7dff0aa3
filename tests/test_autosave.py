"""Unit tests for AutosaveController."""

from unittest.mock import patch

import pytest

from carelog.exc import GatewayUnavailable, UnknownField
from carelog.services.autosave import AutosaveController
from carelog.services.gateway import InspectionRecordGateway
from carelog.services.runner import InlineRunner
from carelog.services.settings import AutosaveSettings
from carelog.services.status import SaveStatus
from carelog.utils import month_keys
from tests.fakes import FakeGateway, process_events, wait_until

KEY = "2026-02-19"
OTHER_KEY = "2026-02-20"


def offline():
    return GatewayUnavailable(ConnectionError("offline"))


class TestLoad:
    """Test cases for the first fetch."""

    def test_load_seeds_drafts_from_server(self, gateway, controller, runner):
        """Test load() seeds drafts and existence from the fetched records."""
        gateway.insert(KEY, cleaning_done=True, inspector_name="Hanako")
        resynced = []
        controller.resynced.connect(lambda: resynced.append(True))

        controller.load()
        assert controller.is_resyncing
        runner.run_all()

        draft = controller.draft(KEY)
        assert draft.fields["cleaning_done"] is True
        assert draft.fields["inspector_name"] == "Hanako"
        assert draft.is_known_persisted is True
        assert draft.is_dirty is False
        assert KEY in controller.existence
        assert OTHER_KEY not in controller.existence
        assert not controller.is_resyncing
        assert resynced == [True]

    def test_keys_without_record_start_from_defaults(self, loaded):
        """Test keys without a server record get the default fields."""
        draft = loaded.draft(OTHER_KEY)
        assert draft.fields == loaded.store.defaults
        assert draft.is_known_persisted is False

    def test_records_outside_period_are_ignored(self, gateway, controller, runner):
        """Test fetched records for keys outside the period are dropped."""
        gateway.insert("2026-03-01", cleaning_done=True)
        controller.load()
        runner.run_all()
        assert "2026-03-01" not in controller.existence


class TestApplyEdit:
    """Test cases for apply_edit()."""

    def test_edit_updates_draft_immediately(self, loaded, gateway, scheduler):
        """Test the draft reflects an edit before any request is made."""
        gateway.calls.clear()
        loaded.apply_edit(KEY, "cleaning_done", True)

        draft = loaded.draft(KEY)
        assert draft.fields["cleaning_done"] is True
        assert draft.pending_fields == {"cleaning_done"}
        assert scheduler.is_pending(KEY)
        assert gateway.calls == []
        assert loaded.has_pending_work

    def test_edit_emits_draft_changed(self, loaded):
        """Test apply_edit() emits draft_changed with the key."""
        changed = []
        loaded.draft_changed.connect(changed.append)
        loaded.apply_edit(KEY, "notes", "Water bowl replaced")
        assert changed == [KEY]

    def test_unknown_field_raises(self, loaded):
        """Test editing a field the record does not have raises UnknownField."""
        with pytest.raises(UnknownField):
            loaded.apply_edit(KEY, "temperature", 21)

    def test_key_outside_period_raises(self, loaded):
        """Test editing a key outside the period raises ValueError."""
        with pytest.raises(ValueError, match="not a key of period"):
            loaded.apply_edit("2026-03-01", "notes", "x")

    def test_draft_is_a_copy(self, loaded):
        """Test changing the returned draft does not change the controller's."""
        draft = loaded.draft(KEY)
        draft.fields["notes"] = "changed"
        assert loaded.draft(KEY).fields["notes"] is None


class TestFlush:
    """Test cases for debounced flushing."""

    def test_burst_of_edits_is_one_request(self, loaded, gateway, scheduler, runner):
        """Test several edits to one key inside the debounce make one create."""
        loaded.apply_edit(KEY, "cleaning_done", True)
        loaded.apply_edit(KEY, "disinfection_done", True)
        loaded.apply_edit(KEY, "inspector_name", "Taro")
        assert scheduler.scheduled[KEY] == 3

        scheduler.fire_all()
        runner.run_all()

        assert gateway.verbs(KEY) == ["create_record"]
        record = gateway.records[KEY]
        assert record["cleaning_done"] is True
        assert record["disinfection_done"] is True
        assert record["inspector_name"] == "Taro"
        assert loaded.status(KEY) == SaveStatus.SAVED
        assert not loaded.has_pending_work

    def test_keys_are_debounced_independently(
        self, loaded, gateway, scheduler, runner
    ):
        """Test firing one key's timer does not flush another key."""
        loaded.apply_edit(KEY, "cleaning_done", True)
        loaded.apply_edit(OTHER_KEY, "cleaning_done", True)

        scheduler.fire(KEY)
        runner.run_all()

        assert KEY in gateway.records
        assert OTHER_KEY not in gateway.records
        assert scheduler.is_pending(OTHER_KEY)
        assert loaded.draft(OTHER_KEY).is_dirty

    def test_new_key_is_created_then_updated(self, loaded, gateway, scheduler, runner):
        """Test the first flush creates the record and later ones update it."""
        loaded.apply_edit(KEY, "cleaning_done", True)
        scheduler.fire_all()
        runner.run_all()
        loaded.apply_edit(KEY, "notes", "All good")
        scheduler.fire_all()
        runner.run_all()

        assert gateway.verbs(KEY) == ["create_record", "update_record"]
        assert KEY in loaded.existence
        assert gateway.records[KEY]["notes"] == "All good"

    def test_flushing_unchanged_record_twice_is_idempotent(
        self, loaded, gateway, scheduler, runner
    ):
        """Test a second flush of the same values leaves the server record as is."""
        loaded.apply_edit(KEY, "notes", "x")
        scheduler.fire_all()
        runner.run_all()
        stored = dict(gateway.records[KEY])

        loaded.apply_edit(KEY, "notes", "x")
        scheduler.fire_all()
        runner.run_all()

        assert gateway.records[KEY] == stored
        assert gateway.verbs(KEY) == ["create_record", "update_record"]
        assert loaded.draft(KEY).fields["notes"] == "x"
        assert not loaded.has_pending_work

    def test_existing_key_is_updated(self, gateway, controller, scheduler, runner):
        """Test a key present in the fetch is updated, never created."""
        gateway.insert(KEY, cleaning_done=True)
        controller.load()
        runner.run_all()

        controller.apply_edit(KEY, "notes", "Checked twice")
        scheduler.fire_all()
        runner.run_all()

        assert gateway.verbs(KEY) == ["update_record"]
        assert gateway.records[KEY]["cleaning_done"] is True

    def test_flush_sends_full_record(self, loaded, gateway, scheduler, runner):
        """Test a flush sends every field, not just the edited one."""
        loaded.apply_edit(KEY, "notes", "x")
        scheduler.fire_all()
        runner.run_all()
        assert set(gateway.records[KEY]) >= set(loaded.store.defaults)

    def test_clean_draft_is_not_flushed(self, loaded, gateway):
        """Test flushing a key without edits makes no request."""
        gateway.calls.clear()
        loaded.flush(KEY)
        assert gateway.calls == []

    def test_status_is_pending_while_in_flight(self, loaded, scheduler, runner):
        """Test the key is pending from the start of its flush until it ends."""
        loaded.apply_edit(KEY, "cleaning_done", True)
        assert loaded.status(KEY) == SaveStatus.IDLE
        scheduler.fire_all()
        assert loaded.status(KEY) == SaveStatus.PENDING
        assert loaded.is_in_flight(KEY)
        runner.run_all()
        assert loaded.status(KEY) == SaveStatus.SAVED
        assert loaded.tracker.last_saved_at(KEY) is not None


class TestConflictRecovery:
    """Test cases for a create racing another session's create."""

    def test_create_conflict_is_retried_as_update(
        self, loaded, gateway, scheduler, runner
    ):
        """Test a create rejected as existing is sent again as an update."""
        # Another session creates the day after our fetch
        gateway.insert(KEY, maintenance_done=True)
        assert KEY not in loaded.existence

        loaded.apply_edit(KEY, "cleaning_done", True)
        loaded.apply_edit(KEY, "inspector_name", "Taro")
        scheduler.fire_all()
        runner.run_all()

        assert gateway.verbs(KEY) == ["create_record", "update_record"]
        assert loaded.status(KEY) == SaveStatus.SAVED
        assert KEY in loaded.existence
        assert gateway.records[KEY]["cleaning_done"] is True
        assert gateway.records[KEY]["inspector_name"] == "Taro"
        assert loaded.draft(KEY).is_dirty is False
        assert not loaded.is_resyncing

    def test_next_flush_after_conflict_updates(
        self, loaded, gateway, scheduler, runner
    ):
        """Test a key recovered from a conflict is updated from then on."""
        gateway.insert(KEY)
        loaded.apply_edit(KEY, "cleaning_done", True)
        scheduler.fire_all()
        runner.run_all()
        gateway.calls.clear()

        loaded.apply_edit(KEY, "notes", "Later")
        scheduler.fire_all()
        runner.run_all()

        assert gateway.verbs(KEY) == ["update_record"]


class TestFailure:
    """Test cases for failed flushes."""

    def test_failed_flush_marks_error_and_resyncs(
        self, gateway, controller, scheduler, runner
    ):
        """Test a failed flush is shown as error and its edit discarded."""
        gateway.insert(KEY, notes="From server")
        controller.load()
        runner.run_all()
        gateway.fail("update_record", offline())

        controller.apply_edit(KEY, "notes", "Never saved")
        scheduler.fire_all()
        runner.run_all()

        assert controller.status(KEY) == SaveStatus.ERROR
        assert "offline" in controller.tracker.error_message(KEY)
        assert gateway.calls[-1][0] == "fetch_collection"
        draft = controller.draft(KEY)
        assert draft.fields["notes"] == "From server"
        assert draft.is_dirty is False

    def test_failure_resync_discards_other_unflushed_edits(
        self, loaded, gateway, scheduler, runner
    ):
        """Test the resync after a failure also resets keys still debouncing."""
        gateway.fail("create_record", offline())
        loaded.apply_edit(KEY, "notes", "Fails")
        loaded.apply_edit(OTHER_KEY, "notes", "Waiting")

        scheduler.fire(KEY)
        runner.run_all()

        assert not scheduler.is_pending(OTHER_KEY)
        assert loaded.draft(OTHER_KEY).fields["notes"] is None
        assert OTHER_KEY not in gateway.records

    def test_error_survives_automatic_resync(self, loaded, gateway, scheduler, runner):
        """Test the error status stays after the resync it triggered."""
        gateway.fail("create_record", offline())
        loaded.apply_edit(KEY, "notes", "Fails")
        scheduler.fire_all()
        runner.run_all()
        assert not loaded.is_resyncing
        assert loaded.status(KEY) == SaveStatus.ERROR

    def test_explicit_resync_clears_errors(self, loaded, gateway, scheduler, runner):
        """Test resync() returns keys in error to idle."""
        gateway.fail("create_record", offline())
        loaded.apply_edit(KEY, "notes", "Fails")
        scheduler.fire_all()
        runner.run_all()

        loaded.resync()
        runner.run_all()

        assert loaded.status(KEY) == SaveStatus.IDLE
        assert loaded.tracker.error_message(KEY) is None

    def test_next_successful_flush_clears_error(
        self, loaded, gateway, scheduler, runner
    ):
        """Test a key in error returns to saved on its next successful flush."""
        gateway.fail("create_record", offline())
        loaded.apply_edit(KEY, "notes", "Fails")
        scheduler.fire_all()
        runner.run_all()

        loaded.apply_edit(KEY, "notes", "Works")
        scheduler.fire_all()
        runner.run_all()

        assert loaded.status(KEY) == SaveStatus.SAVED
        assert gateway.records[KEY]["notes"] == "Works"


class TestRaces:
    """Test cases for edits and fetches overlapping in-flight requests."""

    def test_edit_during_flush_is_flushed_afterwards(
        self, loaded, gateway, scheduler, runner
    ):
        """Test an edit made while the key's flush runs is not lost."""
        loaded.apply_edit(KEY, "cleaning_done", True)
        scheduler.fire_all()
        assert runner.pending == 1

        loaded.apply_edit(KEY, "notes", "Late edit")
        scheduler.fire_all()
        # Deferred until the running create completes
        assert runner.pending == 1

        runner.complete_next()
        assert loaded.draft(KEY).is_dirty
        assert loaded.draft(KEY).fields["notes"] == "Late edit"
        assert runner.pending == 1

        runner.run_all()
        assert gateway.verbs(KEY) == ["create_record", "update_record"]
        assert gateway.records[KEY]["notes"] == "Late edit"
        assert gateway.records[KEY]["cleaning_done"] is True
        assert loaded.draft(KEY).is_dirty is False

    def test_edit_during_flush_without_timer_stays_dirty(
        self, loaded, scheduler, runner
    ):
        """Test completing a flush never clears edits it did not send."""
        loaded.apply_edit(KEY, "cleaning_done", True)
        scheduler.fire_all()
        loaded.apply_edit(KEY, "notes", "Late edit")

        runner.complete_next()

        assert loaded.draft(KEY).is_dirty
        assert scheduler.is_pending(KEY)

    def test_edit_during_resync_is_kept(self, loaded, gateway, scheduler, runner):
        """Test an edit made while a fetch runs survives the fetch's result."""
        loaded.resync()
        loaded.apply_edit(KEY, "notes", "Typed during fetch")
        runner.run_all()

        draft = loaded.draft(KEY)
        assert draft.fields["notes"] == "Typed during fetch"
        assert draft.is_dirty

        scheduler.fire_all()
        runner.run_all()
        assert gateway.records[KEY]["notes"] == "Typed during fetch"

    def test_resync_does_not_overwrite_in_flight_key(
        self, loaded, gateway, scheduler, runner
    ):
        """Test a fetch completing before a running create leaves the key alone."""
        loaded.apply_edit(KEY, "cleaning_done", True)
        scheduler.fire_all()
        loaded.resync()
        assert runner.pending == 2

        # The fetch overtakes the create
        runner.complete_next(1)
        assert loaded.draft(KEY).fields["cleaning_done"] is True

        runner.run_all()
        assert loaded.status(KEY) == SaveStatus.SAVED
        assert KEY in loaded.existence
        assert loaded.draft(KEY).is_dirty is False

    def test_save_completing_during_resync_is_kept(
        self, loaded, gateway, scheduler, runner
    ):
        """Test a stale fetch does not undo a save that finished meanwhile."""
        loaded.apply_edit(KEY, "notes", "Saved mid-fetch")
        scheduler.fire_all()
        # The fetch is answered before the create reaches the server
        with patch.object(gateway, "fetch_collection", return_value=[]):
            loaded.resync()
        runner.complete_next()
        assert loaded.status(KEY) == SaveStatus.SAVED

        runner.run_all()

        assert loaded.draft(KEY).fields["notes"] == "Saved mid-fetch"
        assert KEY in loaded.existence

    def test_resync_requested_during_resync_runs_again(
        self, loaded, gateway, runner
    ):
        """Test a second resync while one is running fetches once more."""
        gateway.calls.clear()
        loaded.resync()
        loaded.resync()
        runner.run_all()
        assert [method for method, _ in gateway.calls] == [
            "fetch_collection",
            "fetch_collection",
        ]


class TestResyncRetry:
    """Test cases for failing fetches."""

    def test_failed_fetch_is_retried(self, gateway, controller, runner):
        """Test a failed fetch is retried after a delay."""
        gateway.insert(KEY, cleaning_done=True)
        gateway.fail("fetch_collection", offline())

        controller.load()
        runner.run_all()
        assert controller.is_resyncing

        assert wait_until(lambda: runner.pending == 1)
        runner.run_all()
        assert not controller.is_resyncing
        assert controller.draft(KEY).fields["cleaning_done"] is True

    def test_resync_failed_after_max_attempts(
        self, loaded, gateway, scheduler, runner
    ):
        """Test the controller gives up after the configured attempts."""
        messages = []
        loaded.resync_failed.connect(messages.append)
        loaded.apply_edit(OTHER_KEY, "notes", "Unsaved")
        gateway.fail("fetch_collection", offline(), times=3)

        loaded.resync()
        for _ in range(2):
            runner.run_all()
            assert wait_until(lambda: runner.pending == 1)
        runner.run_all()

        assert len(messages) == 1
        assert "3 attempt(s)" in messages[0]
        assert not loaded.is_resyncing
        # Drafts are kept as they were
        assert loaded.draft(OTHER_KEY).fields["notes"] == "Unsaved"

    def test_save_now_after_failed_resync_flushes(
        self, loaded, gateway, scheduler, runner
    ):
        """Test edits left after a failed resync can still be saved."""
        loaded.apply_edit(OTHER_KEY, "notes", "Unsaved")
        gateway.fail("fetch_collection", offline(), times=3)
        loaded.resync()
        for _ in range(2):
            runner.run_all()
            assert wait_until(lambda: runner.pending == 1)
        runner.run_all()

        loaded.save_now()
        runner.run_all()
        assert gateway.records[OTHER_KEY]["notes"] == "Unsaved"


class TestSaveNowAndDispose:
    """Test cases for save_now() and dispose()."""

    def test_save_now_flushes_every_dirty_key(self, loaded, gateway, scheduler, runner):
        """Test save_now() flushes without waiting for the timers."""
        loaded.apply_edit(KEY, "cleaning_done", True)
        loaded.apply_edit(OTHER_KEY, "cleaning_done", True)

        loaded.save_now()

        assert scheduler.pending_keys() == []
        runner.run_all()
        assert KEY in gateway.records
        assert OTHER_KEY in gateway.records

    def test_dispose_flushes_pending_edits(self, loaded, gateway, scheduler, runner):
        """Test dispose() persists edits still waiting for their timer."""
        loaded.apply_edit(KEY, "notes", "Closing")
        loaded.dispose()

        assert loaded.is_disposed
        assert scheduler.pending_keys() == []
        runner.run_all()
        assert gateway.records[KEY]["notes"] == "Closing"
        # Results after dispose no longer change statuses
        assert loaded.status(KEY) == SaveStatus.IDLE

    def test_dispose_flushes_edit_made_during_flush(
        self, loaded, gateway, scheduler, runner
    ):
        """Test dispose() sends an edit made while the key's flush was running."""
        loaded.apply_edit(KEY, "cleaning_done", True)
        scheduler.fire_all()
        loaded.apply_edit(KEY, "notes", "Last words")
        loaded.dispose()

        runner.run_all()
        assert gateway.verbs(KEY) == ["create_record", "update_record"]
        assert gateway.records[KEY]["notes"] == "Last words"

    def test_pending_work_after_dispose_is_the_final_flushes(
        self, loaded, scheduler, runner
    ):
        """Test has_pending_work after dispose() waits only for the last saves."""
        loaded.apply_edit(KEY, "cleaning_done", True)
        scheduler.fire_all()
        loaded.apply_edit(KEY, "notes", "Last words")
        loaded.dispose()
        assert loaded.has_pending_work

        runner.complete_next()
        assert loaded.has_pending_work
        runner.run_all()
        # The drafts stay dirty, but nothing is left to send
        assert loaded.draft(KEY).is_dirty
        assert not loaded.has_pending_work

    def test_dispose_without_flush(self, loaded, gateway, runner):
        """Test dispose(flush_pending=False) drops unflushed edits."""
        gateway.calls.clear()
        loaded.apply_edit(KEY, "notes", "Dropped")
        loaded.dispose(flush_pending=False)
        runner.run_all()
        assert gateway.calls == []

    def test_dispose_ignores_late_failure(self, loaded, gateway, scheduler, runner):
        """Test a failure after dispose neither marks error nor resyncs."""
        gateway.fail("create_record", offline())
        loaded.apply_edit(KEY, "notes", "x")
        loaded.dispose()
        gateway.calls.clear()
        runner.run_all()
        assert gateway.calls == [("create_record", KEY)]
        assert loaded.status(KEY) == SaveStatus.IDLE

    def test_edit_after_dispose_raises(self, loaded):
        """Test apply_edit() on a disposed controller raises RuntimeError."""
        loaded.dispose()
        with pytest.raises(RuntimeError):
            loaded.apply_edit(KEY, "notes", "x")


class TestWithRealTimers:
    """Test cases using the real scheduler and the SQLite gateway."""

    def test_edits_are_saved_after_debounce(self, session_factory, store):
        """Test edits reach the database once the debounce elapses."""
        gateway = InspectionRecordGateway(session_factory, store.id)
        controller = AutosaveController(
            gateway,
            (2026, 2),
            month_keys(2026, 2),
            settings=AutosaveSettings(debounce_ms=50, saved_display_ms=0),
            runner=InlineRunner(),
        )
        controller.load()

        controller.apply_edit(KEY, "cleaning_done", True)
        process_events(0.02)
        controller.apply_edit(KEY, "inspector_name", "Taro")
        assert gateway.fetch_collection((2026, 2)) == []

        assert wait_until(lambda: controller.status(KEY) == SaveStatus.SAVED)
        records = gateway.fetch_collection((2026, 2))
        assert len(records) == 1
        assert records[0]["key"] == KEY
        assert records[0]["cleaning_done"] is True
        assert records[0]["inspector_name"] == "Taro"
        controller.dispose()

    def test_conflict_with_database_record(self, session_factory, store):
        """Test a record created by another session after the fetch is updated."""
        gateway = InspectionRecordGateway(session_factory, store.id)
        controller = AutosaveController(
            gateway,
            (2026, 2),
            month_keys(2026, 2),
            settings=AutosaveSettings(debounce_ms=20, saved_display_ms=0),
            runner=InlineRunner(),
        )
        controller.load()
        InspectionRecordGateway(session_factory, store.id).create_record(
            KEY, {"maintenance_done": True}
        )

        controller.apply_edit(KEY, "cleaning_done", True)
        assert wait_until(lambda: controller.status(KEY) == SaveStatus.SAVED)

        (record,) = gateway.fetch_collection((2026, 2))
        assert record["cleaning_done"] is True
        # The whole record was sent, so the other session's field is replaced
        assert record["maintenance_done"] is False
        controller.dispose()


def test_fake_gateway_conflict():
    """Test the fake gateway rejects a second create for the same key."""
    gateway = FakeGateway({KEY: {"notes": "x"}})
    with pytest.raises(Exception, match="already exists"):
        gateway.create_record(KEY, {})
