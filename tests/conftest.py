"""Shared pytest fixtures for carelog tests."""

import os

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import pytest  # noqa: E402
from PySide6.QtWidgets import QApplication  # noqa: E402

from carelog.db import create_session_factory  # noqa: E402
from carelog.models.staff import Staff  # noqa: E402
from carelog.models.store import Store  # noqa: E402
from carelog.services.autosave import AutosaveController  # noqa: E402
from carelog.services.settings import AutosaveSettings  # noqa: E402
from carelog.utils import month_keys  # noqa: E402
from tests.fakes import FakeGateway, ManualRunner, ManualScheduler  # noqa: E402

#: The period most tests edit.
PERIOD = (2026, 2)


@pytest.fixture(scope="session", autouse=True)
def qapp():
    """Create QApplication instance for testing PySide6 objects."""
    app = QApplication.instance()
    if app is None:
        app = QApplication([])
    return app


@pytest.fixture
def session_factory(tmp_path):
    """Create a temporary database and return a session factory for it."""
    factory = create_session_factory(tmp_path / "test.db")
    yield factory
    factory.kw["bind"].dispose()


@pytest.fixture
def db_session(session_factory):
    """Open a session on the temporary database."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def store(db_session):
    """Create a store with two staff members."""
    store = Store.ensure(db_session, 1, name="Test Store")
    store.address = "1-2-3 Example"
    store.business_types = "daycare, hotel"
    db_session.add_all(
        [Staff(store_id=1, name="Taro"), Staff(store_id=1, name="Hanako")]
    )
    db_session.commit()
    return store


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def runner():
    return ManualRunner()


@pytest.fixture
def settings():
    return AutosaveSettings(
        debounce_ms=500, saved_display_ms=0, resync_retry_ms=10, resync_max_attempts=3
    )


@pytest.fixture
def controller(gateway, scheduler, runner, settings):
    """Create a controller for February 2026 driven by manual fakes."""
    controller = AutosaveController(
        gateway,
        PERIOD,
        month_keys(*PERIOD),
        settings=settings,
        scheduler=scheduler,
        runner=runner,
    )
    yield controller
    controller.dispose(flush_pending=False)


@pytest.fixture
def loaded(controller, runner):
    """The controller after its first fetch completed."""
    controller.load()
    runner.run_all()
    return controller
