import sys
from pathlib import Path
from typing import cast

from PySide6.QtCore import QCoreApplication, QSettings
from PySide6.QtWidgets import QApplication

from carelog import __version__
from carelog.db import create_session_factory
from carelog.models.store import Store

from .main_window import LogbookWindow


def create_application(
    db_path: Path | None = None,
) -> tuple[QApplication, LogbookWindow]:
    """
    Create the application and show the main window.

    Args:
        db_path: Optional path to the database file

    Returns:
        The application and its main window

    """
    QCoreApplication.setOrganizationName("Carelog")
    QCoreApplication.setApplicationName("Carelog")

    app = QApplication(sys.argv)
    app.setApplicationVersion(__version__)

    session_factory = create_session_factory(db_path)
    store_id = cast("int", QSettings().value("store/id", 1, type=int))
    with session_factory() as session:
        Store.ensure(session, store_id)

    window = LogbookWindow(session_factory, store_id)
    window.show()
    return app, window
