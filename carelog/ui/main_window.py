"""Main window of the logbook application."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from PySide6.QtCore import QCoreApplication, QDeadlineTimer, QThreadPool
from PySide6.QtGui import QAction, QKeySequence
from PySide6.QtWidgets import QFileDialog, QLabel, QMainWindow, QToolBar

from carelog.exc import GatewayError
from carelog.services.autosave import AutosaveController
from carelog.services.export_docx import LogbookExporter
from carelog.services.gateway import InspectionRecordGateway
from carelog.services.settings import AutosaveSettings
from carelog.ui.logbook_editor import LogbookEditor
from carelog.utils import current_period, month_keys, shift_period

if TYPE_CHECKING:
    from PySide6.QtGui import QCloseEvent
    from sqlalchemy.orm import Session, sessionmaker

    from carelog.utils import Period

logger = logging.getLogger(__name__)

#: How long to wait for the final flushes when the window closes.
SHUTDOWN_WAIT_MS = 5000


class LogbookWindow(QMainWindow):
    """
    Main window editing one month of a store's inspection logbook.

    Args:
        session_factory: SQLAlchemy session factory
        store_id: The store whose logbook is edited

    Keyword Args:
        settings: Autosave timings; read from QSettings if None
        period: The month to open; defaults to the current one
        runner: Request runner for the controllers; a thread pool runner
            if None

    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        store_id: int,
        *,
        settings: AutosaveSettings | None = None,
        period: Period | None = None,
        runner: Any = None,
    ) -> None:
        super().__init__()
        self.gateway = InspectionRecordGateway(session_factory, store_id)
        self.settings = settings if settings is not None else AutosaveSettings.load()
        self.runner = runner
        self.period: Period = period if period is not None else current_period()
        self.controller: AutosaveController | None = None
        self.editor: LogbookEditor | None = None
        self._setup_ui()
        self.open_period(self.period)

    def _setup_ui(self) -> None:
        """Set up the toolbar and status bar."""
        self.resize(1100, 800)
        toolbar = QToolBar("Logbook", self)
        self.addToolBar(toolbar)

        previous_action = QAction("◀ Previous", self)
        previous_action.setShortcut(QKeySequence("Ctrl+Left"))
        previous_action.triggered.connect(lambda: self.move_period(-1))
        toolbar.addAction(previous_action)

        self.period_label = QLabel()
        toolbar.addWidget(self.period_label)

        next_action = QAction("Next ▶", self)
        next_action.setShortcut(QKeySequence("Ctrl+Right"))
        next_action.triggered.connect(lambda: self.move_period(1))
        toolbar.addAction(next_action)

        toolbar.addSeparator()

        reload_action = QAction("Reload", self)
        reload_action.setShortcut(QKeySequence.StandardKey.Refresh)
        reload_action.triggered.connect(self._reload)
        toolbar.addAction(reload_action)

        export_action = QAction("Export…", self)
        export_action.setShortcut(QKeySequence("Ctrl+E"))
        export_action.triggered.connect(self._export)
        toolbar.addAction(export_action)

    def _staff_names(self) -> list[str]:
        try:
            return [staff["name"] for staff in self.gateway.fetch_staff_list()]
        except GatewayError as e:
            self.statusBar().showMessage(f"Could not load staff: {e!s}", 5000)
            return []

    def open_period(self, period: Period) -> None:
        """
        Start editing a month, ending the session on the previous one.

        Args:
            period: ``(year, month)`` to edit

        """
        if self.controller is not None:
            self.controller.dispose(flush_pending=True)
        self.period = period
        self.period_label.setText(f"  {period[0]}-{period[1]:02d}  ")
        self.controller = AutosaveController(
            self.gateway,
            period,
            month_keys(*period),
            settings=self.settings,
            runner=self.runner,
            parent=self,
        )
        self.controller.resync_failed.connect(
            lambda message: self.statusBar().showMessage(message)
        )
        self.editor = LogbookEditor(self.controller, self._staff_names(), self)
        self.setCentralWidget(self.editor)
        self.controller.load()

    def move_period(self, months: int) -> None:
        """Open the month ``months`` before or after the current one."""
        self.open_period(shift_period(self.period, months))

    def _reload(self) -> None:
        if self.controller is not None:
            self.controller.resync()

    def _export(self) -> None:
        year, month = self.period
        path, _ = QFileDialog.getSaveFileName(
            self,
            "Export logbook",
            f"logbook-{year}-{month:02d}.docx",
            "Word documents (*.docx)",
        )
        if not path:
            return
        if LogbookExporter(self.gateway).export(self.period, Path(path)):
            self.statusBar().showMessage(f"Exported to {path}", 5000)
        else:
            self.statusBar().showMessage("Export failed", 5000)

    def closeEvent(self, event: QCloseEvent) -> None:  # noqa: N802
        """Flush unsaved edits before the window closes."""
        if self.controller is not None:
            self.controller.dispose(flush_pending=True)
        self.wait_for_flushes(SHUTDOWN_WAIT_MS)
        super().closeEvent(event)

    def wait_for_flushes(self, timeout_ms: int) -> bool:
        """
        Wait for the final flushes of every disposed controller.

        A flush deferred behind a running one only starts once that one's
        result is delivered, so the event loop is pumped between waits.

        Args:
            timeout_ms: How long to wait at most, in milliseconds

        Returns:
            True if every flush completed in time

        """
        deadline = QDeadlineTimer(timeout_ms)
        pool = QThreadPool.globalInstance()
        controllers = self.findChildren(AutosaveController)
        while any(controller.has_pending_work for controller in controllers):
            if deadline.hasExpired():
                logger.warning("Closing with edits that were not saved")
                return False
            pool.waitForDone(max(deadline.remainingTime(), 0))
            QCoreApplication.processEvents()
        return True
