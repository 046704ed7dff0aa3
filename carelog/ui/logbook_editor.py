"""Monthly logbook table UI component."""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING, Any, Final

from PySide6.QtCore import Qt
from PySide6.QtWidgets import (
    QAbstractItemView,
    QComboBox,
    QHeaderView,
    QLabel,
    QStyledItemDelegate,
    QTableWidget,
    QTableWidgetItem,
    QVBoxLayout,
    QWidget,
)

from carelog.models.inspection import BOOLEAN_FIELDS
from carelog.services.status import SaveStatus

if TYPE_CHECKING:
    from collections.abc import Hashable

    from PySide6.QtCore import QAbstractItemModel, QModelIndex
    from PySide6.QtWidgets import QStyleOptionViewItem

    from carelog.services.autosave import AutosaveController

#: The editable columns with their headings.
FIELD_COLUMNS: Final[list[tuple[str, str]]] = [
    ("inspection_time", "Time"),
    ("cleaning_done", "Cleaning"),
    ("disinfection_done", "Disinfection"),
    ("maintenance_done", "Maintenance"),
    ("animal_count_abnormal", "Count abnormal"),
    ("animal_state_abnormal", "State abnormal"),
    ("inspector_name", "Inspector"),
    ("notes", "Notes"),
]

#: What the status column shows for each save status.
STATUS_LABELS: Final[dict[SaveStatus, str]] = {
    SaveStatus.IDLE: "",
    SaveStatus.PENDING: "Saving…",
    SaveStatus.SAVED: "Saved",
    SaveStatus.ERROR: "Not saved",
}


class StaffDelegate(QStyledItemDelegate):
    """
    Editable combo box offering the staff names.

    Args:
        staff_names: Names to offer
        parent: Parent widget

    """

    def __init__(self, staff_names: list[str], parent: QWidget | None = None):
        super().__init__(parent)
        self.staff_names = staff_names

    def createEditor(  # noqa: N802
        self,
        parent: QWidget,
        _option: QStyleOptionViewItem,
        _index: QModelIndex,
    ) -> QWidget:
        combo = QComboBox(parent)
        combo.setEditable(True)
        combo.addItems(["", *self.staff_names])
        return combo

    def setEditorData(self, editor: QWidget, index: QModelIndex) -> None:  # noqa: N802
        editor.setCurrentText(index.data() or "")  # type: ignore[attr-defined]

    def setModelData(  # noqa: N802
        self, editor: QWidget, model: QAbstractItemModel, index: QModelIndex
    ) -> None:
        model.setData(index, editor.currentText())  # type: ignore[attr-defined]


class LogbookEditor(QWidget):
    """
    Table with one row per day of the controller's period.

    Cell edits go straight to the autosave controller; rows are redrawn
    from its drafts and the last column shows each day's save status.

    Args:
        controller: The autosave controller of the period
        staff_names: Names offered in the inspector column
        parent: Parent widget

    """

    def __init__(
        self,
        controller: AutosaveController,
        staff_names: list[str] | None = None,
        parent: QWidget | None = None,
    ):
        super().__init__(parent)
        self.controller = controller
        self.staff_names = staff_names or []
        self._setup_ui()
        self.controller.draft_changed.connect(self.refresh_row)
        self.controller.resynced.connect(self._on_resynced)
        self.controller.resync_failed.connect(self._on_resync_failed)
        self.controller.tracker.status_changed.connect(self._on_status_changed)
        self.table.itemChanged.connect(self._on_item_changed)
        for key in self.controller.keys:
            self.refresh_row(key)

    @property
    def status_column(self) -> int:
        """Index of the status column."""
        return len(FIELD_COLUMNS)

    def _setup_ui(self) -> None:
        """Set up the UI layout."""
        layout = QVBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)

        self.banner = QLabel()
        self.banner.setWordWrap(True)
        self.banner.setStyleSheet("background: #fdecea; color: #611a15; padding: 6px;")
        self.banner.hide()
        layout.addWidget(self.banner)

        keys = self.controller.keys
        self.table = QTableWidget(len(keys), len(FIELD_COLUMNS) + 1, self)
        self.table.setHorizontalHeaderLabels(
            [heading for _, heading in FIELD_COLUMNS] + ["Status"]
        )
        self.table.setVerticalHeaderLabels([self._row_label(key) for key in keys])
        self.table.setSelectionMode(QAbstractItemView.SelectionMode.SingleSelection)
        self.table.horizontalHeader().setSectionResizeMode(
            len(FIELD_COLUMNS) - 1, QHeaderView.ResizeMode.Stretch
        )
        for row in range(len(keys)):
            for column, (name, _) in enumerate(FIELD_COLUMNS):
                item = QTableWidgetItem()
                if name in BOOLEAN_FIELDS:
                    item.setFlags(
                        Qt.ItemFlag.ItemIsUserCheckable
                        | Qt.ItemFlag.ItemIsEnabled
                        | Qt.ItemFlag.ItemIsSelectable
                    )
                    item.setCheckState(Qt.CheckState.Unchecked)
                self.table.setItem(row, column, item)
            status_item = QTableWidgetItem()
            status_item.setFlags(Qt.ItemFlag.ItemIsEnabled)
            self.table.setItem(row, self.status_column, status_item)

        inspector_column = [name for name, _ in FIELD_COLUMNS].index("inspector_name")
        self.table.setItemDelegateForColumn(
            inspector_column, StaffDelegate(self.staff_names, self.table)
        )
        layout.addWidget(self.table)

    @staticmethod
    def _row_label(key: Hashable) -> str:
        day = date.fromisoformat(str(key))
        return day.strftime("%d %a")

    def _value_of(self, item: QTableWidgetItem, field_name: str) -> Any:
        if field_name in BOOLEAN_FIELDS:
            return item.checkState() == Qt.CheckState.Checked
        return item.text() or None

    def _on_item_changed(self, item: QTableWidgetItem) -> None:
        """Forward a cell edit to the controller."""
        if item.column() >= len(FIELD_COLUMNS):
            return
        key = self.controller.keys[item.row()]
        field_name = FIELD_COLUMNS[item.column()][0]
        value = self._value_of(item, field_name)
        if self.controller.draft(key).fields[field_name] == value:
            return
        self.controller.apply_edit(key, field_name, value)

    def refresh_row(self, key: Hashable) -> None:
        """
        Redraw a row from its draft.

        Args:
            key: The row's key

        """
        row = self.controller.keys.index(key)
        fields = self.controller.draft(key).fields
        # Redrawing is not editing
        self.table.blockSignals(True)  # noqa: FBT003
        try:
            for column, (name, _) in enumerate(FIELD_COLUMNS):
                item = self.table.item(row, column)
                if name in BOOLEAN_FIELDS:
                    item.setCheckState(
                        Qt.CheckState.Checked
                        if fields[name]
                        else Qt.CheckState.Unchecked
                    )
                else:
                    item.setText(fields[name] or "")
        finally:
            self.table.blockSignals(False)  # noqa: FBT003

    def _on_status_changed(self, key: Hashable, status: str) -> None:
        row = self.controller.keys.index(key)
        item = self.table.item(row, self.status_column)
        item.setText(STATUS_LABELS[SaveStatus(status)])
        item.setToolTip(self.controller.tracker.error_message(key) or "")

    def _on_resynced(self) -> None:
        self.banner.hide()

    def _on_resync_failed(self, message: str) -> None:
        self.banner.setText(
            f"Could not reload the logbook from the server ({message}). "
            "Changes shown as not saved may be lost."
        )
        self.banner.show()
