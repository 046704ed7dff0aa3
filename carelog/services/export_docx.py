"""DOCX export of a monthly inspection logbook."""

from __future__ import annotations

import calendar
import logging
from datetime import date
from typing import TYPE_CHECKING, Any, Final

from docx import Document
from docx.enum.section import WD_ORIENT
from docx.shared import Mm, Pt

from carelog.exc import GatewayError
from carelog.utils import month_keys

if TYPE_CHECKING:
    from pathlib import Path

    from docx.document import Document as DocumentObject

    from carelog.services.gateway import RecordGateway
    from carelog.utils import Period

logger = logging.getLogger(__name__)


class LogbookExporter:
    """
    Exports a month of a store's inspection logbook to DOCX format.

    Every day of the month gets a row; days without a record are left blank
    so they can be told apart from days recorded as "not done".

    Args:
        gateway: The gateway to read the logbook from

    """

    #: Column headings with the record field each column shows.
    COLUMNS: Final[list[tuple[str, str]]] = [
        ("Day", "day"),
        ("Weekday", "weekday"),
        ("Time", "inspection_time"),
        ("Cleaning", "cleaning_done"),
        ("Disinfection", "disinfection_done"),
        ("Maintenance", "maintenance_done"),
        ("Count abnormal", "animal_count_abnormal"),
        ("State abnormal", "animal_state_abnormal"),
        ("Inspector", "inspector_name"),
        ("Notes", "notes"),
    ]

    #: Labels of the facility checks.
    DONE_LABELS: Final[dict[bool, str]] = {True: "Done", False: "Not done"}

    #: Labels of the abnormality checks.
    ABNORMAL_LABELS: Final[dict[bool, str]] = {True: "Yes", False: "No"}

    def __init__(self, gateway: RecordGateway) -> None:
        self.gateway = gateway

    def export(self, period: Period, output_path: Path) -> bool:
        """
        Export a month's logbook to a DOCX file.

        Args:
            period: ``(year, month)`` to export
            output_path: Path to output DOCX file

        Returns:
            True if successful, False otherwise

        """
        try:
            data = self.gateway.fetch_export(period)
        except GatewayError as e:
            logger.warning(f"Export of {period!s} failed: {e!s}")
            return False

        doc: DocumentObject = Document()
        self._setup_document_styles(doc)
        year, month = period
        doc.add_heading(f"Inspection logbook {year}-{month:02d}", level=1)
        self._add_store_header(doc, data["store"])
        self._add_table(doc, year, month, data["records"])

        try:
            doc.save(str(output_path))
        except OSError as e:
            logger.warning(f"Export error: {e!s}")
            return False
        logger.info(f"Exported {period!s} to {output_path!s}")
        return True

    def _setup_document_styles(self, doc: DocumentObject) -> None:
        """
        Set up a landscape A4 page with a compact body font.

        Args:
            doc: Document to set up

        """
        section = doc.sections[0]
        section.orientation = WD_ORIENT.LANDSCAPE
        section.page_width = Mm(297)
        section.page_height = Mm(210)
        for margin in ("left_margin", "right_margin", "top_margin", "bottom_margin"):
            setattr(section, margin, Mm(15))
        doc.styles["Normal"].font.size = Pt(9)

    def _add_store_header(self, doc: DocumentObject, store: dict[str, Any]) -> None:
        doc.add_paragraph(f"Store: {store['name']}")
        if store.get("address"):
            doc.add_paragraph(f"Address: {store['address']}")
        if store.get("business_types"):
            doc.add_paragraph(f"Business types: {', '.join(store['business_types'])}")

    def _add_table(
        self,
        doc: DocumentObject,
        year: int,
        month: int,
        records: list[dict[str, Any]],
    ) -> None:
        """
        Add the table with one row per day of the month.

        Args:
            doc: Document to add to
            year: Year
            month: Month
            records: Records of the month

        """
        by_date = {record["inspection_date"]: record for record in records}
        table = doc.add_table(rows=1, cols=len(self.COLUMNS))
        table.style = "Table Grid"
        for cell, (heading, _) in zip(table.rows[0].cells, self.COLUMNS, strict=True):
            cell.text = heading
            cell.paragraphs[0].runs[0].bold = True

        for key in month_keys(year, month):
            cells = table.add_row().cells
            for cell, (_, name) in zip(cells, self.COLUMNS, strict=True):
                cell.text = self.cell_text(key, name, by_date.get(key))

    def cell_text(self, key: str, name: str, record: dict[str, Any] | None) -> str:
        """
        Get the text of one logbook cell.

        Args:
            key: ISO date of the row
            name: Column field name
            record: The day's record, or None if there is none

        Returns:
            The cell text

        """
        day = date.fromisoformat(key)
        if name == "day":
            return str(day.day)
        if name == "weekday":
            return calendar.day_abbr[day.weekday()]
        if record is None:
            return ""
        value = record.get(name)
        if name == "inspection_time":
            return value[:5] if value else ""
        if name in ("cleaning_done", "disinfection_done", "maintenance_done"):
            return self.DONE_LABELS[bool(value)]
        if name in ("animal_count_abnormal", "animal_state_abnormal"):
            return self.ABNORMAL_LABELS[bool(value)]
        return value or ""
