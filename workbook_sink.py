"""Excel workbook sink for citation results."""

from __future__ import annotations

import io
import logging
import os
from collections.abc import Sequence
from pathlib import Path

from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE

from models import ResultRecord

WORKBOOK_OUTPUT_PATH = os.getenv("WORKBOOK_OUTPUT_PATH", "DataFiles/citations_data.xlsx")
SHEET_TITLE = "Citations Data"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

LOGGER = logging.getLogger(__name__)


def _columns(rows: Sequence[dict[str, str]]) -> list[str]:
    """Union of row keys in first-seen order."""
    columns: dict[str, None] = {}
    for row in rows:
        for key in row:
            columns.setdefault(key, None)
    return list(columns)


def _cell_text(value: str) -> str:
    # Control characters are rejected by openpyxl and invalid in the sheet XML.
    return ILLEGAL_CHARACTERS_RE.sub("", value)


def build_workbook(records: Sequence[ResultRecord]) -> Workbook:
    """One sheet, a header row of field names, then one row per record."""
    rows = [record.as_row() for record in records]
    columns = _columns(rows)

    workbook = Workbook()
    sheet = workbook.active
    sheet.title = SHEET_TITLE
    if columns:
        sheet.append(columns)
    for row in rows:
        sheet.append([_cell_text(row.get(column, "")) for column in columns])
        # Text fields are literal strings, never formulas.
        for cell in sheet[sheet.max_row]:
            if isinstance(cell.value, str):
                cell.data_type = "s"
    return workbook


def workbook_bytes(records: Sequence[ResultRecord]) -> bytes:
    buffer = io.BytesIO()
    build_workbook(records).save(buffer)
    LOGGER.info("Built workbook in memory: rows=%s bytes=%s", len(records), buffer.tell())
    return buffer.getvalue()


def write_workbook(records: Sequence[ResultRecord], path: str | Path | None = None) -> Path:
    """Write the workbook to ``path`` (default WORKBOOK_OUTPUT_PATH), creating parent dirs."""
    target = Path(path or WORKBOOK_OUTPUT_PATH)
    target.parent.mkdir(parents=True, exist_ok=True)
    build_workbook(records).save(target)
    LOGGER.info("Wrote workbook rows=%s to %s", len(records), target)
    return target
