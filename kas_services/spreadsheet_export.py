"""
Monthly spreadsheet export (.xlsx) with openpyxl.

The layout comes from ``kas_engines.export.build_export``; this module only
writes it: a bold header row, one row per transaction, a blank spacer row
and a TOTAL row, amounts formatted ``#,##0``.
"""

from datetime import tzinfo
from io import BytesIO
from pathlib import Path
from typing import Iterable

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

from kas_kernel.domain.clock import REPORTING_TZ
from kas_kernel.domain.records import Transaction
from kas_kernel.logging_config import get_logger
from kas_engines.export import (
    AMOUNT_COLUMN,
    DESCRIPTION_COLUMN,
    EXPORT_COLUMN_WIDTHS,
    ExportKind,
    ExportSheet,
    build_export,
)

logger = get_logger("services.spreadsheet_export")

AMOUNT_FORMAT = "#,##0"


def build_workbook(sheet: ExportSheet) -> Workbook:
    wb = Workbook()
    ws = wb.active
    ws.title = sheet.sheet_name

    ws.append(list(sheet.headers))
    for cell in ws[1]:
        cell.font = Font(bold=True)

    for row in sheet.rows:
        ws.append(list(row))

    amount_col = AMOUNT_COLUMN + 1
    for row_idx in range(2, len(sheet.rows) + 2):
        ws.cell(row=row_idx, column=amount_col).number_format = AMOUNT_FORMAT

    # Spacer row, then the total under the Amount column
    total_row = len(sheet.rows) + 3
    label = ws.cell(row=total_row, column=DESCRIPTION_COLUMN + 1, value="TOTAL")
    label.font = Font(bold=True)
    total = ws.cell(row=total_row, column=amount_col, value=sheet.total)
    total.number_format = AMOUNT_FORMAT
    total.font = Font(bold=True)

    for idx, width in enumerate(EXPORT_COLUMN_WIDTHS, start=1):
        ws.column_dimensions[get_column_letter(idx)].width = width

    return wb


def workbook_bytes(sheet: ExportSheet) -> bytes:
    buffer = BytesIO()
    build_workbook(sheet).save(buffer)
    return buffer.getvalue()


def export_month(
    transactions: Iterable[Transaction],
    kind: ExportKind,
    year: int,
    month: int,
    out_dir: Path | str,
    tz: tzinfo = REPORTING_TZ,
) -> Path:
    """
    Write the report for ``kind`` in ``year``/``month`` into ``out_dir``.

    Raises:
        EmptyExportError: nothing to export for the selection.
    """
    sheet = build_export(transactions, kind, year, month, tz)

    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    path = out_dir / sheet.filename
    build_workbook(sheet).save(path)

    logger.info(
        "export_written",
        extra={
            "kind": ExportKind(kind).value,
            "period": sheet.period,
            "rows": len(sheet.rows),
            "total": sheet.total,
            "path": str(path),
        },
    )
    return path
