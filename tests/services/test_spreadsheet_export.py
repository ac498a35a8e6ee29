"""
Tests for the .xlsx writer, read back with openpyxl.
"""

from datetime import datetime

import pytest
from openpyxl import load_workbook

from kas_kernel.domain.clock import REPORTING_TZ
from kas_kernel.domain.records import FundSource
from kas_kernel.exceptions import EmptyExportError
from kas_engines.export import EXPORT_HEADERS, ExportKind, build_export
from kas_services.spreadsheet_export import AMOUNT_FORMAT, export_month, workbook_bytes
from tests.builders import expense, income


def local(*args) -> datetime:
    return datetime(*args, tzinfo=REPORTING_TZ)


@pytest.fixture
def july():
    return [
        income(100000, tanggal=local(2024, 7, 3, 9)),
        expense(40000, tanggal=local(2024, 7, 10, 9), deskripsi="Fotokopi modul"),
        expense(15000, tanggal=local(2024, 7, 11, 9)),
        expense(99000, tanggal=local(2024, 7, 12, 9), sumber_dana=FundSource.DONATION_FUND),
    ]


class TestExportMonth:
    def test_written_workbook_layout(self, july, tmp_path):
        path = export_month(july, ExportKind.EXPENSE_GENERAL, 2024, 7, tmp_path)

        assert path.name == "laporan_pengeluaran_kas_umum_2024-07.xlsx"
        ws = load_workbook(path).active

        assert [c.value for c in ws[1]] == list(EXPORT_HEADERS)
        assert all(c.font.bold for c in ws[1])
        # Newest first
        assert ws.cell(row=2, column=6).value == 15000
        assert ws.cell(row=3, column=6).value == 40000
        assert ws.cell(row=3, column=5).value == "Fotokopi modul"
        assert ws.cell(row=2, column=6).number_format == AMOUNT_FORMAT
        # Blank spacer row, then the total
        assert ws.cell(row=4, column=6).value is None
        assert ws.cell(row=5, column=5).value == "TOTAL"
        assert ws.cell(row=5, column=6).value == 55000
        assert ws.cell(row=5, column=6).font.bold
        assert ws.column_dimensions["E"].width == 50

    def test_sheet_title(self, july, tmp_path):
        path = export_month(july, ExportKind.ALL, 2024, 7, tmp_path)
        ws = load_workbook(path).active
        assert ws.title == "Semua Transaksi Juli 2024"
        assert ws.max_row == len(july) + 3

    def test_empty_month_writes_nothing(self, july, tmp_path):
        with pytest.raises(EmptyExportError):
            export_month(july, ExportKind.INCOME_DONATION, 2024, 7, tmp_path)
        assert list(tmp_path.iterdir()) == []

    def test_workbook_bytes_is_xlsx(self, july):
        data = workbook_bytes(build_export(july, ExportKind.ALL, 2024, 7))
        assert data[:2] == b"PK"

    def test_export_logged(self, july, tmp_path, captured_logs):
        export_month(july, ExportKind.ALL, 2024, 7, tmp_path)
        record = next(r for r in captured_logs() if r["message"] == "export_written")
        assert record["rows"] == 4
        assert record["total"] == 254000
