"""
Module: kas_engines.export
Responsibility:
    Select one reporting month's transactions for a report kind and lay
    them out as spreadsheet rows.  Writing the workbook is the job of
    kas_services.spreadsheet_export; this module does no I/O.

Architecture position:
    Engines -- pure calculation layer.

Failure modes:
    - EmptyExportError when the selection has no transactions.
"""

from dataclasses import dataclass
from datetime import date, tzinfo
from enum import Enum
from typing import Any, Iterable

from kas_kernel.domain.clock import REPORTING_TZ, ensure_aware
from kas_kernel.domain.formatting import format_datetime_long, month_label_long
from kas_kernel.domain.records import FundSource, Transaction, TransactionType
from kas_kernel.exceptions import EmptyExportError
from kas_engines.ledger import sort_transactions

EXPORT_HEADERS: tuple[str, ...] = (
    "Transaction ID",
    "Date",
    "Type",
    "Category",
    "Description",
    "Amount",
    "Fund",
    "Payment Reference",
    "Receipt URL",
    "Created By",
)

# Character widths, one per header.
EXPORT_COLUMN_WIDTHS: tuple[int, ...] = (38, 25, 15, 25, 50, 15, 20, 38, 40, 15)

AMOUNT_COLUMN = EXPORT_HEADERS.index("Amount")
DESCRIPTION_COLUMN = EXPORT_HEADERS.index("Description")

MAX_SHEET_NAME = 31

TYPE_LABELS = {
    TransactionType.INCOME: "Income",
    TransactionType.EXPENSE: "Expense",
}

FUND_LABELS = {
    FundSource.GENERAL_CASH: "General Cash",
    FundSource.DONATION_FUND: "Donation Fund",
}


class ExportKind(str, Enum):
    ALL = "all"
    INCOME_GENERAL = "income_general"
    EXPENSE_GENERAL = "expense_general"
    INCOME_DONATION = "income_donation"
    EXPENSE_DONATION = "expense_donation"


# kind -> (report title, tipe filter, fund filter)
_KIND_RULES: dict[ExportKind, tuple[str, TransactionType | None, FundSource | None]] = {
    ExportKind.ALL: ("Semua Transaksi", None, None),
    ExportKind.INCOME_GENERAL: ("Pemasukan Kas Umum", TransactionType.INCOME, FundSource.GENERAL_CASH),
    ExportKind.EXPENSE_GENERAL: ("Pengeluaran Kas Umum", TransactionType.EXPENSE, FundSource.GENERAL_CASH),
    ExportKind.INCOME_DONATION: ("Pemasukan Infak & Donasi", TransactionType.INCOME, FundSource.DONATION_FUND),
    ExportKind.EXPENSE_DONATION: ("Pengeluaran Infak & Donasi", TransactionType.EXPENSE, FundSource.DONATION_FUND),
}


@dataclass(frozen=True)
class ExportSheet:
    """Everything needed to write one report workbook."""

    title: str
    period: str
    sheet_name: str
    filename: str
    headers: tuple[str, ...]
    rows: tuple[tuple[Any, ...], ...]
    total: int


def report_title(kind: ExportKind) -> str:
    return _KIND_RULES[ExportKind(kind)][0]


def export_filename(title: str, year: int, month: int) -> str:
    """'Pemasukan Infak & Donasi', 2024, 7 -> 'laporan_pemasukan_infak_donasi_2024-07.xlsx'."""
    slug = title.lower().replace(" & ", "_").replace(" ", "_")
    return f"laporan_{slug}_{year:04d}-{month:02d}.xlsx"


def select_for_export(
    transactions: Iterable[Transaction],
    kind: ExportKind,
    year: int,
    month: int,
    tz: tzinfo = REPORTING_TZ,
) -> list[Transaction]:
    """Transactions of ``kind`` dated in the given reporting month, newest first."""
    _, tipe, fund = _KIND_RULES[ExportKind(kind)]
    selected = []
    for t in transactions:
        local = ensure_aware(t.tanggal).astimezone(tz)
        if (local.year, local.month) != (year, month):
            continue
        if tipe is not None and t.tipe != tipe:
            continue
        if fund is not None and t.sumber_dana != fund:
            continue
        selected.append(t)
    return sort_transactions(selected)


def transaction_row(t: Transaction, tz: tzinfo = REPORTING_TZ) -> tuple[Any, ...]:
    return (
        str(t.id),
        format_datetime_long(t.tanggal, tz),
        TYPE_LABELS[t.tipe],
        t.kategori,
        t.deskripsi,
        t.jumlah,
        FUND_LABELS[t.sumber_dana],
        str(t.ref_payment) if t.ref_payment else "-",
        t.nota_url or "-",
        t.created_by or "-",
    )


def build_export(
    transactions: Iterable[Transaction],
    kind: ExportKind,
    year: int,
    month: int,
    tz: tzinfo = REPORTING_TZ,
) -> ExportSheet:
    """
    Lay out the report for ``kind`` in ``year``/``month``.

    Raises:
        EmptyExportError: nothing matches the selection.
    """
    kind = ExportKind(kind)
    title = report_title(kind)
    period = month_label_long(date(year, month, 1))
    selected = select_for_export(transactions, kind, year, month, tz)
    if not selected:
        raise EmptyExportError(title, period)

    return ExportSheet(
        title=title,
        period=period,
        sheet_name=f"{title} {period}"[:MAX_SHEET_NAME],
        filename=export_filename(title, year, month),
        headers=EXPORT_HEADERS,
        rows=tuple(transaction_row(t, tz) for t in selected),
        total=sum(t.jumlah for t in selected),
    )
