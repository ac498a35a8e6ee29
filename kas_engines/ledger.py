"""
Module: kas_engines.ledger
Responsibility:
    Derive everything the dashboards show from the transaction list:
    per-fund balances, monthly income/expense flow, expense breakdown by
    category, and the rolling report windows.  Also the single place that
    turns a validated payment into its ledger transaction.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import kas_kernel.domain.

Invariants enforced:
    - Purity: no clock access.  ``now`` is always passed in.
    - Exact integer arithmetic on ``jumlah``.
    - ``net_balance == general_cash_balance + donation_fund_balance``.
    - Month buckets and window boundaries use the reporting timezone.

Failure modes:
    None.  Inputs are validated at the command boundary.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from enum import Enum
from typing import Iterable, Sequence

from kas_kernel.domain.clock import REPORTING_TZ, ensure_aware
from kas_kernel.domain.formatting import month_label_short
from kas_kernel.domain.records import (
    DUES_CATEGORY,
    FundSource,
    Payment,
    Student,
    Transaction,
    TransactionDraft,
    TransactionType,
)
from kas_engines.tracer import traced_engine

# Label for transactions saved without a category.
UNCATEGORIZED_LABEL = "Lainnya"


@dataclass(frozen=True)
class FundBalances:
    """Totals over a transaction list, split by fund."""

    total_income: int
    total_expense: int
    general_cash_balance: int
    donation_fund_balance: int
    net_balance: int

    def balance_for(self, fund: FundSource) -> int:
        if fund == FundSource.GENERAL_CASH:
            return self.general_cash_balance
        return self.donation_fund_balance


@dataclass(frozen=True)
class MonthlyFlow:
    """Income and expense for one reporting month."""

    month_label: str
    year: int
    month: int
    income: int
    expense: int

    @property
    def net(self) -> int:
        return self.income - self.expense


class ReportWindow(str, Enum):
    """Rolling windows for the public transaction list."""

    TODAY = "today"
    LAST_7_DAYS = "7d"
    LAST_14_DAYS = "14d"
    MONTH_TO_DATE = "month"


_WINDOW_DAYS = {
    ReportWindow.TODAY: 1,
    ReportWindow.LAST_7_DAYS: 7,
    ReportWindow.LAST_14_DAYS: 14,
}


@traced_engine("ledger.balances", "1.0")
def compute_balances(transactions: Iterable[Transaction]) -> FundBalances:
    income = {FundSource.GENERAL_CASH: 0, FundSource.DONATION_FUND: 0}
    expense = {FundSource.GENERAL_CASH: 0, FundSource.DONATION_FUND: 0}

    for t in transactions:
        if t.tipe == TransactionType.INCOME:
            income[t.sumber_dana] += t.jumlah
        else:
            expense[t.sumber_dana] += t.jumlah

    general = income[FundSource.GENERAL_CASH] - expense[FundSource.GENERAL_CASH]
    donation = income[FundSource.DONATION_FUND] - expense[FundSource.DONATION_FUND]
    total_income = sum(income.values())
    total_expense = sum(expense.values())

    return FundBalances(
        total_income=total_income,
        total_expense=total_expense,
        general_cash_balance=general,
        donation_fund_balance=donation,
        net_balance=total_income - total_expense,
    )


@traced_engine("ledger.monthly_flow", "1.0")
def group_by_month(
    transactions: Iterable[Transaction],
    tz: tzinfo = REPORTING_TZ,
) -> tuple[MonthlyFlow, ...]:
    """One bucket per month present, oldest first."""
    buckets: dict[tuple[int, int], list[int]] = defaultdict(lambda: [0, 0])
    for t in transactions:
        local = ensure_aware(t.tanggal).astimezone(tz)
        bucket = buckets[(local.year, local.month)]
        if t.tipe == TransactionType.INCOME:
            bucket[0] += t.jumlah
        else:
            bucket[1] += t.jumlah

    return tuple(
        MonthlyFlow(
            month_label=month_label_short(year, month),
            year=year,
            month=month,
            income=income,
            expense=expense,
        )
        for (year, month), (income, expense) in sorted(buckets.items())
    )


def group_by_category(
    transactions: Iterable[Transaction],
    tipe: TransactionType = TransactionType.EXPENSE,
) -> dict[str, int]:
    """Total per category for one transaction type, in first-seen order."""
    totals: dict[str, int] = {}
    for t in transactions:
        if t.tipe != tipe:
            continue
        category = (t.kategori or "").strip() or UNCATEGORIZED_LABEL
        totals[category] = totals.get(category, 0) + t.jumlah
    return totals


def window_start(window: ReportWindow, now: datetime, tz: tzinfo = REPORTING_TZ) -> datetime:
    """
    Inclusive lower bound of ``window``: a local midnight.

    "Last N days" starts N-1 days before today, so today counts as one of
    the N days.
    """
    local_now = ensure_aware(now).astimezone(tz)
    today = datetime(local_now.year, local_now.month, local_now.day, tzinfo=tz)
    if window == ReportWindow.MONTH_TO_DATE:
        return today.replace(day=1)
    return today - timedelta(days=_WINDOW_DAYS[window] - 1)


@traced_engine("ledger.window", "1.0", fingerprint_fields=("window", "now", "tz"))
def filter_by_window(
    transactions: Iterable[Transaction],
    window: ReportWindow,
    now: datetime,
    tz: tzinfo = REPORTING_TZ,
) -> list[Transaction]:
    """Transactions dated on or after the window start; no upper bound."""
    start = window_start(window, now, tz)
    return [t for t in transactions if ensure_aware(t.tanggal) >= start]


def sort_transactions(transactions: Iterable[Transaction]) -> list[Transaction]:
    """Newest first; ties broken by creation time, newest first."""
    return sorted(
        transactions,
        key=lambda t: (ensure_aware(t.tanggal), ensure_aware(t.created_at)),
        reverse=True,
    )


@traced_engine("ledger.derive_income", "1.0", fingerprint_fields=("payment", "created_by", "category"))
def derive_transaction_for_payment(
    payment: Payment,
    student: Student,
    created_by: str | None = None,
    category: str = DUES_CATEGORY,
) -> TransactionDraft:
    """
    The income transaction a validated payment must have.

    Both ways of validating a payment (recorded directly by the admin, or
    approved from pending) write exactly this draft.
    """
    return TransactionDraft(
        tanggal=payment.tanggal,
        tipe=TransactionType.INCOME,
        kategori=category,
        sumber_dana=FundSource.GENERAL_CASH,
        deskripsi=f"Pembayaran iuran dari {student.name}",
        jumlah=payment.jumlah,
        ref_payment=payment.id,
        nota_url=None,
        created_by=created_by,
    )


def totals_by_type(transactions: Sequence[Transaction]) -> tuple[int, int]:
    """(income, expense) over ``transactions``."""
    income = sum(t.jumlah for t in transactions if t.tipe == TransactionType.INCOME)
    expense = sum(t.jumlah for t in transactions if t.tipe == TransactionType.EXPENSE)
    return income, expense
