"""
Module: kas_engines
Responsibility:
    Pure calculation over the cash fund's records: balances and report
    groupings, the in-memory mirror, link auditing, student status and
    export layout.

Architecture position:
    Engines.  May import kas_kernel (domain, exceptions, logging and the
    EntityStore contract).  MUST NOT import kas_services.

Invariants enforced:
    - Engines never read the clock; ``now`` is passed in by callers.
    - Integer arithmetic on amounts.
"""

from kas_engines.export import ExportKind, ExportSheet, build_export
from kas_engines.ledger import (
    FundBalances,
    MonthlyFlow,
    ReportWindow,
    compute_balances,
    derive_transaction_for_payment,
    filter_by_window,
    group_by_category,
    group_by_month,
    sort_transactions,
)
from kas_engines.link_checker import LinkCheckResult, LinkFinding, check_payment_links
from kas_engines.mirror import LedgerMirror
from kas_engines.student_status import (
    StudentPaymentSummary,
    search_students,
    summarize_student,
)

__all__ = [
    "ExportKind",
    "ExportSheet",
    "FundBalances",
    "LedgerMirror",
    "LinkCheckResult",
    "LinkFinding",
    "MonthlyFlow",
    "ReportWindow",
    "StudentPaymentSummary",
    "build_export",
    "check_payment_links",
    "compute_balances",
    "derive_transaction_for_payment",
    "filter_by_window",
    "group_by_category",
    "group_by_month",
    "search_students",
    "sort_transactions",
    "summarize_student",
]
