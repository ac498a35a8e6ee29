"""
Pure domain layer: records, change events, session state, validation,
formatting and the injectable clock.  No I/O and no ORM imports.
"""

from kas_kernel.domain.clock import Clock, DeterministicClock, REPORTING_TZ, SystemClock
from kas_kernel.domain.events import (
    ChangeEvent,
    ChangeKind,
    PaymentChange,
    StudentChange,
    TransactionChange,
    make_change,
)
from kas_kernel.domain.records import (
    DUES_CATEGORY,
    Collection,
    FundSource,
    Payment,
    PaymentStatus,
    Student,
    Transaction,
    TransactionDraft,
    TransactionType,
)
from kas_kernel.domain.session import AdminSession

__all__ = [
    "AdminSession",
    "ChangeEvent",
    "ChangeKind",
    "Clock",
    "Collection",
    "DUES_CATEGORY",
    "DeterministicClock",
    "FundSource",
    "Payment",
    "PaymentChange",
    "PaymentStatus",
    "REPORTING_TZ",
    "Student",
    "StudentChange",
    "SystemClock",
    "Transaction",
    "TransactionChange",
    "TransactionDraft",
    "TransactionType",
    "make_change",
]
