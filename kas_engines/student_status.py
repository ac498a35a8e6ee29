"""
Per-student payment status: search and history summary.

Pure functions over mirror snapshots, used by the public "cek status"
lookup and the operator CLI.
"""

from dataclasses import dataclass
from datetime import date
from typing import Iterable, Sequence

from kas_kernel.domain.formatting import month_label_long
from kas_kernel.domain.records import Payment, PaymentStatus, Student


@dataclass(frozen=True)
class MonthPayments:
    periode_bulan: date
    label: str
    payments: tuple[Payment, ...]


@dataclass(frozen=True)
class StudentPaymentSummary:
    student: Student
    total_paid: int
    months: tuple[MonthPayments, ...]
    pending_count: int
    rejected_count: int

    @property
    def paid_months(self) -> tuple[date, ...]:
        return tuple(
            m.periode_bulan for m in self.months
            if any(p.status == PaymentStatus.VALID for p in m.payments)
        )


def search_students(students: Iterable[Student], query: str) -> list[Student]:
    """Name (case-insensitive) or NIM substring match, sorted by name."""
    needle = (query or "").strip()
    if not needle:
        return []
    lowered = needle.lower()
    matches = [s for s in students if lowered in s.name.lower() or needle in s.nim]
    return sorted(matches, key=lambda s: s.name.lower())


def summarize_student(student: Student, payments: Sequence[Payment]) -> StudentPaymentSummary:
    """
    Payment history for one student.

    ``total_paid`` counts valid payments only.  Months are newest first, and
    so are the payments within each month.
    """
    own = [p for p in payments if p.student_id == student.id]

    by_month: dict[date, list[Payment]] = {}
    for p in own:
        by_month.setdefault(p.periode_bulan, []).append(p)

    months = tuple(
        MonthPayments(
            periode_bulan=period,
            label=month_label_long(period),
            payments=tuple(sorted(by_month[period], key=lambda p: p.tanggal, reverse=True)),
        )
        for period in sorted(by_month, reverse=True)
    )

    return StudentPaymentSummary(
        student=student,
        total_paid=sum(p.jumlah for p in own if p.status == PaymentStatus.VALID),
        months=months,
        pending_count=sum(1 for p in own if p.status == PaymentStatus.PENDING),
        rejected_count=sum(1 for p in own if p.status == PaymentStatus.REJECTED),
    )
