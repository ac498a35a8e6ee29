"""
Frozen record types for the three collections.

Responsibility:
    The in-memory vocabulary shared by the store, the mirror, the ledger
    engine and the command layer.  These are plain frozen dataclasses, NOT
    ORM models; ``kas_kernel.models`` converts between the two.

Invariants enforced:
    - Amounts (``jumlah``) are whole currency units held as ``int``.
    - ``periode_bulan`` is always the first day of a month.
    - A transaction with ``ref_payment`` set is "linked"; only the fields in
      ``LINKED_EDITABLE_FIELDS`` may change on it afterwards.
"""

from dataclasses import dataclass, fields
from datetime import date, datetime
from enum import Enum
from typing import Any, Union
from uuid import UUID


class Collection(str, Enum):
    """The three entity collections held by the store and the mirror."""

    STUDENTS = "students"
    PAYMENTS = "payments"
    TRANSACTIONS = "transactions"


class PaymentStatus(str, Enum):
    """Verification state of a dues payment."""

    PENDING = "pending"
    VALID = "valid"
    REJECTED = "rejected"


class TransactionType(str, Enum):
    """Direction of a ledger transaction."""

    INCOME = "income"
    EXPENSE = "expense"


class FundSource(str, Enum):
    """The two money pools, each with an independent balance."""

    GENERAL_CASH = "general_cash"
    DONATION_FUND = "donation_fund"


# Category written on every transaction derived from a validated payment.
DUES_CATEGORY = "Mandatory Dues"

# Fields that stay editable once a transaction is linked to a payment.
LINKED_EDITABLE_FIELDS: frozenset[str] = frozenset({"deskripsi", "sumber_dana", "nota_url"})

# Fields frozen on a linked transaction (they mirror the payment's facts).
LINKED_FROZEN_FIELDS: tuple[str, ...] = ("tanggal", "tipe", "kategori", "jumlah")


def month_start(value: date | datetime) -> date:
    """Truncate a date or datetime to the first day of its month."""
    return date(value.year, value.month, 1)


@dataclass(frozen=True)
class Student:
    """A cohort member."""

    id: UUID
    nim: str
    name: str
    angkatan: str
    created_at: datetime


@dataclass(frozen=True)
class Payment:
    """A dues payment for one month, submitted by a student or recorded by the admin."""

    id: UUID
    student_id: UUID
    periode_bulan: date
    tanggal: datetime
    jumlah: int
    metode: str
    bukti_url: str
    status: PaymentStatus
    verified_by: str | None
    created_at: datetime

    @property
    def is_valid(self) -> bool:
        return self.status == PaymentStatus.VALID


@dataclass(frozen=True)
class Transaction:
    """A ledger row: manual income/expense, or derived from a validated payment."""

    id: UUID
    tanggal: datetime
    tipe: TransactionType
    kategori: str
    sumber_dana: FundSource
    deskripsi: str
    jumlah: int
    ref_payment: UUID | None
    nota_url: str | None
    created_by: str | None
    created_at: datetime

    @property
    def is_linked(self) -> bool:
        return self.ref_payment is not None

    @property
    def is_income(self) -> bool:
        return self.tipe == TransactionType.INCOME


@dataclass(frozen=True)
class TransactionDraft:
    """A transaction not yet written; the store assigns id and created_at."""

    tanggal: datetime
    tipe: TransactionType
    kategori: str
    sumber_dana: FundSource
    deskripsi: str
    jumlah: int
    ref_payment: UUID | None = None
    nota_url: str | None = None
    created_by: str | None = None

    def as_row(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


Record = Union[Student, Payment, Transaction]

RECORD_TYPES: dict[Collection, type] = {
    Collection.STUDENTS: Student,
    Collection.PAYMENTS: Payment,
    Collection.TRANSACTIONS: Transaction,
}


def record_fields(collection: Collection) -> frozenset[str]:
    """Names of the fields a record of ``collection`` carries."""
    return frozenset(f.name for f in fields(RECORD_TYPES[collection]))
