"""
Module: kas_kernel.models.payment
Responsibility: ORM persistence for dues payments.
Architecture position: Kernel > Models.

Invariants enforced:
    - ``jumlah`` > 0 (CHECK constraint).
    - ``status`` is one of the PaymentStatus values (CHECK constraint).
    - ``student_id`` references students ON DELETE CASCADE.
"""

from datetime import date, datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from kas_kernel.db.base import Base, UUIDString
from kas_kernel.domain.records import Payment, PaymentStatus

if TYPE_CHECKING:
    from kas_kernel.models.student import StudentModel


class PaymentModel(Base):
    """A dues payment row."""

    __tablename__ = "payments"

    __table_args__ = (
        CheckConstraint("jumlah > 0", name="ck_payments_jumlah_positive"),
        CheckConstraint(
            "status IN ('pending', 'valid', 'rejected')",
            name="ck_payments_status",
        ),
        Index("idx_payments_student", "student_id"),
        Index("idx_payments_status", "status"),
    )

    student_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False,
    )

    # First day of the month this payment covers
    periode_bulan: Mapped[date] = mapped_column(Date, nullable=False)

    tanggal: Mapped[datetime] = mapped_column(nullable=False)
    jumlah: Mapped[int] = mapped_column(nullable=False)
    metode: Mapped[str] = mapped_column(String(100), nullable=False)
    bukti_url: Mapped[str] = mapped_column(String(1000), nullable=False, default="")

    status: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default=PaymentStatus.PENDING.value,
    )

    verified_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    student: Mapped["StudentModel"] = relationship(back_populates="payments")

    def to_record(self) -> Payment:
        return Payment(
            id=self.id,
            student_id=self.student_id,
            periode_bulan=self.periode_bulan,
            tanggal=self.tanggal,
            jumlah=self.jumlah,
            metode=self.metode,
            bukti_url=self.bukti_url or "",
            status=PaymentStatus(self.status),
            verified_by=self.verified_by,
            created_at=self.created_at,
        )
