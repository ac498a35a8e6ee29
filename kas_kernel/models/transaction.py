"""
Module: kas_kernel.models.transaction
Responsibility: ORM persistence for ledger transactions.
Architecture position: Kernel > Models.

Invariants enforced:
    - ``jumlah`` > 0; ``tipe`` and ``sumber_dana`` restricted to their enum
      values (CHECK constraints).
    - ``ref_payment`` is a soft back-reference: ON DELETE SET NULL.  A
      payment deleted before its linked transaction leaves an unlinked
      income row behind, which is why the command layer deletes linked
      transactions first.
    - Linked-field immutability is enforced by db/guards.py.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from kas_kernel.db.base import Base, UUIDString
from kas_kernel.domain.records import FundSource, Transaction, TransactionType


class TransactionModel(Base):
    """A ledger transaction row."""

    __tablename__ = "transactions"

    __table_args__ = (
        CheckConstraint("jumlah > 0", name="ck_transactions_jumlah_positive"),
        CheckConstraint("tipe IN ('income', 'expense')", name="ck_transactions_tipe"),
        CheckConstraint(
            "sumber_dana IN ('general_cash', 'donation_fund')",
            name="ck_transactions_sumber_dana",
        ),
        Index("idx_transactions_tanggal", "tanggal"),
        Index("idx_transactions_ref_payment", "ref_payment"),
    )

    tanggal: Mapped[datetime] = mapped_column(nullable=False)
    tipe: Mapped[str] = mapped_column(String(10), nullable=False)
    kategori: Mapped[str] = mapped_column(String(100), nullable=False)
    sumber_dana: Mapped[str] = mapped_column(String(20), nullable=False)
    deskripsi: Mapped[str] = mapped_column(String(2000), nullable=False)
    jumlah: Mapped[int] = mapped_column(nullable=False)

    ref_payment: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("payments.id", ondelete="SET NULL"),
        nullable=True,
    )

    nota_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    def to_record(self) -> Transaction:
        return Transaction(
            id=self.id,
            tanggal=self.tanggal,
            tipe=TransactionType(self.tipe),
            kategori=self.kategori,
            sumber_dana=FundSource(self.sumber_dana),
            deskripsi=self.deskripsi,
            jumlah=self.jumlah,
            ref_payment=self.ref_payment,
            nota_url=self.nota_url,
            created_by=self.created_by,
            created_at=self.created_at,
        )
