"""
Module: kas_kernel.models.student
Responsibility: ORM persistence for cohort members.
Architecture position: Kernel > Models.  May import from db/ and
    domain/records.py only.

Invariants enforced:
    - ``nim`` is unique (UNIQUE constraint).
    - Deleting a student deletes its payments.  The ORM cascade marks them
      for deletion in the same flush so the change feed reports each one;
      the FK's ON DELETE CASCADE covers writes that bypass the ORM.
"""

from typing import TYPE_CHECKING

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from kas_kernel.db.base import Base
from kas_kernel.domain.records import Student

if TYPE_CHECKING:
    from kas_kernel.models.payment import PaymentModel


class StudentModel(Base):
    """A cohort member row."""

    __tablename__ = "students"

    __table_args__ = (
        UniqueConstraint("nim", name="uq_students_nim"),
    )

    nim: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    angkatan: Mapped[str] = mapped_column(String(50), nullable=False)

    payments: Mapped[list["PaymentModel"]] = relationship(
        back_populates="student",
        cascade="all, delete-orphan",
    )

    def to_record(self) -> Student:
        return Student(
            id=self.id,
            nim=self.nim,
            name=self.name,
            angkatan=self.angkatan,
            created_at=self.created_at,
        )

    def __repr__(self) -> str:
        return f"<StudentModel {self.nim} {self.name}>"
