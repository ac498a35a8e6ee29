"""
Change events carried by the store's notification feed.

The feed is a tagged union: one event class per collection, each carrying a
``ChangeKind``.  Consumers dispatch on ``(type(event), event.kind)``; the
mirror builds an exhaustive table over both enums at import time.

A ``DELETED`` event may carry only the id of the removed row (``entity`` is
then None).  ``CREATED`` and ``UPDATED`` always carry the full record.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Union
from uuid import UUID

from kas_kernel.domain.records import Collection, Payment, Record, Student, Transaction


class ChangeKind(str, Enum):
    """What happened to the row."""

    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


@dataclass(frozen=True)
class _Change:
    kind: ChangeKind
    record_id: UUID
    entity: Record | None = None

    collection: Collection = field(default=None, init=False)

    def __post_init__(self) -> None:
        if self.entity is None and self.kind != ChangeKind.DELETED:
            raise ValueError(f"{self.kind.value} event requires the full entity")
        if self.entity is not None and self.entity.id != self.record_id:
            raise ValueError(
                f"record_id {self.record_id} does not match entity id {self.entity.id}"
            )


@dataclass(frozen=True)
class StudentChange(_Change):
    entity: Student | None = None
    collection: Collection = field(default=Collection.STUDENTS, init=False)


@dataclass(frozen=True)
class PaymentChange(_Change):
    entity: Payment | None = None
    collection: Collection = field(default=Collection.PAYMENTS, init=False)


@dataclass(frozen=True)
class TransactionChange(_Change):
    entity: Transaction | None = None
    collection: Collection = field(default=Collection.TRANSACTIONS, init=False)


ChangeEvent = Union[StudentChange, PaymentChange, TransactionChange]

EVENT_TYPES: dict[Collection, type] = {
    Collection.STUDENTS: StudentChange,
    Collection.PAYMENTS: PaymentChange,
    Collection.TRANSACTIONS: TransactionChange,
}


def make_change(
    collection: Collection,
    kind: ChangeKind,
    entity: Record | None = None,
    record_id: UUID | None = None,
) -> ChangeEvent:
    """Build the event class for ``collection``; record_id defaults to entity.id."""
    if record_id is None:
        if entity is None:
            raise ValueError("make_change needs an entity or a record_id")
        record_id = entity.id
    return EVENT_TYPES[collection](kind=kind, record_id=record_id, entity=entity)
