"""
LedgerMirror -- in-memory copy of the three collections, kept current by
the store's change feed.

Responsibility:
    Load every collection once, then apply change events as they arrive so
    the dashboards and the admin console read from memory.  The mirror never
    writes to the store and never changes itself optimistically: a command's
    effect shows up here only when its change event is applied.

Architecture position:
    Engines.  Depends on the ``EntityStore`` contract and the domain types;
    knows nothing about SQLAlchemy.

Invariants enforced:
    - ``load()`` publishes all three collections or none of them.
    - ``apply()`` is idempotent per event: CREATED upserts, UPDATED replaces
      (or inserts), DELETED removes (or does nothing).
    - Every (event type, ChangeKind) pair has a handler; the table is
      checked when this module is imported.
    - A feed disconnect keeps the last known state and sets ``is_stale``.

Failure modes:
    - MirrorLoadError from ``load()``/``start()`` when a bulk read fails.
"""

from typing import Callable
from uuid import UUID

from kas_kernel.domain.events import (
    ChangeEvent,
    ChangeKind,
    EVENT_TYPES,
    PaymentChange,
    StudentChange,
    TransactionChange,
)
from kas_kernel.domain.records import (
    Collection,
    Payment,
    PaymentStatus,
    Student,
    Transaction,
)
from kas_kernel.exceptions import KasError, MirrorLoadError
from kas_kernel.logging_config import get_logger
from kas_kernel.services.change_feed import Subscription
from kas_kernel.services.entity_store import EntityStore
from kas_engines.ledger import FundBalances, compute_balances, sort_transactions

logger = get_logger("engines.mirror")

MirrorListener = Callable[[ChangeEvent], None]


def _upsert(table: dict, change: ChangeEvent) -> None:
    table[change.record_id] = change.entity


def _remove(table: dict, change: ChangeEvent) -> None:
    table.pop(change.record_id, None)


# (event type, kind) -> handler(table, change).  CREATED and UPDATED share
# the upsert so a duplicate or out-of-order delivery cannot duplicate rows.
_DISPATCH: dict[tuple[type, ChangeKind], Callable[[dict, ChangeEvent], None]] = {
    (StudentChange, ChangeKind.CREATED): _upsert,
    (StudentChange, ChangeKind.UPDATED): _upsert,
    (StudentChange, ChangeKind.DELETED): _remove,
    (PaymentChange, ChangeKind.CREATED): _upsert,
    (PaymentChange, ChangeKind.UPDATED): _upsert,
    (PaymentChange, ChangeKind.DELETED): _remove,
    (TransactionChange, ChangeKind.CREATED): _upsert,
    (TransactionChange, ChangeKind.UPDATED): _upsert,
    (TransactionChange, ChangeKind.DELETED): _remove,
}


def _check_dispatch_complete() -> None:
    missing = [
        (event_type.__name__, kind.value)
        for event_type in EVENT_TYPES.values()
        for kind in ChangeKind
        if (event_type, kind) not in _DISPATCH
    ]
    if missing:
        raise ImportError(f"LedgerMirror has no handler for {missing}")


_check_dispatch_complete()


class LedgerMirror:
    """
    Id-keyed maps of students, payments and transactions.

    Usage:
        mirror = LedgerMirror(store)
        mirror.start()            # load + subscribe
        mirror.balances()
        mirror.close()
    """

    def __init__(self, store: EntityStore):
        self._store = store
        self._tables: dict[Collection, dict[UUID, object]] = {c: {} for c in Collection}
        self._subscription: Subscription | None = None
        self._listeners: list[MirrorListener] = []
        self._loaded = False
        self._stale = False

    # -- lifecycle ------------------------------------------------------------

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    @property
    def is_stale(self) -> bool:
        return self._stale

    def load(self) -> None:
        """
        Bulk-read every collection and replace the mirror's contents.

        Nothing is replaced unless all three reads succeed.
        """
        fresh: dict[Collection, dict[UUID, object]] = {}
        for collection in Collection:
            try:
                records = self._store.select_all(collection)
            except KasError as exc:
                logger.error(
                    "mirror_load_failed",
                    extra={"collection": collection.value, "reason": str(exc)},
                )
                raise MirrorLoadError(collection.value, str(exc)) from exc
            fresh[collection] = {r.id: r for r in records}

        self._tables = fresh
        self._loaded = True
        self._stale = False
        logger.info(
            "mirror_loaded",
            extra={c.value: len(rows) for c, rows in fresh.items()},
        )

    def start(self) -> None:
        """Load, then follow the change feed."""
        self.load()
        if self._subscription is None or self._subscription.is_closed:
            self._subscription = self._store.subscribe_changes(
                self.apply, on_disconnect=self._on_disconnect
            )

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
            logger.info("mirror_closed")

    def _on_disconnect(self) -> None:
        self._stale = True
        self._subscription = None
        logger.warning("mirror_stale")

    # -- reconciliation -------------------------------------------------------

    def apply(self, change: ChangeEvent) -> None:
        handler = _DISPATCH[(type(change), change.kind)]
        handler(self._tables[change.collection], change)
        logger.debug(
            "mirror_event_applied",
            extra={
                "collection": change.collection.value,
                "kind": change.kind.value,
                "record_id": str(change.record_id),
            },
        )
        for listener in list(self._listeners):
            listener(change)

    def subscribe(self, listener: MirrorListener) -> Callable[[], None]:
        """Call ``listener`` after each applied event; returns the unsubscribe."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # -- snapshots ------------------------------------------------------------

    def students(self) -> list[Student]:
        return sorted(self._tables[Collection.STUDENTS].values(), key=lambda s: s.name.lower())

    def payments(self) -> list[Payment]:
        return sorted(
            self._tables[Collection.PAYMENTS].values(),
            key=lambda p: p.tanggal,
            reverse=True,
        )

    def transactions(self) -> list[Transaction]:
        return sort_transactions(self._tables[Collection.TRANSACTIONS].values())

    def get_student(self, student_id: UUID) -> Student | None:
        return self._tables[Collection.STUDENTS].get(student_id)

    def get_payment(self, payment_id: UUID) -> Payment | None:
        return self._tables[Collection.PAYMENTS].get(payment_id)

    def get_transaction(self, transaction_id: UUID) -> Transaction | None:
        return self._tables[Collection.TRANSACTIONS].get(transaction_id)

    def payments_for_student(self, student_id: UUID) -> list[Payment]:
        return [p for p in self.payments() if p.student_id == student_id]

    def pending_payments(self) -> list[Payment]:
        """Oldest first, the order they should be verified in."""
        pending = [
            p for p in self._tables[Collection.PAYMENTS].values()
            if p.status == PaymentStatus.PENDING
        ]
        return sorted(pending, key=lambda p: p.tanggal)

    def linked_transactions(self, payment_id: UUID) -> list[Transaction]:
        return [
            t for t in self._tables[Collection.TRANSACTIONS].values()
            if t.ref_payment == payment_id
        ]

    def balances(self) -> FundBalances:
        return compute_balances(self._tables[Collection.TRANSACTIONS].values())
