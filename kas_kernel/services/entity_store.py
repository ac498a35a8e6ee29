"""
EntityStore -- persistence, identity and change notification for the
three collections.

Responsibility:
    The only component that writes rows.  Every call is one synchronous
    round trip in its own transaction: it either commits completely or
    leaves the database untouched.  Committed changes reach subscribers
    through the change feed.

Architecture position:
    Kernel > Services.  Consumed by the command layer (writes) and the
    ledger mirror (bulk reads and the feed).

Invariants enforced:
    - ``created_at`` is assigned from the injected Clock, never by callers.
    - ``insert`` of several rows is atomic: all rows or none.
    - ``delete`` refuses an empty predicate.
    - Linked-transaction immutability is enforced by db/guards.py.

Failure modes:
    - StoreWriteError / StoreReadError wrap SQLAlchemy errors (chained).
    - RecordNotFoundError when ``update`` names a missing id.
    - ImmutabilityViolationError from the linked-transaction guard.

Predicates:
    A mapping of field name to value.  A list, tuple, set or frozenset value
    means IN; anything else means equality.  Enum values compare by value.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Iterable, Mapping
from uuid import UUID

from sqlalchemy import select as sql_select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from kas_kernel.db.change_capture import install_change_capture
from kas_kernel.db.engine import session_scope
from kas_kernel.db.guards import register_link_guards
from kas_kernel.domain.clock import Clock, SystemClock
from kas_kernel.domain.records import Collection, Record, record_fields
from kas_kernel.exceptions import RecordNotFoundError, StoreReadError, StoreWriteError
from kas_kernel.logging_config import LogContext, get_logger
from kas_kernel.models import PaymentModel, StudentModel, TransactionModel
from kas_kernel.services.change_feed import ChangeFeed, ChangeHandler, Subscription

logger = get_logger("services.entity_store")

Predicate = Mapping[str, Any]

_MODELS: dict[Collection, type] = {
    Collection.STUDENTS: StudentModel,
    Collection.PAYMENTS: PaymentModel,
    Collection.TRANSACTIONS: TransactionModel,
}

_IN_TYPES = (list, tuple, set, frozenset)


def _column_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value


class EntityStore(ABC):
    """Storage contract shared by the command layer and the mirror."""

    @abstractmethod
    def insert(self, collection: Collection, rows: Iterable[Mapping[str, Any]]) -> list[Record]:
        """Insert rows atomically; return the stored records in input order."""

    @abstractmethod
    def update(self, collection: Collection, record_id: UUID, patch: Mapping[str, Any]) -> Record:
        """Apply ``patch`` to one record and return the result."""

    @abstractmethod
    def delete(self, collection: Collection, predicate: Predicate) -> int:
        """Delete every record matching ``predicate``; return how many."""

    @abstractmethod
    def select_all(self, collection: Collection) -> list[Record]:
        """Every record of ``collection``."""

    @abstractmethod
    def select(self, collection: Collection, predicate: Predicate) -> list[Record]:
        """Records of ``collection`` matching ``predicate``."""

    @abstractmethod
    def subscribe_changes(
        self,
        handler: ChangeHandler,
        on_disconnect: Callable[[], None] | None = None,
    ) -> Subscription:
        """Receive every committed change until the subscription is closed."""


class SqlEntityStore(EntityStore):
    """
    EntityStore on SQLAlchemy.

    Contract:
        Opens one session per call from ``session_factory`` and commits it
        before returning.  Change capture is attached to the factory, so
        writes made through any session of that factory reach the feed.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        feed: ChangeFeed | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self.feed = feed or ChangeFeed()
        register_link_guards()
        self._capture = install_change_capture(session_factory, self.feed.publish)

    def close(self) -> None:
        """Detach change capture and disconnect every subscriber."""
        self._capture.remove()
        self.feed.disconnect()

    # -- writes ---------------------------------------------------------------

    def insert(self, collection: Collection, rows: Iterable[Mapping[str, Any]]) -> list[Record]:
        collection = Collection(collection)
        model = _MODELS[collection]
        now = self._clock.now()

        with LogContext.bind(collection=collection.value):
            try:
                with session_scope(self._session_factory) as session:
                    objects = []
                    for row in rows:
                        values = self._columns(collection, row, "insert")
                        values["created_at"] = now
                        obj = model(**values)
                        session.add(obj)
                        objects.append(obj)
                    session.flush()
                    records = [obj.to_record() for obj in objects]
            except SQLAlchemyError as exc:
                raise self._write_error("insert", collection, exc) from exc

            logger.info("records_inserted", extra={"count": len(records)})
            return records

    def update(self, collection: Collection, record_id: UUID, patch: Mapping[str, Any]) -> Record:
        collection = Collection(collection)
        model = _MODELS[collection]
        values = self._columns(collection, patch, "update")
        values.pop("id", None)
        values.pop("created_at", None)

        with LogContext.bind(collection=collection.value):
            try:
                with session_scope(self._session_factory) as session:
                    obj = session.get(model, record_id)
                    if obj is None:
                        raise RecordNotFoundError(collection.value, record_id)
                    for name, value in values.items():
                        setattr(obj, name, value)
                    session.flush()
                    record = obj.to_record()
            except SQLAlchemyError as exc:
                raise self._write_error("update", collection, exc) from exc

            logger.info(
                "record_updated",
                extra={"record_id": str(record_id), "fields": sorted(values)},
            )
            return record

    def delete(self, collection: Collection, predicate: Predicate) -> int:
        collection = Collection(collection)
        if not predicate:
            raise StoreWriteError("delete", collection.value, "refusing to delete without a predicate")

        with LogContext.bind(collection=collection.value):
            try:
                with session_scope(self._session_factory) as session:
                    # Load and delete through the session so ORM cascades
                    # run and the feed sees every removed row.
                    objects = session.scalars(self._query(collection, predicate, "delete")).all()
                    for obj in objects:
                        session.delete(obj)
            except SQLAlchemyError as exc:
                raise self._write_error("delete", collection, exc) from exc

            logger.info("records_deleted", extra={"count": len(objects)})
            return len(objects)

    # -- reads ----------------------------------------------------------------

    def select_all(self, collection: Collection) -> list[Record]:
        return self.select(collection, {})

    def select(self, collection: Collection, predicate: Predicate) -> list[Record]:
        collection = Collection(collection)
        try:
            with session_scope(self._session_factory) as session:
                objects = session.scalars(self._query(collection, predicate, "select")).all()
                return [obj.to_record() for obj in objects]
        except SQLAlchemyError as exc:
            logger.error(
                "store_read_failed",
                extra={"collection": collection.value, "reason": str(exc)},
            )
            raise StoreReadError(collection.value, str(exc)) from exc

    def subscribe_changes(
        self,
        handler: ChangeHandler,
        on_disconnect: Callable[[], None] | None = None,
    ) -> Subscription:
        return self.feed.subscribe(handler, on_disconnect)

    # -- helpers --------------------------------------------------------------

    def _columns(
        self,
        collection: Collection,
        row: Mapping[str, Any],
        operation: str,
    ) -> dict[str, Any]:
        allowed = record_fields(collection)
        unknown = sorted(set(row) - allowed)
        if unknown:
            raise StoreWriteError(
                operation, collection.value, f"unknown field(s): {', '.join(unknown)}"
            )
        return {name: _column_value(value) for name, value in row.items()}

    def _query(self, collection: Collection, predicate: Predicate, operation: str):
        model = _MODELS[collection]
        allowed = record_fields(collection)
        stmt = sql_select(model)
        for name, value in predicate.items():
            if name not in allowed:
                if operation == "select":
                    raise StoreReadError(collection.value, f"unknown field: {name}")
                raise StoreWriteError(operation, collection.value, f"unknown field: {name}")
            column = getattr(model, name)
            if isinstance(value, _IN_TYPES):
                stmt = stmt.where(column.in_([_column_value(v) for v in value]))
            elif value is None:
                stmt = stmt.where(column.is_(None))
            else:
                stmt = stmt.where(column == _column_value(value))
        return stmt.order_by(model.created_at, model.id)

    def _write_error(self, operation: str, collection: Collection, exc: SQLAlchemyError) -> StoreWriteError:
        reason = str(getattr(exc, "orig", None) or exc)
        logger.error(
            "store_write_failed",
            extra={"operation": operation, "reason": reason},
        )
        return StoreWriteError(operation, collection.value, reason)
