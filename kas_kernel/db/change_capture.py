"""
Translate ORM flushes into change-feed events.

Session events on the store's sessionmaker collect what each flush wrote:

    flush   -> after_flush     snapshot new / dirty / deleted rows
    commit  -> after_commit    publish the snapshot, in flush order
    rollback-> after_rollback  discard the snapshot

Nothing is published for a transaction that does not commit, so subscribers
never see a write the database refused.  Deleted events carry the id only.

Rows removed by the database itself (``ON DELETE SET NULL`` on
``transactions.ref_payment``) do not pass through the session and produce no
event.
"""

from typing import Callable

from sqlalchemy import event
from sqlalchemy.orm import Session, sessionmaker

from kas_kernel.domain.events import ChangeEvent, ChangeKind, make_change
from kas_kernel.domain.records import Collection
from kas_kernel.logging_config import get_logger
from kas_kernel.models import PaymentModel, StudentModel, TransactionModel

logger = get_logger("db.change_capture")

_PENDING_KEY = "pending_changes"

MODEL_COLLECTIONS: dict[type, Collection] = {
    StudentModel: Collection.STUDENTS,
    PaymentModel: Collection.PAYMENTS,
    TransactionModel: Collection.TRANSACTIONS,
}


class ChangeCapture:
    """
    Session listeners bound to one sessionmaker and one publish callback.

    ``install()`` and ``remove()`` are idempotent.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        publish: Callable[[ChangeEvent], None],
    ):
        self._session_factory = session_factory
        self._publish = publish
        self._installed = False

    def install(self) -> None:
        if self._installed:
            return
        event.listen(self._session_factory, "after_flush", self._after_flush)
        event.listen(self._session_factory, "after_commit", self._after_commit)
        event.listen(self._session_factory, "after_rollback", self._after_rollback)
        self._installed = True

    def remove(self) -> None:
        if not self._installed:
            return
        event.remove(self._session_factory, "after_flush", self._after_flush)
        event.remove(self._session_factory, "after_commit", self._after_commit)
        event.remove(self._session_factory, "after_rollback", self._after_rollback)
        self._installed = False

    def _after_flush(self, session: Session, flush_context) -> None:
        pending: list[ChangeEvent] = session.info.setdefault(_PENDING_KEY, [])

        for obj in session.new:
            collection = MODEL_COLLECTIONS.get(type(obj))
            if collection is not None:
                pending.append(make_change(collection, ChangeKind.CREATED, obj.to_record()))

        for obj in session.dirty:
            collection = MODEL_COLLECTIONS.get(type(obj))
            if collection is not None and session.is_modified(obj, include_collections=False):
                pending.append(make_change(collection, ChangeKind.UPDATED, obj.to_record()))

        for obj in session.deleted:
            collection = MODEL_COLLECTIONS.get(type(obj))
            if collection is not None:
                pending.append(make_change(collection, ChangeKind.DELETED, record_id=obj.id))

    def _after_commit(self, session: Session) -> None:
        pending = session.info.pop(_PENDING_KEY, [])
        for change in pending:
            logger.debug(
                "change_published",
                extra={
                    "collection": change.collection.value,
                    "kind": change.kind.value,
                    "record_id": str(change.record_id),
                },
            )
            self._publish(change)

    def _after_rollback(self, session: Session) -> None:
        discarded = session.info.pop(_PENDING_KEY, [])
        if discarded:
            logger.debug("changes_discarded", extra={"count": len(discarded)})


def install_change_capture(
    session_factory: sessionmaker[Session],
    publish: Callable[[ChangeEvent], None],
) -> ChangeCapture:
    """Attach change capture to ``session_factory`` and return the handle."""
    capture = ChangeCapture(session_factory, publish)
    capture.install()
    return capture
