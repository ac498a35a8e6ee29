"""
ORM-level guard for payment-linked transactions.

A transaction whose ``ref_payment`` is set mirrors the facts of a validated
payment.  Once linked, only ``deskripsi``, ``sumber_dana`` and ``nota_url``
may change.  The listener fires on ``before_update``, so the UPDATE never
reaches the database and the surrounding session is rolled back.

    session.flush()
         |
         v
    [before_update] --> _check_linked_transaction_update() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if the check passes)

Deletes are not blocked here.  Removing a linked transaction is legitimate
while deleting its student; the command layer refuses a direct delete.
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from kas_kernel.domain.records import LINKED_EDITABLE_FIELDS
from kas_kernel.exceptions import ImmutabilityViolationError
from kas_kernel.logging_config import get_logger

logger = get_logger("db.guards")


def _was_linked(target) -> bool:
    ref_history = get_history(target, "ref_payment")
    if ref_history.deleted:
        # ref_payment is changing; the old value decides
        return ref_history.deleted[0] is not None
    if not ref_history.added:
        return target.ref_payment is not None
    return False


def _check_linked_transaction_update(mapper, connection, target):
    if not _was_linked(target):
        return

    changed = [
        attr.key
        for attr in inspect(target).attrs
        if attr.key not in LINKED_EDITABLE_FIELDS and attr.history.has_changes()
    ]
    if not changed:
        return

    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "Transaction",
            "entity_id": str(target.id),
            "operation": "UPDATE",
            "fields": changed,
        },
    )
    raise ImmutabilityViolationError(
        entity_type="Transaction",
        entity_id=str(target.id),
        fields=changed,
    )


def register_link_guards() -> None:
    """
    Install the linked-transaction listener.

    Call after the models are imported and before the first write.  Safe to
    call more than once.
    """
    from kas_kernel.models.transaction import TransactionModel

    if not event.contains(TransactionModel, "before_update", _check_linked_transaction_update):
        event.listen(TransactionModel, "before_update", _check_linked_transaction_update)


def unregister_link_guards() -> None:
    """
    Remove the linked-transaction listener.

    WARNING: Only use this in tests that need to write an inconsistent
    ledger on purpose.
    """
    from kas_kernel.models.transaction import TransactionModel

    if event.contains(TransactionModel, "before_update", _check_linked_transaction_update):
        event.remove(TransactionModel, "before_update", _check_linked_transaction_update)
