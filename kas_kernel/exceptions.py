"""
Typed exception hierarchy for the cash fund kernel.

Every error is catchable by type, carries a machine-readable ``code`` class
attribute, and keeps its context as attributes rather than inside the message.

    KasError (base)
    |
    +-- ValidationError              (a) bad user input, before any write
    |   +-- UploadRejectedError
    |
    +-- StoreError
    |   +-- StoreWriteError          (b) insert/update/delete refused or failed
    |   +-- StoreReadError
    |   +-- RecordNotFoundError
    |
    +-- PartialFailureError          (c) multi-step command stopped half way
    |
    +-- MirrorLoadError              (d) initial bulk load failed
    |
    +-- LedgerRuleError
    |   +-- LinkedTransactionError
    |   +-- PaymentNotPendingError
    |   +-- ImmutabilityViolationError
    |
    +-- AuthError
    |   +-- NotAuthenticatedError
    |   +-- InvalidCredentialsError
    |   +-- AccountLockedError
    |
    +-- ExportError
        +-- EmptyExportError

Category      | Code                          | When Raised
--------------|-------------------------------|----------------------------------------
Validation    | VALIDATION_ERROR              | Missing/malformed form input
              | UPLOAD_REJECTED               | Upload too large or wrong content type
Store         | STORE_WRITE_FAILED            | Store refused a write (network, constraint)
              | STORE_READ_FAILED             | Store read failed
              | RECORD_NOT_FOUND              | Id not present in the collection
Partial       | PARTIAL_FAILURE               | Earlier step committed, later step failed
Load          | MIRROR_LOAD_FAILED            | Bulk fetch of a collection failed
Ledger        | LINKED_TRANSACTION            | Direct delete of a payment-linked row
              | PAYMENT_NOT_PENDING           | Approve/reject on a decided payment
              | IMMUTABILITY_VIOLATION        | Linked fields changed on a linked row
Auth          | NOT_AUTHENTICATED             | Admin command without a session
              | INVALID_CREDENTIALS           | Wrong password
              | ACCOUNT_LOCKED                | Too many failed attempts
Export        | EMPTY_EXPORT                  | Nothing to export for the selection

PartialFailureError is not a StoreError: the store is in a
known-inconsistent state a human has to reconcile, and callers must be able
to tell that apart from a clean failure.
"""

from dataclasses import dataclass
from typing import Any, Sequence


class KasError(Exception):
    """
    Base exception for all cash fund kernel errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "KAS_ERROR"


# Validation


@dataclass(frozen=True)
class FieldError:
    """One problem with one input field (or one bulk-import row)."""

    field: str
    message: str


class ValidationError(KasError):
    """User input failed validation; nothing was written."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field_errors: Sequence[FieldError]):
        self.field_errors = tuple(field_errors)
        summary = "; ".join(f"{e.field}: {e.message}" for e in self.field_errors)
        super().__init__(f"Validation failed: {summary}")

    @classmethod
    def single(cls, field: str, message: str) -> "ValidationError":
        return cls([FieldError(field, message)])

    @property
    def fields(self) -> tuple[str, ...]:
        return tuple(e.field for e in self.field_errors)


class UploadRejectedError(ValidationError):
    """Uploaded file exceeds the size limit or has a disallowed content type."""

    code: str = "UPLOAD_REJECTED"


# Store


class StoreError(KasError):
    """Base exception for entity store failures."""

    code: str = "STORE_ERROR"


class StoreWriteError(StoreError):
    """The store refused or failed a write."""

    code: str = "STORE_WRITE_FAILED"

    def __init__(self, operation: str, collection: str, reason: str):
        self.operation = operation
        self.collection = collection
        self.reason = reason
        super().__init__(f"Failed to {operation} {collection}: {reason}")


class StoreReadError(StoreError):
    """The store failed a read."""

    code: str = "STORE_READ_FAILED"

    def __init__(self, collection: str, reason: str):
        self.collection = collection
        self.reason = reason
        super().__init__(f"Failed to read {collection}: {reason}")


class RecordNotFoundError(StoreError):
    """No record with the given id exists in the collection."""

    code: str = "RECORD_NOT_FOUND"

    def __init__(self, collection: str, record_id: Any):
        self.collection = collection
        self.record_id = str(record_id)
        super().__init__(f"{collection} record not found: {record_id}")


# Partial failure


class PartialFailureError(KasError):
    """
    A multi-step command committed some steps and then failed.

    Not rolled back. ``written`` holds the records the completed steps
    produced so an operator can reconcile by hand.
    """

    code: str = "PARTIAL_FAILURE"

    def __init__(
        self,
        operation: str,
        completed_steps: Sequence[str],
        failed_step: str,
        reason: str,
        written: Sequence[Any] = (),
    ):
        self.operation = operation
        self.completed_steps = tuple(completed_steps)
        self.failed_step = failed_step
        self.reason = reason
        self.written = tuple(written)
        super().__init__(
            f"{operation} partially completed "
            f"(done: {', '.join(self.completed_steps)}; failed: {failed_step}): {reason}"
        )


# Load


class MirrorLoadError(KasError):
    """Initial bulk load failed; the mirror must not be presented."""

    code: str = "MIRROR_LOAD_FAILED"

    def __init__(self, collection: str, reason: str):
        self.collection = collection
        self.reason = reason
        super().__init__(f"Failed to load {collection}: {reason}")


# Ledger rules


class LedgerRuleError(KasError):
    """Base exception for payment/transaction linkage rules."""

    code: str = "LEDGER_RULE_ERROR"


class LinkedTransactionError(LedgerRuleError):
    """A payment-linked transaction cannot be deleted directly."""

    code: str = "LINKED_TRANSACTION"

    def __init__(self, transaction_id: Any, payment_id: Any):
        self.transaction_id = str(transaction_id)
        self.payment_id = str(payment_id)
        super().__init__(
            f"Transaction {transaction_id} is linked to payment {payment_id}; "
            "delete the owning student to remove it"
        )


class PaymentNotPendingError(LedgerRuleError):
    """Only pending payments can be approved or rejected."""

    code: str = "PAYMENT_NOT_PENDING"

    def __init__(self, payment_id: Any, status: str):
        self.payment_id = str(payment_id)
        self.status = status
        super().__init__(f"Payment {payment_id} is {status}, not pending")


class ImmutabilityViolationError(LedgerRuleError):
    """An update tried to change the frozen fields of a linked transaction."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, fields: Sequence[str]):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.fields = tuple(fields)
        super().__init__(
            f"Cannot modify {', '.join(self.fields)} on {entity_type} {entity_id}"
        )


# Auth


class AuthError(KasError):
    """Base exception for the admin session gate."""

    code: str = "AUTH_ERROR"


class NotAuthenticatedError(AuthError):
    """An admin-only command was called without an authenticated session."""

    code: str = "NOT_AUTHENTICATED"

    def __init__(self, command: str):
        self.command = command
        super().__init__(f"{command} requires an authenticated admin session")


class InvalidCredentialsError(AuthError):
    """Wrong username or password."""

    code: str = "INVALID_CREDENTIALS"

    def __init__(self, remaining_attempts: int):
        self.remaining_attempts = remaining_attempts
        super().__init__(
            f"Invalid credentials; {remaining_attempts} attempt(s) remaining"
        )


class AccountLockedError(AuthError):
    """Too many failed attempts; the gate is closed until the lockout ends."""

    code: str = "ACCOUNT_LOCKED"

    def __init__(self, remaining_seconds: int):
        self.remaining_seconds = remaining_seconds
        super().__init__(
            f"Too many failed attempts; try again in {remaining_seconds}s"
        )


# Export


class ExportError(KasError):
    """Base exception for spreadsheet export."""

    code: str = "EXPORT_ERROR"


class EmptyExportError(ExportError):
    """The selected month/kind has no transactions."""

    code: str = "EMPTY_EXPORT"

    def __init__(self, title: str, period: str):
        self.title = title
        self.period = period
        super().__init__(f"No '{title}' transactions in {period} to export")
