"""
kas_services.commands -- validated write commands for the cash fund.

Responsibility:
    Every change to students, payments and transactions goes through
    ``FundCommandService``.  Each command validates its input, checks the
    admin session where required, and issues the store writes in the order
    that keeps the payment/transaction link consistent.

Architecture position:
    Services -- orchestration over the kernel store and the ledger engine.
    Commands read current state from the store, never from the mirror; the
    mirror catches up through the change feed.

Invariants enforced:
    - A validated payment gets exactly one income transaction, built by
      ``derive_transaction_for_payment`` on both paths that validate one.
    - A linked transaction is never deleted directly, and only its
      description, fund and receipt URL are ever written.
    - Deleting a student deletes its linked transactions first; the store's
      cascade then removes its payments.
    - Admin commands need an authenticated AdminSession.

Failure modes:
    - ValidationError / UploadRejectedError: bad input, nothing written.
    - NotAuthenticatedError: admin command without a session.
    - RecordNotFoundError: the named student/payment/transaction is gone.
    - PaymentNotPendingError, LinkedTransactionError: ledger rules.
    - StoreWriteError: the first write failed, nothing was written.
    - PartialFailureError: an earlier write committed and a later one
      failed.  Not rolled back; the link checker reports the leftover.

Usage:
    commands = FundCommandService(store, storage, clock=clock)
    recorded = commands.add_validated_payment(
        session, student_id, periode_bulan="2024-07",
        tanggal=now, jumlah=100000, metode="Transfer Bank",
    )
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, Sequence
from uuid import UUID, uuid4

from kas_kernel.domain.clock import Clock, SystemClock
from kas_kernel.domain.records import (
    DUES_CATEGORY,
    LINKED_FROZEN_FIELDS,
    Collection,
    FundSource,
    Payment,
    PaymentStatus,
    Student,
    Transaction,
    TransactionDraft,
    TransactionType,
)
from kas_kernel.domain.session import AdminSession
from kas_kernel.domain.validation import FieldErrors
from kas_kernel.exceptions import (
    LinkedTransactionError,
    PartialFailureError,
    PaymentNotPendingError,
    RecordNotFoundError,
    StoreError,
    ValidationError,
)
from kas_kernel.logging_config import LogContext, get_logger
from kas_kernel.services.entity_store import EntityStore
from kas_kernel.services.object_storage import (
    MAX_UPLOAD_BYTES,
    PROOF_CONTENT_TYPES,
    RECEIPT_CONTENT_TYPES,
    ObjectStorage,
    validate_upload,
)
from kas_engines.ledger import derive_transaction_for_payment
from kas_services.auth_service import require_admin

logger = get_logger("services.commands")

DEFAULT_PAYMENT_METHOD = "Transfer Bank"
DEFAULT_DUES_AMOUNT = 100000


class ApprovalDecision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


@dataclass(frozen=True)
class RecordedPayment:
    """A payment and, when it is valid, its ledger transaction."""

    payment: Payment
    transaction: Transaction | None = None


@dataclass(frozen=True)
class DeleteStudentResult:
    student: Student
    payments_deleted: int
    transactions_deleted: int


@dataclass(frozen=True)
class RowError:
    """A bulk-import line that could not be parsed (1-based ``row``)."""

    row: int
    raw: str
    message: str


@dataclass(frozen=True)
class BulkImportResult:
    students: tuple[Student, ...]
    errors: tuple[RowError, ...]

    @property
    def committed(self) -> bool:
        return not self.errors and bool(self.students)


class FundCommandService:
    """
    Command boundary for the cash fund.

    Contract:
        Every method either completes, raises before writing anything, or
        raises PartialFailureError naming what was already written.
    """

    def __init__(
        self,
        store: EntityStore,
        storage: ObjectStorage,
        clock: Clock | None = None,
        dues_category: str = DUES_CATEGORY,
        default_dues_amount: int = DEFAULT_DUES_AMOUNT,
        default_payment_method: str = DEFAULT_PAYMENT_METHOD,
        max_upload_bytes: int = MAX_UPLOAD_BYTES,
        proof_content_types: tuple[str, ...] = PROOF_CONTENT_TYPES,
        receipt_content_types: tuple[str, ...] = RECEIPT_CONTENT_TYPES,
    ):
        self._store = store
        self._storage = storage
        self._clock = clock or SystemClock()
        self._dues_category = dues_category
        self._default_dues_amount = default_dues_amount
        self._default_payment_method = default_payment_method
        self._max_upload_bytes = max_upload_bytes
        self._proof_content_types = proof_content_types
        self._receipt_content_types = receipt_content_types

    @classmethod
    def from_config(cls, config, store: EntityStore, storage: ObjectStorage, clock: Clock | None = None):
        return cls(
            store,
            storage,
            clock=clock,
            dues_category=config.ledger.dues_category,
            default_dues_amount=config.ledger.default_dues_amount,
            default_payment_method=config.ledger.default_payment_method,
            max_upload_bytes=config.uploads.max_bytes,
            proof_content_types=config.uploads.proof_content_types,
            receipt_content_types=config.uploads.receipt_content_types,
        )

    # -- students -------------------------------------------------------------

    def add_student(self, admin: AdminSession, nim: str, name: str, angkatan: str) -> Student:
        username = require_admin(admin, "add_student")
        with self._context("add_student", username):
            errors = FieldErrors()
            nim = errors.required_text("nim", nim)
            name = errors.required_text("name", name)
            angkatan = errors.required_text("angkatan", angkatan)
            errors.raise_if_any()

            if self._store.select(Collection.STUDENTS, {"nim": nim}):
                raise ValidationError.single("nim", f"{nim} is already registered")

            student = self._store.insert(
                Collection.STUDENTS, [{"nim": nim, "name": name, "angkatan": angkatan}]
            )[0]
            logger.info("student_added", extra={"student_id": str(student.id), "nim": nim})
            return student

    def update_student(
        self,
        admin: AdminSession,
        student_id: UUID,
        nim: str,
        name: str,
        angkatan: str,
    ) -> Student:
        username = require_admin(admin, "update_student")
        with self._context("update_student", username):
            errors = FieldErrors()
            nim = errors.required_text("nim", nim)
            name = errors.required_text("name", name)
            angkatan = errors.required_text("angkatan", angkatan)
            errors.raise_if_any()

            self._get(Collection.STUDENTS, student_id)
            clash = [s for s in self._store.select(Collection.STUDENTS, {"nim": nim}) if s.id != student_id]
            if clash:
                raise ValidationError.single("nim", f"{nim} is already registered")

            student = self._store.update(
                Collection.STUDENTS, student_id, {"nim": nim, "name": name, "angkatan": angkatan}
            )
            logger.info("student_updated", extra={"student_id": str(student_id)})
            return student

    def delete_student(self, admin: AdminSession, student_id: UUID) -> DeleteStudentResult:
        """
        Delete a student, its payments and their linked transactions.

        Linked transactions go first: the store only sets their
        ``ref_payment`` to NULL when a payment disappears, which would leave
        unlinked income behind.
        """
        username = require_admin(admin, "delete_student")
        with self._context("delete_student", username):
            student = self._get(Collection.STUDENTS, student_id)
            payments = self._store.select(Collection.PAYMENTS, {"student_id": student_id})
            payment_ids = [p.id for p in payments]

            transactions_deleted = 0
            if payment_ids:
                transactions_deleted = self._store.delete(
                    Collection.TRANSACTIONS, {"ref_payment": payment_ids}
                )

            try:
                self._store.delete(Collection.STUDENTS, {"id": student_id})
            except StoreError as exc:
                if transactions_deleted:
                    raise self._partial(
                        "delete_student",
                        completed=["linked_transactions_deleted"],
                        failed="student_delete",
                        exc=exc,
                    ) from exc
                raise

            logger.info(
                "student_deleted",
                extra={
                    "student_id": str(student_id),
                    "payments_deleted": len(payments),
                    "transactions_deleted": transactions_deleted,
                },
            )
            return DeleteStudentResult(
                student=student,
                payments_deleted=len(payments),
                transactions_deleted=transactions_deleted,
            )

    def bulk_import_students(
        self,
        admin: AdminSession,
        raw_rows: Iterable[str] | str,
    ) -> BulkImportResult:
        """
        Import ``NIM,Name,Angkatan`` lines.

        Blank lines are skipped (but still counted for row numbers).  The
        batch is written in one insert, and only when no line has an error.
        """
        username = require_admin(admin, "bulk_import_students")
        if isinstance(raw_rows, str):
            raw_rows = raw_rows.splitlines()

        with self._context("bulk_import_students", username):
            parsed: list[tuple[int, dict[str, str]]] = []
            errors: list[RowError] = []

            for row_number, raw in enumerate(raw_rows, start=1):
                if not raw.strip():
                    continue
                parts = [p.strip() for p in raw.split(",")]
                if len(parts) != 3:
                    errors.append(RowError(row_number, raw, "expected NIM,Name,Angkatan"))
                    continue
                nim, name, angkatan = parts
                if not (nim and name and angkatan):
                    errors.append(RowError(row_number, raw, "NIM, name and angkatan must not be empty"))
                    continue
                parsed.append((row_number, {"nim": nim, "name": name, "angkatan": angkatan}))

            errors.extend(self._duplicate_nim_errors(parsed))

            if errors:
                errors.sort(key=lambda e: e.row)
                logger.warning(
                    "bulk_import_rejected",
                    extra={"error_count": len(errors), "rows": [e.row for e in errors]},
                )
                return BulkImportResult(students=(), errors=tuple(errors))

            if not parsed:
                raise ValidationError.single("rows", "no students to import")

            students = self._store.insert(Collection.STUDENTS, [row for _, row in parsed])
            logger.info("bulk_import_committed", extra={"count": len(students)})
            return BulkImportResult(students=tuple(students), errors=())

    def _duplicate_nim_errors(self, parsed: Sequence[tuple[int, dict[str, str]]]) -> list[RowError]:
        errors = []
        seen: dict[str, int] = {}
        for row_number, row in parsed:
            first = seen.setdefault(row["nim"], row_number)
            if first != row_number:
                errors.append(RowError(row_number, row["nim"], f"NIM repeats row {first}"))

        if seen:
            existing = {s.nim for s in self._store.select(Collection.STUDENTS, {"nim": list(seen)})}
            for row_number, row in parsed:
                if row["nim"] in existing:
                    errors.append(RowError(row_number, row["nim"], "NIM is already registered"))
        return errors

    # -- payments -------------------------------------------------------------

    def add_validated_payment(
        self,
        admin: AdminSession,
        student_id: UUID,
        periode_bulan: Any,
        tanggal: Any,
        jumlah: Any = None,
        metode: str | None = None,
    ) -> RecordedPayment:
        """
        Record a payment the admin received directly, already valid.

        ``jumlah=None`` records the configured monthly dues amount.
        """
        username = require_admin(admin, "add_validated_payment")
        with self._context("add_validated_payment", username):
            errors = FieldErrors()
            periode = errors.period_month("periode_bulan", periode_bulan)
            paid_at = errors.timestamp("tanggal", tanggal)
            amount = errors.positive_amount("jumlah", self._dues_amount(jumlah))
            method = errors.optional_text("metode", metode) or self._default_payment_method
            errors.raise_if_any()

            student = self._get(Collection.STUDENTS, student_id)
            payment = self._store.insert(
                Collection.PAYMENTS,
                [{
                    "student_id": student.id,
                    "periode_bulan": periode,
                    "tanggal": paid_at,
                    "jumlah": amount,
                    "metode": method,
                    "bukti_url": "",
                    "status": PaymentStatus.VALID,
                    "verified_by": username,
                }],
            )[0]

            transaction = self._write_derived_transaction(
                "add_validated_payment", payment, student, username, completed=["payment_inserted"]
            )
            logger.info(
                "payment_recorded",
                extra={
                    "payment_id": str(payment.id),
                    "transaction_id": str(transaction.id),
                    "jumlah": amount,
                },
            )
            return RecordedPayment(payment=payment, transaction=transaction)

    def approve_pending_payment(
        self,
        admin: AdminSession,
        payment_id: UUID,
        decision: ApprovalDecision,
    ) -> RecordedPayment:
        username = require_admin(admin, "approve_pending_payment")
        decision = ApprovalDecision(decision)
        with self._context("approve_pending_payment", username):
            payment = self._get(Collection.PAYMENTS, payment_id)
            if payment.status != PaymentStatus.PENDING:
                raise PaymentNotPendingError(payment_id, payment.status.value)

            if decision == ApprovalDecision.REJECT:
                rejected = self._store.update(
                    Collection.PAYMENTS, payment_id, {"status": PaymentStatus.REJECTED}
                )
                logger.info("payment_rejected", extra={"payment_id": str(payment_id)})
                return RecordedPayment(payment=rejected)

            student = self._get(Collection.STUDENTS, payment.student_id)
            validated = self._store.update(
                Collection.PAYMENTS,
                payment_id,
                {"status": PaymentStatus.VALID, "verified_by": username},
            )
            transaction = self._write_derived_transaction(
                "approve_pending_payment", validated, student, username, completed=["payment_validated"]
            )
            logger.info(
                "payment_approved",
                extra={"payment_id": str(payment_id), "transaction_id": str(transaction.id)},
            )
            return RecordedPayment(payment=validated, transaction=transaction)

    def submit_payment(
        self,
        student_id: UUID,
        periode_bulan: Any,
        jumlah: Any,
        metode: str | None,
        proof: bytes,
        content_type: str,
        filename: str,
    ) -> Payment:
        """
        Public submission: store the proof image and create a Pending payment.

        No admin session is needed.  ``tanggal`` is the submission time.
        ``jumlah=None`` means the configured monthly dues amount.
        """
        with self._context("submit_payment", None):
            errors = FieldErrors()
            periode = errors.period_month("periode_bulan", periode_bulan)
            amount = errors.positive_amount("jumlah", self._dues_amount(jumlah))
            method = errors.optional_text("metode", metode) or self._default_payment_method
            errors.raise_if_any()

            validate_upload(
                proof,
                content_type,
                self._proof_content_types,
                self._max_upload_bytes,
                field="bukti",
            )
            student = self._get(Collection.STUDENTS, student_id)

            bukti_url = self._storage.upload(proof, content_type, filename, folder="proofs")
            try:
                payment = self._store.insert(
                    Collection.PAYMENTS,
                    [{
                        "student_id": student.id,
                        "periode_bulan": periode,
                        "tanggal": self._clock.now(),
                        "jumlah": amount,
                        "metode": method,
                        "bukti_url": bukti_url,
                        "status": PaymentStatus.PENDING,
                        "verified_by": None,
                    }],
                )[0]
            except StoreError:
                logger.warning("proof_upload_orphaned", extra={"bukti_url": bukti_url})
                raise

            logger.info(
                "payment_submitted",
                extra={"payment_id": str(payment.id), "student_id": str(student.id)},
            )
            return payment

    # -- transactions ---------------------------------------------------------

    def add_income(self, admin: AdminSession, **fields: Any) -> Transaction:
        return self._add_manual(admin, "add_income", TransactionType.INCOME, **fields)

    def add_expense(self, admin: AdminSession, **fields: Any) -> Transaction:
        return self._add_manual(admin, "add_expense", TransactionType.EXPENSE, **fields)

    def _add_manual(
        self,
        admin: AdminSession,
        command: str,
        tipe: TransactionType,
        tanggal: Any = None,
        kategori: Any = None,
        deskripsi: Any = None,
        jumlah: Any = None,
        sumber_dana: Any = FundSource.GENERAL_CASH,
        nota_url: str | None = None,
    ) -> Transaction:
        username = require_admin(admin, command)
        with self._context(command, username):
            errors = FieldErrors()
            draft_fields = {
                "tanggal": errors.timestamp("tanggal", tanggal),
                "kategori": errors.required_text("kategori", kategori),
                "deskripsi": errors.required_text("deskripsi", deskripsi),
                "jumlah": errors.positive_amount("jumlah", jumlah),
                "sumber_dana": errors.fund_source("sumber_dana", sumber_dana),
            }
            errors.raise_if_any()

            draft = TransactionDraft(
                tipe=tipe,
                nota_url=errors.optional_text("nota_url", nota_url),
                created_by=username,
                **draft_fields,
            )
            transaction = self._store.insert(Collection.TRANSACTIONS, [draft.as_row()])[0]
            logger.info(
                "transaction_added",
                extra={
                    "transaction_id": str(transaction.id),
                    "tipe": tipe.value,
                    "jumlah": transaction.jumlah,
                },
            )
            return transaction

    def update_transaction(self, admin: AdminSession, transaction: Transaction) -> Transaction:
        """
        Write the editable fields of ``transaction``.

        On a linked transaction only description, fund and receipt URL are
        written; changes to the other fields are dropped.
        """
        username = require_admin(admin, "update_transaction")
        with self._context("update_transaction", username):
            current = self._get(Collection.TRANSACTIONS, transaction.id)

            errors = FieldErrors()
            patch: dict[str, Any] = {
                "deskripsi": errors.required_text("deskripsi", transaction.deskripsi),
                "sumber_dana": errors.fund_source("sumber_dana", transaction.sumber_dana),
                "nota_url": errors.optional_text("nota_url", transaction.nota_url),
            }

            if current.is_linked:
                ignored = [
                    name for name in LINKED_FROZEN_FIELDS
                    if getattr(transaction, name) != getattr(current, name)
                ]
                if ignored:
                    logger.info(
                        "linked_fields_ignored",
                        extra={"transaction_id": str(current.id), "fields": ignored},
                    )
            else:
                patch.update({
                    "tanggal": errors.timestamp("tanggal", transaction.tanggal),
                    "tipe": errors.transaction_type("tipe", transaction.tipe),
                    "kategori": errors.required_text("kategori", transaction.kategori),
                    "jumlah": errors.positive_amount("jumlah", transaction.jumlah),
                })
            errors.raise_if_any()

            updated = self._store.update(Collection.TRANSACTIONS, current.id, patch)
            logger.info(
                "transaction_updated",
                extra={"transaction_id": str(current.id), "fields": sorted(patch)},
            )
            return updated

    def delete_transaction(
        self,
        admin: AdminSession,
        transaction: Transaction,
        confirm: Callable[[Transaction], bool] | None = None,
    ) -> bool:
        """
        Delete an unlinked transaction.

        Returns False, without writing, when ``confirm`` declines.
        """
        username = require_admin(admin, "delete_transaction")
        with self._context("delete_transaction", username):
            current = self._get(Collection.TRANSACTIONS, transaction.id)
            if current.is_linked:
                logger.warning(
                    "linked_transaction_delete_refused",
                    extra={"transaction_id": str(current.id)},
                )
                raise LinkedTransactionError(current.id, current.ref_payment)

            if confirm is not None and not confirm(current):
                logger.info("transaction_delete_cancelled", extra={"transaction_id": str(current.id)})
                return False

            self._store.delete(Collection.TRANSACTIONS, {"id": current.id})
            logger.info("transaction_deleted", extra={"transaction_id": str(current.id)})
            return True

    def upload_receipt(
        self,
        admin: AdminSession,
        data: bytes,
        content_type: str,
        filename: str,
    ) -> str:
        """Store a receipt (image or PDF) and return its public URL for ``nota_url``."""
        username = require_admin(admin, "upload_receipt")
        with self._context("upload_receipt", username):
            validate_upload(
                data,
                content_type,
                self._receipt_content_types,
                self._max_upload_bytes,
                field="nota",
            )
            return self._storage.upload(data, content_type, filename, folder="receipts")

    # -- helpers --------------------------------------------------------------

    def _context(self, command: str, username: str | None):
        return LogContext.bind(
            correlation_id=str(uuid4()),
            actor_id=username,
            command=command,
        )

    def _dues_amount(self, jumlah: Any) -> Any:
        return self._default_dues_amount if jumlah is None else jumlah

    def _get(self, collection: Collection, record_id: UUID):
        rows = self._store.select(collection, {"id": record_id})
        if not rows:
            raise RecordNotFoundError(collection.value, record_id)
        return rows[0]

    def _write_derived_transaction(
        self,
        operation: str,
        payment: Payment,
        student: Student,
        username: str,
        completed: list[str],
    ) -> Transaction:
        draft = derive_transaction_for_payment(
            payment, student, created_by=username, category=self._dues_category
        )
        try:
            return self._store.insert(Collection.TRANSACTIONS, [draft.as_row()])[0]
        except StoreError as exc:
            raise self._partial(
                operation,
                completed=completed,
                failed="transaction_insert",
                exc=exc,
                written=[payment],
            ) from exc

    def _partial(
        self,
        operation: str,
        completed: list[str],
        failed: str,
        exc: Exception,
        written: Sequence[Any] = (),
    ) -> PartialFailureError:
        logger.error(
            "partial_failure",
            extra={
                "operation": operation,
                "completed_steps": completed,
                "failed_step": failed,
                "reason": str(exc),
            },
        )
        return PartialFailureError(
            operation,
            completed_steps=completed,
            failed_step=failed,
            reason=str(exc),
            written=written,
        )
