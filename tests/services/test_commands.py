"""
Tests for FundCommandService.

Covers both validation paths (direct record, approve pending), the
linked-transaction rules, student deletion order, bulk import, public
submission and partial-failure reporting.
"""

from dataclasses import replace
from datetime import date, datetime, timezone
from uuid import uuid4

import pytest

from kas_config import get_active_config
from kas_kernel.domain.records import (
    DUES_CATEGORY,
    Collection,
    FundSource,
    PaymentStatus,
    TransactionType,
)
from kas_kernel.exceptions import (
    LinkedTransactionError,
    NotAuthenticatedError,
    PartialFailureError,
    PaymentNotPendingError,
    RecordNotFoundError,
    StoreWriteError,
    UploadRejectedError,
    ValidationError,
)
from kas_engines.link_checker import check_payment_links
from kas_services.commands import ApprovalDecision, FundCommandService
from tests.conftest import TEST_NOW

PAID_AT = datetime(2024, 7, 1, 2, 5, tzinfo=timezone.utc)
PNG = b"\x89PNG\r\n\x1a\n" + b"0" * 64


class FailingTransactionStore:
    """Delegates to a real store but refuses transaction inserts."""

    def __init__(self, store):
        self._store = store

    def insert(self, collection, rows):
        if collection == Collection.TRANSACTIONS:
            raise StoreWriteError("insert", collection.value, "connection lost")
        return self._store.insert(collection, rows)

    def __getattr__(self, name):
        return getattr(self._store, name)


class TestStudents:
    def test_add_student(self, commands, admin, store):
        student = commands.add_student(admin, " 19001 ", "Budi Santoso", "PKU 19")

        assert student.nim == "19001"
        assert store.select_all(Collection.STUDENTS) == [student]

    def test_duplicate_nim_rejected(self, add_student, commands, admin):
        add_student(nim="19001")
        with pytest.raises(ValidationError) as exc_info:
            commands.add_student(admin, "19001", "Someone Else", "PKU 19")
        assert exc_info.value.fields == ("nim",)

    def test_missing_fields_reported_together(self, commands, admin):
        with pytest.raises(ValidationError) as exc_info:
            commands.add_student(admin, "", " ", "PKU 19")
        assert exc_info.value.fields == ("nim", "name")

    def test_update_student(self, add_student, commands, admin):
        student = add_student()
        updated = commands.update_student(admin, student.id, "19001", "Budi S.", "PKU 19")
        assert updated.name == "Budi S."

    def test_update_student_nim_clash(self, add_student, commands, admin):
        add_student(nim="19001")
        other = add_student(nim="19002", name="Citra")
        with pytest.raises(ValidationError):
            commands.update_student(admin, other.id, "19001", "Citra", "PKU 19")

    def test_delete_student_removes_payments_and_linked_transactions(
        self, add_student, commands, admin, store
    ):
        student = add_student()
        commands.add_validated_payment(admin, student.id, "2024-07", PAID_AT, 100000)
        commands.add_validated_payment(admin, student.id, "2024-08", PAID_AT, 100000)
        manual = commands.add_expense(
            admin, tanggal=PAID_AT, kategori="Konsumsi", deskripsi="Snack", jumlah=30000
        )

        result = commands.delete_student(admin, student.id)

        assert (result.payments_deleted, result.transactions_deleted) == (2, 2)
        assert store.select_all(Collection.STUDENTS) == []
        assert store.select_all(Collection.PAYMENTS) == []
        assert store.select_all(Collection.TRANSACTIONS) == [manual]

    def test_delete_student_with_valid_and_pending_payments(
        self, add_student, commands, admin, mirror
    ):
        student = add_student()
        commands.add_validated_payment(admin, student.id, "2024-07", PAID_AT, 100000)
        commands.submit_payment(student.id, "2024-08", 100000, None, PNG, "image/png", "b.png")
        assert mirror.balances().general_cash_balance == 100000

        result = commands.delete_student(admin, student.id)

        assert (result.payments_deleted, result.transactions_deleted) == (2, 1)
        assert mirror.students() == []
        assert mirror.payments() == []
        assert mirror.transactions() == []
        assert mirror.balances().net_balance == 0

    def test_delete_missing_student(self, commands, admin):
        with pytest.raises(RecordNotFoundError):
            commands.delete_student(admin, uuid4())


class TestBulkImport:
    def test_any_bad_row_commits_nothing(self, commands, admin, store):
        result = commands.bulk_import_students(
            admin, ["19001,Budi,PKU19", "bad-row", "19002,Citra,PKU19"]
        )

        assert not result.committed
        assert [(e.row, e.raw) for e in result.errors] == [(2, "bad-row")]
        assert store.select_all(Collection.STUDENTS) == []

    def test_clean_batch_committed(self, commands, admin):
        text = "19001, Budi, PKU19\n\n19002,Citra,PKU19\n"
        result = commands.bulk_import_students(admin, text)

        assert result.committed
        assert [s.nim for s in result.students] == ["19001", "19002"]

    def test_duplicate_and_existing_nims(self, add_student, commands, admin):
        add_student(nim="19003")
        result = commands.bulk_import_students(
            admin, ["19001,A,PKU19", "19001,B,PKU19", "19003,C,PKU19"]
        )
        assert [e.row for e in result.errors] == [2, 3]

    def test_empty_field(self, commands, admin):
        result = commands.bulk_import_students(admin, ["19001,,PKU19"])
        assert result.errors[0].row == 1

    def test_empty_input_rejected(self, commands, admin):
        with pytest.raises(ValidationError):
            commands.bulk_import_students(admin, ["", "   "])


class TestValidatedPayments:
    def test_add_validated_payment_writes_linked_income(self, add_student, commands, admin):
        student = add_student()

        recorded = commands.add_validated_payment(admin, student.id, "2024-07", PAID_AT, "100000")

        payment, transaction = recorded.payment, recorded.transaction
        assert payment.status is PaymentStatus.VALID
        assert payment.verified_by == admin.username
        assert payment.periode_bulan == date(2024, 7, 1)
        assert payment.metode == "Transfer Bank"
        assert transaction.ref_payment == payment.id
        assert transaction.jumlah == 100000
        assert transaction.kategori == DUES_CATEGORY
        assert transaction.sumber_dana is FundSource.GENERAL_CASH
        assert transaction.tipe is TransactionType.INCOME
        assert transaction.tanggal == PAID_AT

    def test_approve_pending_payment(self, add_student, commands, admin, store):
        student = add_student()
        pending = commands.submit_payment(student.id, "2024-07", 100000, None, PNG, "image/png", "bukti.png")

        recorded = commands.approve_pending_payment(admin, pending.id, ApprovalDecision.APPROVE)

        assert recorded.payment.status is PaymentStatus.VALID
        assert recorded.payment.verified_by == "pku19"
        assert recorded.transaction.jumlah == 100000
        assert recorded.transaction.kategori == "Mandatory Dues"
        assert recorded.transaction.sumber_dana is FundSource.GENERAL_CASH
        result = check_payment_links(
            store.select_all(Collection.PAYMENTS), store.select_all(Collection.TRANSACTIONS)
        )
        assert result.is_consistent

    def test_reject_writes_no_transaction(self, add_student, commands, admin, store):
        student = add_student()
        pending = commands.submit_payment(student.id, "2024-07", 100000, None, PNG, "image/png", "bukti.png")

        recorded = commands.approve_pending_payment(admin, pending.id, "reject")

        assert recorded.payment.status is PaymentStatus.REJECTED
        assert recorded.transaction is None
        assert store.select_all(Collection.TRANSACTIONS) == []

    def test_decided_payment_cannot_be_approved_again(self, add_student, commands, admin):
        student = add_student()
        pending = commands.submit_payment(student.id, "2024-07", 100000, None, PNG, "image/png", "bukti.png")
        commands.approve_pending_payment(admin, pending.id, ApprovalDecision.APPROVE)

        with pytest.raises(PaymentNotPendingError):
            commands.approve_pending_payment(admin, pending.id, ApprovalDecision.APPROVE)

    def test_transaction_failure_is_partial(self, add_student, admin, store, storage, deterministic_clock, captured_logs):
        student = add_student()
        commands = FundCommandService(FailingTransactionStore(store), storage, clock=deterministic_clock)

        with pytest.raises(PartialFailureError) as exc_info:
            commands.add_validated_payment(admin, student.id, "2024-07", PAID_AT, 100000)

        error = exc_info.value
        assert error.completed_steps == ("payment_inserted",)
        assert error.failed_step == "transaction_insert"
        assert error.written[0].status is PaymentStatus.VALID
        # The payment stays; the link checker reports the gap
        result = check_payment_links(
            store.select_all(Collection.PAYMENTS), store.select_all(Collection.TRANSACTIONS)
        )
        assert result.codes() == ("VALID_PAYMENT_MISSING_TRANSACTION",)
        assert any(r["message"] == "partial_failure" for r in captured_logs())

    def test_invalid_amount_writes_nothing(self, add_student, commands, admin, store):
        student = add_student()
        with pytest.raises(ValidationError):
            commands.add_validated_payment(admin, student.id, "2024-07", PAID_AT, 0)
        assert store.select_all(Collection.PAYMENTS) == []

    def test_missing_amount_uses_configured_dues(self, add_student, admin, store, storage, deterministic_clock):
        config = get_active_config(environ={})
        config = replace(config, ledger=replace(config.ledger, default_dues_amount=150000))
        commands = FundCommandService.from_config(config, store, storage, clock=deterministic_clock)
        student = add_student()

        recorded = commands.add_validated_payment(admin, student.id, "2024-07", PAID_AT)
        pending = commands.submit_payment(student.id, "2024-08", None, None, PNG, "image/png", "b.png")

        assert recorded.payment.jumlah == 150000
        assert recorded.transaction.jumlah == 150000
        assert pending.jumlah == 150000

    def test_explicit_amount_overrides_default(self, add_student, commands, admin):
        student = add_student()
        recorded = commands.add_validated_payment(admin, student.id, "2024-07", PAID_AT, 75000)
        assert recorded.payment.jumlah == 75000


class TestSubmitPayment:
    def test_public_submission_is_pending_with_proof(self, add_student, commands, store, storage):
        student = add_student()

        payment = commands.submit_payment(
            student.id, "2024-07", 100000, "Transfer BSI", PNG, "image/png", "bukti transfer.png"
        )

        assert payment.status is PaymentStatus.PENDING
        assert payment.verified_by is None
        assert payment.tanggal == TEST_NOW
        assert payment.metode == "Transfer BSI"
        assert payment.bukti_url.startswith("https://files.example.test/kas/proofs/")
        key = payment.bukti_url.removeprefix(storage.public_base_url + "/")
        assert (storage.root_dir / key).read_bytes() == PNG
        assert store.select_all(Collection.TRANSACTIONS) == []

    def test_non_image_proof_rejected(self, add_student, commands, store):
        student = add_student()
        with pytest.raises(UploadRejectedError):
            commands.submit_payment(student.id, "2024-07", 100000, None, b"%PDF-1.4", "application/pdf", "bukti.pdf")
        assert store.select_all(Collection.PAYMENTS) == []

    def test_unknown_student(self, commands):
        with pytest.raises(RecordNotFoundError):
            commands.submit_payment(uuid4(), "2024-07", 100000, None, PNG, "image/png", "bukti.png")


class TestManualTransactions:
    def test_add_income_and_expense(self, commands, admin):
        t_in = commands.add_income(
            admin,
            tanggal=PAID_AT,
            kategori="Infak",
            deskripsi="Infak Jumat",
            jumlah=50000,
            sumber_dana="donation_fund",
        )
        t_out = commands.add_expense(
            admin, tanggal=PAID_AT, kategori="Konsumsi", deskripsi="Snack", jumlah=20000
        )

        assert t_in.tipe is TransactionType.INCOME
        assert t_in.sumber_dana is FundSource.DONATION_FUND
        assert t_out.tipe is TransactionType.EXPENSE
        assert t_out.sumber_dana is FundSource.GENERAL_CASH
        assert t_out.created_by == "pku19"
        assert t_out.ref_payment is None

    def test_admin_required(self, commands, anonymous):
        with pytest.raises(NotAuthenticatedError) as exc_info:
            commands.add_expense(anonymous, tanggal=PAID_AT, kategori="K", deskripsi="D", jumlah=1)
        assert exc_info.value.command == "add_expense"

    def test_update_unlinked_transaction(self, commands, admin):
        t = commands.add_expense(admin, tanggal=PAID_AT, kategori="Konsumsi", deskripsi="Snack", jumlah=20000)

        updated = commands.update_transaction(admin, replace(t, jumlah=25000, kategori="Rapat"))

        assert (updated.jumlah, updated.kategori) == (25000, "Rapat")

    def test_linked_update_keeps_frozen_fields(self, add_student, commands, admin, captured_logs):
        student = add_student()
        linked = commands.add_validated_payment(admin, student.id, "2024-07", PAID_AT, 100000).transaction

        edited = replace(linked, jumlah=1, kategori="Lain", deskripsi="Iuran Juli (transfer)")
        updated = commands.update_transaction(admin, edited)

        assert updated.jumlah == 100000
        assert updated.kategori == DUES_CATEGORY
        assert updated.deskripsi == "Iuran Juli (transfer)"
        ignored = next(r for r in captured_logs() if r["message"] == "linked_fields_ignored")
        assert ignored["fields"] == ["kategori", "jumlah"]

    def test_linked_delete_refused(self, add_student, commands, admin, store):
        student = add_student()
        linked = commands.add_validated_payment(admin, student.id, "2024-07", PAID_AT, 100000).transaction

        with pytest.raises(LinkedTransactionError):
            commands.delete_transaction(admin, linked)

        assert store.select(Collection.TRANSACTIONS, {"id": linked.id}) == [linked]

    def test_delete_cancelled_by_confirm(self, commands, admin, store):
        t = commands.add_expense(admin, tanggal=PAID_AT, kategori="K", deskripsi="D", jumlah=1000)
        asked = []

        def decline(transaction):
            asked.append(transaction.id)
            return False

        assert commands.delete_transaction(admin, t, confirm=decline) is False
        assert asked == [t.id]
        assert len(store.select_all(Collection.TRANSACTIONS)) == 1

    def test_delete_unlinked(self, commands, admin, store):
        t = commands.add_expense(admin, tanggal=PAID_AT, kategori="K", deskripsi="D", jumlah=1000)
        assert commands.delete_transaction(admin, t, confirm=lambda _: True) is True
        assert store.select_all(Collection.TRANSACTIONS) == []


class TestUploadReceipt:
    def test_pdf_receipt_accepted(self, commands, admin):
        url = commands.upload_receipt(admin, b"%PDF-1.4 nota", "application/pdf", "nota.pdf")
        assert "/receipts/" in url
        assert url.endswith("_nota.pdf")

    def test_oversize_receipt_rejected(self, store, storage, deterministic_clock, admin):
        commands = FundCommandService(store, storage, clock=deterministic_clock, max_upload_bytes=10)
        with pytest.raises(UploadRejectedError):
            commands.upload_receipt(admin, b"x" * 11, "image/jpeg", "nota.jpg")
