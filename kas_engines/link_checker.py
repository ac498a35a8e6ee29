"""
Payment/transaction link consistency checker.

Pure audit over the mirror's payments and transactions.  A validated
payment must have exactly one income transaction pointing at it, carrying
the same amount and date; pending and rejected payments must have none.
A command that stops half way (see PartialFailureError) leaves one of these
findings behind for an operator to reconcile.

Architecture: kas_engines -- pure calculation, zero I/O.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable
from uuid import UUID

from kas_kernel.domain.clock import ensure_aware
from kas_kernel.domain.records import Payment, PaymentStatus, Transaction
from kas_kernel.logging_config import get_logger
from kas_engines.tracer import traced_engine

logger = get_logger("engines.link_checker")


class FindingSeverity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class LinkFinding:
    """One inconsistency between a payment and its ledger transaction(s)."""

    code: str
    severity: FindingSeverity
    message: str
    payment_id: UUID | None = None
    transaction_ids: tuple[UUID, ...] = ()
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class LinkCheckResult:
    findings: tuple[LinkFinding, ...]
    payments_checked: int
    transactions_checked: int

    @property
    def is_consistent(self) -> bool:
        return not self.findings

    @property
    def errors(self) -> tuple[LinkFinding, ...]:
        return tuple(f for f in self.findings if f.severity == FindingSeverity.ERROR)

    def codes(self) -> tuple[str, ...]:
        return tuple(f.code for f in self.findings)


@traced_engine("link_checker", "1.0")
def check_payment_links(
    payments: Iterable[Payment],
    transactions: Iterable[Transaction],
) -> LinkCheckResult:
    payments = list(payments)
    transactions = list(transactions)
    payments_by_id = {p.id: p for p in payments}

    linked: dict[UUID, list[Transaction]] = defaultdict(list)
    for t in transactions:
        if t.ref_payment is not None:
            linked[t.ref_payment].append(t)

    findings: list[LinkFinding] = []

    for payment in payments:
        refs = linked.get(payment.id, [])
        ref_ids = tuple(t.id for t in refs)

        if payment.status != PaymentStatus.VALID:
            if refs:
                findings.append(LinkFinding(
                    code="UNVALIDATED_PAYMENT_HAS_TRANSACTION",
                    severity=FindingSeverity.ERROR,
                    message=f"Payment {payment.id} is {payment.status.value} but has a ledger transaction",
                    payment_id=payment.id,
                    transaction_ids=ref_ids,
                ))
            continue

        if not refs:
            findings.append(LinkFinding(
                code="VALID_PAYMENT_MISSING_TRANSACTION",
                severity=FindingSeverity.ERROR,
                message=f"Valid payment {payment.id} has no ledger transaction",
                payment_id=payment.id,
                details={"jumlah": payment.jumlah},
            ))
            continue

        if len(refs) > 1:
            findings.append(LinkFinding(
                code="DUPLICATE_LINKED_TRANSACTION",
                severity=FindingSeverity.ERROR,
                message=f"Payment {payment.id} has {len(refs)} ledger transactions",
                payment_id=payment.id,
                transaction_ids=ref_ids,
            ))

        for t in refs:
            if t.jumlah != payment.jumlah:
                findings.append(LinkFinding(
                    code="LINKED_AMOUNT_MISMATCH",
                    severity=FindingSeverity.ERROR,
                    message=(
                        f"Transaction {t.id} records {t.jumlah}, "
                        f"payment {payment.id} is {payment.jumlah}"
                    ),
                    payment_id=payment.id,
                    transaction_ids=(t.id,),
                    details={"transaction_jumlah": t.jumlah, "payment_jumlah": payment.jumlah},
                ))
            if ensure_aware(t.tanggal) != ensure_aware(payment.tanggal):
                findings.append(LinkFinding(
                    code="LINKED_DATE_MISMATCH",
                    severity=FindingSeverity.WARNING,
                    message=f"Transaction {t.id} is dated differently from payment {payment.id}",
                    payment_id=payment.id,
                    transaction_ids=(t.id,),
                    details={
                        "transaction_tanggal": t.tanggal.isoformat(),
                        "payment_tanggal": payment.tanggal.isoformat(),
                    },
                ))

    for payment_id, refs in linked.items():
        if payment_id not in payments_by_id:
            findings.append(LinkFinding(
                code="ORPHANED_LINKED_TRANSACTION",
                severity=FindingSeverity.ERROR,
                message=f"Transaction(s) reference missing payment {payment_id}",
                payment_id=payment_id,
                transaction_ids=tuple(t.id for t in refs),
            ))

    result = LinkCheckResult(
        findings=tuple(findings),
        payments_checked=len(payments),
        transactions_checked=len(transactions),
    )
    if findings:
        logger.warning(
            "link_check_findings",
            extra={"finding_count": len(findings), "codes": sorted(set(result.codes()))},
        )
    return result
