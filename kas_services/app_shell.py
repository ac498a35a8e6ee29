"""
FundApplication -- wires configuration, store, mirror, commands and the
admin gate into one object with a start/stop lifecycle.

Responsibility:
    Own the single long-lived change-feed subscription (through the mirror)
    and the current ``AdminSession``.  Read views are computed from the
    mirror; writes go through ``commands`` with ``self.session``.

Usage:
    config = get_active_config()
    with FundApplication(config) as app:
        app.login("pku19", password)
        app.commands.add_income(app.session, ...)
        app.dashboard().balances
"""

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from kas_config import FundConfig
from kas_kernel.db.engine import build_engine, create_tables
from kas_kernel.domain.clock import Clock, SystemClock, reporting_tz
from kas_kernel.domain.records import Transaction, TransactionType
from kas_kernel.domain.session import AdminSession
from kas_kernel.logging_config import configure_logging, get_logger
from kas_kernel.services.entity_store import SqlEntityStore
from kas_kernel.services.object_storage import LocalObjectStorage
from kas_engines.export import ExportKind
from kas_engines.ledger import (
    FundBalances,
    MonthlyFlow,
    ReportWindow,
    filter_by_window,
    group_by_category,
    group_by_month,
    totals_by_type,
    window_start,
)
from kas_engines.link_checker import LinkCheckResult, check_payment_links
from kas_engines.mirror import LedgerMirror
from kas_engines.student_status import StudentPaymentSummary, search_students, summarize_student
from kas_services.auth_service import AuthService
from kas_services.commands import FundCommandService
from kas_services.spreadsheet_export import export_month

logger = get_logger("services.app_shell")

RECENT_TRANSACTION_LIMIT = 5


@dataclass(frozen=True)
class DashboardView:
    balances: FundBalances
    monthly_flow: tuple[MonthlyFlow, ...]
    expense_by_category: dict[str, int]
    recent_transactions: tuple[Transaction, ...]
    is_stale: bool


@dataclass(frozen=True)
class PublicTransactionsView:
    window: ReportWindow
    since: datetime
    transactions: tuple[Transaction, ...]
    total_income: int
    total_expense: int


class FundApplication:
    def __init__(
        self,
        config: FundConfig,
        clock: Clock | None = None,
        engine: Engine | None = None,
    ):
        self.config = config
        self.clock = clock or SystemClock()
        self.tz = reporting_tz(config.reporting_utc_offset_hours)

        self.engine = engine or build_engine(config.database_url)
        self._owns_engine = engine is None
        self.session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)

        self.store = SqlEntityStore(self.session_factory, clock=self.clock)
        self.storage = LocalObjectStorage(
            config.uploads.storage_dir, config.uploads.public_base_url
        )
        self.commands = FundCommandService.from_config(
            config, self.store, self.storage, clock=self.clock
        )
        self.auth = AuthService.from_config(config.admin, clock=self.clock)
        self.mirror = LedgerMirror(self.store)
        self.session = AdminSession.anonymous()
        self._started = False

    # -- lifecycle ------------------------------------------------------------

    def start(self, create_schema: bool = True) -> "FundApplication":
        configure_logging()
        if create_schema:
            create_tables(self.engine)
        self.mirror.start()
        self._started = True
        logger.info("application_started", extra={"cohort_name": self.config.cohort_name})
        return self

    def stop(self) -> None:
        if not self._started:
            return
        self.mirror.close()
        self.store.close()
        if self._owns_engine:
            self.engine.dispose()
        self._started = False
        logger.info("application_stopped")

    def __enter__(self) -> "FundApplication":
        return self.start()

    def __exit__(self, *exc) -> None:
        self.stop()

    # -- admin session --------------------------------------------------------

    def login(self, username: str, password: str) -> AdminSession:
        """
        Replace the current session with the outcome of this attempt.

        Raises:
            InvalidCredentialsError: wrong credentials, attempts remain.
            AccountLockedError: the gate is (or just became) locked.
        """
        result = self.auth.login(self.session, username, password)
        self.session = result.session
        result.raise_for_status()
        return self.session

    def logout(self) -> AdminSession:
        self.session = self.auth.logout(self.session)
        return self.session

    def lockout_remaining_seconds(self) -> int:
        return self.session.lockout_remaining_seconds(self.clock.now())

    # -- read views -----------------------------------------------------------

    def dashboard(self) -> DashboardView:
        transactions = self.mirror.transactions()
        return DashboardView(
            balances=self.mirror.balances(),
            monthly_flow=group_by_month(transactions, tz=self.tz),
            expense_by_category=group_by_category(transactions, TransactionType.EXPENSE),
            recent_transactions=tuple(transactions[:RECENT_TRANSACTION_LIMIT]),
            is_stale=self.mirror.is_stale,
        )

    def public_transactions(self, window: ReportWindow) -> PublicTransactionsView:
        window = ReportWindow(window)
        now = self.clock.now()
        selected = filter_by_window(self.mirror.transactions(), window, now, self.tz)
        income, expense = totals_by_type(selected)
        return PublicTransactionsView(
            window=window,
            since=window_start(window, now, self.tz),
            transactions=tuple(selected),
            total_income=income,
            total_expense=expense,
        )

    def student_status(self, query: str) -> list[StudentPaymentSummary]:
        payments = self.mirror.payments()
        return [
            summarize_student(student, payments)
            for student in search_students(self.mirror.students(), query)
        ]

    def check_links(self) -> LinkCheckResult:
        return check_payment_links(self.mirror.payments(), self.mirror.transactions())

    def export(self, kind: ExportKind, year: int, month: int, out_dir: Path | str) -> Path:
        return export_month(self.mirror.transactions(), kind, year, month, out_dir, self.tz)
