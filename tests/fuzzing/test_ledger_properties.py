"""
Property-based tests for the ledger engine and the mirror.

Properties:
1. net balance equals the sum of the two fund balances, and income minus
   expense, for any transaction list.
2. Monthly buckets add up to the overall totals.
3. Replaying a change stream twice leaves the mirror as replaying it once.
4. A window start is a local midnight no later than ``now``, and every
   filtered transaction falls on or after it.
"""

from datetime import datetime, timedelta, timezone

from hypothesis import given, settings, strategies as st

from kas_kernel.domain.clock import REPORTING_TZ
from kas_kernel.domain.events import ChangeKind, make_change
from kas_kernel.domain.records import Collection, FundSource, TransactionType
from kas_engines.ledger import (
    ReportWindow,
    compute_balances,
    filter_by_window,
    group_by_month,
    window_start,
)
from kas_engines.mirror import LedgerMirror
from tests.builders import make_transaction

EPOCH = datetime(2023, 1, 1, tzinfo=timezone.utc)

amounts = st.integers(min_value=1, max_value=50_000_000)
moments = st.integers(min_value=0, max_value=3 * 365 * 24 * 3600).map(
    lambda s: EPOCH + timedelta(seconds=s)
)


@st.composite
def transactions(draw):
    return make_transaction(
        jumlah=draw(amounts),
        tipe=draw(st.sampled_from(TransactionType)),
        sumber_dana=draw(st.sampled_from(FundSource)),
        tanggal=draw(moments),
        kategori=draw(st.sampled_from(["Konsumsi", "Fotokopi", "Iuran Wajib", ""])),
    )


class _EmptyStore:
    def select_all(self, collection):
        return []


class TestBalanceProperties:
    @given(st.lists(transactions(), max_size=40))
    @settings(max_examples=200)
    def test_balance_identity(self, txs):
        b = compute_balances(txs)
        assert b.net_balance == b.general_cash_balance + b.donation_fund_balance
        assert b.net_balance == b.total_income - b.total_expense
        assert b.total_income == sum(t.jumlah for t in txs if t.tipe == TransactionType.INCOME)

    @given(st.lists(transactions(), max_size=40))
    @settings(max_examples=100)
    def test_monthly_buckets_sum_to_totals(self, txs):
        b = compute_balances(txs)
        flow = group_by_month(txs)
        assert sum(m.income for m in flow) == b.total_income
        assert sum(m.expense for m in flow) == b.total_expense
        assert [(m.year, m.month) for m in flow] == sorted((m.year, m.month) for m in flow)


class TestMirrorProperties:
    @given(st.lists(transactions(), max_size=15), st.data())
    @settings(max_examples=100)
    def test_replaying_changes_is_idempotent(self, txs, data):
        changes = [make_change(Collection.TRANSACTIONS, ChangeKind.CREATED, t) for t in txs]
        doomed = data.draw(st.lists(st.sampled_from(txs), max_size=5)) if txs else []
        changes += [
            make_change(Collection.TRANSACTIONS, ChangeKind.DELETED, record_id=t.id) for t in doomed
        ]

        once = LedgerMirror(_EmptyStore())
        once.load()
        for change in changes:
            once.apply(change)

        twice = LedgerMirror(_EmptyStore())
        twice.load()
        for change in changes + changes:
            twice.apply(change)

        assert once.transactions() == twice.transactions()
        assert once.balances() == twice.balances()
        assert len(once.transactions()) == len({t.id for t in txs} - {t.id for t in doomed})


class TestWindowProperties:
    @given(moments, st.sampled_from(ReportWindow), st.lists(transactions(), max_size=30))
    @settings(max_examples=200)
    def test_window_bounds(self, now, window, txs):
        start = window_start(window, now)
        local_start = start.astimezone(REPORTING_TZ)

        assert start <= now
        assert (local_start.hour, local_start.minute, local_start.second) == (0, 0, 0)
        assert now - start < timedelta(days=31)
        assert all(t.tanggal >= start for t in filter_by_window(txs, window, now))
        assert all(
            t in filter_by_window(txs, window, now) for t in txs if t.tanggal >= start
        )
