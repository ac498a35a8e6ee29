"""CLI views over FundApplication read models."""

from kas_kernel.domain.formatting import format_datetime_long
from kas_engines.export import FUND_LABELS, TYPE_LABELS
from scripts.cli.util import fmt_amount


def _title(text: str) -> None:
    print()
    print("=" * 72)
    print(f"  {text}".center(72))
    print("=" * 72)
    print()


def show_summary(app):
    view = app.dashboard()
    b = view.balances

    _title(f"KAS {app.config.cohort_name.upper()}")
    if view.is_stale:
        print("  (data may be out of date: change feed disconnected)\n")
    print(f"  {'Total income':<28} {fmt_amount(b.total_income):>20}")
    print(f"  {'Total expense':<28} {fmt_amount(b.total_expense):>20}")
    print(f"  {'General cash balance':<28} {fmt_amount(b.general_cash_balance):>20}")
    print(f"  {'Donation fund balance':<28} {fmt_amount(b.donation_fund_balance):>20}")
    print(f"  {'Net balance':<28} {fmt_amount(b.net_balance):>20}")

    if view.monthly_flow:
        print()
        print(f"  {'Month':<12} {'Income':>18} {'Expense':>18} {'Net':>18}")
        print(f"  {'-'*12} {'-'*18} {'-'*18} {'-'*18}")
        for m in view.monthly_flow:
            print(
                f"  {m.month_label:<12} {fmt_amount(m.income):>18} "
                f"{fmt_amount(m.expense):>18} {fmt_amount(m.net):>18}"
            )

    if view.expense_by_category:
        print()
        print("  Expenses by category")
        for name, amount in view.expense_by_category.items():
            print(f"    {name:<30} {fmt_amount(amount):>18}")
    print()


def show_transactions(app, window):
    view = app.public_transactions(window)
    _title(f"TRANSACTIONS SINCE {format_datetime_long(view.since, app.tz)}")

    if not view.transactions:
        print("  No transactions in this window.\n")
        return

    for t in view.transactions:
        sign = "+" if t.is_income else "-"
        print(
            f"  {format_datetime_long(t.tanggal, app.tz):<24} "
            f"{TYPE_LABELS[t.tipe]:<8} {t.kategori[:20]:<20} "
            f"{sign}{fmt_amount(t.jumlah):>16}  {FUND_LABELS[t.sumber_dana]}"
        )
        if t.deskripsi:
            print(f"  {'':<24} {t.deskripsi[:60]}")
    print()
    print(f"  Income  {fmt_amount(view.total_income):>18}")
    print(f"  Expense {fmt_amount(view.total_expense):>18}")
    print()


def show_student_status(app, query):
    summaries = app.student_status(query)
    if not summaries:
        print(f"\n  No student matches {query!r}.\n")
        return

    for summary in summaries:
        s = summary.student
        _title(f"{s.name} ({s.nim}) - {s.angkatan}")
        print(f"  Total paid: {fmt_amount(summary.total_paid)}")
        if summary.pending_count:
            print(f"  Pending verification: {summary.pending_count}")
        if not summary.months:
            print("  No payments yet.")
        for month in summary.months:
            print(f"\n  {month.label}")
            for p in month.payments:
                print(
                    f"    {format_datetime_long(p.tanggal, app.tz):<24} "
                    f"{fmt_amount(p.jumlah):>16}  {p.metode:<16} {p.status.value.upper()}"
                )
        print()


def show_link_check(app):
    result = app.check_links()
    _title("PAYMENT / TRANSACTION LINK CHECK")
    print(f"  Payments checked:     {result.payments_checked}")
    print(f"  Transactions checked: {result.transactions_checked}")
    if result.is_consistent:
        print("\n  All links consistent.\n")
        return
    print()
    for f in result.findings:
        print(f"  [{f.severity.value.upper():<7}] {f.code}")
        print(f"            {f.message}")
    print()
