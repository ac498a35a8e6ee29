"""CLI entry: argument parsing and subcommand dispatch."""

import argparse
import logging
import sys
from pathlib import Path

from kas_config import get_active_config
from kas_kernel.exceptions import KasError
from kas_kernel.logging_config import StructuredFormatter
from kas_engines.export import ExportKind
from kas_engines.ledger import ReportWindow
from kas_services.app_shell import FundApplication
from scripts.cli.util import enable_quiet_logging, parse_month, restore_logging
from scripts.cli.views import (
    show_link_check,
    show_student_status,
    show_summary,
    show_transactions,
)


class _FlushingFileHandler(logging.FileHandler):
    """FileHandler that flushes after every emit so the log updates immediately."""

    def emit(self, record: logging.LogRecord) -> None:
        super().emit(record)
        self.flush()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m scripts.cli",
        description="Cohort cash fund: balances, reports and admin tasks.",
    )
    parser.add_argument("--config", type=Path, default=None, help="YAML config (default: kas_config/defaults.yaml)")
    parser.add_argument("--log-file", type=Path, default=None, help="Append structured JSON logs here")

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("summary", help="Fund balances and monthly flow")

    tx = sub.add_parser("transactions", help="Public transaction list for a window")
    tx.add_argument(
        "--window",
        choices=[w.value for w in ReportWindow],
        default=ReportWindow.LAST_7_DAYS.value,
    )

    status = sub.add_parser("status", help="Look up a student's payments by name or NIM")
    status.add_argument("query")

    sub.add_parser("check-links", help="Audit payment/transaction links")

    export = sub.add_parser("export", help="Write a monthly .xlsx report")
    export.add_argument("--month", required=True, help="YYYY-MM")
    export.add_argument("--kind", choices=[k.value for k in ExportKind], default=ExportKind.ALL.value)
    export.add_argument("--out", type=Path, default=Path("."))

    imp = sub.add_parser("import-students", help="Bulk import NIM,Name,Angkatan lines")
    imp.add_argument("file", type=Path)
    imp.add_argument("--password", required=True)

    return parser


def _run(app: FundApplication, args) -> int:
    if args.command == "summary":
        show_summary(app)
    elif args.command == "transactions":
        show_transactions(app, ReportWindow(args.window))
    elif args.command == "status":
        show_student_status(app, args.query)
    elif args.command == "check-links":
        show_link_check(app)
        return 0 if app.check_links().is_consistent else 2
    elif args.command == "export":
        month = parse_month(args.month)
        path = app.export(ExportKind(args.kind), month.year, month.month, args.out)
        print(f"\n  Wrote {path}\n")
    elif args.command == "import-students":
        session = app.login(app.config.admin.username, args.password)
        lines = args.file.read_text(encoding="utf-8").splitlines()
        result = app.commands.bulk_import_students(session, lines)
        if result.errors:
            print(f"\n  Import rejected, {len(result.errors)} error(s):")
            for e in result.errors:
                print(f"    row {e.row}: {e.message}  ({e.raw})")
            print()
            return 1
        print(f"\n  Imported {len(result.students)} student(s).\n")
    return 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    if args.log_file is not None:
        handler = _FlushingFileHandler(str(args.log_file), mode="a")
        handler.setFormatter(StructuredFormatter())
        logging.getLogger("kas_kernel").addHandler(handler)

    try:
        config = get_active_config(args.config)
    except (FileNotFoundError, ValueError) as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1

    app = FundApplication(config)
    try:
        app.start()
    except KasError as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1

    muted = enable_quiet_logging()
    try:
        return _run(app, args)
    except KasError as exc:
        print(f"  ERROR [{exc.code}]: {exc}", file=sys.stderr)
        return 1
    except ValueError as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1
    finally:
        restore_logging(muted)
        app.stop()
