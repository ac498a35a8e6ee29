"""CLI views: dashboard, transaction windows, student status, link check."""

from scripts.cli.views.reports import (
    show_link_check,
    show_student_status,
    show_summary,
    show_transactions,
)

__all__ = [
    "show_link_check",
    "show_student_status",
    "show_summary",
    "show_transactions",
]
