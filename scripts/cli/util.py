"""CLI utilities: formatting, logging mute/restore."""

import logging
from datetime import date

from kas_kernel.domain.formatting import format_rupiah


def fmt_amount(v) -> str:
    """Format amount for display (e.g. Rp 1.234.000)."""
    return format_rupiah(int(v))


def parse_month(value: str) -> date:
    """'2024-07' -> date(2024, 7, 1); raises ValueError otherwise."""
    year, month = value.strip().split("-")
    return date(int(year), int(month), 1)


def enable_quiet_logging():
    """Mute console handlers so CLI output stays clean. Returns list to pass to restore_logging."""
    kas_logger = logging.getLogger("kas_kernel")
    muted = []
    for h in kas_logger.handlers:
        if isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler):
            muted.append((h, h.level))
            h.setLevel(logging.CRITICAL + 1)
    return muted


def restore_logging(muted):
    """Restore muted handlers after a quiet-logging section."""
    for h, orig_level in muted:
        h.setLevel(orig_level)
