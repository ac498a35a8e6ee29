"""
Indonesian (id-ID) display formatting for amounts, dates and month labels.

All datetimes are converted to the reporting timezone before formatting.
"""

from datetime import date, datetime, tzinfo

from kas_kernel.domain.clock import REPORTING_TZ, ensure_aware

MONTHS_LONG = (
    "Januari", "Februari", "Maret", "April", "Mei", "Juni",
    "Juli", "Agustus", "September", "Oktober", "November", "Desember",
)

MONTHS_SHORT = (
    "Jan", "Feb", "Mar", "Apr", "Mei", "Jun",
    "Jul", "Agu", "Sep", "Okt", "Nov", "Des",
)


def format_thousands(amount: int) -> str:
    """100000 -> '100.000' (dot grouping)."""
    return f"{amount:,}".replace(",", ".")


def format_rupiah(amount: int) -> str:
    """100000 -> 'Rp 100.000'; negatives keep the sign in front."""
    if amount < 0:
        return f"-Rp {format_thousands(-amount)}"
    return f"Rp {format_thousands(amount)}"


def month_label_short(year: int, month: int) -> str:
    """(2024, 8) -> 'Agu 2024'."""
    return f"{MONTHS_SHORT[month - 1]} {year}"


def month_label_long(value: date) -> str:
    """date(2024, 7, 1) -> 'Juli 2024'."""
    return f"{MONTHS_LONG[value.month - 1]} {value.year}"


def format_datetime_long(value: datetime, tz: tzinfo = REPORTING_TZ) -> str:
    """'15 Juli 2024 20.00' in the reporting timezone."""
    local = ensure_aware(value).astimezone(tz)
    return (
        f"{local.day:02d} {MONTHS_LONG[local.month - 1]} {local.year} "
        f"{local.hour:02d}.{local.minute:02d}"
    )
