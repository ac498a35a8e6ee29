"""
Input validation for the command boundary.

Every check appends a ``FieldError`` to a collector instead of raising on
the first problem, so a form reports all of its errors at once.  Callers
finish with ``FieldErrors.raise_if_any()``.
"""

from datetime import date, datetime
from typing import Any

from kas_kernel.domain.clock import ensure_aware
from kas_kernel.domain.records import FundSource, TransactionType, month_start
from kas_kernel.exceptions import FieldError, ValidationError


class FieldErrors:
    """Collects field errors for one form or command."""

    def __init__(self) -> None:
        self._errors: list[FieldError] = []

    def add(self, field: str, message: str) -> None:
        self._errors.append(FieldError(field, message))

    def __bool__(self) -> bool:
        return bool(self._errors)

    def __iter__(self):
        return iter(self._errors)

    def raise_if_any(self) -> None:
        if self._errors:
            raise ValidationError(self._errors)

    # -- field checks; each returns the cleaned value or None ---------------

    def required_text(self, field: str, value: Any) -> str | None:
        if value is None or not str(value).strip():
            self.add(field, "is required")
            return None
        return str(value).strip()

    def optional_text(self, field: str, value: Any) -> str | None:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    def positive_amount(self, field: str, value: Any) -> int | None:
        if value is None or (isinstance(value, str) and not value.strip()):
            self.add(field, "is required")
            return None
        if isinstance(value, bool):
            self.add(field, "must be a whole number")
            return None
        try:
            amount = int(str(value).strip()) if isinstance(value, str) else value
        except ValueError:
            self.add(field, "must be a whole number")
            return None
        if isinstance(amount, float):
            if not amount.is_integer():
                self.add(field, "must be a whole number")
                return None
            amount = int(amount)
        if not isinstance(amount, int):
            self.add(field, "must be a whole number")
            return None
        if amount <= 0:
            self.add(field, "must be greater than zero")
            return None
        return amount

    def timestamp(self, field: str, value: Any) -> datetime | None:
        """Accept an aware/naive datetime, a date (midnight UTC) or an ISO string."""
        if value is None or (isinstance(value, str) and not value.strip()):
            self.add(field, "is required")
            return None
        if isinstance(value, datetime):
            return ensure_aware(value)
        if isinstance(value, date):
            return ensure_aware(datetime(value.year, value.month, value.day))
        try:
            return ensure_aware(datetime.fromisoformat(str(value).strip()))
        except ValueError:
            self.add(field, "is not a valid date")
            return None

    def period_month(self, field: str, value: Any) -> date | None:
        """Accept a date/datetime or ``YYYY-MM`` / ``YYYY-MM-DD``; truncate to month."""
        if value is None or (isinstance(value, str) and not value.strip()):
            self.add(field, "is required")
            return None
        if isinstance(value, (date, datetime)):
            return month_start(value)
        text = str(value).strip()
        try:
            if len(text) == 7:
                year, month = text.split("-")
                return date(int(year), int(month), 1)
            return month_start(date.fromisoformat(text))
        except ValueError:
            self.add(field, "must be a month (YYYY-MM)")
            return None

    def transaction_type(self, field: str, value: Any) -> TransactionType | None:
        try:
            return TransactionType(value)
        except ValueError:
            self.add(field, "must be income or expense")
            return None

    def fund_source(self, field: str, value: Any) -> FundSource | None:
        try:
            return FundSource(value)
        except ValueError:
            self.add(field, "must be general_cash or donation_fund")
            return None
