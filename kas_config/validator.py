"""
Structural validation of a parsed FundConfig.

``validate_config`` returns every problem it finds rather than stopping
at the first, so one failed start lists everything to fix.
"""

from __future__ import annotations

from kas_config.schema import FundConfig


def validate_config(config: FundConfig) -> list[str]:
    errors: list[str] = []

    if not config.cohort_name.strip():
        errors.append("cohort_name must not be empty")
    if not config.database_url.strip():
        errors.append("database_url must not be empty")
    if not -12 <= config.reporting_utc_offset_hours <= 14:
        errors.append(
            f"reporting_utc_offset_hours must be between -12 and 14, "
            f"got {config.reporting_utc_offset_hours}"
        )

    admin = config.admin
    if not admin.username.strip():
        errors.append("admin.username must not be empty")
    if not admin.password:
        errors.append("admin.password must not be empty")
    if admin.max_login_attempts < 1:
        errors.append("admin.max_login_attempts must be at least 1")
    if admin.lockout_minutes < 1:
        errors.append("admin.lockout_minutes must be at least 1")

    if config.ledger.default_dues_amount <= 0:
        errors.append("ledger.default_dues_amount must be positive")
    if not config.ledger.dues_category.strip():
        errors.append("ledger.dues_category must not be empty")

    uploads = config.uploads
    if uploads.max_bytes <= 0:
        errors.append("uploads.max_bytes must be positive")
    if not uploads.proof_content_types:
        errors.append("uploads.proof_content_types must list at least one type")
    if not uploads.receipt_content_types:
        errors.append("uploads.receipt_content_types must list at least one type")
    for ct in uploads.proof_content_types + uploads.receipt_content_types:
        if "/" not in ct:
            errors.append(f"uploads content type {ct!r} is not a MIME type")

    return errors
