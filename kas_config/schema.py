"""
FundConfig schema.

Frozen dataclasses the loader parses ``defaults.yaml`` (or an override
file) into.  Nothing here reads files or the environment.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class AdminConfig:
    """The single shared admin credential and its lockout policy."""

    username: str
    password: str
    max_login_attempts: int = 5
    lockout_minutes: int = 15


@dataclass(frozen=True)
class LedgerConfig:
    dues_category: str = "Mandatory Dues"
    default_dues_amount: int = 100000
    default_payment_method: str = "Transfer Bank"


@dataclass(frozen=True)
class UploadConfig:
    max_bytes: int = 5 * 1024 * 1024
    proof_content_types: tuple[str, ...] = ("image/*",)
    receipt_content_types: tuple[str, ...] = ("image/*", "application/pdf")
    storage_dir: str = "uploads"
    public_base_url: str = "/uploads"


@dataclass(frozen=True)
class FundConfig:
    """Runtime configuration for one cohort's cash fund."""

    cohort_name: str
    database_url: str
    admin: AdminConfig
    ledger: LedgerConfig
    uploads: UploadConfig
    reporting_utc_offset_hours: int = 7
    checksum: str = ""
    source: str = ""
