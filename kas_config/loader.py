"""
Configuration loader (``kas_config.loader``).

Loads the YAML file, applies environment overrides and parses the result
into ``kas_config.schema`` dataclasses.  Runtime callers go through
``kas_config.get_active_config()`` instead.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from kas_config.schema import AdminConfig, FundConfig, LedgerConfig, UploadConfig

# Environment variable -> (section, key) in the raw config dict.  A None
# section means a top-level key.
ENV_OVERRIDES: dict[str, tuple[str | None, str]] = {
    "KAS_DATABASE_URL": (None, "database_url"),
    "KAS_ADMIN_PASSWORD": ("admin", "password"),
    "KAS_STORAGE_DIR": ("uploads", "storage_dir"),
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load one YAML file; an empty file gives an empty dict."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def apply_env_overrides(data: dict[str, Any], environ: Mapping[str, str]) -> tuple[dict[str, Any], tuple[str, ...]]:
    """
    Return a copy of ``data`` with the environment overrides applied, and
    the names of the variables that were used.
    """
    merged = {k: (dict(v) if isinstance(v, dict) else v) for k, v in data.items()}
    applied = []
    for var, (section, key) in ENV_OVERRIDES.items():
        value = environ.get(var)
        if not value:
            continue
        if section is None:
            merged[key] = value
        else:
            merged.setdefault(section, {})[key] = value
        applied.append(var)
    return merged, tuple(applied)


def parse_admin(data: dict[str, Any]) -> AdminConfig:
    return AdminConfig(
        username=str(data["username"]),
        password=str(data["password"]),
        max_login_attempts=int(data.get("max_login_attempts", 5)),
        lockout_minutes=int(data.get("lockout_minutes", 15)),
    )


def parse_ledger(data: dict[str, Any]) -> LedgerConfig:
    defaults = LedgerConfig()
    return LedgerConfig(
        dues_category=str(data.get("dues_category", defaults.dues_category)),
        default_dues_amount=int(data.get("default_dues_amount", defaults.default_dues_amount)),
        default_payment_method=str(
            data.get("default_payment_method", defaults.default_payment_method)
        ),
    )


def parse_uploads(data: dict[str, Any]) -> UploadConfig:
    defaults = UploadConfig()
    return UploadConfig(
        max_bytes=int(data.get("max_bytes", defaults.max_bytes)),
        proof_content_types=tuple(data.get("proof_content_types", defaults.proof_content_types)),
        receipt_content_types=tuple(
            data.get("receipt_content_types", defaults.receipt_content_types)
        ),
        storage_dir=str(data.get("storage_dir", defaults.storage_dir)),
        public_base_url=str(data.get("public_base_url", defaults.public_base_url)),
    )


def parse_config(data: dict[str, Any], source: str = "") -> FundConfig:
    """Parse the raw dict into a FundConfig stamped with its checksum."""
    return FundConfig(
        cohort_name=str(data["cohort_name"]),
        database_url=str(data["database_url"]),
        admin=parse_admin(data["admin"]),
        ledger=parse_ledger(data.get("ledger") or {}),
        uploads=parse_uploads(data.get("uploads") or {}),
        reporting_utc_offset_hours=int(data.get("reporting_utc_offset_hours", 7)),
        checksum=compute_checksum(data),
        source=source,
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form; identical data, identical checksum."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
