"""
kas_config -- single public entrypoint for cash fund configuration.

Responsibility:
    ``get_active_config()`` is the only way to obtain configuration at
    runtime.  No other component reads configuration files or
    environment variables directly.

Architecture position:
    Configuration.  Sits above ``kas_kernel`` and below ``kas_services``
    and the CLI.  The kernel MUST NEVER import from ``kas_config``.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ValueError`` -- validation failed; the message lists every problem.

Every successful call emits a ``FUND_CONFIG_TRACE`` log entry with the
source path, checksum and the environment overrides that were applied.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

from kas_config.loader import apply_env_overrides, load_yaml_file, parse_config
from kas_config.schema import AdminConfig, FundConfig, LedgerConfig, UploadConfig
from kas_config.validator import validate_config

_logger = logging.getLogger("kas_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(
    config_path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> FundConfig:
    """
    Load, override, validate and return the fund configuration.

    Args:
        config_path: YAML file to read.  Defaults to kas_config/defaults.yaml.
        environ: Environment to take overrides from.  Defaults to os.environ.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If validation fails.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    raw = load_yaml_file(path)
    merged, applied = apply_env_overrides(raw, os.environ if environ is None else environ)

    try:
        config = parse_config(merged, source=str(path))
    except (KeyError, TypeError) as exc:
        raise ValueError(f"Configuration {path} is incomplete: missing {exc}") from exc

    errors = validate_config(config)
    if errors:
        raise ValueError(
            "Configuration validation failed:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )

    _logger.info(
        "FUND_CONFIG_TRACE",
        extra={
            "trace_type": "FUND_CONFIG_TRACE",
            "config_source": str(path),
            "checksum": config.checksum,
            "cohort_name": config.cohort_name,
            "env_overrides": list(applied),
        },
    )
    return config


__all__ = [
    "AdminConfig",
    "DEFAULT_CONFIG_PATH",
    "FundConfig",
    "LedgerConfig",
    "UploadConfig",
    "get_active_config",
]
