"""
kas_engines.tracer -- invocation tracer emitting KAS_ENGINE_TRACE.

``@traced_engine`` wraps a pure engine function and logs one structured
record per call: engine name and version, a deterministic fingerprint of
the selected arguments, and the duration.  It does not touch the
arguments or the result.

Usage:
    from kas_engines.tracer import traced_engine

    @traced_engine("ledger.window", "1.0", fingerprint_fields=("window", "now"))
    def filter_by_window(transactions, window, now):
        ...
"""

import functools
import hashlib
import inspect
import time
from collections.abc import Callable
from datetime import date, datetime
from enum import Enum
from typing import Any

from kas_kernel.logging_config import get_logger

_logger = get_logger("engines.tracer")


def _canonicalize(value: Any) -> str:
    """Stable string form of ``value``; unknown types fall back to ``str``."""
    if value is None:
        return "null"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (int, float, str)):
        return str(value)
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        return "{" + ",".join(f"{k}:{_canonicalize(v)}" for k, v in items) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonicalize(v) for v in value) + "]"
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    arguments: dict[str, Any],
) -> str:
    """SHA-256 prefix (16 hex chars) over the named arguments; missing ones count as null."""
    canonical = "|".join(
        f"{name}={_canonicalize(arguments.get(name))}" for name in fingerprint_fields
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """
    Decorator that emits KAS_ENGINE_TRACE for a pure engine call.

    ``fingerprint_fields`` name parameters of the wrapped function; they are
    matched whether the caller passed them positionally or by keyword, with
    defaults filled in.
    """

    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)
        unknown = set(fingerprint_fields) - set(signature.parameters)
        if unknown:
            raise ValueError(
                f"{func.__qualname__} has no parameter(s) {sorted(unknown)} to fingerprint"
            )

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fp = ""
            if fingerprint_fields:
                bound = signature.bind(*args, **kwargs)
                bound.apply_defaults()
                fp = compute_input_fingerprint(fingerprint_fields, bound.arguments)

            t0 = time.monotonic()
            result = func(*args, **kwargs)
            duration_ms = round((time.monotonic() - t0) * 1000, 2)

            _logger.debug(
                "KAS_ENGINE_TRACE",
                extra={
                    "trace_type": "KAS_ENGINE_TRACE",
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": fp,
                    "duration_ms": duration_ms,
                    "function": func.__qualname__,
                },
            )
            return result

        return wrapper

    return decorator
