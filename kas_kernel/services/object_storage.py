"""
Object storage for payment proofs and transaction receipts.

``validate_upload`` is the size and content-type gate; the command layer
calls it with the allowed types for the upload's purpose before anything
is stored.  ``LocalObjectStorage`` keeps files under a directory and serves
them from ``<public_base_url>/<key>``.
"""

import re
from abc import ABC, abstractmethod
from pathlib import Path
from uuid import uuid4

from kas_kernel.exceptions import FieldError, UploadRejectedError
from kas_kernel.logging_config import get_logger

logger = get_logger("services.object_storage")

MAX_UPLOAD_BYTES = 5 * 1024 * 1024

PROOF_CONTENT_TYPES: tuple[str, ...] = ("image/*",)
RECEIPT_CONTENT_TYPES: tuple[str, ...] = ("image/*", "application/pdf")

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def content_type_allowed(content_type: str, allowed: tuple[str, ...]) -> bool:
    """``image/png`` matches ``image/*``; other patterns match exactly."""
    content_type = (content_type or "").split(";")[0].strip().lower()
    for pattern in allowed:
        if pattern.endswith("/*"):
            if content_type.startswith(pattern[:-1]) and len(content_type) > len(pattern) - 1:
                return True
        elif content_type == pattern:
            return True
    return False


def validate_upload(
    data: bytes,
    content_type: str,
    allowed: tuple[str, ...],
    max_bytes: int = MAX_UPLOAD_BYTES,
    field: str = "file",
) -> None:
    """
    Raise UploadRejectedError unless ``data`` is non-empty, at most
    ``max_bytes`` long and of an allowed content type.
    """
    errors = []
    if not data:
        errors.append(FieldError(field, "is empty"))
    elif len(data) > max_bytes:
        errors.append(
            FieldError(field, f"is {len(data)} bytes; the limit is {max_bytes} bytes")
        )
    if not content_type_allowed(content_type, allowed):
        errors.append(
            FieldError(field, f"type {content_type!r} is not one of {', '.join(allowed)}")
        )
    if errors:
        logger.warning(
            "upload_rejected",
            extra={"content_type": content_type, "size": len(data or b"")},
        )
        raise UploadRejectedError(errors)


def safe_filename(filename: str) -> str:
    name = Path(filename or "").name
    name = _UNSAFE_CHARS.sub("_", name).strip("._")
    return name or "upload"


class ObjectStorage(ABC):
    """Stores uploaded bytes and returns a public URL for them."""

    @abstractmethod
    def upload(self, data: bytes, content_type: str, filename: str, folder: str = "") -> str:
        ...


class LocalObjectStorage(ObjectStorage):
    """Files under ``root_dir``; keys are ``<folder>/<uuid>_<filename>``."""

    def __init__(self, root_dir: str | Path, public_base_url: str):
        self.root_dir = Path(root_dir)
        self.public_base_url = public_base_url.rstrip("/")

    def upload(self, data: bytes, content_type: str, filename: str, folder: str = "") -> str:
        key = f"{uuid4().hex}_{safe_filename(filename)}"
        if folder:
            key = f"{_UNSAFE_CHARS.sub('_', folder).strip('/')}/{key}"

        path = self.root_dir / key
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

        url = f"{self.public_base_url}/{key}"
        logger.info(
            "object_stored",
            extra={"key": key, "content_type": content_type, "size": len(data)},
        )
        return url
