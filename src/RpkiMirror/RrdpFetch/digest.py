"""SHA-256 digest helpers for snapshot verification and content addressing.

Notification documents declare the expected snapshot hash as hex text in
whatever case the publisher chose.  The helpers here normalise those
declarations and compare them against locally computed digests so that the
snapshot loader and the publish-element processor share one definition of
"same content".
"""

from __future__ import annotations

import hashlib
import re

from .errors import DocumentParseError

__all__ = ["SHA256_HEX_LENGTH", "sha256_hex", "normalize_digest", "digests_match"]

SHA256_HEX_LENGTH = 64

_HEX_DIGEST = re.compile(r"[0-9a-f]{64}")


def sha256_hex(data: bytes) -> str:
    """Return the lowercase hexadecimal SHA-256 digest of ``data``."""

    return hashlib.sha256(data).hexdigest()


def normalize_digest(value: object, *, context: str) -> str:
    """Validate a declared SHA-256 digest and return it in lowercase.

    Args:
        value: Raw attribute value taken from a protocol document.
        context: Human readable location used in error messages.

    Returns:
        The digest stripped of surrounding whitespace and lowercased.

    Raises:
        DocumentParseError: If ``value`` is not a 64 character hex string.
    """

    if not isinstance(value, str):
        raise DocumentParseError(f"{context}: digest must be a string")
    digest = value.strip().lower()
    if not _HEX_DIGEST.fullmatch(digest):
        raise DocumentParseError(f"{context}: digest must be {SHA256_HEX_LENGTH} hex characters")
    return digest


def digests_match(actual: str, expected: str) -> bool:
    """Compare two hex digests case-insensitively."""

    return actual.strip().lower() == expected.strip().lower()
