"""Exception hierarchy shared across RRDP notification, snapshot, and transport handling.

An RRDP fetch cycle spans an HTTP transport, two XML documents, and a base64
object decoder.  This module groups the failure modes into a small hierarchy so
the orchestrator can classify any raised condition into one of the cycle
outcomes (not modified, structure error, aborted, fatal) while callers that
prefer exceptions still get specialised subclasses carrying the diagnostic
context (URL, digests, serials, HTTP status).
"""

from __future__ import annotations

from typing import Optional

__all__ = [
    "RrdpFetchError",
    "ConfigurationError",
    "SnapshotNotModified",
    "SnapshotStructureError",
    "RepoUpdateAborted",
    "FetcherError",
    "DocumentParseError",
    "ObjectDecodeError",
    "TransportError",
    "TransportTimeout",
    "TransportStatusError",
    "TransportResponseError",
]


class RrdpFetchError(RuntimeError):
    """Base exception for RRDP fetch, validation, and extraction failures."""


class ConfigurationError(RrdpFetchError):
    """Raised when settings files, environment overrides, or CLI inputs are invalid."""


class SnapshotNotModified(RrdpFetchError):
    """Raised when the notification still points at the last processed snapshot."""

    def __init__(self, url: str) -> None:
        super().__init__(f"snapshot {url} was not modified since the last cycle")
        self.url = url


class SnapshotStructureError(RrdpFetchError):
    """Raised when snapshot data violates an integrity or consistency invariant."""

    def __init__(
        self,
        url: str,
        detail: str,
        *,
        content_length: Optional[int] = None,
        actual_digest: Optional[str] = None,
        expected_digest: Optional[str] = None,
    ) -> None:
        super().__init__(f"snapshot {url} {detail}")
        self.url = url
        self.detail = detail
        self.content_length = content_length
        self.actual_digest = actual_digest
        self.expected_digest = expected_digest


class RepoUpdateAborted(RrdpFetchError):
    """Raised when a request did not finish in time; says nothing about data validity."""

    def __init__(self, url: Optional[str], reason: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"update from {url} aborted ({reason})")
        self.url = url
        self.reason = reason
        self.cause = cause


class FetcherError(RrdpFetchError):
    """Fatal, unrecoverable failure of a fetch cycle (parse, format, or I/O)."""


class DocumentParseError(FetcherError):
    """Raised when a notification or snapshot document cannot be parsed."""


class ObjectDecodeError(DocumentParseError):
    """Raised when a publish element carries content that is not valid base64."""

    def __init__(self, uri: str, message: str) -> None:
        super().__init__(f"cannot decode object data for URI {uri}: {message}")
        self.uri = uri


class TransportError(FetcherError):
    """Raised when the HTTP transport fails for a reason other than a timeout."""

    def __init__(self, url: str, message: str) -> None:
        super().__init__(f"{message} ({url})")
        self.url = url


class TransportTimeout(TransportError):
    """Raised when a blocking request exceeds its configured deadline."""

    def __init__(self, url: str, timeout: float) -> None:
        super().__init__(url, f"request did not complete within {timeout:g}s")
        self.timeout = timeout


class TransportStatusError(TransportError):
    """Raised when the server answers with a non-2xx HTTP status."""

    def __init__(self, url: str, status_code: int) -> None:
        super().__init__(url, f"HTTP status {status_code}")
        self.status_code = status_code


class TransportResponseError(TransportError):
    """Raised when a response with status headers arrived but its body failed."""

    def __init__(self, url: str, status_code: int, message: str) -> None:
        super().__init__(url, f"response body failed after HTTP status {status_code}: {message}")
        self.status_code = status_code

    @property
    def is_success_status(self) -> bool:
        """Return ``True`` when the interrupted response carried a 2xx status."""

        return 200 <= self.status_code < 300
