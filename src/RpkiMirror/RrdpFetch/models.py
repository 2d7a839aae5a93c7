# === NAVMAP v1 ===
# {
#   "module": "RpkiMirror.RrdpFetch.models",
#   "purpose": "Protocol documents, extracted objects, cross-cycle state, and cycle outcomes",
#   "sections": [
#     {"id": "documents", "name": "Protocol Documents", "anchor": "DOC", "kind": "api"},
#     {"id": "objects", "name": "Extracted Objects", "anchor": "OBJ", "kind": "api"},
#     {"id": "state", "name": "Fetch State", "anchor": "STA", "kind": "api"},
#     {"id": "outcomes", "name": "Cycle Outcomes", "anchor": "OUT", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Data model for the RRDP fetch pipeline.

Documents (:class:`NotificationDocument`, :class:`SnapshotDocument`,
:class:`PublishEntry`) are transient and rebuilt every cycle.
:class:`RpkiObject` is the unit handed to downstream consumers.
:class:`FetchState` is owned by the caller and threaded through each cycle.
The outcome classes form a tagged union; ``kind`` distinguishes them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Literal, Mapping, Optional, Tuple, Union

from .digest import sha256_hex
from .errors import (
    FetcherError,
    RepoUpdateAborted,
    SnapshotNotModified,
    SnapshotStructureError,
)
from .timestamps import ContentTimestampStore

__all__ = [
    "NotificationDocument",
    "PublishEntry",
    "SnapshotDocument",
    "RpkiObject",
    "PublishElementResult",
    "FetchState",
    "FetchSuccess",
    "NotModified",
    "StructureError",
    "Aborted",
    "FatalError",
    "FetchOutcome",
]


# --- Protocol documents -------------------------------------------------------


@dataclass(slots=True, frozen=True)
class NotificationDocument:
    """Parsed notification: current serial and the pointer to its snapshot."""

    serial: int
    snapshot_uri: str
    snapshot_digest: str
    session_id: Optional[str] = None


@dataclass(slots=True, frozen=True)
class PublishEntry:
    """One undecoded ``<publish>`` element."""

    uri: str
    raw_base64: str = field(repr=False)


@dataclass(slots=True, frozen=True)
class SnapshotDocument:
    """Raw view of a snapshot: its serial and entries in document order."""

    serial: int
    entries: Tuple[PublishEntry, ...] = ()


# --- Extracted objects --------------------------------------------------------


@dataclass(slots=True, frozen=True)
class RpkiObject:
    """Decoded repository object with its content-addressed creation time."""

    uri: str
    content: bytes = field(repr=False)
    created_at: datetime
    digest: str = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "digest", sha256_hex(self.content))

    def to_mapping(self) -> Dict[str, Any]:
        """Return a JSON friendly summary (content omitted)."""

        return {
            "uri": self.uri,
            "digest": self.digest,
            "size": len(self.content),
            "created_at": self.created_at.isoformat(),
        }


@dataclass(slots=True, frozen=True)
class PublishElementResult:
    """Deduplicated objects plus staged timestamp assignments for one snapshot.

    ``new_timestamps`` holds digests first observed during this pass; they are
    committed to the :class:`ContentTimestampStore` only when the whole cycle
    succeeds.
    """

    objects: Mapping[str, RpkiObject]
    collision_count: int = 0
    new_timestamps: Mapping[str, datetime] = field(default_factory=dict)


# --- Fetch state --------------------------------------------------------------


@dataclass
class FetchState:
    """State carried across cycles and mutated only by successful cycles."""

    last_snapshot_url: Optional[str] = None
    timestamps: ContentTimestampStore = field(default_factory=ContentTimestampStore)


# --- Cycle outcomes -----------------------------------------------------------


@dataclass(frozen=True)
class FetchSuccess:
    """Snapshot fully loaded, validated, and extracted."""

    url: str
    serial: int
    objects: Mapping[str, RpkiObject] = field(repr=False)
    collision_count: int = 0
    kind: Literal["success"] = field(default="success", init=False)

    @property
    def ok(self) -> bool:
        return True

    def unwrap(self) -> Mapping[str, RpkiObject]:
        return self.objects


@dataclass(frozen=True)
class NotModified:
    """The notification points at the snapshot processed by the last successful cycle."""

    url: str
    kind: Literal["not_modified"] = field(default="not_modified", init=False)

    @property
    def ok(self) -> bool:
        return False

    def unwrap(self) -> Mapping[str, RpkiObject]:
        raise SnapshotNotModified(self.url)


@dataclass(frozen=True)
class StructureError:
    """Remote data violated an integrity or consistency invariant."""

    url: str
    detail: str
    kind: Literal["structure_error"] = field(default="structure_error", init=False)

    @property
    def ok(self) -> bool:
        return False

    def unwrap(self) -> Mapping[str, RpkiObject]:
        raise SnapshotStructureError(self.url, self.detail)


@dataclass(frozen=True)
class Aborted:
    """A request did not finish; ``reason`` is ``timeout`` or ``interrupted_2xx``."""

    url: Optional[str]
    reason: str
    cause: Optional[BaseException] = field(default=None, compare=False)
    kind: Literal["aborted"] = field(default="aborted", init=False)

    @property
    def ok(self) -> bool:
        return False

    def unwrap(self) -> Mapping[str, RpkiObject]:
        raise RepoUpdateAborted(self.url, self.reason, self.cause)


@dataclass(frozen=True)
class FatalError:
    """Any other parse, format, or I/O failure."""

    url: Optional[str]
    cause: BaseException = field(compare=False)
    kind: Literal["fatal"] = field(default="fatal", init=False)

    @property
    def ok(self) -> bool:
        return False

    @property
    def message(self) -> str:
        return str(self.cause)

    def unwrap(self) -> Mapping[str, RpkiObject]:
        if isinstance(self.cause, FetcherError):
            raise self.cause
        raise FetcherError(str(self.cause)) from self.cause


FetchOutcome = Union[FetchSuccess, NotModified, StructureError, Aborted, FatalError]
