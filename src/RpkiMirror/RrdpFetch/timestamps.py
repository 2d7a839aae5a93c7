"""Content-addressed creation timestamps.

Objects are dated by their digest rather than their URI: identical content
republished under the same or a different name keeps the time it was first
observed.  The store grows for the lifetime of the owning :class:`FetchState`
and is never evicted.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Iterator, Mapping, Optional

__all__ = ["ContentTimestampStore"]


class ContentTimestampStore:
    """Map content digests to the first time they were observed.

    The store performs no locking; cycles that share a store must be serialised
    by the caller (see :class:`RpkiMirror.RrdpFetch.scheduler.FetchScheduler`).
    """

    def __init__(self, initial: Optional[Mapping[str, datetime]] = None) -> None:
        self._created_at: Dict[str, datetime] = {}
        if initial:
            self.update(initial)

    def get(self, digest: str) -> Optional[datetime]:
        """Return the recorded creation time for ``digest`` if it was seen before."""

        return self._created_at.get(digest.lower())

    def assign(self, digest: str, now: datetime) -> datetime:
        """Record ``now`` for an unseen digest and return the effective timestamp."""

        return self._created_at.setdefault(digest.lower(), now)

    def update(self, assignments: Mapping[str, datetime]) -> int:
        """Insert every absent digest from ``assignments``; return how many were new."""

        added = 0
        for digest, created_at in assignments.items():
            key = digest.lower()
            if key not in self._created_at:
                self._created_at[key] = created_at
                added += 1
        return added

    def snapshot(self) -> Dict[str, datetime]:
        """Return a copy of the digest to timestamp mapping."""

        return dict(self._created_at)

    def reset(self) -> None:
        self._created_at.clear()

    def __contains__(self, digest: object) -> bool:
        return isinstance(digest, str) and digest.lower() in self._created_at

    def __len__(self) -> int:
        return len(self._created_at)

    def __iter__(self) -> Iterator[str]:
        return iter(self._created_at)

    def __repr__(self) -> str:
        return f"ContentTimestampStore(entries={len(self._created_at)})"
