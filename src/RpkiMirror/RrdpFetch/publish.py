"""Publish-element processor: decode, date, and deduplicate snapshot objects.

Each ``<publish uri="...">`` child of a validated snapshot carries base64
content.  The processor decodes every entry in document order, looks up (or
stages) a content-addressed creation time for the decoded bytes, and groups the
objects by URI.  Duplicate URIs keep the first object in document order and are
counted as collisions rather than merged, so upstream mistakes stay visible in
logs and metrics.

A single undecodable entry fails the whole snapshot: a repository that cannot
be read completely is not trusted partially.
"""

from __future__ import annotations

import base64
import binascii
import logging
import xml.etree.ElementTree as ET
from datetime import datetime
from typing import Dict, List

from .digest import sha256_hex
from .errors import ObjectDecodeError
from .models import PublishElementResult, RpkiObject
from .snapshot import read_snapshot_document
from .timestamps import ContentTimestampStore

__all__ = ["decode_content", "process_publish_elements"]

LOGGER = logging.getLogger(__name__)


def decode_content(uri: str, text: str) -> bytes:
    """Decode the base64 body of a publish element.

    Surrounding whitespace is allowed by ``xsd:base64Binary`` and stripped;
    missing trailing padding is tolerated.  Anything else that is not strict
    base64 raises :class:`ObjectDecodeError`.
    """

    stripped = text.strip()
    padded = stripped + "=" * (-len(stripped) % 4)
    try:
        return base64.b64decode(padded, validate=True)
    except (binascii.Error, ValueError) as exc:
        LOGGER.error(
            "cannot decode object data for URI %s",
            uri,
            extra={"stage": "publish", "uri": uri, "content_length": len(text)},
        )
        raise ObjectDecodeError(uri, str(exc)) from exc


def process_publish_elements(
    root: ET.Element,
    timestamps: ContentTimestampStore,
    *,
    now: datetime,
) -> PublishElementResult:
    """Decode and deduplicate every ``<publish>`` element under ``root``.

    Args:
        root: Validated ``<snapshot>`` element.
        timestamps: Store consulted for known digests; it is not modified.
        now: Creation time staged for digests seen for the first time.

    Returns:
        :class:`PublishElementResult` whose ``objects`` are keyed by URI in
        first-occurrence order and whose ``new_timestamps`` must be committed
        by the caller once the cycle succeeds.

    Raises:
        ObjectDecodeError: If any entry holds invalid base64.
        DocumentParseError: If any entry lacks a ``uri`` attribute.
    """

    staged: Dict[str, datetime] = {}
    groups: Dict[str, List[RpkiObject]] = {}

    for entry in read_snapshot_document(root).entries:
        uri = entry.uri
        content = decode_content(uri, entry.raw_base64)

        digest = sha256_hex(content)
        created_at = timestamps.get(digest)
        if created_at is None:
            created_at = staged.setdefault(digest, now)

        groups.setdefault(uri, []).append(RpkiObject(uri=uri, content=content, created_at=created_at))

    objects: Dict[str, RpkiObject] = {}
    collision_count = 0
    for uri, group in groups.items():
        # invariant: every group has at least one object
        if len(group) > 1:
            discarded = group[1:]
            LOGGER.warning(
                "Multiple objects for %s, keeping first element: %s (discarded: %s)",
                uri,
                group[0].digest,
                ", ".join(item.digest for item in discarded),
                extra={
                    "stage": "publish",
                    "uri": uri,
                    "kept_digest": group[0].digest,
                    "discarded_digests": [item.digest for item in discarded],
                },
            )
            collision_count += len(discarded)
        objects[uri] = group[0]

    return PublishElementResult(
        objects=objects,
        collision_count=collision_count,
        new_timestamps=staged,
    )
