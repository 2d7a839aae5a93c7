"""Snapshot loader and structural validator.

:func:`load_snapshot` is the primary integrity defence: bytes whose SHA-256
differs from the digest announced in the notification are rejected with the
URL, received length, computed digest, and expected digest.
:func:`validate_snapshot_structure` then checks the parsed document has a
single ``<snapshot>`` root whose serial equals the notification serial.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET

from .digest import digests_match, sha256_hex
from .errors import SnapshotStructureError
from .models import PublishEntry, SnapshotDocument
from .net import HttpTransport
from .xmlutil import iter_children, local_name, parse_serial, parse_xml, required_attribute

__all__ = [
    "load_snapshot",
    "parse_snapshot",
    "validate_snapshot_structure",
    "read_snapshot_document",
]

LOGGER = logging.getLogger(__name__)

_CONTEXT = "snapshot"


def load_snapshot(
    transport: HttpTransport,
    snapshot_url: str,
    expected_digest: str,
    *,
    timeout: float,
) -> bytes:
    """Fetch snapshot bytes and verify them against ``expected_digest``."""

    LOGGER.info(
        "loading RRDP snapshot from %s",
        snapshot_url,
        extra={"stage": "snapshot", "url": snapshot_url},
    )
    content = transport.get(snapshot_url, timeout)

    actual_digest = sha256_hex(content)
    if not digests_match(actual_digest, expected_digest):
        raise SnapshotStructureError(
            snapshot_url,
            f"with len(content) = {len(content)} had sha256(content) = {actual_digest}, "
            f"expected {expected_digest}",
            content_length=len(content),
            actual_digest=actual_digest,
            expected_digest=expected_digest,
        )
    return content


def parse_snapshot(content: bytes) -> ET.Element:
    """Parse snapshot bytes and return the document element."""

    return parse_xml(content, context=_CONTEXT)


def validate_snapshot_structure(notification_serial: int, snapshot_url: str, root: ET.Element) -> int:
    """Check the root element and serial of a parsed snapshot.

    Returns:
        The snapshot serial, equal to ``notification_serial``.

    Raises:
        SnapshotStructureError: If there is not exactly one ``<snapshot>`` root
            or its serial differs from the notification serial.
        DocumentParseError: If the root carries no valid serial.
    """

    # A well-formed document has one root; a different root tag counts as zero.
    snapshot_roots = [root] if local_name(root.tag) == "snapshot" else []
    if len(snapshot_roots) != 1:
        raise SnapshotStructureError(snapshot_url, "No <snapshot>...</snapshot> root element found")

    snapshot_root = snapshot_roots[0]
    snapshot_serial = parse_serial(
        required_attribute(snapshot_root, "serial", context=_CONTEXT), context=_CONTEXT
    )
    if snapshot_serial != notification_serial:
        raise SnapshotStructureError(
            snapshot_url,
            f"contained serial={snapshot_serial}, expected={notification_serial}",
        )
    return snapshot_serial


def read_snapshot_document(root: ET.Element) -> SnapshotDocument:
    """Return the undecoded view of a snapshot root."""

    serial = parse_serial(required_attribute(root, "serial", context=_CONTEXT), context=_CONTEXT)
    entries = tuple(
        PublishEntry(
            uri=required_attribute(element, "uri", context=_CONTEXT),
            raw_base64="".join(element.itertext()),
        )
        for element in iter_children(root, "publish")
    )
    return SnapshotDocument(serial=serial, entries=entries)
