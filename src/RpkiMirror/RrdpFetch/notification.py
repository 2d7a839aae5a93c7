"""Notification resolver: fetch the notification file and locate its snapshot.

The notification document is small and polled every cycle.  It carries the
current serial and exactly one ``<snapshot uri=... hash=...>`` pointer; any
``<delta>`` elements are ignored because only full snapshots are consumed.
When the pointer matches the URL processed by the last successful cycle the
resolver stops the cycle with :class:`SnapshotNotModified` before any further
network I/O, relying on publishers changing the snapshot URL whenever content
changes.
"""

from __future__ import annotations

import logging
from typing import Optional

from .digest import normalize_digest
from .errors import DocumentParseError, SnapshotNotModified
from .models import NotificationDocument
from .net import HttpTransport
from .xmlutil import iter_children, local_name, parse_serial, parse_xml, required_attribute

__all__ = ["parse_notification", "resolve_notification"]

LOGGER = logging.getLogger(__name__)

_CONTEXT = "notification"


def parse_notification(content: bytes) -> NotificationDocument:
    """Parse notification bytes into a :class:`NotificationDocument`.

    Raises:
        DocumentParseError: For malformed XML, an unexpected root element, a
            serial that is not a non-negative integer, or anything other than
            exactly one snapshot pointer with ``uri`` and ``hash`` attributes.
    """

    root = parse_xml(content, context=_CONTEXT)
    if local_name(root.tag) != "notification":
        raise DocumentParseError(
            f"{_CONTEXT}: expected <notification> root element, found <{local_name(root.tag)}>"
        )

    serial = parse_serial(required_attribute(root, "serial", context=_CONTEXT), context=_CONTEXT)

    pointers = list(iter_children(root, "snapshot"))
    if len(pointers) != 1:
        raise DocumentParseError(
            f"{_CONTEXT}: expected exactly one <snapshot> element, found {len(pointers)}"
        )
    pointer = pointers[0]
    snapshot_uri = required_attribute(pointer, "uri", context=_CONTEXT)
    snapshot_digest = normalize_digest(
        required_attribute(pointer, "hash", context=_CONTEXT),
        context=f"{_CONTEXT} snapshot hash",
    )

    return NotificationDocument(
        serial=serial,
        snapshot_uri=snapshot_uri,
        snapshot_digest=snapshot_digest,
        session_id=root.get("session_id"),
    )


def resolve_notification(
    transport: HttpTransport,
    notification_url: str,
    *,
    timeout: float,
    last_snapshot_url: Optional[str] = None,
) -> NotificationDocument:
    """Fetch and parse the notification, short-circuiting when nothing changed."""

    content = transport.get(notification_url, timeout)
    notification = parse_notification(content)

    if notification.snapshot_uri == last_snapshot_url:
        LOGGER.info(
            "not updating: snapshot url %s is the same as during the last check",
            notification.snapshot_uri,
            extra={
                "stage": "notification",
                "url": notification.snapshot_uri,
                "serial": notification.serial,
            },
        )
        raise SnapshotNotModified(notification.snapshot_uri)

    LOGGER.debug(
        "notification resolved",
        extra={
            "stage": "notification",
            "url": notification_url,
            "serial": notification.serial,
            "session_id": notification.session_id,
            "snapshot_url": notification.snapshot_uri,
        },
    )
    return notification
