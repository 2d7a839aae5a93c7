"""Small ElementTree helpers shared by the notification and snapshot parsers.

RRDP documents live in the ``http://www.ripe.net/rpki/rrdp`` namespace, but
publishers are not consistent about it, so elements are matched by local name.
"""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from typing import Iterator

from .errors import DocumentParseError

__all__ = [
    "RRDP_NAMESPACE",
    "parse_xml",
    "local_name",
    "iter_children",
    "required_attribute",
    "parse_serial",
]

RRDP_NAMESPACE = "http://www.ripe.net/rpki/rrdp"

_SERIAL_PATTERN = re.compile(r"[0-9]+")


def parse_xml(content: bytes, *, context: str) -> ET.Element:
    """Parse ``content`` and return the document element."""

    try:
        return ET.fromstring(content)
    except ET.ParseError as exc:
        raise DocumentParseError(f"{context}: malformed XML ({exc})") from exc


def local_name(tag: object) -> str:
    """Return ``tag`` without its ``{namespace}`` prefix."""

    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1]


def iter_children(element: ET.Element, name: str) -> Iterator[ET.Element]:
    """Yield direct children of ``element`` whose local name is ``name``, in document order."""

    for child in element:
        if local_name(child.tag) == name:
            yield child


def required_attribute(element: ET.Element, name: str, *, context: str) -> str:
    """Return a non-empty attribute value or raise :class:`DocumentParseError`."""

    value = element.get(name)
    if value is None or not value.strip():
        raise DocumentParseError(
            f"{context}: <{local_name(element.tag)}> is missing the '{name}' attribute"
        )
    return value.strip()


def parse_serial(value: str, *, context: str) -> int:
    """Parse a base-10, non-negative serial number."""

    if not _SERIAL_PATTERN.fullmatch(value):
        raise DocumentParseError(f"{context}: serial '{value}' is not a non-negative integer")
    return int(value)
