"""Testing utilities for exercising the RRDP fetcher without a network.

:class:`RrdpRepository` is an in-memory publication point: register a
notification and snapshot (or arbitrary documents) and hand the transport
returned by :meth:`RrdpRepository.build_httpx_transport` to an
:class:`httpx.Client`.  Faults (timeouts, HTTP status codes, bodies that fail
half way) can be queued per path.
"""

from __future__ import annotations

import base64
import contextlib
import hashlib
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Union
from urllib.parse import urljoin
from xml.sax.saxutils import escape, quoteattr

import httpx

from ..net import configure_http_client, reset_http_client
from ..xmlutil import RRDP_NAMESPACE

__all__ = [
    "ResponseSpec",
    "RequestRecord",
    "RrdpRepository",
    "build_notification_xml",
    "build_snapshot_xml",
    "use_mock_transport",
]

PublishItem = Union[Tuple[str, bytes], Tuple[str, str, bool]]


def build_notification_xml(
    *,
    serial: int,
    snapshot_uri: str,
    snapshot_hash: str,
    session_id: str = "9df4b597-af9e-4dca-bdda-719cce2c4e28",
    deltas: Sequence[Tuple[int, str, str]] = (),
    namespace: Optional[str] = RRDP_NAMESPACE,
) -> bytes:
    """Render a notification document pointing at one snapshot."""

    xmlns = f" xmlns={quoteattr(namespace)}" if namespace else ""
    lines = [
        f'<notification{xmlns} version="1" session_id={quoteattr(session_id)} serial="{serial}">',
        f"  <snapshot uri={quoteattr(snapshot_uri)} hash={quoteattr(snapshot_hash)}/>",
    ]
    for delta_serial, delta_uri, delta_hash in deltas:
        lines.append(
            f'  <delta serial="{delta_serial}" uri={quoteattr(delta_uri)} hash={quoteattr(delta_hash)}/>'
        )
    lines.append("</notification>")
    return "\n".join(lines).encode("utf-8")


def build_snapshot_xml(
    *,
    serial: int,
    objects: Iterable[PublishItem] = (),
    session_id: str = "9df4b597-af9e-4dca-bdda-719cce2c4e28",
    namespace: Optional[str] = RRDP_NAMESPACE,
) -> bytes:
    """Render a snapshot document.

    ``objects`` holds ``(uri, content)`` pairs whose content is base64 encoded
    here, or ``(uri, text, True)`` triples whose text is emitted verbatim (for
    malformed or oddly formatted payloads).
    """

    xmlns = f" xmlns={quoteattr(namespace)}" if namespace else ""
    lines = [f'<snapshot{xmlns} version="1" session_id={quoteattr(session_id)} serial="{serial}">']
    for item in objects:
        if len(item) == 3:
            uri, text, _raw = item  # type: ignore[misc]
        else:
            uri, content = item  # type: ignore[misc]
            text = base64.b64encode(content).decode("ascii")
        lines.append(f"  <publish uri={quoteattr(uri)}>{escape(text)}</publish>")
    lines.append("</snapshot>")
    return "\n".join(lines).encode("utf-8")


@dataclass
class ResponseSpec:
    """Canned response served for one request path."""

    status: int = 200
    body: bytes = b""
    headers: Mapping[str, str] = field(default_factory=dict)
    timeout: bool = False
    fail_after: Optional[int] = None
    """Raise a read error after sending this many body bytes."""


@dataclass
class RequestRecord:
    """Request captured by :class:`RrdpRepository`."""

    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)


class _FailingStream(httpx.SyncByteStream):
    def __init__(self, body: bytes, fail_after: int) -> None:
        self._body = body
        self._fail_after = fail_after

    def __iter__(self) -> Iterator[bytes]:
        if self._fail_after:
            yield self._body[: self._fail_after]
        raise httpx.ReadError("connection reset while reading body")


class RrdpRepository:
    """In-memory RRDP publication point served through :class:`httpx.MockTransport`."""

    def __init__(self, base_url: str = "https://rrdp.example.net/") -> None:
        self.base_url = base_url
        self._documents: Dict[str, bytes] = {}
        self._faults: Dict[str, Deque[ResponseSpec]] = defaultdict(deque)
        self._requests: List[RequestRecord] = []

    # --- publishing ------------------------------------------------------------

    def url(self, path: str) -> str:
        return urljoin(self.base_url, path.lstrip("/"))

    @property
    def notification_url(self) -> str:
        return self.url("notification.xml")

    def put(self, path: str, body: bytes) -> str:
        """Serve ``body`` at ``path`` and return its absolute URL."""

        url = self.url(path)
        self._documents[url] = body
        return url

    def publish_snapshot(
        self,
        serial: int,
        objects: Iterable[PublishItem] = (),
        *,
        path: Optional[str] = None,
        notification_serial: Optional[int] = None,
        snapshot_hash: Optional[str] = None,
        snapshot_body: Optional[bytes] = None,
    ) -> str:
        """Publish a snapshot and a notification pointing at it.

        ``notification_serial``, ``snapshot_hash`` and ``snapshot_body`` let a
        test announce something different from what is actually served.
        Returns the snapshot URL.
        """

        body = snapshot_body if snapshot_body is not None else build_snapshot_xml(serial=serial, objects=objects)
        snapshot_url = self.put(path or f"{serial}/snapshot.xml", body)
        self.put(
            "notification.xml",
            build_notification_xml(
                serial=notification_serial if notification_serial is not None else serial,
                snapshot_uri=snapshot_url,
                snapshot_hash=snapshot_hash or hashlib.sha256(body).hexdigest(),
            ),
        )
        return snapshot_url

    def queue_fault(self, path_or_url: str, response: ResponseSpec) -> None:
        """Serve ``response`` once for the next request to ``path_or_url``."""

        url = path_or_url if "://" in path_or_url else self.url(path_or_url)
        self._faults[url].append(response)

    # --- transport -------------------------------------------------------------

    @property
    def requests(self) -> Sequence[RequestRecord]:
        return tuple(self._requests)

    def requested_urls(self) -> List[str]:
        return [record.url for record in self._requests]

    def build_httpx_transport(self) -> httpx.MockTransport:
        """Return an HTTPX transport serving this repository."""

        repo = self

        def _handler(request: httpx.Request) -> httpx.Response:
            url = str(request.url)
            repo._requests.append(
                RequestRecord(method=request.method, url=url, headers=dict(request.headers))
            )

            faults = repo._faults.get(url)
            if faults:
                spec = faults.popleft()
                if spec.timeout:
                    raise httpx.ReadTimeout("timed out", request=request)
                body = spec.body or repo._documents.get(url, b"")
                if spec.fail_after is not None:
                    return httpx.Response(
                        spec.status,
                        headers=dict(spec.headers),
                        stream=_FailingStream(body, spec.fail_after),
                        request=request,
                    )
                return httpx.Response(spec.status, headers=dict(spec.headers), content=body, request=request)

            body = repo._documents.get(url)
            if body is None:
                return httpx.Response(404, request=request, content=b"")
            return httpx.Response(
                200,
                headers={"Content-Type": "application/xml"},
                content=body,
                request=request,
            )

        return httpx.MockTransport(_handler)

    def build_client(self, **client_kwargs) -> httpx.Client:
        return httpx.Client(transport=self.build_httpx_transport(), **client_kwargs)


@contextlib.contextmanager
def use_mock_transport(transport: httpx.BaseTransport, **client_kwargs):
    """Temporarily route every default :class:`HttpxTransport` through ``transport``."""

    client = httpx.Client(transport=transport, **client_kwargs)
    configure_http_client(client)
    try:
        yield client
    finally:
        reset_http_client()
        client.close()
