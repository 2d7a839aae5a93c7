"""HTTPX transport: deadlines, status handling, and client construction."""

from __future__ import annotations

import socket
import threading
import time
from typing import Iterator, List

import httpx
import pytest

from RpkiMirror.RrdpFetch.errors import (
    TransportError,
    TransportResponseError,
    TransportStatusError,
    TransportTimeout,
)
from RpkiMirror.RrdpFetch.net import HttpTransport, HttpxTransport, build_http_client
from RpkiMirror.RrdpFetch.settings import FetchConfiguration
from RpkiMirror.RrdpFetch.testing import RrdpRepository, use_mock_transport

URL = "https://rrdp.example.net/notification.xml"


class _ChunkedStream(httpx.SyncByteStream):
    def __init__(self, chunks: List[bytes]) -> None:
        self._chunks = chunks

    def __iter__(self) -> Iterator[bytes]:
        yield from self._chunks


class _SteppingClock:
    def __init__(self, step: float) -> None:
        self.now = 0.0
        self.step = step

    def __call__(self) -> float:
        value = self.now
        self.now += self.step
        return value


def _client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


def test_get_returns_body() -> None:
    with _client(lambda request: httpx.Response(200, content=b"<notification/>")) as client:
        assert HttpxTransport(client).get(URL, 5.0) == b"<notification/>"


def test_transport_satisfies_protocol() -> None:
    with _client(lambda request: httpx.Response(200)) as client:
        assert isinstance(HttpxTransport(client), HttpTransport)


def test_slow_body_exceeding_deadline_times_out() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, stream=_ChunkedStream([b"a" * 10, b"b" * 10, b"c" * 10]))

    with _client(handler) as client:
        transport = HttpxTransport(client, clock=_SteppingClock(step=2.0))
        with pytest.raises(TransportTimeout) as excinfo:
            transport.get(URL, 3.0)

    assert excinfo.value.url == URL
    assert excinfo.value.timeout == 3.0


def test_httpx_timeout_maps_to_transport_timeout() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("connect timed out", request=request)

    with _client(handler) as client:
        with pytest.raises(TransportTimeout):
            HttpxTransport(client).get(URL, 1.0)


def test_connection_failure_is_plain_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with _client(handler) as client:
        with pytest.raises(TransportError) as excinfo:
            HttpxTransport(client).get(URL, 1.0)

    assert not isinstance(excinfo.value, TransportTimeout)
    assert "ConnectError" in str(excinfo.value)


@pytest.mark.parametrize("status", [301, 304, 404, 500])
def test_non_success_status_raises_status_error(status: int) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, headers={"Location": "https://elsewhere.example.net/"})

    with _client(handler) as client:
        with pytest.raises(TransportStatusError) as excinfo:
            HttpxTransport(client).get(URL, 1.0)

    assert excinfo.value.status_code == status


def test_body_failure_after_success_status_is_response_error() -> None:
    class _Broken(httpx.SyncByteStream):
        def __iter__(self) -> Iterator[bytes]:
            yield b"partial"
            raise httpx.RemoteProtocolError("peer closed connection")

    with _client(lambda request: httpx.Response(200, stream=_Broken())) as client:
        with pytest.raises(TransportResponseError) as excinfo:
            HttpxTransport(client).get(URL, 1.0)

    assert excinfo.value.status_code == 200
    assert excinfo.value.is_success_status


def test_build_http_client_applies_configuration() -> None:
    config = FetchConfiguration(user_agent="rrdp-test/1.0", timeout_sec=12.0, connect_timeout_sec=2.0)
    client = build_http_client(config, transport=httpx.MockTransport(lambda request: httpx.Response(200)))
    try:
        assert client.headers["User-Agent"] == "rrdp-test/1.0"
        assert client.follow_redirects is False
        assert client.timeout.connect == 2.0
        assert client.timeout.read == 12.0
    finally:
        client.close()


def test_use_mock_transport_routes_default_transports() -> None:
    repository = RrdpRepository()
    url = repository.put("notification.xml", b"<notification/>")

    with use_mock_transport(repository.build_httpx_transport()):
        with HttpxTransport() as transport:
            assert transport.get(url, 1.0) == b"<notification/>"

    assert repository.requested_urls() == [url]


def test_close_leaves_injected_client_open() -> None:
    client = _client(lambda request: httpx.Response(200, content=b"ok"))
    HttpxTransport(client).close()

    assert not client.is_closed
    client.close()


class _StallingServer:
    """One-shot HTTP server that sends its headers late and then never finishes the body."""

    def __init__(self, header_delay: float) -> None:
        self.header_delay = header_delay
        self.release = threading.Event()
        self._sock = socket.create_server(("127.0.0.1", 0))
        self._thread = threading.Thread(target=self._serve, daemon=True)
        host, port = self._sock.getsockname()[:2]
        self._url = f"http://{host}:{port}/snapshot.xml"

    @property
    def url(self) -> str:
        return self._url

    def _serve(self) -> None:
        conn, _ = self._sock.accept()
        with conn:
            request = b""
            while b"\r\n\r\n" not in request:
                data = conn.recv(4096)
                if not data:
                    return
                request += data
            time.sleep(self.header_delay)
            conn.sendall(b"HTTP/1.1 200 OK\r\nContent-Length: 1000\r\nContent-Type: application/xml\r\n\r\n<snap")
            self.release.wait(10)

    def __enter__(self) -> "_StallingServer":
        self._thread.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release.set()
        self._thread.join(5)
        self._sock.close()


def test_deadline_covers_late_headers_and_stalled_body() -> None:
    config = FetchConfiguration(timeout_sec=1.0)
    with _StallingServer(header_delay=0.6) as server:
        with build_http_client(config, trust_env=False) as client:
            transport = HttpxTransport(client, config=config)
            started = time.monotonic()
            with pytest.raises(TransportTimeout) as excinfo:
                transport.get(server.url, 1.0)
            elapsed = time.monotonic() - started

    assert excinfo.value.url == server.url
    # httpx alone would wait a second full read timeout for the stalled body
    assert elapsed < 1.45
