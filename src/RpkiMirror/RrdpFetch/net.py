# === NAVMAP v1 ===
# {
#   "module": "RpkiMirror.RrdpFetch.net",
#   "purpose": "Blocking GET-with-deadline transport over HTTPX with structured failure signals",
#   "sections": [
#     {"id": "protocol", "name": "Transport protocol", "anchor": "PROTO", "kind": "api"},
#     {"id": "helpers", "name": "Client construction helpers", "anchor": "HELP", "kind": "helpers"},
#     {"id": "watchdog", "name": "Deadline watchdog", "anchor": "WDG", "kind": "helpers"},
#     {"id": "transport", "name": "HTTPX transport", "anchor": "API", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""HTTP transport used by the notification resolver and snapshot loader.

The pipeline only needs one primitive, ``get(url, timeout) -> bytes``.  The
HTTPX implementation streams the body and enforces ``timeout`` as a wall-clock
deadline over the whole request: a watchdog timer shuts the connection down
when the deadline passes, whichever phase the request is in.  Failures are
translated into structured signals instead of leaking HTTPX exception types:

* :class:`TransportTimeout` when the deadline (or an HTTPX timeout) elapses;
* :class:`TransportStatusError` for non-2xx responses;
* :class:`TransportResponseError` when a status line arrived but the body failed;
* :class:`TransportError` for anything else (DNS, connect, TLS, protocol).
"""

from __future__ import annotations

import logging
import socket
import ssl
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Protocol, Union, runtime_checkable

import certifi
import httpx

from .errors import TransportError, TransportResponseError, TransportStatusError, TransportTimeout
from .settings import FetchConfiguration

__all__ = [
    "HttpTransport",
    "HttpxTransport",
    "build_http_client",
    "configure_http_client",
    "reset_http_client",
]

LOGGER = logging.getLogger(__name__)

_CLIENT_LOCK = threading.Lock()
_CLIENT_OVERRIDE: Optional[httpx.Client] = None

# --- Transport protocol -------------------------------------------------------


@runtime_checkable
class HttpTransport(Protocol):
    """Blocking GET primitive consumed by the fetch pipeline."""

    def get(self, url: str, timeout: float) -> bytes:
        ...


# --- Client construction helpers ----------------------------------------------


def _build_ssl_context() -> ssl.SSLContext:
    context = ssl.create_default_context()
    context.load_verify_locations(certifi.where())
    return context


def _timeout_for(config: FetchConfiguration, total: float) -> httpx.Timeout:
    connect = min(config.connect_timeout_sec, total)
    return httpx.Timeout(connect=connect, read=total, write=total, pool=connect)


def _request_hook(request: httpx.Request) -> None:
    request.extensions["rrdp_start_time"] = time.perf_counter()
    LOGGER.debug("rrdp-http-request", extra={"stage": "http", "url": str(request.url)})


def _response_hook(response: httpx.Response) -> None:
    start = response.request.extensions.get("rrdp_start_time")
    elapsed: Optional[float] = None
    if isinstance(start, (int, float)):
        elapsed = round(time.perf_counter() - start, 4)
    LOGGER.debug(
        "rrdp-http-response",
        extra={
            "stage": "http",
            "url": str(response.request.url),
            "status": response.status_code,
            "elapsed_sec": elapsed,
        },
    )


def build_http_client(config: Optional[FetchConfiguration] = None, **client_kwargs) -> httpx.Client:
    """Create the HTTPX client used for notification and snapshot requests.

    Redirects are not followed; a 3xx answer is reported as a status error.
    Extra keyword arguments (for example ``transport=`` in tests) are passed to
    :class:`httpx.Client` and take precedence over the defaults.
    """

    cfg = config or FetchConfiguration()
    verify: Union[bool, ssl.SSLContext] = _build_ssl_context() if cfg.verify_tls else False
    options = dict(
        http2=cfg.http2_enabled,
        timeout=_timeout_for(cfg, cfg.timeout_sec),
        verify=verify,
        trust_env=True,
        follow_redirects=False,
        headers={"User-Agent": cfg.user_agent},
        event_hooks={"request": [_request_hook], "response": [_response_hook]},
    )
    options.update(client_kwargs)
    return httpx.Client(**options)


def configure_http_client(client: Optional[httpx.Client]) -> None:
    """Install ``client`` for every :class:`HttpxTransport` built without one (test helper)."""

    global _CLIENT_OVERRIDE
    with _CLIENT_LOCK:
        _CLIENT_OVERRIDE = client


def reset_http_client() -> None:
    """Drop the override installed by :func:`configure_http_client`."""

    configure_http_client(None)


def _override_client() -> Optional[httpx.Client]:
    with _CLIENT_LOCK:
        return _CLIENT_OVERRIDE


# --- Deadline watchdog --------------------------------------------------------

_STREAM_TRACE_EVENTS = ("connection.connect_tcp.complete", "connection.start_tls.complete")


class _DeadlineWatchdog:
    """Abort the connection of an in-flight request once its deadline passes.

    HTTPX timeouts apply per network operation, so a peer that answers just
    inside each of them can stretch a request well past ``timeout``.  The
    watchdog shuts the socket down from a timer thread, which wakes any read
    blocked on it.  The network stream is picked up from the ``trace``
    extension for new connections and from the response for pooled ones.
    """

    def __init__(self, timeout: float) -> None:
        self.expired = threading.Event()
        self._lock = threading.Lock()
        self._stream: Any = None
        self._response: Optional[httpx.Response] = None
        self._timer = threading.Timer(timeout, self._expire)
        self._timer.daemon = True

    def __enter__(self) -> "_DeadlineWatchdog":
        self._timer.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._timer.cancel()

    def trace(self, event_name: str, info: Dict[str, Any]) -> None:
        if event_name in _STREAM_TRACE_EVENTS:
            self.attach(stream=info.get("return_value"))

    def attach(self, *, stream: Any = None, response: Optional[httpx.Response] = None) -> None:
        with self._lock:
            if stream is not None:
                self._stream = stream
            if response is not None:
                self._response = response
        if self.expired.is_set():
            self._abort()

    def _expire(self) -> None:
        self.expired.set()
        self._abort()

    def _abort(self) -> None:
        with self._lock:
            stream, response = self._stream, self._response
        sock = stream.get_extra_info("socket") if stream is not None else None
        if isinstance(sock, socket.socket):
            try:
                # base-class shutdown leaves an SSLSocket's TLS object to the reading thread
                socket.socket.shutdown(sock, socket.SHUT_RDWR)
            except OSError as exc:
                LOGGER.debug("rrdp-http-abort", extra={"stage": "http", "reason": str(exc)})
        elif response is not None:
            response.close()


# --- HTTPX transport ----------------------------------------------------------


class HttpxTransport:
    """:class:`HttpTransport` implementation backed by a shared :class:`httpx.Client`."""

    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        *,
        config: Optional[FetchConfiguration] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or FetchConfiguration()
        if client is None:
            client = _override_client()
        self._owns_client = client is None
        self._client = client if client is not None else build_http_client(self._config)
        self._clock = clock

    @property
    def client(self) -> httpx.Client:
        return self._client

    def get(self, url: str, timeout: float) -> bytes:
        """Fetch ``url`` and return the full body, enforcing ``timeout`` as a deadline."""

        deadline = self._clock() + timeout
        with _DeadlineWatchdog(timeout) as watchdog:
            try:
                with self._client.stream(
                    "GET",
                    url,
                    timeout=_timeout_for(self._config, timeout),
                    extensions={"trace": watchdog.trace},
                ) as response:
                    watchdog.attach(stream=response.extensions.get("network_stream"), response=response)
                    status = response.status_code
                    if not 200 <= status < 300:
                        raise TransportStatusError(url, status)
                    return self._read_body(response, url, status, timeout, deadline, watchdog)
            except httpx.TimeoutException as exc:
                raise TransportTimeout(url, timeout) from exc
            except httpx.HTTPError as exc:
                if watchdog.expired.is_set():
                    raise TransportTimeout(url, timeout) from exc
                raise TransportError(url, f"{type(exc).__name__}: {exc}") from exc

    def _read_body(
        self,
        response: httpx.Response,
        url: str,
        status: int,
        timeout: float,
        deadline: float,
        watchdog: _DeadlineWatchdog,
    ) -> bytes:
        chunks: List[bytes] = []
        try:
            for chunk in response.iter_bytes():
                chunks.append(chunk)
                if self._clock() > deadline:
                    raise TransportTimeout(url, timeout)
        except httpx.TimeoutException as exc:
            raise TransportTimeout(url, timeout) from exc
        except httpx.HTTPError as exc:
            if watchdog.expired.is_set():
                raise TransportTimeout(url, timeout) from exc
            raise TransportResponseError(url, status, f"{type(exc).__name__}: {exc}") from exc
        # a close-delimited body ends early when the watchdog shuts the socket
        if watchdog.expired.is_set() or self._clock() > deadline:
            raise TransportTimeout(url, timeout)
        return b"".join(chunks)

    def close(self) -> None:
        """Close the underlying client when this transport created it."""

        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "HttpxTransport":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
