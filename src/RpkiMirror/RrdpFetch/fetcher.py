# === NAVMAP v1 ===
# {
#   "module": "RpkiMirror.RrdpFetch.fetcher",
#   "purpose": "Fetch orchestrator composing notification, snapshot, and publish stages into one cycle",
#   "sections": [
#     {"id": "rrdpfetcher", "name": "RrdpFetcher", "anchor": "class-rrdpfetcher", "kind": "class"},
#     {"id": "classify", "name": "classify_failure", "anchor": "function-classify-failure", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Fetch orchestrator for one RRDP cycle.

A cycle runs notification -> snapshot -> validation -> publish extraction and
returns exactly one :data:`~RpkiMirror.RrdpFetch.models.FetchOutcome`.  Every
failure raised by the stages is classified here:

================================  =========================================
Raised                            Outcome
================================  =========================================
``SnapshotNotModified``           ``NotModified``
``SnapshotStructureError``        ``StructureError``
``TransportTimeout``              ``Aborted(reason="timeout")``
2xx ``TransportResponseError``    ``Aborted(reason="interrupted_2xx")``
any other exception               ``FatalError``
================================  =========================================

``FetchState`` is committed (snapshot URL plus staged timestamps) only when
the whole cycle succeeds.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from .errors import (
    SnapshotNotModified,
    SnapshotStructureError,
    TransportResponseError,
    TransportTimeout,
)
from .metrics import FetcherMetrics
from .models import (
    Aborted,
    FatalError,
    FetchOutcome,
    FetchState,
    FetchSuccess,
    NotModified,
    StructureError,
)
from .net import HttpTransport
from .notification import resolve_notification
from .publish import process_publish_elements
from .settings import FetchConfiguration
from .snapshot import load_snapshot, parse_snapshot, validate_snapshot_structure

__all__ = ["RrdpFetcher", "classify_failure", "ABORT_TIMEOUT", "ABORT_INTERRUPTED_2XX"]

LOGGER = logging.getLogger(__name__)

ABORT_TIMEOUT = "timeout"
ABORT_INTERRUPTED_2XX = "interrupted_2xx"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def classify_failure(exc: BaseException, url: Optional[str]) -> FetchOutcome:
    """Map an exception raised during a cycle onto a non-success outcome.

    ``url`` is the document being processed when ``exc`` was raised; errors
    that carry their own URL take precedence.
    """

    if isinstance(exc, SnapshotNotModified):
        return NotModified(exc.url)
    if isinstance(exc, SnapshotStructureError):
        return StructureError(exc.url, exc.detail)
    if isinstance(exc, TransportTimeout):
        return Aborted(exc.url, ABORT_TIMEOUT, exc)
    if isinstance(exc, TransportResponseError) and exc.is_success_status:
        return Aborted(exc.url, ABORT_INTERRUPTED_2XX, exc)
    return FatalError(getattr(exc, "url", None) or url, exc)


class RrdpFetcher:
    """Run fetch cycles against one RRDP notification URL.

    Args:
        config: Fetch settings; ``rrdp_url`` must be set.
        transport: Blocking GET primitive used for both documents.
        clock: Returns the creation time staged for newly seen content.
        metrics: Optional Prometheus instrumentation updated once per cycle.

    Raises:
        ConfigurationError: If ``config`` has no notification URL.
    """

    def __init__(
        self,
        config: FetchConfiguration,
        transport: HttpTransport,
        *,
        clock: Optional[Callable[[], datetime]] = None,
        metrics: Optional[FetcherMetrics] = None,
    ) -> None:
        self.config = config
        self.notification_url = config.require_rrdp_url()
        self.transport = transport
        self._clock = clock or _utc_now
        self.metrics = metrics

    def fetch_objects(self, state: FetchState) -> FetchOutcome:
        """Run one cycle against ``state`` and return its outcome.

        ``state`` is mutated only when the returned outcome is a
        :class:`FetchSuccess`.
        """

        timeout = self.config.timeout_sec
        started = time.perf_counter()
        current_url: Optional[str] = self.notification_url
        try:
            notification = resolve_notification(
                self.transport,
                self.notification_url,
                timeout=timeout,
                last_snapshot_url=state.last_snapshot_url,
            )
            current_url = notification.snapshot_uri
            content = load_snapshot(
                self.transport,
                notification.snapshot_uri,
                notification.snapshot_digest,
                timeout=timeout,
            )
            root = parse_snapshot(content)
            serial = validate_snapshot_structure(notification.serial, notification.snapshot_uri, root)
            result = process_publish_elements(root, state.timestamps, now=self._clock())
        except Exception as exc:
            outcome = classify_failure(exc, current_url)
            self._log_failure(outcome)
        else:
            state.timestamps.update(result.new_timestamps)
            state.last_snapshot_url = notification.snapshot_uri
            outcome = FetchSuccess(
                url=notification.snapshot_uri,
                serial=serial,
                objects=result.objects,
                collision_count=result.collision_count,
            )
            LOGGER.info(
                "loaded %d objects from snapshot %s (serial %d, %d collisions)",
                len(result.objects),
                notification.snapshot_uri,
                serial,
                result.collision_count,
                extra={
                    "stage": "fetch",
                    "outcome": outcome.kind,
                    "url": notification.snapshot_uri,
                    "serial": serial,
                    "object_count": len(result.objects),
                    "collision_count": result.collision_count,
                },
            )

        self._record(outcome, time.perf_counter() - started)
        return outcome

    def _log_failure(self, outcome: FetchOutcome) -> None:
        extra = {"stage": "fetch", "outcome": outcome.kind, "url": outcome.url}
        if isinstance(outcome, NotModified):
            return
        if isinstance(outcome, StructureError):
            LOGGER.warning("snapshot %s rejected: %s", outcome.url, outcome.detail, extra=extra)
        elif isinstance(outcome, Aborted):
            extra["reason"] = outcome.reason
            LOGGER.warning(
                "update from %s aborted (%s): %s", outcome.url, outcome.reason, outcome.cause, extra=extra
            )
        elif isinstance(outcome, FatalError):
            LOGGER.error(
                "fetch cycle failed for %s: %s",
                outcome.url,
                outcome.message,
                exc_info=outcome.cause,
                extra=extra,
            )

    def _record(self, outcome: FetchOutcome, elapsed: float) -> None:
        if self.metrics is None:
            return
        if isinstance(outcome, FetchSuccess):
            self.metrics.success(outcome.serial, outcome.collision_count, len(outcome.objects))
        elif isinstance(outcome, NotModified):
            self.metrics.not_modified()
        elif isinstance(outcome, Aborted):
            self.metrics.timeout()
        else:
            self.metrics.failure(outcome.kind)
        self.metrics.observe_duration(elapsed)
