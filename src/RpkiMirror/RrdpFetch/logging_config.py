"""Structured logging for the RRDP fetcher.

Console output stays human readable (``LEVEL: message``) while an optional
log directory receives JSON lines with the structured ``extra`` fields each
pipeline stage attaches (``stage``, ``url``, ``serial``...).
"""

from __future__ import annotations

import gzip
import json
import logging
import sys
from datetime import datetime, timedelta, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import IO, Any, Dict, List, Optional

from .settings import LoggingConfiguration

__all__ = ["LOGGER_NAME", "JSONFormatter", "setup_logging"]

LOGGER_NAME = "RpkiMirror.RrdpFetch"

_STRUCTURED_FIELDS = (
    "stage",
    "url",
    "serial",
    "uri",
    "snapshot_url",
    "session_id",
    "status",
    "content_length",
    "outcome",
    "reason",
    "object_count",
    "collision_count",
    "kept_digest",
    "discarded_digests",
    "elapsed_sec",
)


class JSONFormatter(logging.Formatter):
    """Formatter emitting one JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        now = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: Dict[str, Any] = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in _STRUCTURED_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                payload[name] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _compress_old_log(path: Path) -> None:
    """Compress ``path`` into a ``.gz`` file and remove the original."""

    compressed_path = path.with_suffix(path.suffix + ".gz")
    with path.open("rb") as source, gzip.open(compressed_path, "wb") as target:
        target.write(source.read())
    path.unlink(missing_ok=True)


def _cleanup_logs(log_dir: Path, retention_days: int) -> List[str]:
    """Compress expired log files (rotated backups included) and delete expired archives."""

    actions: List[str] = []
    now = datetime.now(timezone.utc)
    retention_delta = timedelta(days=retention_days)
    # rotated backups are named ``*.jsonl.1`` .. ``*.jsonl.N``
    for file in sorted(log_dir.glob("*.jsonl*")):
        mtime = datetime.fromtimestamp(file.stat().st_mtime, tz=timezone.utc)
        if now - mtime <= retention_delta:
            continue
        if file.suffix == ".gz":
            file.unlink(missing_ok=True)
            actions.append(f"Deleted expired archive {file.name}")
        else:
            _compress_old_log(file)
            actions.append(f"Compressed {file.name}")
    return actions


def setup_logging(
    config: Optional[LoggingConfiguration] = None,
    *,
    log_dir: Optional[Path] = None,
    stream: Optional[IO[str]] = None,
    propagate: bool = False,
) -> logging.Logger:
    """Configure the ``RpkiMirror.RrdpFetch`` logger.

    Handlers installed by a previous call are replaced, so the function is safe
    to call once per CLI invocation or test.  ``log_dir`` overrides
    ``config.log_dir``; without either, only the console handler is installed.
    Console output goes to ``stream`` (stderr by default) so JSON printed on
    stdout by the CLI stays machine readable.
    """

    cfg = config or LoggingConfiguration()
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, cfg.level.upper(), logging.INFO))

    for handler in list(logger.handlers):
        if getattr(handler, "_rrdpfetch_managed", False):
            logger.removeHandler(handler)
            if isinstance(handler, logging.StreamHandler) and not isinstance(
                handler, logging.FileHandler
            ):
                continue
            handler.close()

    stream_handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    stream_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    stream_handler._rrdpfetch_managed = True  # type: ignore[attr-defined]
    logger.addHandler(stream_handler)

    resolved_dir = log_dir if log_dir is not None else cfg.log_dir
    if resolved_dir is not None:
        resolved_dir = Path(resolved_dir)
        resolved_dir.mkdir(parents=True, exist_ok=True)
        _cleanup_logs(resolved_dir, cfg.retention_days)

        today = datetime.now(timezone.utc).strftime("%Y%m%d")
        file_handler = RotatingFileHandler(
            resolved_dir / f"rrdp-fetch-{today}.jsonl",
            maxBytes=int(cfg.max_log_size_mb * 1024 * 1024),
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setFormatter(JSONFormatter())
        file_handler._rrdpfetch_managed = True  # type: ignore[attr-defined]
        logger.addHandler(file_handler)

    logger.propagate = propagate
    return logger
