"""Export manifest and public API surface of :mod:`RpkiMirror.RrdpFetch`."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

__all__ = [
    "ExportSpec",
    "EXPORT_MAP",
    "EXPORTS",
    "PUBLIC_API_MANIFEST",
    "PUBLIC_EXPORT_NAMES",
]


@dataclass(frozen=True)
class ExportSpec:
    """Specification for an exported symbol."""

    name: str
    """Name of the symbol."""

    module: str
    """Submodule (relative to the package) where the symbol is defined."""

    include_in_manifest: bool = True
    """Whether to include this symbol in the public API manifest."""

    doc: str = ""
    """Short documentation string."""


_CORE_SPECS = [
    ExportSpec("RrdpFetcher", "fetcher", doc="Fetch orchestrator for one notification URL"),
    ExportSpec("FetchScheduler", "scheduler", doc="Serial loop running fetch cycles"),
    ExportSpec("HttpxTransport", "net", doc="HTTPX-backed blocking transport"),
    ExportSpec("HttpTransport", "net", doc="Transport protocol"),
    ExportSpec("FetcherMetrics", "metrics", doc="Prometheus instrumentation"),
]

_MODEL_SPECS = [
    ExportSpec("FetchState", "models", doc="State threaded through fetch cycles"),
    ExportSpec("RpkiObject", "models", doc="Decoded repository object"),
    ExportSpec("NotificationDocument", "models"),
    ExportSpec("SnapshotDocument", "models"),
    ExportSpec("PublishEntry", "models"),
    ExportSpec("FetchSuccess", "models"),
    ExportSpec("NotModified", "models"),
    ExportSpec("StructureError", "models"),
    ExportSpec("Aborted", "models"),
    ExportSpec("FatalError", "models"),
    ExportSpec("FetchOutcome", "models", doc="Union of all cycle outcomes"),
    ExportSpec("ContentTimestampStore", "timestamps", doc="Digest to first-seen time mapping"),
]

_SETTINGS_SPECS = [
    ExportSpec("RrdpSettings", "settings"),
    ExportSpec("FetchConfiguration", "settings"),
    ExportSpec("load_settings", "settings", doc="Load YAML settings plus environment overrides"),
    ExportSpec("setup_logging", "logging_config", doc="Configure package logging"),
]

_ERROR_SPECS = [
    ExportSpec("RrdpFetchError", "errors"),
    ExportSpec("ConfigurationError", "errors"),
    ExportSpec("SnapshotNotModified", "errors"),
    ExportSpec("SnapshotStructureError", "errors"),
    ExportSpec("RepoUpdateAborted", "errors"),
    ExportSpec("FetcherError", "errors"),
]

EXPORTS: list[ExportSpec] = [*_CORE_SPECS, *_MODEL_SPECS, *_SETTINGS_SPECS, *_ERROR_SPECS]

# symbol name -> spec
EXPORT_MAP: dict[str, ExportSpec] = {spec.name: spec for spec in EXPORTS}

PUBLIC_API_MANIFEST: dict[str, Any] = {
    "version": "1.0.0",
    "modules": sorted({spec.module for spec in EXPORTS}),
    "symbols": [spec.name for spec in EXPORTS if spec.include_in_manifest],
}

PUBLIC_EXPORT_NAMES: list[str] = [spec.name for spec in EXPORTS if spec.include_in_manifest]
