"""Public API for the RPKI mirror's RRDP fetcher.

The fetcher polls an RRDP notification file, downloads and verifies the
snapshot it points at, and returns the deduplicated set of published objects
with content-addressed creation times.  Names are imported lazily so that
``import RpkiMirror.RrdpFetch`` stays cheap for tooling.
"""

from __future__ import annotations

__version__ = "0.1.0"

from importlib import import_module  # noqa: E402
from typing import TYPE_CHECKING, Any  # noqa: E402

from .exports import EXPORT_MAP, PUBLIC_API_MANIFEST, PUBLIC_EXPORT_NAMES  # noqa: E402

_PUBLIC_EXPORTS = tuple(PUBLIC_EXPORT_NAMES)

__all__ = [*_PUBLIC_EXPORTS, "PUBLIC_API_MANIFEST", "__version__"]

if TYPE_CHECKING:  # pragma: no cover - import for static analysis only
    from .fetcher import RrdpFetcher
    from .models import FetchOutcome, FetchState, RpkiObject
    from .net import HttpxTransport
    from .settings import load_settings


def __getattr__(name: str) -> Any:
    """Lazily import public exports on first access."""

    if name == "PUBLIC_API_MANIFEST":
        return PUBLIC_API_MANIFEST

    spec = EXPORT_MAP.get(name)
    if spec is not None and spec.name in _PUBLIC_EXPORTS:
        module = import_module(f".{spec.module}", __name__)
        value = getattr(module, spec.name)
        globals()[name] = value
        return value
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")


def __dir__() -> list[str]:
    """Expose lazily-populated attributes in ``dir()`` results."""

    return sorted(set(globals()) | set(__all__))
