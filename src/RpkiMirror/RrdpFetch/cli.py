# === NAVMAP v1 ===
# {
#   "module": "RpkiMirror.RrdpFetch.cli",
#   "purpose": "Operator CLI: single fetch cycles, the watch loop, and effective configuration",
#   "sections": [
#     {"id": "helpers", "name": "Settings and output helpers", "anchor": "HELP", "kind": "helpers"},
#     {"id": "fetch", "name": "fetch", "anchor": "function-fetch", "kind": "function"},
#     {"id": "watch", "name": "watch", "anchor": "function-watch", "kind": "function"},
#     {"id": "show-config", "name": "show_config", "anchor": "function-show-config", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Command line interface for the RRDP fetcher.

Provides:
- rrdp-fetch fetch - Run one fetch cycle and report its outcome
- rrdp-fetch watch - Run cycles serially at the configured interval
- rrdp-fetch show-config - Print the effective settings

``fetch`` exits with 0 for success or not-modified, 1 for fatal errors
(including configuration problems), 2 for structure errors and 3 for aborted
cycles.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import typer
from pydantic import ValidationError as PydanticValidationError

from .errors import ConfigurationError
from .fetcher import RrdpFetcher
from .logging_config import setup_logging
from .metrics import FetcherMetrics, start_metrics_server
from .models import Aborted, FatalError, FetchOutcome, FetchState, FetchSuccess, StructureError
from .net import HttpxTransport
from .scheduler import FetchScheduler
from .settings import RrdpSettings, load_settings

__all__ = ["app", "main", "EXIT_CODES", "outcome_summary"]

logger = logging.getLogger(__name__)

EXIT_CODES: Dict[str, int] = {
    "success": 0,
    "not_modified": 0,
    "fatal": 1,
    "structure_error": 2,
    "aborted": 3,
}

app = typer.Typer(
    name="rrdp-fetch",
    help="Fetch and validate RRDP snapshots from an RPKI publication point",
    no_args_is_help=True,
)


# --- Settings and output helpers ----------------------------------------------


def _resolve_settings(
    config: Optional[Path],
    *,
    url: Optional[str] = None,
    timeout: Optional[float] = None,
    log_level: Optional[str] = None,
    interval: Optional[float] = None,
) -> RrdpSettings:
    settings = load_settings(config)
    try:
        if url is not None:
            settings.fetch.rrdp_url = url
        if timeout is not None:
            settings.fetch.timeout_sec = timeout
        if log_level is not None:
            settings.logging.level = log_level
        if interval is not None:
            settings.scheduler.interval_sec = interval
    except PydanticValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
        )
        raise ConfigurationError(f"Invalid command line option: {problems}") from exc
    return settings


def _load_or_exit(config: Optional[Path], **overrides: Any) -> RrdpSettings:
    try:
        settings = _resolve_settings(config, **overrides)
        settings.fetch.require_rrdp_url()
    except ConfigurationError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=EXIT_CODES["fatal"]) from exc
    return settings


def outcome_summary(outcome: FetchOutcome, *, include_objects: bool = False) -> Dict[str, Any]:
    """Return a JSON friendly description of ``outcome``."""

    summary: Dict[str, Any] = {"kind": outcome.kind, "url": outcome.url}
    if isinstance(outcome, FetchSuccess):
        summary["serial"] = outcome.serial
        summary["object_count"] = len(outcome.objects)
        summary["collision_count"] = outcome.collision_count
        if include_objects:
            summary["objects"] = [obj.to_mapping() for obj in outcome.objects.values()]
    elif isinstance(outcome, StructureError):
        summary["detail"] = outcome.detail
    elif isinstance(outcome, Aborted):
        summary["reason"] = outcome.reason
        summary["error"] = str(outcome.cause) if outcome.cause is not None else None
    elif isinstance(outcome, FatalError):
        summary["error"] = outcome.message
    return summary


def _format_summary(summary: Dict[str, Any]) -> str:
    return "\n".join(f"{key}: {value}" for key, value in summary.items() if key != "objects")


# --- Commands -----------------------------------------------------------------


@app.command("fetch")
def fetch(
    url: Optional[str] = typer.Option(None, "--url", help="RRDP notification URL"),
    config: Optional[Path] = typer.Option(None, "--config", help="YAML settings file"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Per-request deadline in seconds"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING or ERROR"),
    as_json: bool = typer.Option(False, "--json", help="Emit the outcome (with objects) as JSON"),
) -> None:
    """Run a single fetch cycle."""

    settings = _load_or_exit(config, url=url, timeout=timeout, log_level=log_level)
    setup_logging(settings.logging)

    with HttpxTransport(config=settings.fetch) as transport:
        fetcher = RrdpFetcher(settings.fetch, transport)
        outcome = fetcher.fetch_objects(FetchState())

    if as_json:
        typer.echo(json.dumps(outcome_summary(outcome, include_objects=True), indent=2))
    else:
        typer.echo(_format_summary(outcome_summary(outcome)))
    raise typer.Exit(code=EXIT_CODES[outcome.kind])


@app.command("watch")
def watch(
    url: Optional[str] = typer.Option(None, "--url", help="RRDP notification URL"),
    config: Optional[Path] = typer.Option(None, "--config", help="YAML settings file"),
    interval: Optional[float] = typer.Option(None, "--interval", help="Seconds between cycles"),
    cycles: Optional[int] = typer.Option(None, "--cycles", min=1, help="Stop after this many cycles"),
    metrics_port: Optional[int] = typer.Option(
        None, "--metrics-port", help="Expose Prometheus metrics on this port"
    ),
) -> None:
    """Run fetch cycles serially until interrupted."""

    settings = _load_or_exit(config, url=url, interval=interval)
    setup_logging(settings.logging)

    metrics = FetcherMetrics()
    if metrics_port is not None or settings.metrics.enabled:
        port = metrics_port if metrics_port is not None else settings.metrics.port
        start_metrics_server(settings.metrics.host, port, metrics.registry)

    def _report(outcome: FetchOutcome) -> None:
        summary = outcome_summary(outcome)
        typer.echo(" ".join(f"{key}={value}" for key, value in summary.items()))

    with HttpxTransport(config=settings.fetch) as transport:
        fetcher = RrdpFetcher(settings.fetch, transport, metrics=metrics)
        scheduler = FetchScheduler(fetcher, interval_sec=settings.scheduler.interval_sec)
        try:
            scheduler.run(max_cycles=cycles, on_outcome=_report)
        except KeyboardInterrupt:
            typer.echo("stopped", err=True)


@app.command("show-config")
def show_config(
    config: Optional[Path] = typer.Option(None, "--config", help="YAML settings file"),
) -> None:
    """Print the effective settings (defaults, file, environment) as JSON."""

    try:
        settings = load_settings(config)
    except ConfigurationError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=EXIT_CODES["fatal"]) from exc
    typer.echo(json.dumps(settings.model_dump(mode="json"), indent=2))


def main() -> None:
    """Console script entry point."""

    app()
