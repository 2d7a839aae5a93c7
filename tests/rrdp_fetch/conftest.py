"""Shared fixtures for the rrdp_fetch test suite."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

import pytest

from RpkiMirror.RrdpFetch.fetcher import RrdpFetcher
from RpkiMirror.RrdpFetch.logging_config import LOGGER_NAME
from RpkiMirror.RrdpFetch.models import FetchState
from RpkiMirror.RrdpFetch.net import HttpxTransport, reset_http_client
from RpkiMirror.RrdpFetch.settings import FetchConfiguration
from RpkiMirror.RrdpFetch.testing import RrdpRepository

FIXED_NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


_ENV_VARS = (
    "RRDPFETCH_RRDP_URL",
    "RRDPFETCH_TIMEOUT_SEC",
    "RRDPFETCH_LOG_LEVEL",
    "RRDPFETCH_LOG_DIR",
    "RRDPFETCH_INTERVAL_SEC",
)


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch):
    """Keep operator environment variables out of the suite."""

    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield
    reset_http_client()


@pytest.fixture(autouse=True)
def _restore_package_logger():
    """Undo handlers and propagation changes made by ``setup_logging``."""

    logger = logging.getLogger(LOGGER_NAME)
    level, propagate = logger.level, logger.propagate
    yield
    for handler in list(logger.handlers):
        if getattr(handler, "_rrdpfetch_managed", False):
            logger.removeHandler(handler)
            handler.close()
    logger.setLevel(level)
    logger.propagate = propagate


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def repository() -> RrdpRepository:
    return RrdpRepository()


@pytest.fixture
def fetch_config(repository: RrdpRepository) -> FetchConfiguration:
    return FetchConfiguration(rrdp_url=repository.notification_url, timeout_sec=5.0)


@pytest.fixture
def transport(repository: RrdpRepository):
    client = repository.build_client()
    transport = HttpxTransport(client)
    yield transport
    client.close()


@pytest.fixture
def state() -> FetchState:
    return FetchState()


@pytest.fixture
def fetcher(fetch_config, transport, fixed_now) -> RrdpFetcher:
    return RrdpFetcher(fetch_config, transport, clock=lambda: fixed_now)
