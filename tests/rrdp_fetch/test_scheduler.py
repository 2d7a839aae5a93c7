"""Serial scheduling of fetch cycles."""

from __future__ import annotations

import logging
import threading

import pytest

from RpkiMirror.RrdpFetch.fetcher import RrdpFetcher
from RpkiMirror.RrdpFetch.models import FetchSuccess, NotModified
from RpkiMirror.RrdpFetch.scheduler import FetchScheduler
from RpkiMirror.RrdpFetch.testing import ResponseSpec

A = "rsync://rpki.example.net/repo/a.cer"


def test_run_once_threads_state_between_cycles(repository, fetcher) -> None:
    repository.publish_snapshot(1, [(A, b"X")])
    scheduler = FetchScheduler(fetcher, interval_sec=1.0)

    first = scheduler.run_once()
    second = scheduler.run_once()

    assert isinstance(first, FetchSuccess)
    assert isinstance(second, NotModified)
    assert scheduler.state.last_snapshot_url == first.url
    assert scheduler.cycles == 2


def test_run_sleeps_between_cycles_and_reports_outcomes(repository, fetcher) -> None:
    snapshot_url = repository.publish_snapshot(1, [(A, b"X")])
    repository.queue_fault(snapshot_url, ResponseSpec(timeout=True))
    sleeps = []
    outcomes = []
    scheduler = FetchScheduler(fetcher, interval_sec=30.0, sleep=sleeps.append)

    executed = scheduler.run(max_cycles=3, on_outcome=outcomes.append)

    assert executed == 3
    # a failed cycle is not retried early; the next attempt waits a full interval
    assert sleeps == [30.0, 30.0]
    assert [outcome.kind for outcome in outcomes] == ["aborted", "success", "not_modified"]


def test_run_stops_when_event_is_set(repository, fetcher) -> None:
    repository.publish_snapshot(1, [(A, b"X")])
    stop = threading.Event()
    scheduler = FetchScheduler(fetcher, interval_sec=3600.0)

    executed = scheduler.run(stop_event=stop, on_outcome=lambda outcome: stop.set())

    assert executed == 1


def test_run_does_nothing_when_already_stopped(fetcher) -> None:
    stop = threading.Event()
    stop.set()

    assert FetchScheduler(fetcher).run(stop_event=stop) == 0


def test_interval_must_be_positive(fetcher) -> None:
    with pytest.raises(ValueError):
        FetchScheduler(fetcher, interval_sec=0)


class _GatedTransport:
    """Holds the first request until ``release`` is set."""

    def __init__(self, inner) -> None:
        self.inner = inner
        self.entered = threading.Event()
        self.release = threading.Event()
        self.calls = 0
        self._lock = threading.Lock()

    def get(self, url: str, timeout: float) -> bytes:
        with self._lock:
            self.calls += 1
            first = self.calls == 1
        if first:
            self.entered.set()
            assert self.release.wait(5)
        return self.inner.get(url, timeout)


def test_concurrent_run_once_waits_for_the_running_cycle(repository, transport, fetch_config, fixed_now) -> None:
    repository.publish_snapshot(1, [(A, b"X")])
    gated = _GatedTransport(transport)
    scheduler = FetchScheduler(RrdpFetcher(fetch_config, gated, clock=lambda: fixed_now))
    outcomes = {}

    first = threading.Thread(target=lambda: outcomes.setdefault("first", scheduler.run_once()))
    second = threading.Thread(target=lambda: outcomes.setdefault("second", scheduler.run_once()))
    first.start()
    assert gated.entered.wait(5)
    second.start()
    second.join(0.3)

    # the second cycle is parked on the scheduler lock, not inside the fetcher
    assert second.is_alive()
    assert gated.calls == 1

    gated.release.set()
    first.join(5)
    second.join(5)

    assert isinstance(outcomes["first"], FetchSuccess)
    assert outcomes["second"] == NotModified(outcomes["first"].url)
    assert scheduler.cycles == 2


def test_cycle_numbers_are_logged_in_order(repository, fetcher, caplog) -> None:
    repository.publish_snapshot(1, [(A, b"X")])
    scheduler = FetchScheduler(fetcher)

    with caplog.at_level(logging.DEBUG, logger="RpkiMirror.RrdpFetch.scheduler"):
        scheduler.run_once()
        scheduler.run_once()

    messages = [record.getMessage() for record in caplog.records if record.name.endswith("scheduler")]
    assert messages == ["fetch cycle 1 finished: success", "fetch cycle 2 finished: not_modified"]
