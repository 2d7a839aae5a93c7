"""Serial scheduler running fetch cycles at a fixed interval.

Cycles never overlap: :meth:`FetchScheduler.run_once` holds a lock for the
whole cycle, which is also what keeps :class:`FetchState` consistent when
another thread triggers a cycle by hand.  Failed cycles are not retried; the
next attempt simply happens one interval later.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from .fetcher import RrdpFetcher
from .models import FetchOutcome, FetchState

__all__ = ["FetchScheduler"]

LOGGER = logging.getLogger(__name__)


class FetchScheduler:
    """Drive :meth:`RrdpFetcher.fetch_objects` serially against one state object."""

    def __init__(
        self,
        fetcher: RrdpFetcher,
        state: Optional[FetchState] = None,
        *,
        interval_sec: float = 60.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if interval_sec <= 0:
            raise ValueError("interval_sec must be positive")
        self.fetcher = fetcher
        self.state = state if state is not None else FetchState()
        self.interval_sec = interval_sec
        self._sleep = sleep
        self._lock = threading.Lock()
        self.cycles = 0

    def run_once(self) -> FetchOutcome:
        """Run a single cycle while holding the scheduler lock."""

        with self._lock:
            outcome = self.fetcher.fetch_objects(self.state)
            self.cycles += 1
            cycle = self.cycles
        LOGGER.debug(
            "fetch cycle %d finished: %s",
            cycle,
            outcome.kind,
            extra={"stage": "scheduler", "outcome": outcome.kind, "url": outcome.url},
        )
        return outcome

    def run(
        self,
        max_cycles: Optional[int] = None,
        stop_event: Optional[threading.Event] = None,
        on_outcome: Optional[Callable[[FetchOutcome], None]] = None,
    ) -> int:
        """Run cycles until ``max_cycles`` is reached or ``stop_event`` is set.

        Returns:
            Number of cycles executed by this call.
        """

        executed = 0
        while max_cycles is None or executed < max_cycles:
            if stop_event is not None and stop_event.is_set():
                break
            outcome = self.run_once()
            executed += 1
            if on_outcome is not None:
                on_outcome(outcome)
            if max_cycles is not None and executed >= max_cycles:
                break
            if stop_event is not None:
                if stop_event.wait(self.interval_sec):
                    break
            else:
                self._sleep(self.interval_sec)
        return executed
