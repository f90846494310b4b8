"""
Thread-safe stopwatch measuring the run time of the crawler.
"""

import time
from datetime import timedelta
from typing import Callable, Dict, Optional

from ..exceptions import CrawlerStateError
from .locks import ReadWriteLock


class Stopwatch:
    """
    Accumulates elapsed time over one or more start/stop intervals.

    Reads (is_running, elapsed) take a shared lock so a control thread can
    query the crawler while the crawl loop starts and stops the stopwatch.
    """

    def __init__(self, time_source: Callable[[], float] = time.monotonic):
        self._time_source = time_source
        self._lock = ReadWriteLock()
        self._start_time: Optional[float] = None
        self._accumulated = 0.0
        self._is_running = False

    def start(self):
        """Start the stopwatch."""
        with self._lock.write_lock():
            if self._is_running:
                raise CrawlerStateError("The stopwatch is already running.")

            self._start_time = self._time_source()
            self._is_running = True

    def stop(self):
        """Stop the stopwatch and add the current interval to the total."""
        with self._lock.write_lock():
            if not self._is_running:
                raise CrawlerStateError("The stopwatch is not running.")

            self._accumulated += self._time_source() - self._start_time
            self._is_running = False

    def is_running(self) -> bool:
        with self._lock.read_lock():
            return self._is_running

    def elapsed(self) -> timedelta:
        """Return the elapsed duration, including the running interval."""
        with self._lock.read_lock():
            seconds = self._accumulated
            if self._is_running:
                seconds += self._time_source() - self._start_time
            return timedelta(seconds=seconds)

    def snapshot(self) -> Dict[str, float]:
        return {'accumulated_seconds': self.elapsed().total_seconds()}

    def restore(self, data: Dict[str, float]):
        with self._lock.write_lock():
            if self._is_running:
                raise CrawlerStateError("Cannot restore a running stopwatch.")
            self._accumulated = float(data.get('accumulated_seconds', 0.0))
            self._start_time = None
