"""
Reader/writer lock used by the shared crawl state (stopwatch, stats).
"""

import threading
from contextlib import contextmanager


class ReadWriteLock:
    """
    Lock allowing many concurrent readers or a single writer.

    The writer thread may re-acquire the write lock and may take the read
    lock while holding it.
    """

    def __init__(self):
        self._condition = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = None
        self._writer_depth = 0

    def acquire_read(self):
        with self._condition:
            if self._writer == threading.get_ident():
                self._readers += 1
                return
            while self._writer is not None:
                self._condition.wait()
            self._readers += 1

    def release_read(self):
        with self._condition:
            if self._readers <= 0:
                raise RuntimeError("Read lock released more times than acquired")
            self._readers -= 1
            if self._readers == 0:
                self._condition.notify_all()

    def acquire_write(self):
        me = threading.get_ident()
        with self._condition:
            if self._writer == me:
                self._writer_depth += 1
                return
            while self._writer is not None or self._readers > 0:
                self._condition.wait()
            self._writer = me
            self._writer_depth = 1

    def release_write(self):
        with self._condition:
            if self._writer != threading.get_ident():
                raise RuntimeError("Write lock released by a thread that does not hold it")
            self._writer_depth -= 1
            if self._writer_depth == 0:
                self._writer = None
                self._condition.notify_all()

    @contextmanager
    def read_lock(self):
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write_lock(self):
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()
