"""
supplyledger/core/locking.py

Readers-writer lock for the product ledger.

Any number of readers may hold the lock together. A writer holds it
alone. Waiting writers block new readers, so a steady stream of reads
cannot starve a mutation.
"""

import contextlib
import threading
from typing import Iterator


class ReadWriteLock:

    def __init__(self) -> None:
        self._cond            = threading.Condition(threading.Lock())
        self._readers         = 0
        self._writer          = False
        self._writers_waiting = 0

    @contextlib.contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextlib.contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()
