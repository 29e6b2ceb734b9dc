"""
Exclusive-write / shared-read lock guarding a store and index pair.

Locking contract:
- Read locks allow concurrent readers.
- Write locks are exclusive and reentrant on the same thread.
- Read locks are reentrant, and a writer may also take read locks.
- Read -> write upgrades are NOT supported and raise RuntimeError.
- A waiting writer blocks new readers, so ingestion is never starved.
"""

import functools
import threading
from collections import defaultdict
from contextlib import contextmanager


class ReadWriteLock:
    def __init__(self) -> None:
        self._turnstile = threading.Lock()
        self._room_empty = threading.Lock()
        self._readers_lock = threading.Lock()

        self._readers = 0
        self._reader_owners = defaultdict(int)
        self._writer_owner = None
        self._writer_depth = 0

    def _tid(self) -> int:
        return threading.get_ident()

    def is_write_locked_by_current(self) -> bool:
        return self._writer_owner == self._tid()

    @contextmanager
    def read_lock(self):
        tid = self._tid()

        if self._writer_owner == tid:
            yield
            return

        # reader reentrancy: skip the turnstile so a waiting writer cannot deadlock us
        if self._reader_owners.get(tid, 0) == 0:
            with self._turnstile:
                pass

        with self._readers_lock:
            self._readers += 1
            self._reader_owners[tid] += 1
            if self._readers == 1:
                self._room_empty.acquire()

        try:
            yield
        finally:
            with self._readers_lock:
                self._readers -= 1
                self._reader_owners[tid] -= 1
                if self._reader_owners[tid] == 0:
                    del self._reader_owners[tid]
                if self._readers == 0:
                    self._room_empty.release()

    @contextmanager
    def write_lock(self):
        tid = self._tid()

        if self._writer_owner == tid:
            self._writer_depth += 1
            try:
                yield
            finally:
                self._writer_depth -= 1
            return

        if self._reader_owners.get(tid, 0) > 0:
            raise RuntimeError("read->write upgrade is not supported")

        self._turnstile.acquire()
        self._room_empty.acquire()
        self._writer_owner = tid
        self._writer_depth = 1

        try:
            yield
        finally:
            self._writer_depth -= 1
            if self._writer_depth == 0:
                self._writer_owner = None
                self._room_empty.release()
                self._turnstile.release()


def with_read_lock(method):
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._rw_lock.read_lock():
            return method(self, *args, **kwargs)
    return wrapper


def with_write_lock(method):
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._rw_lock.write_lock():
            return method(self, *args, **kwargs)
    return wrapper
