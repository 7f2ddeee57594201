"""
In-process order cache.

A plain dict guarded by a readers/writer lock: any number of readers at once,
one writer with nobody else inside. Entries are never evicted.
"""
from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Optional

from orders.domain import Order


class ReadWriteLock:
    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writing = False

    @contextmanager
    def read(self):
        with self._cond:
            while self._writing:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self):
        with self._cond:
            while self._writing or self._readers:
                self._cond.wait()
            self._writing = True
        try:
            yield
        finally:
            with self._cond:
                self._writing = False
                self._cond.notify_all()


class OrderCache:
    def __init__(self) -> None:
        self._orders: Dict[str, Order] = {}
        self._lock = ReadWriteLock()

    def get(self, order_uid: str) -> Optional[Order]:
        with self._lock.read():
            return self._orders.get(order_uid)

    def contains(self, order_uid: str) -> bool:
        with self._lock.read():
            return order_uid in self._orders

    __contains__ = contains

    def put(self, order_uid: str, order: Order) -> None:
        with self._lock.write():
            self._orders[order_uid] = order

    def clear(self) -> None:
        """Forget everything, as after a process restart."""
        with self._lock.write():
            self._orders.clear()

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._orders)
