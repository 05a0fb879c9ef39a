"""Shared utility functions for docstore."""

from __future__ import annotations

import threading
import time
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator


def generate_document_id() -> str:
    """Timestamp plus random suffix, e.g. ``doc_1718000000000_3f9a1c2b7``."""
    return f"doc_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def now_iso() -> str:
    """Get current timestamp as ISO string."""
    return datetime.now().isoformat()


def escape_filter_value(value: str) -> str:
    """Escape single quotes in filter values to prevent injection."""
    return value.replace("'", "''")


class ReadWriteLock:
    """Many concurrent readers or one writer.

    Writers wait for active readers to drain, and new readers wait while a
    writer is active or queued. The write side is reentrant for the owning
    thread so recovery can run inside ``add``.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer: int | None = None
        self._write_depth = 0
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        me = threading.get_ident()
        with self._cond:
            if self._writer == me:
                # Writer reading its own table
                self._readers += 1
            else:
                while self._writer is not None or self._writers_waiting:
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
    def write(self) -> Iterator[None]:
        me = threading.get_ident()
        with self._cond:
            if self._writer == me:
                self._write_depth += 1
            else:
                self._writers_waiting += 1
                try:
                    while self._writer is not None or self._readers:
                        self._cond.wait()
                finally:
                    self._writers_waiting -= 1
                self._writer = me
                self._write_depth = 1
        try:
            yield
        finally:
            with self._cond:
                self._write_depth -= 1
                if self._write_depth == 0:
                    self._writer = None
                    self._cond.notify_all()
