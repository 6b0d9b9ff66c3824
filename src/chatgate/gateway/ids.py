from __future__ import annotations

import itertools
import threading
import uuid
from typing import Protocol

ID_PREFIX = "chatcmpl-"


class IdGenerator(Protocol):
    def __call__(self) -> str: ...


class RandomIdGenerator:
    """Unique ids from uuid4; the default outside of tests."""

    def __call__(self) -> str:
        return f"{ID_PREFIX}{uuid.uuid4().hex}"


class CounterIdGenerator:
    """Deterministic, monotonically increasing ids."""

    def __init__(self, start: int = 1):
        self._counter = itertools.count(start)
        self._lock = threading.Lock()

    def __call__(self) -> str:
        with self._lock:
            value = next(self._counter)
        return f"{ID_PREFIX}{value}"


def make_id_generator(strategy: str) -> IdGenerator:
    if strategy == "counter":
        return CounterIdGenerator()
    return RandomIdGenerator()
