"""
Document Id Generators

All document ids come from one injected IdGenerator so that concurrent
writers never race on timestamp-derived ids.
"""

import itertools
import uuid
from abc import ABC, abstractmethod


class IdGenerator(ABC):
    """Produces unique document ids."""

    @abstractmethod
    def new_id(self, prefix: str = "") -> str:
        pass


class UuidIdGenerator(IdGenerator):
    """Random 24-hex-digit ids, optionally prefixed (e.g. ord_ab12...)."""

    def new_id(self, prefix: str = "") -> str:
        token = uuid.uuid4().hex[:24]
        return f"{prefix}_{token}" if prefix else token


class SequentialIdGenerator(IdGenerator):
    """Deterministic ids (prefix_1, prefix_2, ...) for tests and fixtures."""

    def __init__(self, start: int = 1):
        self._counter = itertools.count(start)

    def new_id(self, prefix: str = "") -> str:
        n = next(self._counter)
        return f"{prefix or 'doc'}_{n}"
