"""Quotation number generation.

Every checkout session gets a human-readable quotation number such as
``Q20261018-0007``: prefix, local date, and a sequence shared by every
generator in the process. The sequence never resets while the process
lives, so numbers stay distinct across registers, when the date rolls over,
or when the clock is adjusted backwards.
"""
import itertools
import threading
from datetime import datetime
from typing import Callable, Optional

_sequence = itertools.count(1)
_sequence_lock = threading.Lock()


def _next_sequence() -> int:
    with _sequence_lock:
        return next(_sequence)


class QuotationNumberGenerator:

    def __init__(self, prefix: str = "Q", clock: Optional[Callable[[], datetime]] = None):
        self._prefix = prefix
        self._clock = clock or datetime.now

    def next(self) -> str:
        seq = _next_sequence()
        return f"{self._prefix}{self._clock():%Y%m%d}-{seq:04d}"
