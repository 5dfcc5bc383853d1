from __future__ import annotations

import threading
import time
from typing import Callable


class InvoiceNumberGenerator:
    """Issues F-<ticks> numbers, where a tick is 100ns since the epoch.

    Ticks are strictly increasing per generator, so two calls never return
    the same number even inside the same clock tick. Across processes the
    UNIQUE constraint on invoices.number is the backstop.
    """

    def __init__(self, prefix: str = "F-", clock_ns: Callable[[], int] = time.time_ns):
        self.prefix = prefix
        self.clock_ns = clock_ns
        self._last = 0
        self._lock = threading.Lock()

    def next_number(self) -> str:
        with self._lock:
            ticks = max(self.clock_ns() // 100, self._last + 1)
            self._last = ticks
        return f"{self.prefix}{ticks}"


default_generator = InvoiceNumberGenerator()
