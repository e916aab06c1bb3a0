"""
Daily order numbers.

The engine consumes next_daily_order_number(day) as one atomic operation
and never retries a number. Production deployments back this with the
database (single increment-and-read per day); InMemoryDailySequencer is the
process-local implementation.
"""

import logging
import threading
from datetime import date, datetime, tzinfo
from typing import Dict, Protocol


logger = logging.getLogger(__name__)


class DailyOrderSequencer(Protocol):
    def next_daily_order_number(self, day: date) -> int:
        ...


class InMemoryDailySequencer:
    """Per-day counter; increments are serialized by a lock."""

    def __init__(self):
        self._counters: Dict[date, int] = {}
        self._lock = threading.Lock()

    def next_daily_order_number(self, day: date) -> int:
        with self._lock:
            number = self._counters.get(day, 0) + 1
            self._counters[day] = number

        logger.debug(f"Daily order number {number} issued for {day.isoformat()}")
        return number

    def peek(self, day: date) -> int:
        """Last number issued for day (0 if none)."""
        with self._lock:
            return self._counters.get(day, 0)


def business_date(moment: datetime, timezone: tzinfo) -> date:
    """Calendar day of moment in the restaurant's timezone."""
    if moment.tzinfo is None:
        return moment.date()
    return moment.astimezone(timezone).date()
