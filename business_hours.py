"""
Business hours check in the restaurant's local timezone.
"""

import logging
from datetime import datetime, tzinfo
from typing import Callable, Dict, FrozenSet, Optional, Tuple

from config import get_config


logger = logging.getLogger(__name__)


Clock = Callable[[], datetime]


class BusinessHours:
    """
    Weekly opening schedule.

    schedule maps weekday (Monday == 0) to (opening, closing) in minutes
    after local midnight; closing is exclusive.
    """

    def __init__(
        self,
        schedule: Dict[int, Tuple[int, int]],
        timezone: tzinfo,
        closed_weekdays: FrozenSet[int] = frozenset(),
        clock: Optional[Clock] = None
    ):
        self.schedule = dict(schedule)
        self.timezone = timezone
        self.closed_weekdays = frozenset(closed_weekdays)
        self._clock = clock or (lambda: datetime.now(self.timezone))

    @classmethod
    def from_config(cls, clock: Optional[Clock] = None) -> "BusinessHours":
        config = get_config()
        return cls(
            schedule=config.hours.schedule,
            timezone=config.restaurant.timezone,
            closed_weekdays=config.hours.closed_weekdays,
            clock=clock
        )

    def is_open_at(self, moment: datetime) -> bool:
        local = moment.astimezone(self.timezone) if moment.tzinfo else moment.replace(tzinfo=self.timezone)
        weekday = local.weekday()

        if weekday in self.closed_weekdays or weekday not in self.schedule:
            return False

        opening, closing = self.schedule[weekday]
        current = local.hour * 60 + local.minute
        return opening <= current < closing

    def is_open_now(self) -> bool:
        is_open = self.is_open_at(self._clock())
        logger.debug(f"Business hours check: {'open' if is_open else 'closed'}")
        return is_open
