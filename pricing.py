"""
Pricing Module
==============
Order-level gatekeeping and totals.

Order-level problems (not accepting orders, closed) make the whole order
moot, so they are checked before any pricing. The delivery minimum is
checked after the total is known and tells the customer how much is
missing instead of rejecting outright.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, tzinfo
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Callable, Dict, Optional, Sequence, Tuple, Union
from zoneinfo import ZoneInfo

from prometheus_client import Counter

from config import get_config
from errors import (
    MinimumOrderValueNotMet,
    MissingRequiredField,
    NotAcceptingOrders,
    RestaurantClosed,
)
from order_items import PricedOrderItem


logger = logging.getLogger(__name__)


Clock = Callable[[], datetime]
ScheduledTime = Union[datetime, str, None]

SCHEDULE_TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})\s*([AaPp][Mm])?$")


# ============================================================================
# METRICS
# ============================================================================

order_gate_rejections = Counter(
    'order_gate_rejections_total',
    'Orders rejected before pricing',
    ['reason']
)
minimum_order_rejections = Counter(
    'minimum_order_rejections_total',
    'Delivery orders below the configured minimum'
)


class OrderType(Enum):
    DELIVERY = "DELIVERY"
    PICKUP = "PICKUP"

    @classmethod
    def parse(cls, value: Any) -> "OrderType":
        """
        Raises:
            MissingRequiredField: If value is not a known order type
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            raise MissingRequiredField("order_type", value=value)


@dataclass(frozen=True)
class RestaurantSettings:
    """Restaurant configuration consumed by the pricing aggregator."""
    accepting_orders: bool = True
    estimated_pickup_time_minutes: int = 20
    estimated_delivery_time_minutes: int = 40
    minimum_delivery_order_value: Decimal = Decimal("0.00")
    timezone: tzinfo = field(default_factory=lambda: ZoneInfo("America/Mexico_City"))

    @classmethod
    def from_config(cls) -> "RestaurantSettings":
        restaurant = get_config().restaurant
        return cls(
            accepting_orders=restaurant.accepting_orders,
            estimated_pickup_time_minutes=restaurant.estimated_pickup_time_minutes,
            estimated_delivery_time_minutes=restaurant.estimated_delivery_time_minutes,
            minimum_delivery_order_value=restaurant.minimum_delivery_order_value,
            timezone=restaurant.timezone
        )


@dataclass(frozen=True)
class PricedOrder:
    """
    Fully priced pre-order, ready for customer review and persistence.
    """
    order_type: OrderType
    items: Tuple[PricedOrderItem, ...]
    total_cost: Decimal
    estimated_time_minutes: int
    scheduled_delivery_time: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order_type": self.order_type.value,
            "items": [item.to_dict() for item in self.items],
            "total_cost": str(self.total_cost),
            "estimated_time_minutes": self.estimated_time_minutes,
            "scheduled_delivery_time": (
                self.scheduled_delivery_time.isoformat()
                if self.scheduled_delivery_time else None
            ),
        }


class OrderPricingAggregator:
    """
    Combines priced lines into an order and enforces order-level rules.

    The clock and the open-now / open-at checks are injected so pricing
    stays a pure function of its inputs.
    """

    def __init__(
        self,
        settings: RestaurantSettings,
        is_open_now: Callable[[], bool],
        clock: Optional[Clock] = None,
        is_open_at: Optional[Callable[[datetime], bool]] = None
    ):
        self.settings = settings
        self.is_open_now = is_open_now
        self.is_open_at = is_open_at
        self.clock = clock or (lambda: datetime.now(settings.timezone))

    def ensure_accepting_orders(self):
        """
        Raises:
            NotAcceptingOrders: If intake is switched off
            RestaurantClosed: If outside business hours
        """
        if not self.settings.accepting_orders:
            order_gate_rejections.labels(reason="not_accepting_orders").inc()
            logger.info("Order rejected: restaurant not accepting orders")
            raise NotAcceptingOrders()

        if not self.is_open_now():
            order_gate_rejections.labels(reason="restaurant_closed").inc()
            logger.info("Order rejected: restaurant closed")
            raise RestaurantClosed()

    def aggregate(
        self,
        items: Sequence[PricedOrderItem],
        order_type: Union[OrderType, str],
        scheduled_delivery_time: ScheduledTime = None
    ) -> PricedOrder:
        """
        Total the order and compute its estimated time.

        Raises:
            NotAcceptingOrders, RestaurantClosed: Before any pricing, or when
                the scheduled time falls outside business hours
            MinimumOrderValueNotMet: Delivery order below the minimum
        """
        self.ensure_accepting_orders()

        order_type = OrderType.parse(order_type)
        scheduled = self.resolve_scheduled_time(scheduled_delivery_time)
        if scheduled is not None:
            self.ensure_open_at(scheduled)

        total_cost = sum((item.total_price for item in items), Decimal("0.00"))

        minimum = self.settings.minimum_delivery_order_value
        if order_type is OrderType.DELIVERY and total_cost < minimum:
            minimum_order_rejections.inc()
            logger.info(
                f"Delivery order below minimum: {total_cost} < {minimum}",
                extra={"total_cost": str(total_cost), "minimum": str(minimum)}
            )
            raise MinimumOrderValueNotMet(total_cost, minimum)

        estimated = self.estimate_minutes(order_type, scheduled)

        logger.info(
            f"Order priced: {len(items)} items, total={total_cost}, "
            f"type={order_type.value}, eta={estimated}min"
        )

        return PricedOrder(
            order_type=order_type,
            items=tuple(items),
            total_cost=total_cost,
            estimated_time_minutes=estimated,
            scheduled_delivery_time=scheduled
        )

    def estimate_minutes(self, order_type: OrderType, scheduled: Optional[datetime] = None) -> int:
        """Minutes until scheduled time, or the configured estimate."""
        if scheduled is not None:
            now = self.clock().astimezone(self.settings.timezone)
            minutes = Decimal(str((scheduled - now).total_seconds())) / 60
            rounded = int(minutes.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
            return max(0, rounded)

        if order_type is OrderType.PICKUP:
            return self.settings.estimated_pickup_time_minutes
        return self.settings.estimated_delivery_time_minutes

    def resolve_scheduled_time(self, value: ScheduledTime) -> Optional[datetime]:
        """
        Localize a requested delivery time.

        Accepts an aware datetime, a naive datetime (restaurant local time)
        or a clock time ("HH:MM", "H:MM AM/PM"). A clock time that is not
        later than now means the same time tomorrow.

        Raises:
            MissingRequiredField: If value cannot be interpreted
        """
        if value is None or value == "":
            return None

        tz = self.settings.timezone

        if isinstance(value, datetime):
            if value.tzinfo is None:
                return value.replace(tzinfo=tz)
            return value.astimezone(tz)

        if isinstance(value, str):
            clock_time = parse_schedule_clock_time(value)
            now = self.clock().astimezone(tz)
            scheduled = datetime.combine(now.date(), clock_time, tzinfo=tz)
            if scheduled <= now:
                scheduled = datetime.combine(now.date() + timedelta(days=1), clock_time, tzinfo=tz)
            return scheduled

        raise MissingRequiredField("scheduled_delivery_time", value=value)

    def ensure_open_at(self, scheduled: datetime):
        """
        Raises:
            RestaurantClosed: If the restaurant is closed at the scheduled time
        """
        if self.is_open_at is None or self.is_open_at(scheduled):
            return

        order_gate_rejections.labels(reason="scheduled_while_closed").inc()
        logger.info(
            "Order rejected: scheduled outside business hours",
            extra={"scheduled_delivery_time": scheduled.isoformat()}
        )
        raise RestaurantClosed()


def parse_schedule_clock_time(value: str) -> time:
    """
    Parse "HH:MM" (24h) or "H:MM AM/PM" (12h).

    Raises:
        MissingRequiredField: If value is not a valid clock time
    """
    match = SCHEDULE_TIME_PATTERN.match(value.strip())
    if match is None:
        raise MissingRequiredField("scheduled_delivery_time", value=value)

    hours, minutes, meridiem = int(match.group(1)), int(match.group(2)), match.group(3)

    if meridiem:
        if not 1 <= hours <= 12:
            raise MissingRequiredField("scheduled_delivery_time", value=value)
        hours = hours % 12 + (12 if meridiem.upper() == "PM" else 0)

    try:
        return time(hour=hours, minute=minutes)
    except ValueError:
        raise MissingRequiredField("scheduled_delivery_time", value=value)
