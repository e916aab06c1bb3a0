"""
Order Module
============
Order entity, in-memory order store and the engine facade.

The engine wires the pieces together:
    requested lines -> restaurant gate -> item validation -> pricing
    -> daily number -> order in status `created`

Guarantees:
- total_cost is fixed at creation (never recomputed)
- cancel and modify only while `created`
- cancel deletes the order; modify deletes it and creates a replacement
  with a fresh daily number
- status changes only through the order state machine
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import structlog
from prometheus_client import Counter, Gauge, Histogram

from business_hours import BusinessHours
from catalog import CatalogSnapshot
from errors import OrderActionRefused, OrderNotFound
from order_items import OrderItemValidator, PricedOrderItem, RequestedOrderItem, parse_requested_items
from order_state import (
    OrderLifecycle,
    OrderStatus,
    StatusLike,
    can_cancel,
    can_modify,
    cancel_confirmation_message,
    cancel_refusal_message,
    modify_refusal_message,
)
from pricing import OrderPricingAggregator, OrderType, PricedOrder, RestaurantSettings, ScheduledTime
from sequencer import DailyOrderSequencer, InMemoryDailySequencer, business_date


# Structured logging
logger = structlog.get_logger(__name__)


# ============================================================================
# METRICS
# ============================================================================

orders_created = Counter(
    'orders_created_total',
    'Orders created',
    ['order_type']
)
orders_canceled = Counter(
    'orders_canceled_total',
    'Orders canceled by the customer before acceptance'
)
orders_modified = Counter(
    'orders_modified_total',
    'Orders replaced through modification'
)
order_action_refusals = Counter(
    'order_action_refusals_total',
    'Cancel/modify requests refused by status',
    ['action', 'status']
)
order_value = Histogram(
    'order_value_dollars',
    'Order value distribution'
)
orders_active = Gauge(
    'orders_active',
    'Orders currently held in the store'
)


class PaymentStatus(Enum):
    PENDING = "pending"
    PAID = "paid"


RequestedItems = Sequence[Union[RequestedOrderItem, Mapping[str, Any]]]


# ============================================================================
# ORDER ENTITY
# ============================================================================

@dataclass
class Order:
    """
    Persisted order.

    Items and total_cost are fixed at creation; only status, payment status
    and updated_at change afterwards.
    """
    order_id: str
    daily_order_number: int
    order_type: OrderType
    customer_id: str
    items: Tuple[PricedOrderItem, ...]
    total_cost: Decimal
    estimated_time_minutes: int
    scheduled_delivery_time: Optional[datetime] = None
    status: OrderStatus = OrderStatus.CREATED
    payment_status: PaymentStatus = PaymentStatus.PENDING
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order_id": self.order_id,
            "daily_order_number": self.daily_order_number,
            "order_type": self.order_type.value,
            "customer_id": self.customer_id,
            "status": self.status.value,
            "payment_status": self.payment_status.value,
            "items": [item.to_dict() for item in self.items],
            "total_cost": str(self.total_cost),
            "estimated_time_minutes": self.estimated_time_minutes,
            "scheduled_delivery_time": (
                self.scheduled_delivery_time.isoformat()
                if self.scheduled_delivery_time else None
            ),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


# ============================================================================
# ORDER STORE
# ============================================================================

class OrderStore:
    """Process-local order registry."""

    def __init__(self):
        self._orders: Dict[str, Order] = {}

    def save(self, order: Order):
        if order.order_id not in self._orders:
            orders_active.inc()
        self._orders[order.order_id] = order

    def get(self, order_id: str) -> Optional[Order]:
        return self._orders.get(order_id)

    def delete(self, order_id: str) -> bool:
        if self._orders.pop(order_id, None) is None:
            return False
        orders_active.dec()
        return True

    def list_for_customer(self, customer_id: str) -> List[Order]:
        return sorted(
            (o for o in self._orders.values() if o.customer_id == customer_id),
            key=lambda o: o.created_at
        )

    def __len__(self):
        return len(self._orders)

    def __contains__(self, order_id: str):
        return order_id in self._orders


# ============================================================================
# ENGINE
# ============================================================================

class OrderEngine:
    """
    Order validation, pricing and lifecycle facade.

    Collaborators (restaurant settings, open-now check, clock, daily
    sequencer, store) are injected; defaults come from config.py.
    """

    def __init__(
        self,
        settings: Optional[RestaurantSettings] = None,
        is_open_now: Optional[Callable[[], bool]] = None,
        sequencer: Optional[DailyOrderSequencer] = None,
        store: Optional[OrderStore] = None,
        clock: Optional[Callable[[], datetime]] = None,
        is_open_at: Optional[Callable[[datetime], bool]] = None
    ):
        self.settings = settings or RestaurantSettings.from_config()
        self.clock = clock or (lambda: datetime.now(self.settings.timezone))

        if is_open_now is None:
            hours = BusinessHours.from_config(clock=self.clock)
            is_open_now = hours.is_open_now
            is_open_at = is_open_at or hours.is_open_at

        self.pricing = OrderPricingAggregator(self.settings, is_open_now, self.clock, is_open_at)
        self.sequencer = sequencer or InMemoryDailySequencer()
        # An empty store is falsy
        self.store = store if store is not None else OrderStore()

    # ------------------------------------------------------------------------
    # CREATION
    # ------------------------------------------------------------------------

    def preview_order(
        self,
        catalog: CatalogSnapshot,
        items: RequestedItems,
        order_type: Union[OrderType, str],
        scheduled_delivery_time: ScheduledTime = None
    ) -> PricedOrder:
        """
        Validate and price an order without persisting it (pre-order).

        Raises:
            NotAcceptingOrders, RestaurantClosed: Before any item work
            OrderError: Item problems (single or MultipleValidationErrors)
            MinimumOrderValueNotMet: Delivery order below the minimum
        """
        self.pricing.ensure_accepting_orders()

        requested = self._requested_items(items)
        priced_items = OrderItemValidator(catalog).validate_items(requested)

        return self.pricing.aggregate(priced_items, order_type, scheduled_delivery_time)

    def create_order(
        self,
        customer_id: str,
        catalog: CatalogSnapshot,
        items: RequestedItems,
        order_type: Union[OrderType, str],
        scheduled_delivery_time: ScheduledTime = None
    ) -> Order:
        """Price the order and persist it in status `created`."""
        priced = self.preview_order(catalog, items, order_type, scheduled_delivery_time)
        return self.place_order(customer_id, priced)

    def place_order(self, customer_id: str, priced: PricedOrder) -> Order:
        """Persist an approved pre-order with a fresh daily number."""
        now = self.clock()
        number = self.sequencer.next_daily_order_number(
            business_date(now, self.settings.timezone)
        )

        order = Order(
            order_id=f"ord_{uuid.uuid4().hex[:12]}",
            daily_order_number=number,
            order_type=priced.order_type,
            customer_id=customer_id,
            items=priced.items,
            total_cost=priced.total_cost,
            estimated_time_minutes=priced.estimated_time_minutes,
            scheduled_delivery_time=priced.scheduled_delivery_time,
            created_at=now,
            updated_at=now
        )
        self.store.save(order)

        orders_created.labels(order_type=order.order_type.value).inc()
        order_value.observe(float(order.total_cost))

        logger.info(
            "order_created",
            order_id=order.order_id,
            daily_order_number=number,
            customer_id=customer_id,
            order_type=order.order_type.value,
            total_cost=str(order.total_cost),
            item_count=len(order.items)
        )

        return order

    # ------------------------------------------------------------------------
    # LIFECYCLE
    # ------------------------------------------------------------------------

    def get_order(self, order_id: str) -> Order:
        """
        Raises:
            OrderNotFound: If no such order exists
        """
        order = self.store.get(order_id)
        if order is None:
            logger.warning("order_not_found", order_id=order_id)
            raise OrderNotFound(order_id)
        return order

    def cancel_order(self, order_id: str) -> str:
        """
        Cancel an order that has not been accepted yet.

        The order is deleted rather than soft-canceled.

        Returns:
            Confirmation message for the customer

        Raises:
            OrderNotFound: Unknown order
            OrderActionRefused: Status-specific refusal
        """
        order = self.get_order(order_id)

        if not can_cancel(order.status):
            self._refuse("cancel", order, cancel_refusal_message(order.status))

        # A concurrent cancel or modify may have removed it first
        if not self.store.delete(order_id):
            raise OrderNotFound(order_id)
        orders_canceled.inc()

        logger.info(
            "order_canceled",
            order_id=order_id,
            daily_order_number=order.daily_order_number
        )

        return cancel_confirmation_message(order.daily_order_number)

    def modify_order(
        self,
        order_id: str,
        catalog: CatalogSnapshot,
        items: RequestedItems,
        order_type: Union[OrderType, str, None] = None,
        scheduled_delivery_time: ScheduledTime = None
    ) -> Order:
        """
        Replace a `created` order with a re-validated one.

        The new items are priced first; only then is the original deleted
        and a new order created with a fresh daily number. Order type and
        scheduled time default to the original's.

        Raises:
            OrderNotFound, OrderActionRefused, or any pricing error (the
            original order is kept when pricing fails)
        """
        original = self.get_order(order_id)

        if not can_modify(original.status):
            self._refuse("modify", original, modify_refusal_message(original.status))

        priced = self.preview_order(
            catalog,
            items,
            order_type or original.order_type,
            scheduled_delivery_time or original.scheduled_delivery_time
        )

        # A concurrent cancel or modify may have removed it first
        if not self.store.delete(order_id):
            raise OrderNotFound(order_id)
        replacement = self.place_order(original.customer_id, priced)

        orders_modified.inc()
        logger.info(
            "order_modified",
            original_order_id=order_id,
            original_daily_order_number=original.daily_order_number,
            order_id=replacement.order_id,
            daily_order_number=replacement.daily_order_number
        )

        return replacement

    def update_status(self, order_id: str, new_status: StatusLike, reason: Optional[str] = None) -> Order:
        """
        Staff-driven status change.

        Raises:
            OrderNotFound: Unknown order
            StateTransitionError: Transition not allowed
        """
        order = self.get_order(order_id)

        lifecycle = OrderLifecycle(order.order_id, order.status)
        order.status = lifecycle.transition(new_status, reason=reason)
        order.updated_at = self.clock()

        logger.info(
            "order_status_updated",
            order_id=order_id,
            status=order.status.value,
            reason=reason
        )

        return order

    def mark_paid(self, order_id: str) -> Order:
        """Payment event: record that the order has been paid."""
        order = self.get_order(order_id)

        if order.payment_status is PaymentStatus.PAID:
            logger.warning("order_already_paid", order_id=order_id)
            return order

        order.payment_status = PaymentStatus.PAID
        order.updated_at = self.clock()

        logger.info("order_paid", order_id=order_id, total_cost=str(order.total_cost))
        return order

    # ------------------------------------------------------------------------
    # HELPERS
    # ------------------------------------------------------------------------

    def _refuse(self, action: str, order: Order, message: Optional[str]):
        order_action_refusals.labels(action=action, status=order.status.value).inc()
        logger.info(
            "order_action_refused",
            action=action,
            order_id=order.order_id,
            status=order.status.value
        )
        raise OrderActionRefused(action, order.status.value, message or "")

    @staticmethod
    def _requested_items(items: RequestedItems) -> List[RequestedOrderItem]:
        return parse_requested_items(list(items or []))
