from dataclasses import replace
from datetime import datetime
from decimal import Decimal

import pytest

from errors import (
    InvalidProduct,
    MinimumOrderValueNotMet,
    MultipleValidationErrors,
    NotAcceptingOrders,
    OrderActionRefused,
    OrderNotFound,
    RestaurantClosed,
)
from order import OrderEngine, OrderStore, PaymentStatus
from order_state import OrderStatus, StateTransitionError, cancel_refusal_message
from pricing import OrderType


BURGERS = [{"product_id": "burger", "quantity": 2}]


class TestCreateOrder:

    def test_creates_order_in_created_status(self, engine, catalog):
        order = engine.create_order("cust_1", catalog, BURGERS, "delivery")

        assert order.status is OrderStatus.CREATED
        assert order.payment_status is PaymentStatus.PENDING
        assert order.order_type is OrderType.DELIVERY
        assert order.total_cost == Decimal("200")
        assert order.estimated_time_minutes == 40
        assert order.daily_order_number == 1
        assert order.order_id.startswith("ord_")
        assert engine.get_order(order.order_id) is order

    def test_daily_numbers_increase(self, engine, catalog):
        first = engine.create_order("cust_1", catalog, BURGERS, "pickup")
        second = engine.create_order("cust_2", catalog, BURGERS, "pickup")

        assert second.daily_order_number == first.daily_order_number + 1

    def test_daily_numbers_restart_each_day(self, engine, catalog, clock):
        engine.create_order("cust_1", catalog, BURGERS, "pickup")
        engine.create_order("cust_1", catalog, BURGERS, "pickup")

        clock.advance(days=1)
        order = engine.create_order("cust_1", catalog, BURGERS, "pickup")

        assert order.daily_order_number == 1

    def test_validation_errors_create_nothing(self, engine, catalog):
        with pytest.raises(MultipleValidationErrors):
            engine.create_order("cust_1", catalog, [
                {"product_id": "sushi"},
                {"product_id": "soda"},
            ], "pickup")

        assert len(engine.store) == 0

    def test_minimum_order_value(self, engine, catalog):
        with pytest.raises(MinimumOrderValueNotMet) as exc_info:
            engine.create_order("cust_1", catalog, [{"product_id": "burger"}], "delivery")

        assert exc_info.value.difference == Decimal("50")

    def test_gate_runs_before_item_validation(self, settings, clock, catalog):
        engine = OrderEngine(
            settings=replace(settings, accepting_orders=False),
            is_open_now=lambda: True,
            clock=clock
        )

        with pytest.raises(NotAcceptingOrders):
            engine.preview_order(catalog, [{"product_id": "sushi"}], "pickup")

    def test_closed_restaurant(self, settings, clock, catalog):
        engine = OrderEngine(settings=settings, is_open_now=lambda: False, clock=clock)

        with pytest.raises(RestaurantClosed):
            engine.create_order("cust_1", catalog, BURGERS, "pickup")

    def test_preview_does_not_persist(self, engine, catalog):
        priced = engine.preview_order(catalog, BURGERS, "pickup")

        assert priced.total_cost == Decimal("200")
        assert len(engine.store) == 0
        assert engine.sequencer.peek(datetime(2026, 10, 20).date()) == 0

    def test_total_is_fixed_at_creation(self, engine, catalog):
        order = engine.create_order("cust_1", catalog, BURGERS, "pickup")

        engine.update_status(order.order_id, "accepted")
        engine.mark_paid(order.order_id)

        assert engine.get_order(order.order_id).total_cost == Decimal("200")


class TestCancelOrder:

    def test_cancel_created_order_deletes_it(self, engine, catalog):
        order = engine.create_order("cust_1", catalog, BURGERS, "pickup")

        message = engine.cancel_order(order.order_id)

        assert f"#{order.daily_order_number}" in message
        assert order.order_id not in engine.store
        with pytest.raises(OrderNotFound):
            engine.get_order(order.order_id)

    def test_cancel_accepted_order_is_refused(self, engine, catalog):
        order = engine.create_order("cust_1", catalog, BURGERS, "pickup")
        engine.update_status(order.order_id, OrderStatus.ACCEPTED)

        with pytest.raises(OrderActionRefused) as exc_info:
            engine.cancel_order(order.order_id)

        assert exc_info.value.user_message == cancel_refusal_message(OrderStatus.ACCEPTED)
        assert order.order_id in engine.store

    def test_cancel_unknown_order(self, engine):
        with pytest.raises(OrderNotFound):
            engine.cancel_order("ord_missing")


class TestModifyOrder:

    def test_modify_replaces_order_with_new_number(self, engine, catalog):
        original = engine.create_order("cust_1", catalog, BURGERS, "delivery")

        replacement = engine.modify_order(original.order_id, catalog, [
            {"product_id": "burger", "quantity": 3, "modifier_ids": ["bacon"]},
        ])

        assert replacement.daily_order_number > original.daily_order_number
        assert replacement.order_id != original.order_id
        assert replacement.customer_id == "cust_1"
        assert replacement.order_type is OrderType.DELIVERY
        assert replacement.total_cost == Decimal("345")
        assert replacement.status is OrderStatus.CREATED
        assert original.order_id not in engine.store

    def test_failed_modification_keeps_original(self, engine, catalog):
        original = engine.create_order("cust_1", catalog, BURGERS, "delivery")

        with pytest.raises(InvalidProduct):
            engine.modify_order(original.order_id, catalog, [{"product_id": "sushi"}])

        assert engine.get_order(original.order_id) is original

    def test_modify_can_change_order_type(self, engine, catalog):
        original = engine.create_order("cust_1", catalog, BURGERS, "delivery")

        replacement = engine.modify_order(
            original.order_id,
            catalog,
            [{"product_id": "water"}],
            order_type="pickup"
        )

        assert replacement.order_type is OrderType.PICKUP
        assert replacement.total_cost == Decimal("19.99")

    def test_modify_in_preparation_is_refused(self, engine, catalog):
        order = engine.create_order("cust_1", catalog, BURGERS, "pickup")
        engine.update_status(order.order_id, "accepted")
        engine.update_status(order.order_id, "in_preparation")

        with pytest.raises(OrderActionRefused) as exc_info:
            engine.modify_order(order.order_id, catalog, BURGERS)

        assert exc_info.value.action == "modify"
        assert exc_info.value.status == "in_preparation"


class TestStatusUpdates:

    def test_full_delivery_lifecycle(self, engine, catalog):
        order = engine.create_order("cust_1", catalog, BURGERS, "delivery")

        for status in ("accepted", "in_preparation", "prepared", "in_delivery", "finished"):
            engine.update_status(order.order_id, status)

        assert engine.get_order(order.order_id).status is OrderStatus.FINISHED

    def test_invalid_transition(self, engine, catalog):
        order = engine.create_order("cust_1", catalog, BURGERS, "pickup")

        with pytest.raises(StateTransitionError):
            engine.update_status(order.order_id, "in_delivery")

        assert order.status is OrderStatus.CREATED

    def test_staff_cancellation_keeps_record(self, engine, catalog):
        order = engine.create_order("cust_1", catalog, BURGERS, "pickup")

        engine.update_status(order.order_id, "canceled", reason="out of stock")

        assert engine.get_order(order.order_id).status is OrderStatus.CANCELED

    def test_mark_paid(self, engine, catalog):
        order = engine.create_order("cust_1", catalog, BURGERS, "pickup")

        engine.mark_paid(order.order_id)
        engine.mark_paid(order.order_id)

        assert order.payment_status is PaymentStatus.PAID
        assert order.to_dict()["payment_status"] == "paid"


def test_store_lists_customer_orders(engine, catalog):
    engine.create_order("cust_1", catalog, BURGERS, "pickup")
    engine.create_order("cust_2", catalog, BURGERS, "pickup")
    engine.create_order("cust_1", catalog, BURGERS, "pickup")

    assert len(engine.store.list_for_customer("cust_1")) == 2
    assert OrderStore().get("ord_missing") is None


class StaleReadStore(OrderStore):
    """Store whose reads still see orders that another worker already removed."""

    def __init__(self):
        super().__init__()
        self.stale: dict = {}

    def get(self, order_id):
        return super().get(order_id) or self.stale.get(order_id)

    def remove_behind_engine(self, order_id):
        self.stale[order_id] = super().get(order_id)
        self.delete(order_id)


class TestConcurrentRemoval:

    @pytest.fixture
    def store(self):
        return StaleReadStore()

    @pytest.fixture
    def racing_engine(self, settings, clock, store):
        return OrderEngine(settings=settings, is_open_now=lambda: True, store=store, clock=clock)

    def test_modify_after_removal_places_nothing(self, racing_engine, store, catalog):
        order = racing_engine.create_order("cust_1", catalog, BURGERS, "pickup")
        store.remove_behind_engine(order.order_id)

        with pytest.raises(OrderNotFound):
            racing_engine.modify_order(order.order_id, catalog, BURGERS)

        assert len(store) == 0
        assert racing_engine.sequencer.peek(datetime(2026, 10, 20).date()) == 1

    def test_cancel_after_removal(self, racing_engine, store, catalog):
        order = racing_engine.create_order("cust_1", catalog, BURGERS, "pickup")
        store.remove_behind_engine(order.order_id)

        with pytest.raises(OrderNotFound):
            racing_engine.cancel_order(order.order_id)


class TestTimestamps:

    def test_timestamps_come_from_engine_clock(self, engine, catalog, clock):
        order = engine.create_order("cust_1", catalog, BURGERS, "pickup")

        assert order.created_at == clock.now
        assert order.updated_at == clock.now
        assert order.created_at.tzinfo is not None

        clock.advance(minutes=5)
        engine.update_status(order.order_id, "accepted")
        assert order.updated_at == clock.now

        clock.advance(minutes=5)
        engine.mark_paid(order.order_id)
        assert order.updated_at == clock.now
        assert order.created_at < order.updated_at


def test_scheduled_time_outside_business_hours(settings, clock, catalog):
    engine = OrderEngine(
        settings=settings,
        is_open_now=lambda: True,
        clock=clock,
        is_open_at=lambda moment: moment.hour < 22
    )

    with pytest.raises(RestaurantClosed):
        engine.create_order("cust_1", catalog, BURGERS, "pickup", "23:30")

    assert len(engine.store) == 0
