from dataclasses import replace
from datetime import datetime, time, timedelta
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest

from business_hours import BusinessHours
from errors import MinimumOrderValueNotMet, MissingRequiredField, NotAcceptingOrders, RestaurantClosed
from order_items import PricedOrderItem
from pricing import OrderPricingAggregator, OrderType, parse_schedule_clock_time


MEXICO_CITY = ZoneInfo("America/Mexico_City")


def line(total):
    total = Decimal(total)
    return PricedOrderItem(
        product_id="burger",
        quantity=1,
        base_price=total,
        modifiers_price=Decimal("0"),
        unit_price=total,
        total_price=total,
        product_name="Burger"
    )


@pytest.fixture
def aggregator(settings, clock):
    return OrderPricingAggregator(settings, lambda: True, clock)


class TestGate:

    def test_not_accepting_orders(self, settings, clock):
        aggregator = OrderPricingAggregator(replace(settings, accepting_orders=False), lambda: True, clock)

        with pytest.raises(NotAcceptingOrders):
            aggregator.aggregate([line("200")], OrderType.PICKUP)

    def test_closed(self, settings, clock):
        aggregator = OrderPricingAggregator(settings, lambda: False, clock)

        with pytest.raises(RestaurantClosed):
            aggregator.aggregate([line("200")], OrderType.PICKUP)

    def test_not_accepting_takes_precedence_over_closed(self, settings, clock):
        aggregator = OrderPricingAggregator(replace(settings, accepting_orders=False), lambda: False, clock)

        with pytest.raises(NotAcceptingOrders):
            aggregator.ensure_accepting_orders()


class TestMinimumOrderValue:

    def test_below_minimum_reports_difference(self, aggregator):
        with pytest.raises(MinimumOrderValueNotMet) as exc_info:
            aggregator.aggregate([line("120")], OrderType.DELIVERY)

        error = exc_info.value
        assert error.current_value == Decimal("120")
        assert error.minimum_value == Decimal("150")
        assert error.difference == Decimal("30")
        assert "$30.00" in error.user_message

    def test_exactly_at_minimum(self, aggregator):
        priced = aggregator.aggregate([line("100"), line("50")], OrderType.DELIVERY)

        assert priced.total_cost == Decimal("150")

    def test_one_cent_below_minimum(self, aggregator):
        with pytest.raises(MinimumOrderValueNotMet) as exc_info:
            aggregator.aggregate([line("149.99")], OrderType.DELIVERY)

        assert exc_info.value.difference == Decimal("0.01")

    def test_pickup_is_exempt(self, aggregator):
        priced = aggregator.aggregate([line("20")], OrderType.PICKUP)

        assert priced.total_cost == Decimal("20")


class TestEstimatedTime:

    def test_configured_estimates(self, aggregator):
        assert aggregator.aggregate([line("20")], "pickup").estimated_time_minutes == 20
        assert aggregator.aggregate([line("200")], "DELIVERY").estimated_time_minutes == 40

    def test_scheduled_clock_time(self, aggregator):
        priced = aggregator.aggregate([line("200")], OrderType.DELIVERY, "15:30")

        assert priced.estimated_time_minutes == 90
        assert priced.scheduled_delivery_time == datetime(2026, 10, 20, 15, 30, tzinfo=MEXICO_CITY)

    def test_half_minutes_round_up(self, aggregator, clock):
        scheduled = clock.now + timedelta(minutes=10, seconds=30)

        priced = aggregator.aggregate([line("200")], OrderType.DELIVERY, scheduled)

        assert priced.estimated_time_minutes == 11

    def test_past_schedule_is_zero(self, aggregator, clock):
        priced = aggregator.aggregate([line("200")], OrderType.DELIVERY, clock.now - timedelta(hours=1))

        assert priced.estimated_time_minutes == 0

    def test_naive_schedule_is_local_time(self, aggregator):
        priced = aggregator.aggregate([line("200")], OrderType.PICKUP, datetime(2026, 10, 20, 14, 45))

        assert priced.estimated_time_minutes == 45

    def test_unparseable_schedule(self, aggregator):
        with pytest.raises(MissingRequiredField):
            aggregator.aggregate([line("200")], OrderType.PICKUP, "half past three")


def test_unknown_order_type(aggregator):
    with pytest.raises(MissingRequiredField) as exc_info:
        aggregator.aggregate([line("200")], "DRIVE_THRU")

    assert exc_info.value.field == "order_type"


def test_priced_order_to_dict(aggregator):
    report = aggregator.aggregate([line("19.99"), line("0.01")], OrderType.PICKUP).to_dict()

    assert report["order_type"] == "PICKUP"
    assert report["total_cost"] == "20.00"
    assert len(report["items"]) == 2


class TestScheduledTime:

    @pytest.fixture
    def hours(self, clock):
        schedule = {day: (13 * 60, 22 * 60) for day in range(6)}
        schedule[6] = (13 * 60, 21 * 60)
        return BusinessHours(schedule, MEXICO_CITY, closed_weekdays=frozenset({0}), clock=clock)

    @pytest.fixture
    def scheduling(self, settings, clock, hours):
        return OrderPricingAggregator(settings, lambda: True, clock, hours.is_open_at)

    def test_past_clock_time_means_tomorrow(self, scheduling):
        priced = scheduling.aggregate([line("200")], OrderType.DELIVERY, "13:00")

        assert priced.scheduled_delivery_time == datetime(2026, 10, 21, 13, 0, tzinfo=MEXICO_CITY)
        assert priced.estimated_time_minutes == 23 * 60

    def test_current_minute_means_tomorrow(self, scheduling):
        priced = scheduling.aggregate([line("200")], OrderType.DELIVERY, "14:00")

        assert priced.scheduled_delivery_time.date() == datetime(2026, 10, 21).date()

    @pytest.mark.parametrize("value,expected", [
        ("3:30 PM", time(15, 30)),
        ("3:30pm", time(15, 30)),
        ("12:15 PM", time(12, 15)),
        ("12:15 AM", time(0, 15)),
        ("9:05 am", time(9, 5)),
        ("21:45", time(21, 45)),
    ])
    def test_clock_time_formats(self, value, expected):
        assert parse_schedule_clock_time(value) == expected

    @pytest.mark.parametrize("value", ["13:00 PM", "0:30 AM", "24:00", "9:75", "noon"])
    def test_invalid_clock_times(self, value):
        with pytest.raises(MissingRequiredField):
            parse_schedule_clock_time(value)

    def test_afternoon_time_in_twelve_hour_format(self, scheduling):
        priced = scheduling.aggregate([line("200")], OrderType.DELIVERY, "3:30 PM")

        assert priced.estimated_time_minutes == 90

    def test_after_closing_time(self, scheduling):
        with pytest.raises(RestaurantClosed):
            scheduling.aggregate([line("200")], OrderType.DELIVERY, "23:00")

    def test_on_a_closed_day(self, settings, hours, clock):
        # Sunday after closing: "14:00" rolls to Monday, which is closed
        clock.now = datetime(2026, 10, 25, 21, 30, tzinfo=MEXICO_CITY)
        scheduling = OrderPricingAggregator(settings, lambda: True, clock, hours.is_open_at)

        with pytest.raises(RestaurantClosed):
            scheduling.aggregate([line("200")], OrderType.PICKUP, "14:00")

    def test_explicit_datetime_is_checked_too(self, scheduling):
        with pytest.raises(RestaurantClosed):
            scheduling.aggregate(
                [line("200")],
                OrderType.PICKUP,
                datetime(2026, 10, 26, 15, 0, tzinfo=MEXICO_CITY)
            )
