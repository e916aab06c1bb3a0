from datetime import datetime, timedelta
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest

from catalog import CatalogSnapshot
from order import OrderEngine
from pricing import RestaurantSettings


MEXICO_CITY = ZoneInfo("America/Mexico_City")

CATALOG = {
    "products": [
        {"id": "burger", "name": "Burger", "price": "100", "modifier_group_ids": ["extras"]},
        {"id": "soda", "name": "Soda", "variant_ids": ["soda-small", "soda-large", "soda-xl"]},
        {"id": "taco", "name": "Taco", "price": 30, "modifier_group_ids": ["salsa"]},
        {
            "id": "pizza",
            "name": "Custom Pizza",
            "price": 150,
            "pizza_ingredient_ids": [
                "pepperoni", "ham", "mushroom", "pineapple", "olive", "hawaiian", "mexican",
            ],
        },
        {"id": "salad", "name": "Salad", "price": 50, "available": False},
        {"id": "water", "name": "Water", "price": "19.99"},
    ],
    "variants": [
        {"id": "soda-small", "name": "Small", "price": 20, "product_id": "soda"},
        {"id": "soda-large", "name": "Large", "price": 30, "product_id": "soda"},
        {"id": "soda-xl", "name": "Extra Large", "price": 40, "product_id": "soda", "available": False},
    ],
    "modifier_groups": [
        {
            "id": "extras",
            "name": "Extras",
            "accepts_multiple": True,
            "modifier_ids": ["bacon", "cheese", "jalapeno"],
        },
        {
            "id": "salsa",
            "name": "Salsa",
            "required": True,
            "modifier_ids": ["salsa-red", "salsa-green"],
        },
    ],
    "modifiers": [
        {"id": "bacon", "name": "Bacon", "price": 15, "group_id": "extras"},
        {"id": "cheese", "name": "Cheese", "price": 10, "group_id": "extras"},
        {"id": "jalapeno", "name": "Jalapeno", "price": 5, "group_id": "extras", "available": False},
        {"id": "salsa-red", "name": "Red salsa", "group_id": "salsa"},
        {"id": "salsa-green", "name": "Green salsa", "group_id": "salsa"},
    ],
    "pizza_ingredients": [
        {"id": "pepperoni", "name": "Pepperoni", "product_id": "pizza"},
        {"id": "ham", "name": "Ham", "product_id": "pizza"},
        {"id": "mushroom", "name": "Mushroom", "product_id": "pizza"},
        {"id": "pineapple", "name": "Pineapple", "product_id": "pizza"},
        {"id": "olive", "name": "Olive", "product_id": "pizza", "available": False},
        {"id": "hawaiian", "name": "Hawaiian", "product_id": "pizza", "value": 2, "type": "FLAVOR"},
        {"id": "mexican", "name": "Mexican", "product_id": "pizza", "value": 3, "type": "FLAVOR"},
    ],
}


class FakeClock:
    """Mutable clock; starts Tuesday 2026-10-20 14:00 in Mexico City."""

    def __init__(self, now=None):
        self.now = now or datetime(2026, 10, 20, 14, 0, tzinfo=MEXICO_CITY)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def catalog():
    return CatalogSnapshot.from_dict(CATALOG)


@pytest.fixture
def settings():
    return RestaurantSettings(
        accepting_orders=True,
        estimated_pickup_time_minutes=20,
        estimated_delivery_time_minutes=40,
        minimum_delivery_order_value=Decimal("150.00"),
        timezone=MEXICO_CITY
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def engine(settings, clock):
    return OrderEngine(settings=settings, is_open_now=lambda: True, clock=clock)
