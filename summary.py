"""
Plain-text order summary for customer review.
"""

from collections import defaultdict
from typing import Dict, List

from order_items import PricedOrderItem
from pizza import CustomizationAction, PizzaHalf
from pricing import OrderType, PricedOrder


HALF_LABELS = {
    PizzaHalf.FULL: "Whole",
    PizzaHalf.HALF_1: "First half",
    PizzaHalf.HALF_2: "Second half",
}


def format_pizza_lines(item: PricedOrderItem) -> List[str]:
    """Group pizza customizations by half: "With X" / "Without Y"."""
    by_half: Dict[PizzaHalf, List[str]] = defaultdict(list)
    for entry in item.selected_ingredients:
        prefix = "With" if entry.action is CustomizationAction.ADD else "Without"
        by_half[entry.half].append(f"{prefix} {entry.name}")

    return [
        f"    {HALF_LABELS[half]}: {', '.join(by_half[half])}"
        for half in PizzaHalf
        if by_half[half]
    ]


def format_item(item: PricedOrderItem) -> List[str]:
    lines = [f"- {item.quantity}x {item.display_name}: ${item.total_price:.2f}"]

    if item.modifier_names:
        lines.append(f"    Extras: {', '.join(item.modifier_names)}")

    lines.extend(format_pizza_lines(item))

    if item.comments:
        lines.append(f"    Notes: {item.comments}")

    return lines


def format_order_summary(order: PricedOrder) -> str:
    """
    Render a priced order for the customer to review.

    Example:
        >>> print(format_order_summary(priced))
        Order summary (pickup):
        - 2x Soda (Large): $60.00
        Estimated pickup time: 20 minutes
        Total: $60.00
    """
    kind = "delivery" if order.order_type is OrderType.DELIVERY else "pickup"

    lines = [f"Order summary ({kind}):"]
    for item in order.items:
        lines.extend(format_item(item))

    if order.scheduled_delivery_time is not None:
        lines.append(f"Scheduled for: {order.scheduled_delivery_time:%H:%M}")
    lines.append(f"Estimated {kind} time: {order.estimated_time_minutes} minutes")
    lines.append(f"Total: ${order.total_cost:.2f}")

    return "\n".join(lines)
