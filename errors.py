"""
Order Errors
============
Closed taxonomy of user-correctable order errors.

Every error carries an ErrorKind, a structured context and, for per-item
problems, the index of the offending order line. Customer-facing text is
produced by format_error(), one pure formatter per kind; localization is
left to the presentation layer.
"""

from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence


class ErrorKind(Enum):
    """Error kinds reported by the engine."""
    INVALID_PRODUCT = "invalid_product"
    VARIANT_REQUIRED = "variant_required"
    MODIFIER_GROUP_REQUIRED = "modifier_group_required"
    MODIFIER_SELECTION_COUNT_INVALID = "modifier_selection_count_invalid"
    PIZZA_CUSTOMIZATION_REQUIRED = "pizza_customization_required"
    INVALID_PIZZA_CONFIGURATION = "invalid_pizza_configuration"
    ITEM_NOT_AVAILABLE = "item_not_available"
    MISSING_REQUIRED_FIELD = "missing_required_field"
    EMPTY_ORDER = "empty_order"
    MINIMUM_ORDER_VALUE_NOT_MET = "minimum_order_value_not_met"
    NOT_ACCEPTING_ORDERS = "not_accepting_orders"
    RESTAURANT_CLOSED = "restaurant_closed"
    MULTIPLE_VALIDATION_ERRORS = "multiple_validation_errors"

    # Lifecycle
    ORDER_NOT_FOUND = "order_not_found"
    ORDER_ACTION_REFUSED = "order_action_refused"


class OrderError(Exception):
    """Base class for all user-correctable order errors."""

    kind: ErrorKind

    def __init__(self, log_message: str, item_index: Optional[int] = None, **context: Any):
        self.item_index = item_index
        self.context = context
        self.log_message = log_message
        super().__init__(log_message)

    @property
    def user_message(self) -> str:
        return format_error(self)

    def to_dict(self) -> Dict[str, Any]:
        """Structured report entry for the presentation layer."""
        return {
            "kind": self.kind.value,
            "message": self.user_message,
            "item_index": self.item_index,
            "context": {key: _jsonable(value) for key, value in self.context.items()},
        }

    def __repr__(self):
        return f"<{type(self).__name__} item_index={self.item_index} {self.log_message!r}>"


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


# ============================================================================
# ITEM-LEVEL ERRORS
# ============================================================================

class InvalidProduct(OrderError):
    kind = ErrorKind.INVALID_PRODUCT

    def __init__(self, product_id: str, item_index: Optional[int] = None, reason: str = "not found"):
        self.product_id = product_id
        super().__init__(
            f"Product {product_id!r} {reason}",
            item_index=item_index,
            product_id=product_id,
            reason=reason
        )


class ItemNotAvailable(OrderError):
    kind = ErrorKind.ITEM_NOT_AVAILABLE

    def __init__(
        self,
        item_name: str,
        item_type: str,
        item_index: Optional[int] = None,
        **context: Any
    ):
        self.item_name = item_name
        self.item_type = item_type
        super().__init__(
            f"{item_type} {item_name!r} is not available",
            item_index=item_index,
            item_name=item_name,
            item_type=item_type,
            **context
        )


class VariantRequired(OrderError):
    kind = ErrorKind.VARIANT_REQUIRED

    def __init__(
        self,
        product_name: str,
        variant_names: Sequence[str],
        item_index: Optional[int] = None,
        variant_id: Optional[str] = None
    ):
        self.product_name = product_name
        self.variant_names = list(variant_names)
        super().__init__(
            f"Product {product_name!r} requires a valid variant (got {variant_id!r})",
            item_index=item_index,
            product_name=product_name,
            variant_names=self.variant_names,
            variant_id=variant_id
        )


class ModifierGroupRequired(OrderError):
    kind = ErrorKind.MODIFIER_GROUP_REQUIRED

    def __init__(self, product_name: str, group_name: str, item_index: Optional[int] = None):
        self.product_name = product_name
        self.group_name = group_name
        super().__init__(
            f"Modifier group {group_name!r} is required for {product_name!r}",
            item_index=item_index,
            product_name=product_name,
            group_name=group_name
        )


class ModifierSelectionCountInvalid(OrderError):
    kind = ErrorKind.MODIFIER_SELECTION_COUNT_INVALID

    def __init__(
        self,
        product_name: str,
        group_name: str,
        selected: int,
        minimum: int,
        maximum: int,
        item_index: Optional[int] = None
    ):
        self.product_name = product_name
        self.group_name = group_name
        self.selected = selected
        self.minimum = minimum
        self.maximum = maximum
        super().__init__(
            f"Modifier group {group_name!r} accepts {minimum}..{maximum} selections, got {selected}",
            item_index=item_index,
            product_name=product_name,
            group_name=group_name,
            selected=selected,
            minimum=minimum,
            maximum=maximum
        )


class PizzaCustomizationRequired(OrderError):
    kind = ErrorKind.PIZZA_CUSTOMIZATION_REQUIRED

    def __init__(self, product_name: str, item_index: Optional[int] = None):
        self.product_name = product_name
        super().__init__(
            f"Pizza {product_name!r} has no added flavor or ingredient",
            item_index=item_index,
            product_name=product_name
        )


class InvalidPizzaConfiguration(OrderError):
    kind = ErrorKind.INVALID_PIZZA_CONFIGURATION

    def __init__(self, product_name: str, details: str, item_index: Optional[int] = None, **context: Any):
        self.product_name = product_name
        self.details = details
        super().__init__(
            f"Invalid pizza configuration for {product_name!r}: {details}",
            item_index=item_index,
            product_name=product_name,
            details=details,
            **context
        )


class MissingRequiredField(OrderError):
    kind = ErrorKind.MISSING_REQUIRED_FIELD

    def __init__(self, field: str, item_index: Optional[int] = None, value: Any = None):
        self.field = field
        super().__init__(
            f"Missing or invalid field {field!r}: {value!r}",
            item_index=item_index,
            field=field,
            value=repr(value)
        )


# ============================================================================
# ORDER-LEVEL ERRORS
# ============================================================================

class EmptyOrder(OrderError):
    kind = ErrorKind.EMPTY_ORDER

    def __init__(self):
        super().__init__("Order has no items")


class MinimumOrderValueNotMet(OrderError):
    kind = ErrorKind.MINIMUM_ORDER_VALUE_NOT_MET

    def __init__(self, current_value: Decimal, minimum_value: Decimal):
        self.current_value = current_value
        self.minimum_value = minimum_value
        self.difference = minimum_value - current_value
        super().__init__(
            f"Delivery order total {current_value} below minimum {minimum_value}",
            current_value=current_value,
            minimum_value=minimum_value,
            difference=self.difference
        )


class NotAcceptingOrders(OrderError):
    kind = ErrorKind.NOT_ACCEPTING_ORDERS

    def __init__(self):
        super().__init__("Restaurant not accepting orders")


class RestaurantClosed(OrderError):
    kind = ErrorKind.RESTAURANT_CLOSED

    def __init__(self):
        super().__init__("Restaurant is closed")


class MultipleValidationErrors(OrderError):
    """Aggregate of every per-item problem found in one order."""

    kind = ErrorKind.MULTIPLE_VALIDATION_ERRORS

    def __init__(self, errors: Sequence[OrderError]):
        self.errors: List[OrderError] = list(errors)
        super().__init__(
            f"{len(self.errors)} validation errors",
            error_count=len(self.errors)
        )

    def to_dict(self) -> Dict[str, Any]:
        report = super().to_dict()
        report["errors"] = [error.to_dict() for error in self.errors]
        return report


# ============================================================================
# LIFECYCLE ERRORS
# ============================================================================

class OrderNotFound(OrderError):
    kind = ErrorKind.ORDER_NOT_FOUND

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order {order_id!r} not found", order_id=order_id)


class OrderActionRefused(OrderError):
    """Cancel or modify requested in a status that does not allow it."""

    kind = ErrorKind.ORDER_ACTION_REFUSED

    def __init__(self, action: str, status: str, message: str):
        self.action = action
        self.status = status
        self.message = message
        super().__init__(
            f"Cannot {action} order in status {status!r}",
            action=action,
            status=status,
            message=message
        )


def raise_collected(errors: Sequence[OrderError]) -> None:
    """
    Raise collected validation errors, if any.

    A single error is raised as-is; two or more are wrapped in
    MultipleValidationErrors.
    """
    if not errors:
        return
    if len(errors) == 1:
        raise errors[0]
    raise MultipleValidationErrors(errors)


# ============================================================================
# MESSAGE FORMATTING
# ============================================================================

def _money(value: Decimal) -> str:
    return f"${value:.2f}"


def _format_selection_count(error: ModifierSelectionCountInvalid) -> str:
    if error.selected < error.minimum:
        bound = f"at least {error.minimum}"
    else:
        bound = f"at most {error.maximum}"
    return (
        f"For '{error.group_name}' on '{error.product_name}' you can choose "
        f"{bound} option(s); you chose {error.selected}."
    )


def _format_multiple(error: MultipleValidationErrors) -> str:
    lines = ["We found some problems with your order:"]
    for entry in error.errors:
        prefix = f"Item {entry.item_index + 1}: " if entry.item_index is not None else ""
        lines.append(f"- {prefix}{format_error(entry)}")
    return "\n".join(lines)


_FORMATTERS: Dict[ErrorKind, Callable[[Any], str]] = {
    ErrorKind.INVALID_PRODUCT: lambda e: (
        "One or more products are not valid. Please check your order."
    ),
    ErrorKind.ITEM_NOT_AVAILABLE: lambda e: (
        f"{e.item_type} '{e.item_name}' is no longer available."
    ),
    ErrorKind.VARIANT_REQUIRED: lambda e: (
        f"'{e.product_name}' requires you to choose one of: {', '.join(e.variant_names)}."
        if e.variant_names else
        f"'{e.product_name}' has no options available right now."
    ),
    ErrorKind.MODIFIER_GROUP_REQUIRED: lambda e: (
        f"For '{e.product_name}' please choose an option from '{e.group_name}'."
    ),
    ErrorKind.MODIFIER_SELECTION_COUNT_INVALID: _format_selection_count,
    ErrorKind.PIZZA_CUSTOMIZATION_REQUIRED: lambda e: (
        f"To order '{e.product_name}' please choose at least one flavor or ingredient."
    ),
    ErrorKind.INVALID_PIZZA_CONFIGURATION: lambda e: (
        f"The pizza '{e.product_name}' is not configured correctly: {e.details}."
    ),
    ErrorKind.MISSING_REQUIRED_FIELD: lambda e: (
        f"Required information is missing or invalid ({e.field})."
    ),
    ErrorKind.EMPTY_ORDER: lambda e: (
        "We could not identify any valid products in your order. Please try again."
    ),
    ErrorKind.MINIMUM_ORDER_VALUE_NOT_MET: lambda e: (
        f"The minimum for delivery orders is {_money(e.minimum_value)}. "
        f"Your order is {_money(e.current_value)}; add {_money(e.difference)} more to continue."
    ),
    ErrorKind.NOT_ACCEPTING_ORDERS: lambda e: (
        "Sorry, we are not accepting orders at the moment."
    ),
    ErrorKind.RESTAURANT_CLOSED: lambda e: (
        "Sorry, we are closed right now."
    ),
    ErrorKind.MULTIPLE_VALIDATION_ERRORS: _format_multiple,
    ErrorKind.ORDER_NOT_FOUND: lambda e: (
        "Sorry, we could not find your order."
    ),
    ErrorKind.ORDER_ACTION_REFUSED: lambda e: e.message,
}


def format_error(error: OrderError) -> str:
    """Customer-facing message for an order error."""
    return _FORMATTERS[error.kind](error)
