"""
Order State Machine
===================
Formal status transitions for the order lifecycle.

State invariants:
- Transitions are driven by staff actions or payment events, never by the
  engine itself
- Every transition is one-way; terminal states have no exits
- Cancel and modify are legal only while the order is still `created`
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Set, Tuple, Union

from prometheus_client import Counter


logger = logging.getLogger(__name__)


order_status_transitions = Counter(
    'order_status_transitions_total',
    'Order status transitions',
    ['from_status', 'to_status']
)


class OrderStatus(Enum):
    """
    Order lifecycle states.

    State flow:
        CREATED -> ACCEPTED -> IN_PREPARATION -> PREPARED -> IN_DELIVERY -> FINISHED
        CREATED -> CANCELED
        PREPARED -> FINISHED (pickup)
    """
    CREATED = "created"
    ACCEPTED = "accepted"
    IN_PREPARATION = "in_preparation"
    PREPARED = "prepared"
    IN_DELIVERY = "in_delivery"
    FINISHED = "finished"
    CANCELED = "canceled"


StatusLike = Union[OrderStatus, str]


class StateTransitionError(Exception):
    """Raised when an invalid status transition is attempted."""
    pass


VALID_TRANSITIONS: Dict[OrderStatus, Set[OrderStatus]] = {
    OrderStatus.CREATED: {OrderStatus.ACCEPTED, OrderStatus.CANCELED},
    OrderStatus.ACCEPTED: {OrderStatus.IN_PREPARATION},
    OrderStatus.IN_PREPARATION: {OrderStatus.PREPARED},
    OrderStatus.PREPARED: {OrderStatus.IN_DELIVERY, OrderStatus.FINISHED},
    OrderStatus.IN_DELIVERY: {OrderStatus.FINISHED},
    OrderStatus.FINISHED: set(),  # Terminal
    OrderStatus.CANCELED: set()   # Terminal
}

TERMINAL_STATUSES = frozenset({OrderStatus.FINISHED, OrderStatus.CANCELED})


def to_status(status: StatusLike) -> OrderStatus:
    """
    Raises:
        ValueError: If status is not a known order status
    """
    if isinstance(status, OrderStatus):
        return status
    return OrderStatus(str(status).lower())


def can_cancel(status: StatusLike) -> bool:
    """Only orders the restaurant has not accepted yet can be canceled."""
    return to_status(status) is OrderStatus.CREATED


def can_modify(status: StatusLike) -> bool:
    """Only orders the restaurant has not accepted yet can be modified."""
    return to_status(status) is OrderStatus.CREATED


# ============================================================================
# CUSTOMER MESSAGES
# ============================================================================

_CANCEL_REFUSALS: Dict[OrderStatus, str] = {
    OrderStatus.ACCEPTED: (
        "Sorry, this order can no longer be canceled because the restaurant has "
        "already accepted it. Please contact the restaurant directly if you need changes."
    ),
    OrderStatus.IN_PREPARATION: (
        "Sorry, this order is already being prepared and can no longer be canceled. "
        "Please contact the restaurant directly if you have any concerns."
    ),
    OrderStatus.PREPARED: (
        "Sorry, this order is already prepared and can no longer be canceled. "
        "Please contact the restaurant directly to resolve any issue."
    ),
    OrderStatus.IN_DELIVERY: (
        "Sorry, this order is already on its way and can no longer be canceled. "
        "Please contact the restaurant or the driver if you need to change something."
    ),
    OrderStatus.FINISHED: (
        "This order has already been completed and cannot be canceled. "
        "If there is a problem with your order, please contact the restaurant directly."
    ),
    OrderStatus.CANCELED: (
        "This order was already canceled. No further action is needed."
    ),
}

_MODIFY_REFUSALS: Dict[OrderStatus, str] = {
    OrderStatus.ACCEPTED: (
        "Sorry, this order can no longer be modified because it has already been accepted. "
        "Please contact the restaurant directly if you need changes."
    ),
    OrderStatus.IN_PREPARATION: (
        "Sorry, this order can no longer be modified because it is already being prepared. "
        "Please contact the restaurant directly if you need changes."
    ),
    OrderStatus.PREPARED: (
        "Sorry, this order can no longer be modified because it is already prepared. "
        "Please contact the restaurant directly if you need changes."
    ),
    OrderStatus.IN_DELIVERY: (
        "Sorry, this order can no longer be modified because it is already on its way. "
        "Please contact the restaurant or the driver if you need changes."
    ),
    OrderStatus.FINISHED: (
        "Sorry, this order can no longer be modified because it has been completed. "
        "Please contact the restaurant directly if you need changes."
    ),
    OrderStatus.CANCELED: (
        "Sorry, this order can no longer be modified because it was canceled. "
        "Please contact the restaurant directly if you need changes."
    ),
}

_STATUS_NOTIFICATIONS: Dict[OrderStatus, str] = {
    OrderStatus.ACCEPTED: "Your order #{number} has been accepted and will be prepared soon.",
    OrderStatus.IN_PREPARATION: "Good news! Your order #{number} is being prepared.",
    OrderStatus.PREPARED: "Your order #{number} is ready.",
    OrderStatus.IN_DELIVERY: "Your order #{number} is on its way.",
    OrderStatus.FINISHED: "Your order #{number} has been delivered. Enjoy!",
    OrderStatus.CANCELED: (
        "Sorry, your order #{number} has been canceled. "
        "Please contact us if you have any questions."
    ),
}


def cancel_refusal_message(status: StatusLike) -> Optional[str]:
    """Status-specific reason a cancellation is refused (None if allowed)."""
    return _CANCEL_REFUSALS.get(to_status(status))


def modify_refusal_message(status: StatusLike) -> Optional[str]:
    """Status-specific reason a modification is refused (None if allowed)."""
    return _MODIFY_REFUSALS.get(to_status(status))


def cancel_confirmation_message(daily_number: int) -> str:
    return (
        f"Your order #{daily_number} has been canceled. "
        f"If you have any questions, please contact the restaurant."
    )


def modify_confirmation_message(old_number: int, new_number: int) -> str:
    return (
        f"Your order #{old_number} has been replaced by order #{new_number} "
        f"with your changes."
    )


def status_notification(status: StatusLike, daily_number: int) -> Optional[str]:
    """Customer notification when staff move an order to status."""
    template = _STATUS_NOTIFICATIONS.get(to_status(status))
    return template.format(number=daily_number) if template else None


# ============================================================================
# STATE MACHINE
# ============================================================================

class OrderLifecycle:
    """
    Manages one order's status transitions with validation.

    Enforces:
    - Valid transition paths only
    - Status change logging
    - Transition metrics
    """

    def __init__(self, order_id: str, initial_status: StatusLike = OrderStatus.CREATED):
        self.order_id = order_id
        self._status = to_status(initial_status)
        self._history: List[Tuple[OrderStatus, datetime]] = [(self._status, datetime.utcnow())]

    @property
    def status(self) -> OrderStatus:
        return self._status

    def can_transition_to(self, target: StatusLike) -> bool:
        return to_status(target) in VALID_TRANSITIONS.get(self._status, set())

    def transition(self, target: StatusLike, reason: Optional[str] = None) -> OrderStatus:
        """
        Move to target status.

        Raises:
            StateTransitionError: If the transition is not allowed
        """
        target = to_status(target)

        if not self.can_transition_to(target):
            error_msg = f"Invalid transition: {self._status.value} -> {target.value}"
            logger.error(
                error_msg,
                extra={
                    "order_id": self.order_id,
                    "from_status": self._status.value,
                    "to_status": target.value,
                    "reason": reason
                }
            )
            raise StateTransitionError(error_msg)

        old_status = self._status
        self._status = target
        self._history.append((target, datetime.utcnow()))

        order_status_transitions.labels(
            from_status=old_status.value,
            to_status=target.value
        ).inc()

        logger.info(
            f"Order status transition: {old_status.value} -> {target.value}",
            extra={
                "order_id": self.order_id,
                "from_status": old_status.value,
                "to_status": target.value,
                "reason": reason
            }
        )

        return target

    def is_terminal(self) -> bool:
        return self._status in TERMINAL_STATUSES

    def get_history(self) -> list:
        return [
            {"status": status.value, "timestamp": ts.isoformat()}
            for status, ts in self._history
        ]

    def __repr__(self):
        return f"<OrderLifecycle order_id={self.order_id} status={self._status.value}>"
