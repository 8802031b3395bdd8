"""
Domain enums and the order status graph.
"""

from enum import Enum


class OrderStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    SHIPPED = "shipped"
    DELIVERY_IN_PROGRESS = "delivery_in_progress"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    ABANDONED = "abandoned"
    INVENTORY_ISSUE = "inventory_issue"
    RETURNED = "returned"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class GatewayName(str, Enum):
    PAYSTACK = "paystack"
    FLUTTERWAVE = "flutterwave"


class PaymentOutcome(str, Enum):
    """Normalized answer from a gateway verify call (and the verify endpoint)."""
    SUCCESS = "success"
    PENDING = "pending"
    FAILED = "failed"


# Logistics progression after payment; operators may jump forward any number of steps.
FULFILMENT_SEQUENCE = (
    OrderStatus.PAID,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERY_IN_PROGRESS,
    OrderStatus.DELIVERED,
    OrderStatus.COMPLETED,
)

TERMINAL_TRANSACTION_STATUSES = frozenset({TransactionStatus.SUCCESS, TransactionStatus.FAILED})


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    """
    Whether an order may move from `current` to `target`.

    pending → paid | abandoned | inventory_issue
    paid → any later fulfilment state | returned
    later fulfilment states → any later fulfilment state
    abandoned, inventory_issue, completed and returned are terminal.
    """
    current = OrderStatus(current)
    target = OrderStatus(target)

    if current == OrderStatus.PENDING:
        return target in (OrderStatus.PAID, OrderStatus.ABANDONED, OrderStatus.INVENTORY_ISSUE)

    if current == OrderStatus.PAID and target == OrderStatus.RETURNED:
        return True

    if current in FULFILMENT_SEQUENCE and target in FULFILMENT_SEQUENCE:
        return FULFILMENT_SEQUENCE.index(target) > FULFILMENT_SEQUENCE.index(current)

    return False
