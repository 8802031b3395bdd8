"""
Settlement service — the single place a pending transaction becomes terminal.

Webhooks, the verify fallback, the reaper and the checkout rollback all call
settle(). It is safe to call concurrently and repeatedly for the same
reference:

    1. Unknown reference                → NOT_FOUND, nothing written
    2. Transaction already terminal     → ALREADY_SETTLED, nothing written
    3. Compare-and-set pending → X      → 0 rows means another caller won
    4. success: order pending → paid (paid_at = now); stock untouched
       failure: order pending → abandoned, stock restored per OrderItem

Settlement never branches on gateway.
"""
import logging
from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import Order, OrderItem, Product, Transaction
from domain.enums import OrderStatus, TransactionStatus, can_transition
from utils.clock import utcnow

logger = logging.getLogger(__name__)


class SettlementOutcome(str, Enum):
    SETTLED = "settled"
    ALREADY_SETTLED = "already_settled"
    NOT_FOUND = "not_found"


async def settle(
    db: AsyncSession,
    *,
    reference: str,
    success: bool,
    raw_payload: dict | None = None,
    now: datetime | None = None,
    paid_amount: Decimal | None = None,
    paid_currency: str | None = None,
) -> SettlementOutcome:
    """
    Apply a payment outcome to the transaction `reference` exactly once.

    When `paid_amount` is given, a success paying less than the transaction
    amount (or in another currency) is settled as a failure.

    Commits on SETTLED; the session is left with no open transaction in
    every case.
    """
    try:
        outcome = await _settle(
            db,
            reference=reference,
            success=success,
            raw_payload=raw_payload,
            now=now,
            paid_amount=paid_amount,
            paid_currency=paid_currency,
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    return outcome


async def _settle(
    db: AsyncSession,
    *,
    reference: str,
    success: bool,
    raw_payload: dict | None,
    now: datetime | None,
    paid_amount: Decimal | None,
    paid_currency: str | None,
) -> SettlementOutcome:
    row = (
        await db.execute(
            select(Transaction.status, Transaction.order_id, Transaction.amount, Transaction.currency)
            .where(Transaction.id == reference)
        )
    ).first()

    if row is None:
        logger.info(f"Settlement ignored: unknown reference {reference}")
        return SettlementOutcome.NOT_FOUND

    current_status, order_id, amount, currency = row
    if current_status != TransactionStatus.PENDING.value:
        _log_duplicate(reference, current_status, success)
        return SettlementOutcome.ALREADY_SETTLED

    if success and paid_amount is not None and not _covers(paid_amount, paid_currency, amount, currency):
        logger.warning(
            f"Payment for {reference} does not cover the order: paid {paid_amount} {paid_currency or currency}, "
            f"expected {amount} {currency}; settling as failed"
        )
        success = False

    now = now or utcnow()
    target = TransactionStatus.SUCCESS if success else TransactionStatus.FAILED

    # Compare-and-set: only one caller can move the row out of pending.
    result = await db.execute(
        update(Transaction)
        .where(Transaction.id == reference, Transaction.status == TransactionStatus.PENDING.value)
        .values(status=target.value, gateway_response=raw_payload or {}, settled_at=now)
    )
    if result.rowcount == 0:
        _log_duplicate(reference, "settled concurrently", success)
        return SettlementOutcome.ALREADY_SETTLED

    if success:
        await _mark_paid(db, order_id=order_id, now=now)
        logger.info(f"✅ Transaction {reference} settled: order {order_id} paid")
    else:
        restored = await _abandon_and_restore(db, order_id=order_id)
        if restored is None:
            logger.info(f"Transaction {reference} settled as failed: order {order_id} was no longer pending")
        else:
            logger.info(f"Transaction {reference} settled as failed: order {order_id} abandoned, {restored} unit(s) restored")

    return SettlementOutcome.SETTLED


async def _move_order(db: AsyncSession, order_id: int, target: OrderStatus, **values) -> bool:
    """Compare-and-set an order out of its current status if the lifecycle allows it."""
    current = (await db.execute(select(Order.status).where(Order.id == order_id))).scalar_one_or_none()
    if current is None or not can_transition(current, target):
        return False

    result = await db.execute(
        update(Order)
        .where(Order.id == order_id, Order.status == current)
        .values(status=target.value, **values)
    )
    return result.rowcount == 1


async def _mark_paid(db: AsyncSession, *, order_id: int, now: datetime) -> None:
    if not await _move_order(db, order_id, OrderStatus.PAID, paid_at=now):
        logger.warning(f"Order {order_id} was not pending when its payment succeeded")


async def _abandon_and_restore(db: AsyncSession, *, order_id: int) -> int | None:
    """
    Move a pending order to abandoned and give its stock back.

    Returns the number of units restored, or None if the order was no longer
    pending (nothing restored).
    """
    if not await _move_order(db, order_id, OrderStatus.ABANDONED):
        return None

    items = (
        await db.execute(
            select(OrderItem.product_id, OrderItem.quantity)
            .where(OrderItem.order_id == order_id)
            .order_by(OrderItem.product_id)
        )
    ).all()

    restored = 0
    for product_id, quantity in items:
        await db.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(stock=Product.stock + quantity)
        )
        restored += quantity
    return restored


def _log_duplicate(reference: str, current_status: str, success: bool) -> None:
    if success and current_status == TransactionStatus.FAILED.value:
        # Customer paid after the reservation was released.
        logger.warning(
            f"⚠️  Payment success received for {reference} after it was marked failed "
            f"(paid after expiry), needs manual reconciliation"
        )
    else:
        logger.info(f"Duplicate settlement for {reference} ignored (status: {current_status})")


def _covers(paid_amount: Decimal, paid_currency: str | None, amount, currency: str) -> bool:
    if paid_currency and paid_currency.upper() != currency.upper():
        return False
    return Decimal(paid_amount) >= Decimal(amount)
