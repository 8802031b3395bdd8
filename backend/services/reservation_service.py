"""
Reservation service — atomic stock reservation + order creation.

One call to reserve() either commits all of:
    - stock decremented for every requested product
    - an Order (pending, expires_at = now + TTL) with OrderItem price snapshots
    - a pending Transaction whose id is the payment reference
or commits nothing at all.

Products are locked with SELECT ... FOR UPDATE (ordered by id, so two
reservations touching the same products lock them in the same order). On
SQLite the engine opens the transaction with BEGIN IMMEDIATE instead; see
database.py.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db_models import Order, OrderItem, Product, Transaction
from domain.enums import GatewayName, OrderStatus, TransactionStatus
from domain.errors import InventoryIssueError, ValidationError
from services.pricing import effective_price, to_money
from utils.clock import utcnow
from utils.validators import validate_customer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CustomerInfo:
    email: str
    customer_name: str
    phone: str
    address: str


@dataclass(frozen=True)
class ReservationItem:
    product_id: int
    quantity: int


@dataclass(frozen=True)
class Reservation:
    """What the caller gets back from a successful reserve()."""
    transaction_id: str
    order_id: int
    amount: Decimal
    currency: str
    gateway: str
    expires_at: datetime


def normalize_items(items: list) -> list[ReservationItem]:
    """
    Validate raw cart items and merge duplicate product ids.

    Accepts ReservationItem instances or dicts with product_id/quantity.
    """
    if not items:
        raise ValidationError("Cart is empty", field="items")

    merged: dict[int, int] = {}
    for raw in items:
        if isinstance(raw, ReservationItem):
            product_id, quantity = raw.product_id, raw.quantity
        else:
            try:
                product_id = int(raw["product_id"])
                quantity = int(raw["quantity"])
            except (KeyError, TypeError, ValueError):
                raise ValidationError("Each item needs an integer product_id and quantity", field="items")
        if quantity <= 0:
            raise ValidationError(f"Quantity must be positive (product {product_id})", field="items")
        merged[product_id] = merged.get(product_id, 0) + quantity

    return [ReservationItem(product_id=pid, quantity=qty) for pid, qty in sorted(merged.items())]


async def reserve(
    db: AsyncSession,
    *,
    customer: CustomerInfo,
    items: list,
    gateway: str | None = None,
    now: datetime | None = None,
) -> Reservation:
    """
    Reserve stock and create a pending Order + Transaction as one unit of work.

    Raises:
        ValidationError: empty cart, bad quantity, missing customer field,
            unknown/inactive product, unknown gateway
        InventoryIssueError: any product has stock < requested quantity
    """
    # Validation happens before the transaction starts: no side effects.
    validate_customer(
        email=customer.email,
        customer_name=customer.customer_name,
        phone=customer.phone,
        address=customer.address,
    )
    wanted = normalize_items(items)
    gateway = gateway or settings.default_gateway
    if gateway not in {g.value for g in GatewayName}:
        raise ValidationError(f"Unknown payment gateway '{gateway}'", field="gateway")

    try:
        reservation = await _reserve_locked(db, customer=customer, wanted=wanted, gateway=gateway, now=now)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        f"Reserved order {reservation.order_id} tx={reservation.transaction_id} "
        f"amount={reservation.amount} {reservation.currency} via {gateway} "
        f"(expires {reservation.expires_at.isoformat()})"
    )
    return reservation


async def _reserve_locked(
    db: AsyncSession,
    *,
    customer: CustomerInfo,
    wanted: list[ReservationItem],
    gateway: str,
    now: datetime | None,
) -> Reservation:
    product_ids = [item.product_id for item in wanted]

    # Step 2: lock product rows, check stock
    result = await db.execute(
        select(Product)
        .where(Product.id.in_(product_ids))
        .order_by(Product.id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    products = {p.id: p for p in result.scalars().all()}

    missing = [pid for pid in product_ids if pid not in products or not products[pid].active]
    if missing:
        raise ValidationError(f"Products not available: {missing}", field="items", details={"product_ids": missing})

    short = [
        {"product_id": item.product_id, "requested": item.quantity, "available": products[item.product_id].stock}
        for item in wanted
        if products[item.product_id].stock < item.quantity
    ]
    if short:
        names = ", ".join(products[s["product_id"]].name for s in short)
        logger.info(f"Reservation rejected, insufficient stock: {short}")
        raise InventoryIssueError(f"Insufficient stock for {names}", details={"items": short})

    # Steps 3-4: server-side price, decrement stock
    now = now or utcnow()
    expires_at = now + timedelta(minutes=settings.reservation_ttl_minutes)

    total = Decimal("0.00")
    lines = []
    for item in wanted:
        product = products[item.product_id]
        unit_price = effective_price(product)
        total += unit_price * item.quantity
        product.stock -= item.quantity
        lines.append((product, item.quantity, unit_price))
    total = to_money(total)

    # Step 5: order + snapshots
    order = Order(
        email=customer.email.strip(),
        customer_name=customer.customer_name.strip(),
        phone=customer.phone.strip(),
        address=customer.address.strip(),
        total=total,
        status=OrderStatus.PENDING.value,
        reserved_at=now,
        expires_at=expires_at,
    )
    db.add(order)
    await db.flush()

    for product, quantity, unit_price in lines:
        db.add(
            OrderItem(
                order_id=order.id,
                product_id=product.id,
                quantity=quantity,
                unit_price=unit_price,
                base_price=to_money(product.price),
                discount_type=product.discount_type if product.discount_active else None,
                discount_value=to_money(product.discount_value) if product.discount_active else Decimal("0.00"),
            )
        )

    # Step 6: pending transaction
    transaction = Transaction(
        id=str(uuid.uuid4()),
        order_id=order.id,
        amount=total,
        currency=settings.currency,
        gateway=gateway,
        status=TransactionStatus.PENDING.value,
        created_at=now,
    )
    db.add(transaction)
    await db.flush()

    return Reservation(
        transaction_id=transaction.id,
        order_id=order.id,
        amount=total,
        currency=transaction.currency,
        gateway=gateway,
        expires_at=expires_at,
    )
