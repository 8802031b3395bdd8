"""
SQLAlchemy ORM models for the storefront reservation core.

Tables:
    products      — catalog rows; the core reads them and writes only `stock`
    orders        — one per reservation, customer contact + total + status
    order_items   — immutable price snapshots taken at reservation time
    transactions  — payment attempt per order; id is the gateway reference

Money columns are Numeric(12, 2) and surface as Decimal.
"""
from sqlalchemy import (
    Column, Integer, String, Numeric, Boolean, DateTime, Text, ForeignKey, JSON,
    CheckConstraint, Index,
)
from sqlalchemy.orm import relationship

from database import Base
from domain.enums import OrderStatus, TransactionStatus
from utils.clock import utcnow

MONEY = Numeric(12, 2, asdecimal=True)


class Product(Base):
    """Catalog product. Price and discount fields are owned by the catalog collaborator."""
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, autoincrement=True)
    slug = Column(String(100), unique=True, nullable=False, index=True)
    name = Column(String(200), nullable=False)
    price = Column(MONEY, nullable=False)
    stock = Column(Integer, nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)

    # Optional discount rule
    discount_active = Column(Boolean, nullable=False, default=False)
    discount_type = Column(String(20), nullable=True)  # "percentage" | "fixed"
    discount_value = Column(MONEY, nullable=False, default=0)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
    )


class Order(Base):
    """A reservation: customer details, snapshot total, and lifecycle status."""
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(320), nullable=False, index=True)
    customer_name = Column(String(200), nullable=False)
    phone = Column(String(40), nullable=False)
    address = Column(Text, nullable=False)
    total = Column(MONEY, nullable=False)
    status = Column(String(30), nullable=False, default=OrderStatus.PENDING.value, index=True)
    reserved_at = Column(DateTime, nullable=False, default=utcnow)
    expires_at = Column(DateTime, nullable=False)
    paid_at = Column(DateTime, nullable=True)

    items = relationship("OrderItem", back_populates="order", lazy="selectin", order_by="OrderItem.id")
    transaction = relationship("Transaction", back_populates="order", uselist=False, lazy="selectin")

    __table_args__ = (
        # Reaper sweep: status = pending AND expires_at < now
        Index("ix_orders_status_expires", "status", "expires_at"),
    )


class OrderItem(Base):
    """Line item. Prices are captured at reservation time and never recomputed."""
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(MONEY, nullable=False)       # effective price charged per unit
    base_price = Column(MONEY, nullable=False)       # catalog price before discount
    discount_type = Column(String(20), nullable=True)
    discount_value = Column(MONEY, nullable=False, default=0)

    order = relationship("Order", back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
    )


class Transaction(Base):
    """
    Payment attempt for an order.

    `id` doubles as the gateway reference (Paystack `reference`,
    Flutterwave `tx_ref`) and the settlement idempotency key.
    """
    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, unique=True, index=True)
    amount = Column(MONEY, nullable=False)
    currency = Column(String(3), nullable=False)
    gateway = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default=TransactionStatus.PENDING.value, index=True)
    gateway_response = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    settled_at = Column(DateTime, nullable=True)

    order = relationship("Order", back_populates="transaction")
