"""
Tests for the reservation service.

Tests: server-side totals and price snapshots, stock decrement, all-or-nothing
rollback, and validation before any side effect.
"""
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from db_models import Order, OrderItem, Product, Transaction
from domain.errors import InventoryIssueError, ValidationError
from services.reservation_service import (
    CustomerInfo,
    ReservationItem,
    normalize_items,
    reserve,
)
from tests.conftest import create_product, fetch


async def _count(db, model) -> int:
    return (await db.execute(select(func.count()).select_from(model))).scalar_one()


class TestNormalizeItems:

    @pytest.mark.unit
    def test_merges_duplicates_and_sorts(self):
        items = normalize_items([
            {"product_id": 7, "quantity": 1},
            {"product_id": 3, "quantity": 2},
            {"product_id": 7, "quantity": 4},
        ])
        assert items == [ReservationItem(3, 2), ReservationItem(7, 5)]

    @pytest.mark.unit
    def test_empty_cart_rejected(self):
        with pytest.raises(ValidationError) as exc:
            normalize_items([])
        assert exc.value.code == "validation"

    @pytest.mark.unit
    @pytest.mark.parametrize("quantity", [0, -1])
    def test_non_positive_quantity_rejected(self, quantity):
        with pytest.raises(ValidationError):
            normalize_items([{"product_id": 1, "quantity": quantity}])

    @pytest.mark.unit
    def test_malformed_item_rejected(self):
        with pytest.raises(ValidationError):
            normalize_items([{"product_id": "abc", "quantity": 1}])


class TestReserve:

    @pytest.mark.asyncio
    async def test_discounted_total_and_snapshot(self, db_session, customer):
        product = await create_product(
            db_session, price=Decimal("1000"), stock=5,
            discount_active=True, discount_type="percentage", discount_value=Decimal("10"),
        )

        reservation = await reserve(
            db_session, customer=customer, items=[{"product_id": product.id, "quantity": 2}], gateway="paystack"
        )

        assert reservation.amount == Decimal("1800.00")
        assert reservation.currency == "NGN"
        assert reservation.gateway == "paystack"

        order = await fetch(db_session, Order, reservation.order_id)
        assert order.status == "pending"
        assert order.total == Decimal("1800.00")
        assert len(order.items) == 1
        line = order.items[0]
        assert line.unit_price == Decimal("900.00")
        assert line.base_price == Decimal("1000.00")
        assert line.discount_type == "percentage"
        assert line.discount_value == Decimal("10.00")

        tx = await fetch(db_session, Transaction, reservation.transaction_id)
        assert tx.status == "pending"
        assert tx.amount == Decimal("1800.00")
        assert tx.order_id == order.id

        refreshed = await fetch(db_session, Product, product.id)
        assert refreshed.stock == 3

    @pytest.mark.asyncio
    async def test_expiry_is_ttl_after_now(self, db_session, customer):
        product = await create_product(db_session)
        now = datetime(2026, 3, 1, 12, 0, 0)

        reservation = await reserve(
            db_session, customer=customer, items=[{"product_id": product.id, "quantity": 1}], now=now
        )

        assert reservation.expires_at == now + timedelta(minutes=15)
        order = await fetch(db_session, Order, reservation.order_id)
        assert order.reserved_at == now

    @pytest.mark.asyncio
    async def test_client_price_is_ignored(self, db_session, customer):
        product = await create_product(db_session, price=Decimal("500"))

        reservation = await reserve(
            db_session,
            customer=customer,
            items=[{"product_id": product.id, "quantity": 1, "price": "1.00"}],
        )
        assert reservation.amount == Decimal("500.00")

    @pytest.mark.asyncio
    async def test_defaults_to_configured_gateway(self, db_session, customer):
        product = await create_product(db_session)
        reservation = await reserve(db_session, customer=customer, items=[{"product_id": product.id, "quantity": 1}])
        assert reservation.gateway == "flutterwave"

    @pytest.mark.asyncio
    async def test_insufficient_stock_changes_nothing(self, db_session, customer):
        plenty = await create_product(db_session, name="Cufflinks", stock=10)
        scarce = await create_product(db_session, name="Tie Clip", stock=1)
        plenty_id, scarce_id = plenty.id, scarce.id

        with pytest.raises(InventoryIssueError) as exc:
            await reserve(
                db_session,
                customer=customer,
                items=[
                    {"product_id": plenty_id, "quantity": 3},
                    {"product_id": scarce_id, "quantity": 2},
                ],
            )

        assert exc.value.status_code == 409
        assert exc.value.details["items"] == [{"product_id": scarce_id, "requested": 2, "available": 1}]

        assert (await fetch(db_session, Product, plenty_id)).stock == 10
        assert (await fetch(db_session, Product, scarce_id)).stock == 1
        assert await _count(db_session, Order) == 0
        assert await _count(db_session, OrderItem) == 0
        assert await _count(db_session, Transaction) == 0

    @pytest.mark.asyncio
    async def test_exact_stock_succeeds(self, db_session, customer):
        product = await create_product(db_session, stock=2)
        await reserve(db_session, customer=customer, items=[{"product_id": product.id, "quantity": 2}])
        assert (await fetch(db_session, Product, product.id)).stock == 0

    @pytest.mark.asyncio
    async def test_unknown_product_is_validation_error(self, db_session, customer):
        with pytest.raises(ValidationError):
            await reserve(db_session, customer=customer, items=[{"product_id": 999, "quantity": 1}])
        assert await _count(db_session, Order) == 0

    @pytest.mark.asyncio
    async def test_inactive_product_is_validation_error(self, db_session, customer):
        product = await create_product(db_session, active=False)
        product_id = product.id
        with pytest.raises(ValidationError):
            await reserve(db_session, customer=customer, items=[{"product_id": product_id, "quantity": 1}])
        assert (await fetch(db_session, Product, product_id)).stock == 10

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field", ["email", "customer_name", "phone", "address"])
    async def test_missing_customer_field(self, db_session, customer, field):
        product = await create_product(db_session)
        incomplete = CustomerInfo(**{**customer.__dict__, field: "  "})

        with pytest.raises(ValidationError) as exc:
            await reserve(db_session, customer=incomplete, items=[{"product_id": product.id, "quantity": 1}])

        assert field in exc.value.message
        assert await _count(db_session, Order) == 0

    @pytest.mark.asyncio
    async def test_unknown_gateway_rejected(self, db_session, customer):
        product = await create_product(db_session)
        with pytest.raises(ValidationError):
            await reserve(
                db_session, customer=customer, items=[{"product_id": product.id, "quantity": 1}], gateway="stripe"
            )
        assert (await fetch(db_session, Product, product.id)).stock == 10
