"""
Tests for the settlement service.

Tests: success/failure paths, idempotency (settle twice == settle once),
unknown references, and the paid-after-expiry warning.
"""
import logging
from decimal import Decimal

import pytest

from db_models import Order, Product, Transaction
from services.reservation_service import reserve
from services.settlement_service import SettlementOutcome, settle
from tests.conftest import create_product, fetch


@pytest.fixture
async def reservation(db_session, customer):
    first = await create_product(db_session, name="Oxford Shoe", price=Decimal("25000"), stock=4)
    second = await create_product(db_session, name="Shoe Horn", price=Decimal("1500"), stock=10)
    res = await reserve(
        db_session,
        customer=customer,
        items=[{"product_id": first.id, "quantity": 2}, {"product_id": second.id, "quantity": 3}],
    )
    return res, first.id, second.id


@pytest.mark.asyncio
async def test_success_marks_paid_and_keeps_stock(db_session, reservation):
    res, first_id, second_id = reservation
    payload = {"reference": res.transaction_id, "status": "success"}

    outcome = await settle(db_session, reference=res.transaction_id, success=True, raw_payload=payload)

    assert outcome == SettlementOutcome.SETTLED
    tx = await fetch(db_session, Transaction, res.transaction_id)
    assert tx.status == "success"
    assert tx.gateway_response == payload
    assert tx.settled_at is not None

    order = await fetch(db_session, Order, res.order_id)
    assert order.status == "paid"
    assert order.paid_at is not None

    assert (await fetch(db_session, Product, first_id)).stock == 2
    assert (await fetch(db_session, Product, second_id)).stock == 7


@pytest.mark.asyncio
async def test_failure_abandons_and_restores_stock(db_session, reservation):
    res, first_id, second_id = reservation

    outcome = await settle(db_session, reference=res.transaction_id, success=False, raw_payload={"status": "failed"})

    assert outcome == SettlementOutcome.SETTLED
    assert (await fetch(db_session, Transaction, res.transaction_id)).status == "failed"
    order = await fetch(db_session, Order, res.order_id)
    assert order.status == "abandoned"
    assert order.paid_at is None
    assert (await fetch(db_session, Product, first_id)).stock == 4
    assert (await fetch(db_session, Product, second_id)).stock == 10


@pytest.mark.asyncio
async def test_duplicate_success_is_noop(db_session, reservation):
    res, first_id, _ = reservation

    await settle(db_session, reference=res.transaction_id, success=True, raw_payload={"n": 1})
    paid_at = (await fetch(db_session, Order, res.order_id)).paid_at

    outcome = await settle(db_session, reference=res.transaction_id, success=True, raw_payload={"n": 2})

    assert outcome == SettlementOutcome.ALREADY_SETTLED
    tx = await fetch(db_session, Transaction, res.transaction_id)
    assert tx.gateway_response == {"n": 1}
    order = await fetch(db_session, Order, res.order_id)
    assert order.status == "paid"
    assert order.paid_at == paid_at
    assert (await fetch(db_session, Product, first_id)).stock == 2


@pytest.mark.asyncio
async def test_duplicate_failure_restores_stock_once(db_session, reservation):
    res, first_id, second_id = reservation

    await settle(db_session, reference=res.transaction_id, success=False, raw_payload={})
    outcome = await settle(db_session, reference=res.transaction_id, success=False, raw_payload={})

    assert outcome == SettlementOutcome.ALREADY_SETTLED
    assert (await fetch(db_session, Product, first_id)).stock == 4
    assert (await fetch(db_session, Product, second_id)).stock == 10


@pytest.mark.asyncio
async def test_failure_after_success_is_ignored(db_session, reservation):
    res, first_id, _ = reservation

    await settle(db_session, reference=res.transaction_id, success=True, raw_payload={})
    outcome = await settle(db_session, reference=res.transaction_id, success=False, raw_payload={})

    assert outcome == SettlementOutcome.ALREADY_SETTLED
    assert (await fetch(db_session, Order, res.order_id)).status == "paid"
    assert (await fetch(db_session, Product, first_id)).stock == 2


@pytest.mark.asyncio
async def test_success_after_failure_warns_and_changes_nothing(db_session, reservation, caplog):
    res, first_id, _ = reservation
    await settle(db_session, reference=res.transaction_id, success=False, raw_payload={})

    with caplog.at_level(logging.WARNING, logger="services.settlement_service"):
        outcome = await settle(db_session, reference=res.transaction_id, success=True, raw_payload={})

    assert outcome == SettlementOutcome.ALREADY_SETTLED
    assert "paid after expiry" in caplog.text
    assert (await fetch(db_session, Transaction, res.transaction_id)).status == "failed"
    assert (await fetch(db_session, Order, res.order_id)).status == "abandoned"
    assert (await fetch(db_session, Product, first_id)).stock == 4


@pytest.mark.asyncio
async def test_unknown_reference(db_session):
    outcome = await settle(db_session, reference="no-such-reference", success=True, raw_payload={})
    assert outcome == SettlementOutcome.NOT_FOUND


@pytest.mark.asyncio
@pytest.mark.parametrize("paid_amount,paid_currency,expected", [
    (Decimal("54500.00"), "NGN", "paid"),
    (Decimal("60000"), "ngn", "paid"),
    (Decimal("54500.00"), None, "paid"),
    (Decimal("54499.99"), "NGN", "abandoned"),
    (Decimal("54500.00"), "USD", "abandoned"),
])
async def test_paid_amount_must_cover_transaction(db_session, reservation, paid_amount, paid_currency, expected):
    res, first_id, _ = reservation
    assert res.amount == Decimal("54500.00")

    outcome = await settle(
        db_session,
        reference=res.transaction_id,
        success=True,
        raw_payload={},
        paid_amount=paid_amount,
        paid_currency=paid_currency,
    )

    assert outcome == SettlementOutcome.SETTLED
    assert (await fetch(db_session, Order, res.order_id)).status == expected
    assert (await fetch(db_session, Product, first_id)).stock == (2 if expected == "paid" else 4)


@pytest.mark.asyncio
async def test_short_payment_is_logged(db_session, reservation, caplog):
    res, _, _ = reservation

    with caplog.at_level(logging.WARNING, logger="services.settlement_service"):
        await settle(db_session, reference=res.transaction_id, success=True, paid_amount=Decimal("1"))

    assert "does not cover the order" in caplog.text
    assert (await fetch(db_session, Transaction, res.transaction_id)).status == "failed"
