"""
Tests for the reaper (expired reservation release).
"""
import asyncio
from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest

from db_models import Order, Product, Transaction
from services import reaper_service
from services.reservation_service import reserve
from services.settlement_service import settle
from tests.conftest import create_product, fetch
from utils.clock import utcnow


@pytest.fixture
async def expired_setup(db_session, customer):
    product = await create_product(db_session, price=Decimal("3000"), stock=5)
    reservation = await reserve(db_session, customer=customer, items=[{"product_id": product.id, "quantity": 2}])
    return product.id, reservation


@pytest.mark.asyncio
async def test_sweep_before_expiry_changes_nothing(session_factory, db_session, expired_setup):
    product_id, reservation = expired_setup

    abandoned = await reaper_service.sweep_expired(session_factory, now=reservation.expires_at - timedelta(seconds=1))

    assert abandoned == 0
    assert (await fetch(db_session, Order, reservation.order_id)).status == "pending"
    assert (await fetch(db_session, Product, product_id)).stock == 3


@pytest.mark.asyncio
async def test_sweep_after_expiry_abandons_and_restores(session_factory, db_session, expired_setup):
    product_id, reservation = expired_setup

    abandoned = await reaper_service.sweep_expired(session_factory, now=reservation.expires_at + timedelta(seconds=1))

    assert abandoned == 1
    assert (await fetch(db_session, Order, reservation.order_id)).status == "abandoned"
    assert (await fetch(db_session, Transaction, reservation.transaction_id)).status == "failed"
    assert (await fetch(db_session, Product, product_id)).stock == 5


@pytest.mark.asyncio
async def test_second_sweep_is_noop(session_factory, db_session, expired_setup):
    product_id, reservation = expired_setup
    later = reservation.expires_at + timedelta(minutes=1)

    assert await reaper_service.sweep_expired(session_factory, now=later) == 1
    assert await reaper_service.sweep_expired(session_factory, now=later) == 0
    assert (await fetch(db_session, Product, product_id)).stock == 5


@pytest.mark.asyncio
async def test_paid_orders_are_left_alone(session_factory, db_session, expired_setup):
    product_id, reservation = expired_setup
    await settle(db_session, reference=reservation.transaction_id, success=True, raw_payload={})

    abandoned = await reaper_service.sweep_expired(session_factory, now=reservation.expires_at + timedelta(hours=1))

    assert abandoned == 0
    assert (await fetch(db_session, Order, reservation.order_id)).status == "paid"
    assert (await fetch(db_session, Product, product_id)).stock == 3


@pytest.mark.asyncio
async def test_one_failing_order_does_not_stop_the_sweep(session_factory, db_session, customer):
    product = await create_product(db_session, stock=10)
    first = await reserve(db_session, customer=customer, items=[{"product_id": product.id, "quantity": 1}])
    second = await reserve(db_session, customer=customer, items=[{"product_id": product.id, "quantity": 1}])

    real_settle = reaper_service.settle

    async def flaky_settle(db, *, reference, **kwargs):
        if reference == first.transaction_id:
            raise RuntimeError("database hiccup")
        return await real_settle(db, reference=reference, **kwargs)

    with patch("services.reaper_service.settle", side_effect=flaky_settle):
        abandoned = await reaper_service.sweep_expired(session_factory, now=utcnow() + timedelta(hours=1))

    assert abandoned == 1
    assert (await fetch(db_session, Order, first.order_id)).status == "pending"
    assert (await fetch(db_session, Order, second.order_id)).status == "abandoned"


@pytest.mark.asyncio
async def test_background_task_start_stop(session_factory):
    await reaper_service.start(session_factory)
    await asyncio.sleep(0)
    assert reaper_service.get_status()["running"] is True

    await reaper_service.stop()
    status = reaper_service.get_status()
    assert status["running"] is False
    assert status["intervalSeconds"] == 300
