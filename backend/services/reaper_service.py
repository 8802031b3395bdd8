"""
Reaper — releases reservations whose TTL passed without a payment outcome.

Each expired pending order is settled as failed in its own session, so one
bad order cannot block the rest of the sweep. Runs as an asyncio background
task during the FastAPI app lifespan and on demand via /cron/cleanup-orders.
"""
import asyncio
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from config import settings
from db_models import Order, Transaction
from domain.enums import OrderStatus
from services.settlement_service import SettlementOutcome, settle
from utils.clock import utcnow

logger = logging.getLogger(__name__)

# Reaper state
_reaper_task: Optional[asyncio.Task] = None
_is_running: bool = False
_errors_count: int = 0
_last_run_at: Optional[datetime] = None
_last_abandoned: int = 0


async def _find_expired(session_factory: async_sessionmaker, now: datetime) -> list[tuple[int, str]]:
    async with session_factory() as db:
        result = await db.execute(
            select(Order.id, Transaction.id)
            .join(Transaction, Transaction.order_id == Order.id)
            .where(Order.status == OrderStatus.PENDING.value, Order.expires_at < now)
            .order_by(Order.expires_at)
        )
        rows = [(order_id, reference) for order_id, reference in result.all()]
        await db.rollback()
    return rows


async def sweep_expired(session_factory: async_sessionmaker, now: datetime | None = None) -> int:
    """
    Abandon every pending order whose expires_at is before `now`.

    Returns:
        Number of orders this sweep actually abandoned
    """
    now = now or utcnow()
    expired = await _find_expired(session_factory, now)
    if not expired:
        return 0

    abandoned = 0
    for order_id, reference in expired:
        try:
            async with session_factory() as db:
                outcome = await settle(db, reference=reference, success=False, raw_payload={}, now=now)
            if outcome == SettlementOutcome.SETTLED:
                abandoned += 1
        except Exception as e:
            logger.error(f"Reaper could not release order {order_id} ({reference}): {e}")

    logger.info(f"🧹 Reaper released {abandoned}/{len(expired)} expired reservation(s)")
    return abandoned


async def _reaper_loop(session_factory: async_sessionmaker):
    """Sweep every reaper_interval_seconds until stopped."""
    global _is_running, _errors_count, _last_run_at, _last_abandoned

    _is_running = True
    interval = settings.reaper_interval_seconds
    logger.info(f"Reaper started (sweeping every {interval}s)")

    while _is_running:
        try:
            await asyncio.sleep(interval)
            _last_abandoned = await sweep_expired(session_factory)
            _last_run_at = utcnow()
        except asyncio.CancelledError:
            logger.info("Reaper cancelled")
            break
        except Exception as e:
            _errors_count += 1
            logger.error(f"Reaper cycle error: {e}")

    _is_running = False
    logger.info("Reaper stopped")


# ════════════════════════════════════════════════════════════════════
# Public API: Start / Stop / Status
# ════════════════════════════════════════════════════════════════════


async def start(session_factory: async_sessionmaker):
    """Start the reaper as a background asyncio task."""
    global _reaper_task, _is_running

    if _reaper_task and not _reaper_task.done():
        logger.warning("Reaper already running")
        return

    _is_running = True
    _reaper_task = asyncio.create_task(_reaper_loop(session_factory))


async def stop():
    """Stop the reaper task gracefully."""
    global _reaper_task, _is_running
    _is_running = False

    if _reaper_task and not _reaper_task.done():
        _reaper_task.cancel()
        try:
            await _reaper_task
        except asyncio.CancelledError:
            logger.debug("Reaper task cancelled during shutdown")

    _reaper_task = None


def get_status() -> dict:
    """Reaper status for the /health endpoint."""
    return {
        "running": _is_running,
        "intervalSeconds": settings.reaper_interval_seconds,
        "lastRunAt": _last_run_at.isoformat() if _last_run_at else None,
        "lastAbandoned": _last_abandoned,
        "errorsCount": _errors_count,
    }
