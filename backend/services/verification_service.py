"""
Verify fallback — resolve a payment when the customer lands on the success
page before (or instead of) the webhook.

Terminal transactions are answered from the database. Pending ones are looked
up at the gateway that issued them:
    failed  → settled as failed right away (stock restored)
    pending → reported, nothing written
    success → settled as paid when settings.verify_settles_success is on,
              otherwise left for the webhook
"""
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db_models import Transaction
from domain.enums import PaymentOutcome, TransactionStatus
from domain.errors import NotFoundError
from services.gateways import get_gateway
from services.settlement_service import settle

logger = logging.getLogger(__name__)


@dataclass
class VerifyResult:
    status: PaymentOutcome
    message: Optional[str] = None


async def _load_status(db: AsyncSession, reference: str):
    row = (
        await db.execute(
            select(Transaction.status, Transaction.gateway, Transaction.amount)
            .where(Transaction.id == reference)
        )
    ).first()
    # End the read transaction; the gateway call below must not hold the lock.
    await db.rollback()
    return row


def _from_stored(status: str) -> VerifyResult:
    if status == TransactionStatus.SUCCESS.value:
        return VerifyResult(PaymentOutcome.SUCCESS, "Payment confirmed")
    return VerifyResult(PaymentOutcome.FAILED, "Payment failed or the reservation expired")


async def verify_payment(
    db: AsyncSession,
    *,
    reference: str,
    gateway_factory: Callable = get_gateway,
) -> VerifyResult:
    """
    Report (and where possible settle) the outcome for `reference`.

    Raises:
        NotFoundError: unknown reference
        GatewayError: gateway unreachable or malformed answer; safe to retry
    """
    row = await _load_status(db, reference)
    if row is None:
        raise NotFoundError("Transaction", reference)

    status, gateway_name, amount = row
    if status != TransactionStatus.PENDING.value:
        logger.debug(f"Verify {reference}: already {status}")
        return _from_stored(status)

    gateway = gateway_factory(gateway_name)
    result = await gateway.verify(reference, expected_amount=amount)
    logger.info(f"Verify {reference} via {gateway_name}: {result.outcome.value}")

    if result.outcome == PaymentOutcome.PENDING:
        return VerifyResult(PaymentOutcome.PENDING, result.message or "Payment is still processing")

    if result.outcome == PaymentOutcome.FAILED:
        await settle(db, reference=reference, success=False, raw_payload=result.raw_payload)
        return VerifyResult(PaymentOutcome.FAILED, result.message or "Payment failed")

    if not settings.verify_settles_success:
        return VerifyResult(PaymentOutcome.SUCCESS, "Payment confirmed")

    await settle(db, reference=reference, success=True, raw_payload=result.raw_payload)

    # The reaper may have released the reservation just before we settled.
    row = await _load_status(db, reference)
    if row is not None and row[0] == TransactionStatus.FAILED.value:
        return VerifyResult(
            PaymentOutcome.FAILED,
            "Payment received after the reservation expired; our team will contact you",
        )
    return VerifyResult(PaymentOutcome.SUCCESS, "Payment confirmed")
