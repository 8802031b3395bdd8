"""
Gateway webhook receivers.

    POST /webhooks/paystack      — x-paystack-signature (HMAC-SHA512)
    POST /webhooks/flutterwave   — verif-hash (shared secret)

The signature is checked against the raw body before anything is parsed.
A success whose paid amount is below the transaction amount settles as a
failure, the same answer the verify fallback gives.
Bad signature → 401 and nothing is settled. Authentic payloads always get a
200 (settled, duplicate, unknown reference, or ignored) so the gateway stops
retrying; outcomes are logged.
"""
import json
import logging
from typing import Callable

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from deps import get_gateway_factory
from domain.enums import GatewayName
from domain.errors import SignatureInvalidError
from services.settlement_service import settle

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


async def _receive(
    gateway_name: GatewayName,
    request: Request,
    db: AsyncSession,
    gateway_factory: Callable,
) -> dict:
    gateway = gateway_factory(gateway_name)
    body = await request.body()
    signature = request.headers.get(gateway.signature_header)

    if not gateway.verify_signature(body, signature):
        client_ip = request.client.host if request.client else "unknown"
        logger.warning(f"Rejected {gateway_name.value} webhook from {client_ip}: invalid signature")
        raise SignatureInvalidError()

    try:
        event = json.loads(body)
    except ValueError:
        logger.warning(f"{gateway_name.value} webhook body is not JSON; ignored")
        return {"received": True, "status": "ignored"}

    if not isinstance(event, dict):
        logger.warning(f"{gateway_name.value} webhook body is not an object; ignored")
        return {"received": True, "status": "ignored"}

    try:
        parsed = gateway.parse_webhook(event)
    except ValueError as e:
        logger.warning(f"{gateway_name.value} webhook ignored: {e}")
        return {"received": True, "status": "ignored"}

    if parsed is None:
        logger.debug(f"{gateway_name.value} webhook event {event.get('event')!r} ignored")
        return {"received": True, "status": "ignored"}

    outcome = await settle(
        db,
        reference=parsed.reference,
        success=parsed.success,
        raw_payload=parsed.raw_payload,
        paid_amount=parsed.amount,
        paid_currency=parsed.currency,
    )
    logger.info(f"{gateway_name.value} webhook {parsed.reference} (success={parsed.success}) → {outcome.value}")
    return {"received": True, "status": outcome.value}


@router.post("/paystack")
async def paystack_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    gateway_factory: Callable = Depends(get_gateway_factory),
):
    return await _receive(GatewayName.PAYSTACK, request, db, gateway_factory)


@router.post("/flutterwave")
async def flutterwave_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    gateway_factory: Callable = Depends(get_gateway_factory),
):
    return await _receive(GatewayName.FLUTTERWAVE, request, db, gateway_factory)
