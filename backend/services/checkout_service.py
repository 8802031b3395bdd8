"""
Checkout service — reserve, then open the gateway's hosted payment page.

The reservation commits before the gateway is called, so no lock is held
during network I/O. If initialization fails for any reason the reservation
is settled as failed (stock restored, order abandoned) and a GatewayError
propagates.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from domain.errors import GatewayError
from services.gateways import get_gateway
from services.gateways.base import GatewayCustomer, InitializeRequest
from services.reservation_service import CustomerInfo, reserve
from services.settlement_service import settle

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutSession:
    transaction_id: str
    order_id: int
    amount: Decimal
    currency: str
    expires_at: datetime
    url: str
    gateway: str


async def start_checkout(
    db: AsyncSession,
    *,
    customer: CustomerInfo,
    items: list,
    gateway: str | None = None,
    gateway_factory: Callable = get_gateway,
    now: datetime | None = None,
) -> CheckoutSession:
    reservation = await reserve(db, customer=customer, items=items, gateway=gateway, now=now)

    adapter = gateway_factory(reservation.gateway)
    request = InitializeRequest(
        reference=reservation.transaction_id,
        amount=reservation.amount,
        currency=reservation.currency,
        customer=GatewayCustomer(
            email=customer.email.strip(),
            name=customer.customer_name.strip(),
            phone=customer.phone.strip(),
        ),
        redirect_url=settings.checkout_redirect_url,
        metadata={"order_id": reservation.order_id},
    )

    try:
        url = await adapter.initialize(request)
    except Exception as e:
        error = e if isinstance(e, GatewayError) else GatewayError(
            f"{reservation.gateway} returned an unusable response", gateway=reservation.gateway
        )
        logger.error(
            f"Gateway initialization failed for order {reservation.order_id} "
            f"({reservation.gateway}): {e!r}; releasing reservation"
        )
        await settle(
            db,
            reference=reservation.transaction_id,
            success=False,
            raw_payload={"stage": "initialize", "error": error.message, **error.details},
        )
        if error is e:
            raise
        raise error from e

    logger.info(f"Checkout ready for order {reservation.order_id} via {reservation.gateway}")
    return CheckoutSession(
        transaction_id=reservation.transaction_id,
        order_id=reservation.order_id,
        amount=reservation.amount,
        currency=reservation.currency,
        expires_at=reservation.expires_at,
        url=url,
        gateway=reservation.gateway,
    )
