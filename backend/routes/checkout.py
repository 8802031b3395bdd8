"""
Checkout route — reserve stock and return the gateway payment page.

POST /checkout
    200 → {transaction_id, order_id, amount, currency, expires_at, url, gateway}
    400 validation · 409 inventory_issue · 502 gateway_error · 429 rate_limited
"""
import logging
from typing import Callable

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from deps import get_gateway_factory
from middleware.rate_limit import rate_limit
from models import CheckoutRequest, CheckoutResponse
from services.checkout_service import start_checkout
from services.reservation_service import CustomerInfo

logger = logging.getLogger(__name__)

router = APIRouter(tags=["checkout"])


@router.post("/checkout", response_model=CheckoutResponse, dependencies=[Depends(rate_limit())])
async def checkout(
    req: CheckoutRequest,
    db: AsyncSession = Depends(get_db),
    gateway_factory: Callable = Depends(get_gateway_factory),
):
    session = await start_checkout(
        db,
        customer=CustomerInfo(
            email=req.email,
            customer_name=req.customer_name,
            phone=req.phone,
            address=req.address,
        ),
        items=[item.model_dump() for item in req.items],
        gateway=req.gateway,
        gateway_factory=gateway_factory,
    )
    return CheckoutResponse(
        transaction_id=session.transaction_id,
        order_id=session.order_id,
        amount=session.amount,
        currency=session.currency,
        expires_at=session.expires_at,
        url=session.url,
        gateway=session.gateway,
    )
