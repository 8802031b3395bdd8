"""
Payment verification route (success-page fallback).

POST /payments/verify  {reference} → {status: success|pending|failed, message?}
"""
import logging
from typing import Callable

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from deps import get_gateway_factory
from models import VerifyRequest, VerifyResponse
from services.verification_service import verify_payment

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/verify", response_model=VerifyResponse)
async def verify(
    req: VerifyRequest,
    db: AsyncSession = Depends(get_db),
    gateway_factory: Callable = Depends(get_gateway_factory),
):
    result = await verify_payment(db, reference=req.reference.strip(), gateway_factory=gateway_factory)
    return VerifyResponse(status=result.status.value, message=result.message)
