"""
Scheduled-job endpoints, for an external scheduler.

POST /cron/cleanup-orders   Authorization: Bearer <CRON_SECRET>
    → {abandoned_count}
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import async_sessionmaker

from database import get_session_factory
from deps import require_cron_secret
from models import CleanupResponse
from services.reaper_service import sweep_expired

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["cron"])


@router.post("/cleanup-orders", response_model=CleanupResponse, dependencies=[Depends(require_cron_secret)])
async def cleanup_orders(session_factory: async_sessionmaker = Depends(get_session_factory)):
    abandoned = await sweep_expired(session_factory)
    logger.info(f"Cron cleanup abandoned {abandoned} order(s)")
    return CleanupResponse(abandoned_count=abandoned)
