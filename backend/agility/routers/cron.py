"""Scheduler-triggered jobs."""
import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from agility.auth.deps import verify_cron_secret
from agility.database import get_db
from agility.schemas.expired import SweepResponse
from agility.services import expiration_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["cron"], dependencies=[Depends(verify_cron_secret)])


@router.get("/detect-expired-allocations", response_model=SweepResponse)
async def detect_expired_allocations(db: Annotated[AsyncSession, Depends(get_db)]):
    response, expired = await expiration_service.detect_expired_allocations(db)
    # Persist detection before any email goes out
    await db.commit()
    try:
        response.emails_sent = await expiration_service.send_expiry_summaries(db, expired)
    except Exception:
        logger.error("Failed to send expired allocation summaries", exc_info=True)
    return response
