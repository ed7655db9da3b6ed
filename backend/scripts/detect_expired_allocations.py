"""Run the expired allocation sweep once, e.g. from a system crontab.

    python scripts/detect_expired_allocations.py
"""
import asyncio
import json
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from agility.config import get_settings
from agility.database import async_session_maker, close_db
from agility.services.expiration_service import detect_expired_allocations, send_expiry_summaries

logger = logging.getLogger("detect_expired_allocations")


async def run() -> dict:
    async with async_session_maker() as db:
        try:
            response, expired = await detect_expired_allocations(db)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        try:
            response.emails_sent = await send_expiry_summaries(db, expired)
        except Exception:
            logger.error("Failed to send expired allocation summaries", exc_info=True)
    await close_db()
    return response.model_dump(mode="json", by_alias=True)


if __name__ == "__main__":
    logging.basicConfig(
        level=getattr(logging, get_settings().log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    print(json.dumps(asyncio.run(run()), indent=2))
