"""APScheduler — runs the win-back step pass and the attribution pass on separate intervals."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from winback.config import ATTRIBUTION_INTERVAL_HOURS, WINBACK_INTERVAL_MINUTES
from winback.services.attributor import attribute_conversions
from winback.services.step_processor import process_all

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


@scheduler.scheduled_job("interval", minutes=WINBACK_INTERVAL_MINUTES, id="process_winback")
async def process_winback():
    """Advance dormant customers through their tenant's win-back steps."""
    try:
        result = await process_all()
        if result["total_sent"] or result["total_failed"]:
            logger.info(
                "Win-back processing: %d tenants, %d sent, %d failed",
                result["tenants_processed"],
                result["total_sent"],
                result["total_failed"],
            )
    except Exception as e:
        logger.error("Win-back processing failed: %s", e)


@scheduler.scheduled_job("interval", hours=ATTRIBUTION_INTERVAL_HOURS, id="attribute_conversions")
async def attribute_winback_conversions():
    """Credit new bookings to earlier win-back attempts."""
    try:
        result = attribute_conversions()
        if result["errors"]:
            logger.warning("Attribution finished with %d tenant errors", len(result["errors"]))
    except Exception as e:
        logger.error("Conversion attribution failed: %s", e)
