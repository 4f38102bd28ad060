"""Cron trigger endpoints — external schedulers start win-back passes here."""

import logging

from fastapi import APIRouter, Depends

from winback.routers.auth import require_cron_secret
from winback.services.attributor import attribute_conversions
from winback.services.step_processor import process_all

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", dependencies=[Depends(require_cron_secret)])


@router.post("/winback")
async def run_winback():
    """Run the step pass across all enabled tenants and return the run summary."""
    summary = await process_all()
    return {"success": True, "data": summary}


@router.post("/winback/attribution")
async def run_attribution():
    """Run the conversion attribution pass."""
    summary = attribute_conversions()
    return {"success": True, "data": summary}
