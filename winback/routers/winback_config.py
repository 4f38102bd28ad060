"""Win-back configuration endpoints — read config + stats, write validated step lists."""

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request

from winback.models import ConfigValidationError
from winback.routers.auth import require_cron_secret
from winback.services import config_store, ledger
from winback.services.eligibility import count_dormant

router = APIRouter(prefix="/tenants", dependencies=[Depends(require_cron_secret)])


@router.get("/{tenant_id}/winback")
async def get_winback(tenant_id: str):
    """Current config (stored or default), enabled flag, and performance stats."""
    config = config_store.get_config(tenant_id)
    if config is None:
        raise HTTPException(status_code=404, detail="Tenant not found")

    steps = config_store.effective_steps(config)
    now = datetime.now(timezone.utc)
    eligible = count_dormant(tenant_id, min(s.day_offset for s in steps), now)

    return {
        "success": True,
        "data": {
            "enabled": config.enabled,
            "config": {"steps": [s.to_dict() for s in steps]},
            "stats": ledger.get_stats(tenant_id, eligible_customers=eligible, now=now),
        },
    }


@router.put("/{tenant_id}/winback")
async def put_winback(tenant_id: str, request: Request):
    """Update the enabled flag and/or step list. The step list is all-or-nothing."""
    if config_store.get_config(tenant_id) is None:
        raise HTTPException(status_code=404, detail="Tenant not found")

    body: Any = await request.json()
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Body must be a JSON object")

    enabled = body.get("enabled")
    if enabled is not None and not isinstance(enabled, bool):
        raise HTTPException(status_code=400, detail="enabled must be a boolean")

    # Accepts {"steps": [...]} or the nested {"config": {"steps": [...]}}
    steps = body.get("steps")
    if body.get("config") is not None:
        if not isinstance(body["config"], dict):
            raise HTTPException(status_code=400, detail="config must be an object")
        steps = body["config"].get("steps", [])

    try:
        config = config_store.save_config(tenant_id, enabled=enabled, steps=steps)
    except ConfigValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if enabled is not None and steps is None:
        message = "Win-back automation enabled" if enabled else "Win-back automation disabled"
    else:
        message = "Win-back configuration updated"

    return {
        "success": True,
        "message": message,
        "data": {
            "enabled": config.enabled,
            "config": {"steps": [s.to_dict() for s in config.steps]},
        },
    }
