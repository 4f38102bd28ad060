"""Shared-secret check for scheduler and admin endpoints."""

from fastapi import Header, HTTPException

from winback import config


def require_cron_secret(authorization: str = Header("")) -> None:
    """Reject requests without `Authorization: Bearer <CRON_SECRET>` when a secret is set."""
    if config.CRON_SECRET:
        expected = f"Bearer {config.CRON_SECRET}"
        if authorization != expected:
            raise HTTPException(status_code=401, detail="Unauthorized")
