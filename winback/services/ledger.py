"""Attempt ledger — one row per (tenant, customer, step), dedup barrier and audit trail.

Rows are only ever inserted (by the step processor) or moved SENT -> CONVERTED
once (by the attributor). Nothing here deletes or overwrites.
"""

import logging
from datetime import datetime, timedelta, timezone

from postgrest.exceptions import APIError

from winback import supabase_client as db
from winback.models import AttemptResult, Channel

logger = logging.getLogger(__name__)

_UNIQUE_VIOLATION = "23505"


def record_attempt(
    tenant_id: str,
    customer_id: str,
    step: int,
    channel: Channel,
    discount_percent: float,
    sent_at: datetime | None = None,
    provider_message_id: str = "",
) -> bool:
    """Insert the SENT row for a dispatched step.

    Returns True when the row was created, False when the unique key already
    existed (a concurrent or retried run got there first).
    """
    sent_at = sent_at or datetime.now(timezone.utc)
    try:
        db.insert("wb_attempts", {
            "tenant_id": tenant_id,
            "customer_id": customer_id,
            "step": step,
            "channel": channel.value,
            "discount_percent": discount_percent,
            "result": AttemptResult.SENT.value,
            "sent_at": sent_at.isoformat(),
            "provider_message_id": provider_message_id or None,
        })
    except APIError as e:
        if e.code == _UNIQUE_VIOLATION:
            logger.info("Attempt already recorded: tenant=%s customer=%s step=%s",
                        tenant_id, customer_id, step)
            return False
        raise
    return True


def mark_converted(attempt_id: str, revenue: float, booking_id: str | None = None,
                   converted_at: datetime | None = None) -> bool:
    """Move an attempt from SENT to CONVERTED.

    The update is filtered on result=SENT so a converted row is never touched
    again; returns False if nothing matched.
    """
    converted_at = converted_at or datetime.now(timezone.utc)
    row = db.update("wb_attempts", {
        "result": AttemptResult.CONVERTED.value,
        "converted_at": converted_at.isoformat(),
        "converted_revenue": revenue,
        "converted_booking_id": booking_id,
    }, {"id": attempt_id, "result": AttemptResult.SENT.value})
    return bool(row)


def attempts_by_customer(tenant_id: str, customer_ids: list[str]) -> dict[str, list[dict]]:
    """Group a tenant's attempts for the given customers by customer id."""
    grouped: dict[str, list[dict]] = {cid: [] for cid in customer_ids}
    for attempt in db.get_attempts(tenant_id, customer_ids=customer_ids):
        grouped.setdefault(attempt["customer_id"], []).append(attempt)
    return grouped


def has_conversion(attempts: list[dict]) -> bool:
    """True if any attempt in the list is CONVERTED."""
    return any(a.get("result") == AttemptResult.CONVERTED.value for a in attempts)


def has_step(attempts: list[dict], step: int) -> bool:
    """True if an attempt exists for this step, regardless of age or result."""
    return any(int(a["step"]) == step for a in attempts)


def get_stats(tenant_id: str, eligible_customers: int = 0, now: datetime | None = None) -> dict:
    """Aggregate win-back performance for a tenant."""
    now = now or datetime.now(timezone.utc)
    cutoff = (now - timedelta(days=30)).isoformat()

    attempts = db.get_attempts(tenant_id)
    converted = [a for a in attempts if a.get("result") == AttemptResult.CONVERTED.value]
    total = len(attempts)

    recent = sorted(attempts, key=lambda a: a.get("sent_at") or "", reverse=True)[:20]
    customers = {
        str(c["id"]): {k: c.get(k) for k in ("id", "name", "email", "phone")}
        for c in db.get_customers(tenant_id, sorted({a["customer_id"] for a in recent}))
    }
    recent = [{**a, "customer": customers.get(str(a["customer_id"]))} for a in recent]

    return {
        "total_attempts": total,
        "total_converted": len(converted),
        "conversion_rate": round(len(converted) / total * 100) if total else 0,
        "last_30_days_attempts": sum(1 for a in attempts if (a.get("sent_at") or "") >= cutoff),
        "last_30_days_converted": sum(1 for a in converted if (a.get("converted_at") or "") >= cutoff),
        "revenue_recovered": sum(float(a.get("converted_revenue") or 0) for a in converted),
        "eligible_customers": eligible_customers,
        "recent_attempts": recent,
    }
