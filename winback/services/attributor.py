"""Conversion attributor — credits new bookings to the win-back attempt that earned them.

Runs on its own schedule, separately from the step processor. For each
customer holding SENT attempts, the first non-cancelled booking dated after
their earliest SENT attempt is credited to the most recent attempt sent before
that booking. One booking converts one attempt; the customer's older attempts
stay SENT, and a customer who already has a CONVERTED attempt is left alone.
"""

import logging
from collections import defaultdict
from datetime import datetime, timezone

from winback import supabase_client as db
from winback.models import AttemptResult
from winback.services import ledger
from winback.services.eligibility import parse_ts

logger = logging.getLogger(__name__)


def _pick_conversion(sent_attempts: list[dict], bookings: list[dict]) -> tuple[dict, dict] | None:
    """Return (attempt, booking) to convert, or None if nothing qualifies."""
    if not sent_attempts:
        return None
    by_send = sorted(sent_attempts, key=lambda a: parse_ts(a["sent_at"]))
    first_sent = parse_ts(by_send[0]["sent_at"])

    qualifying = sorted(
        (b for b in bookings if parse_ts(b["scheduled_date"]) > first_sent),
        key=lambda b: parse_ts(b["scheduled_date"]),
    )
    if not qualifying:
        return None
    booking = qualifying[0]
    booked_at = parse_ts(booking["scheduled_date"])

    prior = [a for a in by_send if parse_ts(a["sent_at"]) < booked_at]
    return prior[-1], booking


def attribute_tenant(tenant_id: str, sent_attempts: list[dict],
                     now: datetime) -> dict:
    """Attribute conversions for one tenant's SENT attempts."""
    by_customer: dict[str, list[dict]] = defaultdict(list)
    for attempt in sent_attempts:
        by_customer[attempt["customer_id"]].append(attempt)

    customer_ids = sorted(by_customer)
    history = ledger.attempts_by_customer(tenant_id, customer_ids)
    bookings_by_customer: dict[str, list[dict]] = defaultdict(list)
    for booking in db.get_bookings_for_customers(tenant_id, customer_ids):
        bookings_by_customer[booking["customer_id"]].append(booking)

    converted = 0
    revenue = 0.0
    for customer_id in customer_ids:
        if ledger.has_conversion(history.get(customer_id, [])):
            continue
        match = _pick_conversion(by_customer[customer_id], bookings_by_customer[customer_id])
        if match is None:
            continue
        attempt, booking = match
        amount = float(booking.get("final_price") or 0)
        if ledger.mark_converted(attempt["id"], amount, booking.get("id"), now):
            converted += 1
            revenue += amount
            db.log_action(
                "winback_converted", "customer", customer_id,
                f"Step {attempt['step']} converted: booking {booking.get('id')} (${amount:.2f})",
                tenant_id=tenant_id,
            )

    return {"attempts_checked": len(sent_attempts), "converted": converted, "revenue": revenue}


def attribute_conversions(tenant_id: str | None = None, now: datetime | None = None) -> dict:
    """Scan SENT attempts and record conversions. Called by scheduler and cron endpoint.

    Returns {attempts_checked, converted, revenue, errors}.
    """
    now = now or datetime.now(timezone.utc)
    match = {"result": AttemptResult.SENT.value}
    if tenant_id:
        match["tenant_id"] = tenant_id
    sent = db.select("wb_attempts", match=match)

    by_tenant: dict[str, list[dict]] = defaultdict(list)
    for attempt in sent:
        by_tenant[str(attempt["tenant_id"])].append(attempt)

    summary = {"attempts_checked": 0, "converted": 0, "revenue": 0.0, "errors": []}
    for tid, attempts in by_tenant.items():
        try:
            result = attribute_tenant(tid, attempts, now)
        except Exception as e:
            logger.exception("Attribution failed for tenant %s", tid)
            summary["errors"].append(f"Tenant {tid}: {e}")
            continue
        summary["attempts_checked"] += result["attempts_checked"]
        summary["converted"] += result["converted"]
        summary["revenue"] += result["revenue"]

    if summary["converted"]:
        logger.info("Attribution: %d converted, $%.2f recovered",
                    summary["converted"], summary["revenue"])
    return summary
