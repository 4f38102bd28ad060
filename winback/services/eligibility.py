"""Eligibility scanner — which customers are due a given win-back step.

A customer is eligible for the step at `day_offset` when:
  1. they have at least one (non-cancelled) booking,
  2. their most recent booking falls inside
     [now - day_offset - 1 day, now - day_offset] (both ends inclusive),
  3. no attempt exists for (tenant, customer, day_offset), however old,
  4. no attempt of theirs at any step is CONVERTED.

The window is one day wide, so a step fires once per dormancy spell rather
than on every run after the threshold.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from dateutil.parser import isoparse

from winback import supabase_client as db
from winback.services import ledger

logger = logging.getLogger(__name__)


@dataclass
class ScanResult:
    """Customers in a step's dormancy window, split by ledger outcome."""
    eligible: list[dict] = field(default_factory=list)
    already_contacted: list[str] = field(default_factory=list)
    converted: list[str] = field(default_factory=list)

    @property
    def excluded(self) -> int:
        return len(self.already_contacted) + len(self.converted)


def parse_ts(value) -> datetime:
    """Parse a stored ISO timestamp into an aware datetime."""
    if isinstance(value, datetime):
        return value
    return isoparse(str(value))


def dormancy_window(day_offset: int, now: datetime) -> tuple[datetime, datetime]:
    """Return the inclusive (start, end) band for a step."""
    end = now - timedelta(days=day_offset)
    return end - timedelta(days=1), end


def last_booking_at(bookings: list[dict]) -> datetime | None:
    """Most recent scheduled_date among bookings, or None if there are none."""
    dates = [parse_ts(b["scheduled_date"]) for b in bookings if b.get("scheduled_date")]
    return max(dates) if dates else None


def in_window(last_booking: datetime | None, day_offset: int, now: datetime) -> bool:
    """Rules 1 and 2: has a booking, and the latest one sits in the step's band."""
    if last_booking is None:
        return False
    start, end = dormancy_window(day_offset, now)
    return start <= last_booking <= end


def scan(tenant_id: str, day_offset: int, now: datetime) -> ScanResult:
    """Find the customers of a tenant due the step at day_offset.

    Read-only. Store errors propagate to the caller, which abandons the step.
    """
    start, end = dormancy_window(day_offset, now)

    # Narrow to customers with any booking inside the band, then confirm
    # against their full history that the band holds their latest booking.
    in_band = db.get_bookings_between(tenant_id, start.isoformat(), end.isoformat())
    candidate_ids = sorted({b["customer_id"] for b in in_band})
    if not candidate_ids:
        return ScanResult()

    bookings_by_customer: dict[str, list[dict]] = {cid: [] for cid in candidate_ids}
    for booking in db.get_bookings_for_customers(tenant_id, candidate_ids):
        bookings_by_customer.setdefault(booking["customer_id"], []).append(booking)

    in_window_ids = [
        cid for cid in candidate_ids
        if in_window(last_booking_at(bookings_by_customer[cid]), day_offset, now)
    ]
    if not in_window_ids:
        return ScanResult()

    attempts = ledger.attempts_by_customer(tenant_id, in_window_ids)

    result = ScanResult()
    eligible_ids = set()
    for cid in in_window_ids:
        history = attempts.get(cid, [])
        if ledger.has_conversion(history):
            result.converted.append(cid)
        elif ledger.has_step(history, day_offset):
            result.already_contacted.append(cid)
        else:
            eligible_ids.add(cid)

    customers = db.get_customers(tenant_id, sorted(eligible_ids))
    result.eligible = sorted(customers, key=lambda c: str(c["id"]))

    logger.debug(
        "Scan tenant=%s step=%s: %d eligible, %d contacted, %d converted",
        tenant_id, day_offset, len(result.eligible),
        len(result.already_contacted), len(result.converted),
    )
    return result


def count_dormant(tenant_id: str, min_offset: int, now: datetime) -> int:
    """Customers with a booking whose latest one is at least min_offset days old."""
    cutoff = now - timedelta(days=min_offset)
    latest: dict[str, datetime] = {}
    for booking in db.get_tenant_bookings(tenant_id):
        ts = parse_ts(booking["scheduled_date"])
        cid = booking["customer_id"]
        if cid not in latest or ts > latest[cid]:
            latest[cid] = ts
    return sum(1 for ts in latest.values() if ts < cutoff)
