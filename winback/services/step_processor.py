"""Step processor — scan, render, dispatch, and record win-back steps per tenant."""

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Callable

from winback import supabase_client as db
from winback.config import MAX_CONCURRENT_SENDS
from winback.models import Channel, StepConfig, WinBackConfig
from winback.services import eligibility, ledger
from winback.services.config_store import load_enabled_configs
from winback.services.gateway import OutboundMessage, ProviderGateway, SendResult
from winback.services.renderer import build_context, render, render_email_html, render_subject

logger = logging.getLogger(__name__)

# Lock to prevent overlapping runs in this process from double-sending
_processing_lock = asyncio.Lock()

SENT = "sent"
SKIPPED = "skipped"
FAILED = "failed"


@dataclass
class TenantResult:
    tenant_id: str
    tenant_name: str = ""
    sent: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    def count(self, outcome: str) -> None:
        setattr(self, outcome, getattr(self, outcome) + 1)


def _audit(action: str, entity_id: str, details: str, tenant_id: str) -> None:
    """Write an audit row; a failure here must not change the customer's outcome."""
    try:
        db.log_action(action, "customer", entity_id, details, tenant_id=tenant_id)
    except Exception as e:
        logger.warning("Audit log write failed (%s): %s", action, e)


def _destinations(customer: dict) -> dict[Channel, str]:
    return {
        Channel.SMS: (customer.get("phone") or "").strip(),
        Channel.EMAIL: (customer.get("email") or "").strip(),
    }


async def _dispatch(tenant: dict, step: StepConfig, customer: dict, gateway,
                    semaphore: asyncio.Semaphore) -> str:
    """Send one step to one customer and record it. Returns sent/skipped/failed."""
    tenant_id = str(tenant["id"])
    customer_id = str(customer["id"])

    destinations = _destinations(customer)
    channels = [ch for ch in step.channel.targets() if destinations[ch]]
    if not channels:
        logger.info("No contact channel for customer %s (step %s), skipping",
                    customer_id, step.day_offset)
        return SKIPPED

    context = build_context(customer, tenant, step)
    body = render(step.template, context)

    delivered: list[Channel] = []
    provider_ids: list[str] = []
    errors: list[str] = []
    async with semaphore:
        for channel in channels:
            if channel is Channel.EMAIL:
                message = OutboundMessage(
                    body=body,
                    subject=render_subject(step, context),
                    html=render_email_html(body, step, context),
                )
            else:
                message = OutboundMessage(body=body)

            try:
                result = await asyncio.to_thread(gateway.send, channel, destinations[channel], message)
            except Exception as e:
                result = SendResult(False, error=str(e))

            if result.success:
                delivered.append(channel)
                if result.provider_id:
                    provider_ids.append(result.provider_id)
            else:
                errors.append(f"{channel.value}: {result.error}")

    if not delivered:
        logger.warning("Win-back step %s failed for customer %s: %s",
                       step.day_offset, customer_id, "; ".join(errors))
        _audit("winback_send_error", customer_id,
               f"Step {step.day_offset}: {'; '.join(errors)}", tenant_id)
        return FAILED

    channel_used = delivered[0] if len(delivered) == 1 else Channel.BOTH
    created = ledger.record_attempt(
        tenant_id, customer_id, step.day_offset, channel_used, step.discount_percent,
        provider_message_id=",".join(provider_ids),
    )
    if created:
        _audit("winback_attempt_sent", customer_id,
               f"Step {step.day_offset} via {channel_used.value}", tenant_id)
    return SENT


async def process_tenant(
    tenant: dict,
    config: WinBackConfig,
    gateway=None,
    now: datetime | None = None,
) -> TenantResult:
    """Run every configured step for one tenant, in ascending offset order.

    A failed scan abandons that step only; a failed customer never stops the
    rest of the step.
    """
    gateway = gateway or ProviderGateway.for_tenant(tenant)
    now = now or datetime.now(timezone.utc)
    tenant_id = str(tenant["id"])
    result = TenantResult(tenant_id=tenant_id, tenant_name=tenant.get("name", ""))
    semaphore = asyncio.Semaphore(MAX_CONCURRENT_SENDS)

    for step in config.steps:
        try:
            scanned = eligibility.scan(tenant_id, step.day_offset, now)
        except Exception as e:
            logger.exception("Scan failed for tenant %s step %s", tenant_id, step.day_offset)
            result.errors.append(f"Step {step.day_offset}: scan failed: {e}")
            try:
                db.log_action("winback_scan_error", "tenant", tenant_id,
                              f"Step {step.day_offset}: {e}", tenant_id=tenant_id)
            except Exception:
                logger.warning("Could not record scan error for tenant %s", tenant_id)
            continue

        result.skipped += scanned.excluded

        async def _guarded(customer: dict) -> str:
            try:
                return await _dispatch(tenant, step, customer, gateway, semaphore)
            except Exception as e:
                logger.exception("Win-back dispatch failed for customer %s", customer.get("id"))
                result.errors.append(f"Failed to process {customer.get('name') or customer.get('id')}: {e}")
                return FAILED

        outcomes = await asyncio.gather(*(_guarded(c) for c in scanned.eligible))
        for outcome in outcomes:
            result.count(outcome)

    return result


async def process_all(
    now: datetime | None = None,
    gateway_factory: Callable[[dict], object] | None = None,
) -> dict:
    """Process every enabled tenant. Called by the scheduler and the cron endpoint.

    Each tenant's config is snapshotted before any sends happen. Returns the
    run summary: {tenants_processed, total_sent, total_failed, total_skipped,
    results, skipped}.
    """
    if _processing_lock.locked():
        logger.info("Win-back run already in progress, skipping")
        return {"tenants_processed": 0, "total_sent": 0, "total_failed": 0,
                "total_skipped": 0, "results": [], "skipped": True}

    async with _processing_lock:
        now = now or datetime.now(timezone.utc)
        gateway_factory = gateway_factory or ProviderGateway.for_tenant
        snapshots = load_enabled_configs()

        results = []
        for tenant, config in snapshots:
            try:
                tenant_result = await process_tenant(tenant, config, gateway_factory(tenant), now)
            except Exception as e:
                logger.exception("Win-back processing failed for tenant %s", tenant.get("id"))
                tenant_result = TenantResult(tenant_id=str(tenant["id"]),
                                             tenant_name=tenant.get("name", ""))
                tenant_result.errors.append(f"Tenant processing failed: {e}")
            results.append(tenant_result)

        summary = {
            "tenants_processed": len(snapshots),
            "total_sent": sum(r.sent for r in results),
            "total_failed": sum(r.failed for r in results),
            "total_skipped": sum(r.skipped for r in results),
            "results": [asdict(r) for r in results],
            "skipped": False,
        }
        logger.info(
            "Win-back run: %d tenants, %d sent, %d skipped, %d failed",
            summary["tenants_processed"], summary["total_sent"],
            summary["total_skipped"], summary["total_failed"],
        )
        return summary
