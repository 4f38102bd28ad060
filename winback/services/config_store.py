"""Configuration store — per-tenant enabled flag and step list."""

import logging

from winback import supabase_client as db
from winback.models import DEFAULT_STEPS, StepConfig, WinBackConfig, parse_steps

logger = logging.getLogger(__name__)


def load_config(tenant: dict) -> WinBackConfig:
    """Build a config snapshot from a tenant row.

    Stored steps were validated on write and are already in ascending order.
    """
    blob = tenant.get("win_back_config") or {}
    raw_steps = blob.get("steps") or []
    return WinBackConfig(
        tenant_id=str(tenant["id"]),
        enabled=bool(tenant.get("win_back_enabled")),
        steps=tuple(StepConfig.from_dict(s) for s in raw_steps),
    )


def get_config(tenant_id: str) -> WinBackConfig | None:
    """Load a tenant's config snapshot, or None for an unknown tenant."""
    tenant = db.get_tenant(tenant_id)
    if not tenant:
        return None
    return load_config(tenant)


def effective_steps(config: WinBackConfig) -> tuple[StepConfig, ...]:
    """Stored steps, or the default sequence if none were ever saved."""
    return config.steps or DEFAULT_STEPS


def save_config(tenant_id: str, enabled: bool | None = None,
                steps: list | None = None) -> WinBackConfig:
    """Validate and persist a config update in a single row write.

    Raises ConfigValidationError before touching the store if the step
    list is invalid; omitted fields keep their stored values.
    """
    data = {}
    parsed = None
    if steps is not None:
        parsed = parse_steps(steps)
        data["win_back_config"] = {"steps": [s.to_dict() for s in parsed]}
    if enabled is not None:
        data["win_back_enabled"] = bool(enabled)

    if data:
        db.update_tenant(tenant_id, data)
        details = []
        if enabled is not None:
            details.append("enabled" if enabled else "disabled")
        if parsed is not None:
            details.append("steps: " + ", ".join(f"{s.day_offset}d {s.channel.value}" for s in parsed))
        db.log_action("winback_config_updated", "tenant", tenant_id,
                      "; ".join(details), tenant_id=tenant_id)
        logger.info("Win-back config updated for tenant %s (%s)", tenant_id, "; ".join(details))

    return get_config(tenant_id)


def load_enabled_configs() -> list[tuple[dict, WinBackConfig]]:
    """Snapshot every enabled tenant with a stored step list."""
    snapshots = []
    for tenant in db.get_enabled_tenants():
        try:
            config = load_config(tenant)
        except (KeyError, TypeError, ValueError) as e:
            logger.error("Unreadable win-back config for tenant %s: %s", tenant.get("id"), e)
            db.log_action("winback_config_error", "tenant", str(tenant.get("id", "")),
                          str(e), tenant_id=str(tenant.get("id", "")))
            continue
        if config.runnable:
            snapshots.append((tenant, config))
    return snapshots
