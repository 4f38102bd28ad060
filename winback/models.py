"""Typed win-back configuration and ledger vocabulary.

Tenant step lists live in the store as a JSON blob ({"steps": [...]}) using the
keys days / channel / template / emailSubject / discountPercent. They are
validated once, at the write boundary (parse_steps), and converted to
StepConfig on read so the processor never handles raw dicts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class Channel(str, Enum):
    SMS = "SMS"
    EMAIL = "EMAIL"
    BOTH = "BOTH"

    def targets(self) -> tuple[Channel, ...]:
        """Concrete channels a step sends on."""
        if self is Channel.BOTH:
            return (Channel.SMS, Channel.EMAIL)
        return (self,)


class AttemptResult(str, Enum):
    SENT = "SENT"
    CONVERTED = "CONVERTED"


class ConfigValidationError(ValueError):
    """A step list failed validation; nothing was persisted."""


@dataclass(frozen=True)
class StepConfig:
    """One rung of the win-back sequence, identified by its day offset."""
    day_offset: int
    channel: Channel
    template: str
    email_subject_template: Optional[str] = None
    discount_percent: float = 0

    @classmethod
    def from_dict(cls, raw: dict) -> StepConfig:
        return cls(
            day_offset=int(raw["days"]),
            channel=Channel(raw["channel"]),
            template=raw["template"],
            email_subject_template=raw.get("emailSubject") or None,
            discount_percent=raw.get("discountPercent") or 0,
        )

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "days": self.day_offset,
            "channel": self.channel.value,
            "template": self.template,
            "discountPercent": self.discount_percent,
        }
        if self.email_subject_template:
            data["emailSubject"] = self.email_subject_template
        return data


@dataclass(frozen=True)
class WinBackConfig:
    """Snapshot of a tenant's settings, loaded once per run."""
    tenant_id: str
    enabled: bool
    steps: tuple[StepConfig, ...] = field(default_factory=tuple)

    @property
    def runnable(self) -> bool:
        return self.enabled and bool(self.steps)


def parse_steps(raw_steps: Any) -> list[StepConfig]:
    """Validate a raw step list and return it sorted by ascending day offset.

    Raises ConfigValidationError on the first problem found. The list is
    accepted or rejected as a whole.
    """
    if not isinstance(raw_steps, list) or not raw_steps:
        raise ConfigValidationError("Config must have at least one step")

    steps = []
    seen_offsets = set()
    for i, raw in enumerate(raw_steps):
        if not isinstance(raw, dict):
            raise ConfigValidationError(f"Step {i + 1} must be an object")

        days = raw.get("days")
        if isinstance(days, bool) or not isinstance(days, int) or days < 1:
            raise ConfigValidationError("Each step must have days > 0")

        channel = raw.get("channel")
        if channel not in {c.value for c in Channel}:
            raise ConfigValidationError("Channel must be SMS, EMAIL, or BOTH")

        template = raw.get("template")
        if not isinstance(template, str) or not template.strip():
            raise ConfigValidationError("Each step must have a message template")

        subject = raw.get("emailSubject")
        if subject is not None and not isinstance(subject, str):
            raise ConfigValidationError("emailSubject must be a string")

        discount = raw.get("discountPercent", 0)
        if discount is None:
            discount = 0
        if isinstance(discount, bool) or not isinstance(discount, (int, float)) or discount < 0:
            raise ConfigValidationError("discountPercent must be a number >= 0")

        if days in seen_offsets:
            raise ConfigValidationError(f"Duplicate step offset: {days} days")
        seen_offsets.add(days)

        steps.append(StepConfig(
            day_offset=days,
            channel=Channel(channel),
            template=template,
            email_subject_template=subject or None,
            discount_percent=discount,
        ))

    return sorted(steps, key=lambda s: s.day_offset)


# Returned to tenants that have never saved a configuration
DEFAULT_STEPS: tuple[StepConfig, ...] = (
    StepConfig(
        day_offset=14,
        channel=Channel.SMS,
        template=(
            "Hi {{firstName}}, we miss you at {{tenantName}}! It's been a while since "
            "your last visit. Book again and enjoy the same great service. "
            "Reply BOOK or visit {{bookingLink}}"
        ),
        discount_percent=0,
    ),
    StepConfig(
        day_offset=30,
        channel=Channel.BOTH,
        template=(
            "Hi {{firstName}}, we'd love to have you back! As a thank you for being a "
            "valued customer, enjoy {{discount}}% off your next service. "
            "Use code COMEBACK at checkout or reply BOOK."
        ),
        email_subject_template="We miss you! Here's {{discount}}% off your next service",
        discount_percent=15,
    ),
    StepConfig(
        day_offset=60,
        channel=Channel.BOTH,
        template=(
            "Hi {{firstName}}, it's been 2 months! We're offering you an exclusive "
            "{{discount}}% off any service. This is our best offer - don't miss out! "
            "Reply BOOK or call us."
        ),
        email_subject_template="Last chance: {{discount}}% off - we want you back!",
        discount_percent=25,
    ),
)
