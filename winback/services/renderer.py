"""Message rendering — {{placeholder}} substitution and the email layout."""

import html
import re

from winback.config import PUBLIC_BOOKING_URL
from winback.models import StepConfig

_PLACEHOLDER_RE = re.compile(r"\{\{(\w+)\}\}")

DEFAULT_EMAIL_SUBJECT = "We miss you, {{firstName}}!"


def render(template: str, context: dict) -> str:
    """Replace every {{key}} with context[key].

    Placeholders with no matching key are left as-is so a bad template
    degrades instead of failing the batch.
    """
    def _sub(match: re.Match) -> str:
        key = match.group(1)
        if key in context and context[key] is not None:
            return str(context[key])
        return match.group(0)

    return _PLACEHOLDER_RE.sub(_sub, template)


def booking_link(tenant: dict) -> str:
    return f"{PUBLIC_BOOKING_URL}/{tenant.get('slug', '')}/book"


def build_context(customer: dict, tenant: dict, step: StepConfig) -> dict:
    """Placeholder values for one customer and step."""
    name = (customer.get("name") or "").strip()
    discount = step.discount_percent
    if isinstance(discount, float) and discount.is_integer():
        discount = int(discount)
    return {
        "firstName": name.split()[0] if name else "",
        "customerName": name,
        "tenantName": tenant.get("name", ""),
        "discount": str(discount),
        "bookingLink": booking_link(tenant),
    }


def render_subject(step: StepConfig, context: dict) -> str:
    return render(step.email_subject_template or DEFAULT_EMAIL_SUBJECT, context)


def render_email_html(body: str, step: StepConfig, context: dict) -> str:
    """Wrap a rendered message in the win-back email layout."""
    discount_block = ""
    if step.discount_percent > 0:
        discount_block = (
            '<div style="background:#f0f9ff;border:2px dashed #3b82f6;border-radius:8px;'
            'padding:16px;margin:20px 0;text-align:center">'
            '<p style="font-size:24px;font-weight:bold;color:#3b82f6;margin:0">'
            f'{html.escape(context["discount"])}% OFF</p>'
            '<p style="color:#666;margin:4px 0 0">Your next service</p>'
            '</div>'
        )

    link = html.escape(context["bookingLink"], quote=True)
    return (
        '<div style="font-family:Arial,sans-serif;max-width:600px;margin:0 auto;padding:20px">'
        '<h2 style="color:#333">We Miss You!</h2>'
        f'<p style="font-size:16px;color:#555;line-height:1.6">{html.escape(body)}</p>'
        f'{discount_block}'
        f'<a href="{link}" style="display:inline-block;background:#3b82f6;color:white;'
        'padding:12px 24px;border-radius:6px;text-decoration:none;font-weight:bold">'
        'Book Now</a>'
        '</div>'
    )
