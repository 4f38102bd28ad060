"""Messaging gateway — SMS via Twilio's REST API, email via Resend.

Provider errors and timeouts never raise out of send(); they come back as a
failed SendResult so the caller can count the channel as failed.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import requests

from winback.config import (
    GATEWAY_TIMEOUT_SECONDS, RESEND_API_KEY, TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN,
    TWILIO_PHONE_NUMBER, WINBACK_FROM_EMAIL, WINBACK_FROM_NAME,
)
from winback.models import Channel

logger = logging.getLogger(__name__)

TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"


@dataclass
class OutboundMessage:
    body: str
    subject: Optional[str] = None
    html: Optional[str] = None


@dataclass
class SendResult:
    success: bool
    provider_id: str = ""
    error: str = ""


class ProviderGateway:
    """Sends through a tenant's own provider accounts, falling back to the platform's."""

    def __init__(self, twilio_sid: str = "", twilio_token: str = "", twilio_from: str = "",
                 resend_api_key: str = "", from_email: str = "", from_name: str = ""):
        self.twilio_sid = twilio_sid or TWILIO_ACCOUNT_SID
        self.twilio_token = twilio_token or TWILIO_AUTH_TOKEN
        self.twilio_from = twilio_from or TWILIO_PHONE_NUMBER
        self.resend_api_key = resend_api_key or RESEND_API_KEY
        self.from_email = from_email or WINBACK_FROM_EMAIL
        self.from_name = from_name or WINBACK_FROM_NAME

    @classmethod
    def for_tenant(cls, tenant: dict) -> "ProviderGateway":
        return cls(
            twilio_sid=tenant.get("twilio_account_sid") or "",
            twilio_token=tenant.get("twilio_auth_token") or "",
            twilio_from=tenant.get("twilio_phone_number") or "",
            resend_api_key=tenant.get("resend_api_key") or "",
            from_name=tenant.get("name") or "",
        )

    def send(self, channel: Channel, destination: str, message: OutboundMessage) -> SendResult:
        """Deliver one message on one concrete channel (SMS or EMAIL)."""
        if channel is Channel.SMS:
            return self._send_sms(destination, message.body)
        if channel is Channel.EMAIL:
            return self._send_email(destination, message)
        return SendResult(False, error=f"Unsupported channel: {channel}")

    def _send_sms(self, to: str, body: str) -> SendResult:
        if not (self.twilio_sid and self.twilio_token and self.twilio_from):
            return SendResult(False, error="Twilio is not configured")
        try:
            response = requests.post(
                TWILIO_MESSAGES_URL.format(sid=self.twilio_sid),
                auth=(self.twilio_sid, self.twilio_token),
                data={"To": to, "From": self.twilio_from, "Body": body},
                timeout=GATEWAY_TIMEOUT_SECONDS,
            )
        except requests.RequestException as e:
            logger.warning("Twilio request failed: %s", e)
            return SendResult(False, error=f"Twilio request failed: {e}")

        if response.status_code >= 400:
            return SendResult(False, error=f"Twilio error {response.status_code}: {response.text[:200]}")
        # Delivered; a malformed body only loses the message sid
        try:
            sid = response.json().get("sid", "")
        except (ValueError, AttributeError):
            logger.warning("Twilio returned %s with an unreadable body", response.status_code)
            sid = ""
        return SendResult(True, provider_id=sid or "")

    def _send_email(self, to: str, message: OutboundMessage) -> SendResult:
        if not self.resend_api_key:
            return SendResult(False, error="Resend is not configured")

        import resend

        resend.api_key = self.resend_api_key
        try:
            result = resend.Emails.send({
                "from": f"{self.from_name} <{self.from_email}>",
                "to": [to],
                "subject": message.subject or "",
                "html": message.html or message.body,
                "text": message.body,
            })
        except Exception as e:
            logger.warning("Resend send failed: %s", e)
            return SendResult(False, error=f"Resend error: {e}")
        return SendResult(True, provider_id=(result or {}).get("id", ""))
