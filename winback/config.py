"""Win-back engine configuration — loaded from environment variables."""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent.parent / ".env")

# Supabase
SUPABASE_URL = os.environ.get("SUPABASE_URL", "")
SUPABASE_SERVICE_KEY = os.environ.get("SUPABASE_SERVICE_KEY", "")

# Resend (email sending) — platform fallback, tenants may bring their own key
RESEND_API_KEY = os.environ.get("RESEND_API_KEY", "")
WINBACK_FROM_EMAIL = os.environ.get("WINBACK_FROM_EMAIL", "notifications@resend.dev")
WINBACK_FROM_NAME = os.environ.get("WINBACK_FROM_NAME", "Win-Back")

# Twilio (SMS sending) — platform fallback, tenants may bring their own account
TWILIO_ACCOUNT_SID = os.environ.get("TWILIO_ACCOUNT_SID", "")
TWILIO_AUTH_TOKEN = os.environ.get("TWILIO_AUTH_TOKEN", "")
TWILIO_PHONE_NUMBER = os.environ.get("TWILIO_PHONE_NUMBER", "")

# Provider call timeout; a timeout counts as a failed send for that channel
GATEWAY_TIMEOUT_SECONDS = float(os.environ.get("GATEWAY_TIMEOUT_SECONDS", "15"))

# Shared secret for the scheduler trigger and config endpoints
CRON_SECRET = os.environ.get("CRON_SECRET", "")

# Booking links in messages: {PUBLIC_BOOKING_URL}/{tenant slug}/book
PUBLIC_BOOKING_URL = os.environ.get("PUBLIC_BOOKING_URL", "https://app.example.com").rstrip("/")

# Scheduling
WINBACK_INTERVAL_MINUTES = int(os.environ.get("WINBACK_INTERVAL_MINUTES", "60"))
ATTRIBUTION_INTERVAL_HOURS = int(os.environ.get("ATTRIBUTION_INTERVAL_HOURS", "24"))

# Customers processed concurrently within one step
MAX_CONCURRENT_SENDS = int(os.environ.get("MAX_CONCURRENT_SENDS", "5"))

# Server
HOST = os.environ.get("HOST", "0.0.0.0")
PORT = int(os.environ.get("PORT", "8000"))
