"""Shared fixtures for win-back engine tests.

Provides:
- fake_db: patches supabase_client with an in-memory fake
- client: FastAPI test client wired to the app
- FakeGateway: records sends instead of calling Twilio/Resend
- sample data factories for tenants, customers, bookings, attempts
"""

import asyncio
import os
import uuid
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from unittest.mock import patch, MagicMock

import pytest
from postgrest.exceptions import APIError

# Set env vars before any winback imports
os.environ.setdefault("SUPABASE_URL", "https://fake.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "fake-key")
os.environ.setdefault("CRON_SECRET", "test-secret-123")
os.environ.setdefault("RESEND_API_KEY", "")
os.environ.setdefault("TWILIO_ACCOUNT_SID", "")

NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)

# (table, columns) that must be unique together, like the Postgres constraints
UNIQUE_CONSTRAINTS = {
    "wb_attempts": ("tenant_id", "customer_id", "step"),
}

# PostgREST defaults: selects are cut off at max-rows, long in_() lists overflow the URL
MAX_ROWS = 1000
MAX_IN_VALUES = 500


# ---------------------------------------------------------------------------
# In-memory fake Supabase
# ---------------------------------------------------------------------------

class FakeQueryResult:
    def __init__(self, data=None, count=None):
        self.data = data or []
        self.count = count


class FakeQueryBuilder:
    """Mimics the supabase-py query builder chain."""

    def __init__(self, store, table_name):
        self._store = store
        self._table = table_name
        self._filters = []
        self._order_col = None
        self._order_desc = False
        self._limit_val = None
        self._offset = 0
        self._columns = "*"
        self._count_mode = None
        self._update_data = None
        self._insert_data = None

    def select(self, columns="*", count=None):
        self._columns = columns
        self._count_mode = count
        return self

    def insert(self, data):
        self._insert_data = data
        return self

    def update(self, data):
        self._update_data = data
        return self

    def eq(self, col, val):
        self._filters.append(("eq", col, val))
        return self

    def neq(self, col, val):
        self._filters.append(("neq", col, val))
        return self

    def gte(self, col, val):
        self._filters.append(("gte", col, val))
        return self

    def lte(self, col, val):
        self._filters.append(("lte", col, val))
        return self

    def in_(self, col, vals):
        if len(vals) > MAX_IN_VALUES:
            raise APIError({"message": "URI too long", "code": "414", "hint": None, "details": None})
        self._filters.append(("in", col, list(vals)))
        return self

    def order(self, col, desc=False):
        self._order_col = col
        self._order_desc = desc
        return self

    def limit(self, n):
        self._limit_val = n
        return self

    def range(self, start, end):
        self._offset = start
        self._limit_val = end - start + 1
        return self

    def _match(self, row):
        for op, col, val in self._filters:
            row_val = row.get(col)
            if op == "eq" and row_val != val:
                return False
            if op == "neq" and row_val == val:
                return False
            if op == "gte" and (row_val is None or str(row_val) < str(val)):
                return False
            if op == "lte" and (row_val is None or str(row_val) > str(val)):
                return False
            if op == "in" and row_val not in val:
                return False
        return True

    def _check_unique(self, table, row):
        cols = UNIQUE_CONSTRAINTS.get(self._table)
        if not cols:
            return
        for existing in table:
            if all(existing.get(c) == row.get(c) for c in cols):
                raise APIError({
                    "message": f'duplicate key value violates unique constraint "{self._table}_key"',
                    "code": "23505",
                    "hint": None,
                    "details": None,
                })

    def execute(self):
        table = self._store[self._table]

        if self._insert_data is not None:
            row = dict(self._insert_data)
            if "id" not in row:
                row["id"] = str(uuid.uuid4())
            self._check_unique(table, row)
            row.setdefault("created_at", datetime.now(timezone.utc).isoformat())
            table.append(row)
            return FakeQueryResult(data=[row])

        if self._update_data is not None:
            updated = []
            for row in table:
                if self._match(row):
                    row.update(self._update_data)
                    updated.append(row)
            return FakeQueryResult(data=updated)

        # SELECT
        rows = [r for r in table if self._match(r)]

        if self._order_col:
            rows.sort(
                key=lambda r: r.get(self._order_col) or "",
                reverse=self._order_desc,
            )

        total = len(rows)

        rows = rows[self._offset:]
        if self._limit_val is not None:
            rows = rows[:self._limit_val]
        rows = rows[:MAX_ROWS]

        return FakeQueryResult(
            data=rows,
            count=total if self._count_mode else None,
        )


class FakeDB:
    """In-memory store keyed by table name."""

    def __init__(self):
        self.store = defaultdict(list)

    def table(self, name):
        return FakeQueryBuilder(self.store, name)

    def clear(self):
        self.store.clear()


@pytest.fixture
def fake_db():
    """Provides a clean in-memory DB and patches supabase_client._table."""
    db = FakeDB()

    def fake_table(name):
        return FakeQueryBuilder(db.store, name)

    with patch("winback.supabase_client._table", side_effect=fake_table):
        with patch("winback.supabase_client.get_client", return_value=MagicMock()):
            yield db


@pytest.fixture
def client(fake_db):
    """Sync test client for FastAPI app with mocked DB and no scheduler."""
    from contextlib import asynccontextmanager

    from fastapi.testclient import TestClient

    from winback.app import create_app

    @asynccontextmanager
    async def noop_lifespan(app):
        yield

    app = create_app()
    app.router.lifespan_context = noop_lifespan

    with TestClient(app) as c:
        yield c


# ---------------------------------------------------------------------------
# Gateway double
# ---------------------------------------------------------------------------

class FakeGateway:
    """Records every send; channels listed in fail_channels return failure."""

    def __init__(self, fail_channels=(), raise_channels=()):
        self.fail_channels = set(fail_channels)
        self.raise_channels = set(raise_channels)
        self.calls = []

    def send(self, channel, destination, message):
        from winback.services.gateway import SendResult

        self.calls.append((channel, destination, message))
        if channel in self.raise_channels:
            raise TimeoutError("gateway timed out")
        if channel in self.fail_channels:
            return SendResult(False, error="provider rejected message")
        return SendResult(True, provider_id=f"fake-{len(self.calls)}")


def run_async(coro):
    """Run a coroutine to completion on a fresh event loop."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


# ---------------------------------------------------------------------------
# Data factories
# ---------------------------------------------------------------------------

def days_ago(days, hours=0, now=NOW):
    return (now - timedelta(days=days, hours=hours)).isoformat()


def make_step(days=14, channel="SMS", template="Hi {{firstName}}, come back!", **extra):
    step = {"days": days, "channel": channel, "template": template, "discountPercent": 0}
    step.update(extra)
    return step


def make_tenant(**overrides):
    defaults = {
        "id": str(uuid.uuid4()),
        "name": "Sparkle Cleaning",
        "slug": "sparkle",
        "win_back_enabled": True,
        "win_back_config": {"steps": [make_step(14), make_step(30, "BOTH", discountPercent=15)]},
        "twilio_account_sid": None,
        "twilio_auth_token": None,
        "twilio_phone_number": None,
        "resend_api_key": None,
    }
    defaults.update(overrides)
    return defaults


def make_customer(tenant_id, **overrides):
    defaults = {
        "id": str(uuid.uuid4()),
        "tenant_id": tenant_id,
        "name": "Sam Rivera",
        "email": "sam@example.com",
        "phone": "+15550100",
    }
    defaults.update(overrides)
    return defaults


def make_booking(tenant_id, customer_id, scheduled_date, **overrides):
    defaults = {
        "id": str(uuid.uuid4()),
        "tenant_id": tenant_id,
        "customer_id": customer_id,
        "scheduled_date": scheduled_date,
        "status": "COMPLETED",
        "final_price": 150.0,
    }
    defaults.update(overrides)
    return defaults


def make_attempt(tenant_id, customer_id, step, **overrides):
    defaults = {
        "id": str(uuid.uuid4()),
        "tenant_id": tenant_id,
        "customer_id": customer_id,
        "step": step,
        "channel": "SMS",
        "discount_percent": 0,
        "result": "SENT",
        "sent_at": days_ago(1),
        "converted_at": None,
        "converted_revenue": None,
        "converted_booking_id": None,
    }
    defaults.update(overrides)
    return defaults


def seed_customer(fake_db, tenant, last_booking_days_ago, **customer_overrides):
    """Add a customer whose most recent booking was N days before NOW."""
    customer = make_customer(tenant["id"], **customer_overrides)
    fake_db.store["wb_customers"].append(customer)
    fake_db.store["wb_bookings"].append(
        make_booking(tenant["id"], customer["id"], days_ago(last_booking_days_ago))
    )
    return customer
