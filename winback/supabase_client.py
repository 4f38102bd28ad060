"""Supabase connection and query helpers for all wb_* tables."""

import threading
from typing import Any, Callable

from supabase import Client, create_client

from winback.config import SUPABASE_SERVICE_KEY, SUPABASE_URL

_client: Client | None = None
_client_lock = threading.Lock()


def get_client() -> Client:
    """Return the Supabase client singleton (thread-safe)."""
    global _client
    if _client is None:
        with _client_lock:
            if _client is None:
                if not SUPABASE_URL or not SUPABASE_SERVICE_KEY:
                    raise RuntimeError("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set")
                _client = create_client(SUPABASE_URL, SUPABASE_SERVICE_KEY)
    return _client


# ---------------------------------------------------------------------------
# Generic helpers
# ---------------------------------------------------------------------------

# PostgREST silently truncates a select at its max-rows setting (1000 by
# default), so unbounded reads page through with .range().
PAGE_SIZE = 1000

# Values per .in_() filter; the list travels in the request URL.
IN_BATCH_SIZE = 200


def _table(name: str):
    """Return a table query builder."""
    return get_client().table(name)


def insert(table: str, data: dict) -> dict:
    """Insert a row and return it.

    Constraint violations propagate as postgrest APIError.
    """
    result = _table(table).insert(data).execute()
    return result.data[0] if result.data else {}


def update(table: str, data: dict, match: dict) -> dict:
    """Update rows matching conditions. Returns the first updated row or {}."""
    q = _table(table).update(data)
    for k, v in match.items():
        q = q.eq(k, v)
    result = q.execute()
    return result.data[0] if result.data else {}


def select_all(build: Callable[[], Any]) -> list[dict]:
    """Fetch every row of a query, one page at a time.

    `build` returns a fresh, ordered query builder for each page.
    """
    rows: list[dict] = []
    offset = 0
    while True:
        result = build().range(offset, offset + PAGE_SIZE - 1).execute()
        page = result.data or []
        rows.extend(page)
        if len(page) < PAGE_SIZE:
            return rows
        offset += PAGE_SIZE


def _batches(values: list) -> list[list]:
    values = list(values)
    return [values[i:i + IN_BATCH_SIZE] for i in range(0, len(values), IN_BATCH_SIZE)]


def select(table: str, columns: str = "*", match: dict | None = None,
           order: str | None = None, order_desc: bool = False,
           limit: int | None = None) -> list[dict]:
    """Select rows with optional filtering and ordering.

    With a limit, one request; without, every matching row is paged in.
    """
    def build():
        q = _table(table).select(columns)
        if match:
            for k, v in match.items():
                q = q.eq(k, v)
        return q.order(order or "id", desc=order_desc)

    if limit:
        result = build().limit(limit).execute()
        return result.data or []
    return select_all(build)


def select_one(table: str, columns: str = "*", match: dict | None = None) -> dict | None:
    """Select a single row."""
    rows = select(table, columns, match, limit=1)
    return rows[0] if rows else None


def select_in(table: str, column: str, values: list, columns: str = "*",
              match: dict | None = None) -> list[dict]:
    """Select every row whose column is one of values, in batches."""
    rows: list[dict] = []
    for batch in _batches(values):
        def build(batch=batch):
            q = _table(table).select(columns)
            if match:
                for k, v in match.items():
                    q = q.eq(k, v)
            return q.in_(column, batch).order("id")
        rows.extend(select_all(build))
    return rows


# ---------------------------------------------------------------------------
# Tenants
# ---------------------------------------------------------------------------

def get_tenant(tenant_id: str) -> dict | None:
    """Get a single tenant by UUID."""
    return select_one("wb_tenants", match={"id": tenant_id})


def get_enabled_tenants() -> list[dict]:
    """Get all tenants with win-back automation switched on."""
    return select("wb_tenants", match={"win_back_enabled": True}, order="name")


def update_tenant(tenant_id: str, data: dict) -> dict:
    """Update a tenant row by UUID."""
    return update("wb_tenants", data, {"id": tenant_id})


# ---------------------------------------------------------------------------
# Customers & bookings (read-only for the win-back engine)
# ---------------------------------------------------------------------------

def get_customers(tenant_id: str, customer_ids: list[str]) -> list[dict]:
    """Get customers of a tenant by id."""
    return select_in("wb_customers", "id", customer_ids, match={"tenant_id": tenant_id})


def get_bookings_between(tenant_id: str, start: str, end: str) -> list[dict]:
    """Get non-cancelled bookings scheduled inside [start, end]."""
    def build():
        q = _table("wb_bookings").select("id, customer_id, scheduled_date, status")
        q = q.eq("tenant_id", tenant_id).neq("status", "CANCELLED")
        q = q.gte("scheduled_date", start).lte("scheduled_date", end)
        return q.order("id")

    return select_all(build)


def get_bookings_for_customers(tenant_id: str, customer_ids: list[str]) -> list[dict]:
    """Get every non-cancelled booking of the given customers (unordered)."""
    rows: list[dict] = []
    for batch in _batches(customer_ids):
        def build(batch=batch):
            q = _table("wb_bookings").select("id, customer_id, scheduled_date, status, final_price")
            q = q.eq("tenant_id", tenant_id).neq("status", "CANCELLED")
            return q.in_("customer_id", batch).order("id")
        rows.extend(select_all(build))
    return rows


def get_tenant_bookings(tenant_id: str) -> list[dict]:
    """Get customer_id and scheduled_date of every non-cancelled booking of a tenant."""
    def build():
        q = _table("wb_bookings").select("id, customer_id, scheduled_date")
        return q.eq("tenant_id", tenant_id).neq("status", "CANCELLED").order("id")

    return select_all(build)


# ---------------------------------------------------------------------------
# Attempts
# ---------------------------------------------------------------------------

def get_attempts(tenant_id: str, customer_ids: list[str] | None = None,
                 result: str | None = None) -> list[dict]:
    """Get attempts of a tenant, optionally narrowed by customers and result."""
    match: dict[str, Any] = {"tenant_id": tenant_id}
    if result:
        match["result"] = result
    if customer_ids is not None:
        return select_in("wb_attempts", "customer_id", customer_ids, match=match)
    return select("wb_attempts", match=match)


# ---------------------------------------------------------------------------
# Audit Log
# ---------------------------------------------------------------------------

def log_action(action: str, entity_type: str = "", entity_id: str = "",
               details: str = "", tenant_id: str | None = None) -> dict:
    """Log an engine or operator action."""
    return insert("wb_audit_log", {
        "action": action,
        "entity_type": entity_type,
        "entity_id": entity_id,
        "details": details,
        "tenant_id": tenant_id,
    })

