"""
Supabase DB client wrapper — order CRUD for the Marketplace API.
Includes retry on transient errors, operation timeouts, and metrics.
"""

import asyncio
import time
import uuid
from typing import List, Optional

from supabase import create_client, Client

from marketplace.orders.records import merge_order, new_order_row, utc_now_iso


DB_OPERATION_TIMEOUT = 10.0    # seconds per DB operation
DB_RETRY_ATTEMPTS = 3          # retries on transient errors
DB_RETRY_BASE_DELAY = 0.5     # seconds — exponential backoff base

ORDERS_TABLE = "orders"

# Transient error substrings that trigger retry
_TRANSIENT_ERRORS = (
    "timeout", "connection", "unavailable", "502", "503", "504",
    "broken pipe", "reset by peer", "socket", "network",
    "too many requests", "rate limit",
)

# Postgres unique_violation, as surfaced by PostgREST
_DUPLICATE_ERRORS = ("23505", "duplicate key")


def init_supabase(url: str, key: str) -> Client:
    """Initialize and return a Supabase client."""
    return create_client(url, key)


async def health_check(client: Client) -> bool:
    """Health check — actually queries Supabase to verify connectivity."""
    try:
        if client is None or not hasattr(client, "table"):
            return False
        result = await asyncio.to_thread(
            lambda: client.table(ORDERS_TABLE).select("id", count="exact").limit(0).execute()
        )
        return result is not None
    except Exception:
        return False


def _is_transient(e: Exception) -> bool:
    """Check if an exception is transient and worth retrying."""
    msg = str(e).lower()
    return any(kw in msg for kw in _TRANSIENT_ERRORS)


def _is_duplicate(e: Exception) -> bool:
    msg = str(e).lower()
    return any(kw in msg for kw in _DUPLICATE_ERRORS)


class Database:
    """Async wrapper around the Supabase client for the orders table.

    All operations retry on transient errors with exponential backoff
    and have a per-operation timeout.
    """

    def __init__(self, client: Client):
        self.client = client
        # Metrics
        self._op_count = 0
        self._op_errors = 0
        self._op_retries = 0
        self._total_latency_ms = 0.0

    async def _exec(self, fn, label: str = "db_op"):
        """Execute a Supabase operation with retry, timeout, and metrics.

        Args:
            fn: callable returning a Supabase execute() result
            label: operation name for logging
        """
        last_err = None
        for attempt in range(DB_RETRY_ATTEMPTS):
            t0 = time.monotonic()
            try:
                result = await asyncio.wait_for(
                    asyncio.to_thread(fn),
                    timeout=DB_OPERATION_TIMEOUT,
                )
                latency = (time.monotonic() - t0) * 1000
                self._op_count += 1
                self._total_latency_ms += latency
                return result
            except asyncio.TimeoutError:
                self._op_errors += 1
                last_err = RuntimeError(f"DB operation '{label}' timed out after {DB_OPERATION_TIMEOUT}s")
                self._op_retries += 1
            except Exception as e:
                self._op_errors += 1
                last_err = e
                if _is_transient(e) and attempt < DB_RETRY_ATTEMPTS - 1:
                    delay = DB_RETRY_BASE_DELAY * (2 ** attempt)
                    print(f"[DB] {label} transient error (attempt {attempt+1}): {e}. "
                          f"Retry in {delay:.1f}s")
                    self._op_retries += 1
                    await asyncio.sleep(delay)
                    continue
                raise  # non-transient or last attempt

        raise last_err

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    async def get_order_by_hash(self, order_hash: str) -> Optional[dict]:
        """Get a single order by its orderHash."""
        h = order_hash.lower()
        result = await self._exec(
            lambda: self.client.table(ORDERS_TABLE).select("*").eq("orderHash", h).limit(1).execute(),
            f"get_order_by_hash({h[:10]})",
        )
        return result.data[0] if result.data else None

    async def _update_by_hash(self, order_hash: str, updates: dict) -> Optional[dict]:
        result = await self._exec(
            lambda: self.client.table(ORDERS_TABLE).update(updates).eq("orderHash", order_hash).execute(),
            f"update_order({order_hash[:10]})",
        )
        return result.data[0] if result.data else None

    async def upsert_order(self, incoming: dict) -> dict:
        """Create or update the row for incoming["orderHash"]; return the stored row.

        id and createdAt are fixed on first insert. On conflict only the
        fields merge_order() allows are written.
        """
        order_hash = incoming["orderHash"].lower()
        incoming = {**incoming, "orderHash": order_hash}

        existing = await self.get_order_by_hash(order_hash)
        if existing is None:
            row = new_order_row(str(uuid.uuid4()), incoming)
            try:
                result = await self._exec(
                    lambda: self.client.table(ORDERS_TABLE).insert(row).execute(),
                    f"insert_order({order_hash[:10]})",
                )
                return result.data[0] if result.data else row
            except Exception as e:
                if not _is_duplicate(e):
                    raise
                # Lost an insert race; fall through to the update path
                print(f"[DB] insert_order({order_hash[:10]}) raced another writer, merging")
                existing = await self.get_order_by_hash(order_hash)
                if existing is None:
                    raise

        updates = merge_order(existing, incoming)
        stored = await self._update_by_hash(order_hash, updates)
        return stored or {**existing, **updates}

    async def list_active_orders(self, page: int, limit: int) -> List[dict]:
        """Active listings, newest first, one page at a time (page is 1-based)."""
        offset = (page - 1) * limit
        result = await self._exec(
            lambda: self.client.table(ORDERS_TABLE)
                .select("*")
                .eq("status", "active")
                .order("createdAt", desc=True)
                .range(offset, offset + limit - 1)
                .execute(),
            f"list_active_orders(page={page})",
        )
        return result.data or []

    async def mark_sold(self, order_hash: str, buyer_address: str) -> Optional[dict]:
        """Buy callback: mark the order sold on chain. None if no such order."""
        return await self._update_by_hash(order_hash.lower(), {
            "onChain": True,
            "buyerAddress": buyer_address.lower(),
            "status": "sold",
            "updatedAt": utc_now_iso(),
        })

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    def metrics(self) -> dict:
        avg_lat = (self._total_latency_ms / max(self._op_count, 1))
        return {
            "operations": self._op_count,
            "errors": self._op_errors,
            "retries": self._op_retries,
            "avg_latency_ms": round(avg_lat, 1),
        }
