"""Supabase client for the storefront tables (orders, carts, products)."""

import asyncio
import logging
import time
from functools import lru_cache
from typing import Any

from supabase import Client, create_client

from src.core.config import get_settings

logger = logging.getLogger(__name__)

# Must stay below the readiness probe timeout
DB_CHECK_TIMEOUT_SECONDS = 5.0


@lru_cache
def get_supabase_client() -> Client:
    """Get the shared Supabase client.

    Authenticates with the secret key, which bypasses row level security.
    Ownership of orders and carts is enforced in the service layer instead.

    Returns:
        Client: Supabase client instance.
    """
    settings = get_settings()
    return create_client(settings.supabase_url, settings.supabase_secret_key)


async def check_database_connection(table: str = "orders") -> dict[str, Any]:
    """Probe the database with a one-row read.

    The blocking client call runs in a worker thread, bounded by
    DB_CHECK_TIMEOUT_SECONDS.

    Args:
        table: Table to read from.

    Returns:
        dict: ``healthy``, ``latency_ms`` and, when unhealthy, ``error``.
    """
    client = get_supabase_client()
    start_time = time.perf_counter()

    try:
        await asyncio.wait_for(
            asyncio.to_thread(lambda: client.table(table).select("id").limit(1).execute()),
            timeout=DB_CHECK_TIMEOUT_SECONDS,
        )
    except asyncio.TimeoutError:
        error = f"Query on {table} timed out after {DB_CHECK_TIMEOUT_SECONDS}s"
    except Exception as e:
        error = str(e)
    else:
        error = None

    latency_ms = round((time.perf_counter() - start_time) * 1000, 2)
    if error:
        logger.warning("Database check failed after %.2fms: %s", latency_ms, error)
        return {"healthy": False, "latency_ms": latency_ms, "error": error}
    return {"healthy": True, "latency_ms": latency_ms}
