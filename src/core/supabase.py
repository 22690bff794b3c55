"""Supabase client singletons for database and Realtime operations."""

import asyncio
import logging
from functools import lru_cache
from typing import Any

from supabase import AsyncClient, Client, acreate_client, create_client

from src.core.config import get_settings

logger = logging.getLogger(__name__)

_realtime_client: AsyncClient | None = None
_realtime_lock = asyncio.Lock()


@lru_cache
def get_supabase_client() -> Client:
    """Get cached Supabase client singleton for database operations.

    Uses the secret key, which bypasses RLS at the PostgREST level. Every
    query issued through it must already be scoped to the authenticated
    user by the caller.

    Returns:
        Client: Supabase client instance.
    """
    settings = get_settings()
    return create_client(
        settings.supabase_url,
        settings.supabase_secret_key,
    )


async def get_realtime_client() -> AsyncClient:
    """Get the shared async Supabase client used for Realtime channels.

    The synchronous client cannot hold websocket channels, so push
    subscriptions go through a separate async client created on first use.

    Returns:
        AsyncClient: Async Supabase client instance.
    """
    global _realtime_client

    async with _realtime_lock:
        if _realtime_client is None:
            settings = get_settings()
            _realtime_client = await acreate_client(
                settings.supabase_url,
                settings.supabase_secret_key,
            )
            logger.info("Supabase Realtime client created")
    return _realtime_client


async def close_realtime_client() -> None:
    """Remove all Realtime channels and drop the async client."""
    global _realtime_client

    async with _realtime_lock:
        if _realtime_client is not None:
            await _realtime_client.remove_all_channels()
            _realtime_client = None
            logger.info("Supabase Realtime client closed")


async def check_database_connection() -> dict[str, Any]:
    """Check if database connection is healthy.

    Performs a simple query to verify database connectivity.

    Returns:
        dict: Connection status with 'healthy' boolean and optional 'error' message.
    """
    try:
        client = get_supabase_client()
        client.table("profiles").select("id").limit(1).execute()
        return {"healthy": True}
    except Exception as e:
        return {"healthy": False, "error": str(e)}
