"""
Database connection management.

Provides the Supabase client singleton used by the history lookups
and the forecast store.
"""

from supabase import create_client, Client, ClientOptions
from functools import lru_cache
from typing import Optional
import httpx
import structlog

from config.settings import settings

logger = structlog.get_logger(__name__)


class DatabaseError(Exception):
    """Base exception for database errors."""
    pass


class ConnectionError(DatabaseError):
    """Failed to connect to database."""
    pass


def _client_options() -> ClientOptions:
    """Every PostgREST request gives up after the collaborator timeout."""
    return ClientOptions(postgrest_client_timeout=settings.collaborator_timeout_seconds)


def query_error_reason(error: Exception) -> str:
    """Reason text for a failed query. Timeouts name the configured limit."""
    if isinstance(error, httpx.TimeoutException):
        return f"timed out after {settings.collaborator_timeout_seconds}s"
    return str(error)


@lru_cache()
def get_supabase_client() -> Client:
    """
    Get cached Supabase client instance.

    Uses lru_cache to ensure only one client is created.
    Call get_supabase_client.cache_clear() to reconnect.

    Returns:
        Client: Supabase client

    Raises:
        ConnectionError: If connection fails
    """
    try:
        logger.info(
            "connecting_to_supabase",
            url=settings.supabase_url[:30] + "..."  # Log partial URL only
        )

        client = create_client(
            settings.supabase_url,
            settings.supabase_key,
            options=_client_options()
        )

        # Test connection with simple query
        client.table("products").select("id").limit(1).execute()

        logger.info(
            "supabase_connected",
            status="success"
        )

        return client

    except Exception as e:
        logger.error(
            "supabase_connection_failed",
            error=str(e),
            error_type=type(e).__name__
        )
        raise ConnectionError(f"Failed to connect to Supabase: {e}") from e


def get_admin_client() -> Optional[Client]:
    """
    Get Supabase client with service role key (admin access).

    Only available if SUPABASE_SERVICE_KEY is configured.
    Bulk regeneration uses it when present so RLS does not hide rows.

    Returns:
        Client: Admin Supabase client, or None if not configured
    """
    if not settings.supabase_service_key:
        logger.warning("admin_client_not_configured")
        return None

    try:
        return create_client(
            settings.supabase_url,
            settings.supabase_service_key,
            options=_client_options()
        )
    except Exception as e:
        logger.error(
            "admin_client_failed",
            error=str(e)
        )
        return None


# Convenience alias
db = get_supabase_client


# ===================
# HELPER FUNCTIONS
# ===================

def check_connection() -> dict:
    """
    Check database connection health.

    Returns:
        dict: Connection status with details
    """
    try:
        client = get_supabase_client()

        products = client.table("products").select("id", count="exact").execute()
        forecasts = (
            client.table("consumption_predictions")
            .select("id", count="exact")
            .execute()
        )

        return {
            "status": "healthy",
            "products_count": products.count,
            "forecasts_count": forecasts.count
        }

    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e)
        }


def reset_connection():
    """
    Reset the cached database connection.

    Call this if connection becomes stale or after config changes.
    """
    get_supabase_client.cache_clear()
    logger.info("database_connection_reset")
