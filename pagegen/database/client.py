"""
Supabase Client Configuration

The pipeline only runs server-side (API, RQ workers, sweeper), so it
always talks to the store with the service role client.
"""

from functools import lru_cache

from supabase import create_client, Client

from pagegen.config import config
from pagegen.utils.logging import get_logger

logger = get_logger("database")


class SupabaseClientError(Exception):
    """Raised when Supabase client cannot be initialized."""
    pass


@lru_cache(maxsize=1)
def get_supabase_admin_client() -> Client:
    """
    Get Supabase client with service role key (admin access).

    Used by the orchestrator, the page workers and the sweeper.

    WARNING: This client bypasses Row Level Security!
    """
    if not config.SUPABASE_URL:
        raise SupabaseClientError(
            "SUPABASE_URL is not configured. "
            "Set it in your .env file or environment variables."
        )

    if not config.SUPABASE_SERVICE_KEY:
        raise SupabaseClientError(
            "SUPABASE_SERVICE_KEY is not configured. "
            "Set it in your .env file or environment variables."
        )

    return create_client(
        config.SUPABASE_URL,
        config.SUPABASE_SERVICE_KEY
    )


def verify_supabase_connection() -> bool:
    """
    Verify that Supabase is properly configured and accessible.

    Returns:
        True if connection successful, False otherwise.
    """
    try:
        client = get_supabase_admin_client()
        client.table("generation_jobs").select("id").limit(1).execute()
        return True
    except Exception as e:
        logger.error(f"Supabase connection failed: {e}")
        return False
