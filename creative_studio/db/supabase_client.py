"""Supabase client singletons.

The service-role client bypasses row-level security and is only used by the
job store, object storage and worker. The anon client is used to resolve
user JWTs.
"""

from supabase import create_client, Client
from creative_studio.config import settings

_service_client: Client | None = None
_anon_client: Client | None = None


def get_supabase() -> Client:
    """Get or create the service-role Supabase client."""
    global _service_client
    if _service_client is None:
        if not settings.supabase_url or not settings.supabase_service_role_key:
            raise RuntimeError(
                "SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set"
            )
        _service_client = create_client(
            settings.supabase_url,
            settings.supabase_service_role_key,
        )
    return _service_client


def get_anon_supabase() -> Client:
    """Get or create the anon-key client used for token lookups."""
    global _anon_client
    if _anon_client is None:
        if not settings.supabase_url or not settings.supabase_anon_key:
            raise RuntimeError("SUPABASE_URL and SUPABASE_ANON_KEY must be set")
        _anon_client = create_client(settings.supabase_url, settings.supabase_anon_key)
    return _anon_client
