# =============================================================================
# lib/ - Standalone Utility Modules
# =============================================================================
# This package contains reusable infrastructure:
# - supabase_client.py: Shared Supabase client and query helpers
# - ttl_cache.py: Bounded in-memory TTL cache for third-party reads
# - utils.py: Shared utilities (UUIDs, timestamps, redirect allowlist)
#
# These modules are self-contained and can be tested in isolation.
# =============================================================================

from lib.supabase_client import SupabaseClient, SupabaseClientError
from lib.ttl_cache import TTLCache, clear_all_caches, get_or_fetch
from lib.utils import get_allowed_redirect, log_context, normalize_uuid

__all__ = [
    # Supabase
    "SupabaseClient",
    "SupabaseClientError",
    # Caching
    "TTLCache",
    "clear_all_caches",
    "get_or_fetch",
    # Utils
    "get_allowed_redirect",
    "log_context",
    "normalize_uuid",
]
