# =============================================================================
# lib/supabase_client.py - Supabase Client Wrapper
# =============================================================================
# This module provides the shared Supabase client and small query helpers.
# It implements the singleton pattern to reuse a single client connection
# and provides specialized methods for the lookups several services share:
# - The user's subscription row
# - The user's YouTube integration row
#
# The service key bypasses row-level security, so every user-scoped query
# in the services filters on user_id explicitly.
#
# Usage:
#   from lib.supabase_client import SupabaseClient
#   client = SupabaseClient.get_client()
#   row = SupabaseClient.fetch_first(client.table("thumbnails").select("*").eq("id", thumb_id))
# =============================================================================

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from supabase import create_client, Client

from app.config import settings
from lib.utils import normalize_uuid

logger = logging.getLogger(__name__)

# PostgREST: ".single()" matched zero rows
NOT_FOUND_CODE = "PGRST116"

# Postgres: unique_violation
UNIQUE_VIOLATION_CODE = "23505"


class SupabaseClientError(Exception):
    """
    Error during Supabase operations.

    Carries an error code and a suggestion; the API turns it into a
    sanitized 500 response.
    """

    def __init__(
        self,
        message: str,
        code: str = "SUPABASE_ERROR",
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion
        self.details = details or {}

    def __str__(self) -> str:
        result = f"[{self.code}] {self.message}"
        if self.suggestion:
            result += f" Suggestion: {self.suggestion}"
        return result


class SupabaseClient:
    """
    Shared Supabase client and query helpers.

    All methods are class methods for easy access without instantiation.

    Example:
        subscription = SupabaseClient.fetch_subscription(user_id)
        integration = SupabaseClient.fetch_youtube_integration(user_id)
    """

    _instance: Client | None = None

    @classmethod
    def get_client(cls) -> Client:
        """
        Get or create the singleton Supabase client.

        Uses service_role key which bypasses Row Level Security (RLS).

        Raises:
            SupabaseClientError: If client creation fails
        """
        if cls._instance is None:
            try:
                cls._instance = create_client(
                    settings.SUPABASE_URL,
                    settings.SUPABASE_SERVICE_KEY
                )
                logger.info("Supabase client initialized successfully")
            except Exception as e:
                raise SupabaseClientError(
                    message=f"Failed to create Supabase client: {e}",
                    code="CLIENT_INIT_FAILED",
                    suggestion="Check SUPABASE_URL and SUPABASE_SERVICE_KEY in your .env file"
                )
        return cls._instance

    # -------------------------------------------------------------------------
    # Error Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def is_not_found_error(error: Exception) -> bool:
        """True if the error is PostgREST's "no rows" response to .single()."""
        return getattr(error, "code", None) == NOT_FOUND_CODE or NOT_FOUND_CODE in str(error)

    @staticmethod
    def is_unique_violation(error: Exception) -> bool:
        """True if the error is a Postgres unique-constraint violation."""
        return getattr(error, "code", None) == UNIQUE_VIOLATION_CODE or UNIQUE_VIOLATION_CODE in str(error)

    # -------------------------------------------------------------------------
    # Query Helpers
    # -------------------------------------------------------------------------

    @classmethod
    def fetch_first(cls, query: Any) -> dict[str, Any] | None:
        """
        Execute a select query and return its first row, or None.

        Args:
            query: A postgrest select builder (not yet executed)
        """
        response = query.limit(1).execute()
        rows = response.data or []
        return rows[0] if rows else None

    @classmethod
    def fetch_subscription(cls, user_id: str | UUID) -> dict[str, Any] | None:
        """
        Fetch the user's subscription row.

        Returns:
            Subscription dict, or None for users who never subscribed

        Raises:
            SupabaseClientError: If the query fails
        """
        client = cls.get_client()
        user_id_str = normalize_uuid(user_id)

        try:
            return cls.fetch_first(
                client.table("user_subscriptions")
                .select("*")
                .eq("user_id", user_id_str)
            )
        except Exception as e:
            raise SupabaseClientError(
                message=f"Failed to fetch subscription: {e}",
                code="FETCH_SUBSCRIPTION_FAILED",
                details={"user_id": user_id_str},
            )

    @classmethod
    def fetch_youtube_integration(
        cls,
        user_id: str | UUID,
        connected_only: bool = True,
    ) -> dict[str, Any] | None:
        """
        Fetch the user's YouTube integration row.

        Args:
            user_id: The user UUID
            connected_only: Ignore rows whose connection was revoked

        Raises:
            SupabaseClientError: If the query fails
        """
        client = cls.get_client()
        user_id_str = normalize_uuid(user_id)

        try:
            query = (
                client.table("youtube_integrations")
                .select("*")
                .eq("user_id", user_id_str)
            )
            if connected_only:
                query = query.eq("is_connected", True)
            return cls.fetch_first(query)
        except Exception as e:
            raise SupabaseClientError(
                message=f"Failed to fetch YouTube integration: {e}",
                code="FETCH_INTEGRATION_FAILED",
                details={"user_id": user_id_str},
            )
