"""Shared Supabase connection utilities.

Provides client creation for the fact store. The client is constructed by an
entry point and handed to the store explicitly; nothing here caches a
module-level instance.
"""

from __future__ import annotations
import logging
import os
from dataclasses import dataclass
from typing import Optional

from supabase import Client, ClientOptions, create_client

logger = logging.getLogger(__name__)


@dataclass
class SupabaseConfig:
    """Configuration for Supabase connection.

    Attributes:
        url: Supabase project URL
        key: Supabase API key (anon or service role)
        schema: Database schema to use (default: public)
    """
    url: str
    key: str
    schema: str = "public"

    @classmethod
    def from_env(
        cls,
        url_var: str = "SUPABASE_URL",
        key_var: str = "SUPABASE_KEY",
        schema_var: str = "SUPABASE_SCHEMA"
    ) -> SupabaseConfig:
        """Create configuration from environment variables.

        Raises:
            ValueError: If required environment variables are not set
        """
        url = os.getenv(url_var)
        key = os.getenv(key_var) or os.getenv("SUPABASE_ANON_KEY")
        schema = os.getenv(schema_var, "public")

        if not url or not key:
            raise ValueError(
                f"Missing required environment variables: {url_var} and/or {key_var}. "
                f"Please set them in your .env file or environment."
            )

        return cls(url=url, key=key, schema=schema)


def get_supabase_client(config: Optional[SupabaseConfig] = None) -> Client:
    """Create a Supabase client, scoped to a non-public schema when configured.

    Example:
        >>> client = get_supabase_client()
        >>> response = client.table("pulses").select("*").execute()
    """
    if config is None:
        config = SupabaseConfig.from_env()

    logger.debug("Creating Supabase client for %s", config.url)

    if config.schema and config.schema != "public":
        logger.debug("Using schema: %s", config.schema)
        return create_client(config.url, config.key, options=ClientOptions(schema=config.schema))

    return create_client(config.url, config.key)
