"""Shared database utilities."""

from .connection import SupabaseConfig, get_supabase_client

__all__ = ["get_supabase_client", "SupabaseConfig"]
