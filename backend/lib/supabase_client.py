"""
Supabase client for the session key/value table
"""
from typing import Optional

from supabase import create_client, Client

from learning_path_tutor.config import Settings

_supabase_client: Optional[Client] = None


def get_supabase_client(settings: Settings) -> Client:
    """Get or create Supabase client singleton"""
    global _supabase_client

    if _supabase_client is None:
        if not settings.supabase_url or not settings.supabase_key:
            raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set in environment")

        _supabase_client = create_client(settings.supabase_url, settings.supabase_key)

    return _supabase_client
