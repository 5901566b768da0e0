"""Backend utilities"""
from .logger import setup_logging, get_logger
from .supabase_client import get_supabase_client

__all__ = ["setup_logging", "get_logger", "get_supabase_client"]
