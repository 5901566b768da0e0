"""
Configuration

Settings are read from the environment (and a .env file, via python-dotenv).
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from learning_path_tutor.kv_store import (
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    KeyValueStore,
    SupabaseKeyValueStore,
)
from learning_path_tutor.llm_backend import DEFAULT_ACCURATE_MODEL, DEFAULT_MODEL

STORAGE_BACKENDS = ("file", "memory", "supabase")


@dataclass
class Settings:
    openai_api_key: Optional[str] = None
    openai_model: str = DEFAULT_MODEL
    openai_accurate_model: str = DEFAULT_ACCURATE_MODEL
    storage_backend: str = "file"
    sessions_file: str = ".learning_sessions.json"
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    supabase_kv_table: str = "kv_store"
    analyze_prompt_path: Optional[str] = None
    qa_prompt_path: Optional[str] = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()

        storage_backend = os.getenv("STORAGE_BACKEND", "file").lower()
        if storage_backend not in STORAGE_BACKENDS:
            raise ValueError(
                f"STORAGE_BACKEND must be one of {', '.join(STORAGE_BACKENDS)}, got {storage_backend!r}"
            )

        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            openai_model=os.getenv("OPENAI_MODEL", DEFAULT_MODEL),
            openai_accurate_model=os.getenv("OPENAI_ACCURATE_MODEL", DEFAULT_ACCURATE_MODEL),
            storage_backend=storage_backend,
            sessions_file=os.getenv("SESSIONS_FILE", ".learning_sessions.json"),
            supabase_url=os.getenv("SUPABASE_URL"),
            # Service role key, same as the backend's admin client
            supabase_key=os.getenv("SUPABASE_SERVICE_KEY"),
            supabase_kv_table=os.getenv("SUPABASE_KV_TABLE", "kv_store"),
            analyze_prompt_path=os.getenv("ANALYZE_PROMPT_PATH"),
            qa_prompt_path=os.getenv("QA_PROMPT_PATH"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


def build_kv_store(settings: Settings, supabase_client=None) -> KeyValueStore:
    """Pick the persistence substrate named by settings.storage_backend."""
    if settings.storage_backend == "memory":
        return InMemoryKeyValueStore()
    if settings.storage_backend == "supabase":
        if supabase_client is None:
            raise ValueError("STORAGE_BACKEND=supabase requires a Supabase client")
        return SupabaseKeyValueStore(supabase_client, table=settings.supabase_kv_table)
    return JsonFileKeyValueStore(settings.sessions_file)
