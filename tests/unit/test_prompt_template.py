"""
Unit Tests for Prompt Templates and Configuration
"""

import json
import pytest
import sys
import os

# Add project root to path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
sys.path.insert(0, os.path.join(project_root, "learning_path_tutor", "src"))

from learning_path_tutor.config import Settings, build_kv_store
from learning_path_tutor.kv_store import InMemoryKeyValueStore, JsonFileKeyValueStore
from learning_path_tutor.prompt_template import (
    PLAN_PLACEHOLDER,
    PROMPT_PLACEHOLDER,
    build_full_prompt,
    build_qa_prompt,
    load_prompt_template,
    load_qa_template,
)


class TestPromptTemplates:

    def test_bundled_templates_have_placeholders(self):
        assert PROMPT_PLACEHOLDER in load_prompt_template()
        assert PLAN_PLACEHOLDER in load_qa_template()

    def test_missing_template_returns_none(self, tmp_path):
        assert load_prompt_template(str(tmp_path / "missing.md")) is None

    def test_custom_template_path(self, tmp_path):
        path = tmp_path / "analyze.md"
        path.write_text("Analyze: [PROMPT]", encoding="utf-8")
        assert load_prompt_template(str(path)) == "Analyze: [PROMPT]"

    def test_build_full_prompt_replaces_first_placeholder(self):
        assert build_full_prompt("A [PROMPT] B [PROMPT]", "Go") == "A Go B [PROMPT]"

    def test_build_full_prompt_without_template(self):
        assert build_full_prompt(None, "learn Go") == "learn Go"

    def test_build_qa_prompt(self):
        path = {"topic": "Go", "subtopic": "Channels", "level": "beginner"}
        prompt = build_qa_prompt("Plan: [PLAN]", path)
        assert prompt == "Plan: " + json.dumps(path)
        assert build_qa_prompt(None, path) == json.dumps(path)


class TestSettings:

    def test_defaults(self, monkeypatch):
        for name in ("STORAGE_BACKEND", "OPENAI_MODEL", "OPENAI_ACCURATE_MODEL", "SESSIONS_FILE", "LOG_LEVEL"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings.from_env()

        assert settings.storage_backend == "file"
        assert settings.openai_model == "gpt-4o-mini"
        assert settings.openai_accurate_model == "gpt-4o"

    def test_invalid_storage_backend(self, monkeypatch):
        monkeypatch.setenv("STORAGE_BACKEND", "redis")
        with pytest.raises(ValueError):
            Settings.from_env()

    def test_build_kv_store(self, tmp_path):
        assert isinstance(build_kv_store(Settings(storage_backend="memory")), InMemoryKeyValueStore)
        file_store = build_kv_store(Settings(storage_backend="file", sessions_file=str(tmp_path / "s.json")))
        assert isinstance(file_store, JsonFileKeyValueStore)
        with pytest.raises(ValueError):
            build_kv_store(Settings(storage_backend="supabase"))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
