"""
End-to-End Tests for the REST API

Runs the FastAPI app in-process with a scripted backend and an in-memory store.
"""

import json
import pytest
import sys
import os

# Add project root and backend to path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
sys.path.insert(0, os.path.join(project_root, "learning_path_tutor", "src"))
sys.path.insert(0, os.path.join(project_root, "backend"))
os.environ.setdefault("STORAGE_BACKEND", "memory")

from fastapi.testclient import TestClient

import main
from learning_path_tutor.conversation_engine import ConversationEngine, QA_GENERATED_TEXT
from learning_path_tutor.kv_store import InMemoryKeyValueStore
from learning_path_tutor.session_store import SessionStore

COMPLETE_PATH = json.dumps({
    "learningPath": {"topic": "Go", "subtopic": "Goroutines", "level": "beginner"},
})
QA_REPLY = json.dumps({"answers": [{"question": "Q", "answer": "A", "explanation": "E"}]})


class ScriptedBackend:
    def __init__(self, *replies):
        self.replies = list(replies)

    async def generate(self, prompt, accurate=False):
        return self.replies.pop(0)


class TestLearningPathAPI:
    """Test suite for the HTTP surface."""

    @pytest.fixture
    def store(self):
        return SessionStore(InMemoryKeyValueStore())

    @pytest.fixture
    def backend(self):
        return ScriptedBackend(COMPLETE_PATH, QA_REPLY)

    @pytest.fixture
    def client(self, store, backend):
        engine = ConversationEngine(generate=backend.generate, session_store=store)
        main.app.dependency_overrides[main.get_engine] = lambda: engine
        main.app.dependency_overrides[main.get_session_store] = lambda: store
        yield TestClient(main.app)
        main.app.dependency_overrides.clear()

    def test_health(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_chat_completes_learning_path(self, client):
        response = client.post("/api/chat", json={"content": "learn Go goroutines"})

        assert response.status_code == 200
        body = response.json()
        assert body["state"] == "ready"
        assert body["messages"][-1]["text"] == QA_GENERATED_TEXT
        assert body["learning_path_text"] == "Topic: Go\nSubtopic: Goroutines\nLevel: beginner"
        assert body["qa_data"]["answers"][0]["answer"] == "A"

    def test_sessions_list_export_import_delete(self, client):
        session_id = client.post("/api/chat", json={"content": "learn Go"}).json()["session_id"]

        sessions = client.get("/api/sessions").json()
        assert [session["id"] for session in sessions] == [session_id]
        assert sessions[0]["topic"] == "Go"
        assert sessions[0]["hasQuestions"] is True

        exported = client.get(f"/api/sessions/{session_id}/export")
        assert exported.status_code == 200
        assert json.loads(exported.text)["version"] == "1.0"

        imported = client.post("/api/sessions/import", json={"data": exported.text})
        assert imported.status_code == 200
        new_id = imported.json()["session_id"]
        assert new_id != session_id
        assert len(client.get("/api/sessions").json()) == 2

        assert client.delete(f"/api/sessions/{new_id}").status_code == 200
        assert client.delete(f"/api/sessions/{new_id}").status_code == 404

    def test_new_and_load_session(self, client, store):
        first_id = client.post("/api/chat", json={"content": "learn Go"}).json()["session_id"]

        fresh = client.post("/api/sessions/new").json()
        assert fresh["state"] == "initial"
        assert fresh["messages"] == []
        assert fresh["session_id"] != first_id
        assert store.get_current_id() is None

        loaded = client.post(f"/api/sessions/{first_id}/load")
        assert loaded.status_code == 200
        assert loaded.json()["state"] == "ready"
        assert store.get_current_id() == first_id

    def test_unknown_session(self, client):
        assert client.post("/api/sessions/missing/load").status_code == 404
        assert client.get("/api/sessions/missing/export").status_code == 404

    def test_invalid_import(self, client):
        response = client.post("/api/sessions/import", json={"data": "not json"})
        assert response.status_code == 400


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
