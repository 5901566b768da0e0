"""
Session Store

Persists learning sessions in a key/value substrate under two fixed keys:

- "sessions": JSON object mapping session id -> session record
- "currentSession": JSON string holding the current session id (or absent)

SessionStore is the sole writer of the persisted representation. Reads never
raise; writes report failure through their return value (None / False) and
log the cause.
"""

import json
import logging
import secrets
import string
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from learning_path_tutor.errors import PersistenceError, SessionFormatError
from learning_path_tutor.kv_store import KeyValueStore
from learning_path_tutor.models import Session, SessionSummary, utc_now

logger = logging.getLogger(__name__)

SESSIONS_KEY = "sessions"
CURRENT_SESSION_KEY = "currentSession"
EXPORT_VERSION = "1.0"

_ID_ALPHABET = string.digits + string.ascii_lowercase


def generate_session_id() -> str:
    """Time-based component plus a random base36 suffix."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"session_{int(time.time() * 1000)}_{suffix}"


def _sort_key(record: Dict[str, Any]) -> datetime:
    try:
        stamp = datetime.fromisoformat(str(record.get("updatedAt")).replace("Z", "+00:00"))
    except ValueError:
        return datetime.min.replace(tzinfo=timezone.utc)
    if stamp.tzinfo is None:
        stamp = stamp.replace(tzinfo=timezone.utc)
    return stamp


class SessionStore:
    """
    Durable mapping of session id -> session record, plus the current-session pointer.

    Constructed once per process and injected into the conversation engine.

    Args:
        kv_store: Persistence substrate
        clock: Returns the current time (defaults to UTC now)
        id_factory: Returns a fresh session id
    """

    def __init__(
        self,
        kv_store: KeyValueStore,
        clock: Optional[Callable[[], datetime]] = None,
        id_factory: Optional[Callable[[], str]] = None
    ):
        self.kv_store = kv_store
        self._clock = clock or utc_now
        self._id_factory = id_factory or generate_session_id

    def generate_id(self) -> str:
        return self._id_factory()

    def _now(self) -> str:
        return self._clock().isoformat()

    def _read_sessions(self) -> Dict[str, Any]:
        """Raises PersistenceError if the mapping cannot be read or decoded."""
        stored = self.kv_store.get_item(SESSIONS_KEY)
        if not stored:
            return {}
        try:
            sessions = json.loads(stored)
        except ValueError as e:
            raise PersistenceError(f"Stored sessions are not valid JSON: {e}") from e
        if not isinstance(sessions, dict):
            raise PersistenceError("Stored sessions are not a JSON object")
        return sessions

    def save(self, session: Dict[str, Any]) -> Optional[str]:
        """
        Upsert a session record and make it the current session.

        Assigns an id if absent, keeps createdAt when already set (on the record
        or on the stored copy), and refreshes updatedAt.

        Args:
            session: Session record in its JSON form

        Returns:
            The session id, or None if the substrate rejected the write
        """
        try:
            sessions = self._read_sessions()
            session_id = session.get("id") or self.generate_id()
            timestamp = self._now()
            existing = sessions.get(session_id)
            created_at = session.get("createdAt")
            if not created_at and isinstance(existing, dict):
                created_at = existing.get("createdAt")

            record = dict(session)
            record["id"] = session_id
            record["createdAt"] = created_at or timestamp
            record["updatedAt"] = timestamp

            sessions[session_id] = record
            self.kv_store.set_item(SESSIONS_KEY, json.dumps(sessions))
            self.kv_store.set_item(CURRENT_SESSION_KEY, json.dumps(session_id))
            return session_id
        except (PersistenceError, TypeError, ValueError) as e:
            logger.error(f"❌ [SessionStore] Error saving learning session: {e}")
            return None

    def get_all(self) -> Dict[str, Any]:
        try:
            return self._read_sessions()
        except PersistenceError as e:
            logger.error(f"❌ [SessionStore] Error loading sessions: {e}")
            return {}

    def get(self, session_id: str) -> Optional[Dict[str, Any]]:
        record = self.get_all().get(session_id)
        if not isinstance(record, dict):
            return None
        return record

    def get_current_id(self) -> Optional[str]:
        try:
            stored = self.kv_store.get_item(CURRENT_SESSION_KEY)
        except PersistenceError as e:
            logger.error(f"❌ [SessionStore] Error loading current session: {e}")
            return None
        if not stored:
            return None
        try:
            session_id = json.loads(stored)
        except ValueError:
            # Bare ids written without JSON encoding
            session_id = stored
        return session_id if isinstance(session_id, str) and session_id else None

    def get_current(self) -> Optional[Dict[str, Any]]:
        session_id = self.get_current_id()
        if not session_id:
            return None
        return self.get(session_id)

    def set_current(self, session_id: str) -> bool:
        try:
            self.kv_store.set_item(CURRENT_SESSION_KEY, json.dumps(session_id))
            return True
        except PersistenceError as e:
            logger.error(f"❌ [SessionStore] Error setting current session: {e}")
            return False

    def delete(self, session_id: str) -> bool:
        """
        Remove a session. Clears the current-session pointer if it pointed here.

        Returns:
            True if the session existed and was removed, False otherwise
        """
        try:
            sessions = self._read_sessions()
            if session_id not in sessions:
                return False
            del sessions[session_id]
            self.kv_store.set_item(SESSIONS_KEY, json.dumps(sessions))

            if self.get_current_id() == session_id:
                self.kv_store.remove_item(CURRENT_SESSION_KEY)
            return True
        except PersistenceError as e:
            logger.error(f"❌ [SessionStore] Error deleting session {session_id}: {e}")
            return False

    def list_sessions(self) -> List[SessionSummary]:
        """All sessions as summaries, most recently updated first (stable on ties)."""
        records = [record for record in self.get_all().values() if isinstance(record, dict)]
        summaries = []
        for record in sorted(records, key=_sort_key, reverse=True):
            learning_path = record.get("learningPath") or {}
            if not isinstance(learning_path, dict):
                learning_path = {}
            qa_data = record.get("qaData")
            summaries.append(SessionSummary(
                id=str(record.get("id")),
                topic=learning_path.get("topic") or "Unknown Topic",
                subtopic=learning_path.get("subtopic") or "",
                level=learning_path.get("level") or "",
                created_at=record.get("createdAt"),
                updated_at=record.get("updatedAt"),
                has_questions=isinstance(qa_data, dict) and bool(qa_data.get("answers")),
            ))
        return summaries

    def create_new(self) -> Optional[str]:
        """
        Clear the current-session pointer and hand out a fresh id.

        No record is written; it materializes on the first save.
        """
        try:
            self.kv_store.remove_item(CURRENT_SESSION_KEY)
        except PersistenceError as e:
            logger.error(f"❌ [SessionStore] Error creating new session: {e}")
            return None
        return self.generate_id()

    def export_session(self, session_id: str) -> Optional[str]:
        session = self.get(session_id)
        if not session:
            return None
        export_data = dict(session)
        export_data["exportedAt"] = self._now()
        export_data["version"] = EXPORT_VERSION
        return json.dumps(export_data, indent=2)

    def import_session(self, json_data: str) -> Optional[str]:
        """
        Import an exported session under a new id.

        Returns:
            The new session id, or None if the text is not a valid session export
        """
        try:
            session_data = json.loads(json_data)
        except (TypeError, ValueError) as e:
            logger.error(f"❌ [SessionStore] Error importing session: {e}")
            return None
        if not isinstance(session_data, dict):
            logger.error("❌ [SessionStore] Error importing session: export is not a JSON object")
            return None

        imported = dict(session_data)
        imported.pop("exportedAt", None)
        imported.pop("version", None)
        imported["id"] = self.generate_id()
        imported["importedAt"] = self._now()

        try:
            Session.from_dict(imported)
        except SessionFormatError as e:
            logger.error(f"❌ [SessionStore] Rejected imported session: {e}")
            return None
        return self.save(imported)
