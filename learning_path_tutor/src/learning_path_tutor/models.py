"""
Conversation Data Model

Dataclasses for the learning path conversation: transcript messages, parse
results, persisted sessions and session summaries.

Python attributes are snake_case; to_dict()/from_dict() use the camelCase
field names of the persisted JSON layout.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from learning_path_tutor.errors import SessionFormatError


class ChatState(Enum):
    """Conversation engine states."""
    INITIAL = "initial"
    PROCESSING = "processing"
    WAITING_FOR_ANSWERS = "waiting_for_answers"
    GENERATING_QA = "generating_qa"
    READY = "ready"  # Loops back to itself for free-form chat


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class LearningPath:
    """The (topic, subtopic, level) triple the conversation converges on."""
    topic: Optional[str] = None
    subtopic: Optional[str] = None
    level: Optional[str] = None

    def is_complete(self) -> bool:
        """Complete iff all three fields are non-empty strings."""
        return all(
            isinstance(value, str) and value != ""
            for value in (self.topic, self.subtopic, self.level)
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            key: value
            for key, value in (
                ("topic", self.topic),
                ("subtopic", self.subtopic),
                ("level", self.level),
            )
            if value is not None
        }

    @classmethod
    def from_dict(cls, data: Any) -> Optional["LearningPath"]:
        if not isinstance(data, dict):
            return None
        return cls(
            topic=data.get("topic"),
            subtopic=data.get("subtopic"),
            level=data.get("level"),
        )


@dataclass
class ParseSuccess:
    """A backend reply that yielded a valid JSON object."""
    data: Dict[str, Any]
    has_questions: bool = False
    is_complete: bool = False

    @property
    def learning_path(self) -> Optional[LearningPath]:
        return LearningPath.from_dict(self.data.get("learningPath"))

    @property
    def questions(self) -> List[str]:
        questions = self.data.get("questions")
        if not isinstance(questions, list):
            return []
        return [str(question) for question in questions]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "data": self.data,
            "hasQuestions": self.has_questions,
            "isComplete": self.is_complete,
        }


@dataclass
class ParseFailure:
    """A backend reply that could not be interpreted. raw_text is kept for diagnostics."""
    error: str
    raw_text: str

    def to_dict(self) -> Dict[str, Any]:
        return {"success": False, "error": self.error, "rawText": self.raw_text}


ParsedResponse = Union[ParseSuccess, ParseFailure]


def parsed_response_from_dict(data: Any) -> Optional[ParsedResponse]:
    """Rebuild a ParsedResponse from its stored JSON form."""
    if data is None:
        return None
    if not isinstance(data, dict):
        raise SessionFormatError("parsedResponse must be an object")
    if data.get("success"):
        payload = data.get("data")
        if not isinstance(payload, dict):
            raise SessionFormatError("parsedResponse.data must be an object")
        return ParseSuccess(
            data=payload,
            has_questions=bool(data.get("hasQuestions")),
            is_complete=bool(data.get("isComplete")),
        )
    return ParseFailure(
        error=str(data.get("error", "")),
        # Older exports used rawResponse
        raw_text=str(data.get("rawText", data.get("rawResponse", ""))),
    )


@dataclass
class Message:
    """One transcript entry."""
    id: int
    text: str
    sender: str  # "user" or "bot"
    timestamp: datetime = field(default_factory=utc_now)
    is_processing: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "text": self.text,
            "sender": self.sender,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.is_processing:
            data["isProcessing"] = True
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "Message":
        if not isinstance(data, dict):
            raise SessionFormatError("message must be an object")
        try:
            message_id = int(data["id"])
            text = data["text"]
            sender = data["sender"]
        except (KeyError, TypeError, ValueError) as e:
            raise SessionFormatError(f"malformed message: {e}") from e
        if not isinstance(text, str) or sender not in ("user", "bot"):
            raise SessionFormatError("malformed message text or sender")

        timestamp = utc_now()
        if isinstance(data.get("timestamp"), str):
            try:
                timestamp = datetime.fromisoformat(data["timestamp"].replace("Z", "+00:00"))
            except ValueError:
                pass
        return cls(
            id=message_id,
            text=text,
            sender=sender,
            timestamp=timestamp,
            is_processing=bool(data.get("isProcessing", False)),
        )


@dataclass
class Session:
    """Durable snapshot of one conversation."""
    id: str
    messages: List[Message] = field(default_factory=list)
    state: ChatState = ChatState.INITIAL
    original_prompt: str = ""
    parsed_response: Optional[ParsedResponse] = None
    qa_data: Optional[Dict[str, Any]] = None
    # Denormalized from parsed_response for listing
    learning_path: Optional[LearningPath] = None
    pending_questions: List[str] = field(default_factory=list)
    collected_answers: List[str] = field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "messages": [message.to_dict() for message in self.messages],
            "state": self.state.value,
            "originalPrompt": self.original_prompt,
            "parsedResponse": self.parsed_response.to_dict() if self.parsed_response else None,
            "qaData": self.qa_data,
            "learningPath": self.learning_path.to_dict() if self.learning_path else None,
            "pendingQuestions": list(self.pending_questions),
            "collectedAnswers": list(self.collected_answers),
        }
        if self.created_at:
            data["createdAt"] = self.created_at
        if self.updated_at:
            data["updatedAt"] = self.updated_at
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "Session":
        """
        Rebuild a Session from its stored JSON form.

        Raises:
            SessionFormatError: if the record does not have the expected shape
        """
        if not isinstance(data, dict):
            raise SessionFormatError("session must be an object")
        session_id = data.get("id")
        if not isinstance(session_id, str) or not session_id:
            raise SessionFormatError("session id missing")

        messages = data.get("messages") or []
        if not isinstance(messages, list):
            raise SessionFormatError("messages must be a list")

        try:
            state = ChatState(data.get("state") or ChatState.INITIAL.value)
        except ValueError as e:
            raise SessionFormatError(f"unknown state: {data.get('state')}") from e

        qa_data = data.get("qaData")
        if qa_data is not None and not isinstance(qa_data, dict):
            raise SessionFormatError("qaData must be an object")

        pending = data.get("pendingQuestions") or []
        collected = data.get("collectedAnswers") or []
        if not isinstance(pending, list) or not isinstance(collected, list):
            raise SessionFormatError("pendingQuestions/collectedAnswers must be lists")

        return cls(
            id=session_id,
            messages=[Message.from_dict(message) for message in messages],
            state=state,
            original_prompt=str(data.get("originalPrompt") or ""),
            parsed_response=parsed_response_from_dict(data.get("parsedResponse")),
            qa_data=qa_data,
            learning_path=LearningPath.from_dict(data.get("learningPath")),
            pending_questions=[str(q) for q in pending],
            collected_answers=[str(a) for a in collected],
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )


@dataclass
class SessionSummary:
    """Session projected to the fields shown in a session picker."""
    id: str
    topic: str
    subtopic: str
    level: str
    created_at: Optional[str]
    updated_at: Optional[str]
    has_questions: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "topic": self.topic,
            "subtopic": self.subtopic,
            "level": self.level,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "hasQuestions": self.has_questions,
        }
