"""Learning path tutor: conversation engine, response parsing and session storage"""
from .conversation_engine import ConversationEngine
from .models import ChatState, LearningPath, Message, ParseFailure, ParseSuccess, Session, SessionSummary
from .session_store import SessionStore

__all__ = [
    "ConversationEngine",
    "ChatState",
    "LearningPath",
    "Message",
    "ParseFailure",
    "ParseSuccess",
    "Session",
    "SessionSummary",
    "SessionStore",
]
