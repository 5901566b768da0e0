"""
Conversation Engine

State machine that turns a multi-turn dialogue with the text generation
backend into a learning path (topic, subtopic, level) and a set of practice
questions.

States:
    INITIAL -> PROCESSING -> WAITING_FOR_ANSWERS -> PROCESSING -> GENERATING_QA -> READY
    READY loops back to itself for free-form chat.

Concurrency: all operations run on one event loop and suspend only while
awaiting the backend. Every backend call carries a request token captured
when the call is issued; starting a new session or loading another one bumps
the token, and a result that comes back with an outdated token is discarded.
Question regeneration runs only in READY and keeps its own token, so it never
outdates a chat turn and a chat turn never outdates it.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from learning_path_tutor.errors import SessionFormatError
from learning_path_tutor.models import (
    ChatState,
    LearningPath,
    Message,
    ParseFailure,
    ParsedResponse,
    ParseSuccess,
    Session,
)
from learning_path_tutor.prompt_template import build_full_prompt, build_qa_prompt
from learning_path_tutor.response_parser import (
    build_follow_up_prompt,
    parse_learning_path_response,
    parse_qa_response,
)
from learning_path_tutor.session_store import SessionStore

logger = logging.getLogger(__name__)

# generate(prompt, accurate=False) -> reply text; raises on failure
Generate = Callable[..., Awaitable[str]]

ANALYZING_TEXT = "Analyzing your learning path..."
ANALYZED_TEXT = "Learning path analyzed! Check the main window for details."
INSTRUCTION_TEXT = "Please answer these questions one by one. I'll process your responses as you send them."
UNREADABLE_RESPONSE_TEXT = "Sorry, I couldn't understand the response for your learning path. Please try rephrasing your request."
REQUEST_FAILED_TEXT = "Error processing your request. Please try again."
PROCESSING_ANSWERS_TEXT = "Processing your complete information..."
ANSWERS_FAILED_TEXT = "Error processing your answers. Please send your last answer again."
PATH_UPDATED_TEXT = "Complete! Your learning path has been updated."
PATH_COMPLETE_TEXT = "Learning path complete! Check the main window for details."
GENERATING_QA_TEXT = "Generating practice questions for your learning path..."
QA_GENERATED_TEXT = "Practice questions generated! Check the main window to start practicing."
QA_FAILED_TEXT = "Learning path complete, but failed to generate practice questions. You can try regenerating them."
QA_REGENERATED_TEXT = "Questions regenerated successfully!"
QA_REGENERATE_FAILED_TEXT = "Failed to regenerate questions. Please try again."
CHAT_FAILED_TEXT = "Sorry, I encountered an error processing your request."


def remaining_questions_text(remaining: int) -> str:
    return f"Got it! {remaining} more question{'s' if remaining > 1 else ''} to go."


class ConversationEngine:
    """
    Owns the in-memory state of one live conversation.

    Args:
        generate: Backend capability, generate(prompt, accurate=False) -> text
        session_store: Durable session persistence (auto-save target)
        prompt_template: Learning path analysis template (optional)
        qa_template: Practice question template (optional)
    """

    def __init__(
        self,
        generate: Generate,
        session_store: SessionStore,
        prompt_template: Optional[str] = None,
        qa_template: Optional[str] = None
    ):
        self._generate = generate
        self.session_store = session_store
        self.prompt_template = prompt_template
        self.qa_template = qa_template

        self.session_id: Optional[str] = None
        self.state = ChatState.INITIAL
        self.messages: List[Message] = []
        self.parsed_response: Optional[ParsedResponse] = None
        self.qa_data: Optional[Dict[str, Any]] = None
        self.original_prompt = ""
        self.pending_questions: List[str] = []
        self.collected_answers: List[str] = []
        self.created_at: Optional[str] = None

        # Diagnostic detail of the most recent failure; never shown in the transcript
        self.last_failure: Optional[str] = None

        self._next_message_id = 1
        self._request_token = 0
        self._session_token = 0
        self._regenerate_token = 0

    # ==================== Snapshot ====================

    @property
    def learning_path(self) -> Optional[LearningPath]:
        if isinstance(self.parsed_response, ParseSuccess):
            return self.parsed_response.learning_path
        return None

    def snapshot(self) -> Session:
        """Current conversation as a Session record."""
        return Session(
            id=self.session_id or "",
            messages=list(self.messages),
            state=self.state,
            original_prompt=self.original_prompt,
            parsed_response=self.parsed_response,
            qa_data=self.qa_data,
            learning_path=self.learning_path,
            pending_questions=list(self.pending_questions),
            collected_answers=list(self.collected_answers),
            created_at=self.created_at,
        )

    def _autosave(self):
        if not self.session_id:
            return
        saved_id = self.session_store.save(self.snapshot().to_dict())
        # A failed save is dropped: the turn continues on in-memory state
        if saved_id is None:
            logger.warning(f"⚠️ [ConversationEngine] Auto-save failed for {self.session_id}, continuing in memory")

    # ==================== Transcript helpers ====================

    def _append(self, text: str, sender: str = "bot", is_processing: bool = False) -> Message:
        message = Message(
            id=self._next_message_id,
            text=text,
            sender=sender,
            is_processing=is_processing,
        )
        self._next_message_id += 1
        self.messages.append(message)
        return message

    def _remove_placeholders(self):
        self.messages = [message for message in self.messages if not message.is_processing]

    def _transition(self, new_state: ChatState):
        if new_state != self.state:
            logger.info(f"🔄 [ConversationEngine] {self.state.value} -> {new_state.value}")
        self.state = new_state

    def _begin_request(self) -> int:
        self._request_token += 1
        return self._request_token

    def _is_stale(self, token: int) -> bool:
        if token != self._request_token:
            logger.info(f"🗑️ [ConversationEngine] Discarding stale backend result (request {token})")
            return True
        return False

    def _switch_session(self):
        self._request_token += 1
        self._session_token += 1

    # ==================== Public operations ====================

    async def handle_user_message(self, text: str):
        """Record a user message and advance the state machine."""
        self._append(text, sender="user")

        if self.state == ChatState.INITIAL:
            await self._start_learning_path(text)
        elif self.state == ChatState.WAITING_FOR_ANSWERS:
            await self._collect_answer(text)
        elif self.state == ChatState.READY:
            await self._chat(text)
        else:
            # A backend call is in flight; the message is only recorded
            logger.info(f"⏳ [ConversationEngine] Message received while {self.state.value}, not dispatched")
            self._autosave()

    async def regenerate_questions(self):
        """
        Re-run practice question generation for the stored learning path.

        No-op unless the engine is READY with a complete learning path. A newer
        regeneration or a session switch discards the result.
        """
        parsed = self.parsed_response
        if self.state != ChatState.READY:
            logger.info(f"ℹ️ [ConversationEngine] Cannot regenerate while {self.state.value}")
            return
        if not isinstance(parsed, ParseSuccess) or not parsed.is_complete:
            logger.info("ℹ️ [ConversationEngine] No complete learning path, nothing to regenerate")
            return

        self._regenerate_token += 1
        token = (self._session_token, self._regenerate_token)
        result = await self._generate_qa(parsed.learning_path)
        if token != (self._session_token, self._regenerate_token):
            logger.info(f"🗑️ [ConversationEngine] Discarding stale regeneration (request {token[1]})")
            return

        if isinstance(result, ParseSuccess):
            self.qa_data = result.data
            self._append(QA_REGENERATED_TEXT)
        else:
            self.last_failure = result.error
            self._append(QA_REGENERATE_FAILED_TEXT)
        self._autosave()

    def create_new_session(self, session_id: str):
        """Reset all conversation state and adopt session_id. Nothing is saved until the first change."""
        self._switch_session()
        self.session_id = session_id
        self.messages = []
        self.parsed_response = None
        self.qa_data = None
        self.original_prompt = ""
        self.pending_questions = []
        self.collected_answers = []
        self.created_at = None
        self.last_failure = None
        self._next_message_id = 1
        self._transition(ChatState.INITIAL)

    def load_session(self, session_id: str) -> bool:
        """
        Replace the in-memory conversation with a stored session and mark it current.

        Returns:
            True if the session was found and well formed, False otherwise (no-op)
        """
        record = self.session_store.get(session_id)
        if record is None:
            logger.info(f"ℹ️ [ConversationEngine] Session {session_id} not found")
            return False
        try:
            session = Session.from_dict(record)
        except SessionFormatError as e:
            logger.warning(f"⚠️ [ConversationEngine] Session {session_id} is malformed, ignoring: {e}")
            return False

        self._switch_session()
        self._restore(session)
        self.session_store.set_current(session.id)
        logger.info(f"💾 [ConversationEngine] Loaded session {session.id} ({self.state.value})")
        return True

    def restore_current_session(self) -> bool:
        """Load the store's current session, if any. Called once at startup."""
        session_id = self.session_store.get_current_id()
        if not session_id:
            return False
        return self.load_session(session_id)

    # ==================== Transitions ====================

    async def _start_learning_path(self, text: str):
        if not self.session_id:
            self.session_id = self.session_store.generate_id()
        self.original_prompt = text
        self._transition(ChatState.PROCESSING)
        self._append(ANALYZING_TEXT, is_processing=True)
        self._autosave()

        token = self._begin_request()
        try:
            reply = await self._generate(build_full_prompt(self.prompt_template, text))
        except Exception as e:
            if self._is_stale(token):
                return
            logger.error(f"❌ [ConversationEngine] Learning path request failed: {e}")
            self.last_failure = str(e)
            self._remove_placeholders()
            self._append(REQUEST_FAILED_TEXT)
            self._transition(ChatState.INITIAL)
            self._autosave()
            return
        if self._is_stale(token):
            return

        parsed = parse_learning_path_response(reply)
        self.parsed_response = parsed
        self._remove_placeholders()

        if isinstance(parsed, ParseFailure):
            logger.warning(f"⚠️ [ConversationEngine] Unparseable learning path response: {parsed.error}")
            self.last_failure = parsed.error
            self._append(UNREADABLE_RESPONSE_TEXT)
            self._transition(ChatState.READY)
        elif parsed.has_questions:
            self._append(ANALYZED_TEXT)
            self.pending_questions = parsed.questions
            self.collected_answers = []
            for index, question in enumerate(self.pending_questions):
                self._append(f"Question {index + 1}: {question}")
            self._append(INSTRUCTION_TEXT)
            self._transition(ChatState.WAITING_FOR_ANSWERS)
        elif parsed.is_complete:
            await self._complete_learning_path(parsed)
            return
        else:
            self._append(ANALYZED_TEXT)
            self._transition(ChatState.READY)
        self._autosave()

    async def _collect_answer(self, text: str):
        self.collected_answers.append(text)
        remaining = len(self.pending_questions) - len(self.collected_answers)
        if remaining > 0:
            self._append(remaining_questions_text(remaining))
            self._autosave()
            return

        self._transition(ChatState.PROCESSING)
        self._append(PROCESSING_ANSWERS_TEXT, is_processing=True)
        self._autosave()

        follow_up = build_follow_up_prompt(self.original_prompt, self.pending_questions, self.collected_answers)
        token = self._begin_request()
        try:
            reply = await self._generate(build_full_prompt(self.prompt_template, follow_up))
        except Exception as e:
            if self._is_stale(token):
                return
            logger.error(f"❌ [ConversationEngine] Follow-up request failed: {e}")
            self._fail_follow_up(str(e))
            return
        if self._is_stale(token):
            return

        parsed = parse_learning_path_response(reply)
        if isinstance(parsed, ParseFailure):
            logger.warning(f"⚠️ [ConversationEngine] Unparseable follow-up response: {parsed.error}")
            self._fail_follow_up(parsed.error)
            return

        self.parsed_response = parsed
        self._remove_placeholders()
        if parsed.is_complete:
            await self._complete_learning_path(parsed)
            return
        self._append(PATH_UPDATED_TEXT)
        self._transition(ChatState.READY)
        self._autosave()

    def _fail_follow_up(self, error: str):
        # The last answer is taken back so resending it completes the set again
        self.last_failure = error
        if self.collected_answers:
            self.collected_answers.pop()
        self._remove_placeholders()
        self._append(ANSWERS_FAILED_TEXT)
        self._transition(ChatState.WAITING_FOR_ANSWERS)
        self._autosave()

    async def _complete_learning_path(self, parsed: ParseSuccess):
        """Completion message, then practice question generation. Always ends in READY."""
        self._append(PATH_COMPLETE_TEXT)
        self._transition(ChatState.GENERATING_QA)
        self._append(GENERATING_QA_TEXT, is_processing=True)
        self._autosave()

        token = self._begin_request()
        result = await self._generate_qa(parsed.learning_path)
        if self._is_stale(token):
            return

        self._remove_placeholders()
        if isinstance(result, ParseSuccess):
            self.qa_data = result.data
            self._append(QA_GENERATED_TEXT)
        else:
            self.last_failure = result.error
            self._append(QA_FAILED_TEXT)
        self._transition(ChatState.READY)
        self._autosave()

    async def _chat(self, text: str):
        token = self._begin_request()
        try:
            reply = await self._generate(text)
        except Exception as e:
            if self._is_stale(token):
                return
            logger.error(f"❌ [ConversationEngine] Chat request failed: {e}")
            self.last_failure = str(e)
            self._append(CHAT_FAILED_TEXT)
            self._autosave()
            return
        if self._is_stale(token):
            return
        self._append(reply)
        self._autosave()

    async def _generate_qa(self, learning_path: Optional[LearningPath]) -> ParsedResponse:
        """Q&A generation on the accurate model. Call failures come back as ParseFailure."""
        plan = learning_path.to_dict() if learning_path else {}
        try:
            reply = await self._generate(build_qa_prompt(self.qa_template, plan), accurate=True)
        except Exception as e:
            logger.error(f"❌ [ConversationEngine] Q&A generation failed: {e}")
            return ParseFailure(error=str(e), raw_text="")
        result = parse_qa_response(reply)
        if isinstance(result, ParseSuccess):
            logger.info(f"✅ [ConversationEngine] Generated {len(result.data['answers'])} practice questions")
        return result

    # ==================== Restore ====================

    def _restore(self, session: Session):
        """Adopt a stored snapshot, settling states whose backend call cannot resume."""
        self.session_id = session.id
        self.messages = [message for message in session.messages if not message.is_processing]
        self.parsed_response = session.parsed_response
        self.qa_data = session.qa_data
        self.original_prompt = session.original_prompt
        self.created_at = session.created_at
        self.last_failure = None
        self._next_message_id = max((message.id for message in self.messages), default=0) + 1

        pending = list(session.pending_questions)
        if not pending and isinstance(self.parsed_response, ParseSuccess):
            pending = self.parsed_response.questions
        collected = list(session.collected_answers)

        state = session.state
        if state == ChatState.GENERATING_QA:
            state = ChatState.READY
        elif state == ChatState.PROCESSING:
            state = ChatState.WAITING_FOR_ANSWERS if pending else ChatState.INITIAL

        if state == ChatState.WAITING_FOR_ANSWERS:
            if not pending:
                state = ChatState.READY
            elif len(collected) >= len(pending):
                collected = collected[:len(pending) - 1]

        self.pending_questions = pending
        self.collected_answers = collected
        self.state = state
