"""
FastAPI Backend for the Learning Path Tutor

Provides REST API endpoints for a browser front-end:
- Chat turns driven by the conversation engine
- Practice question regeneration
- Session listing, switching, deletion, export and import

One engine instance serves the process (single user, single conversation at a time).
"""

from fastapi import FastAPI, HTTPException, Depends
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel
from typing import Optional, List, Dict, Any
import os
import sys
import time
import logging

# Add the learning_path_tutor package to Python path
backend_dir = os.path.dirname(os.path.abspath(__file__))
project_root = os.path.dirname(backend_dir)
package_src = os.path.join(project_root, 'learning_path_tutor', 'src')
if os.path.exists(package_src) and package_src not in sys.path:
    sys.path.insert(0, package_src)

from lib.logger import setup_logging, get_logger

from learning_path_tutor.config import Settings, build_kv_store
from learning_path_tutor.conversation_engine import ConversationEngine
from learning_path_tutor.llm_backend import OpenAIGenerator
from learning_path_tutor.prompt_template import load_prompt_template, load_qa_template
from learning_path_tutor.response_parser import format_learning_path
from learning_path_tutor.session_store import SessionStore
from lib.supabase_client import get_supabase_client

settings = Settings.from_env()

setup_logging(level=getattr(logging, settings.log_level, logging.INFO), use_colors=True)
logger = get_logger("backend.main")

# Singletons, created on first use
_session_store: Optional[SessionStore] = None
_engine: Optional[ConversationEngine] = None


def get_session_store() -> SessionStore:
    """Get or create the process-wide SessionStore."""
    global _session_store
    if _session_store is None:
        supabase = get_supabase_client(settings) if settings.storage_backend == "supabase" else None
        _session_store = SessionStore(build_kv_store(settings, supabase_client=supabase))
        logger.info("Session store ready", data={"backend": settings.storage_backend})
    return _session_store


def get_engine() -> ConversationEngine:
    """Get or create the ConversationEngine, restoring the current session on first use."""
    global _engine
    if _engine is None:
        generator = OpenAIGenerator(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            accurate_model=settings.openai_accurate_model,
        )
        _engine = ConversationEngine(
            generate=generator.generate,
            session_store=get_session_store(),
            prompt_template=load_prompt_template(settings.analyze_prompt_path),
            qa_template=load_qa_template(settings.qa_prompt_path),
        )
        if _engine.restore_current_session():
            logger.success("Restored current session", data={"session_id": _engine.session_id})
    return _engine


app = FastAPI(
    title="Learning Path Tutor API",
    description="Conversational learning path definition and practice question generation",
    version="1.0.0"
)

# CORS middleware for the front-end dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ==================== Pydantic Models ====================

class ChatMessage(BaseModel):
    content: str


class ImportRequest(BaseModel):
    data: str


class ConversationView(BaseModel):
    session_id: Optional[str]
    state: str
    messages: List[Dict[str, Any]]
    parsed_response: Optional[Dict[str, Any]] = None
    qa_data: Optional[Dict[str, Any]] = None
    learning_path: Optional[Dict[str, Any]] = None
    learning_path_text: str = ""
    pending_questions: List[str] = []
    answers_collected: int = 0


class SessionSummaryView(BaseModel):
    id: str
    topic: str
    subtopic: str
    level: str
    createdAt: Optional[str]
    updatedAt: Optional[str]
    hasQuestions: bool


# ==================== Helper Functions ====================

def conversation_view(engine: ConversationEngine) -> ConversationView:
    session = engine.snapshot()
    learning_path = session.learning_path.to_dict() if session.learning_path else None
    return ConversationView(
        session_id=engine.session_id,
        state=session.state.value,
        messages=[message.to_dict() for message in session.messages],
        parsed_response=session.parsed_response.to_dict() if session.parsed_response else None,
        qa_data=session.qa_data,
        learning_path=learning_path,
        learning_path_text=format_learning_path(learning_path),
        pending_questions=session.pending_questions,
        answers_collected=len(session.collected_answers),
    )


# ==================== API Endpoints ====================

@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "status": "ok",
        "service": "Learning Path Tutor API",
        "version": "1.0.0",
        "storage_backend": settings.storage_backend,
    }


@app.get("/api/conversation", response_model=ConversationView)
async def get_conversation(engine: ConversationEngine = Depends(get_engine)):
    return conversation_view(engine)


@app.post("/api/chat", response_model=ConversationView)
async def chat(message: ChatMessage, engine: ConversationEngine = Depends(get_engine)):
    """Send one user message through the conversation engine."""
    start_time = time.time()
    logger.request("POST", "/api/chat", data={
        "session_id": engine.session_id,
        "state": engine.state.value,
        "message_length": len(message.content),
    })

    await engine.handle_user_message(message.content)

    logger.response(200, "/api/chat", duration=time.time() - start_time, data={
        "session_id": engine.session_id,
        "state": engine.state.value,
    })
    return conversation_view(engine)


@app.post("/api/questions/regenerate", response_model=ConversationView)
async def regenerate_questions(engine: ConversationEngine = Depends(get_engine)):
    await engine.regenerate_questions()
    return conversation_view(engine)


@app.get("/api/sessions", response_model=List[SessionSummaryView])
async def list_sessions(store: SessionStore = Depends(get_session_store)):
    return [summary.to_dict() for summary in store.list_sessions()]


@app.post("/api/sessions/new", response_model=ConversationView)
async def new_session(
    engine: ConversationEngine = Depends(get_engine),
    store: SessionStore = Depends(get_session_store)
):
    session_id = store.create_new()
    if session_id is None:
        raise HTTPException(status_code=500, detail="Failed to create session")
    engine.create_new_session(session_id)
    logger.success("New session started", data={"session_id": session_id})
    return conversation_view(engine)


@app.post("/api/sessions/{session_id}/load", response_model=ConversationView)
async def load_session(session_id: str, engine: ConversationEngine = Depends(get_engine)):
    if not engine.load_session(session_id):
        raise HTTPException(status_code=404, detail="Session not found")
    return conversation_view(engine)


@app.delete("/api/sessions/{session_id}")
async def delete_session(session_id: str, store: SessionStore = Depends(get_session_store)):
    if not store.delete(session_id):
        raise HTTPException(status_code=404, detail="Session not found")
    return {"status": "deleted", "session_id": session_id}


@app.get("/api/sessions/{session_id}/export", response_class=PlainTextResponse)
async def export_session(session_id: str, store: SessionStore = Depends(get_session_store)):
    exported = store.export_session(session_id)
    if exported is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return PlainTextResponse(exported, media_type="application/json")


@app.post("/api/sessions/import")
async def import_session(request: ImportRequest, store: SessionStore = Depends(get_session_store)):
    session_id = store.import_session(request.data)
    if session_id is None:
        raise HTTPException(status_code=400, detail="Invalid session export")
    return {"status": "imported", "session_id": session_id}


if __name__ == "__main__":
    import uvicorn

    try:
        uvicorn.run(app, host="0.0.0.0", port=8000)
    except KeyboardInterrupt:
        logger.info("🛑 Server stopped.")
        sys.exit(0)
