"""
Prompt Templates

Loads the analyze and Q&A templates and substitutes their placeholders.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

PROMPTS_DIR = Path(__file__).parent / "prompts"
ANALYZE_TEMPLATE_FILE = PROMPTS_DIR / "analyze_prompt.md"
QA_TEMPLATE_FILE = PROMPTS_DIR / "create_questions_and_answers.md"

PROMPT_PLACEHOLDER = "[PROMPT]"
PLAN_PLACEHOLDER = "[PLAN]"


def _read_template(path: Path) -> Optional[str]:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        logger.warning(f"⚠️ [PromptTemplate] Could not load template {path}: {e}")
        return None


def load_prompt_template(path: Optional[str] = None) -> Optional[str]:
    """Load the learning path analysis template, or None if unreadable."""
    return _read_template(Path(path) if path else ANALYZE_TEMPLATE_FILE)


def load_qa_template(path: Optional[str] = None) -> Optional[str]:
    """Load the practice question template, or None if unreadable."""
    return _read_template(Path(path) if path else QA_TEMPLATE_FILE)


def build_full_prompt(template: Optional[str], user_prompt: str) -> str:
    if not template:
        return user_prompt
    return template.replace(PROMPT_PLACEHOLDER, user_prompt, 1)


def build_qa_prompt(template: Optional[str], learning_path: Dict[str, Any]) -> str:
    plan = json.dumps(learning_path)
    if not template:
        return plan
    return template.replace(PLAN_PLACEHOLDER, plan, 1)
