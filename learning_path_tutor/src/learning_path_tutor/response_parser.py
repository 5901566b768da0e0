"""
Response Parser

Extracts and validates structured JSON from free-form model output.

Extraction grammar (extract_json_text):
1. If the text contains a fenced block - three backticks, an optional "json"
   tag, then a {...} object (non-greedy, across lines), then closing
   backticks - the captured object is used.
2. Otherwise the whole text, trimmed, is used.
3. Any leftover ```json or ``` markers are removed before decoding.

The parse functions never raise: every input maps to a ParseSuccess or a
ParseFailure that keeps the raw text.
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional, Sequence

from learning_path_tutor.models import LearningPath, ParseFailure, ParsedResponse, ParseSuccess

logger = logging.getLogger(__name__)

FENCED_OBJECT_PATTERN = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)
FENCE_MARKER_PATTERN = re.compile(r"```json|```")

INVALID_STRUCTURE = "Invalid response structure"
INVALID_QA_STRUCTURE = "Invalid Q&A response structure"


def extract_json_text(text: str) -> str:
    """Return the candidate JSON object text embedded in a model reply."""
    match = FENCED_OBJECT_PATTERN.search(text)
    candidate = match.group(1) if match else text.strip()
    return FENCE_MARKER_PATTERN.sub("", candidate).strip()


def _decode(text: Any) -> Any:
    if not isinstance(text, str):
        raise TypeError(f"expected text, got {type(text).__name__}")
    return json.loads(extract_json_text(text))


def _is_complete(learning_path: Any) -> bool:
    path = LearningPath.from_dict(learning_path)
    return path is not None and path.is_complete()


def parse_learning_path_response(text: str) -> ParsedResponse:
    """
    Interpret a learning path reply.

    Valid iff the decoded object has a "learningPath" or a "questions" field.

    Args:
        text: Raw model output

    Returns:
        ParseSuccess with has_questions/is_complete computed, or ParseFailure
    """
    try:
        data = _decode(text)
    except (ValueError, TypeError, RecursionError) as e:
        logger.warning(f"⚠️ [ResponseParser] Could not decode learning path response: {e}")
        return ParseFailure(error=str(e), raw_text=text)

    if not isinstance(data, dict) or ("learningPath" not in data and "questions" not in data):
        return ParseFailure(error=INVALID_STRUCTURE, raw_text=text)

    questions = data.get("questions")
    return ParseSuccess(
        data=data,
        has_questions=isinstance(questions, list) and len(questions) > 0,
        is_complete=_is_complete(data.get("learningPath")),
    )


def parse_qa_response(text: str) -> ParsedResponse:
    """Interpret a Q&A reply. Valid iff the decoded object has an "answers" list."""
    try:
        data = _decode(text)
    except (ValueError, TypeError, RecursionError) as e:
        logger.warning(f"⚠️ [ResponseParser] Could not decode Q&A response: {e}")
        return ParseFailure(error=str(e), raw_text=text)

    if not isinstance(data, dict) or not isinstance(data.get("answers"), list):
        return ParseFailure(error=INVALID_QA_STRUCTURE, raw_text=text)

    return ParseSuccess(data=data)


def format_learning_path(learning_path: Optional[Dict[str, Any]]) -> str:
    """Render a learning path as labeled lines, skipping empty fields."""
    if not learning_path:
        return ""
    parts = []
    for label, key in (("Topic", "topic"), ("Subtopic", "subtopic"), ("Level", "level")):
        if learning_path.get(key):
            parts.append(f"{label}: {learning_path[key]}")
    return "\n".join(parts)


def build_follow_up_prompt(
    original_prompt: str,
    questions: Sequence[str],
    answers: List[str]
) -> str:
    """Interleave each pending question with its collected answer."""
    prompt = f'Based on the original request: "{original_prompt}"\n\n'
    prompt += "Here are the additional details provided:\n"

    for index, question in enumerate(questions):
        answer = answers[index] if index < len(answers) and answers[index] else "No answer provided"
        prompt += f"Q: {question}\n"
        prompt += f"A: {answer}\n\n"

    prompt += "Please provide the complete learning path information in the same JSON format."
    return prompt
