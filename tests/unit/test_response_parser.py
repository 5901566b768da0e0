"""
Unit Tests for Response Parser

Tests JSON extraction from model output and learning path / Q&A validation.
"""

import pytest
import sys
import os

# Add project root to path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
sys.path.insert(0, os.path.join(project_root, "learning_path_tutor", "src"))

from learning_path_tutor.models import ParseFailure, ParseSuccess
from learning_path_tutor.response_parser import (
    INVALID_QA_STRUCTURE,
    INVALID_STRUCTURE,
    build_follow_up_prompt,
    extract_json_text,
    format_learning_path,
    parse_learning_path_response,
    parse_qa_response,
)


class TestExtractJsonText:
    """Test suite for the extraction grammar."""

    def test_prefers_fenced_block(self):
        text = 'Sure! ```json\n{"a": 1}\n``` and more {"b": 2}'
        assert extract_json_text(text) == '{"a": 1}'

    def test_fence_without_json_tag(self):
        assert extract_json_text('```\n{"a": 1}\n```') == '{"a": 1}'

    def test_falls_back_to_trimmed_text(self):
        assert extract_json_text('   {"a": 1}\n  ') == '{"a": 1}'

    def test_strips_unclosed_fence_markers(self):
        assert extract_json_text('```json\n{"a": 1}') == '{"a": 1}'

    def test_nested_object_inside_fence(self):
        text = '```json\n{"learningPath": {"topic": "Go"}}\n```'
        assert extract_json_text(text) == '{"learningPath": {"topic": "Go"}}'


class TestParseLearningPathResponse:
    """Test suite for learning path parsing."""

    def test_fenced_partial_path(self):
        """Prose around a fenced block, only the topic known."""
        result = parse_learning_path_response('Here is JSON: ```json\n{"learningPath":{"topic":"Go"}}\n```')

        assert isinstance(result, ParseSuccess)
        assert result.is_complete is False
        assert result.has_questions is False
        assert result.data == {"learningPath": {"topic": "Go"}}

    def test_bare_questions(self):
        result = parse_learning_path_response('{"questions":["What is your goal?"]}')

        assert isinstance(result, ParseSuccess)
        assert result.has_questions is True
        assert result.is_complete is False
        assert result.questions == ["What is your goal?"]

    def test_not_json(self):
        result = parse_learning_path_response("not json at all")

        assert isinstance(result, ParseFailure)
        assert result.raw_text == "not json at all"
        assert result.error

    def test_complete_path(self):
        result = parse_learning_path_response(
            '{"learningPath": {"topic": "Go", "subtopic": "Goroutines", "level": "beginner"}, "questions": []}'
        )

        assert isinstance(result, ParseSuccess)
        assert result.is_complete is True
        assert result.has_questions is False
        assert result.learning_path.subtopic == "Goroutines"

    def test_empty_field_is_incomplete(self):
        result = parse_learning_path_response(
            '{"learningPath": {"topic": "Go", "subtopic": "", "level": "beginner"}}'
        )
        assert result.is_complete is False

    def test_non_string_fields_are_incomplete(self):
        result = parse_learning_path_response(
            '{"learningPath": {"topic": 1, "subtopic": [0], "level": true}}'
        )
        assert isinstance(result, ParseSuccess)
        assert result.is_complete is False

    def test_missing_required_fields(self):
        text = '{"answer": 42}'
        result = parse_learning_path_response(text)

        assert isinstance(result, ParseFailure)
        assert result.error == INVALID_STRUCTURE
        assert result.raw_text == text

    def test_json_array_is_invalid_structure(self):
        result = parse_learning_path_response('[{"questions": ["x"]}]')
        assert isinstance(result, ParseFailure)
        assert result.error == INVALID_STRUCTURE

    @pytest.mark.parametrize("text", [
        "",
        "```",
        "```json```",
        "null",
        "{",
        '{"questions": "not a list"}',
        "[" * 100000,
        None,
        12,
    ])
    def test_never_raises(self, text):
        result = parse_learning_path_response(text)
        assert isinstance(result, (ParseSuccess, ParseFailure))

    def test_questions_string_is_not_has_questions(self):
        result = parse_learning_path_response('{"questions": "What?"}')
        assert isinstance(result, ParseSuccess)
        assert result.has_questions is False


class TestParseQAResponse:
    """Test suite for Q&A parsing."""

    def test_valid_answers(self):
        text = '```json\n{"answers": [{"question": "Q", "answer": "A", "explanation": "E"}]}\n```'
        result = parse_qa_response(text)

        assert isinstance(result, ParseSuccess)
        assert result.data["answers"][0]["answer"] == "A"

    def test_answers_must_be_a_list(self):
        text = '{"answers": {"question": "Q"}}'
        result = parse_qa_response(text)

        assert isinstance(result, ParseFailure)
        assert result.error == INVALID_QA_STRUCTURE
        assert result.raw_text == text

    def test_learning_path_shape_is_not_qa(self):
        result = parse_qa_response('{"learningPath": {"topic": "Go"}}')
        assert isinstance(result, ParseFailure)

    @pytest.mark.parametrize("text", ["", "oops", "```json\n{\n```", "[]", None])
    def test_never_raises(self, text):
        result = parse_qa_response(text)
        assert isinstance(result, ParseFailure)


class TestFormattingHelpers:
    """Test suite for learning path rendering and follow-up prompts."""

    def test_format_learning_path(self):
        text = format_learning_path({"topic": "Go", "subtopic": "Channels", "level": "advanced"})
        assert text == "Topic: Go\nSubtopic: Channels\nLevel: advanced"

    def test_format_skips_missing_fields(self):
        assert format_learning_path({"topic": "Go", "level": ""}) == "Topic: Go"
        assert format_learning_path(None) == ""

    def test_follow_up_prompt(self):
        prompt = build_follow_up_prompt(
            "I want to learn Go",
            ["What is your level?", "Which area?"],
            ["Beginner", "Concurrency"],
        )

        assert prompt.startswith('Based on the original request: "I want to learn Go"\n\n')
        assert "Q: What is your level?\nA: Beginner\n\n" in prompt
        assert "Q: Which area?\nA: Concurrency\n\n" in prompt
        assert prompt.endswith("Please provide the complete learning path information in the same JSON format.")

    def test_follow_up_prompt_missing_answer(self):
        prompt = build_follow_up_prompt("Go", ["Q1", "Q2"], ["only one"])
        assert "Q: Q2\nA: No answer provided" in prompt


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
