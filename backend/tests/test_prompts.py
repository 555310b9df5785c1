"""
StudyCare Backend — Prompt Helper Tests
"""

import pytest

from studycare.exceptions import LLMServiceError
from studycare.services.llm_base import ChatOptions
from studycare.services.prompts import (
    build_system_prompt,
    clean_response,
    detect_subject,
    first_paragraph,
    normalize_numbered_list,
    parse_json_response,
)


class TestBuildSystemPrompt:

    def test_defaults(self):
        prompt = build_system_prompt()
        assert prompt.startswith("You are StudyCare AI")
        assert "LANGUAGE:" not in prompt
        assert "step-by-step" not in prompt

    def test_all_preferences(self):
        prompt = build_system_prompt(
            ChatOptions(language="es", simplified_mode=True, step_by_step=True, subject="math")
        )
        assert "CURRENT SUBJECT: math" in prompt
        assert "step-by-step" in prompt
        assert "simple words" in prompt
        assert "Respond in Spanish" in prompt

    def test_unknown_language_code_is_passed_through(self):
        assert "Respond in xx" in build_system_prompt(ChatOptions(language="xx"))


class TestCleanResponse:

    def test_collapses_blank_lines_and_bullets(self):
        raw = "  Intro\n\n\n\n- one\n*   two\n1.    step  \n"
        assert clean_response(raw) == "Intro\n\n• one\n• two\n1. step"


class TestParseJsonResponse:

    def test_plain_json(self):
        assert parse_json_response('{"summary": "x"}') == {"summary": "x"}

    def test_fenced_json(self):
        assert parse_json_response('```json\n{"keyPoints": ["a"]}\n```') == {"keyPoints": ["a"]}

    def test_invalid_json_raises(self):
        with pytest.raises(LLMServiceError) as exc_info:
            parse_json_response("Sure! Here it is", what="organization")
        assert exc_info.value.message == "Failed to parse organization"

    def test_non_object_raises(self):
        with pytest.raises(LLMServiceError):
            parse_json_response("[1, 2]")


class TestNormalizeNumberedList:

    def test_markdown_bullets_become_numbered(self):
        assert normalize_numbered_list("- **Rest**\n- Drink water") == "1. Rest\n2. Drink water"

    def test_existing_numbers_are_renumbered(self):
        text = "3. See a doctor\n\n7. Keep a [diary](http://x)"
        assert normalize_numbered_list(text) == "1. See a doctor\n2. Keep a diary"

    def test_headings_stripped(self):
        assert normalize_numbered_list("## Advice\nSleep well") == "1. Advice\n2. Sleep well"

    def test_empty(self):
        assert normalize_numbered_list(None) == ""
        assert normalize_numbered_list("") == ""


class TestDetectSubject:

    @pytest.mark.parametrize(
        "message,expected",
        [
            ("How do I solve this equation?", "math"),
            ("Explain photosynthesis in biology", "science"),
            ("Tell me about the Renaissance", "history"),
            ("Help with my essay", "english"),
            ("Which continent is Chile on?", "geography"),
            ("Debug my Python code", "computer"),
            ("hello there", None),
        ],
    )
    def test_keywords(self, message, expected):
        assert detect_subject(message) == expected


def test_first_paragraph():
    assert first_paragraph("Text: 2x+3=7\n\nExplanation follows") == "Text: 2x+3=7"
