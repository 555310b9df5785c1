"""
StudyCare Backend — Prompt Building & AI Output Shaping
=========================================================

What:  Pure helpers shared by the AI gateway and the feature services:
       - build_system_prompt(): tutoring persona + per-user preferences
       - clean_response(): normalize whitespace, bullets and numbered lists
       - parse_json_response(): strip ``` fences and decode JSON replies
       - normalize_numbered_list(): force plain "1. ..." lines (symptom guidance)
       - detect_subject(): keyword-based subject tagging for chat sessions
Why:   Keeping these free of I/O makes them trivially unit-testable.
"""

import json
import re
from typing import Any, Dict, Optional

from studycare.exceptions import LLMServiceError
from studycare.services.llm_base import ChatOptions

LANGUAGE_NAMES: Dict[str, str] = {
    "en": "English",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "it": "Italian",
    "pt": "Portuguese",
    "ru": "Russian",
    "zh": "Chinese",
    "ja": "Japanese",
    "ko": "Korean",
    "ar": "Arabic",
    "hi": "Hindi",
    "tr": "Turkish",
    "pl": "Polish",
    "nl": "Dutch",
}

# First matching subject wins, in this order
SUBJECT_KEYWORDS: Dict[str, tuple] = {
    "math": ("math", "mathematics", "algebra", "calculus", "equation", "solve", "formula",
             "geometry", "trigonometry"),
    "science": ("science", "physics", "chemistry", "biology", "molecule", "atom", "reaction",
                "experiment"),
    "history": ("history", "historical", "event", "war", "civilization", "ancient", "medieval",
                "renaissance"),
    "english": ("english", "literature", "grammar", "essay", "writing", "poem", "novel", "author"),
    "geography": ("geography", "country", "continent", "map", "climate", "population"),
    "computer": ("computer", "programming", "code", "algorithm", "software", "python",
                 "javascript"),
}

BASE_SYSTEM_PROMPT = """You are StudyCare AI, a friendly study assistant that helps students learn.

Keep answers clear, concise and well organized. Separate ideas into short
paragraphs, use bullet points (•) or numbered lists for steps, use **bold**
for key terms, and avoid repetition."""


def language_name(code: str) -> str:
    return LANGUAGE_NAMES.get(code, code)


def build_system_prompt(options: Optional[ChatOptions] = None) -> str:
    """Tutoring system prompt specialised by subject, style, level and language."""
    options = options or ChatOptions()
    parts = [BASE_SYSTEM_PROMPT]

    if options.subject:
        parts.append(f"CURRENT SUBJECT: {options.subject}")
    if options.step_by_step:
        parts.append(
            "EXPLANATION STYLE: Give clear step-by-step explanations and number each step."
        )
    if options.simplified_mode:
        parts.append(
            "LANGUAGE LEVEL: Use simple words suitable for younger students. Avoid jargon."
        )
    if options.language and options.language != "en":
        parts.append(f"LANGUAGE: Respond in {language_name(options.language)}.")

    parts.append(
        "TONE: Be encouraging, patient and supportive. Help the student understand, "
        "do not just hand over answers."
    )
    return "\n\n".join(parts)


def clean_response(text: str) -> str:
    """
    Normalize model output for display.

    - at most one blank line between paragraphs
    - no leading/trailing spaces on lines
    - '-', '*' and '•' bullets rendered as '• '
    - '1.   item' rendered as '1. item'
    """
    cleaned = text.strip()
    cleaned = re.sub(r"\n{3,}", "\n\n", cleaned)
    cleaned = "\n".join(line.strip() for line in cleaned.split("\n"))
    cleaned = re.sub(r"\n[•\-\*]\s*", "\n• ", cleaned)
    cleaned = re.sub(r"\n(\d+)\.\s*", r"\n\1. ", cleaned)
    return cleaned.strip()


def strip_code_fence(text: str) -> str:
    text = text.strip()
    fenced = re.match(r"^```(?:json)?\s*\n?(.*?)\n?```$", text, re.DOTALL)
    return fenced.group(1).strip() if fenced else text


def parse_json_response(text: str, what: str = "AI response") -> Dict[str, Any]:
    """
    Decode a JSON object the model was asked to return.

    Raises:
        LLMServiceError if the reply is not a JSON object.
    """
    try:
        data = json.loads(strip_code_fence(text))
    except json.JSONDecodeError as e:
        raise LLMServiceError(
            message=f"Failed to parse {what}",
            context={"error": str(e)},
        ) from e
    if not isinstance(data, dict):
        raise LLMServiceError(message=f"Failed to parse {what}", context={"type": type(data).__name__})
    return data


_MARKDOWN_PATTERNS = (
    (re.compile(r"#{1,6}\s+"), ""),
    (re.compile(r"\[([^\]]+)\]\([^)]+\)"), r"\1"),
    (re.compile(r"`([^`]+)`"), r"\1"),
    (re.compile(r"\*\*"), ""),
    (re.compile(r"\*"), ""),
    (re.compile(r"_{1,2}([^_]+)_{1,2}"), r"\1"),
)


def normalize_numbered_list(text: Optional[str]) -> str:
    """
    Strip markdown and renumber every non-empty line as "N. text".

    >>> normalize_numbered_list("- **Rest**\\n- Drink water")
    '1. Rest\\n2. Drink water'
    """
    if not text:
        return text or ""

    cleaned = text
    for pattern, replacement in _MARKDOWN_PATTERNS:
        cleaned = pattern.sub(replacement, cleaned)
    cleaned = re.sub(r"\n{3,}", "\n\n", cleaned).strip()

    lines = []
    for raw_line in cleaned.split("\n"):
        line = raw_line.strip()
        if not line:
            continue
        numbered = re.match(r"^\d+\.\s*(.+)$", line)
        if numbered:
            line = numbered.group(1)
        else:
            line = re.sub(r"^[-•]\s*", "", line)
        line = line.strip()
        if line:
            lines.append(f"{len(lines) + 1}. {line}")

    return "\n".join(lines) if lines else cleaned


def detect_subject(message: str) -> Optional[str]:
    """Keyword match against SUBJECT_KEYWORDS (substring, case-insensitive)."""
    lowered = message.lower()
    for subject, keywords in SUBJECT_KEYWORDS.items():
        if any(keyword in lowered for keyword in keywords):
            return subject
    return None


def first_paragraph(text: str) -> str:
    """Everything before the first blank line (the OCR excerpt of an image analysis)."""
    return text.split("\n\n", 1)[0].strip()
