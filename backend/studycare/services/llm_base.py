"""
StudyCare Backend — Abstract AI Service Interfaces
====================================================

What:  Contracts for the AI completion gateway: chat completion, vision,
       transcription (LLMService) and text-to-speech (SpeechService).
Why:   Domain services depend on these abstractions, so providers can be
       swapped and tests can pass in fakes through service constructors.
How:   Concrete implementations (GeminiService, OpenAISpeechService) handle
       their own retries and translate provider errors into LLMServiceError.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional


@dataclass
class ChatTurn:
    """One message in a conversation. role is 'system', 'user' or 'assistant'."""

    role: str
    content: str


@dataclass
class ChatOptions:
    """
    Per-call tutoring preferences that shape the system prompt.

    language:        ISO 639-1 code of the reply language
    simplified_mode: use short sentences and simple vocabulary
    step_by_step:    break explanations into numbered steps
    subject:         detected or chosen subject (math, science, ...)
    """

    language: str = "en"
    simplified_mode: bool = False
    step_by_step: bool = False
    subject: Optional[str] = None


class LLMService(ABC):
    """
    Contract:
        - Every method returns plain text (never None; "" when nothing usable)
        - Provider failures after retries raise LLMServiceError
        - An open circuit raises CircuitBreakerOpenError immediately
    """

    @abstractmethod
    async def chat_completion(
        self, messages: List[ChatTurn], options: Optional[ChatOptions] = None
    ) -> str:
        """
        Generate the next assistant turn for `messages`.

        'system' turns are appended to the generated tutoring system prompt,
        so feature services can add task-specific instructions (JSON output,
        safety rules) without losing language/simplified-mode handling.
        """
        ...

    @abstractmethod
    async def analyze_image(
        self,
        image: bytes,
        mime_type: str,
        question: Optional[str] = None,
        options: Optional[ChatOptions] = None,
    ) -> str:
        """Extract text from an image and explain it, optionally answering `question`."""
        ...

    @abstractmethod
    async def transcribe_audio(self, audio: bytes, mime_type: str) -> str:
        """Speech-to-text. Returns the transcript only."""
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Lightweight reachability check (no token cost)."""
        ...


class SpeechService(ABC):
    """Text-to-speech contract."""

    @abstractmethod
    async def synthesize(self, text: str, language: str = "en") -> bytes:
        """Render `text` as audio (MP3 bytes) in a voice suited to `language`."""
        ...
