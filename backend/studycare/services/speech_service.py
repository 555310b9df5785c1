"""
StudyCare Backend — Text-to-Speech Service
============================================

What:  SpeechService implementation on OpenAI's speech endpoint.
Why:   Gemini has no speech synthesis in the SDK used here; the voice
       feature needs spoken replies.
How:   `AsyncOpenAI().audio.speech.create(model, voice, input)` with a voice
       picked per language, wrapped in its own circuit breaker (an OpenAI
       outage must not trip the Gemini breaker, and vice versa).
"""

import logging
from typing import Dict, Optional

from openai import AsyncOpenAI

from studycare.config import settings
from studycare.exceptions import LLMServiceError
from studycare.services.circuit_breaker import CircuitBreaker
from studycare.services.llm_base import SpeechService

logger = logging.getLogger(__name__)

VOICE_BY_LANGUAGE: Dict[str, str] = {
    "en": "alloy",
    "es": "nova",
    "fr": "echo",
    "de": "onyx",
    "it": "fable",
    "pt": "shimmer",
}
DEFAULT_VOICE = "alloy"

# OpenAI rejects longer inputs
MAX_TTS_CHARS = 4096


def voice_for(language: str) -> str:
    return VOICE_BY_LANGUAGE.get(language, DEFAULT_VOICE)


class OpenAISpeechService(SpeechService):

    def __init__(self, client: Optional[AsyncOpenAI] = None):
        self._client = client
        self.circuit_breaker = CircuitBreaker(
            name="openai-tts",
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        )

    @property
    def client(self) -> AsyncOpenAI:
        # Created on first use so importing the app never needs an API key
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=settings.openai_api_key,
                timeout=settings.ai_request_timeout,
                max_retries=settings.retry_max_attempts - 1,
            )
        return self._client

    async def synthesize(self, text: str, language: str = "en") -> bytes:
        self.circuit_breaker.can_execute()

        voice = voice_for(language)
        try:
            response = await self.client.audio.speech.create(
                model=settings.tts_model,
                voice=voice,
                input=text[:MAX_TTS_CHARS],
            )
            audio = response.content
        except Exception as e:
            self.circuit_breaker.record_failure()
            logger.error("Text-to-speech failed (voice=%s): %s", voice, str(e))
            raise LLMServiceError(
                message="Failed to synthesize speech",
                context={"voice": voice, "error_type": type(e).__name__},
            )

        self.circuit_breaker.record_success()
        logger.info("Synthesized %d chars into %d bytes (voice=%s)", len(text), len(audio), voice)
        return audio


speech_service = OpenAISpeechService()
