"""
StudyCare Backend — Google Gemini Service Implementation
==========================================================

What:  Concrete LLMService backed by Google Gemini: tutoring chat completion,
       image analysis (OCR + explanation) and audio transcription.
How:   Every call goes through the same pipeline:
           circuit breaker check → tenacity retry → Gemini → record outcome
       and returns plain text.
Who:   Chat, notes, image, voice, symptom and pod services (injected through
       their constructors; this module's singleton is the default).

Resilience Strategy:
    1. Tenacity retry with exponential backoff + jitter for transient failures
    2. Circuit breaker so a Gemini outage fails requests instantly
    3. Per-request timeout passed to the SDK
    4. One log line per call with latency and output size

Chat history mapping:
    ChatTurn('user')      → {"role": "user",  "parts": [...]}
    ChatTurn('assistant') → {"role": "model", "parts": [...]}
    ChatTurn('system')    → appended to the system instruction
"""

import logging
import time
import uuid
from typing import Any, Dict, List, Optional

import google.generativeai as genai
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential_jitter,
    retry_if_exception_type,
    before_sleep_log,
    RetryError,
)

from studycare.config import settings
from studycare.exceptions import CircuitBreakerOpenError, LLMServiceError
from studycare.services.circuit_breaker import CircuitBreaker
from studycare.services.llm_base import ChatOptions, ChatTurn, LLMService
from studycare.services.prompts import build_system_prompt, clean_response

logger = logging.getLogger(__name__)


IMAGE_ANALYSIS_PROMPT = """Analyze this image and explain it clearly.

Start with one paragraph listing ALL visible text, equations, numbers and
symbols (including handwriting), then a blank line, then:
- Analysis: what the image contains
- Details: solve math step by step, explain diagrams and their parts,
  or summarize text content
- Key Points: 3-5 takeaways"""

TRANSCRIPTION_PROMPT = (
    "Transcribe this audio exactly as spoken. Return only the transcript text, "
    "without timestamps, speaker labels or commentary."
)


class GeminiService(LLMService):
    """
    Error Handling Chain:
        API call fails → tenacity retries (N attempts with backoff)
        → All retries fail → record circuit breaker failure → LLMServiceError
        → Threshold reached → future calls rejected instantly (503)
        → Recovery timeout → HALF_OPEN test call
    """

    def __init__(self):
        if settings.gemini_api_key:
            genai.configure(api_key=settings.gemini_api_key)

        self.model_name = settings.gemini_model
        self.generation_config = {
            "temperature": settings.chat_temperature,
            "max_output_tokens": settings.chat_max_output_tokens,
        }
        self.circuit_breaker = CircuitBreaker(
            name="gemini",
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        )

        logger.info(
            "GeminiService initialized with model=%s, "
            "circuit_breaker(threshold=%d, recovery=%ds)",
            self.model_name,
            settings.cb_failure_threshold,
            settings.cb_recovery_timeout,
        )

    def _build_model(self, system_instruction: Optional[str] = None):
        return genai.GenerativeModel(
            self.model_name,
            system_instruction=system_instruction,
            generation_config=self.generation_config,
        )

    # ══════════════════════════════════════════════════════════════════════
    # Public API
    # ══════════════════════════════════════════════════════════════════════

    async def chat_completion(
        self, messages: List[ChatTurn], options: Optional[ChatOptions] = None
    ) -> str:
        system_parts = [build_system_prompt(options)]
        contents: List[Dict[str, Any]] = []
        for turn in messages:
            if turn.role == "system":
                system_parts.append(turn.content)
            else:
                role = "model" if turn.role == "assistant" else "user"
                contents.append({"role": role, "parts": [turn.content]})

        if not contents:
            raise LLMServiceError(message="Cannot generate a reply without a user message")

        text = await self._generate(
            operation="chat",
            contents=contents,
            system_instruction="\n\n".join(system_parts),
        )
        return clean_response(text) if text else "No response generated"

    async def analyze_image(
        self,
        image: bytes,
        mime_type: str,
        question: Optional[str] = None,
        options: Optional[ChatOptions] = None,
    ) -> str:
        prompt = IMAGE_ANALYSIS_PROMPT
        if question:
            prompt += f"\n\nThe student asks about this image: {question}\nAnswer that question as well."
        text = await self._generate(
            operation="vision",
            contents=[prompt, {"mime_type": mime_type, "data": image}],
            system_instruction=build_system_prompt(options) if options else None,
        )
        return text or "No analysis generated"

    async def transcribe_audio(self, audio: bytes, mime_type: str) -> str:
        return await self._generate(
            operation="transcription",
            contents=[TRANSCRIPTION_PROMPT, {"mime_type": mime_type, "data": audio}],
        )

    async def health_check(self) -> bool:
        """Lists models (no token cost) to verify key validity and connectivity."""
        try:
            model_names = [m.name for m in genai.list_models()]
            target = f"models/{self.model_name}"
            if target not in model_names:
                logger.warning("Configured model %s not found in available models", target)
            return True
        except Exception as e:
            logger.warning("Gemini health check failed: %s", str(e))
            return False

    # ══════════════════════════════════════════════════════════════════════
    # Call pipeline
    # ══════════════════════════════════════════════════════════════════════

    async def _generate(
        self,
        operation: str,
        contents: Any,
        system_instruction: Optional[str] = None,
    ) -> str:
        call_id = uuid.uuid4().hex[:8]

        self.circuit_breaker.can_execute()

        try:
            result = await self._call_gemini_with_retry(
                operation, contents, system_instruction, call_id
            )
            self.circuit_breaker.record_success()
            return result

        except CircuitBreakerOpenError:
            raise
        except RetryError as e:
            self.circuit_breaker.record_failure()
            logger.error(
                "[%s] All Gemini %s retries exhausted: %s",
                call_id,
                operation,
                str(e.last_attempt.exception()) if e.last_attempt else "Unknown error",
            )
            raise LLMServiceError(
                message="AI service failed after multiple attempts. Please try again later.",
                retry_after=self.circuit_breaker.recovery_timeout,
                context={"call_id": call_id, "operation": operation},
            )
        except Exception as e:
            self.circuit_breaker.record_failure()
            logger.error(
                "[%s] Gemini %s error: %s", call_id, operation, str(e), exc_info=True
            )
            raise LLMServiceError(
                message=f"AI service error: {type(e).__name__}",
                context={"call_id": call_id, "operation": operation, "error": str(e)},
            )

    @retry(
        retry=retry_if_exception_type(Exception),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential_jitter(
            initial=settings.retry_min_wait,
            max=settings.retry_max_wait,
            jitter=1,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _call_gemini_with_retry(
        self,
        operation: str,
        contents: Any,
        system_instruction: Optional[str],
        call_id: str,
    ) -> str:
        """
        The retried unit: a single generate_content_async call.

        Kept separate from _generate so circuit breaker bookkeeping happens
        once per logical call, not once per attempt.
        """
        start_time = time.time()
        try:
            model = self._build_model(system_instruction)
            response = await model.generate_content_async(
                contents,
                request_options={"timeout": settings.ai_request_timeout},
            )
            text = response.text.strip() if response.text else ""
            logger.info(
                "[%s] Gemini %s completed in %.0fms, %d chars",
                call_id,
                operation,
                (time.time() - start_time) * 1000,
                len(text),
            )
            return text
        except Exception as e:
            logger.warning(
                "[%s] Gemini %s call failed after %.0fms: %s",
                call_id,
                operation,
                (time.time() - start_time) * 1000,
                str(e),
            )
            raise


# Shared so the circuit breaker state is process-wide
gemini_service = GeminiService()
