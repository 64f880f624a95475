"""
Gemini Completion Service

DESIGN DECISION: Every AI feature goes through one service that owns
the three things all of them need:
1. Transient-failure retry (fixed attempts, fixed delay)
2. Tolerant JSON extraction (the model does not always honor "JSON only")
3. Audit of retried and failed calls

Only server-side failures (message mentions 500 / internal) are retried.
Everything else, including a response we cannot parse, surfaces
immediately with a message the user can read.

A completion call is a leaf: it changes nothing remotely, and its result
only feeds a form or local state.
"""

import json
import re
from abc import ABC, abstractmethod
from typing import Any, Optional

import google.generativeai as genai
import structlog
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt, wait_fixed

from organizer.audit.logger import AuditLogger
from organizer.config import GeminiSettings, get_settings
from organizer.models.audit import AuditEventBuilder


logger = structlog.get_logger(__name__)

FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)

SEARCH_TOOL = "google_search_retrieval"


def is_transient_error(exc: BaseException) -> bool:
    """Server-side hiccups worth one more try."""
    message = str(exc)
    return "500" in message or "internal" in message.lower()


def extract_json(text: Optional[str]) -> Any:
    """
    Pull the first well-formed JSON value out of a model response.

    Tries fenced ```json blocks first, then the first decodable object or
    array anywhere in the text.

    Raises:
        AIResponseFormatError: nothing in the text parses as JSON
    """
    if not text or not text.strip():
        raise AIResponseFormatError("The AI returned an empty response.", text or "")

    for match in FENCED_BLOCK.finditer(text):
        try:
            return json.loads(match.group(1))
        except ValueError:
            continue

    decoder = json.JSONDecoder()
    for index, char in enumerate(text):
        if char not in "{[":
            continue
        try:
            value, _ = decoder.raw_decode(text, index)
        except ValueError:
            continue
        return value

    raise AIResponseFormatError(
        f"The AI response was not valid JSON: {text[:200]}",
        text,
    )


class CompletionService(ABC):
    """Abstract generative completion gateway."""

    @abstractmethod
    async def complete_text(
        self,
        prompt: str,
        feature: str,
        temperature: Optional[float] = None,
    ) -> str:
        """
        Free-text completion.

        Raises:
            AIServiceError: call failed after retries
        """
        pass

    @abstractmethod
    async def complete_json(
        self,
        prompt: str,
        feature: str,
        response_schema: Optional[dict] = None,
        use_search: bool = False,
        temperature: Optional[float] = None,
    ) -> Any:
        """
        JSON completion, extracted from whatever text surrounds it.

        Raises:
            AIServiceError: call failed after retries
            AIResponseFormatError: response had no JSON in it
        """
        pass


class GeminiCompletionService(CompletionService):
    """Gemini through google-generativeai."""

    def __init__(
        self,
        settings: Optional[GeminiSettings] = None,
        model: Any = None,
        audit: Optional[AuditLogger] = None,
    ):
        self._settings = settings or get_settings().gemini
        self._audit = audit
        self._model = model or self._configure_genai()

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        return genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
            }
        )

    async def complete_text(
        self,
        prompt: str,
        feature: str,
        temperature: Optional[float] = None,
    ) -> str:
        config = self._generation_config(temperature)
        return await self._generate(prompt, feature, config)

    async def complete_json(
        self,
        prompt: str,
        feature: str,
        response_schema: Optional[dict] = None,
        use_search: bool = False,
        temperature: Optional[float] = None,
    ) -> Any:
        config = self._generation_config(temperature)
        tools = None
        if use_search:
            # Search grounding cannot be combined with a JSON mime type
            tools = SEARCH_TOOL
        else:
            config["response_mime_type"] = "application/json"
            if response_schema:
                config["response_schema"] = response_schema

        text = await self._generate(prompt, feature, config, tools)
        try:
            return extract_json(text)
        except AIResponseFormatError as e:
            logger.warning("ai_response_unparseable", feature=feature, preview=text[:200])
            if self._audit:
                await self._audit.log(AuditEventBuilder.ai_call_failed(feature, str(e)))
            raise

    def _generation_config(self, temperature: Optional[float]) -> dict[str, Any]:
        return {
            "temperature": self._settings.temperature if temperature is None else temperature,
            "max_output_tokens": self._settings.max_tokens,
        }

    async def _generate(
        self,
        prompt: str,
        feature: str,
        config: dict[str, Any],
        tools: Any = None,
    ) -> str:
        retried: list[tuple[int, str]] = []

        def note_retry(state: RetryCallState) -> None:
            error = state.outcome.exception() if state.outcome else None
            retried.append((state.attempt_number, str(error)))
            logger.warning(
                "ai_call_retrying",
                feature=feature,
                attempt=state.attempt_number,
                error=str(error),
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._settings.max_attempts),
            wait=wait_fixed(self._settings.retry_delay_seconds),
            retry=retry_if_exception(is_transient_error),
            before_sleep=note_retry,
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    response = await self._model.generate_content_async(
                        prompt,
                        generation_config=config,
                        tools=tools,
                    )
                    text = self._response_text(response)
        except AIServiceError as e:
            await self._record(feature, retried, str(e))
            raise
        except Exception as e:
            await self._record(feature, retried, str(e))
            raise AIServiceError(f"AI request failed: {e}") from e

        await self._record(feature, retried, None)
        return text

    @staticmethod
    def _response_text(response: Any) -> str:
        try:
            text = response.text
        except ValueError as e:
            # Blocked or empty candidates
            raise AIServiceError(f"The AI returned no usable text: {e}") from e
        if not text or not text.strip():
            raise AIServiceError("The AI returned an empty response.")
        return text.strip()

    async def _record(self, feature: str, retried: list[tuple[int, str]], error: Optional[str]) -> None:
        if not self._audit:
            return
        for attempt, message in retried:
            await self._audit.log(AuditEventBuilder.ai_call_retried(feature, attempt, message))
        if error is not None:
            await self._audit.log(AuditEventBuilder.ai_call_failed(feature, error))


class AIServiceError(Exception):
    """Base exception for AI gateway calls."""
    pass


class AIResponseFormatError(AIServiceError):
    """The response did not contain parseable JSON."""

    def __init__(self, message: str, response_text: str = ""):
        self.response_text = response_text
        super().__init__(message)
