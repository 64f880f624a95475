"""Generative completion (Gemini) package."""

from organizer.services.ai.gemini_service import (
    AIResponseFormatError,
    AIServiceError,
    CompletionService,
    GeminiCompletionService,
    extract_json,
    is_transient_error,
)

__all__ = [
    "AIResponseFormatError",
    "AIServiceError",
    "CompletionService",
    "GeminiCompletionService",
    "extract_json",
    "is_transient_error",
]
