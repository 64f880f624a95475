"""Tests for the Gemini completion service (no real API calls)."""

import pytest

from organizer.audit import AuditLogger
from organizer.config import GeminiSettings
from organizer.models.audit import AuditEventType
from organizer.services.ai import (
    AIResponseFormatError,
    AIServiceError,
    GeminiCompletionService,
    extract_json,
    is_transient_error,
)

from tests.conftest import FakeModel


@pytest.fixture
def settings():
    return GeminiSettings(api_key="test", max_attempts=2, retry_delay_seconds=0)


def make_service(settings, responses, audit=None):
    model = FakeModel(responses)
    return GeminiCompletionService(settings=settings, model=model, audit=audit), model


class TestExtractJson:

    def test_plain_json(self):
        assert extract_json('[{"a": 1}]') == [{"a": 1}]

    def test_fenced_block(self):
        text = 'Here you go:\n```json\n{"name": "Tasca"}\n```\nEnjoy!'
        assert extract_json(text) == {"name": "Tasca"}

    def test_json_embedded_in_prose(self):
        text = 'Sure! [{"restaurant_name": "Bar do Zé"}] hope it helps'
        assert extract_json(text) == [{"restaurant_name": "Bar do Zé"}]

    def test_skips_broken_candidates(self):
        text = 'maybe {not json} but then {"ok": true}'
        assert extract_json(text) == {"ok": True}

    def test_no_json_raises_with_text(self):
        with pytest.raises(AIResponseFormatError) as exc:
            extract_json("I could not find anything, sorry.")
        assert exc.value.response_text == "I could not find anything, sorry."

    def test_empty_raises(self):
        with pytest.raises(AIResponseFormatError):
            extract_json("   ")


class TestTransientErrors:

    def test_server_errors_are_transient(self):
        assert is_transient_error(Exception("500 Internal error"))
        assert is_transient_error(Exception("INTERNAL: try again"))

    def test_client_errors_are_not(self):
        assert not is_transient_error(Exception("400 invalid argument"))


class TestGeminiCompletionService:

    async def test_json_completion(self, settings):
        service, model = make_service(settings, ['{"items": [1, 2]}'])
        assert await service.complete_json("prompt", "test") == {"items": [1, 2]}
        assert model.calls[0]["generation_config"]["response_mime_type"] == "application/json"
        assert model.calls[0]["tools"] is None

    async def test_search_grounding_drops_json_mime_type(self, settings):
        service, model = make_service(settings, ['[]'])
        await service.complete_json("prompt", "test", use_search=True)
        call = model.calls[0]
        assert call["tools"] == "google_search_retrieval"
        assert "response_mime_type" not in call["generation_config"]

    async def test_transient_failure_is_retried_once(self, settings):
        audit = AuditLogger()
        service, model = make_service(
            settings, [Exception("500 Internal Server Error"), "hello"], audit,
        )
        assert await service.complete_text("prompt", "test") == "hello"
        assert len(model.calls) == 2
        assert len(audit.events_of(AuditEventType.AI_CALL_RETRIED)) == 1

    async def test_transient_failure_gives_up_after_max_attempts(self, settings):
        audit = AuditLogger()
        service, model = make_service(
            settings, [Exception("500 boom"), Exception("500 boom again")], audit,
        )
        with pytest.raises(AIServiceError):
            await service.complete_text("prompt", "test")
        assert len(model.calls) == 2
        assert audit.events_of(AuditEventType.AI_CALL_FAILED)

    async def test_other_failures_are_not_retried(self, settings):
        service, model = make_service(settings, [Exception("403 permission denied"), "unused"])
        with pytest.raises(AIServiceError):
            await service.complete_text("prompt", "test")
        assert len(model.calls) == 1

    async def test_unparseable_response_is_reported(self, settings):
        audit = AuditLogger()
        service, _ = make_service(settings, ["no json here"], audit)
        with pytest.raises(AIResponseFormatError):
            await service.complete_json("prompt", "test")
        assert audit.events_of(AuditEventType.AI_CALL_FAILED)

    async def test_empty_response_is_an_error(self, settings):
        service, _ = make_service(settings, ["   "])
        with pytest.raises(AIServiceError):
            await service.complete_text("prompt", "test")
