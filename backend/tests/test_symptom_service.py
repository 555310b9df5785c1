"""
StudyCare Backend — Symptom Service Tests
===========================================

What we test:
    ✅ System prompt plus user turn, JSON reply normalized to numbered lines
    ✅ Unknown severity falls back to mild; missing disclaimer gets the default
    ✅ Each check is stored as a symptom session and shows up in history
    ✅ AI and parse failures become "Failed to generate symptom guidance"
"""

import json

import pytest

from studycare.exceptions import LLMServiceError
from studycare.schemas.symptom import SymptomCheckRequest
from studycare.services.symptom_service import DEFAULT_DISCLAIMER, SYMPTOM_SYSTEM_PROMPT, SymptomService


@pytest.fixture
def service(fake_llm):
    return SymptomService(llm=fake_llm)


def _reply(**overrides):
    data = {
        "guidance": "- **Rest** well\n- Drink water",
        "educationalInfo": "1. Headaches are common",
        "whenToSeekHelp": "If it lasts more than 3 days",
        "severityLevel": "Moderate",
        "disclaimer": "Not medical advice.",
    }
    data.update(overrides)
    return "```json\n" + json.dumps(data) + "\n```"


class TestSymptomCheck:

    @pytest.mark.asyncio
    async def test_guidance_is_normalized(self, service, db_session, make_user, fake_llm):
        user = await make_user("kid@example.com")
        fake_llm.reply = _reply()

        guidance = await service.check(
            db_session, user, SymptomCheckRequest(symptoms="  headache ", additionalInfo="since Monday")
        )

        assert guidance.guidance == "1. Rest well\n2. Drink water"
        assert guidance.educational_info == "1. Headaches are common"
        assert guidance.when_to_seek_help == "1. If it lasts more than 3 days"
        assert guidance.severity_level == "moderate"
        assert guidance.model_dump(by_alias=True)["whenToSeekHelp"].startswith("1.")

        turns = fake_llm.calls[0]["messages"]
        assert turns[0].role == "system" and turns[0].content == SYMPTOM_SYSTEM_PROMPT
        assert "User reported symptoms: headache" in turns[1].content
        assert "Additional information: since Monday" in turns[1].content
        assert fake_llm.calls[0]["options"].step_by_step is False

    @pytest.mark.asyncio
    async def test_invalid_severity_and_missing_disclaimer(self, service, db_session, make_user, fake_llm):
        user = await make_user("kid@example.com")
        fake_llm.reply = _reply(severityLevel="catastrophic", disclaimer=None)

        guidance = await service.check(db_session, user, SymptomCheckRequest(symptoms="cough"))

        assert guidance.severity_level == "mild"
        assert guidance.disclaimer.endswith(DEFAULT_DISCLAIMER)

    @pytest.mark.asyncio
    async def test_unparseable_reply(self, service, db_session, make_user, fake_llm):
        user = await make_user("kid@example.com")
        fake_llm.reply = "You should rest."

        with pytest.raises(LLMServiceError) as exc_info:
            await service.check(db_session, user, SymptomCheckRequest(symptoms="cough"))
        assert exc_info.value.message == "Failed to generate symptom guidance: Failed to parse symptom guidance"

    @pytest.mark.asyncio
    async def test_llm_failure(self, service, db_session, make_user, fake_llm, llm_failure):
        user = await make_user("kid@example.com")
        fake_llm.error = llm_failure

        with pytest.raises(LLMServiceError) as exc_info:
            await service.check(db_session, user, SymptomCheckRequest(symptoms="cough"))
        assert exc_info.value.message.startswith("Failed to generate symptom guidance")

    def test_blank_symptoms_are_rejected(self):
        with pytest.raises(ValueError):
            SymptomCheckRequest(symptoms="   ")


class TestSymptomHistory:

    @pytest.mark.asyncio
    async def test_history_pairs_checks_newest_first(self, service, db_session, make_user, fake_llm):
        user = await make_user("kid@example.com")
        other = await make_user("other@example.com")
        fake_llm.replies = [_reply(severityLevel="mild"), _reply(severityLevel="severe")]

        await service.check(db_session, user, SymptomCheckRequest(symptoms="cough"))
        await service.check(db_session, user, SymptomCheckRequest(symptoms="fever"))

        history = await service.history(db_session, user.id)

        assert [entry.symptoms for entry in history] == ["fever", "cough"]
        assert [entry.severity_level for entry in history] == ["severe", "mild"]
        assert history[0].guidance == "1. Rest well\n2. Drink water"
        assert await service.history(db_session, other.id) == []
