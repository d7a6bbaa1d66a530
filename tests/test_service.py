"""SurveySessionService tests with a mocked DB layer.

Drives the bundled survey (surveys/default.yaml) end to end through the
stateless service: every call restores the engine from the session row,
runs one operation and stores the snapshot again.

Test scenarios:
  - Full walkthrough: eligibility, consent routing, skip-to, pre-script skip
  - Rejection: ineligible respondent ends the session after acknowledgement
  - Validation and multi-select errors surface without moving
  - Lifecycle guards: duplicates, unknown sessions, unsupported languages,
    mutations on terminal sessions
"""

from unittest.mock import AsyncMock

import pytest

from survey_db.models.enums import SessionStatus
from survey_flow.models import (
    Answer,
    CompletedStep,
    IneligibleStep,
    PendingRouting,
    QuestionStep,
    RoutingStep,
)
from survey_flow.definition import SurveyDefinitionStore
from survey_flow.service import SurveySessionService, answer_from_json, answer_to_json

from helpers.db import MockRepository

SUBJECT = "subject1"
SESSION = "sess1"


# =====================================================================
# Fixtures
# =====================================================================


@pytest.fixture
def mock_repo():
    """Fresh MockRepository for each test."""
    return MockRepository()


@pytest.fixture
def mock_db():
    """AsyncMock standing in for AsyncSession; flush/commit are no-ops."""
    return AsyncMock()


@pytest.fixture
def service(definition, mock_repo):
    svc = SurveySessionService(definition)
    svc._repo = mock_repo
    return svc


class _Session:
    """Binds subject/session ids so test bodies stay short."""

    def __init__(self, service, db, subject_id=SUBJECT, session_id=SESSION):
        self._service = service
        self._kw = {"subject_id": subject_id, "session_id": session_id}
        self._db = db

    async def create(self, language="en"):
        return await self._service.create_session(self._db, language=language, **self._kw)

    async def step(self):
        return await self._service.get_step(self._db, **self._kw)

    async def answer(self, value):
        return await self._service.record_answer(self._db, value=value, **self._kw)

    async def advance(self):
        return await self._service.advance(self._db, **self._kw)

    async def retreat(self):
        return await self._service.retreat(self._db, **self._kw)

    async def jump(self, target):
        return await self._service.jump(self._db, target=target, **self._kw)

    async def ack(self):
        return await self._service.acknowledge_routing(self._db, **self._kw)

    async def answer_and_advance(self, value):
        await self.answer(value)
        return await self.advance()


@pytest.fixture
def session(service, mock_db):
    return _Session(service, mock_db)


async def _through_eligibility(session, age=30, lives_in_area=1):
    await session.create()
    await session.answer_and_advance(age)
    return await session.answer_and_advance(lives_in_area)


# =====================================================================
# Walkthrough
# =====================================================================


class TestWalkthrough:

    @pytest.mark.asyncio
    async def test_create_exposes_first_question(self, session, mock_repo):
        info = await session.create()
        assert info.status == "created"
        assert info.current_index == 0, "A new session starts on its first question"

        step = await session.step()
        assert isinstance(step, QuestionStep)
        assert step.index == 0
        assert step.total == 7
        assert step.view.question.short_name == "age"
        assert step.has_previous is False

        row = mock_repo._sessions[(SUBJECT, SESSION)]
        assert row.current_section == 1
        assert row.survey_version == "1.0"

    @pytest.mark.asyncio
    async def test_full_eligible_path(self, session, mock_repo):
        step = await _through_eligibility(session)
        assert isinstance(step, RoutingStep), f"Expected routing, got {step}"
        assert step.eligible is True
        assert step.pending_routing is PendingRouting.CONSENT

        step = await session.ack()
        assert isinstance(step, QuestionStep)
        assert step.view.question.short_name == "hiv_tested"

        step = await session.answer_and_advance(0)
        assert step.view.question.short_name == "symptoms", "Skip-to jumps past the follow-up"
        assert step.index == 4

        await session.answer([1, 2])
        step = await session.advance()
        assert step.view.question.short_name == "comments", (
            "other_symptom is skipped when 'Other' is not selected"
        )
        assert step.index == 6

        step = await session.advance()
        assert isinstance(step, CompletedStep)
        assert step.total == 7

        row = mock_repo._sessions[(SUBJECT, SESSION)]
        assert row.status == SessionStatus.COMPLETED.value
        assert row.completed_at is not None
        assert row.history == [0, 1, 2, 4, 6]
        assert row.eligible is True
        assert set(row.answers) == {"1", "2", "3", "5"}
        assert row.answers["5"]["multi_select_indices"] == "1,2"

    @pytest.mark.asyncio
    async def test_other_symptom_shown_when_selected(self, session):
        await _through_eligibility(session)
        await session.ack()
        await session.answer_and_advance(1)
        step = await session.answer_and_advance(6)
        assert step.view.question.short_name == "symptoms"
        await session.answer(4)
        step = await session.advance()
        assert step.view.question.short_name == "other_symptom"

        step = await session.answer_and_advance("")
        assert step.error == "Invalid Answer", "An empty description fails validation"
        assert step.view.question.short_name == "other_symptom"
        step = await session.answer_and_advance("Headache")
        assert step.view.question.short_name == "comments"

    @pytest.mark.asyncio
    async def test_answers_persist_between_calls(self, session, mock_repo):
        await session.create()
        await session.answer(42)
        row = mock_repo._sessions[(SUBJECT, SESSION)]
        assert row.status == SessionStatus.IN_PROGRESS.value
        assert row.answers["1"]["numeric_value"] == 42.0

        step = await session.step()
        assert step.view.answer.numeric_value == 42.0
        assert step.view.answer.text == "42"

    @pytest.mark.asyncio
    async def test_thai_session(self, session):
        await session.create(language="th")
        step = await session.step()
        assert step.view.question.text == "คุณอายุกี่ปี"
        await session.answer_and_advance(25)
        step = await session.step()
        assert [o.text for o in step.view.options] == ["ไม่ใช่", "ใช่"]


# =====================================================================
# Eligibility rejection
# =====================================================================


class TestRejection:

    @pytest.mark.asyncio
    async def test_underage_respondent_is_rejected(self, session, mock_repo):
        step = await _through_eligibility(session, age=16)
        assert isinstance(step, RoutingStep)
        assert step.eligible is False
        assert step.pending_routing is PendingRouting.REJECTION

        # Retreat is blocked while the decision is pending
        step = await session.retreat()
        assert isinstance(step, RoutingStep)

        step = await session.ack()
        assert isinstance(step, IneligibleStep)
        row = mock_repo._sessions[(SUBJECT, SESSION)]
        assert row.status == SessionStatus.INELIGIBLE.value
        assert row.eligible is False
        assert row.pending_routing == []

        assert isinstance(await session.step(), IneligibleStep)
        with pytest.raises(ValueError, match="open session"):
            await session.advance()

    @pytest.mark.asyncio
    async def test_outside_area_is_rejected(self, session):
        step = await _through_eligibility(session, age=40, lives_in_area=0)
        assert step.eligible is False

    @pytest.mark.asyncio
    async def test_advance_acknowledges_rejection(self, session, mock_repo):
        await _through_eligibility(session, age=16)
        step = await session.advance()
        assert isinstance(step, IneligibleStep), "Advancing past the rejection screen ends the session"
        row = mock_repo._sessions[(SUBJECT, SESSION)]
        assert row.status == SessionStatus.INELIGIBLE.value


# =====================================================================
# Errors surfaced as steps
# =====================================================================


class TestValidation:

    @pytest.mark.asyncio
    async def test_validation_error_keeps_position(self, session, mock_repo):
        await session.create()
        step = await session.answer_and_advance(150)
        assert isinstance(step, QuestionStep)
        assert step.index == 0
        assert step.error == "Please enter an age between 0 and 120"
        assert mock_repo._sessions[(SUBJECT, SESSION)].history == []

    @pytest.mark.asyncio
    async def test_multi_select_minimum(self, session):
        await _through_eligibility(session)
        await session.ack()
        await session.answer_and_advance(0)
        step = await session.advance()
        assert step.error == "Please select at least 1 options"

    @pytest.mark.asyncio
    async def test_multi_select_list_over_maximum(self, session):
        await _through_eligibility(session)
        await session.ack()
        await session.answer_and_advance(0)
        with pytest.raises(ValueError, match="At most 3 options"):
            await session.answer([0, 1, 2, 3])

    @pytest.mark.asyncio
    async def test_multi_select_list_replaces_selection(self, session):
        await _through_eligibility(session)
        await session.ack()
        await session.answer_and_advance(0)
        await session.answer([1, 2, 3])
        step = await session.answer([3, 4])
        assert step.view.answer.multi_select_indices == "3,4"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value", [30, None, [1]])
    async def test_free_text_requires_string(self, session, value):
        await _through_eligibility(session)
        await session.ack()
        await session.jump("comments")
        with pytest.raises(ValueError, match="must be a string"):
            await session.answer(value)

    @pytest.mark.asyncio
    async def test_numeric_rejects_non_numbers(self, session):
        await session.create()
        with pytest.raises(ValueError, match="must be a number"):
            await session.answer([30])

    @pytest.mark.asyncio
    async def test_single_choice_requires_index(self, session):
        await session.create()
        await session.answer_and_advance(30)
        with pytest.raises(ValueError, match="option index"):
            await session.answer("Yes")
        with pytest.raises(ValueError, match="not found"):
            await session.answer(7)


# =====================================================================
# Navigation
# =====================================================================


class TestNavigation:

    @pytest.mark.asyncio
    async def test_retreat(self, session):
        await session.create()
        await session.answer_and_advance(30)
        step = await session.retreat()
        assert step.index == 0
        assert step.view.answer.numeric_value == 30.0, "Answers survive navigation"
        step = await session.retreat()
        assert step.index == 0, "Retreat at the first question is a no-op"

    @pytest.mark.asyncio
    async def test_jump(self, session):
        await session.create()
        step = await session.jump(1)
        assert step.view.question.short_name == "lives_in_area"
        assert step.has_previous is True, "Index fallback allows walking back"
        with pytest.raises(ValueError, match="not found"):
            await session.jump("nope")

    @pytest.mark.asyncio
    async def test_jump_out_of_eligibility_runs_the_gate(self, session):
        await session.create()
        step = await session.jump("comments")
        assert isinstance(step, RoutingStep), "Leaving the eligibility section gates"
        assert step.eligible is True, "Missing answers fail open"
        step = await session.jump("comments")
        assert step.index == 6, "An explicit jump clears the pending routing"

    @pytest.mark.asyncio
    async def test_jump_to_last_then_complete(self, session, mock_repo):
        await _through_eligibility(session)
        await session.ack()
        await session.jump("comments")
        step = await session.advance()
        assert isinstance(step, CompletedStep)
        assert isinstance(await session.step(), CompletedStep)
        with pytest.raises(ValueError, match="open session"):
            await session.jump("age")


# =====================================================================
# Resuming sessions
# =====================================================================


class TestResume:

    @pytest.mark.asyncio
    async def test_advance_resumes_after_consent(self, session, mock_repo):
        step = await _through_eligibility(session)
        assert step.pending_routing is PendingRouting.CONSENT

        step = await session.advance()
        assert isinstance(step, QuestionStep)
        assert step.view.question.short_name == "hiv_tested"
        row = mock_repo._sessions[(SUBJECT, SESSION)]
        assert row.pending_routing == []
        assert row.history == [0, 1]

    @pytest.mark.asyncio
    async def test_directive_is_kept_across_calls(self, write_survey, mock_repo, mock_db):
        raw = {
            "survey": {"name": "Flagged", "version": "1", "languages": ["en"]},
            "sections": [{"id": 1, "type": "main"}],
            "questions": [
                {"id": 1, "short_name": "q1", "type": "free_text", "section": 1, "text": "First"},
                {
                    "id": 2, "short_name": "q2", "type": "free_text", "section": 1,
                    "text": "Second", "pre_script": "'highlight'",
                },
            ],
        }
        definition = SurveyDefinitionStore(write_survey(raw))
        definition.load()
        svc = SurveySessionService(definition)
        svc._repo = mock_repo
        session = _Session(svc, mock_db)

        await session.create()
        step = await session.answer_and_advance("hello")
        assert step.directive == "highlight"
        assert mock_repo._sessions[(SUBJECT, SESSION)].directive == "highlight"

        step = await session.step()
        assert step.directive == "highlight", "A reload keeps the directive of the shown question"

        step = await session.retreat()
        assert step.directive is None


# =====================================================================
# Lifecycle
# =====================================================================


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_duplicate_session(self, session):
        await session.create()
        with pytest.raises(ValueError, match="already exists"):
            await session.create()

    @pytest.mark.asyncio
    async def test_unsupported_language(self, session):
        with pytest.raises(ValueError, match="Unsupported language"):
            await session.create(language="fr")

    @pytest.mark.asyncio
    async def test_unknown_session(self, session):
        with pytest.raises(ValueError, match="not found"):
            await session.step()

    @pytest.mark.asyncio
    async def test_get_and_list_sessions(self, service, mock_db):
        await _Session(service, mock_db, session_id="a").create()
        await _Session(service, mock_db, session_id="b").create(language="th")
        await _Session(service, mock_db, subject_id="other", session_id="c").create()

        info = await service.get_session(mock_db, subject_id=SUBJECT, session_id="b")
        assert info.language == "th"
        assert await service.get_session(mock_db, subject_id=SUBJECT, session_id="zz") is None

        listed = await service.list_sessions(mock_db, subject_id=SUBJECT)
        assert {i.session_id for i in listed} == {"a", "b"}

    @pytest.mark.asyncio
    async def test_acknowledge_without_pending_routing(self, session):
        await session.create()
        with pytest.raises(ValueError, match="No routing decision"):
            await session.ack()


def test_answer_json_round_trip():
    answer = Answer(question_id=5, session_id="s", multi_select_indices="1,3", text="Fever, Weight loss")
    data = answer_to_json(answer)
    assert "question_id" not in data and "session_id" not in data
    assert answer_from_json("5", "s", data) == answer
