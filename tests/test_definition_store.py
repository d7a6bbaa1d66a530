"""SurveyDefinitionStore loading, lookup and in-memory answer storage.

Expected counts (from surveys/default.yaml):
    7 questions, 3 sections, 2 languages (en, th)
"""

import logging

import pytest

from survey_flow.definition import SurveyDefinitionStore
from survey_flow.graph import QuestionGraph
from survey_flow.models import Answer


def _minimal(**overrides):
    raw = {
        "survey": {"name": "Mini", "version": "2", "languages": ["en"]},
        "sections": [{"id": 1, "type": "main"}],
        "questions": [
            {"id": 1, "short_name": "q1", "type": "free_text", "section": 1, "text": "First"},
            {
                "id": 2, "short_name": "q2", "type": "single_choice", "section": 1,
                "text": "Second", "options": [{"text": "No"}, {"text": "Yes"}],
            },
        ],
    }
    raw.update(overrides)
    return raw


# =====================================================================
# Bundled survey
# =====================================================================


def test_default_survey_metadata(definition):
    """Survey metadata and routing policy are read from the survey block."""
    assert definition.name == "Community health screening"
    assert definition.version == "1.0"
    assert definition.languages == ["en", "th"]
    assert definition.eligibility_script == "age >= 18 && lives_in_area == 1"
    assert definition.routing.require_consent is True
    assert definition.routing.require_sample_collection is False


def test_default_survey_sections(definition):
    types = [s.section_type for s in definition.sections]
    assert types == ["eligibility", "main", "conclusion"], f"Unexpected sections: {types}"


def test_default_survey_questions_in_every_language(definition):
    for lang in ("en", "th"):
        questions = definition.questions(lang)
        assert len(questions) == 7, f"Expected 7 {lang} questions, got {len(questions)}"
        assert all(q.language == lang for q in questions)
    names = [q.short_name for q in definition.questions("en")]
    assert names == [
        "age", "lives_in_area", "hiv_tested", "months_since_test",
        "symptoms", "other_symptom", "comments",
    ]


def test_localised_text(definition):
    assert definition.get_question("age", "en").text == "How old are you (in years)?"
    assert definition.get_question("age", "th").text == "คุณอายุกี่ปี"
    assert definition.get_question("age", "en").validation_error_text == (
        "Please enter an age between 0 and 120"
    )


def test_options_are_stored_per_language(definition):
    symptoms = definition.get_question("symptoms", "en")
    assert len(definition.options(symptoms.id)) == 10, "5 options x 2 languages"
    en = definition.options(symptoms.id, "en")
    assert [o.text for o in en] == ["None", "Fever", "Cough", "Weight loss", "Other"]
    assert len({o.id for o in definition.options(symptoms.id)}) == 10, "Option ids are unique"


def test_free_text_question_has_no_options(definition):
    assert definition.options(definition.get_question("comments", "en").id) == []


def test_unknown_language_and_question(definition):
    with pytest.raises(ValueError, match="not found"):
        definition.questions("fr")
    with pytest.raises(KeyError):
        definition.get_question("nope", "en")


@pytest.mark.asyncio
async def test_graph_keeps_only_session_language(definition):
    graph = await QuestionGraph.load(definition, "th")
    assert len(graph) == 7
    idx = graph.index_of("lives_in_area")
    assert [o.text for o in graph.options_for(idx)] == ["ไม่ใช่", "ใช่"]
    assert graph.section_of(0).section_type == "eligibility"


# =====================================================================
# Loading errors
# =====================================================================


def test_minimal_survey_loads(write_survey):
    store = SurveyDefinitionStore(write_survey(_minimal()))
    store.load()
    assert store.name == "Mini"
    assert store.eligibility_script is None
    assert [o.index for o in store.options(2)] == [0, 1], "Option index defaults to position"


def test_plain_string_text_is_shared_across_languages(write_survey):
    raw = _minimal()
    raw["survey"]["languages"] = ["en", "th"]
    store = SurveyDefinitionStore(write_survey(raw))
    store.load()
    assert store.get_question("q1", "th").text == "First"


def test_missing_file():
    with pytest.raises(FileNotFoundError, match="Missing survey definition"):
        SurveyDefinitionStore("/nonexistent/survey.yaml").load()


@pytest.mark.parametrize(
    "mutate, message",
    [
        (lambda raw: raw.update(questions=[]), "non-empty 'questions'"),
        (lambda raw: raw["questions"][0].update(type="slider"), "Unknown question type"),
        (lambda raw: raw["questions"][1].update(id=1), "Duplicate question id"),
        (lambda raw: raw["questions"][1].update(short_name="q1"), "Duplicate short_name"),
        (lambda raw: raw["questions"][0].update(section=9), "undefined section"),
        (lambda raw: raw["questions"][1].pop("options"), "has no options"),
        (lambda raw: raw["questions"][0].update(text={"th": "x"}), "no text for language"),
        (lambda raw: raw["sections"].append({"id": 1}), "Duplicate section id"),
    ],
)
def test_invalid_definitions_are_rejected(write_survey, mutate, message):
    raw = _minimal()
    mutate(raw)
    store = SurveyDefinitionStore(write_survey(raw))
    with pytest.raises(ValueError, match=message):
        store.load()


def test_dangling_skip_to_target_only_warns(write_survey, caplog):
    raw = _minimal()
    raw["questions"][0].update(skip_to_script="true", skip_to_target="ghost")
    store = SurveyDefinitionStore(write_survey(raw))
    with caplog.at_level(logging.WARNING, logger="survey_flow.definition"):
        store.load()
    assert "ghost" in caplog.text


# =====================================================================
# In-memory answer storage
# =====================================================================


@pytest.mark.asyncio
async def test_answers_round_trip_per_session(write_survey):
    store = SurveyDefinitionStore(write_survey(_minimal()))
    store.load()
    answer = Answer(question_id=1, session_id="s1", text="hi")
    await store.save_answer(answer)
    answer.text = "changed later"

    loaded = await store.load_answers("s1")
    assert [a.text for a in loaded] == ["hi"], "The store keeps its own copy"
    assert await store.load_answers("s2") == []

    await store.save_answer(Answer(question_id=1, session_id="s1", text="again"))
    assert [a.text for a in await store.load_answers("s1")] == ["again"], (
        "Saving the same question replaces the previous answer"
    )
