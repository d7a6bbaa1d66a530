"""Survey definition endpoints — read-only view of the loaded survey.

No respondent identity is needed: this is the same content for everyone.
"""

from fastapi import APIRouter, Depends, Query

from survey_flow.constants import DEFAULT_LANGUAGE
from survey_flow.definition import SurveyDefinitionStore

from survey_server.dependencies import get_definition

router = APIRouter(prefix="/survey", tags=["survey"])


@router.get("")
def get_survey(
    definition: SurveyDefinitionStore = Depends(get_definition),
) -> dict:
    """Survey metadata and sections."""
    return {
        "name": definition.name,
        "version": definition.version,
        "languages": definition.languages,
        "sections": [s.model_dump() for s in definition.sections],
    }


@router.get("/questions")
def list_questions(
    language: str = Query(DEFAULT_LANGUAGE),
    definition: SurveyDefinitionStore = Depends(get_definition),
) -> list[dict]:
    """Questions with their options in one language, in survey order."""
    return [
        {
            **q.model_dump(),
            "options": [o.model_dump() for o in definition.options(q.id, language)],
        }
        for q in definition.questions(language)
    ]
