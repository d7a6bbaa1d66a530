from pathlib import Path

import pytest
import yaml

from survey_flow.definition import SurveyDefinitionStore

REPO_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_SURVEY = REPO_ROOT / "surveys" / "default.yaml"


@pytest.fixture(scope="session")
def definition_path():
    return DEFAULT_SURVEY


@pytest.fixture(scope="session")
def definition():
    """The bundled survey definition, loaded once for the test session."""
    store = SurveyDefinitionStore(DEFAULT_SURVEY)
    store.load()
    return store


@pytest.fixture
def write_survey(tmp_path):
    """Dump a definition dict to a YAML file and return its path."""
    def _write(raw, name="survey.yaml"):
        path = tmp_path / name
        path.write_text(yaml.safe_dump(raw, allow_unicode=True), encoding="utf-8")
        return path
    return _write
