"""SurveyDefinitionStore — loads a YAML survey definition into typed models.

The definition is loaded once at startup and serves every session.  It also
implements :class:`SurveyStore`, keeping answers in memory, which is what
tests and embedded hosts use; the HTTP server persists answers through
``survey_db`` instead.

File layout::

    survey:
      name: Community health screening
      version: "1.0"
      languages: [en, th]
      eligibility_script: "age >= 18"
      routing:
        require_consent: true
        require_sample_collection: false
    sections:
      - {id: 1, type: eligibility, name: Eligibility}
    questions:
      - id: 1
        short_name: age
        type: numeric
        section: 1
        text: {en: "How old are you?", th: "คุณอายุเท่าไร"}
        options:                      # choice questions only
          - {index: 0, text: {en: "No", th: "ไม่ใช่"}}

Localised fields (``text``, ``validation_error_text``, option ``text``) are
either a plain string shared by every language or a ``{language: text}``
mapping.

Usage::

    store = SurveyDefinitionStore()     # SURVEY_DEFINITION_PATH or surveys/default.yaml
    store.load()
    graph = await QuestionGraph.load(store, "en")
"""

from __future__ import annotations

import logging
from collections import defaultdict
from pathlib import Path
from typing import Any, Optional

import yaml

from survey_flow.constants import DEFAULT_LANGUAGE, DEFINITION_PATH, QUESTION_TYPES
from survey_flow.interfaces import SurveyStore
from survey_flow.models.answer import Answer
from survey_flow.models.question import Option, Question, Section
from survey_flow.models.session import RoutingFlags

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Utility helpers
# ---------------------------------------------------------------------------

def find_repo_root(start: Optional[Path] = None) -> Path:
    """Walk upwards from *start* to find the repo root (dir with pyproject.toml or .git).

    Falls back to cwd if no marker is found.
    """
    p = (start or Path(__file__).resolve()).parent
    for parent in [p, *p.parents]:
        if (parent / "pyproject.toml").exists() or (parent / ".git").exists():
            return parent
    return Path.cwd()


def load_yaml(path: Path | str) -> Any:
    """Load a single YAML file and return the parsed contents."""
    if isinstance(path, str):
        path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Missing survey definition: {path}")
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def _localise(value: Any, language: str, *, where: str, required: bool = True) -> str | None:
    """Pick ``language`` out of a localised field."""
    if value is None:
        if required:
            raise ValueError(f"{where}: missing text")
        return None
    if isinstance(value, dict):
        if language in value:
            return str(value[language])
        if required:
            raise ValueError(f"{where}: no text for language '{language}'")
        return None
    return str(value)


# ---------------------------------------------------------------------------
# SurveyDefinitionStore
# ---------------------------------------------------------------------------

class SurveyDefinitionStore(SurveyStore):
    """Loads one survey definition and provides typed lookup per language.

    Attributes populated after :meth:`load`:

        name, version      — survey metadata
        languages          — list of language codes the survey is written in
        eligibility_script — survey-level eligibility script (or None)
        routing            — RoutingFlags applied after an eligible verdict
        sections           — list[Section] in index order
    """

    def __init__(self, path: str | Path | None = None) -> None:
        if path is None:
            path = DEFINITION_PATH or find_repo_root() / "surveys" / "default.yaml"
        self._path = Path(path)

        # Populated by load()
        self.name: str = ""
        self.version: str = ""
        self.languages: list[str] = []
        self.eligibility_script: str | None = None
        self.routing = RoutingFlags()
        self.sections: list[Section] = []
        self._questions: dict[str, list[Question]] = {}
        self._options: dict[int, list[Option]] = {}

        # In-memory answer table: session_id -> question_id -> Answer
        self._answers: dict[str | None, dict[int, Answer]] = defaultdict(dict)

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self) -> None:
        """Parse the YAML definition into typed models.

        Call this once at startup.

        Raises:
            FileNotFoundError: if the definition file is missing.
            ValueError: on an invalid definition (unknown question type,
                duplicate ids or short names, undefined sections, ...).
        """
        raw = load_yaml(self._path)
        if not isinstance(raw, dict) or not raw.get("questions"):
            raise ValueError(f"{self._path}: a survey needs a non-empty 'questions' list")

        meta = raw.get("survey") or {}
        self.name = str(meta.get("name", self._path.stem))
        self.version = str(meta.get("version", ""))
        self.languages = list(meta.get("languages") or [DEFAULT_LANGUAGE])
        self.eligibility_script = meta.get("eligibility_script") or None
        self.routing = RoutingFlags(**(meta.get("routing") or {}))

        self._load_sections(raw.get("sections") or [])
        self._load_questions(raw["questions"])
        logger.info(
            "SurveyDefinitionStore loaded '%s' v%s: %d languages, %d sections, %d questions",
            self.name, self.version, len(self.languages),
            len(self.sections), len(self._questions[self.languages[0]]),
        )

    def _load_sections(self, raw_sections: list[dict]) -> None:
        sections: list[Section] = []
        seen: set[int] = set()
        for position, raw in enumerate(raw_sections):
            section = Section(
                id=raw["id"],
                index=raw.get("index", position),
                section_type=raw.get("type", "main"),
                name=raw.get("name", ""),
            )
            if section.id in seen:
                raise ValueError(f"Duplicate section id {section.id}")
            seen.add(section.id)
            sections.append(section)
        self.sections = sorted(sections, key=lambda s: s.index)

    def _load_questions(self, raw_questions: list[dict]) -> None:
        section_ids = {s.id for s in self.sections}
        seen_ids: set[int] = set()
        seen_names: set[str] = set()
        questions: dict[str, list[Question]] = {lang: [] for lang in self.languages}
        options: dict[int, list[Option]] = {}
        next_option_id = 1

        for raw in raw_questions:
            qid = raw["id"]
            short_name = raw["short_name"]
            where = f"question '{short_name}'"
            qtype = raw.get("type", "single_choice")
            if qtype not in QUESTION_TYPES:
                raise ValueError(f"Unknown question type '{qtype}' in {where}")
            if qid in seen_ids:
                raise ValueError(f"Duplicate question id {qid} in {where}")
            if short_name in seen_names:
                raise ValueError(f"Duplicate short_name in {where}")
            section_id = raw.get("section")
            if section_id is not None and section_id not in section_ids:
                raise ValueError(f"{where} references undefined section {section_id}")
            seen_ids.add(qid)
            seen_names.add(short_name)

            for lang in self.languages:
                questions[lang].append(Question(
                    id=qid,
                    short_name=short_name,
                    language=lang,
                    text=_localise(raw.get("text"), lang, where=where),
                    question_type=qtype,
                    pre_script=raw.get("pre_script"),
                    validation_script=raw.get("validation_script"),
                    validation_error_text=_localise(
                        raw.get("validation_error_text"), lang, where=where, required=False,
                    ),
                    min_selections=raw.get("min_selections"),
                    max_selections=raw.get("max_selections"),
                    skip_to_script=raw.get("skip_to_script"),
                    skip_to_target=raw.get("skip_to_target"),
                    section_id=section_id,
                ))

            opts: list[Option] = []
            for position, raw_opt in enumerate(raw.get("options") or []):
                for lang in self.languages:
                    opts.append(Option(
                        id=next_option_id,
                        question_id=qid,
                        index=raw_opt.get("index", position),
                        text=_localise(raw_opt.get("text"), lang, where=f"{where} option {position}"),
                        language=lang,
                    ))
                    next_option_id += 1
            if qtype in ("single_choice", "multi_select") and not opts:
                raise ValueError(f"{where} is {qtype} but has no options")
            options[qid] = opts

        # Dangling skip-to targets are tolerated at runtime; flag them early
        for q in questions[self.languages[0]]:
            if q.skip_to_target and q.skip_to_target not in seen_names:
                logger.warning(
                    "Question '%s' skips to unknown target '%s'",
                    q.short_name, q.skip_to_target,
                )

        self._questions = questions
        self._options = options

    # ------------------------------------------------------------------
    # Lookup helpers
    # ------------------------------------------------------------------

    def questions(self, language: str) -> list[Question]:
        """Return the ordered questions in ``language``.

        Raises:
            ValueError: if the survey is not available in ``language``.
        """
        if language not in self._questions:
            raise ValueError(
                f"Language '{language}' not found (available: {', '.join(self.languages)})"
            )
        return list(self._questions[language])

    def get_question(self, short_name: str, language: str) -> Question:
        """Look up a single question by short name.

        Raises:
            KeyError: if no question has that short name.
        """
        for q in self.questions(language):
            if q.short_name == short_name:
                return q
        raise KeyError(short_name)

    def options(self, question_id: int, language: str | None = None) -> list[Option]:
        opts = self._options.get(question_id, [])
        if language is not None:
            opts = [o for o in opts if o.language == language]
        return list(opts)

    # ------------------------------------------------------------------
    # SurveyStore
    # ------------------------------------------------------------------

    async def load_questions(self, language: str) -> list[Question]:
        return self.questions(language)

    async def load_options(self, question_id: int) -> list[Option]:
        return self.options(question_id)

    async def load_sections(self) -> list[Section]:
        return list(self.sections)

    async def load_answers(self, session_id: str) -> list[Answer]:
        return [a.model_copy() for a in self._answers[session_id].values()]

    async def save_answer(self, answer: Answer) -> None:
        self._answers[answer.session_id][answer.question_id] = answer.model_copy()
