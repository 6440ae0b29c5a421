"""Turn free-form LLM output into validated quiz questions."""
from __future__ import annotations

import json
import logging
import re
from typing import assert_never

from doc_study.models import Difficulty, QuestionType, ValidatedQuestion

_log = logging.getLogger("doc_study.qgen")

MCQ_OPTION_COUNT = 4
TRUE_FALSE_OPTIONS = ["True", "False"]

_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?\s*```", re.DOTALL)
_BULLET_RE = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+(.*)$")


def _extract_array_text(raw_text: str) -> str | None:
    text = (raw_text or "").strip()
    if not text:
        _log.warning("Empty text received for parsing")
        return None

    # Strip one markdown code fence if present
    m = _FENCE_RE.search(text)
    if m:
        text = m.group(1).strip()

    first = text.find("[")
    last = text.rfind("]")
    if first == -1 or last == -1 or last <= first:
        _log.warning("No JSON array brackets found in LLM output")
        return None
    return text[first : last + 1]


def parse_question_array(raw_text: str) -> list | None:
    """Extract the JSON array of questions from *raw_text*.

    Tolerates a code fence and prose around the array.  Anything else,
    including malformed JSON inside the brackets, is a failure (``None``).
    """
    candidate = _extract_array_text(raw_text)
    if candidate is None:
        return None
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as e:
        _log.warning("Failed to parse JSON from LLM output: %s", e)
        return None
    if not isinstance(parsed, list):
        _log.warning("Parsed JSON is not an array")
        return None
    _log.info("Parsed %d questions from LLM output", len(parsed))
    return parsed


def _check_question(data: object) -> tuple[str, ValidatedQuestion | None]:
    """Validate *data*; return ``(reason, None)`` on failure or ``("", q)``."""
    if not isinstance(data, dict):
        return f"question is not an object (got {type(data).__name__})", None

    question = data.get("question")
    if not isinstance(question, str) or not question.strip():
        return "question text is missing or blank", None

    try:
        qtype = QuestionType(data.get("type"))
    except ValueError:
        return f"invalid question type: {data.get('type')!r}", None

    answer = data.get("correct_answer")
    if not isinstance(answer, str) or not answer.strip():
        return "correct_answer is missing or blank", None

    try:
        difficulty = Difficulty(data.get("difficulty"))
    except ValueError:
        return f"invalid difficulty: {data.get('difficulty')!r}", None

    explanation = data.get("explanation")
    if not isinstance(explanation, str):
        explanation = None

    options: list[str] | None
    if qtype is QuestionType.MULTIPLE_CHOICE:
        options = data.get("options")
        if not isinstance(options, list) or len(options) != MCQ_OPTION_COUNT:
            n = len(options) if isinstance(options, list) else type(options).__name__
            return f"multiple-choice needs {MCQ_OPTION_COUNT} options (got {n})", None
        if not all(isinstance(o, str) for o in options):
            return "multiple-choice options must all be strings", None
        if len(set(options)) != MCQ_OPTION_COUNT:
            return f"duplicate options: {options}", None
        if answer not in options:
            return f"correct_answer {answer!r} is not one of the options", None
        options = list(options)
    elif qtype is QuestionType.TRUE_FALSE:
        answer = answer[:1].upper() + answer[1:].lower()
        if answer not in TRUE_FALSE_OPTIONS:
            return f"true-false correct_answer must be True or False (got {answer!r})", None
        options = list(TRUE_FALSE_OPTIONS)
    elif qtype is QuestionType.SHORT_ANSWER:
        options = None
    else:
        assert_never(qtype)

    return "", ValidatedQuestion(
        question=question,
        type=qtype,
        options=options,
        correct_answer=answer,
        explanation=explanation,
        difficulty=difficulty,
    )


def validate_question(data: object) -> ValidatedQuestion | None:
    """Normalize one raw question, or return ``None`` if it cannot be."""
    reason, question = _check_question(data)
    if question is None:
        _log.warning("Dropping question: %s", reason)
    return question


def validate_questions(items: list) -> list[ValidatedQuestion]:
    """Keep the subset of *items* that validates; drop the rest."""
    valid = [q for q in (validate_question(item) for item in items) if q is not None]
    if len(valid) < len(items):
        _log.info("Kept %d of %d generated questions", len(valid), len(items))
    return valid


def parse_key_points(text: str) -> list[str]:
    """Pull bullet or numbered lines out of a key-points response."""
    points = []
    for line in (text or "").splitlines():
        m = _BULLET_RE.match(line)
        if m and m.group(1).strip():
            points.append(m.group(1).strip())
    return points


def parse_key_terms(raw_text: str) -> list[dict] | None:
    """Extract ``[{term, definition}]`` from a key-terms response."""
    items = parse_question_array(raw_text)
    if items is None:
        return None
    terms = []
    for item in items:
        if (
            isinstance(item, dict)
            and isinstance(item.get("term"), str)
            and isinstance(item.get("definition"), str)
            and item["term"].strip()
        ):
            terms.append({"term": item["term"].strip(), "definition": item["definition"].strip()})
    return terms
