"""Score quiz attempts."""
from __future__ import annotations

import math
from collections.abc import Mapping, Sequence

from doc_study.models import QuestionType, QuizQuestion, ScoreResult, TypeBreakdown

# Types compared with exact string equality; everything else is free text
EXACT_MATCH_TYPES = {QuestionType.MULTIPLE_CHOICE.value, QuestionType.TRUE_FALSE.value}


def _percentage(correct: int, total: int) -> float:
    if total <= 0:
        return 0.0
    # Halves round up, not to even
    return math.floor(correct / total * 10000 + 0.5) / 100


def _field(question: QuizQuestion | Mapping, name: str):
    if isinstance(question, Mapping):
        return question.get(name)
    return getattr(question, name, None)


def is_correct(qtype: str, correct_answer: str, submitted: str | None) -> bool:
    """Compare one submission.  Unanswered or empty never counts."""
    if submitted is None or submitted == "":
        return False
    if qtype in EXACT_MATCH_TYPES:
        return submitted == correct_answer
    return submitted.strip().lower() == (correct_answer or "").strip().lower()


def score_quiz(
    questions: Sequence[QuizQuestion | Mapping],
    answers: Mapping[str, str],
) -> ScoreResult:
    """Score *answers* (keyed by ``str(question.id)``) against *questions*.

    The breakdown groups questions by their ``type`` in first-seen order.
    """
    total_correct = 0
    stats: dict[str, list[int]] = {}  # type -> [correct, total]

    for q in questions:
        qtype = _field(q, "type") or "unknown"
        entry = stats.setdefault(qtype, [0, 0])
        entry[1] += 1

        submitted = answers.get(str(_field(q, "id")))
        if is_correct(qtype, _field(q, "correct_answer"), submitted):
            total_correct += 1
            entry[0] += 1

    breakdown = [
        TypeBreakdown(type=t, correct=c, total=n, percentage=_percentage(c, n))
        for t, (c, n) in stats.items()
    ]
    return ScoreResult(
        total_correct=total_correct,
        total_questions=len(questions),
        percentage=_percentage(total_correct, len(questions)),
        breakdown=breakdown,
    )
