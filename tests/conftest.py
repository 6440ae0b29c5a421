"""Shared test fixtures."""
from __future__ import annotations

import pytest

from doc_study.db import Database
from doc_study.models import Difficulty, QuestionType, QuizQuestion, ValidatedQuestion


@pytest.fixture
def tmp_db(tmp_path):
    """Create a fresh temporary database."""
    db = Database(tmp_path / "test.db")
    yield db
    db.close()


@pytest.fixture
def raw_questions():
    """Raw question objects as a model would return them."""
    return [
        {
            "question": "What is the capital of France?",
            "type": "multiple-choice",
            "options": ["London", "Paris", "Berlin", "Madrid"],
            "correct_answer": "Paris",
            "explanation": "Paris has been the capital since 987.",
            "difficulty": "easy",
        },
        {
            "question": "The Earth orbits the Sun.",
            "type": "true-false",
            "options": ["True", "False"],
            "correct_answer": "true",
            "explanation": None,
            "difficulty": "easy",
        },
        {
            "question": "What is the chemical formula for water?",
            "type": "short-answer",
            "options": None,
            "correct_answer": "H2O",
            "difficulty": "medium",
        },
    ]


@pytest.fixture
def validated_questions():
    return [
        ValidatedQuestion(
            question="What is the capital of France?",
            type=QuestionType.MULTIPLE_CHOICE,
            options=["London", "Paris", "Berlin", "Madrid"],
            correct_answer="Paris",
            explanation="Paris has been the capital since 987.",
            difficulty=Difficulty.EASY,
        ),
        ValidatedQuestion(
            question="The Earth orbits the Sun.",
            type=QuestionType.TRUE_FALSE,
            options=["True", "False"],
            correct_answer="True",
            explanation=None,
            difficulty=Difficulty.EASY,
        ),
        ValidatedQuestion(
            question="What is the chemical formula for water?",
            type=QuestionType.SHORT_ANSWER,
            options=None,
            correct_answer="H2O",
            explanation=None,
            difficulty=Difficulty.MEDIUM,
        ),
    ]


@pytest.fixture
def quiz_questions():
    """Stored questions with ids 1-3 (MCQ, true-false, short-answer)."""
    return [
        QuizQuestion(1, "What is the capital of France?", "multiple-choice",
                     ["London", "Paris", "Berlin", "Madrid"], "Paris"),
        QuizQuestion(2, "The Earth orbits the Sun.", "true-false", ["True", "False"], "True"),
        QuizQuestion(3, "What is the chemical formula for water?", "short-answer", None, "H2O"),
    ]


@pytest.fixture
def long_document():
    """Roughly 14k characters of paragraphs and sentences."""
    paragraphs = []
    for i in range(40):
        sentences = " ".join(
            f"Sentence {j} of paragraph {i} discusses topic {i * 7 + j}." for j in range(6)
        )
        paragraphs.append(sentences)
    return "\n\n".join(paragraphs)
