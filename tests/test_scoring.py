"""Tests for quiz scoring."""
from __future__ import annotations

from doc_study.models import QuizQuestion
from doc_study.scoring import score_quiz

ALL_CORRECT = {"1": "Paris", "2": "True", "3": "H2O"}


class TestScoreQuiz:
    def test_all_correct(self, quiz_questions):
        result = score_quiz(quiz_questions, ALL_CORRECT)
        assert result.total_correct == 3
        assert result.total_questions == 3
        assert result.percentage == 100

    def test_all_wrong(self, quiz_questions):
        result = score_quiz(quiz_questions, {"1": "London", "2": "False", "3": "CO2"})
        assert result.total_correct == 0
        assert result.percentage == 0

    def test_mcq_is_case_sensitive(self, quiz_questions):
        result = score_quiz(quiz_questions, {"1": "paris"})
        assert result.total_correct == 0
        assert result.breakdown[0].correct == 0

    def test_true_false_exact(self, quiz_questions):
        assert score_quiz(quiz_questions, {"2": "true"}).total_correct == 0
        assert score_quiz(quiz_questions, {"2": "True"}).total_correct == 1

    def test_short_answer_trimmed_case_insensitive(self, quiz_questions):
        result = score_quiz(quiz_questions, {"3": " h2o "})
        assert result.total_correct == 1
        assert result.breakdown[2].type == "short-answer"
        assert result.breakdown[2].correct == 1

    def test_unanswered_and_empty_are_wrong(self, quiz_questions):
        result = score_quiz(quiz_questions, {"1": "", "2": "True"})
        assert result.total_correct == 1
        assert result.total_questions == 3
        assert result.percentage == 33.33

    def test_two_decimal_rounding(self, quiz_questions):
        result = score_quiz(quiz_questions, {"1": "Paris", "2": "True"})
        assert result.percentage == 66.67

    def test_half_rounds_up(self):
        questions = [QuizQuestion(i, f"q{i}", "short-answer", None, "yes") for i in range(32)]
        result = score_quiz(questions, {"0": "yes"})
        # 1/32 is 3.125%
        assert result.percentage == 3.13
        assert result.breakdown[0].percentage == 3.13

    def test_empty_quiz(self):
        result = score_quiz([], {})
        assert result.total_questions == 0
        assert result.percentage == 0
        assert result.breakdown == []

    def test_breakdown_in_first_seen_order(self):
        questions = [
            QuizQuestion(1, "a", "short-answer", None, "x"),
            QuizQuestion(2, "b", "multiple-choice", ["1", "2", "3", "4"], "1"),
            QuizQuestion(3, "c", "short-answer", None, "y"),
        ]
        result = score_quiz(questions, {"1": "X", "2": "2", "3": "y"})
        assert [b.type for b in result.breakdown] == ["short-answer", "multiple-choice"]
        sa = result.breakdown[0]
        assert (sa.correct, sa.total, sa.percentage) == (2, 2, 100)
        mc = result.breakdown[1]
        assert (mc.correct, mc.total, mc.percentage) == (0, 1, 0)

    def test_missing_type_is_unknown_and_lenient(self):
        questions = [QuizQuestion(9, "q", None, None, "Answer")]
        result = score_quiz(questions, {"9": "  answer"})
        assert result.total_correct == 1
        assert result.breakdown[0].type == "unknown"

    def test_accepts_dicts(self):
        questions = [{"id": 5, "type": "true-false", "correct_answer": "False"}]
        result = score_quiz(questions, {"5": "False"})
        assert result.total_correct == 1

    def test_to_dict(self, quiz_questions):
        d = score_quiz(quiz_questions, ALL_CORRECT).to_dict()
        assert d["total_correct"] == 3
        assert d["breakdown"][0] == {
            "type": "multiple-choice", "correct": 1, "total": 1, "percentage": 100,
        }
