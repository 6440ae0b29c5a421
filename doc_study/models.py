from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "multiple-choice"
    TRUE_FALSE = "true-false"
    SHORT_ANSWER = "short-answer"


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class OperationType(str, Enum):
    SUMMARY = "summary"
    KEY_POINTS = "key_points"
    KEY_TERMS = "key_terms"
    QUIZ = "quiz"


class SummaryStyle(str, Enum):
    BRIEF = "brief"
    DETAILED = "detailed"
    ACADEMIC = "academic"


@dataclass(frozen=True)
class Chunk:
    start_offset: int
    text: str

    @property
    def end_offset(self) -> int:
        return self.start_offset + len(self.text)


@dataclass
class GenerationRequest:
    model: str
    prompt: str
    base_url: str
    timeout: float | None = None  # None: use the client default


# ── Stream events (one request, strict arrival order) ─────────────────────

@dataclass(frozen=True)
class ChunkEvent:
    text: str


@dataclass(frozen=True)
class DoneEvent:
    pass


@dataclass(frozen=True)
class ErrorEvent:
    message: str


GenerationEvent = ChunkEvent | DoneEvent | ErrorEvent


@dataclass
class ValidatedQuestion:
    question: str
    type: QuestionType
    options: list[str] | None
    correct_answer: str
    explanation: str | None
    difficulty: Difficulty

    def to_dict(self) -> dict:
        return {
            "question": self.question,
            "type": self.type.value,
            "options": list(self.options) if self.options is not None else None,
            "correct_answer": self.correct_answer,
            "explanation": self.explanation,
            "difficulty": self.difficulty.value,
        }


@dataclass
class QuizQuestion:
    """A persisted question, as handed to the scorer."""
    id: int
    question: str
    type: str | None
    options: list[str] | None
    correct_answer: str
    explanation: str | None = None
    difficulty: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "question": self.question,
            "type": self.type,
            "options": self.options,
            "correct_answer": self.correct_answer,
            "explanation": self.explanation,
            "difficulty": self.difficulty,
        }


@dataclass(frozen=True)
class TypeBreakdown:
    type: str
    correct: int
    total: int
    percentage: float


@dataclass(frozen=True)
class ScoreResult:
    total_correct: int
    total_questions: int
    percentage: float
    breakdown: list[TypeBreakdown] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "total_correct": self.total_correct,
            "total_questions": self.total_questions,
            "percentage": self.percentage,
            "breakdown": [
                {"type": b.type, "correct": b.correct, "total": b.total, "percentage": b.percentage}
                for b in self.breakdown
            ],
        }


@dataclass
class StreamEvent:
    """Progress event forwarded to the UI for one document operation."""
    document_id: int
    operation_type: str
    chunk: str
    done: bool
    error: str | None = None
    chunk_index: int | None = None
    total_chunks: int | None = None

    def to_dict(self) -> dict:
        d = {
            "document_id": self.document_id,
            "operation_type": self.operation_type,
            "chunk": self.chunk,
            "done": self.done,
        }
        if self.error is not None:
            d["error"] = self.error
        if self.chunk_index is not None:
            d["chunk_index"] = self.chunk_index
            d["total_chunks"] = self.total_chunks
        return d


@dataclass
class QuizOptions:
    question_count: int = 5
    question_types: str = "all"  # all | multiple-choice | true-false | short-answer
    difficulty: str = "medium"


@dataclass
class OllamaModel:
    name: str
    size: int
    modified_at: str


@dataclass
class HealthResult:
    connected: bool
    models: list[str] = field(default_factory=list)
