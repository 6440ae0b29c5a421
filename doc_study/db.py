from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from doc_study.models import QuizOptions, QuizQuestion, ScoreResult, ValidatedQuestion

SCHEMA = """
CREATE TABLE IF NOT EXISTS document_content (
    document_id INTEGER PRIMARY KEY,
    summary TEXT,
    key_points_json TEXT,
    key_terms_json TEXT,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS quizzes (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    document_id INTEGER NOT NULL,
    title TEXT NOT NULL,
    created_at TEXT NOT NULL,
    question_count INTEGER,
    difficulty_level TEXT,
    question_types TEXT
);

CREATE TABLE IF NOT EXISTS quiz_questions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    quiz_id INTEGER NOT NULL REFERENCES quizzes(id),
    question TEXT NOT NULL,
    type TEXT,
    options_json TEXT,
    correct_answer TEXT NOT NULL,
    explanation TEXT,
    difficulty TEXT
);

CREATE TABLE IF NOT EXISTS quiz_attempts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    quiz_id INTEGER NOT NULL REFERENCES quizzes(id),
    score INTEGER NOT NULL,
    total_questions INTEGER NOT NULL,
    percentage REAL NOT NULL,
    answers_json TEXT,
    completed_at TEXT NOT NULL
);
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class Database:
    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self._init_schema()

    def _init_schema(self) -> None:
        self.conn.executescript(SCHEMA)
        self.conn.commit()

    def close(self) -> None:
        self.conn.close()

    # ── Generated content ─────────────────────────────────────────────────

    def save_generated_content(
        self,
        document_id: int,
        summary: str | None = None,
        key_points: list[str] | None = None,
        key_terms: list[dict] | None = None,
    ) -> None:
        """Upsert the given fields, leaving the others untouched."""
        self.conn.execute(
            "INSERT OR IGNORE INTO document_content (document_id, updated_at) VALUES (?, ?)",
            (document_id, _now()),
        )
        updates = {"updated_at": _now()}
        if summary is not None:
            updates["summary"] = summary
        if key_points is not None:
            updates["key_points_json"] = json.dumps(key_points)
        if key_terms is not None:
            updates["key_terms_json"] = json.dumps(key_terms)
        assignments = ", ".join(f"{col} = ?" for col in updates)
        self.conn.execute(
            f"UPDATE document_content SET {assignments} WHERE document_id = ?",
            (*updates.values(), document_id),
        )
        self.conn.commit()

    def get_generated_content(self, document_id: int) -> dict | None:
        row = self.conn.execute(
            "SELECT * FROM document_content WHERE document_id = ?", (document_id,)
        ).fetchone()
        if row is None:
            return None
        return {
            "document_id": row["document_id"],
            "summary": row["summary"],
            "key_points": json.loads(row["key_points_json"]) if row["key_points_json"] else None,
            "key_terms": json.loads(row["key_terms_json"]) if row["key_terms_json"] else None,
            "updated_at": row["updated_at"],
        }

    # ── Quizzes ───────────────────────────────────────────────────────────

    def save_quiz(
        self,
        document_id: int,
        questions: list[ValidatedQuestion],
        title: str | None = None,
        options: QuizOptions | None = None,
    ) -> int:
        """Insert a quiz and its questions in one transaction; return its id."""
        with self.conn:
            cur = self.conn.execute(
                "INSERT INTO quizzes (document_id, title, created_at, question_count, "
                "difficulty_level, question_types) VALUES (?, ?, ?, ?, ?, ?)",
                (
                    document_id,
                    title or f"Quiz for document {document_id}",
                    _now(),
                    len(questions),
                    options.difficulty if options else None,
                    options.question_types if options else None,
                ),
            )
            quiz_id = cur.lastrowid
            for q in questions:
                self.conn.execute(
                    "INSERT INTO quiz_questions (quiz_id, question, type, options_json, "
                    "correct_answer, explanation, difficulty) VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (
                        quiz_id,
                        q.question,
                        q.type.value,
                        json.dumps(q.options) if q.options is not None else None,
                        q.correct_answer,
                        q.explanation,
                        q.difficulty.value,
                    ),
                )
        return quiz_id

    def _row_to_question(self, row: sqlite3.Row) -> QuizQuestion:
        return QuizQuestion(
            id=row["id"],
            question=row["question"],
            type=row["type"],
            options=json.loads(row["options_json"]) if row["options_json"] else None,
            correct_answer=row["correct_answer"],
            explanation=row["explanation"],
            difficulty=row["difficulty"],
        )

    def get_quiz_questions(self, quiz_id: int) -> list[QuizQuestion]:
        rows = self.conn.execute(
            "SELECT * FROM quiz_questions WHERE quiz_id = ? ORDER BY id", (quiz_id,)
        ).fetchall()
        return [self._row_to_question(r) for r in rows]

    def get_quiz(self, quiz_id: int) -> dict | None:
        row = self.conn.execute("SELECT * FROM quizzes WHERE id = ?", (quiz_id,)).fetchone()
        if row is None:
            return None
        quiz = dict(row)
        quiz["questions"] = [q.to_dict() for q in self.get_quiz_questions(quiz_id)]
        return quiz

    def list_quizzes(self, document_id: int) -> list[dict]:
        rows = self.conn.execute(
            "SELECT * FROM quizzes WHERE document_id = ? ORDER BY id", (document_id,)
        ).fetchall()
        return [dict(r) for r in rows]

    def delete_quiz(self, quiz_id: int) -> bool:
        with self.conn:
            self.conn.execute("DELETE FROM quiz_attempts WHERE quiz_id = ?", (quiz_id,))
            self.conn.execute("DELETE FROM quiz_questions WHERE quiz_id = ?", (quiz_id,))
            cur = self.conn.execute("DELETE FROM quizzes WHERE id = ?", (quiz_id,))
        return cur.rowcount > 0

    # ── Attempts ──────────────────────────────────────────────────────────

    def record_attempt(self, quiz_id: int, result: ScoreResult, answers: dict[str, str]) -> int:
        cur = self.conn.execute(
            "INSERT INTO quiz_attempts (quiz_id, score, total_questions, percentage, "
            "answers_json, completed_at) VALUES (?, ?, ?, ?, ?, ?)",
            (
                quiz_id,
                result.total_correct,
                result.total_questions,
                result.percentage,
                json.dumps(answers),
                _now(),
            ),
        )
        self.conn.commit()
        return cur.lastrowid

    def list_attempts(self, quiz_id: int) -> list[dict]:
        rows = self.conn.execute(
            "SELECT * FROM quiz_attempts WHERE quiz_id = ? ORDER BY id", (quiz_id,)
        ).fetchall()
        out = []
        for r in rows:
            d = dict(r)
            d["answers"] = json.loads(d.pop("answers_json") or "{}")
            out.append(d)
        return out
