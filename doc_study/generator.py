"""Run summary, key-point, key-term and quiz generation for a document."""
from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Protocol, assert_never

from doc_study.chunking import CHUNK_OVERLAP, CHUNK_SIZE, split_text
from doc_study.models import (
    ChunkEvent,
    DoneEvent,
    ErrorEvent,
    OperationType,
    QuizOptions,
    StreamEvent,
    SummaryStyle,
    ValidatedQuestion,
)
from doc_study.prompts import (
    COMBINE_KEY_POINTS_PROMPT,
    COMBINE_KEY_TERMS_PROMPT,
    COMBINE_SUMMARIES_PROMPT,
    KEY_POINTS_PROMPT,
    KEY_TERMS_PROMPT,
    RAW_TEXT_MAX_LENGTH,
    build_prompt,
    build_quiz_prompt,
    format_chunk_results,
    get_summary_prompt,
)
from doc_study.providers.base import CancelToken, LLMProvider, OllamaError
from doc_study.quiz_parser import (
    parse_key_points,
    parse_key_terms,
    parse_question_array,
    validate_questions,
)

_log = logging.getLogger("doc_study.generator")

EventSink = Callable[[StreamEvent], None]


class ContentStore(Protocol):
    def save_generated_content(
        self,
        document_id: int,
        summary: str | None = None,
        key_points: list[str] | None = None,
        key_terms: list[dict] | None = None,
    ) -> None:
        ...

    def save_quiz(
        self,
        document_id: int,
        questions: list[ValidatedQuestion],
        title: str | None = None,
        options: QuizOptions | None = None,
    ) -> int:
        ...


class Generator:
    """Compose prompt building, streaming, chunking and parsing.

    Every fragment is forwarded to *sink* as it arrives.  Each operation ends
    with exactly one ``done`` event (carrying ``error`` on failure), except
    when cancelled, where the stream just stops and nothing is saved.
    """

    def __init__(
        self,
        llm: LLMProvider,
        storage: ContentStore,
        sink: EventSink,
        chunk_size: int = CHUNK_SIZE,
        overlap: int = CHUNK_OVERLAP,
        max_prompt_length: int = RAW_TEXT_MAX_LENGTH,
    ):
        self.llm = llm
        self.storage = storage
        self.sink = sink
        self.chunk_size = chunk_size
        self.overlap = overlap
        self.max_prompt_length = max_prompt_length

    # ── Events ────────────────────────────────────────────────────────────

    def _emit_done(self, document_id: int, op: OperationType) -> None:
        self.sink(StreamEvent(document_id, op.value, "", True))

    def _emit_error(self, document_id: int, op: OperationType, message: str) -> None:
        _log.error("%s for document %d failed: %s", op.value, document_id, message)
        self.sink(StreamEvent(document_id, op.value, "", True, error=message))

    # ── Streaming ─────────────────────────────────────────────────────────

    def _prompt(self, text: str, template: str) -> str:
        built = build_prompt(text, template, max_length=self.max_prompt_length)
        if built.budget_exhausted:
            _log.warning("Prompt template leaves no room for document text (budget %d)",
                         built.text_budget)
        return built.text

    async def _stream(
        self,
        document_id: int,
        op: OperationType,
        prompt: str,
        cancel: CancelToken | None,
        chunk_index: int | None = None,
        total_chunks: int | None = None,
    ) -> str:
        """Forward one request's events to the sink and return the full text.

        An ``ErrorEvent`` discards the partial text and is re-raised as
        :class:`OllamaError`, which the operation reports as its single
        error event.
        """
        parts: list[str] = []
        error: str | None = None
        async for event in self.llm.generate_events(self.llm.request(prompt), cancel):
            if isinstance(event, ChunkEvent):
                parts.append(event.text)
                self.sink(StreamEvent(
                    document_id, op.value, event.text, False,
                    chunk_index=chunk_index, total_chunks=total_chunks,
                ))
            elif isinstance(event, ErrorEvent):
                error = event.message
            elif isinstance(event, DoneEvent):
                pass
            else:
                assert_never(event)
        if error is not None:
            raise OllamaError(error)
        return "".join(parts)

    async def run_chunked_generation(
        self,
        document_id: int,
        op: OperationType,
        chunks: list[str],
        template: str,
        combine_template: str,
        cancel: CancelToken | None = None,
    ) -> str:
        """Map each chunk through *template*, then merge with *combine_template*.

        Events carry ``chunk_index``/``total_chunks``; the combine pass uses
        ``chunk_index == total_chunks``.
        """
        total = len(chunks)
        _log.info("Starting chunked %s for document %d (%d chunks)", op.value, document_id, total)

        results: list[str] = []
        for i, chunk in enumerate(chunks):
            _log.info("  [%d/%d] %s", i + 1, total, op.value)
            results.append(await self._stream(
                document_id, op, self._prompt(chunk, template), cancel,
                chunk_index=i, total_chunks=total,
            ))
            if cancel is not None and cancel.cancelled:
                return ""

        _log.info("  Combining %d chunk results", total)
        combined = format_chunk_results(results)
        return await self._stream(
            document_id, op, self._prompt(combined, combine_template), cancel,
            chunk_index=total, total_chunks=total,
        )

    async def _generate_text(
        self,
        document_id: int,
        op: OperationType,
        text: str,
        template: str,
        combine_template: str,
        cancel: CancelToken | None,
    ) -> str | None:
        if not text or not text.strip():
            self._emit_error(document_id, op, "Document has no text content")
            return None

        try:
            chunks = split_text(text, self.chunk_size, self.overlap)
            if len(chunks) > 1:
                result = await self.run_chunked_generation(
                    document_id, op, chunks, template, combine_template, cancel,
                )
            else:
                result = await self._stream(document_id, op, self._prompt(text, template), cancel)
        except Exception as e:
            self._emit_error(document_id, op, str(e) or type(e).__name__)
            return None

        if cancel is not None and cancel.cancelled:
            _log.info("%s for document %d cancelled", op.value, document_id)
            return None
        return result

    # ── Operations ────────────────────────────────────────────────────────

    async def summarize(
        self,
        document_id: int,
        text: str,
        style: str | SummaryStyle = SummaryStyle.BRIEF,
        cancel: CancelToken | None = None,
    ) -> str | None:
        op = OperationType.SUMMARY
        summary = await self._generate_text(
            document_id, op, text, get_summary_prompt(style), COMBINE_SUMMARIES_PROMPT, cancel,
        )
        if summary is None:
            return None
        self.storage.save_generated_content(document_id, summary=summary)
        self._emit_done(document_id, op)
        _log.info("Saved summary for document %d (%d chars)", document_id, len(summary))
        return summary

    async def extract_key_points(
        self, document_id: int, text: str, cancel: CancelToken | None = None,
    ) -> list[str] | None:
        op = OperationType.KEY_POINTS
        raw = await self._generate_text(
            document_id, op, text, KEY_POINTS_PROMPT, COMBINE_KEY_POINTS_PROMPT, cancel,
        )
        if raw is None:
            return None
        points = parse_key_points(raw)
        if not points:
            # No bullet markers: treat every non-empty line as a point
            points = [line.strip() for line in raw.splitlines() if line.strip()]
        if not points:
            self._emit_error(document_id, op, "Key point extraction produced no output")
            return None
        self.storage.save_generated_content(document_id, key_points=points)
        self._emit_done(document_id, op)
        _log.info("Saved %d key points for document %d", len(points), document_id)
        return points

    async def extract_key_terms(
        self, document_id: int, text: str, cancel: CancelToken | None = None,
    ) -> list[dict] | None:
        op = OperationType.KEY_TERMS
        raw = await self._generate_text(
            document_id, op, text, KEY_TERMS_PROMPT, COMBINE_KEY_TERMS_PROMPT, cancel,
        )
        if raw is None:
            return None
        terms = parse_key_terms(raw)
        if not terms:
            self._emit_error(document_id, op, "Could not parse key terms from model output")
            return None
        self.storage.save_generated_content(document_id, key_terms=terms)
        self._emit_done(document_id, op)
        _log.info("Saved %d key terms for document %d", len(terms), document_id)
        return terms

    async def generate_quiz(
        self,
        document_id: int,
        text: str,
        options: QuizOptions | None = None,
        title: str | None = None,
        cancel: CancelToken | None = None,
    ) -> int | None:
        """Generate, validate and save a quiz; return the new quiz id.

        The document goes into a single prompt truncated to the text budget.
        Output without a parseable array, or with no valid question, saves
        nothing.
        """
        op = OperationType.QUIZ
        options = options or QuizOptions()
        if not text or not text.strip():
            self._emit_error(document_id, op, "Document has no text content")
            return None

        built = build_quiz_prompt(text, options, max_length=self.max_prompt_length)
        if built.budget_exhausted:
            _log.warning("Quiz prompt leaves no room for document text (budget %d)",
                         built.text_budget)

        try:
            raw = await self._stream(document_id, op, built.text, cancel)
        except Exception as e:
            self._emit_error(document_id, op, str(e) or type(e).__name__)
            return None
        if cancel is not None and cancel.cancelled:
            _log.info("quiz for document %d cancelled", document_id)
            return None

        items = parse_question_array(raw)
        if items is None:
            _log.debug("  Raw response: %.300s", raw)
            self._emit_error(document_id, op, "Quiz generation produced no parseable questions")
            return None
        questions = validate_questions(items)
        if not questions:
            self._emit_error(document_id, op, "Quiz generation produced no valid questions")
            return None

        quiz_id = self.storage.save_quiz(document_id, questions, title=title, options=options)
        self._emit_done(document_id, op)
        _log.info("Saved quiz %d for document %d (%d/%d questions valid)",
                  quiz_id, document_id, len(questions), len(items))
        return quiz_id
