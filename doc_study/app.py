"""FastAPI application with all routes."""
from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable

logging.basicConfig(level=logging.INFO, format="%(name)s | %(message)s")

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import StreamingResponse

from doc_study.config import Settings, load_settings, save_settings
from doc_study.db import Database
from doc_study.generator import Generator
from doc_study.models import OperationType, QuizOptions, StreamEvent
from doc_study.providers.base import CancelToken, OllamaError
from doc_study.scoring import score_quiz

app = FastAPI(title="Doc Study")

# Global state (initialized in startup)
_db: Database | None = None
_settings: Settings | None = None
# (document_id, operation) -> cancel token of the running generation
_active_generations: dict[tuple[int, str], CancelToken] = {}

_log = logging.getLogger("doc_study.app")


def get_db() -> Database:
    assert _db is not None
    return _db


def get_settings() -> Settings:
    assert _settings is not None
    return _settings


def _get_llm():
    from doc_study.providers.llm_ollama import OllamaProvider
    s = get_settings()
    return OllamaProvider(base_url=s.ollama_url, model=s.llm_model, timeout=s.generation_timeout)


@app.on_event("startup")
async def startup():
    global _db, _settings
    if _settings is None:
        _settings = load_settings()
    if _db is None:
        _db = Database(_settings.db_full_path)


@app.on_event("shutdown")
async def shutdown():
    global _db
    for token in _active_generations.values():
        token.cancel()
    if _db is not None:
        _db.close()
        _db = None


# ── Inference server ──────────────────────────────────────────────────────

@app.get("/api/health")
async def api_health():
    result = await _get_llm().check_health(get_settings().ollama_url)
    return {"connected": result.connected, "models": result.models}


@app.get("/api/models")
async def api_models():
    try:
        models = await _get_llm().list_models(get_settings().ollama_url)
    except (OllamaError, httpx.HTTPError, ValueError) as e:
        raise HTTPException(502, f"Could not list models: {e}")
    return [{"name": m.name, "size": m.size, "modified_at": m.modified_at} for m in models]


# ── Generation (server-sent events) ───────────────────────────────────────

def _stream_generation(
    document_id: int,
    op: OperationType,
    run: Callable[[Generator, CancelToken], Awaitable[object]],
) -> StreamingResponse:
    """Run *run* in a task and relay its events as ``text/event-stream``.

    A client disconnect cancels the generation through its token.
    """
    s = get_settings()
    queue: asyncio.Queue[StreamEvent | None] = asyncio.Queue()
    key = (document_id, op.value)
    cancel = CancelToken()
    if key in _active_generations:
        _active_generations[key].cancel()
    _active_generations[key] = cancel

    gen = Generator(
        _get_llm(), get_db(), queue.put_nowait,
        chunk_size=s.chunk_size, overlap=s.chunk_overlap, max_prompt_length=s.max_prompt_length,
    )

    async def stream():
        task = asyncio.create_task(run(gen, cancel))
        task.add_done_callback(lambda _: queue.put_nowait(None))
        try:
            while True:
                event = await queue.get()
                if event is None:
                    break
                yield f"data: {json.dumps(event.to_dict())}\n\n"
        finally:
            if not task.done():
                cancel.cancel()
            try:
                await task
            except Exception as e:
                _log.warning("Generation task for document %d failed: %s", document_id, e)
            if _active_generations.get(key) is cancel:
                del _active_generations[key]

    return StreamingResponse(
        stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


async def _document_text(request: Request) -> tuple[dict, str]:
    body = await request.json()
    text = body.get("text", "")
    if not isinstance(text, str):
        raise HTTPException(400, "text must be a string")
    return body, text


@app.post("/api/documents/{document_id}/summarize")
async def api_summarize(document_id: int, request: Request):
    body, text = await _document_text(request)
    style = body.get("style", "brief")
    return _stream_generation(
        document_id, OperationType.SUMMARY,
        lambda gen, cancel: gen.summarize(document_id, text, style=style, cancel=cancel),
    )


@app.post("/api/documents/{document_id}/key-points")
async def api_key_points(document_id: int, request: Request):
    _, text = await _document_text(request)
    return _stream_generation(
        document_id, OperationType.KEY_POINTS,
        lambda gen, cancel: gen.extract_key_points(document_id, text, cancel=cancel),
    )


@app.post("/api/documents/{document_id}/key-terms")
async def api_key_terms(document_id: int, request: Request):
    _, text = await _document_text(request)
    return _stream_generation(
        document_id, OperationType.KEY_TERMS,
        lambda gen, cancel: gen.extract_key_terms(document_id, text, cancel=cancel),
    )


@app.post("/api/documents/{document_id}/quiz")
async def api_generate_quiz(document_id: int, request: Request):
    body, text = await _document_text(request)
    try:
        options = QuizOptions(
            question_count=int(body.get("question_count", 5)),
            question_types=body.get("question_types", "all"),
            difficulty=body.get("difficulty", "medium"),
        )
    except (TypeError, ValueError):
        raise HTTPException(400, "question_count must be an integer")
    title = body.get("title")
    return _stream_generation(
        document_id, OperationType.QUIZ,
        lambda gen, cancel: gen.generate_quiz(
            document_id, text, options=options, title=title, cancel=cancel,
        ),
    )


@app.post("/api/documents/{document_id}/cancel")
async def api_cancel(document_id: int):
    cancelled = []
    for (doc_id, op), token in list(_active_generations.items()):
        if doc_id == document_id:
            token.cancel()
            cancelled.append(op)
    return {"cancelled": cancelled}


@app.get("/api/documents/{document_id}/content")
async def api_document_content(document_id: int):
    content = get_db().get_generated_content(document_id)
    if content is None:
        raise HTTPException(404, f"No generated content for document {document_id}")
    return content


@app.get("/api/documents/{document_id}/quizzes")
async def api_list_quizzes(document_id: int):
    return get_db().list_quizzes(document_id)


# ── Quizzes ───────────────────────────────────────────────────────────────

@app.get("/api/quizzes/{quiz_id}")
async def api_get_quiz(quiz_id: int):
    quiz = get_db().get_quiz(quiz_id)
    if quiz is None:
        raise HTTPException(404, f"Quiz {quiz_id} not found")
    return quiz


@app.delete("/api/quizzes/{quiz_id}")
async def api_delete_quiz(quiz_id: int):
    if not get_db().delete_quiz(quiz_id):
        raise HTTPException(404, f"Quiz {quiz_id} not found")
    return {"ok": True}


@app.post("/api/quizzes/{quiz_id}/attempts")
async def api_submit_attempt(quiz_id: int, request: Request):
    body = await request.json()
    answers = body.get("answers", {})
    if not isinstance(answers, dict):
        raise HTTPException(400, "answers must be an object")
    db = get_db()
    if db.get_quiz(quiz_id) is None:
        raise HTTPException(404, f"Quiz {quiz_id} not found")

    answers = {str(k): v for k, v in answers.items() if isinstance(v, str)}
    result = score_quiz(db.get_quiz_questions(quiz_id), answers)
    attempt_id = db.record_attempt(quiz_id, result, answers)
    return {"attempt_id": attempt_id, **result.to_dict()}


@app.get("/api/quizzes/{quiz_id}/attempts")
async def api_list_attempts(quiz_id: int):
    return get_db().list_attempts(quiz_id)


# ── Settings ──────────────────────────────────────────────────────────────

@app.get("/api/settings")
async def api_get_settings():
    return get_settings().to_dict()


@app.put("/api/settings")
async def api_update_settings(request: Request):
    body = await request.json()
    s = get_settings()
    try:
        s.update(body)
    except ValueError as e:
        raise HTTPException(400, str(e))
    save_settings(s)
    return s.to_dict()
