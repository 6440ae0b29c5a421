"""CLI entry point for doc-study.

Usage:
  python -m doc_study serve [--port PORT] [--host HOST]
  python -m doc_study health
  python -m doc_study models
  python -m doc_study summarize FILE [--doc-id N] [--style brief|detailed|academic]
  python -m doc_study key-points FILE [--doc-id N]
  python -m doc_study key-terms FILE [--doc-id N]
  python -m doc_study quiz FILE [--doc-id N] [--count N] [--types T] [--difficulty D]
  python -m doc_study score QUIZ_ID ANSWERS_JSON
"""
from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path


def main():
    args = sys.argv[1:]
    command = args[0] if args else "serve"

    if command == "serve":
        _serve(args[1:])
    elif command == "health":
        _health()
    elif command == "models":
        _models()
    elif command in ("summarize", "key-points", "key-terms", "quiz"):
        _generate(command, args[1:])
    elif command == "score":
        _score(args[1:])
    else:
        print(f"Unknown command: {command}")
        print("Commands: serve, health, models, summarize, key-points, key-terms, quiz, score")
        sys.exit(1)


def _parse_flag(args: list[str], name: str, default: str) -> str:
    for i, a in enumerate(args):
        if a == name and i + 1 < len(args):
            return args[i + 1]
    return default


def _get_llm(settings):
    from doc_study.providers.llm_ollama import OllamaProvider
    return OllamaProvider(
        base_url=settings.ollama_url,
        model=settings.llm_model,
        timeout=settings.generation_timeout,
    )


def _serve(args: list[str]):
    import uvicorn

    port = int(_parse_flag(args, "--port", "8765"))
    host = _parse_flag(args, "--host", "127.0.0.1")
    print(f"Starting Doc Study on http://{host}:{port}")
    print("Press Ctrl+C to stop\n")
    uvicorn.run(
        "doc_study.app:app",
        host=host,
        port=port,
        reload=False,
        timeout_graceful_shutdown=5,
    )


def _health():
    from doc_study.config import load_settings

    settings = load_settings()
    result = asyncio.run(_get_llm(settings).check_health())
    if not result.connected:
        print(f"Ollama is not reachable at {settings.ollama_url}")
        sys.exit(1)
    print(f"Ollama is running at {settings.ollama_url} ({len(result.models)} models)")
    for name in result.models:
        marker = "*" if name.split(":")[0] == settings.llm_model.split(":")[0] else " "
        print(f"  {marker} {name}")


def _models():
    from doc_study.config import load_settings

    settings = load_settings()
    models = asyncio.run(_get_llm(settings).list_models())
    for m in models:
        print(f"{m.name:40s} {m.size / 1e9:6.1f} GB  {m.modified_at}")


def _print_event(event) -> None:
    if event.error:
        print(f"\nError: {event.error}", file=sys.stderr)
    elif not event.done:
        print(event.chunk, end="", flush=True)


def _generate(command: str, args: list[str]):
    if not args or args[0].startswith("--"):
        print(f"Usage: python -m doc_study {command} FILE")
        sys.exit(1)
    path = Path(args[0])
    if not path.exists():
        print(f"File not found: {path}")
        sys.exit(1)
    text = path.read_text(encoding="utf-8")
    doc_id = int(_parse_flag(args, "--doc-id", "1"))

    logging.basicConfig(level=logging.WARNING, format="%(name)s | %(message)s")

    from doc_study.config import load_settings
    from doc_study.db import Database
    from doc_study.generator import Generator
    from doc_study.models import QuizOptions

    settings = load_settings()
    db = Database(settings.db_full_path)
    gen = Generator(
        _get_llm(settings), db, _print_event,
        chunk_size=settings.chunk_size,
        overlap=settings.chunk_overlap,
        max_prompt_length=settings.max_prompt_length,
    )

    try:
        if command == "summarize":
            style = _parse_flag(args, "--style", "brief")
            result = asyncio.run(gen.summarize(doc_id, text, style=style))
        elif command == "key-points":
            result = asyncio.run(gen.extract_key_points(doc_id, text))
        elif command == "key-terms":
            result = asyncio.run(gen.extract_key_terms(doc_id, text))
        else:
            options = QuizOptions(
                question_count=int(_parse_flag(args, "--count", "5")),
                question_types=_parse_flag(args, "--types", "all"),
                difficulty=_parse_flag(args, "--difficulty", "medium"),
            )
            result = asyncio.run(gen.generate_quiz(doc_id, text, options=options, title=path.stem))
            if result is not None:
                quiz = db.get_quiz(result)
                print(f"\n\nSaved quiz {result} with {len(quiz['questions'])} questions")
    finally:
        db.close()

    print()
    if result is None:
        sys.exit(1)


def _score(args: list[str]):
    if len(args) < 2:
        print("Usage: python -m doc_study score QUIZ_ID ANSWERS_JSON")
        sys.exit(1)

    from doc_study.config import load_settings
    from doc_study.db import Database
    from doc_study.scoring import score_quiz

    quiz_id = int(args[0])
    answers = json.loads(args[1])

    settings = load_settings()
    db = Database(settings.db_full_path)
    questions = db.get_quiz_questions(quiz_id)
    if not questions:
        print(f"Quiz {quiz_id} has no questions.")
        db.close()
        sys.exit(1)

    result = score_quiz(questions, answers)
    db.record_attempt(quiz_id, result, answers)
    db.close()

    print(f"Score: {result.total_correct}/{result.total_questions} ({result.percentage}%)")
    for b in result.breakdown:
        print(f"  {b.type:16s} {b.correct}/{b.total} ({b.percentage}%)")


if __name__ == "__main__":
    main()
