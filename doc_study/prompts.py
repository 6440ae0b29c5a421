"""Prompt templates and the prompt budget builder.

Every template carries a ``{text}`` placeholder that receives the document
text.  Other ``{name}`` placeholders are filled by plain replacement, so the
JSON examples below use single braces.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from doc_study.models import QuizOptions, SummaryStyle

_log = logging.getLogger("doc_study.prompts")

# Max characters of prompt (template + document text) sent to the LLM
RAW_TEXT_MAX_LENGTH = 8000

TEXT_PLACEHOLDER = "{text}"

# ── Summaries ─────────────────────────────────────────────────────────────

SUMMARIZE_BRIEF_PROMPT = "Summarize the following document in 2-3 concise paragraphs:\n\n{text}"

SUMMARIZE_DETAILED_PROMPT = (
    "Provide a detailed summary of the following document in 5-7 paragraphs, "
    "covering all major topics and key arguments:\n\n{text}"
)

SUMMARIZE_ACADEMIC_PROMPT = (
    "Write an academic abstract for the following document. Use formal language, "
    "state the purpose, methodology (if applicable), key findings, and conclusions:\n\n{text}"
)

# ── Extraction ────────────────────────────────────────────────────────────

KEY_POINTS_PROMPT = (
    "Extract 5-10 key points from the following document. "
    "Return each point on a new line starting with a dash (-):\n\n{text}"
)

KEY_TERMS_PROMPT = (
    "Extract 5-15 key terms and their definitions from the following document. "
    'Return ONLY a JSON array where each element has a "term" and "definition" field. '
    'Example format: [{"term": "Example", "definition": "A brief definition"}]\n\n{text}'
)

QUIZ_GENERATION_PROMPT = """\
You are creating a quiz to test understanding of the document below.

Write exactly {question_count} questions at {difficulty} difficulty.
Allowed question types: {question_types}.

Rules:
- "multiple-choice": exactly 4 distinct options; correct_answer must be copied \
exactly from the options.
- "true-false": options are ["True", "False"]; correct_answer is "True" or "False".
- "short-answer": options is null; correct_answer is a short phrase.
- difficulty is one of "easy", "medium", "hard".
- Every question must be answerable from the document alone.

Respond with ONLY a JSON array, no other text:
[
  {
    "question": "Question text",
    "type": "multiple-choice",
    "options": ["A", "B", "C", "D"],
    "correct_answer": "A",
    "explanation": "Why this answer is correct",
    "difficulty": "medium"
  }
]

Document:
{text}"""

# ── Combine prompts (merging chunked results) ─────────────────────────────

COMBINE_SUMMARIES_PROMPT = (
    "The following are summaries of consecutive sections of a document. Combine them "
    "into a single cohesive summary, removing redundancy and maintaining logical flow:\n\n{text}"
)

COMBINE_KEY_POINTS_PROMPT = (
    "The following are key points extracted from consecutive sections of a document. "
    "Merge them into a deduplicated, ranked list of 5-10 key points. Remove duplicates and "
    "near-duplicates, keeping the most important and specific points. "
    "Return each point on a new line starting with a dash (-):\n\n{text}"
)

COMBINE_KEY_TERMS_PROMPT = (
    "The following are key terms extracted from consecutive sections of a document. "
    "Merge them into a deduplicated list of 5-15 key terms with definitions. Remove duplicate "
    "terms, merge definitions where appropriate. "
    'Return ONLY a JSON array where each element has a "term" and "definition" field:\n\n{text}'
)

SUMMARY_PROMPTS = {
    SummaryStyle.BRIEF: SUMMARIZE_BRIEF_PROMPT,
    SummaryStyle.DETAILED: SUMMARIZE_DETAILED_PROMPT,
    SummaryStyle.ACADEMIC: SUMMARIZE_ACADEMIC_PROMPT,
}

QUESTION_TYPE_LABELS = {
    "all": '"multiple-choice", "true-false", "short-answer" (mix them)',
    "multiple-choice": '"multiple-choice" only',
    "true-false": '"true-false" only',
    "short-answer": '"short-answer" only',
}


@dataclass(frozen=True)
class BuiltPrompt:
    text: str
    text_budget: int
    truncated: bool
    budget_exhausted: bool


def fill_placeholders(template: str, placeholders: dict[str, object] | None) -> str:
    """Replace ``{name}`` for every key except the reserved ``text``."""
    out = template
    for key, value in (placeholders or {}).items():
        if key == "text":
            continue
        out = out.replace("{" + key + "}", str(value))
    return out


def build_prompt(
    document_text: str,
    template: str,
    placeholders: dict[str, object] | None = None,
    max_length: int = RAW_TEXT_MAX_LENGTH,
) -> BuiltPrompt:
    """Fill *template* and fit *document_text* into what is left of *max_length*.

    The text budget is *max_length* minus the filled template's own length.
    The document is prefix-truncated to that budget; a non-positive budget
    yields an empty payload with ``budget_exhausted`` set.
    """
    filled = fill_placeholders(template, placeholders)
    overhead = len(filled.replace(TEXT_PLACEHOLDER, ""))
    text_budget = max_length - overhead

    truncated_text = document_text[: max(0, text_budget)]
    truncated = len(truncated_text) < len(document_text)
    if truncated:
        _log.info("Truncated document text from %d to %d chars (budget: %d)",
                  len(document_text), len(truncated_text), text_budget)

    prompt = filled.replace(TEXT_PLACEHOLDER, truncated_text)
    return BuiltPrompt(
        text=prompt,
        text_budget=text_budget,
        truncated=truncated,
        budget_exhausted=text_budget <= 0,
    )


def get_summary_prompt(style: str | SummaryStyle) -> str:
    try:
        return SUMMARY_PROMPTS[SummaryStyle(style)]
    except ValueError:
        return SUMMARIZE_BRIEF_PROMPT


def build_quiz_prompt(
    document_text: str,
    options: QuizOptions,
    max_length: int = RAW_TEXT_MAX_LENGTH,
) -> BuiltPrompt:
    built = build_prompt(
        document_text,
        QUIZ_GENERATION_PROMPT,
        {
            "question_count": options.question_count,
            "question_types": QUESTION_TYPE_LABELS.get(options.question_types, options.question_types),
            "difficulty": options.difficulty,
        },
        max_length=max_length,
    )
    _log.info("Built quiz prompt (%d chars, budget %d)", len(built.text), built.text_budget)
    return built


def format_chunk_results(results: list[str]) -> str:
    """Label per-chunk outputs for the combine pass."""
    return "\n\n".join(f"--- Chunk {i} ---\n{r}" for i, r in enumerate(results, 1))
