"""
LLM-based question extraction from chunks of converted question-paper text.

The extractor only reads question text, options, difficulty and marks.
Correct answers are never taken from the model; they come from the answer key.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

from tqdm import tqdm

from config import (
    DEFAULT_DIFFICULTY,
    DEFAULT_MARKS,
    DIFFICULTY_KEYWORDS,
    EXTRACTION_SYSTEM_PROMPT,
    EXTRACTION_USER_PROMPT,
    OPTION_LABELS,
)
from pipeline.models import ExtractedQuestion, QUESTION_TYPE_MCQ, QUESTION_TYPE_INTEGER
from pipeline.response_parser import ResponseParseError, parse_model_output
from utils.gemini_client import GenerationError

log = logging.getLogger(__name__)


_OPTION_OBJECT = {
    "type": "OBJECT",
    "properties": {label: {"type": "STRING"} for label in OPTION_LABELS[:4]},
}

QUESTION_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "questions": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "question_number": {"type": "INTEGER"},
                    "question_text": {"type": "STRING"},
                    "options": _OPTION_OBJECT,
                    "difficulty": {"type": "STRING"},
                    "marks": {"type": "INTEGER"},
                    "explanation": {"type": "STRING"},
                },
                "required": ["question_number", "question_text", "options"],
            },
        },
    },
    "required": ["questions"],
}


@dataclass
class ChunkExtraction:
    """What one chunk produced."""
    index: int
    questions: List[ExtractedQuestion] = field(default_factory=list)
    processed: bool = False
    error: Optional[str] = None
    aborted: bool = False


def normalize_options(raw: Any) -> Dict[str, str]:
    """
    Normalize options to {"A": ..., "B": ...}.

    Accepts a list (labelled in order) or a dict whose keys may look like
    "(a)", "A.", "b". Values may be strings or {"text": ...} objects.
    """
    options: Dict[str, str] = {}
    if isinstance(raw, list):
        pairs = zip(OPTION_LABELS, raw)
    elif isinstance(raw, dict):
        pairs = ((re.sub(r"[()\[\].:\s]", "", str(key)).upper(), value) for key, value in raw.items())
    else:
        return options

    for label, value in pairs:
        if label not in OPTION_LABELS or label in options:
            continue
        if isinstance(value, dict):
            value = value.get("text", "")
        text = str(value).strip() if value is not None else ""
        if text:
            options[label] = text
    return options


def normalize_difficulty(raw: Any) -> str:
    text = str(raw or "").lower()
    for keyword, level in DIFFICULTY_KEYWORDS:
        if keyword in text:
            return level
    return DEFAULT_DIFFICULTY


def _to_int(value: Any) -> Optional[int]:
    try:
        return int(str(value).strip().lstrip("Qq.").strip())
    except (TypeError, ValueError):
        return None


def normalize_questions(items: Iterable[Any], seen: Set[int]) -> List[ExtractedQuestion]:
    """Turn raw model items into ExtractedQuestion, dropping bad and repeated numbers."""
    questions = []
    for item in items:
        if not isinstance(item, dict):
            continue

        number = _to_int(item.get("question_number"))
        if number is None or number <= 0 or number in seen:
            continue

        text = str(item.get("question_text") or "").strip()
        if not text:
            continue

        options = normalize_options(item.get("options"))
        marks = _to_int(item.get("marks"))
        seen.add(number)
        questions.append(ExtractedQuestion(
            question_number=number,
            question_text=text,
            options=options,
            correct_answer="",
            question_type=QUESTION_TYPE_MCQ if options else QUESTION_TYPE_INTEGER,
            difficulty=normalize_difficulty(item.get("difficulty")),
            marks=marks if marks and marks > 0 else DEFAULT_MARKS,
            explanation=str(item.get("explanation") or "").strip(),
        ))
    return questions


def _question_items(parsed: Any) -> List[Any]:
    if isinstance(parsed, dict):
        items = parsed.get("questions", [])
    else:
        items = parsed
    return items if isinstance(items, list) else []


class QuestionExtractor:
    """Extracts questions chunk by chunk through a structured-generation client."""

    def __init__(self, client, system_prompt: str = EXTRACTION_SYSTEM_PROMPT, verbose: bool = False):
        self.client = client
        self.system_prompt = system_prompt
        self.verbose = verbose

    def build_user_prompt(self, chunk: str, metadata: Dict[str, Any], index: int, total: int) -> str:
        return EXTRACTION_USER_PROMPT.format(
            exam_name=metadata.get("exam_name", "Unknown exam"),
            year=metadata.get("year", "Unknown"),
            paper_type=metadata.get("paper_type", "Unknown"),
            chunk_number=index + 1,
            total_chunks=total,
            chunk=chunk,
        )

    def extract_chunk(
        self,
        chunk: str,
        metadata: Dict[str, Any],
        index: int,
        total: int,
        seen: Optional[Set[int]] = None,
    ) -> ChunkExtraction:
        """Extract questions from one chunk. Failures are returned, not raised."""
        seen = seen if seen is not None else set()
        label = f"Chunk {index + 1}/{total}"
        prompt = self.build_user_prompt(chunk, metadata, index, total)

        try:
            result = self.client.extract(self.system_prompt, prompt, QUESTION_SCHEMA)
        except GenerationError as e:
            if e.is_quota_exhausted:
                log.error("%s: quota exhausted, stopping extraction", label)
                return ChunkExtraction(index, error=f"{label}: quota exhausted (402): {e}", aborted=True)
            if e.is_rate_limited:
                log.warning("%s: rate limited, skipping", label)
                return ChunkExtraction(index, error=f"{label}: rate limited (429), skipped")
            log.warning("%s: generation failed: %s", label, e)
            return ChunkExtraction(index, error=f"{label}: generation failed: {e}")

        if result.tool_arguments is not None:
            parsed = result.tool_arguments
        else:
            try:
                parsed = parse_model_output(result.free_text or "")
            except ResponseParseError as e:
                log.warning("%s: %s", label, e)
                log.debug("%s: raw response: %.500s", label, result.raw_response)
                return ChunkExtraction(index, error=f"{label}: unparseable response: {e}")

        questions = normalize_questions(_question_items(parsed), seen)
        log.info("%s: %d questions", label, len(questions))
        return ChunkExtraction(index, questions=questions, processed=True)

    def extract_chunks(self, chunks: List[str], metadata: Dict[str, Any]) -> List[ChunkExtraction]:
        """Process chunks in order. A quota error stops the remaining chunks."""
        seen: Set[int] = set()
        results = []
        total = len(chunks)
        for index, chunk in enumerate(tqdm(chunks, desc="Extracting", disable=not self.verbose)):
            outcome = self.extract_chunk(chunk, metadata, index, total, seen)
            results.append(outcome)
            if outcome.aborted:
                break
        return results
