"""
Merge per-chunk extraction output and apply the answer key.
"""

import logging
import re
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List

from config import MISSING_ANSWER_REPORT_LIMIT
from pipeline.models import (
    ExtractedQuestion,
    ExtractionResult,
    QUESTION_TYPE_MCQ,
    QUESTION_TYPE_INTEGER,
)

log = logging.getLogger(__name__)


@dataclass
class MergeReport:
    """Merged questions plus the numbers the answer key did not cover."""
    questions: List[ExtractedQuestion] = field(default_factory=list)
    missing_answers: List[int] = field(default_factory=list)
    missing_answer_count: int = 0


def classify_answer(answer: str) -> str:
    """Single letter A-D is an MCQ answer; anything else is an integer answer."""
    return QUESTION_TYPE_MCQ if re.fullmatch(r"[A-D]", answer) else QUESTION_TYPE_INTEGER


def merge_questions(
    chunk_outputs: Iterable[List[ExtractedQuestion]],
    answer_key: Dict[int, str],
    report_limit: int = MISSING_ANSWER_REPORT_LIMIT,
) -> MergeReport:
    """
    Union questions from all chunks and fill in answers from the key.

    The first question seen for a number is kept. Answers come only from the
    answer key; questions without a key entry stay unanswered.
    """
    merged: Dict[int, ExtractedQuestion] = {}
    for questions in chunk_outputs:
        for question in questions:
            if question.question_number not in merged:
                merged[question.question_number] = question

    report = MergeReport()
    for number in sorted(merged):
        question = merged[number]
        answer = answer_key.get(number)
        if answer:
            question = replace(question, correct_answer=answer, question_type=classify_answer(answer))
        else:
            question = replace(question, correct_answer="")
            report.missing_answer_count += 1
            if len(report.missing_answers) < report_limit:
                report.missing_answers.append(number)
        report.questions.append(question)

    if report.missing_answer_count:
        log.warning(
            "%d questions have no answer key entry (first: %s)",
            report.missing_answer_count, report.missing_answers,
        )
    return report


def build_result(
    report: MergeReport,
    errors: List[str],
    chunks_processed: int,
    total_chunks: int,
    answer_key_size: int,
) -> ExtractionResult:
    """Wrap a merge report in the result envelope."""
    has_questions = bool(report.questions)
    return ExtractionResult(
        success=has_questions,
        partial=has_questions and bool(errors),
        questions=report.questions,
        chunks_processed=chunks_processed,
        total_chunks=total_chunks,
        errors=list(errors),
        missing_answers=report.missing_answers,
        missing_answer_count=report.missing_answer_count,
        answer_key_size=answer_key_size,
    )
