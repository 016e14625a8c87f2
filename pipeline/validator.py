"""
Validation utilities for converted documents and extraction results.
"""

from typing import Dict, List, Optional
from dataclasses import dataclass, field

from pipeline.models import ExtractionResult, VALIDATION_VALID, VALIDATION_MISMATCH


@dataclass
class ValidationResult:
    """Result of validation check."""
    is_valid: bool
    message: str
    details: Dict = field(default_factory=dict)

    @property
    def status(self) -> str:
        return VALIDATION_VALID if self.is_valid else VALIDATION_MISMATCH


class Validator:
    """Validates converted text and extraction results."""

    def validate_titles(self, text: str, expected_titles: List[str]) -> Optional[ValidationResult]:
        """
        Check that the questions text mentions each expected chapter/topic title.

        Case-insensitive substring match. Returns None when there is nothing to
        check. The result is advisory only.
        """
        titles = [title.strip() for title in expected_titles if title and title.strip()]
        if not titles:
            return None

        haystack = (text or "").lower()
        missing = [title for title in titles if title.lower() not in haystack]

        if missing:
            return ValidationResult(
                is_valid=False,
                message=f"Title mismatch: {', '.join(missing)} not found in questions text",
                details={"missing": missing},
            )
        return ValidationResult(
            is_valid=True,
            message=f"All {len(titles)} expected titles found",
        )

    def validate_answer_key_coverage(self, result: ExtractionResult) -> ValidationResult:
        """Validate that every extracted question received an answer."""
        if result.missing_answer_count:
            return ValidationResult(
                is_valid=False,
                message=(
                    f"Missing answers for {result.missing_answer_count} questions: "
                    f"{', '.join(f'Q{n}' for n in result.missing_answers)}"
                ),
                details={"missing": result.missing_answers},
            )
        return ValidationResult(
            is_valid=True,
            message="All questions have answers",
        )


def generate_extraction_report(result: ExtractionResult, title: str = "") -> str:
    """
    Generate a human-readable extraction report.
    """
    if not result.success:
        status = "FAILED"
    elif result.partial:
        status = "PARTIAL"
    else:
        status = "OK"

    lines = [
        "=" * 50,
        "EXTRACTION REPORT",
        "=" * 50,
        "",
    ]
    if title:
        lines.extend([f"Document: {title}", ""])

    mcq = sum(1 for q in result.questions if q.question_type == "mcq")
    lines.extend([
        f"Chunks processed: {result.chunks_processed}/{result.total_chunks}",
        f"Answer key entries: {result.answer_key_size}",
        f"Questions: {result.questions_count} ({mcq} MCQ, {result.questions_count - mcq} integer)",
    ])

    if result.errors:
        lines.extend(["", "ERRORS:"])
        for error in result.errors:
            lines.append(f"  ! {error}")

    if result.missing_answer_count:
        lines.extend(["", "MISSING ANSWERS:"])
        shown = ", ".join(f"Q{n}" for n in result.missing_answers)
        extra = result.missing_answer_count - len(result.missing_answers)
        lines.append(f"  * {shown}" + (f" (+{extra} more)" if extra > 0 else ""))

    lines.extend([
        "",
        "-" * 50,
        f"Status: {status}",
        "=" * 50,
    ])

    return "\n".join(lines)
