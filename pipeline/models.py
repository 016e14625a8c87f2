"""
Record types shared by the extraction pipeline and the conversion orchestrator.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

# Processing states for document pairs and conversion jobs
STATUS_PENDING = "pending"
STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"

SIDE_QUESTIONS = "questions"
SIDE_SOLUTIONS = "solutions"
SIDES = (SIDE_QUESTIONS, SIDE_SOLUTIONS)

VALIDATION_VALID = "valid"
VALIDATION_MISMATCH = "mismatch"

QUESTION_TYPE_MCQ = "mcq"
QUESTION_TYPE_INTEGER = "integer"


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class UploadedDocumentPair:
    """A questions file and a solutions file submitted together."""
    id: str
    questions_file_path: str
    solutions_file_path: str
    questions_file_name: str = "questions.pdf"
    solutions_file_name: str = "solutions.pdf"
    status: str = STATUS_PENDING
    current_job_id: Optional[str] = None
    questions_text: Optional[str] = None
    solutions_text: Optional[str] = None
    expected_titles: List[str] = field(default_factory=list)
    validation_status: Optional[str] = None
    error_message: Optional[str] = None
    created_at: Optional[str] = None
    processing_started_at: Optional[str] = None
    processing_completed_at: Optional[str] = None

    def file_path(self, side: str) -> str:
        return self.questions_file_path if side == SIDE_QUESTIONS else self.solutions_file_path

    def file_name(self, side: str) -> str:
        return self.questions_file_name if side == SIDE_QUESTIONS else self.solutions_file_name


@dataclass
class ConversionJob:
    """One orchestration run across both documents of a pair."""
    id: str
    document_id: str
    status: str = STATUS_PENDING
    progress_percentage: int = 0
    current_step: str = ""
    questions_external_id: Optional[str] = None
    solutions_external_id: Optional[str] = None
    error_message: Optional[str] = None
    created_at: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None

    def external_id(self, side: str) -> Optional[str]:
        if side == SIDE_QUESTIONS:
            return self.questions_external_id
        return self.solutions_external_id


@dataclass
class ExtractedImage:
    """An image pulled out of a conversion archive and uploaded to object storage."""
    document_id: str
    side: str
    original_filename: str
    storage_url: str


@dataclass
class ExtractedQuestion:
    """A question as produced by the extractor and completed by the merge step."""
    question_number: int
    question_text: str
    options: Dict[str, str] = field(default_factory=dict)
    correct_answer: str = ""
    question_type: str = QUESTION_TYPE_MCQ
    difficulty: str = "Medium"
    marks: int = 4
    explanation: str = ""


@dataclass
class ExtractionResult:
    """Outcome of one extraction run over a document pair's text."""
    success: bool
    partial: bool = False
    questions: List[ExtractedQuestion] = field(default_factory=list)
    chunks_processed: int = 0
    total_chunks: int = 0
    errors: List[str] = field(default_factory=list)
    missing_answers: List[int] = field(default_factory=list)
    missing_answer_count: int = 0
    answer_key_size: int = 0

    @property
    def questions_count(self) -> int:
        return len(self.questions)
