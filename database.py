"""
SQLite record store for document pairs, conversion jobs, extracted images,
job logs and extracted questions.
"""

import json
import logging
import sqlite3
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from config import DATABASE_PATH
from pipeline.models import (
    ConversionJob,
    ExtractedImage,
    ExtractedQuestion,
    UploadedDocumentPair,
    STATUS_FAILED,
    STATUS_PENDING,
    STATUS_PROCESSING,
    utc_now,
)

log = logging.getLogger(__name__)


SCHEMA = """
CREATE TABLE IF NOT EXISTS document_pairs (
    id TEXT PRIMARY KEY,
    questions_file_path TEXT NOT NULL,
    questions_file_name TEXT NOT NULL,
    solutions_file_path TEXT NOT NULL,
    solutions_file_name TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',  -- pending, processing, completed, failed
    current_job_id TEXT,
    questions_text TEXT,
    solutions_text TEXT,
    expected_titles TEXT,                    -- JSON array
    validation_status TEXT,                  -- valid, mismatch, or NULL when not checked
    error_message TEXT,
    created_at TEXT NOT NULL,
    processing_started_at TEXT,
    processing_completed_at TEXT
);

CREATE TABLE IF NOT EXISTS conversion_jobs (
    id TEXT PRIMARY KEY,
    document_id TEXT NOT NULL REFERENCES document_pairs(id),
    status TEXT NOT NULL DEFAULT 'pending',
    progress_percentage INTEGER NOT NULL DEFAULT 0,
    current_step TEXT DEFAULT '',
    questions_external_id TEXT,
    solutions_external_id TEXT,
    error_message TEXT,
    created_at TEXT NOT NULL,
    started_at TEXT,
    completed_at TEXT
);

CREATE TABLE IF NOT EXISTS extracted_images (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    document_id TEXT NOT NULL REFERENCES document_pairs(id),
    side TEXT NOT NULL,                      -- questions, solutions
    original_filename TEXT NOT NULL,
    storage_url TEXT NOT NULL,
    created_at TEXT NOT NULL,
    UNIQUE(document_id, side, original_filename)
);

CREATE TABLE IF NOT EXISTS job_logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    job_id TEXT NOT NULL,
    log_level TEXT NOT NULL,
    message TEXT NOT NULL,
    details TEXT,                            -- JSON object
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS extracted_questions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    document_id TEXT NOT NULL REFERENCES document_pairs(id),
    question_number INTEGER NOT NULL,
    question_text TEXT NOT NULL,
    options TEXT,                            -- JSON: {"A": "...", "B": "..."}
    correct_answer TEXT DEFAULT '',
    question_type TEXT NOT NULL,             -- mcq, integer
    difficulty TEXT NOT NULL,
    marks INTEGER NOT NULL,
    explanation TEXT DEFAULT '',
    verification_status TEXT NOT NULL DEFAULT 'pending',
    created_at TEXT NOT NULL,
    UNIQUE(document_id, question_number)
);

CREATE INDEX IF NOT EXISTS idx_jobs_document ON conversion_jobs(document_id);
CREATE INDEX IF NOT EXISTS idx_jobs_status ON conversion_jobs(status);
CREATE INDEX IF NOT EXISTS idx_logs_job ON job_logs(job_id);
CREATE INDEX IF NOT EXISTS idx_questions_document ON extracted_questions(document_id);
"""

_DOCUMENT_COLUMNS = {
    "status", "current_job_id", "questions_text", "solutions_text", "validation_status",
    "error_message", "processing_started_at", "processing_completed_at", "expected_titles",
}
_JOB_COLUMNS = {
    "status", "progress_percentage", "current_step", "questions_external_id",
    "solutions_external_id", "error_message", "started_at", "completed_at",
}


def _new_id() -> str:
    return uuid.uuid4().hex


def _row_to_dict(row: sqlite3.Row) -> Dict[str, Any]:
    """Convert a database row to a dictionary, decoding JSON columns."""
    d = dict(row)
    for key in ("expected_titles", "options", "details"):
        if d.get(key):
            d[key] = json.loads(d[key])
    return d


def _assignments(fields: Dict[str, Any], allowed: Iterable[str]) -> str:
    unknown = set(fields) - set(allowed)
    if unknown:
        raise ValueError(f"Unknown columns: {', '.join(sorted(unknown))}")
    return ", ".join(f"{column} = ?" for column in fields)


class RecordStore:
    """Job/document record store backed by a single SQLite file."""

    def __init__(self, db_path: Path = DATABASE_PATH):
        self.db_path = Path(db_path)

    @contextmanager
    def get_connection(self):
        """Context manager for database connections."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def init_db(self):
        """Initialize the database with schema."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self.get_connection() as conn:
            conn.executescript(SCHEMA)
        log.info("Database initialized at %s", self.db_path)

    # ------------------------------------------------------------------
    # Document pairs
    # ------------------------------------------------------------------

    def create_document_pair(
        self,
        questions_file_path: str,
        solutions_file_path: str,
        questions_file_name: Optional[str] = None,
        solutions_file_name: Optional[str] = None,
        expected_titles: Optional[List[str]] = None,
        document_id: Optional[str] = None,
    ) -> UploadedDocumentPair:
        """Register an uploaded questions/solutions pair in `pending` state."""
        document = UploadedDocumentPair(
            id=document_id or _new_id(),
            questions_file_path=questions_file_path,
            solutions_file_path=solutions_file_path,
            questions_file_name=questions_file_name or Path(questions_file_path).name,
            solutions_file_name=solutions_file_name or Path(solutions_file_path).name,
            expected_titles=list(expected_titles or []),
            created_at=utc_now(),
        )
        with self.get_connection() as conn:
            conn.execute(
                """
                INSERT INTO document_pairs (
                    id, questions_file_path, questions_file_name, solutions_file_path,
                    solutions_file_name, status, expected_titles, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    document.id,
                    document.questions_file_path,
                    document.questions_file_name,
                    document.solutions_file_path,
                    document.solutions_file_name,
                    document.status,
                    json.dumps(document.expected_titles),
                    document.created_at,
                ),
            )
        return document

    def get_document_pair(self, document_id: str) -> Optional[UploadedDocumentPair]:
        with self.get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM document_pairs WHERE id = ?", (document_id,)
            ).fetchone()
        if not row:
            return None
        data = _row_to_dict(row)
        data["expected_titles"] = data.get("expected_titles") or []
        return UploadedDocumentPair(**data)

    def claim_document_pair(
        self,
        document_id: str,
        from_statuses: Iterable[str] = (STATUS_PENDING, STATUS_FAILED),
    ) -> bool:
        """
        Atomically move a pair to `processing`.

        Returns False when the pair is not in one of from_statuses, so a pair
        can only have one active conversion.
        """
        statuses = list(from_statuses)
        placeholders = ", ".join("?" for _ in statuses)
        with self.get_connection() as conn:
            cursor = conn.execute(
                f"""
                UPDATE document_pairs
                SET status = ?, processing_started_at = ?, processing_completed_at = NULL,
                    error_message = NULL
                WHERE id = ? AND status IN ({placeholders})
                """,
                (STATUS_PROCESSING, utc_now(), document_id, *statuses),
            )
            return cursor.rowcount == 1

    def update_document_pair(self, document_id: str, **fields) -> None:
        if "expected_titles" in fields:
            fields["expected_titles"] = json.dumps(fields["expected_titles"])
        with self.get_connection() as conn:
            conn.execute(
                f"UPDATE document_pairs SET {_assignments(fields, _DOCUMENT_COLUMNS)} WHERE id = ?",
                (*fields.values(), document_id),
            )

    # ------------------------------------------------------------------
    # Conversion jobs
    # ------------------------------------------------------------------

    def create_job(self, document_id: str) -> ConversionJob:
        job = ConversionJob(id=_new_id(), document_id=document_id, created_at=utc_now())
        with self.get_connection() as conn:
            conn.execute(
                """
                INSERT INTO conversion_jobs (id, document_id, status, progress_percentage, current_step, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (job.id, job.document_id, job.status, job.progress_percentage, job.current_step, job.created_at),
            )
        return job

    def get_job(self, job_id: str) -> Optional[ConversionJob]:
        with self.get_connection() as conn:
            row = conn.execute("SELECT * FROM conversion_jobs WHERE id = ?", (job_id,)).fetchone()
        return ConversionJob(**_row_to_dict(row)) if row else None

    def get_jobs(self, status: Optional[str] = None) -> List[ConversionJob]:
        query = "SELECT * FROM conversion_jobs"
        params = []
        if status:
            query += " WHERE status = ?"
            params.append(status)
        query += " ORDER BY created_at"
        with self.get_connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [ConversionJob(**_row_to_dict(row)) for row in rows]

    def update_job(self, job_id: str, **fields) -> None:
        with self.get_connection() as conn:
            conn.execute(
                f"UPDATE conversion_jobs SET {_assignments(fields, _JOB_COLUMNS)} WHERE id = ?",
                (*fields.values(), job_id),
            )

    # ------------------------------------------------------------------
    # Job logs
    # ------------------------------------------------------------------

    def log_job_event(
        self, job_id: str, level: str, message: str, details: Optional[Dict[str, Any]] = None
    ) -> None:
        """Append an entry to the job log."""
        with self.get_connection() as conn:
            conn.execute(
                "INSERT INTO job_logs (job_id, log_level, message, details, created_at) VALUES (?, ?, ?, ?, ?)",
                (job_id, level, message, json.dumps(details) if details else None, utc_now()),
            )

    def get_job_logs(self, job_id: str) -> List[Dict[str, Any]]:
        with self.get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM job_logs WHERE job_id = ? ORDER BY id", (job_id,)
            ).fetchall()
        return [_row_to_dict(row) for row in rows]

    # ------------------------------------------------------------------
    # Extracted images
    # ------------------------------------------------------------------

    def record_image(self, image: ExtractedImage) -> None:
        """Store an extracted image. An existing (document, side, filename) row is kept."""
        with self.get_connection() as conn:
            conn.execute(
                """
                INSERT OR IGNORE INTO extracted_images (document_id, side, original_filename, storage_url, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (image.document_id, image.side, image.original_filename, image.storage_url, utc_now()),
            )

    def get_images(self, document_id: str, side: Optional[str] = None) -> List[ExtractedImage]:
        query = "SELECT document_id, side, original_filename, storage_url FROM extracted_images WHERE document_id = ?"
        params = [document_id]
        if side:
            query += " AND side = ?"
            params.append(side)
        query += " ORDER BY id"
        with self.get_connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [ExtractedImage(**dict(row)) for row in rows]

    # ------------------------------------------------------------------
    # Extracted questions
    # ------------------------------------------------------------------

    def save_questions(self, document_id: str, questions: List[ExtractedQuestion]) -> int:
        """Store questions for human verification, replacing earlier runs' rows."""
        now = utc_now()
        with self.get_connection() as conn:
            conn.executemany(
                """
                INSERT OR REPLACE INTO extracted_questions (
                    document_id, question_number, question_text, options, correct_answer,
                    question_type, difficulty, marks, explanation, verification_status, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 'pending', ?)
                """,
                [
                    (
                        document_id,
                        q.question_number,
                        q.question_text,
                        json.dumps(q.options) if q.options else None,
                        q.correct_answer,
                        q.question_type,
                        q.difficulty,
                        q.marks,
                        q.explanation,
                        now,
                    )
                    for q in questions
                ],
            )
        return len(questions)

    def get_questions(self, document_id: str) -> List[Dict[str, Any]]:
        with self.get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM extracted_questions WHERE document_id = ? ORDER BY question_number",
                (document_id,),
            ).fetchall()
        return [_row_to_dict(row) for row in rows]
