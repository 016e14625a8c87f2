"""
Configuration constants for the exam question ingestion pipeline.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Directory paths
PROJECT_ROOT = Path(__file__).parent
OUTPUT_DIR = PROJECT_ROOT / "output"
DATABASE_PATH = Path(os.environ.get("QUESTION_DB_PATH", OUTPUT_DIR / "question_ingest.db"))


class ConfigurationError(ValueError):
    """Raised when a required credential or setting is missing."""


# Gemini configuration
GEMINI_MODEL = "gemini-2.0-flash"
REQUESTS_PER_MINUTE = 15
REQUEST_DELAY = 60 / REQUESTS_PER_MINUTE

# Mathpix configuration
MATHPIX_API_URL = "https://api.mathpix.com/v3"
MATHPIX_ARCHIVE_FORMAT = "mmd.zip"
MATHPIX_TIMEOUT = 120

# Firebase Storage
FIREBASE_STORAGE_BUCKET = os.environ.get("FIREBASE_STORAGE_BUCKET", "")

# Answer key parsing
ANSWER_KEY_HEADERS = [
    r"answer\s*key",
    r"answer\s*sheet",
    r"key\s*answers?",
    r"^\s*answers\s*:?\s*$",
    r"उत्तर\s*कुंजी",
    r"उत्तरमाला",
]
ANSWER_KEY_TAIL_CHARS = 80_000
ANSWER_KEY_MIN_TABLE_LINES = 5
MIN_QUESTION_NUMBER = 1
MAX_QUESTION_NUMBER = 300

# Option codes printed as digits in numeric answer keys
NUMERIC_OPTION_MAP = {"1": "A", "2": "B", "3": "C", "4": "D"}

# Chunking
CHUNK_SIZE = 50_000
CHUNK_BOUNDARY_WINDOW = 0.7

# Question normalization
OPTION_LABELS = ["A", "B", "C", "D", "E"]
DIFFICULTY_LEVELS = ["Low", "Medium", "Intermediate", "Advanced"]
DEFAULT_DIFFICULTY = "Medium"
DEFAULT_MARKS = 4

# Substring -> difficulty level, checked in order
DIFFICULTY_KEYWORDS = [
    ("intermediate", "Intermediate"),
    ("advanced", "Advanced"),
    ("hard", "Advanced"),
    ("difficult", "Advanced"),
    ("low", "Low"),
    ("easy", "Low"),
    ("basic", "Low"),
    ("medium", "Medium"),
    ("moderate", "Medium"),
]

MISSING_ANSWER_REPORT_LIMIT = 20

# Conversion polling
POLL_INTERVAL_SECONDS = 10
MAX_POLL_ATTEMPTS = 60
PROGRESS_POLL_BASE = 40
PROGRESS_POLL_SPAN = 50

# Question extraction prompts
EXTRACTION_SYSTEM_PROMPT = """You are an expert at extracting exam questions from OCR text.

Extract every multiple-choice or numeric question in the text you are given.

Rules:
1. Copy the question text exactly, keeping LaTeX math notation as written.
2. Return options under the keys A, B, C, D (and E only if present).
3. Do NOT determine or guess the correct answer. Answers come from a separate answer key.
4. Rate difficulty as one of: Low, Medium, Intermediate, Advanced.
5. Skip instructions, headers, and answer-key tables.
6. Escape every backslash in LaTeX (write \\\\frac, not \\frac) so the output is valid JSON.
"""

EXTRACTION_USER_PROMPT = """Exam: {exam_name}
Year: {year}
Paper: {paper_type}
Chunk {chunk_number} of {total_chunks}

Return JSON of the form:
{{"questions": [{{"question_number": 1, "question_text": "...", "options": {{"A": "...", "B": "...", "C": "...", "D": "..."}}, "difficulty": "Medium", "marks": 4, "explanation": ""}}]}}

=== TEXT ===
{chunk}
"""
