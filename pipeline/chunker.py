"""
Split long converted text into chunks that start at question boundaries.
"""

import logging
import re
from typing import List

from config import CHUNK_SIZE, CHUNK_BOUNDARY_WINDOW

log = logging.getLogger(__name__)

# A line that opens a question: "12.", "12)", "Q12.", "Q.12)"
QUESTION_START = re.compile(r"^[ \t]*(?:Q\s*\.?\s*)?\d{1,3}[.)]", re.MULTILINE)


def find_split_point(text: str, start: int, max_size: int) -> int:
    """
    Return the end offset for the chunk beginning at `start`.

    Picks the last question start that lies between 70% and 100% of the
    limit (strictly before it). Falls back to a hard cut at the limit.
    """
    limit = start + max_size
    window_start = start + max(1, int(max_size * CHUNK_BOUNDARY_WINDOW))

    best = None
    for match in QUESTION_START.finditer(text, window_start, min(len(text), limit + 16)):
        if window_start <= match.start() < limit:
            best = match.start()

    return best if best is not None else limit


def chunk_text(text: str, max_size: int = CHUNK_SIZE) -> List[str]:
    """
    Split text into ordered chunks of at most max_size characters.

    Joining the chunks gives back the input exactly.
    """
    if max_size <= 0:
        raise ValueError(f"max_size must be positive, got {max_size}")

    if len(text) <= max_size:
        return [text]

    chunks = []
    start = 0
    while len(text) - start > max_size:
        end = find_split_point(text, start, max_size)
        chunks.append(text[start:end])
        start = end
    chunks.append(text[start:])

    log.info("Split %d chars into %d chunks (limit %d)", len(text), len(chunks), max_size)
    return chunks
