"""
Answer key parsing from converted solutions text.

The answer key is read with regular expressions only. Patterns live in ordered
tables so that priority is data: the first pattern to claim a question number
keeps it.
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Pattern

from config import (
    ANSWER_KEY_HEADERS,
    ANSWER_KEY_TAIL_CHARS,
    ANSWER_KEY_MIN_TABLE_LINES,
    MIN_QUESTION_NUMBER,
    MAX_QUESTION_NUMBER,
    NUMERIC_OPTION_MAP,
)

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnswerPattern:
    """A regex with two groups (question number, raw value) and how to read the value."""
    name: str
    regex: Pattern
    interpret: Callable[[str], Optional[str]]


def as_letter(value: str) -> Optional[str]:
    return value.strip().upper()


def as_option_code(value: str) -> Optional[str]:
    """Numeric option code (1-4) to its letter."""
    return NUMERIC_OPTION_MAP.get(value.strip())


def as_integer(value: str) -> Optional[str]:
    return value.strip()


def as_table_value(value: str) -> Optional[str]:
    """Table cells hold a letter, an option code, or an integer answer."""
    clean = value.strip().strip("()[]").strip()
    if re.fullmatch(r"[A-Da-d]", clean):
        return clean.upper()
    if clean in NUMERIC_OPTION_MAP:
        return NUMERIC_OPTION_MAP[clean]
    if re.fullmatch(r"-?\d+", clean):
        return clean
    return None


_NUM = r"(?<![\d.])(\d{1,3})"

LETTERED_PATTERNS = [
    AnswerPattern("N.(A)", re.compile(_NUM + r"\s*[.)]\s*\(\s*([A-Da-d])\s*\)"), as_letter),
    AnswerPattern("N: A", re.compile(_NUM + r"\s*[:\-]\s*\(?([A-D])\)?(?![A-Za-z])"), as_letter),
    AnswerPattern(
        "Q.N: A",
        re.compile(r"\bQ\s*\.?\s*(\d{1,3})\s*[:.)\-]?\s*\(?([A-D])\)?(?![A-Za-z])"),
        as_letter,
    ),
    AnswerPattern(
        "Ans N: A",
        re.compile(r"\b[Aa]ns(?:wer)?\s*\.?\s*(\d{1,3})\s*[:.)\-]?\s*\(?([A-D])\)?(?![A-Za-z])"),
        as_letter,
    ),
    AnswerPattern("whitespace table", re.compile(_NUM + r"[ \t]{2,}([A-D])(?![A-Za-z])"), as_letter),
    AnswerPattern("N=A", re.compile(_NUM + r"\s*=\s*\(?([A-D])\)?(?![A-Za-z])"), as_letter),
    AnswerPattern(
        "bare N A",
        re.compile(r"^[ \t]*(\d{1,3})[ \t]+\(?([A-D])\)?[ \t]*$", re.MULTILINE),
        as_letter,
    ),
]

NUMERIC_OPTION_PATTERNS = [
    AnswerPattern("N.(d)", re.compile(_NUM + r"\s*[.)]\s*\(\s*([1-4])\s*\)"), as_option_code),
    AnswerPattern("N: (d)", re.compile(_NUM + r"\s*[:=\-]\s*\(\s*([1-4])\s*\)"), as_option_code),
    AnswerPattern(
        "Q.N: d",
        re.compile(r"\bQ\s*\.?\s*(\d{1,3})\s*[:.)\-]\s*\(?([1-4])\)?(?![\d.])"),
        as_option_code,
    ),
]

INTEGER_PATTERNS = [
    AnswerPattern("N.(8788)", re.compile(_NUM + r"\s*[.)]\s*\(\s*(-?\d+)\s*\)"), as_integer),
    AnswerPattern(
        "Q.N: 8788",
        re.compile(r"\b(?:Q\s*\.?|[Aa]ns(?:wer)?\s*\.?)\s*(\d{1,3})\s*[:=\-]\s*(-?\d{2,})(?![\d.])"),
        as_integer,
    ),
]

# Priority order: lettered, then numeric option codes, then integer answers
ANSWER_PATTERNS: List[AnswerPattern] = LETTERED_PATTERNS + NUMERIC_OPTION_PATTERNS + INTEGER_PATTERNS

TABLE_ENTRY_PATTERN = re.compile(_NUM + r"\s*[.)]\s*\(\s*([A-Da-d]|-?\d+)\s*\)")

_HEADER_PATTERNS = [re.compile(p, re.IGNORECASE | re.MULTILINE) for p in ANSWER_KEY_HEADERS]


def _in_range(number: int) -> bool:
    return MIN_QUESTION_NUMBER <= number <= MAX_QUESTION_NUMBER


class AnswerParser:
    """Extracts {question_number: answer} from the text of an answer key."""

    def __init__(
        self,
        patterns: Optional[List[AnswerPattern]] = None,
        tail_chars: int = ANSWER_KEY_TAIL_CHARS,
        min_table_lines: int = ANSWER_KEY_MIN_TABLE_LINES,
    ):
        self.patterns = patterns if patterns is not None else ANSWER_PATTERNS
        self.tail_chars = tail_chars
        self.min_table_lines = min_table_lines

    def find_answer_region(self, text: str) -> str:
        """
        Return the part of the text that holds the answer key.

        The earliest answer-key header wins; without one, the tail of the
        document is used since keys are printed at the end.
        """
        earliest = None
        for pattern in _HEADER_PATTERNS:
            match = pattern.search(text)
            if match and (earliest is None or match.start() < earliest):
                earliest = match.start()

        if earliest is not None:
            return text[earliest:]
        return text[-self.tail_chars:]

    def parse(self, text: str) -> Dict[int, str]:
        """
        Parse an answer key out of a document.

        Never raises; an empty dict means nothing recognisable was found.
        """
        if not text:
            return {}

        region = self.find_answer_region(text)
        answers: Dict[int, str] = {}

        table_lines = [line for line in region.splitlines() if "|" in line]
        table_count = 0
        if len(table_lines) > self.min_table_lines:
            table_count = self._merge(answers, self.parse_table(table_lines))

        pattern_counts = {}
        for pattern in self.patterns:
            found = self._apply_pattern(pattern, region)
            added = self._merge(answers, found)
            if added:
                pattern_counts[pattern.name] = added

        log.info(
            "Answer key: %d entries (%d from tables, patterns: %s)",
            len(answers), table_count, pattern_counts or "none",
        )
        return answers

    def parse_table(self, table_lines: List[str]) -> Dict[int, str]:
        """Parse pipe-delimited answer tables: `N. (value)` cells first, else two-column rows."""
        found: Dict[int, str] = {}
        for line in table_lines:
            for match in TABLE_ENTRY_PATTERN.finditer(line):
                self._add(found, match.group(1), match.group(2), as_table_value)

        if found:
            return found

        for line in table_lines:
            cells = [cell.strip() for cell in line.strip().strip("|").split("|")]
            for i in range(len(cells) - 1):
                if re.fullmatch(r"\d{1,3}", cells[i]):
                    self._add(found, cells[i], cells[i + 1], as_table_value)
        return found

    def _apply_pattern(self, pattern: AnswerPattern, region: str) -> Dict[int, str]:
        found: Dict[int, str] = {}
        for match in pattern.regex.finditer(region):
            self._add(found, match.group(1), match.group(2), pattern.interpret)
        return found

    @staticmethod
    def _add(found: Dict[int, str], raw_number: str, raw_value: str, interpret) -> None:
        number = int(raw_number)
        if not _in_range(number) or number in found:
            return
        value = interpret(raw_value)
        if value:
            found[number] = value

    @staticmethod
    def _merge(answers: Dict[int, str], found: Dict[int, str]) -> int:
        """Copy entries for numbers not yet answered; return how many were added."""
        added = 0
        for number, value in found.items():
            if number not in answers:
                answers[number] = value
                added += 1
        return added


def extract_answer_key(text: str) -> Dict[int, str]:
    """Convenience wrapper around AnswerParser with default settings."""
    return AnswerParser().parse(text)


if __name__ == "__main__":
    import sys
    from pathlib import Path

    logging.basicConfig(level=logging.INFO)

    if len(sys.argv) > 1:
        text_path = Path(sys.argv[1])
        if not text_path.exists():
            print(f"File not found: {text_path}")
            sys.exit(1)

        key = extract_answer_key(text_path.read_text(encoding="utf-8"))
        print(f"\nExtracted {len(key)} answers from {text_path.name}:")
        for number in sorted(key):
            print(f"  Q{number}: {key[number]}")
    else:
        print("Usage: python -m pipeline.answer_parser <solutions.mmd>")
