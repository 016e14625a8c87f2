"""
Parsing of free-text model responses into JSON.

Responses are tried against an ordered list of strategies. Each strategy is a
pure function that either returns the parsed value or raises ValueError; the
first one to succeed wins.
"""

import json
import re
from typing import Any, Callable, List, Tuple

# LaTeX commands whose first letter is also a valid JSON escape (\b \f \n \r \t)
LATEX_COMMANDS = {
    "bar", "beta", "bf", "big", "bigg", "binom", "bmod", "boxed", "bullet",
    "frac", "forall",
    "nabla", "ne", "neg", "neq", "ni", "not", "nu",
    "rangle", "rceil", "rfloor", "rho", "right", "rightarrow", "rm",
    "tan", "tau", "text", "textbf", "tfrac", "therefore", "theta", "tilde",
    "times", "to", "top", "triangle",
}

_FENCE = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)
_ESCAPE = re.compile(r"\\(\\|u[0-9a-fA-F]{4}|[A-Za-z]+|.)", re.DOTALL)


class ResponseParseError(ValueError):
    """Raised when no strategy could parse a model response."""

    def __init__(self, attempts: List[Tuple[str, str]]):
        self.attempts = attempts
        summary = "; ".join(f"{name}: {error}" for name, error in attempts)
        super().__init__(f"Could not parse model response ({summary})")


def strip_code_fences(text: str) -> str:
    """Remove ```json ... ``` wrappers, including an unterminated opening fence."""
    text = text.strip()
    match = _FENCE.search(text)
    if match:
        return match.group(1).strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
    return text.strip()


def _fix_escape(match: re.Match) -> str:
    token = match.group(1)
    if token == "\\" or token in ('"', "/"):
        return match.group(0)
    if token[0] == "u" and re.fullmatch(r"u[0-9a-fA-F]{4}", token):
        return match.group(0)
    if token[0] in "bfnrt" and token not in LATEX_COMMANDS:
        return match.group(0)
    return "\\\\" + token


def sanitize_escapes(text: str) -> str:
    """
    Double backslashes that do not form valid JSON escapes.

    Covers `\\underline`-style sequences that look like broken `\\u` escapes,
    LaTeX commands such as `\\frac` or `\\times` that would otherwise be read
    as control characters, and any other stray backslash.
    """
    return _ESCAPE.sub(_fix_escape, text)


def find_balanced_array(text: str, open_index: int) -> str:
    """Return the `[...]` substring starting at open_index, honouring JSON strings."""
    depth = 0
    in_string = False
    escaped = False
    for i in range(open_index, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "[":
            depth += 1
        elif ch == "]":
            depth -= 1
            if depth == 0:
                return text[open_index:i + 1]
    raise ValueError("unbalanced brackets in questions array")


def parse_direct(text: str) -> Any:
    return json.loads(text)


def parse_without_fences(text: str) -> Any:
    return json.loads(strip_code_fences(text))


def parse_sanitized(text: str) -> Any:
    return json.loads(sanitize_escapes(strip_code_fences(text)))


def parse_questions_array(text: str) -> Any:
    cleaned = sanitize_escapes(strip_code_fences(text))
    key = cleaned.find('"questions"')
    open_index = cleaned.find("[", key if key >= 0 else 0)
    if open_index < 0:
        raise ValueError("no questions array found")
    return {"questions": json.loads(find_balanced_array(cleaned, open_index))}


PARSE_STRATEGIES: List[Tuple[str, Callable[[str], Any]]] = [
    ("direct", parse_direct),
    ("strip_fences", parse_without_fences),
    ("sanitize_escapes", parse_sanitized),
    ("questions_array", parse_questions_array),
]


def parse_model_output(text: str, strategies=None) -> Any:
    """Run the strategies in order and return the first successful parse."""
    attempts = []
    for name, strategy in strategies or PARSE_STRATEGIES:
        try:
            return strategy(text)
        except ValueError as e:
            attempts.append((name, str(e)))
    raise ResponseParseError(attempts)
