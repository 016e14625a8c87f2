from __future__ import annotations

from pipeline.answer_parser import AnswerParser, extract_answer_key


# ======================================================================
# Regex battery
# ======================================================================

class TestPatterns:
    def test_numeric_option_codes_and_integer_answers(self):
        key = extract_answer_key("1. (3)\n2. (4)\n21. (8788)")
        assert key == {1: "C", 2: "D", 21: "8788"}

    def test_lettered_variants(self):
        text = (
            "ANSWER KEY\n"
            "1. (A)\n"
            "2: B\n"
            "Q.3: C\n"
            "Ans 4: D\n"
            "5    A\n"
            "6=B\n"
            "7 C\n"
        )
        assert extract_answer_key(text) == {1: "A", 2: "B", 3: "C", 4: "D", 5: "A", 6: "B", 7: "C"}

    def test_lowercase_parenthesised_letter_is_uppercased(self):
        assert extract_answer_key("Answer Key\n12. (b)") == {12: "B"}

    def test_pattern_family_decides_digit_meaning(self):
        key = extract_answer_key("ANSWER KEY\nQ.5: 3\nQ.6: 45\n7. (9)")
        assert key == {5: "C", 6: "45", 7: "9"}

    def test_out_of_range_numbers_are_dropped(self):
        key = extract_answer_key("ANSWER KEY\n0. (A)\n301. (B)\n300. (C)")
        assert key == {300: "C"}

    def test_first_match_wins(self):
        key = extract_answer_key("ANSWER KEY\n5. (A)\n5: B\n5 = C")
        assert key == {5: "A"}

    def test_no_answers_returns_empty(self):
        assert extract_answer_key("") == {}
        assert extract_answer_key("no answers here, just prose.") == {}

    def test_inline_option_list_is_not_an_answer_key(self):
        text = "Solutions\n7. Velocity is doubled.\n(A) 1 (B) 2 (C) 3 (D) 4\nHence the answer is (B)."
        assert extract_answer_key(text) == {}


# ======================================================================
# Region selection
# ======================================================================

class TestRegion:
    def test_hindi_header_restricts_region(self):
        text = "9. (B) is an option in the paper\nउत्तर कुंजी\n1. (A)\n2. (C)"
        assert extract_answer_key(text) == {1: "A", 2: "C"}

    def test_tail_window_without_header(self):
        parser = AnswerParser(tail_chars=20)
        text = "1. (A)\n" + "x" * 100 + "\n2. (B)"
        assert parser.parse(text) == {2: "B"}


# ======================================================================
# Tables
# ======================================================================

TABLE_KEY = """ANSWER KEY
| Q | Ans | Q | Ans |
|---|---|---|---|
| 1. (B) | 2. (3) |
| 3. (12) | 4. (a) |
| 5. (D) | 6. (1) |
| 7. (C) | 8. (250) |
"""

TWO_COLUMN_KEY = """Answer Key
| Q.No | Answer |
|------|--------|
| 1 | A |
| 2 | (C) |
| 3 | 42 |
| 4 | D |
"""


class TestTables:
    def test_primary_table_pattern(self):
        assert extract_answer_key(TABLE_KEY) == {
            1: "B", 2: "C", 3: "12", 4: "A", 5: "D", 6: "A", 7: "C", 8: "250",
        }

    def test_table_parsing_is_deterministic(self):
        assert extract_answer_key(TABLE_KEY) == extract_answer_key(TABLE_KEY)

    def test_two_column_fallback(self):
        assert extract_answer_key(TWO_COLUMN_KEY) == {1: "A", 2: "C", 3: "42", 4: "D"}

    def test_table_entries_take_precedence_over_patterns(self):
        text = TABLE_KEY + "\n1: D\n9: A\n"
        key = extract_answer_key(text)
        assert key[1] == "B"
        assert key[9] == "A"

    def test_few_pipe_lines_skip_table_parsing(self):
        parser = AnswerParser()
        lines = ["| 1 | A |", "| 2 | B |"]
        assert parser.parse("Answer Key\n" + "\n".join(lines)) == {}
        assert parser.parse_table(lines) == {1: "A", 2: "B"}
