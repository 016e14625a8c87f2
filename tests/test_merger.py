from __future__ import annotations

from pipeline.merger import build_result, classify_answer, merge_questions
from pipeline.models import ExtractedQuestion


def q(number: int, text: str = "") -> ExtractedQuestion:
    return ExtractedQuestion(question_number=number, question_text=text or f"Q{number}", options={"A": "1"})


class TestMergeQuestions:
    def test_first_seen_duplicate_is_kept(self):
        report = merge_questions([[q(1, "first"), q(2)], [q(1, "second"), q(3)]], {})
        assert [x.question_text for x in report.questions] == ["first", "Q2", "Q3"]

    def test_sorted_by_number(self):
        report = merge_questions([[q(9), q(2)], [q(5)]], {})
        assert [x.question_number for x in report.questions] == [2, 5, 9]

    def test_answers_only_from_key(self):
        extracted = q(1)
        extracted.correct_answer = "A"
        report = merge_questions([[extracted, q(2)]], {2: "D"})

        by_number = {x.question_number: x for x in report.questions}
        assert by_number[1].correct_answer == ""
        assert by_number[2].correct_answer == "D"
        assert report.missing_answers == [1]

    def test_question_type_from_answer(self):
        report = merge_questions([[q(1), q(2)]], {1: "C", 2: "8788"})
        assert [x.question_type for x in report.questions] == ["mcq", "integer"]

    def test_missing_answers_report_is_capped(self):
        report = merge_questions([[q(n) for n in range(1, 26)]], {})
        assert len(report.missing_answers) == 20
        assert report.missing_answer_count == 25

    def test_classify_answer(self):
        assert classify_answer("B") == "mcq"
        assert classify_answer("E") == "integer"
        assert classify_answer("12") == "integer"


class TestBuildResult:
    def test_partial_when_errors_and_questions(self):
        report = merge_questions([[q(1)]], {1: "A"})
        result = build_result(report, ["Chunk 2/3: rate limited"], 2, 3, 1)
        assert result.success and result.partial
        assert result.questions_count == 1

    def test_errors_without_questions_is_failure(self):
        result = build_result(merge_questions([], {}), ["boom"], 0, 1, 0)
        assert result.success is False
        assert result.partial is False

    def test_clean_run(self):
        result = build_result(merge_questions([[q(1)]], {1: "A"}), [], 1, 1, 1)
        assert result.success and not result.partial
