"""
Extraction pipeline runner: converted text in, answered questions out.

    answer key  <- solutions text
    chunks      <- questions text
    questions   <- LLM per chunk
    merged      <- first-wins union + answer key
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from config import CHUNK_SIZE
from pipeline.answer_parser import AnswerParser
from pipeline.chunker import chunk_text
from pipeline.merger import build_result, merge_questions
from pipeline.models import ExtractionResult, STATUS_COMPLETED
from pipeline.question_extractor import QuestionExtractor
from pipeline.validator import Validator, generate_extraction_report

log = logging.getLogger(__name__)


class ExtractionPipeline:
    """Main extraction pipeline."""

    def __init__(
        self,
        client,
        chunk_size: int = CHUNK_SIZE,
        answer_parser: Optional[AnswerParser] = None,
        verbose: bool = False,
    ):
        self.chunk_size = chunk_size
        self.answer_parser = answer_parser or AnswerParser()
        self.extractor = QuestionExtractor(client, verbose=verbose)
        self.validator = Validator()

    def run(
        self,
        questions_text: str,
        solutions_text: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ExtractionResult:
        """
        Extract questions and attach answers.

        The answer key is read from the solutions text, or from the questions
        text when no solutions text is given.
        """
        metadata = metadata or {}
        if not questions_text or not questions_text.strip():
            return ExtractionResult(success=False, errors=["No questions text to extract from"])

        answer_source = solutions_text if solutions_text and solutions_text.strip() else questions_text
        answer_key = self.answer_parser.parse(answer_source)

        chunks = chunk_text(questions_text, self.chunk_size)
        log.info("Extracting from %d chunks (%d answer key entries)", len(chunks), len(answer_key))

        outcomes = self.extractor.extract_chunks(chunks, metadata)
        errors = [outcome.error for outcome in outcomes if outcome.error]
        processed = sum(1 for outcome in outcomes if outcome.processed)
        if len(outcomes) < len(chunks):
            log.warning("Stopped after %d of %d chunks", len(outcomes), len(chunks))

        report = merge_questions([outcome.questions for outcome in outcomes], answer_key)
        result = build_result(report, errors, processed, len(chunks), len(answer_key))
        if result.questions:
            coverage = self.validator.validate_answer_key_coverage(result)
            if not coverage.is_valid:
                log.warning(coverage.message)
        log.info(
            "Extraction finished: %d questions, %d errors, partial=%s",
            result.questions_count, len(result.errors), result.partial,
        )
        return result

    def run_for_document(
        self,
        store,
        document_id: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ExtractionResult:
        """Run on a converted document pair and store the questions for review."""
        document = store.get_document_pair(document_id)
        if document is None:
            raise LookupError(f"Document pair {document_id} not found")
        if document.status != STATUS_COMPLETED:
            raise ValueError(f"Document pair {document_id} is {document.status}, not completed")

        result = self.run(document.questions_text or "", document.solutions_text, metadata)
        if result.questions:
            saved = store.save_questions(document_id, result.questions)
            log.info("Saved %d questions for document %s", saved, document_id)
        return result


def main():
    parser = argparse.ArgumentParser(description="Extract questions from converted exam text")
    parser.add_argument("questions", type=Path, help="Converted questions text (.mmd/.md)")
    parser.add_argument("solutions", type=Path, nargs="?", help="Converted solutions text")
    parser.add_argument("--exam-name", default="Unknown exam")
    parser.add_argument("--year", default="Unknown")
    parser.add_argument("--paper-type", default="Unknown")
    parser.add_argument("--chunk-size", type=int, default=CHUNK_SIZE)
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    from utils.gemini_client import create_client

    pipeline = ExtractionPipeline(create_client(), chunk_size=args.chunk_size, verbose=args.verbose)
    result = pipeline.run(
        args.questions.read_text(encoding="utf-8"),
        args.solutions.read_text(encoding="utf-8") if args.solutions else None,
        {"exam_name": args.exam_name, "year": args.year, "paper_type": args.paper_type},
    )
    print(generate_extraction_report(result, title=args.questions.name))
    sys.exit(0 if result.success else 1)


if __name__ == "__main__":
    main()
