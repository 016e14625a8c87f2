"""
Exam question ingestion pipeline.

Modules:
- answer_parser: answer key extraction from solutions text
- chunker: question-boundary-aware text splitting
- question_extractor: LLM extraction of questions per chunk
- response_parser: cascading JSON parsing of model output
- merger: dedupe and answer-key reconciliation
- validator: title validation and extraction reports
- orchestrator: background OCR conversion of document pairs
- run: end-to-end extraction runner
"""

from .answer_parser import AnswerParser, extract_answer_key
from .chunker import chunk_text
from .question_extractor import QuestionExtractor
from .merger import merge_questions
from .validator import Validator
from .orchestrator import ConversionOrchestrator
from .run import ExtractionPipeline

__all__ = [
    "AnswerParser",
    "extract_answer_key",
    "chunk_text",
    "QuestionExtractor",
    "merge_questions",
    "Validator",
    "ConversionOrchestrator",
    "ExtractionPipeline",
]
