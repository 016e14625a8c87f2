"""
Service clients and helpers for the exam question ingestion pipeline.
"""

from .archive_utils import read_conversion_archive
from .gemini_client import GeminiClient, GenerationError
from .mathpix_client import MathpixClient, MathpixError

__all__ = [
    "read_conversion_archive",
    "GeminiClient",
    "GenerationError",
    "MathpixClient",
    "MathpixError",
]
