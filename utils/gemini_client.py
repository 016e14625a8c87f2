"""
Gemini API client for structured question extraction.

Requests JSON constrained by a response schema. If the model rejects the schema
the same prompt is re-sent without it and the caller gets the raw text back.
"""

import json
import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from google import genai
from google.genai import errors, types

from config import ConfigurationError, GEMINI_MODEL, REQUEST_DELAY

log = logging.getLogger(__name__)

RATE_LIMITED = 429
QUOTA_EXHAUSTED = 402


@dataclass
class GenerationResult:
    """Model output: parsed schema arguments, or free text to be parsed by the caller."""
    tool_arguments: Optional[Any] = None
    free_text: Optional[str] = None
    raw_response: str = ""


class GenerationError(Exception):
    """A failed generation request. status_code carries the HTTP status when known."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code == RATE_LIMITED

    @property
    def is_quota_exhausted(self) -> bool:
        return self.status_code == QUOTA_EXHAUSTED


class GeminiClient:
    """Client for schema-constrained text generation with Gemini."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = GEMINI_MODEL,
        request_delay: float = REQUEST_DELAY,
        client=None,
    ):
        """
        Initialize Gemini client.

        Args:
            api_key: Gemini API key. If not provided, reads from GEMINI_API_KEY env var.
            model: Model to use
            request_delay: Minimum seconds between requests
            client: Pre-built genai.Client (mainly for tests)
        """
        if client is None:
            self.api_key = api_key or os.environ.get("GEMINI_API_KEY")
            if not self.api_key:
                raise ConfigurationError(
                    "Gemini API key required. Set GEMINI_API_KEY environment variable "
                    "or pass api_key parameter."
                )
            client = genai.Client(api_key=self.api_key)

        self.client = client
        self.model_name = model
        self.request_delay = request_delay
        self.last_request_time = 0.0

    def _rate_limit(self):
        """Enforce a minimum delay between requests."""
        elapsed = time.time() - self.last_request_time
        if elapsed < self.request_delay:
            sleep_time = self.request_delay - elapsed
            log.debug("Rate limit: waiting %.1fs", sleep_time)
            time.sleep(sleep_time)
        self.last_request_time = time.time()

    def _generate(self, system_prompt: str, user_prompt: str, schema: Optional[Dict]) -> str:
        config_kwargs = {"system_instruction": system_prompt}
        if schema is not None:
            config_kwargs["response_mime_type"] = "application/json"
            config_kwargs["response_schema"] = schema

        try:
            response = self.client.models.generate_content(
                model=self.model_name,
                contents=user_prompt,
                config=types.GenerateContentConfig(**config_kwargs),
            )
        except errors.APIError as e:
            raise GenerationError(str(e), status_code=e.code) from e
        return response.text or ""

    def extract(
        self,
        system_prompt: str,
        user_prompt: str,
        schema: Optional[Dict] = None,
    ) -> GenerationResult:
        """
        Generate a response for one prompt.

        Returns tool_arguments when schema mode produced valid JSON, otherwise
        free_text. Raises GenerationError for rate limit, quota and other API
        failures.
        """
        self._rate_limit()

        if schema is not None:
            try:
                text = self._generate(system_prompt, user_prompt, schema)
            except GenerationError as e:
                if e.status_code != 400:
                    raise
                log.warning("Schema mode rejected (%s), retrying as free text", e)
            else:
                try:
                    return GenerationResult(tool_arguments=json.loads(text), raw_response=text)
                except ValueError:
                    log.debug("Schema response was not valid JSON, returning as free text")
                    return GenerationResult(free_text=text, raw_response=text)

        text = self._generate(system_prompt, user_prompt, None)
        return GenerationResult(free_text=text, raw_response=text)


def create_client(model: str = GEMINI_MODEL) -> GeminiClient:
    """Create a Gemini client from environment settings."""
    return GeminiClient(model=model)
