from __future__ import annotations

import logging
from typing import Protocol, Sequence

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from recipebook.services.errors import InferenceError, RateLimitedError, ServiceError
from recipebook.services.images import InlineImage

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"
MAX_OUTPUT_TOKENS = 4096
# Thinking tokens count against max_output_tokens on 2.5 models.
THINKING_BUDGET = 0


class GeminiConfigurationError(ServiceError):
    pass


class InferenceClient(Protocol):
    def generate_text(self, prompt: str) -> str: ...

    def generate_from_images(self, prompt: str, images: Sequence[InlineImage]) -> str: ...


def _finish_reason(response: types.GenerateContentResponse) -> str | None:
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return None
    reason = getattr(candidates[0], "finish_reason", None)
    if reason is None:
        return None
    return str(getattr(reason, "value", reason))


def _is_rate_limited_error(exc: Exception) -> bool:
    status_code = getattr(exc, "code", None) or getattr(exc, "status_code", None)
    if status_code == 429:
        return True
    return "RESOURCE_EXHAUSTED" in str(exc)


class GeminiClient:
    def __init__(self, api_key: str, model_name: str = DEFAULT_MODEL) -> None:
        if not api_key:
            raise GeminiConfigurationError("Missing Gemini API key.")
        self.model_name = model_name
        self._client = genai.Client(api_key=api_key)

    def _config(self) -> types.GenerateContentConfig:
        return types.GenerateContentConfig(
            max_output_tokens=MAX_OUTPUT_TOKENS,
            thinking_config=types.ThinkingConfig(thinking_budget=THINKING_BUDGET),
        )

    def _generate(self, contents: list) -> str:
        try:
            response = self._client.models.generate_content(
                model=self.model_name,
                contents=contents,
                config=self._config(),
            )
        except genai_errors.APIError as err:
            if _is_rate_limited_error(err):
                raise RateLimitedError("Gemini rate limit reached. Try again shortly.") from err
            raise InferenceError(f"Gemini request failed: {err}") from err
        except httpx.HTTPError as err:
            raise InferenceError(f"Gemini transport error: {err}") from err

        if _finish_reason(response) == "MAX_TOKENS":
            logger.warning("gemini.truncated model=%s max_output_tokens=%d", self.model_name, MAX_OUTPUT_TOKENS)

        text = response.text
        if not text:
            raise InferenceError("Model response did not include text content.")
        return text

    def generate_text(self, prompt: str) -> str:
        return self._generate([prompt])

    def generate_from_images(self, prompt: str, images: Sequence[InlineImage]) -> str:
        parts = [types.Part.from_bytes(data=image.data, mime_type=image.mime_type) for image in images]
        logger.info("gemini.multimodal images=%d model=%s", len(images), self.model_name)
        return self._generate([*parts, prompt])
