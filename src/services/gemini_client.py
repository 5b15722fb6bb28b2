from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import google.generativeai as genai
from google.api_core.exceptions import DeadlineExceeded

from src.services.errors import NetworkTimeoutError, RateLimitedError, ServiceError


class GeminiConfigurationError(ServiceError):
    pass


class GeminiPromptError(ServiceError):
    pass


def _is_rate_limited_error(exc: Exception) -> bool:
    status_code = getattr(exc, "status_code", None) or getattr(exc, "code", None)
    if status_code == 429:
        return True
    return "RESOURCE_EXHAUSTED" in str(exc)


class GeminiClient:
    def __init__(
        self,
        api_key: str,
        model_name: str = "gemini-2.5-flash",
        timeout_seconds: float = 60.0,
    ) -> None:
        self.api_key = api_key
        self.model_name = model_name
        self.timeout_seconds = timeout_seconds
        self._configure_api()

    def _configure_api(self) -> None:
        if not self.api_key:
            raise GeminiConfigurationError("Missing Google API key.")
        genai.configure(api_key=self.api_key)

    def _load_system_prompt(self, file_path: Path) -> str:
        try:
            return file_path.read_text(encoding="utf-8")
        except FileNotFoundError as not_found_error:
            raise GeminiPromptError(f"Prompt file not found: {file_path}") from not_found_error
        except OSError as io_error:
            raise GeminiPromptError(f"Unable to read prompt file: {io_error}") from io_error

    def _serialize_prompt(self, user_prompt: str | dict[str, Any]) -> str:
        if isinstance(user_prompt, str):
            return user_prompt
        try:
            return json.dumps(user_prompt, indent=2, ensure_ascii=False)
        except TypeError:
            return str(user_prompt)

    def generate_json(
        self,
        user_prompt: str | dict[str, Any],
        system_prompt_path: Path,
    ) -> str:
        """Run one generation asking the model for a JSON document; returns the raw text."""
        system_instruction = self._load_system_prompt(system_prompt_path)
        model = genai.GenerativeModel(
            model_name=self.model_name,
            system_instruction=system_instruction,
            generation_config=genai.GenerationConfig(response_mime_type="application/json"),
        )

        payload = self._serialize_prompt(user_prompt)
        try:
            response = model.generate_content(
                payload,
                request_options={"timeout": self.timeout_seconds},
            )
        except (DeadlineExceeded, TimeoutError) as err:
            raise NetworkTimeoutError(f"gemini:{self.model_name}", self.timeout_seconds) from err
        except Exception as err:
            if _is_rate_limited_error(err):
                raise RateLimitedError("Gemini API rate limit reached, try again shortly.") from err
            raise ServiceError(f"Gemini request failed: {err}") from err

        text = getattr(response, "text", None)
        if not text:
            raise ServiceError("Gemini response did not include text content.")
        return text
