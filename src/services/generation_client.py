from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import httpx
from starlette.concurrency import run_in_threadpool

from src.services.errors import MalformedResponseError, NetworkTimeoutError, UpstreamServiceError
from src.services.gemini_client import GeminiClient

logger = logging.getLogger(__name__)

GENERATE_RECIPE_PATH = "/api/v1/generate-recipe"
SYSTEM_PROMPT = Path(__file__).parent / "prompts" / "recipe_generation.txt"

_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


@dataclass
class GenerationRequest:
    ingredients: list[str]
    prompt: str = ""
    dietary_restrictions: list[str] = field(default_factory=list)
    banned_ingredients: list[str] = field(default_factory=list)
    favorite_ingredients: list[str] = field(default_factory=list)
    allergies: list[str] = field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        return {
            "ingredients": list(self.ingredients),
            "prompt": self.prompt,
            "dietaryRestrictions": list(self.dietary_restrictions),
            "bannedIngredients": list(self.banned_ingredients),
            "favoriteIngredients": list(self.favorite_ingredients),
            "allergies": list(self.allergies),
        }


class RecipeGenerationCapability(ABC):
    """
    External recipe generator. Returns the decoded response body as-is;
    its shape is checked by the caller.
    """

    @abstractmethod
    async def generate(self, request: GenerationRequest) -> Any:
        pass

    async def aclose(self) -> None:
        return None


def _error_message_from_response(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        for key in ("detail", "message", "error"):
            value = body.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return f"HTTP {response.status_code}"


class HttpRecipeGenerationCapability(RecipeGenerationCapability):
    """AI recipe service reached over HTTP (`POST /api/v1/generate-recipe`)."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout_seconds: float = 60.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self._http = http_client
        self._owns_http_client = http_client is None

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self.timeout_seconds)
        return self._http

    async def generate(self, request: GenerationRequest) -> Any:
        url = f"{self.base_url}{GENERATE_RECIPE_PATH}"
        headers = {"Content-Type": "application/json", "X-API-Key": self.api_key}

        try:
            response = await self._client().post(
                url,
                json=request.to_payload(),
                headers=headers,
                timeout=self.timeout_seconds,
            )
            response.raise_for_status()
        except httpx.TimeoutException as error:
            raise NetworkTimeoutError(url, self.timeout_seconds) from error
        except httpx.HTTPStatusError as error:
            message = _error_message_from_response(error.response)
            raise UpstreamServiceError(message, status_code=error.response.status_code) from error
        except httpx.HTTPError as error:
            raise UpstreamServiceError(str(error) or type(error).__name__) from error

        try:
            return response.json()
        except ValueError as error:
            raise MalformedResponseError("Generation service returned a non-JSON body") from error

    async def aclose(self) -> None:
        if self._owns_http_client and self._http is not None:
            await self._http.aclose()
            self._http = None


def _decode_model_json(text: str) -> Any:
    cleaned = _CODE_FENCE.sub("", text.strip())
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as error:
        raise MalformedResponseError(f"Model output is not valid JSON: {error}") from error


class GeminiRecipeGenerationCapability(RecipeGenerationCapability):
    """Generates recipes directly with Gemini instead of the HTTP service."""

    def __init__(
        self,
        client: GeminiClient,
        system_prompt_path: Path = SYSTEM_PROMPT,
    ) -> None:
        self._client = client
        self.system_prompt_path = system_prompt_path

    async def generate(self, request: GenerationRequest) -> Any:
        text = await run_in_threadpool(
            self._client.generate_json,
            request.to_payload(),
            self.system_prompt_path,
        )
        body = _decode_model_json(text)
        if isinstance(body, dict):
            body.setdefault("model_version", self._client.model_name)
        return body
