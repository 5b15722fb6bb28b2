from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx

from src.app.domain.models import ImageCandidate
from src.services.errors import (
    ImageSearchNotConfiguredError,
    MalformedResponseError,
    NetworkTimeoutError,
    RateLimitedError,
    UpstreamServiceError,
)

logger = logging.getLogger(__name__)

UNSPLASH_BASE_URL = "https://api.unsplash.com"
SEARCH_PHOTOS_PATH = "/search/photos"


class ImageSearchCapability(ABC):

    @abstractmethod
    async def search(self, query: str) -> list[ImageCandidate]:
        """Return candidates best-first; an empty list means no match."""
        pass

    async def aclose(self) -> None:
        return None


def _candidate_from_result(item: Any) -> ImageCandidate | None:
    if not isinstance(item, dict):
        return None
    urls = item.get("urls")
    if not isinstance(urls, dict):
        return None
    url = urls.get("regular") or urls.get("small") or urls.get("full")
    if not isinstance(url, str) or not url:
        return None
    return ImageCandidate(
        url=url,
        image_id=str(item["id"]) if item.get("id") else None,
        alt_description=item.get("alt_description"),
    )


class UnsplashImageSearch(ImageSearchCapability):

    def __init__(
        self,
        access_key: str | None,
        timeout_seconds: float = 10.0,
        per_page: int = 5,
        http_client: httpx.AsyncClient | None = None,
        base_url: str = UNSPLASH_BASE_URL,
    ) -> None:
        self.access_key = access_key
        self.timeout_seconds = timeout_seconds
        self.per_page = per_page
        self.base_url = base_url.rstrip("/")
        self._http = http_client
        self._owns_http_client = http_client is None

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self.timeout_seconds)
        return self._http

    async def search(self, query: str) -> list[ImageCandidate]:
        if not self.access_key:
            raise ImageSearchNotConfiguredError("Unsplash access key not configured")

        url = f"{self.base_url}{SEARCH_PHOTOS_PATH}"
        params = {"query": query, "per_page": str(self.per_page), "orientation": "landscape"}
        headers = {"Authorization": f"Client-ID {self.access_key}"}

        try:
            response = await self._client().get(
                url,
                params=params,
                headers=headers,
                timeout=self.timeout_seconds,
            )
            response.raise_for_status()
        except httpx.TimeoutException as error:
            raise NetworkTimeoutError(url, self.timeout_seconds) from error
        except httpx.HTTPStatusError as error:
            status_code = error.response.status_code
            if status_code == 429:
                raise RateLimitedError("Unsplash rate limit reached") from error
            raise UpstreamServiceError(f"Unsplash API error: {status_code}", status_code=status_code) from error
        except httpx.HTTPError as error:
            raise UpstreamServiceError(f"Unsplash request failed: {error}") from error

        try:
            body = response.json()
        except ValueError as error:
            raise MalformedResponseError("Unsplash returned a non-JSON body") from error

        results = body.get("results") if isinstance(body, dict) else None
        if not isinstance(results, list):
            return []

        candidates = [c for c in (_candidate_from_result(item) for item in results) if c]
        logger.debug("Unsplash search: query=%s, results=%d", query, len(candidates))
        return candidates

    async def aclose(self) -> None:
        if self._owns_http_client and self._http is not None:
            await self._http.aclose()
            self._http = None
