# src/app/services/image_enrichment.py
"""
Resolve one representative image per recipe name.

Lookup order: shared image cache, external image search, static defaults.
Whatever is chosen is written back to the cache so the same name keeps the
same picture on later requests.
"""
from __future__ import annotations

import asyncio
import logging
import random
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional, Sequence

from starlette.concurrency import run_in_threadpool

from src.app.domain.errors import EnrichmentDegradedError, RecipeRepositoryError
from src.app.domain.models import ImageSource
from src.app.infra.db.base import ImageCacheRepository
from src.services.errors import ImageSearchNotConfiguredError, ServiceError
from src.services.image_search import ImageSearchCapability
from src.services.normalize import build_search_query, extract_search_keywords, recipe_name_hash
from src.services.persist_models import RecipeImageRecord

logger = logging.getLogger(__name__)

DEFAULT_FOOD_IMAGES: tuple[str, ...] = (
    "https://images.unsplash.com/photo-1546069901-ba9599a7e63c?w=800&q=80",
    "https://images.unsplash.com/photo-1565299624946-b28f40a0ae38?w=800&q=80",
    "https://images.unsplash.com/photo-1540189549336-e6e99c3679fe?w=800&q=80",
    "https://images.unsplash.com/photo-1567620905732-2d1ec7ab7445?w=800&q=80",
    "https://images.unsplash.com/photo-1565958011703-44f9829ba187?w=800&q=80",
)

TOP_CANDIDATES = 3
DEFAULT_BATCH_SIZE = 3
DEFAULT_BATCH_DELAY_SECONDS = 0.1
DEFAULT_MAX_AGE_DAYS = 30


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class ImageEnrichmentPipeline:
    def __init__(
        self,
        cache_repository: ImageCacheRepository,
        image_search: Optional[ImageSearchCapability] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        batch_delay_seconds: float = DEFAULT_BATCH_DELAY_SECONDS,
        default_images: Sequence[str] = DEFAULT_FOOD_IMAGES,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = _now_utc,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if not default_images:
            raise ValueError("default_images must not be empty")

        self._cache = cache_repository
        self._search = image_search
        self.batch_size = batch_size
        self.batch_delay_seconds = batch_delay_seconds
        self.default_images = tuple(default_images)
        self._rng = rng or random.Random()
        self._clock = clock

    async def get_recipe_image(self, recipe_name: str) -> str:
        name_hash = recipe_name_hash(recipe_name)

        cached_url = await self._lookup_cache(name_hash)
        if cached_url:
            logger.debug("Image cache hit: name=%s", recipe_name)
            return cached_url

        url = await self._search_image(recipe_name)
        if url:
            await self._store(name_hash, recipe_name, url, ImageSource.UNSPLASH)
            return url

        fallback = self._rng.choice(self.default_images)
        await self._store(name_hash, recipe_name, fallback, ImageSource.DEFAULT)
        return fallback

    async def enrich_batch(self, recipe_names: Iterable[str]) -> dict[str, str]:
        """
        Map each distinct recipe name to an image URL.

        Names are resolved `batch_size` at a time, concurrently within a batch,
        with a short pause between batches to stay under the search rate limit.
        """
        names = list(dict.fromkeys(name for name in recipe_names if name))
        images: dict[str, str] = {}

        for start in range(0, len(names), self.batch_size):
            if start:
                await asyncio.sleep(self.batch_delay_seconds)

            batch = names[start:start + self.batch_size]
            results = await asyncio.gather(
                *(self.get_recipe_image(name) for name in batch),
                return_exceptions=True,
            )
            for name, result in zip(batch, results):
                if isinstance(result, BaseException) and not isinstance(result, Exception):
                    raise result
                if isinstance(result, Exception):
                    degraded = EnrichmentDegradedError(name, str(result))
                    logger.warning("%s", degraded)
                    images[name] = self.default_images[0]
                else:
                    images[name] = result

        logger.info("Enriched %d recipe names with images", len(images))
        return images

    async def purge_old_images(self, days_old: int = DEFAULT_MAX_AGE_DAYS) -> int:
        cutoff = self._clock() - timedelta(days=days_old)
        deleted = await run_in_threadpool(self._cache.delete_older_than, cutoff)
        logger.info("Purged old cached images: deleted=%d, days_old=%d", deleted, days_old)
        return deleted

    async def _lookup_cache(self, name_hash: str) -> Optional[str]:
        try:
            entry = await run_in_threadpool(self._cache.get_by_hash, name_hash)
        except RecipeRepositoryError as error:
            logger.warning("Image cache lookup failed: hash=%s, error=%s", name_hash, error)
            return None
        return entry.image_url if entry else None

    async def _search_image(self, recipe_name: str) -> Optional[str]:
        if self._search is None:
            return None

        query = build_search_query(recipe_name)
        try:
            candidates = await self._search.search(query)
        except ImageSearchNotConfiguredError:
            logger.debug("Image search not configured, using default image: name=%s", recipe_name)
            return None
        except ServiceError as error:
            logger.warning("Image search failed: name=%s, query=%s, error=%s", recipe_name, query, error)
            return None

        if not candidates:
            logger.debug("No image search results: query=%s", query)
            return None

        return self._rng.choice(candidates[:TOP_CANDIDATES]).url

    async def _store(
        self,
        name_hash: str,
        recipe_name: str,
        url: str,
        source: ImageSource,
    ) -> None:
        record = RecipeImageRecord(
            recipe_name_hash=name_hash,
            image_url=url,
            source=source.value,
            tags=extract_search_keywords(recipe_name),
            created_at=self._clock().isoformat(),
        )
        try:
            await run_in_threadpool(self._cache.upsert, record)
        except RecipeRepositoryError as error:
            logger.warning("Image cache write failed: hash=%s, error=%s", name_hash, error)
