from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from src.app.services.image_enrichment import DEFAULT_MAX_AGE_DAYS, ImageEnrichmentPipeline
from src.app.services.recipe_generation_service import RecipeGenerationService

log = logging.getLogger("cache_maintenance")

RECIPE_PURGE_INTERVAL_SECONDS = 4 * 60 * 60
IMAGE_PURGE_INTERVAL_SECONDS = 24 * 60 * 60


class CacheMaintenanceScheduler:
    """Periodic sweeps for expired cached recipes and stale cached images."""

    def __init__(
        self,
        service: RecipeGenerationService,
        image_pipeline: ImageEnrichmentPipeline,
        recipe_interval_seconds: float = RECIPE_PURGE_INTERVAL_SECONDS,
        image_interval_seconds: float = IMAGE_PURGE_INTERVAL_SECONDS,
        image_max_age_days: int = DEFAULT_MAX_AGE_DAYS,
    ) -> None:
        self._service = service
        self._images = image_pipeline
        self.recipe_interval_seconds = recipe_interval_seconds
        self.image_interval_seconds = image_interval_seconds
        self.image_max_age_days = image_max_age_days
        self._tasks: list[asyncio.Task[None]] = []
        self._lock = asyncio.Lock()

    async def start(self) -> None:
        async with self._lock:
            if any(not task.done() for task in self._tasks):
                return
            self._tasks = [
                asyncio.create_task(
                    self._loop("recipes", self.recipe_interval_seconds, self.purge_recipes),
                    name="cache-maintenance-recipes",
                ),
                asyncio.create_task(
                    self._loop("images", self.image_interval_seconds, self.purge_images),
                    name="cache-maintenance-images",
                ),
            ]
            log.info(
                "cache_maintenance.started recipe_interval=%ss image_interval=%ss",
                self.recipe_interval_seconds,
                self.image_interval_seconds,
            )

    async def stop(self) -> None:
        async with self._lock:
            if not self._tasks:
                return
            for task in self._tasks:
                task.cancel()
            await asyncio.gather(*self._tasks, return_exceptions=True)
            self._tasks = []
            log.info("cache_maintenance.stopped")

    def status(self) -> dict[str, int]:
        return {
            "total_jobs": len(self._tasks),
            "running_jobs": sum(1 for task in self._tasks if not task.done()),
        }

    async def purge_recipes(self) -> int:
        return await self._service.purge_expired_cache()

    async def purge_images(self) -> int:
        return await self._images.purge_old_images(self.image_max_age_days)

    async def run_once(self) -> dict[str, int]:
        return {
            "recipes_deleted": await self.purge_recipes(),
            "images_deleted": await self.purge_images(),
        }

    async def _loop(
        self,
        job_name: str,
        interval_seconds: float,
        job: Callable[[], Awaitable[int]],
    ) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                deleted = await job()
                log.info("cache_maintenance.%s deleted=%d", job_name, deleted)
            except Exception:
                log.exception("cache_maintenance.%s_unexpected_error", job_name)

