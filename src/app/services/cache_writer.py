from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from starlette.concurrency import run_in_threadpool

from src.app.domain.errors import (
    PersistencePartialFailureError,
    RecipePersistenceError,
    RecipeRepositoryError,
)
from src.app.domain.models import Recipe
from src.app.infra.db.base import RecipeRepository
from src.services.persist_models import (
    RecipeHeaderRecord,
    RecipeIngredientRecord,
    RecipeStepRecord,
)

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL = timedelta(hours=48)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def build_header_record(
    recipe: Recipe,
    owner_id: Optional[str],
    cached_until: datetime,
    created_at: datetime,
    prompt: Optional[str] = None,
) -> RecipeHeaderRecord:
    return RecipeHeaderRecord(
        user_id=owner_id,
        name=recipe.name,
        description=recipe.description,
        steps=[
            RecipeStepRecord(step=s.step, time=s.time, order=s.order)
            for s in recipe.sorted_steps()
        ],
        cooking_time=recipe.cooking_time,
        servings=recipe.servings,
        difficulty=recipe.difficulty,
        model_version=recipe.model_version,
        image_url=recipe.image_url,
        prompt=prompt,
        is_cached=True,
        cached_until=cached_until.isoformat(),
        created_at=created_at.isoformat(),
    )


class RecipeCacheWriter:
    """
    Two-step cache write: header, then ingredient rows.

    The store has no multi-table transaction, so a failed ingredient insert is
    undone with `discard_partial_recipe` before the error reaches the caller.
    """

    def __init__(
        self,
        repository: RecipeRepository,
        cache_ttl: timedelta = DEFAULT_CACHE_TTL,
        clock: Callable[[], datetime] = _now_utc,
    ) -> None:
        self._repo = repository
        self.cache_ttl = cache_ttl
        self._clock = clock

    async def persist(
        self,
        recipe: Recipe,
        owner_id: Optional[str],
        prompt: Optional[str] = None,
    ) -> Recipe:
        """
        Store a recipe as a cache entry expiring `cache_ttl` from now.

        Returns:
            The recipe carrying its persistent id

        Raises:
            RecipePersistenceError: If the header insert fails
            PersistencePartialFailureError: If the ingredient insert fails
        """
        now = self._clock()
        cached_until = now + self.cache_ttl
        header = build_header_record(recipe, owner_id, cached_until, now, prompt)

        try:
            row = await run_in_threadpool(self._repo.insert_recipe_header, header)
        except RecipeRepositoryError as error:
            raise RecipePersistenceError(recipe.name, error.reason) from error

        recipe_id = str(row.get("recipe_id") or "")
        if not recipe_id:
            raise RecipePersistenceError(recipe.name, "store did not assign a recipe id")

        ingredient_rows = [
            RecipeIngredientRecord(
                recipe_id=recipe_id,
                name=ingredient.name,
                quantity=ingredient.quantity,
                unit=ingredient.unit,
                is_optional=ingredient.is_optional,
                notes=ingredient.notes,
            )
            for ingredient in recipe.ingredients
        ]

        try:
            await run_in_threadpool(self._repo.insert_ingredients, recipe_id, ingredient_rows)
        except RecipeRepositoryError as error:
            logger.error(
                "Ingredient insert failed, rolling back: recipe=%s, name=%s, error=%s",
                recipe_id,
                recipe.name,
                error,
            )
            rolled_back = await self.discard_partial_recipe(recipe_id)
            raise PersistencePartialFailureError(
                recipe.name,
                recipe_id,
                error.reason,
                rollback_succeeded=rolled_back,
            ) from error

        logger.info("Cached recipe: id=%s, name=%s, owner=%s", recipe_id, recipe.name, owner_id)
        return replace(
            recipe,
            recipe_id=recipe_id,
            user_id=owner_id,
            prompt=prompt,
            is_cached=True,
            cached_until=cached_until,
            created_at=now,
        )

    async def discard_partial_recipe(self, recipe_id: str) -> bool:
        """Compensating delete for a half-written recipe. Returns False if it failed."""
        try:
            await run_in_threadpool(self._repo.delete_recipe_header, recipe_id)
        except RecipeRepositoryError as error:
            logger.error("Rollback failed, partial recipe left behind: recipe=%s, error=%s", recipe_id, error)
            return False

        logger.warning("Rolled back partial recipe: recipe=%s", recipe_id)
        return True
