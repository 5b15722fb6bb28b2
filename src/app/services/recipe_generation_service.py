# src/app/services/recipe_generation_service.py
"""
Recipe generation use case.

Flow for one request:
    cache check -> optimize prompt -> generate -> validate -> enrich -> persist safe -> return

A cache hit short-circuits everything after the first step. Generation
failures abort the request; enrichment and per-recipe persistence failures
are absorbed so the caller still gets recipes back.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from starlette.concurrency import run_in_threadpool

from src.app.domain.errors import (
    RecipeAlreadySavedError,
    RecipeNotFoundError,
    RecipeOwnershipError,
    RecipePersistenceError,
    RecipeRepositoryError,
    UserNotFoundError,
)
from src.app.domain.models import (
    GenerationResult,
    Recipe,
    UserPreferences,
    ValidationSummary,
)
from src.app.infra.db.base import RecipeRepository, UserProfileRepository
from src.app.services.cache_writer import RecipeCacheWriter
from src.app.services.image_enrichment import ImageEnrichmentPipeline
from src.app.services.preference_validator import validate_recipe
from src.app.services.prompt_optimizer import optimize_prompt
from src.app.services.similarity_index import SimilarityCacheIndex
from src.services.ids import is_temp_id
from src.services.recipe_generator import RecipeGeneratorClient

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def summarize_validation(recipes: list[Recipe]) -> ValidationSummary:
    safe = sum(1 for recipe in recipes if recipe.is_safe)
    return ValidationSummary(total=len(recipes), safe=safe, with_issues=len(recipes) - safe)


class RecipeGenerationService:
    def __init__(
        self,
        similarity_index: SimilarityCacheIndex,
        generator: RecipeGeneratorClient,
        image_pipeline: ImageEnrichmentPipeline,
        cache_writer: RecipeCacheWriter,
        recipe_repository: RecipeRepository,
        user_repository: UserProfileRepository,
        clock: Callable[[], datetime] = _now_utc,
    ) -> None:
        self._similarity = similarity_index
        self._generator = generator
        self._images = image_pipeline
        self._writer = cache_writer
        self._recipes = recipe_repository
        self._users = user_repository
        self._clock = clock

    async def generate_recipes(
        self,
        user_id: str,
        ingredients: Iterable[str],
        prompt: Optional[str] = None,
        similarity_threshold: Optional[float] = None,
    ) -> GenerationResult:
        """
        Generate recipes for a user, reusing close-enough cached ones.

        Raises:
            UserNotFoundError: If the user has no profile
            ContractViolationError: If the generator returned an invalid shape
            GenerationFailureError: If the generator call failed
        """
        requested = list(ingredients)
        preferences = await self._load_preferences(user_id)

        cached = await self._find_cached(requested, user_id, similarity_threshold)
        if cached:
            logger.info("Cache hit: user=%s, recipes=%d", user_id, len(cached))
            return GenerationResult(recipes=cached, from_cache=True)

        optimized_prompt = optimize_prompt(prompt, preferences)

        generated = await self._generator.generate(
            requested,
            optimized_prompt,
            dietary_restrictions=preferences.dietary_restrictions,
            banned_ingredients=preferences.banned_ingredients,
            favorite_ingredients=preferences.favorite_ingredients,
            allergies=preferences.allergies,
        )

        validated = [self._validate(recipe, preferences) for recipe in generated]

        images = await self._images.enrich_batch(recipe.name for recipe in validated)
        for recipe in validated:
            recipe.image_url = images.get(recipe.name, recipe.image_url)

        persisted = await self._persist_safe(validated, user_id, optimized_prompt)

        summary = summarize_validation(validated)
        logger.info(
            "Generation finished: user=%s, total=%d, safe=%d, persisted=%d",
            user_id,
            summary.total,
            summary.safe,
            len(persisted),
        )
        return GenerationResult(
            recipes=persisted or validated,
            from_cache=False,
            validation_summary=summary,
        )

    async def promote_recipe(self, user_id: str, recipe_id: str) -> Recipe:
        """
        Turn a cached recipe into a permanent one for its owner.

        Raises:
            RecipeNotFoundError: Unknown id, or cached and already expired
            RecipeOwnershipError: Recipe belongs to another user
            RecipeAlreadySavedError: Recipe is already permanent
        """
        # placeholder ids belong to recipes that were never stored
        if is_temp_id(recipe_id):
            raise RecipeNotFoundError(recipe_id)

        recipe = await run_in_threadpool(self._recipes.get_recipe_by_id, recipe_id)
        if recipe is None:
            raise RecipeNotFoundError(recipe_id)
        if recipe.user_id and recipe.user_id != user_id:
            raise RecipeOwnershipError(recipe_id, user_id)

        now = self._clock()
        if recipe.is_expired(now):
            raise RecipeNotFoundError(recipe_id)
        # raises RecipeAlreadySavedError for a permanent recipe
        recipe.promote(now)

        promoted = await run_in_threadpool(self._recipes.mark_permanent, recipe_id, now)
        if promoted is None:
            # lost a race with another save or with the expiry sweep
            current = await run_in_threadpool(self._recipes.get_recipe_by_id, recipe_id)
            if current is not None and not current.is_cached:
                raise RecipeAlreadySavedError(recipe_id)
            raise RecipeNotFoundError(recipe_id)

        logger.info("Recipe saved: user=%s, recipe=%s", user_id, recipe_id)
        return promoted

    async def purge_expired_cache(self) -> int:
        """Remove expired, never-promoted recipes. Safe to run repeatedly."""
        cutoff = self._clock()
        deleted = await run_in_threadpool(self._recipes.delete_expired, cutoff)
        logger.info("Purged expired cached recipes: deleted=%d", deleted)
        return deleted

    async def list_cached_recipes(self, user_id: str) -> list[Recipe]:
        return await run_in_threadpool(self._recipes.query_unexpired_by_owner, user_id, self._clock())

    async def list_saved_recipes(self, user_id: str) -> list[Recipe]:
        return await run_in_threadpool(self._recipes.list_permanent_by_owner, user_id)

    async def get_recipe(self, user_id: str, recipe_id: str) -> Recipe:
        recipe = await run_in_threadpool(self._recipes.get_recipe_by_id, recipe_id)
        if recipe is None or recipe.is_expired(self._clock()):
            raise RecipeNotFoundError(recipe_id)
        # anonymous cache entries are shared
        if recipe.user_id and recipe.user_id != user_id:
            raise RecipeOwnershipError(recipe_id, user_id)
        return recipe

    async def delete_saved_recipe(self, user_id: str, recipe_id: str) -> None:
        recipe = await run_in_threadpool(self._recipes.get_recipe_by_id, recipe_id)
        if recipe is None or recipe.is_cached:
            raise RecipeNotFoundError(recipe_id)
        if recipe.user_id != user_id:
            raise RecipeOwnershipError(recipe_id, user_id)

        await run_in_threadpool(self._recipes.delete_recipe_header, recipe_id)
        logger.info("Saved recipe deleted: user=%s, recipe=%s", user_id, recipe_id)

    async def _load_preferences(self, user_id: str) -> UserPreferences:
        preferences = await run_in_threadpool(self._users.get_preferences, user_id)
        if preferences is None:
            raise UserNotFoundError(user_id)
        return preferences

    async def _find_cached(
        self,
        ingredients: list[str],
        user_id: str,
        threshold: Optional[float],
    ) -> list[Recipe]:
        try:
            return await self._similarity.find_similar(ingredients, owner_id=user_id, threshold=threshold)
        except RecipeRepositoryError as error:
            logger.warning("Cache lookup failed, generating instead: user=%s, error=%s", user_id, error)
            return []

    @staticmethod
    def _validate(recipe: Recipe, preferences: UserPreferences) -> Recipe:
        result = validate_recipe(recipe, preferences.allergies, preferences.banned_ingredients)
        return replace(recipe, is_safe=result.is_safe, validation_issues=list(result.issues))

    async def _persist_safe(
        self,
        recipes: list[Recipe],
        user_id: str,
        prompt: str,
    ) -> list[Recipe]:
        persisted: list[Recipe] = []
        for recipe in recipes:
            if not recipe.is_safe:
                continue
            try:
                persisted.append(await self._writer.persist(recipe, user_id, prompt=prompt))
            except RecipePersistenceError as error:
                logger.error("Skipping recipe that could not be cached: name=%s, error=%s", recipe.name, error)
        return persisted
