from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, Optional

from pydantic import ValidationError

from src.app.domain.errors import ContractViolationError, GenerationFailureError
from src.app.domain.models import Recipe, RecipeIngredient, RecipeStep
from src.services.errors import MalformedResponseError, ServiceError
from src.services.generation_client import GenerationRequest, RecipeGenerationCapability
from src.services.generation_models import GeneratedRecipePayload
from src.services.ids import TempIdAllocator

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL = timedelta(hours=48)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _declared_error(body: dict[str, Any]) -> Optional[str]:
    error = body.get("error")
    if not error:
        return None
    if isinstance(error, dict):
        return str(error.get("message") or error.get("detail") or error)
    return str(error)


class RecipeGeneratorClient:
    """
    Calls the generation capability and turns its untrusted response into
    transient cached `Recipe` objects with placeholder ids.
    """

    def __init__(
        self,
        capability: RecipeGenerationCapability,
        id_allocator: Optional[TempIdAllocator] = None,
        cache_ttl: timedelta = DEFAULT_CACHE_TTL,
        clock: Callable[[], datetime] = _now_utc,
    ) -> None:
        self._capability = capability
        self._ids = id_allocator or TempIdAllocator()
        self.cache_ttl = cache_ttl
        self._clock = clock

    async def generate(
        self,
        ingredients: Iterable[str],
        optimized_prompt: str,
        dietary_restrictions: Iterable[str] = (),
        banned_ingredients: Iterable[str] = (),
        favorite_ingredients: Iterable[str] = (),
        allergies: Iterable[str] = (),
    ) -> list[Recipe]:
        request = GenerationRequest(
            ingredients=list(ingredients),
            prompt=optimized_prompt,
            dietary_restrictions=list(dietary_restrictions),
            banned_ingredients=list(banned_ingredients),
            favorite_ingredients=list(favorite_ingredients),
            allergies=list(allergies),
        )

        started = time.perf_counter()
        try:
            body = await self._capability.generate(request)
        except MalformedResponseError as error:
            raise ContractViolationError(str(error)) from error
        except ServiceError as error:
            logger.error("Generation request failed: error=%s", error)
            raise GenerationFailureError(str(error)) from error

        recipes = self.normalize_response(body)
        logger.info(
            "Generated %d recipes in %.2fs for %d ingredients",
            len(recipes),
            time.perf_counter() - started,
            len(request.ingredients),
        )
        return recipes

    def normalize_response(self, body: Any) -> list[Recipe]:
        if not isinstance(body, dict):
            raise ContractViolationError("Generation response is not a JSON object")

        declared = _declared_error(body)
        if declared:
            raise GenerationFailureError(declared)

        raw_recipes = body.get("recipes")
        if not isinstance(raw_recipes, list):
            raise ContractViolationError("Generation response is missing a 'recipes' list")

        default_model_version = body.get("model_version")
        now = self._clock()
        return [
            self._normalize_recipe(raw, index, now, default_model_version)
            for index, raw in enumerate(raw_recipes)
        ]

    def _normalize_recipe(
        self,
        raw: Any,
        index: int,
        now: datetime,
        default_model_version: Any,
    ) -> Recipe:
        try:
            payload = GeneratedRecipePayload.model_validate(raw)
        except ValidationError as error:
            raise ContractViolationError(
                f"Recipe #{index} in generation response is malformed: {error.error_count()} errors"
            ) from error

        steps = sorted(
            (RecipeStep(step=s.step, time=s.time, order=s.order) for s in payload.steps),
            key=lambda s: s.order,
        )
        ingredients = [
            RecipeIngredient(
                name=i.name,
                quantity=i.quantity,
                unit=i.unit,
                is_optional=i.is_optional,
                notes=i.notes,
            )
            for i in payload.ingredients
        ]
        model_version = payload.model_version or (
            str(default_model_version) if default_model_version else None
        )

        return Recipe(
            recipe_id=self._ids.allocate(),
            name=payload.name,
            description=payload.description,
            steps=steps,
            ingredients=ingredients,
            cooking_time=payload.cooking_time,
            servings=payload.servings,
            difficulty=payload.difficulty,
            dietary_info=list(payload.dietary_info),
            model_version=model_version,
            is_cached=True,
            cached_until=now + self.cache_ttl,
            created_at=now,
        )

    async def aclose(self) -> None:
        await self._capability.aclose()
