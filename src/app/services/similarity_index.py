# src/app/services/similarity_index.py
"""
Similarity lookup over cached recipes.

Ingredient names are compared leniently (substring either way) because
generated recipes phrase ingredients freely ("tomato" vs "ripe tomatoes").
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from starlette.concurrency import run_in_threadpool

from src.app.domain.models import Recipe, SimilarityMatch
from src.app.infra.db.base import RecipeRepository
from src.services.normalize import names_overlap, normalize_name

logger = logging.getLogger(__name__)

DEFAULT_SIMILARITY_THRESHOLD = 0.5
DEFAULT_MAX_RESULTS = 5


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def normalize_ingredients(names: Iterable[str]) -> list[str]:
    """Trimmed, lowercased, de-duplicated, blanks dropped; input order kept."""
    seen: list[str] = []
    for name in names:
        if not isinstance(name, str):
            continue
        normalized = normalize_name(name)
        if normalized and normalized not in seen:
            seen.append(normalized)
    return seen


def compute_similarity(
    requested: list[str],
    recipe_ingredients: list[str],
) -> tuple[int, float]:
    """
    Args:
        requested: Normalized requested ingredient names
        recipe_ingredients: Normalized ingredient names of a cached recipe

    Returns:
        Tuple of (matched requested count, similarity ratio)
    """
    if not requested or not recipe_ingredients:
        return 0, 0.0

    matched = [
        wanted
        for wanted in requested
        if any(names_overlap(wanted, have) for have in recipe_ingredients)
    ]
    return len(matched), len(matched) / max(len(requested), len(recipe_ingredients))


def rank_similar(
    recipes: Iterable[Recipe],
    requested_ingredients: Iterable[str],
    threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    max_results: int = DEFAULT_MAX_RESULTS,
) -> list[SimilarityMatch]:
    requested = normalize_ingredients(requested_ingredients)
    if not requested:
        return []

    matches: list[SimilarityMatch] = []
    for recipe in recipes:
        recipe_names = normalize_ingredients(recipe.ingredient_names())
        common, similarity = compute_similarity(requested, recipe_names)
        if common and similarity >= threshold:
            matches.append(SimilarityMatch(recipe=recipe, common_count=common, similarity=similarity))

    # sort is stable: ties keep store order
    matches.sort(key=lambda m: (m.common_count, m.similarity), reverse=True)
    return matches[:max_results]


class SimilarityCacheIndex:
    def __init__(
        self,
        repository: RecipeRepository,
        threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
        max_results: int = DEFAULT_MAX_RESULTS,
        clock: Callable[[], datetime] = _now_utc,
    ) -> None:
        self._repo = repository
        self.threshold = threshold
        self.max_results = max_results
        self._clock = clock

    async def find_similar(
        self,
        requested_ingredients: Iterable[str],
        owner_id: Optional[str] = None,
        threshold: Optional[float] = None,
    ) -> list[Recipe]:
        """
        Unexpired cached recipes close enough to the request, best match first.

        Raises:
            RecipeRepositoryError: If the store query fails
        """
        requested = normalize_ingredients(requested_ingredients)
        if not requested:
            return []

        now = self._clock()
        candidates = await run_in_threadpool(self._repo.query_unexpired_by_owner, owner_id, now)
        # the store filters on expiry already; this guards against clock skew
        fresh = [recipe for recipe in candidates if not recipe.is_expired(now)]

        limit = self.threshold if threshold is None else threshold
        matches = rank_similar(fresh, requested, limit, self.max_results)

        logger.info(
            "Similarity lookup: owner=%s, requested=%d, candidates=%d, matches=%d",
            owner_id,
            len(requested),
            len(fresh),
            len(matches),
        )
        return [match.recipe for match in matches]
