# src/app/infra/db/base.py
"""
Abstract store interfaces used by the recipe pipeline.
These allow swapping Supabase for another backend (or an in-memory fake in tests).
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from src.app.domain.models import ImageCacheEntry, Recipe, UserPreferences
from src.services.persist_models import (
    RecipeHeaderRecord,
    RecipeImageRecord,
    RecipeIngredientRecord,
)


class RecipeRepository(ABC):
    """
    Storage for generated recipes (headers + ingredient rows).

    Implementations:
    - SupabaseRecipeRepository: `ai_recipes` + `recipe_ingredients` tables
    """

    @abstractmethod
    def insert_recipe_header(self, header: RecipeHeaderRecord) -> dict:
        """
        Insert a recipe without its ingredients.

        Returns:
            The stored row, including the persistent `recipe_id`
        """
        pass

    @abstractmethod
    def insert_ingredients(
        self,
        recipe_id: str,
        ingredients: list[RecipeIngredientRecord],
    ) -> None:
        pass

    @abstractmethod
    def delete_recipe_header(self, recipe_id: str) -> None:
        """Delete a recipe header together with any ingredient rows."""
        pass

    @abstractmethod
    def query_unexpired_by_owner(
        self,
        owner_id: Optional[str],
        now: datetime,
    ) -> list[Recipe]:
        """
        Cached recipes whose expiry is still in the future.

        Args:
            owner_id: Restrict to one user; None means all owners
            now: Reference time for the expiry filter
        """
        pass

    @abstractmethod
    def delete_expired(self, cutoff: datetime) -> int:
        """
        Delete cached (never promoted) recipes that expired before `cutoff`.

        Returns:
            Number of recipes removed
        """
        pass

    @abstractmethod
    def get_recipe_by_id(self, recipe_id: str) -> Optional[Recipe]:
        pass

    @abstractmethod
    def mark_permanent(self, recipe_id: str, saved_at: datetime) -> Optional[Recipe]:
        """Clear the expiry of a cached recipe. Returns None if nothing was updated."""
        pass

    @abstractmethod
    def list_permanent_by_owner(self, owner_id: str) -> list[Recipe]:
        pass


class ImageCacheRepository(ABC):
    """Process-wide image cache keyed by recipe-name hash."""

    @abstractmethod
    def get_by_hash(self, recipe_name_hash: str) -> Optional[ImageCacheEntry]:
        pass

    @abstractmethod
    def upsert(self, record: RecipeImageRecord) -> None:
        pass

    @abstractmethod
    def delete_older_than(self, cutoff: datetime) -> int:
        pass


class UserProfileRepository(ABC):

    @abstractmethod
    def get_preferences(self, user_id: str) -> Optional[UserPreferences]:
        """Return the user's dietary profile, or None if the user does not exist."""
        pass
