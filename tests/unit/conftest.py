from __future__ import annotations

import copy
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import pytest

from src.app.domain.errors import RecipeRepositoryError
from src.app.domain.models import (
    ImageCacheEntry,
    ImageCandidate,
    ImageSource,
    Recipe,
    RecipeIngredient,
    RecipeStep,
    UserPreferences,
)
from src.app.infra.db.base import ImageCacheRepository, RecipeRepository, UserProfileRepository
from src.services.errors import ServiceError
from src.services.generation_client import GenerationRequest, RecipeGenerationCapability
from src.services.image_search import ImageSearchCapability
from src.services.persist_models import (
    RecipeHeaderRecord,
    RecipeImageRecord,
    RecipeIngredientRecord,
)

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


def make_recipe(
    recipe_id: str = "rec-1",
    name: str = "Chicken Rice",
    ingredients: Optional[list[str]] = None,
    user_id: Optional[str] = "user-1",
    cached_until: Optional[datetime] = None,
    is_cached: bool = True,
) -> Recipe:
    names = ["chicken", "rice"] if ingredients is None else ingredients
    return Recipe(
        recipe_id=recipe_id,
        name=name,
        steps=[RecipeStep(step="Cook", time=10, order=1)],
        ingredients=[RecipeIngredient(name=n) for n in names],
        user_id=user_id,
        is_cached=is_cached,
        cached_until=(cached_until or NOW + timedelta(hours=48)) if is_cached else None,
        created_at=NOW,
    )


class InMemoryRecipeRepository(RecipeRepository):
    def __init__(self) -> None:
        self.rows: dict[str, Recipe] = {}
        self._next_id = 1
        self.fail_header_insert = False
        self.fail_ingredient_insert = False
        self.fail_delete = False
        self.fail_query = False
        self.query_calls = 0

    def seed(self, recipe: Recipe) -> Recipe:
        self.rows[recipe.recipe_id] = copy.deepcopy(recipe)
        return recipe

    def insert_recipe_header(self, header: RecipeHeaderRecord) -> dict:
        if self.fail_header_insert:
            raise RecipeRepositoryError("insert_recipe_header", "header insert refused")

        recipe_id = f"rec-{self._next_id:04d}"
        self._next_id += 1
        self.rows[recipe_id] = Recipe(
            recipe_id=recipe_id,
            name=header.name,
            description=header.description,
            steps=[RecipeStep(step=s.step, time=s.time, order=s.order) for s in header.steps],
            cooking_time=header.cooking_time,
            servings=header.servings,
            difficulty=header.difficulty,
            user_id=header.user_id,
            model_version=header.model_version,
            prompt=header.prompt,
            image_url=header.image_url,
            is_cached=header.is_cached,
            cached_until=datetime.fromisoformat(header.cached_until) if header.cached_until else None,
            created_at=datetime.fromisoformat(header.created_at),
        )
        return {"recipe_id": recipe_id, **header.model_dump()}

    def insert_ingredients(self, recipe_id: str, ingredients: list[RecipeIngredientRecord]) -> None:
        if self.fail_ingredient_insert:
            raise RecipeRepositoryError("insert_ingredients", "ingredient insert refused")
        self.rows[recipe_id].ingredients.extend(
            RecipeIngredient(
                name=i.name,
                quantity=i.quantity,
                unit=i.unit,
                is_optional=i.is_optional,
                notes=i.notes,
            )
            for i in ingredients
        )

    def delete_recipe_header(self, recipe_id: str) -> None:
        if self.fail_delete:
            raise RecipeRepositoryError("delete_recipe_header", "delete refused")
        self.rows.pop(recipe_id, None)

    def query_unexpired_by_owner(self, owner_id: Optional[str], now: datetime) -> list[Recipe]:
        self.query_calls += 1
        if self.fail_query:
            raise RecipeRepositoryError("query_unexpired_by_owner", "store unavailable")
        return [
            copy.deepcopy(recipe)
            for recipe in self.rows.values()
            if recipe.is_cached
            and recipe.cached_until is not None
            and recipe.cached_until > now
            and (owner_id is None or recipe.user_id == owner_id)
        ]

    def delete_expired(self, cutoff: datetime) -> int:
        expired = [
            recipe_id
            for recipe_id, recipe in self.rows.items()
            if recipe.is_cached and recipe.cached_until is not None and recipe.cached_until < cutoff
        ]
        for recipe_id in expired:
            del self.rows[recipe_id]
        return len(expired)

    def get_recipe_by_id(self, recipe_id: str) -> Optional[Recipe]:
        recipe = self.rows.get(recipe_id)
        return copy.deepcopy(recipe) if recipe else None

    def mark_permanent(self, recipe_id: str, saved_at: datetime) -> Optional[Recipe]:
        recipe = self.rows.get(recipe_id)
        if recipe is None or not recipe.is_cached:
            return None
        recipe.promote(saved_at)
        return copy.deepcopy(recipe)

    def list_permanent_by_owner(self, owner_id: str) -> list[Recipe]:
        return [
            copy.deepcopy(recipe)
            for recipe in self.rows.values()
            if not recipe.is_cached and recipe.user_id == owner_id
        ]


class InMemoryImageCacheRepository(ImageCacheRepository):
    def __init__(self) -> None:
        self.entries: dict[str, ImageCacheEntry] = {}
        self.fail_reads = False
        self.fail_writes = False
        self.upserts: list[RecipeImageRecord] = []

    def get_by_hash(self, recipe_name_hash: str) -> Optional[ImageCacheEntry]:
        if self.fail_reads:
            raise RecipeRepositoryError("get_cached_image", "cache unavailable")
        return self.entries.get(recipe_name_hash)

    def upsert(self, record: RecipeImageRecord) -> None:
        if self.fail_writes:
            raise RecipeRepositoryError("cache_image", "cache unavailable")
        self.upserts.append(record)
        self.entries[record.recipe_name_hash] = ImageCacheEntry(
            recipe_name_hash=record.recipe_name_hash,
            image_url=record.image_url,
            source=ImageSource(record.source),
            created_at=datetime.fromisoformat(record.created_at),
            tags=list(record.tags),
        )

    def delete_older_than(self, cutoff: datetime) -> int:
        old = [
            key
            for key, entry in self.entries.items()
            if entry.created_at is not None and entry.created_at < cutoff
        ]
        for key in old:
            del self.entries[key]
        return len(old)


class InMemoryUserProfileRepository(UserProfileRepository):
    def __init__(self, profiles: Optional[dict[str, UserPreferences]] = None) -> None:
        self.profiles = dict(profiles or {})

    def get_preferences(self, user_id: str) -> Optional[UserPreferences]:
        return self.profiles.get(user_id)


class FakeGenerationCapability(RecipeGenerationCapability):
    def __init__(self, body: Any = None, error: Optional[ServiceError] = None) -> None:
        self.body = body if body is not None else {"recipes": []}
        self.error = error
        self.requests: list[GenerationRequest] = []
        self.closed = False

    async def generate(self, request: GenerationRequest) -> Any:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return copy.deepcopy(self.body)

    async def aclose(self) -> None:
        self.closed = True


class FakeImageSearch(ImageSearchCapability):
    def __init__(
        self,
        urls: Optional[list[str]] = None,
        error: Optional[ServiceError] = None,
    ) -> None:
        self.urls = ["https://img.example/1.jpg"] if urls is None else urls
        self.error = error
        self.queries: list[str] = []

    async def search(self, query: str) -> list[ImageCandidate]:
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return [ImageCandidate(url=url) for url in self.urls]


def generated_recipe(name: str, ingredients: list[str], steps: Optional[list[dict]] = None) -> dict:
    return {
        "name": name,
        "description": f"{name} for tonight",
        "steps": steps or [
            {"step": "Prep everything", "time": 5, "order": 1},
            {"step": "Cook", "time": 20, "order": 2},
        ],
        "ingredients": [{"name": n, "quantity": 1, "unit": "cup"} for n in ingredients],
        "cooking_time": 25,
        "servings": 2,
        "difficulty": "easy",
    }


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def recipe_repo() -> InMemoryRecipeRepository:
    return InMemoryRecipeRepository()


@pytest.fixture
def image_cache() -> InMemoryImageCacheRepository:
    return InMemoryImageCacheRepository()
