from __future__ import annotations

import random
from datetime import timedelta

import pytest

from conftest import (
    NOW,
    FakeGenerationCapability,
    FakeImageSearch,
    InMemoryImageCacheRepository,
    InMemoryRecipeRepository,
    InMemoryUserProfileRepository,
    generated_recipe,
    make_recipe,
)
from src.app.domain.errors import (
    ContractViolationError,
    GenerationFailureError,
    RecipeAlreadySavedError,
    RecipeNotFoundError,
    RecipeOwnershipError,
    RecipeRepositoryError,
    UserNotFoundError,
)
from src.app.domain.models import UserPreferences
from src.app.services.cache_writer import RecipeCacheWriter
from src.app.services.image_enrichment import ImageEnrichmentPipeline
from src.app.services.recipe_generation_service import RecipeGenerationService
from src.app.services.similarity_index import SimilarityCacheIndex
from src.services.errors import NetworkTimeoutError
from src.services.ids import is_temp_id
from src.services.recipe_generator import RecipeGeneratorClient


class Harness:
    def __init__(
        self,
        body: dict | None = None,
        preferences: UserPreferences | None = None,
        capability: FakeGenerationCapability | None = None,
    ) -> None:
        clock = lambda: NOW  # noqa: E731
        self.recipes = InMemoryRecipeRepository()
        self.images = InMemoryImageCacheRepository()
        self.users = InMemoryUserProfileRepository({"user-1": preferences or UserPreferences()})
        self.capability = capability or FakeGenerationCapability(body or {"recipes": []})
        self.search = FakeImageSearch(["https://img/food.jpg"])
        self.service = RecipeGenerationService(
            similarity_index=SimilarityCacheIndex(self.recipes, clock=clock),
            generator=RecipeGeneratorClient(self.capability, clock=clock),
            image_pipeline=ImageEnrichmentPipeline(
                self.images, self.search, batch_delay_seconds=0, rng=random.Random(1), clock=clock
            ),
            cache_writer=RecipeCacheWriter(self.recipes, clock=clock),
            recipe_repository=self.recipes,
            user_repository=self.users,
            clock=clock,
        )


class TestGenerateRecipes:
    @pytest.mark.asyncio
    async def test_allergy_scenario(self) -> None:
        harness = Harness(
            body={
                "recipes": [
                    generated_recipe("Chicken Fried Rice", ["chicken", "rice", "egg"]),
                    generated_recipe("Walnut Chicken", ["chicken", "walnuts", "rice"]),
                ]
            },
            preferences=UserPreferences(allergies=("nuts",)),
        )

        result = await harness.service.generate_recipes("user-1", ["chicken", "rice"])

        assert result.from_cache is False
        assert result.validation_summary.to_dict() == {"total": 2, "safe": 1, "with_issues": 1}
        assert [r.name for r in result.recipes] == ["Chicken Fried Rice"]
        persisted = result.recipes[0]
        assert not is_temp_id(persisted.recipe_id)
        assert persisted.is_safe is True
        assert persisted.image_url == "https://img/food.jpg"
        assert [r.name for r in harness.recipes.rows.values()] == ["Chicken Fried Rice"]

    @pytest.mark.asyncio
    async def test_unsafe_recipe_carries_issue(self) -> None:
        harness = Harness(
            body={"recipes": [generated_recipe("Walnut Chicken", ["chicken", "walnuts"])]},
            preferences=UserPreferences(allergies=("nuts",)),
        )

        result = await harness.service.generate_recipes("user-1", ["chicken"])

        recipe = result.recipes[0]
        assert is_temp_id(recipe.recipe_id)
        assert recipe.is_safe is False
        assert len(recipe.validation_issues) == 1
        assert "nuts" in recipe.validation_issues[0]
        assert recipe.image_url == "https://img/food.jpg"
        assert harness.recipes.rows == {}

    @pytest.mark.asyncio
    async def test_cache_hit_skips_generation(self) -> None:
        harness = Harness()
        harness.recipes.seed(make_recipe("rec-cached", ingredients=["chicken", "rice", "garlic"], user_id="user-1"))

        result = await harness.service.generate_recipes("user-1", ["chicken", "rice"], similarity_threshold=0.5)

        assert result.from_cache is True
        assert [r.recipe_id for r in result.recipes] == ["rec-cached"]
        assert result.validation_summary is None
        assert harness.capability.requests == []

    @pytest.mark.asyncio
    async def test_prompt_is_optimized_with_preferences(self) -> None:
        harness = Harness(
            body={"recipes": []},
            preferences=UserPreferences(favorite_ingredients=("garlic",), allergies=("milk",)),
        )

        await harness.service.generate_recipes("user-1", ["pasta"], prompt="Quick lunch")

        request = harness.capability.requests[0]
        assert request.prompt.startswith("Quick lunch")
        assert "garlic" in request.prompt
        assert "must not include under any circumstance: milk" in request.prompt
        assert request.allergies == ["milk"]

    @pytest.mark.asyncio
    async def test_unknown_user(self) -> None:
        with pytest.raises(UserNotFoundError):
            await Harness().service.generate_recipes("ghost", ["rice"])

    @pytest.mark.asyncio
    async def test_generation_failure_aborts(self) -> None:
        harness = Harness(capability=FakeGenerationCapability(error=NetworkTimeoutError("http://ai", 60)))

        with pytest.raises(GenerationFailureError):
            await harness.service.generate_recipes("user-1", ["rice"])

        assert harness.recipes.rows == {}

    @pytest.mark.asyncio
    async def test_contract_violation_aborts(self) -> None:
        harness = Harness(body={"result": "nope"})

        with pytest.raises(ContractViolationError):
            await harness.service.generate_recipes("user-1", ["rice"])

    @pytest.mark.asyncio
    async def test_cache_lookup_failure_is_a_miss(self) -> None:
        harness = Harness(body={"recipes": [generated_recipe("Rice Bowl", ["rice"])]})
        harness.recipes.fail_query = True

        result = await harness.service.generate_recipes("user-1", ["rice"])

        assert result.from_cache is False
        assert len(harness.capability.requests) == 1

    @pytest.mark.asyncio
    async def test_persist_failure_returns_transient_recipes(self) -> None:
        harness = Harness(body={"recipes": [generated_recipe("Rice Bowl", ["rice"])]})
        harness.recipes.fail_ingredient_insert = True

        result = await harness.service.generate_recipes("user-1", ["rice"])

        assert result.validation_summary.safe == 1
        assert is_temp_id(result.recipes[0].recipe_id)
        assert harness.recipes.rows == {}

    @pytest.mark.asyncio
    async def test_partial_persist_keeps_the_others(self) -> None:
        harness = Harness(
            body={
                "recipes": [
                    generated_recipe("Rice Bowl", ["rice"]),
                    generated_recipe("Rice Pudding", ["rice", "sugar"]),
                ]
            }
        )
        original_insert = harness.recipes.insert_ingredients

        def flaky_insert(recipe_id, ingredients):
            if harness.recipes.rows[recipe_id].name == "Rice Bowl":
                raise RecipeRepositoryError("insert_ingredients", "constraint violation")
            return original_insert(recipe_id, ingredients)

        harness.recipes.insert_ingredients = flaky_insert

        result = await harness.service.generate_recipes("user-1", ["rice"])

        assert [r.name for r in result.recipes] == ["Rice Pudding"]
        assert [r.name for r in harness.recipes.rows.values()] == ["Rice Pudding"]


class TestPromoteRecipe:
    @pytest.mark.asyncio
    async def test_promotes_cached_recipe(self) -> None:
        harness = Harness()
        harness.recipes.seed(make_recipe("rec-1", user_id="user-1"))

        recipe = await harness.service.promote_recipe("user-1", "rec-1")

        assert recipe.is_cached is False
        assert recipe.cached_until is None
        assert recipe.saved_at == NOW

    @pytest.mark.asyncio
    async def test_anonymous_cache_entry_can_be_promoted(self) -> None:
        harness = Harness()
        harness.recipes.seed(make_recipe("rec-1", user_id=None))

        recipe = await harness.service.promote_recipe("user-1", "rec-1")

        assert recipe.is_cached is False

    @pytest.mark.asyncio
    async def test_unknown_recipe(self) -> None:
        with pytest.raises(RecipeNotFoundError):
            await Harness().service.promote_recipe("user-1", "missing")

    @pytest.mark.asyncio
    async def test_unstored_placeholder_id_skips_the_store(self) -> None:
        harness = Harness()
        lookups: list[str] = []
        harness.recipes.get_recipe_by_id = lambda recipe_id: lookups.append(recipe_id)

        with pytest.raises(RecipeNotFoundError):
            await harness.service.promote_recipe("user-1", "temp_lq2x9k_ab12cd")

        assert lookups == []

    @pytest.mark.asyncio
    async def test_other_owner(self) -> None:
        harness = Harness()
        harness.recipes.seed(make_recipe("rec-1", user_id="user-2"))

        with pytest.raises(RecipeOwnershipError):
            await harness.service.promote_recipe("user-1", "rec-1")

    @pytest.mark.asyncio
    async def test_already_saved(self) -> None:
        harness = Harness()
        harness.recipes.seed(make_recipe("rec-1", user_id="user-1", is_cached=False))

        with pytest.raises(RecipeAlreadySavedError):
            await harness.service.promote_recipe("user-1", "rec-1")

    @pytest.mark.asyncio
    async def test_expired_recipe_cannot_be_promoted(self) -> None:
        harness = Harness()
        harness.recipes.seed(make_recipe("rec-1", cached_until=NOW - timedelta(hours=1)))

        with pytest.raises(RecipeNotFoundError):
            await harness.service.promote_recipe("user-1", "rec-1")


class TestPurgeExpiredCache:
    @pytest.mark.asyncio
    async def test_removes_only_expired_cached_recipes(self) -> None:
        harness = Harness()
        harness.recipes.seed(make_recipe("old", cached_until=NOW - timedelta(hours=1)))
        harness.recipes.seed(make_recipe("fresh"))
        harness.recipes.seed(make_recipe("saved", is_cached=False))

        assert await harness.service.purge_expired_cache() == 1
        assert sorted(harness.recipes.rows) == ["fresh", "saved"]
        assert await harness.service.purge_expired_cache() == 0


class TestRecipeQueries:
    @pytest.mark.asyncio
    async def test_list_cached_and_saved(self) -> None:
        harness = Harness()
        harness.recipes.seed(make_recipe("cached", user_id="user-1"))
        harness.recipes.seed(make_recipe("saved", user_id="user-1", is_cached=False))
        harness.recipes.seed(make_recipe("other", user_id="user-2", is_cached=False))

        cached = await harness.service.list_cached_recipes("user-1")
        saved = await harness.service.list_saved_recipes("user-1")

        assert [r.recipe_id for r in cached] == ["cached"]
        assert [r.recipe_id for r in saved] == ["saved"]

    @pytest.mark.asyncio
    async def test_get_recipe_checks_owner(self) -> None:
        harness = Harness()
        harness.recipes.seed(make_recipe("shared", user_id=None))
        harness.recipes.seed(make_recipe("private", user_id="user-2"))

        assert (await harness.service.get_recipe("user-1", "shared")).recipe_id == "shared"
        with pytest.raises(RecipeOwnershipError):
            await harness.service.get_recipe("user-1", "private")

    @pytest.mark.asyncio
    async def test_delete_saved_recipe(self) -> None:
        harness = Harness()
        harness.recipes.seed(make_recipe("saved", user_id="user-1", is_cached=False))
        harness.recipes.seed(make_recipe("cached", user_id="user-1"))

        await harness.service.delete_saved_recipe("user-1", "saved")

        assert "saved" not in harness.recipes.rows
        with pytest.raises(RecipeNotFoundError):
            await harness.service.delete_saved_recipe("user-1", "cached")
