from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

import httpx
from postgrest.exceptions import APIError
from supabase import Client, create_client

from src.app.config import get_settings
from src.app.domain.errors import RecipeRepositoryError
from src.app.domain.models import (
    ImageCacheEntry,
    ImageSource,
    Recipe,
    RecipeIngredient,
    RecipeStep,
    UserPreferences,
)
from src.app.infra.db.base import ImageCacheRepository, RecipeRepository, UserProfileRepository
from src.services.persist_models import (
    RecipeHeaderRecord,
    RecipeImageRecord,
    RecipeIngredientRecord,
)

logger = logging.getLogger(__name__)

STORE_ERRORS = (APIError, httpx.HTTPError, ConnectionError, TimeoutError)

RECIPE_COLUMNS = "*, recipe_ingredients(*)"
PREFERENCE_COLUMNS = "user_id, dietary_restrictions, banned_ingredients, favorite_ingredients, allergies"


def _parse_datetime(value: str | datetime | None) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)
    if not isinstance(value, str):
        return None

    try:
        normalized = value.replace("Z", "+00:00") if value.endswith("Z") else value
        parsed = datetime.fromisoformat(normalized)
    except ValueError:
        return None
    # timestamp columns without a zone hold UTC
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed


def _safe_int(value: object, default: int = 0) -> int:
    try:
        return int(value) if value is not None else default
    except (TypeError, ValueError):
        return default


def _safe_float(value: object, default: float = 0) -> float:
    try:
        return float(value) if value is not None else default
    except (TypeError, ValueError):
        return default


def _safe_str(value: object) -> str | None:
    return str(value) if value else None


def _row_to_step(row: dict[str, Any]) -> RecipeStep:
    return RecipeStep(
        step=str(row.get("step") or ""),
        time=_safe_int(row.get("time")),
        order=_safe_int(row.get("order")),
    )


def _row_to_ingredient(row: dict[str, Any]) -> RecipeIngredient:
    return RecipeIngredient(
        name=str(row.get("name") or ""),
        quantity=_safe_float(row.get("quantity")),
        unit=str(row.get("unit") or ""),
        is_optional=bool(row.get("is_optional")),
        notes=_safe_str(row.get("notes")),
    )


def row_to_recipe(row: dict[str, Any]) -> Recipe:
    cached_until = _parse_datetime(row.get("cached_until"))
    is_cached = bool(row.get("is_cached")) and cached_until is not None

    steps = [_row_to_step(step) for step in row.get("steps") or [] if isinstance(step, dict)]
    steps.sort(key=lambda s: s.order)

    return Recipe(
        recipe_id=str(row["recipe_id"]),
        name=str(row.get("name") or ""),
        description=_safe_str(row.get("description")),
        steps=steps,
        ingredients=[
            _row_to_ingredient(item)
            for item in row.get("recipe_ingredients") or []
            if isinstance(item, dict)
        ],
        cooking_time=_safe_int(row.get("cooking_time")),
        servings=_safe_int(row.get("servings"), 1),
        difficulty=str(row.get("difficulty") or "medium"),
        user_id=_safe_str(row.get("user_id")),
        model_version=_safe_str(row.get("model_version")),
        prompt=_safe_str(row.get("prompt")),
        image_url=_safe_str(row.get("image_url")),
        is_cached=is_cached,
        cached_until=cached_until if is_cached else None,
        created_at=_parse_datetime(row.get("created_at")),
        saved_at=_parse_datetime(row.get("saved_at")),
    )


def _create_supabase_client() -> Client:
    settings = get_settings()
    return create_client(str(settings.SUPABASE_URL), settings.SUPABASE_SERVICE_ROLE_KEY)


class SupabaseRecipeRepository(RecipeRepository):
    TABLE_NAME = "ai_recipes"
    INGREDIENTS_TABLE = "recipe_ingredients"

    def __init__(self, client: Client | None = None):
        self._client = client or _create_supabase_client()
        logger.info("SupabaseRecipeRepository initialized")

    def insert_recipe_header(self, header: RecipeHeaderRecord) -> dict:
        try:
            result = self._client.table(self.TABLE_NAME).insert(header.model_dump()).execute()
        except STORE_ERRORS as error:
            logger.error("Error inserting recipe header: name=%s, error=%s", header.name, error)
            raise RecipeRepositoryError("insert_recipe_header", str(error)) from error

        if not result.data:
            raise RecipeRepositoryError("insert_recipe_header", "no row returned")

        row = result.data[0]
        logger.info("Inserted recipe header: id=%s, name=%s", row.get("recipe_id"), header.name)
        return row

    def insert_ingredients(
        self,
        recipe_id: str,
        ingredients: list[RecipeIngredientRecord],
    ) -> None:
        if not ingredients:
            return

        rows = [ingredient.model_dump() for ingredient in ingredients]
        try:
            self._client.table(self.INGREDIENTS_TABLE).insert(rows).execute()
        except STORE_ERRORS as error:
            logger.error("Error inserting ingredients: recipe=%s, error=%s", recipe_id, error)
            raise RecipeRepositoryError("insert_ingredients", str(error)) from error

    def delete_recipe_header(self, recipe_id: str) -> None:
        try:
            self._client.table(self.INGREDIENTS_TABLE).delete().eq("recipe_id", recipe_id).execute()
            self._client.table(self.TABLE_NAME).delete().eq("recipe_id", recipe_id).execute()
        except STORE_ERRORS as error:
            logger.error("Error deleting recipe: id=%s, error=%s", recipe_id, error)
            raise RecipeRepositoryError("delete_recipe_header", str(error)) from error

        logger.info("Deleted recipe: id=%s", recipe_id)

    def query_unexpired_by_owner(
        self,
        owner_id: Optional[str],
        now: datetime,
    ) -> list[Recipe]:
        query = (
            self._client.table(self.TABLE_NAME)
            .select(RECIPE_COLUMNS)
            .eq("is_cached", True)
            .gt("cached_until", now.isoformat())
        )
        if owner_id:
            query = query.eq("user_id", owner_id)

        try:
            result = query.execute()
        except STORE_ERRORS as error:
            logger.error("Error querying cached recipes: owner=%s, error=%s", owner_id, error)
            raise RecipeRepositoryError("query_unexpired_by_owner", str(error)) from error

        return [row_to_recipe(row) for row in result.data or []]

    def delete_expired(self, cutoff: datetime) -> int:
        # Headers go first so a recipe promoted mid-sweep keeps its ingredients;
        # recipe_ingredients.recipe_id is declared ON DELETE CASCADE.
        try:
            result = (
                self._client.table(self.TABLE_NAME)
                .delete()
                .eq("is_cached", True)
                .lt("cached_until", cutoff.isoformat())
                .execute()
            )
            expired_ids = [str(row["recipe_id"]) for row in result.data or []]
            if not expired_ids:
                return 0

            self._client.table(self.INGREDIENTS_TABLE).delete().in_("recipe_id", expired_ids).execute()
        except STORE_ERRORS as error:
            logger.error("Error deleting expired recipes: %s", error)
            raise RecipeRepositoryError("delete_expired", str(error)) from error

        logger.info("Deleted %d expired cached recipes", len(expired_ids))
        return len(expired_ids)

    def get_recipe_by_id(self, recipe_id: str) -> Optional[Recipe]:
        try:
            result = (
                self._client.table(self.TABLE_NAME)
                .select(RECIPE_COLUMNS)
                .eq("recipe_id", recipe_id)
                .limit(1)
                .execute()
            )
        except STORE_ERRORS as error:
            logger.error("Error fetching recipe: id=%s, error=%s", recipe_id, error)
            raise RecipeRepositoryError("get_recipe_by_id", str(error)) from error

        if not result.data:
            return None
        return row_to_recipe(result.data[0])

    def mark_permanent(self, recipe_id: str, saved_at: datetime) -> Optional[Recipe]:
        update_data = {
            "is_cached": False,
            "cached_until": None,
            "saved_at": saved_at.isoformat(),
        }

        try:
            result = (
                self._client.table(self.TABLE_NAME)
                .update(update_data)
                .eq("recipe_id", recipe_id)
                .eq("is_cached", True)
                .execute()
            )
        except STORE_ERRORS as error:
            logger.error("Error promoting recipe: id=%s, error=%s", recipe_id, error)
            raise RecipeRepositoryError("mark_permanent", str(error)) from error

        if not result.data:
            return None

        logger.info("Recipe promoted to permanent: id=%s", recipe_id)
        return self.get_recipe_by_id(recipe_id)

    def list_permanent_by_owner(self, owner_id: str) -> list[Recipe]:
        try:
            result = (
                self._client.table(self.TABLE_NAME)
                .select(RECIPE_COLUMNS)
                .eq("user_id", owner_id)
                .eq("is_cached", False)
                .order("saved_at", desc=True)
                .execute()
            )
        except STORE_ERRORS as error:
            logger.error("Error listing saved recipes: owner=%s, error=%s", owner_id, error)
            raise RecipeRepositoryError("list_permanent_by_owner", str(error)) from error

        return [row_to_recipe(row) for row in result.data or []]


class SupabaseImageCacheRepository(ImageCacheRepository):
    TABLE_NAME = "recipe_images_cache"

    def __init__(self, client: Client | None = None):
        self._client = client or _create_supabase_client()

    def get_by_hash(self, recipe_name_hash: str) -> Optional[ImageCacheEntry]:
        try:
            result = (
                self._client.table(self.TABLE_NAME)
                .select("*")
                .eq("recipe_name_hash", recipe_name_hash)
                .limit(1)
                .execute()
            )
        except STORE_ERRORS as error:
            raise RecipeRepositoryError("get_cached_image", str(error)) from error

        if not result.data:
            return None

        row = result.data[0]
        try:
            source = ImageSource(str(row.get("source") or ImageSource.DEFAULT.value))
        except ValueError:
            source = ImageSource.DEFAULT

        return ImageCacheEntry(
            recipe_name_hash=str(row["recipe_name_hash"]),
            image_url=str(row["image_url"]),
            source=source,
            created_at=_parse_datetime(row.get("created_at")),
            tags=list(row.get("tags") or []),
        )

    def upsert(self, record: RecipeImageRecord) -> None:
        try:
            (
                self._client.table(self.TABLE_NAME)
                .upsert(record.model_dump(), on_conflict="recipe_name_hash")
                .execute()
            )
        except STORE_ERRORS as error:
            raise RecipeRepositoryError("cache_image", str(error)) from error

    def delete_older_than(self, cutoff: datetime) -> int:
        try:
            result = (
                self._client.table(self.TABLE_NAME)
                .delete()
                .lt("created_at", cutoff.isoformat())
                .execute()
            )
        except STORE_ERRORS as error:
            raise RecipeRepositoryError("delete_old_images", str(error)) from error

        deleted = len(result.data or [])
        logger.info("Deleted %d cached images older than %s", deleted, cutoff.isoformat())
        return deleted


class SupabaseUserProfileRepository(UserProfileRepository):
    TABLE_NAME = "users"

    def __init__(self, client: Client | None = None):
        self._client = client or _create_supabase_client()

    def get_preferences(self, user_id: str) -> Optional[UserPreferences]:
        try:
            result = (
                self._client.table(self.TABLE_NAME)
                .select(PREFERENCE_COLUMNS)
                .eq("user_id", user_id)
                .limit(1)
                .execute()
            )
        except STORE_ERRORS as error:
            logger.error("Error fetching user profile: user=%s, error=%s", user_id, error)
            raise RecipeRepositoryError("get_preferences", str(error)) from error

        if not result.data:
            return None
        return UserPreferences.from_row(result.data[0])
