# src/app/domain/models.py
"""
Domain models for the recipe generation and caching pipeline.
These are pure data structures with no infrastructure dependencies.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Optional

from src.app.domain.errors import RecipeAlreadySavedError


class CacheState(str, Enum):
    """Lifecycle state of a stored recipe."""
    CACHED = "cached"
    PERMANENT = "permanent"


class ImageSource(str, Enum):
    """Where a cached recipe image came from."""
    UNSPLASH = "unsplash"
    DEFAULT = "default"


@dataclass
class RecipeStep:
    """A single instruction; `order` is authoritative for sequencing."""
    step: str
    time: int = 0  # minutes
    order: int = 0


@dataclass
class RecipeIngredient:
    name: str
    quantity: float = 0
    unit: str = ""
    is_optional: bool = False
    notes: Optional[str] = None


@dataclass
class Recipe:
    """
    A generated recipe.

    Either cached (has `cached_until`) or permanent (promoted by a user, no
    expiry). Promotion only goes from cached to permanent.
    """
    recipe_id: str
    name: str
    steps: list[RecipeStep] = field(default_factory=list)
    ingredients: list[RecipeIngredient] = field(default_factory=list)
    cooking_time: int = 0
    servings: int = 1
    difficulty: str = "medium"
    description: Optional[str] = None

    # Ownership and provenance
    user_id: Optional[str] = None
    model_version: Optional[str] = None
    prompt: Optional[str] = None
    dietary_info: list[str] = field(default_factory=list)
    image_url: Optional[str] = None

    # Cache lifecycle
    is_cached: bool = True
    cached_until: Optional[datetime] = None
    created_at: Optional[datetime] = None
    saved_at: Optional[datetime] = None

    # Validation annotations (per request, never stored)
    is_safe: Optional[bool] = None
    validation_issues: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.is_cached and self.cached_until is None:
            raise ValueError(f"Cached recipe {self.recipe_id} requires cached_until")
        if not self.is_cached and self.cached_until is not None:
            raise ValueError(f"Permanent recipe {self.recipe_id} cannot have cached_until")

    @property
    def cache_state(self) -> CacheState:
        return CacheState.CACHED if self.is_cached else CacheState.PERMANENT

    def is_expired(self, now: datetime) -> bool:
        """A permanent recipe never expires."""
        if not self.is_cached or self.cached_until is None:
            return False
        return self.cached_until <= now

    def sorted_steps(self) -> list[RecipeStep]:
        return sorted(self.steps, key=lambda s: s.order)

    def ingredient_names(self) -> list[str]:
        return [ingredient.name for ingredient in self.ingredients]

    def promote(self, saved_at: datetime) -> None:
        if not self.is_cached:
            raise RecipeAlreadySavedError(self.recipe_id)
        self.is_cached = False
        self.cached_until = None
        self.saved_at = saved_at


def _clean_terms(values: Optional[Iterable[Any]]) -> tuple[str, ...]:
    if not values:
        return ()
    seen: list[str] = []
    for value in values:
        if not isinstance(value, str):
            continue
        text = value.strip()
        if text and text not in seen:
            seen.append(text)
    return tuple(seen)


@dataclass(frozen=True)
class UserPreferences:
    """Snapshot of a user's dietary profile for a single request."""
    dietary_restrictions: tuple[str, ...] = ()
    banned_ingredients: tuple[str, ...] = ()
    favorite_ingredients: tuple[str, ...] = ()
    allergies: tuple[str, ...] = ()

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "UserPreferences":
        return cls(
            dietary_restrictions=_clean_terms(row.get("dietary_restrictions")),
            banned_ingredients=_clean_terms(row.get("banned_ingredients")),
            favorite_ingredients=_clean_terms(row.get("favorite_ingredients")),
            allergies=_clean_terms(row.get("allergies")),
        )


@dataclass
class ValidationResult:
    """Outcome of checking one recipe against allergies and bans."""
    is_safe: bool
    issues: list[str] = field(default_factory=list)


@dataclass
class ValidationSummary:
    total: int
    safe: int
    with_issues: int

    def to_dict(self) -> dict[str, int]:
        return {"total": self.total, "safe": self.safe, "with_issues": self.with_issues}


@dataclass
class SimilarityMatch:
    """A cached recipe paired with its overlap against a request."""
    recipe: Recipe
    common_count: int
    similarity: float


@dataclass
class ImageCandidate:
    url: str
    image_id: Optional[str] = None
    alt_description: Optional[str] = None


@dataclass
class ImageCacheEntry:
    recipe_name_hash: str
    image_url: str
    source: ImageSource
    created_at: Optional[datetime] = None
    tags: list[str] = field(default_factory=list)


@dataclass
class GenerationResult:
    """What the orchestrator hands back for one generate request."""
    recipes: list[Recipe]
    from_cache: bool
    validation_summary: Optional[ValidationSummary] = None
