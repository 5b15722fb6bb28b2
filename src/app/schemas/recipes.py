# src/app/schemas/recipes.py
from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field

CacheStateValue = Literal["cached", "permanent"]


class GenerateRecipesRequest(BaseModel):
    ingredients: list[str] = Field(..., min_length=1)
    prompt: Optional[str] = Field(default=None, max_length=2000)
    # matches always share at least one ingredient
    similarityThreshold: Optional[float] = Field(default=None, gt=0, le=1)


class SaveRecipeRequest(BaseModel):
    recipeId: str = Field(..., min_length=1)


class RecipeStepResponse(BaseModel):
    step: str
    time: int = 0
    order: int


class RecipeIngredientResponse(BaseModel):
    name: str
    quantity: float = 0
    unit: str = ""
    isOptional: bool = False
    notes: Optional[str] = None


class RecipeResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    steps: list[RecipeStepResponse] = Field(default_factory=list)
    ingredients: list[RecipeIngredientResponse] = Field(default_factory=list)
    cookingTime: int = 0
    servings: int = 1
    difficulty: str = "medium"
    dietaryInfo: list[str] = Field(default_factory=list)
    imageUrl: Optional[str] = None
    modelVersion: Optional[str] = None
    cacheState: CacheStateValue
    cachedUntil: Optional[str] = None
    createdAt: Optional[str] = None
    savedAt: Optional[str] = None
    isSafe: Optional[bool] = None
    validationIssues: list[str] = Field(default_factory=list)


class ValidationSummaryResponse(BaseModel):
    total: int
    safe: int
    with_issues: int


class GenerateRecipesResponse(BaseModel):
    recipes: list[RecipeResponse]
    from_cache: bool
    validation_summary: Optional[ValidationSummaryResponse] = None


class CacheCleanResponse(BaseModel):
    recipesDeleted: int
    imagesDeleted: int


class CacheJobsResponse(BaseModel):
    total_jobs: int
    running_jobs: int
