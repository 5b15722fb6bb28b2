# src/services/persist_models.py
from typing import Literal, Optional

from pydantic import BaseModel, Field

ImageSourceValue = Literal["unsplash", "default"]


class RecipeStepRecord(BaseModel):
    step: str
    time: int = 0
    order: int


class RecipeHeaderRecord(BaseModel):
    user_id: Optional[str] = None
    name: str
    description: Optional[str] = None
    steps: list[RecipeStepRecord] = Field(default_factory=list)
    cooking_time: int = 0
    servings: int = 1
    difficulty: str = "medium"
    model_version: Optional[str] = None
    image_url: Optional[str] = None
    prompt: Optional[str] = None
    is_cached: bool = True
    cached_until: Optional[str] = None
    created_at: str


class RecipeIngredientRecord(BaseModel):
    recipe_id: str
    name: str
    quantity: float = 0
    unit: str = ""
    is_optional: bool = False
    notes: Optional[str] = None


class RecipeImageRecord(BaseModel):
    recipe_name_hash: str
    image_url: str
    source: ImageSourceValue = "unsplash"
    tags: list[str] = Field(default_factory=list)
    created_at: str
