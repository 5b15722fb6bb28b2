# src/services/generation_models.py
import re
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


def _number_or_zero(value: Any) -> Any:
    if value is None:
        return 0
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return 0
    return value


_LEADING_INT = re.compile(r"\d+")


def _leading_int(value: Any, default: int) -> Any:
    """Read counts like "30 minutes" or "4-6" as their first whole number."""
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        match = _LEADING_INT.search(value)
        return int(match.group()) if match else default
    return value


class GeneratedIngredientPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = Field(min_length=1)
    quantity: float = 0
    unit: str = ""
    is_optional: bool = False
    notes: Optional[str] = None

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("quantity", mode="before")
    @classmethod
    def coerce_quantity(cls, value: Any) -> Any:
        return _number_or_zero(value)

    @field_validator("unit", mode="before")
    @classmethod
    def default_unit(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("is_optional", mode="before")
    @classmethod
    def default_optional(cls, value: Any) -> Any:
        return False if value is None else value


class GeneratedStepPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    step: str = Field(min_length=1)
    time: int = 0
    order: int

    @field_validator("time", mode="before")
    @classmethod
    def coerce_time(cls, value: Any) -> Any:
        return _leading_int(value, 0)


class GeneratedRecipePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = Field(min_length=1)
    description: Optional[str] = None
    ingredients: list[GeneratedIngredientPayload] = Field(default_factory=list)
    steps: list[GeneratedStepPayload] = Field(default_factory=list)
    cooking_time: int = 0
    servings: int = 1
    dietary_info: list[str] = Field(default_factory=list)
    model_version: Optional[str] = None
    difficulty: str = "medium"

    @field_validator("cooking_time", "servings", mode="before")
    @classmethod
    def coerce_counts(cls, value: Any, info: ValidationInfo) -> Any:
        return _leading_int(value, 1 if info.field_name == "servings" else 0)

    @field_validator("difficulty", mode="before")
    @classmethod
    def default_difficulty(cls, value: Any) -> Any:
        return value or "medium"

    @field_validator("dietary_info", mode="before")
    @classmethod
    def default_dietary_info(cls, value: Any) -> Any:
        return value or []
