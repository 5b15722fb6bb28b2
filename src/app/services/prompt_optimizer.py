from __future__ import annotations

from src.app.domain.models import UserPreferences


def _join(items: tuple[str, ...]) -> str:
    return ", ".join(items)


def optimize_prompt(base_prompt: str | None, preferences: UserPreferences) -> str:
    """
    Append the user's constraints to a free-text prompt.

    Clauses go favorites, allergies, dietary restrictions, banned ingredients;
    empty lists add nothing. Not idempotent: call once per request.
    """
    parts: list[str] = []
    if base_prompt and base_prompt.strip():
        parts.append(base_prompt.strip())

    if preferences.favorite_ingredients:
        parts.append(
            f"Prefer recipes that use these favorite ingredients: {_join(preferences.favorite_ingredients)}."
        )
    if preferences.allergies:
        parts.append(
            "The user is allergic to the following; the recipe must not include under any "
            f"circumstance: {_join(preferences.allergies)}."
        )
    if preferences.dietary_restrictions:
        parts.append(
            f"Follow these dietary restrictions: {_join(preferences.dietary_restrictions)}."
        )
    if preferences.banned_ingredients:
        parts.append(
            f"Do not use these banned ingredients: {_join(preferences.banned_ingredients)}."
        )

    return " ".join(parts).rstrip()
