from __future__ import annotations

from typing import Iterable, Optional

from src.app.domain.models import Recipe, ValidationResult
from src.services.normalize import names_overlap, normalize_name


def _find_offending_ingredient(term: str, ingredient_names: list[tuple[str, str]]) -> Optional[str]:
    for original, normalized in ingredient_names:
        if names_overlap(normalized, term):
            return original
    return None


def validate_recipe(
    recipe: Recipe,
    allergies: Iterable[str] = (),
    banned_ingredients: Iterable[str] = (),
) -> ValidationResult:
    """
    Check a recipe's ingredients against allergies and banned ingredients.

    One issue per violated term, allergies first, then bans.
    """
    ingredient_names = [
        (ingredient.name, normalize_name(ingredient.name))
        for ingredient in recipe.ingredients
        if ingredient.name and ingredient.name.strip()
    ]

    issues: list[str] = []
    checks = (("Allergy", allergies), ("Banned ingredient", banned_ingredients))
    for label, terms in checks:
        for term in terms:
            normalized_term = normalize_name(term) if isinstance(term, str) else ""
            if not normalized_term:
                continue
            offending = _find_offending_ingredient(normalized_term, ingredient_names)
            if offending is not None:
                issues.append(f"{label}: '{term.strip()}' found in ingredient '{offending}'")

    return ValidationResult(is_safe=not issues, issues=issues)
