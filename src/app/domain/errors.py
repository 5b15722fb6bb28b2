from __future__ import annotations


class RecipeServiceError(Exception):
    pass


class ContractViolationError(RecipeServiceError):
    def __init__(self, message: str = "Generation service returned an invalid response"):
        super().__init__(message)


class GenerationFailureError(RecipeServiceError):
    def __init__(self, upstream_message: str):
        super().__init__(f"Recipe generation failed: {upstream_message}")
        self.upstream_message = upstream_message


class RecipePersistenceError(RecipeServiceError):
    def __init__(self, recipe_name: str, reason: str):
        super().__init__(f"Failed to cache recipe '{recipe_name}': {reason}")
        self.recipe_name = recipe_name
        self.reason = reason


class PersistencePartialFailureError(RecipePersistenceError):
    def __init__(self, recipe_name: str, recipe_id: str, reason: str, rollback_succeeded: bool = True):
        super().__init__(recipe_name, reason)
        self.recipe_id = recipe_id
        self.rollback_succeeded = rollback_succeeded


class EnrichmentDegradedError(RecipeServiceError):
    def __init__(self, recipe_name: str, reason: str):
        super().__init__(f"Image enrichment degraded for '{recipe_name}': {reason}")
        self.recipe_name = recipe_name
        self.reason = reason


class RecipeRepositoryError(RecipeServiceError):
    def __init__(self, operation: str, reason: str):
        super().__init__(f"Recipe repository error during {operation}: {reason}")
        self.operation = operation
        self.reason = reason


class RecipeNotFoundError(RecipeServiceError):
    def __init__(self, recipe_id: str):
        super().__init__(f"Recipe not found: {recipe_id}")
        self.recipe_id = recipe_id


class RecipeOwnershipError(RecipeServiceError):
    def __init__(self, recipe_id: str, user_id: str):
        super().__init__(f"Recipe {recipe_id} does not belong to user {user_id}")
        self.recipe_id = recipe_id
        self.user_id = user_id


class RecipeAlreadySavedError(RecipeServiceError):
    def __init__(self, recipe_id: str):
        super().__init__(f"Recipe already saved: {recipe_id}")
        self.recipe_id = recipe_id


class UserNotFoundError(RecipeServiceError):
    def __init__(self, user_id: str):
        super().__init__(f"User not found: {user_id}")
        self.user_id = user_id
