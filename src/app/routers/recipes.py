# src/app/routers/recipes.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status

from src.app.deps import (
    CurrentUser,
    get_cache_scheduler,
    get_current_user,
    get_recipe_service,
)
from src.app.domain.errors import (
    ContractViolationError,
    GenerationFailureError,
    RecipeAlreadySavedError,
    RecipeNotFoundError,
    RecipeOwnershipError,
    RecipeRepositoryError,
    RecipeServiceError,
    UserNotFoundError,
)
from src.app.domain.models import Recipe
from src.app.schemas.recipes import (
    CacheCleanResponse,
    CacheJobsResponse,
    GenerateRecipesRequest,
    GenerateRecipesResponse,
    RecipeIngredientResponse,
    RecipeResponse,
    RecipeStepResponse,
    SaveRecipeRequest,
    ValidationSummaryResponse,
)
from src.app.services.cache_maintenance import CacheMaintenanceScheduler
from src.app.services.recipe_generation_service import RecipeGenerationService

router = APIRouter(prefix="/recipes", tags=["recipes"])


def _recipe_response(recipe: Recipe) -> RecipeResponse:
    return RecipeResponse(
        id=recipe.recipe_id,
        name=recipe.name,
        description=recipe.description,
        steps=[
            RecipeStepResponse(step=s.step, time=s.time, order=s.order)
            for s in recipe.sorted_steps()
        ],
        ingredients=[
            RecipeIngredientResponse(
                name=i.name,
                quantity=i.quantity,
                unit=i.unit,
                isOptional=i.is_optional,
                notes=i.notes,
            )
            for i in recipe.ingredients
        ],
        cookingTime=recipe.cooking_time,
        servings=recipe.servings,
        difficulty=recipe.difficulty,
        dietaryInfo=list(recipe.dietary_info),
        imageUrl=recipe.image_url,
        modelVersion=recipe.model_version,
        cacheState=recipe.cache_state.value,
        cachedUntil=recipe.cached_until.isoformat() if recipe.cached_until else None,
        createdAt=recipe.created_at.isoformat() if recipe.created_at else None,
        savedAt=recipe.saved_at.isoformat() if recipe.saved_at else None,
        isSafe=recipe.is_safe,
        validationIssues=list(recipe.validation_issues),
    )


def _http_error(exc: RecipeServiceError) -> HTTPException:
    if isinstance(exc, (ContractViolationError, GenerationFailureError)):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))
    if isinstance(exc, (UserNotFoundError, RecipeNotFoundError)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, RecipeOwnershipError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    if isinstance(exc, RecipeAlreadySavedError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, RecipeRepositoryError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


@router.post("/generate", response_model=GenerateRecipesResponse)
async def generate_recipes(
    payload: GenerateRecipesRequest,
    user: CurrentUser = Depends(get_current_user),
    service: RecipeGenerationService = Depends(get_recipe_service),
) -> GenerateRecipesResponse:
    try:
        result = await service.generate_recipes(
            str(user.id),
            payload.ingredients,
            prompt=payload.prompt,
            similarity_threshold=payload.similarityThreshold,
        )
    except RecipeServiceError as exc:
        raise _http_error(exc) from exc

    summary = None
    if result.validation_summary is not None:
        summary = ValidationSummaryResponse(**result.validation_summary.to_dict())
    return GenerateRecipesResponse(
        recipes=[_recipe_response(recipe) for recipe in result.recipes],
        from_cache=result.from_cache,
        validation_summary=summary,
    )


@router.post("/save", response_model=RecipeResponse)
async def save_recipe(
    payload: SaveRecipeRequest,
    user: CurrentUser = Depends(get_current_user),
    service: RecipeGenerationService = Depends(get_recipe_service),
) -> RecipeResponse:
    try:
        recipe = await service.promote_recipe(str(user.id), payload.recipeId)
    except RecipeServiceError as exc:
        raise _http_error(exc) from exc
    return _recipe_response(recipe)


@router.get("/saved", response_model=list[RecipeResponse])
async def list_saved_recipes(
    user: CurrentUser = Depends(get_current_user),
    service: RecipeGenerationService = Depends(get_recipe_service),
) -> list[RecipeResponse]:
    try:
        recipes = await service.list_saved_recipes(str(user.id))
    except RecipeServiceError as exc:
        raise _http_error(exc) from exc
    return [_recipe_response(recipe) for recipe in recipes]


@router.get("/cached", response_model=list[RecipeResponse])
async def list_cached_recipes(
    user: CurrentUser = Depends(get_current_user),
    service: RecipeGenerationService = Depends(get_recipe_service),
) -> list[RecipeResponse]:
    try:
        recipes = await service.list_cached_recipes(str(user.id))
    except RecipeServiceError as exc:
        raise _http_error(exc) from exc
    return [_recipe_response(recipe) for recipe in recipes]


@router.post("/cache/clean", response_model=CacheCleanResponse)
async def clean_cache(
    user: CurrentUser = Depends(get_current_user),
    scheduler: CacheMaintenanceScheduler = Depends(get_cache_scheduler),
) -> CacheCleanResponse:
    try:
        counts = await scheduler.run_once()
    except RecipeServiceError as exc:
        raise _http_error(exc) from exc
    return CacheCleanResponse(
        recipesDeleted=counts["recipes_deleted"],
        imagesDeleted=counts["images_deleted"],
    )


@router.get("/cache/jobs", response_model=CacheJobsResponse)
async def cache_jobs(
    user: CurrentUser = Depends(get_current_user),
    scheduler: CacheMaintenanceScheduler = Depends(get_cache_scheduler),
) -> CacheJobsResponse:
    return CacheJobsResponse(**scheduler.status())


@router.delete("/saved/{recipe_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_saved_recipe(
    recipe_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: RecipeGenerationService = Depends(get_recipe_service),
) -> Response:
    try:
        await service.delete_saved_recipe(str(user.id), recipe_id)
    except RecipeServiceError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{recipe_id}", response_model=RecipeResponse)
async def get_recipe(
    recipe_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: RecipeGenerationService = Depends(get_recipe_service),
) -> RecipeResponse:
    try:
        recipe = await service.get_recipe(str(user.id), recipe_id)
    except RecipeServiceError as exc:
        raise _http_error(exc) from exc
    return _recipe_response(recipe)
