# src/app/deps.py (singletons exposed as FastAPI dependencies)

from __future__ import annotations
import logging
from datetime import timedelta
from supabase import create_client, Client
from src.app.config import Settings, get_settings
from src.app.infra.db.supabase_recipes_repo import (
    SupabaseImageCacheRepository,
    SupabaseRecipeRepository,
    SupabaseUserProfileRepository,
)
from src.app.services.cache_maintenance import CacheMaintenanceScheduler
from src.app.services.cache_writer import RecipeCacheWriter
from src.app.services.image_enrichment import ImageEnrichmentPipeline
from src.app.services.recipe_generation_service import RecipeGenerationService
from src.app.services.similarity_index import SimilarityCacheIndex
from src.services.gemini_client import GeminiClient
from src.services.generation_client import (
    GeminiRecipeGenerationCapability,
    HttpRecipeGenerationCapability,
    RecipeGenerationCapability,
)
from src.services.image_search import UnsplashImageSearch
from src.services.recipe_generator import RecipeGeneratorClient
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel

log = logging.getLogger(__name__)

_client: Client | None = None
_service: RecipeGenerationService | None = None
_generator: RecipeGeneratorClient | None = None
_image_search: UnsplashImageSearch | None = None
_scheduler: CacheMaintenanceScheduler | None = None


def get_supabase() -> Client:
    global _client
    if _client is None:
        settings = get_settings()
        _client = create_client(str(settings.SUPABASE_URL),
                                settings.SUPABASE_SERVICE_ROLE_KEY)
    return _client


def _build_generation_capability(settings: Settings) -> RecipeGenerationCapability:
    if settings.GENERATION_BACKEND == "gemini":
        return GeminiRecipeGenerationCapability(
            GeminiClient(
                api_key=settings.GEMINI_API_KEY,
                model_name=settings.GEMINI_MODEL,
                timeout_seconds=settings.GENERATION_TIMEOUT_SECONDS,
            )
        )
    return HttpRecipeGenerationCapability(
        base_url=settings.AI_SERVICE_URL,
        api_key=settings.AI_SERVICE_KEY,
        timeout_seconds=settings.GENERATION_TIMEOUT_SECONDS,
    )


def _build_service(settings: Settings, supa: Client) -> RecipeGenerationService:
    global _generator, _image_search, _scheduler

    recipes = SupabaseRecipeRepository(supa)
    images = SupabaseImageCacheRepository(supa)
    users = SupabaseUserProfileRepository(supa)
    cache_ttl = timedelta(hours=settings.RECIPE_CACHE_TTL_HOURS)

    _generator = RecipeGeneratorClient(_build_generation_capability(settings), cache_ttl=cache_ttl)
    _image_search = UnsplashImageSearch(
        access_key=settings.UNSPLASH_ACCESS_KEY or None,
        timeout_seconds=settings.IMAGE_SEARCH_TIMEOUT_SECONDS,
    )
    pipeline = ImageEnrichmentPipeline(
        images,
        _image_search,
        batch_size=settings.IMAGE_BATCH_SIZE,
        batch_delay_seconds=settings.IMAGE_BATCH_DELAY_SECONDS,
    )
    service = RecipeGenerationService(
        similarity_index=SimilarityCacheIndex(
            recipes,
            threshold=settings.SIMILARITY_THRESHOLD,
            max_results=settings.SIMILARITY_MAX_RESULTS,
        ),
        generator=_generator,
        image_pipeline=pipeline,
        cache_writer=RecipeCacheWriter(recipes, cache_ttl=cache_ttl),
        recipe_repository=recipes,
        user_repository=users,
    )
    _scheduler = CacheMaintenanceScheduler(
        service,
        pipeline,
        recipe_interval_seconds=settings.RECIPE_PURGE_INTERVAL_HOURS * 3600,
        image_interval_seconds=settings.IMAGE_PURGE_INTERVAL_HOURS * 3600,
        image_max_age_days=settings.IMAGE_CACHE_MAX_AGE_DAYS,
    )
    log.info("Recipe service initialized: backend=%s", settings.GENERATION_BACKEND)
    return service


def get_recipe_service() -> RecipeGenerationService:
    global _service
    if _service is None:
        _service = _build_service(get_settings(), get_supabase())
    return _service


def get_cache_scheduler() -> CacheMaintenanceScheduler:
    get_recipe_service()
    assert _scheduler is not None
    return _scheduler


async def close_recipe_service() -> None:
    global _service, _generator, _image_search, _scheduler
    if _scheduler is not None:
        await _scheduler.stop()
    if _generator is not None:
        await _generator.aclose()
    if _image_search is not None:
        await _image_search.aclose()
    _service = _generator = _image_search = _scheduler = None


auth_scheme = HTTPBearer(auto_error=False)

class CurrentUser(BaseModel):
    id: str
    email: str | None = None
    name: str | None = None

async def get_current_user(
    cred: HTTPAuthorizationCredentials | None = Depends(auth_scheme),
    supa: Client = Depends(get_supabase),
) -> CurrentUser:
    """
    Takes `Authorization: Bearer <access_token>` issued by Supabase,
    validates it against GoTrue and returns minimal user data.
    """
    if cred is None or cred.scheme.lower() != "bearer":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing token")

    token = cred.credentials
    try:
        res = supa.auth.get_user(token)
        user = res.user
        if not user:
            raise HTTPException(status_code=401, detail="Invalid token")

        # metadata may carry 'name'
        name = None
        meta = getattr(user, "user_metadata", None) or {}
        if isinstance(meta, dict):
            name = meta.get("name")

        return CurrentUser(id=str(user.id), email=user.email, name=name)
    except HTTPException:
        raise
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid/expired token")
