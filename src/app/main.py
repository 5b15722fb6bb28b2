# src/app/main.py
from __future__ import annotations
import logging
import sys
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.app.config import get_settings
from src.app.deps import close_recipe_service, get_cache_scheduler
from src.app.routers.recipes import router as recipes_router

# plain stdout logging (dev and containers)
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

app = FastAPI(title="Recipes AI API", version="0.3.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().FRONTEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(recipes_router)


@app.on_event("startup")
async def startup() -> None:
    if get_settings().CACHE_MAINTENANCE_ENABLED:
        await get_cache_scheduler().start()


@app.on_event("shutdown")
async def shutdown() -> None:
    await close_recipe_service()


@app.get("/health")
def health():
    return {"ok": True}
