from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from importlib.metadata import version as pkg_version

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from classcoins.api import (
    catalog_router,
    collection_router,
    health_router,
    mystery_ball_router,
    wallets_router,
)
from classcoins.api.error_handlers import register_error_handlers
from classcoins.config import settings
from classcoins.db.database import init_db


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    await init_db()
    yield


app = FastAPI(
    title=settings.app_name,
    version=pkg_version("classcoins"),
    lifespan=lifespan,
)

app.include_router(catalog_router)
app.include_router(collection_router)
app.include_router(health_router)
app.include_router(mystery_ball_router)
app.include_router(wallets_router)

register_error_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Tighten in production
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)
