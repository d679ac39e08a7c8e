from classcoins.api.catalog import router as catalog_router
from classcoins.api.collection import router as collection_router
from classcoins.api.health import router as health_router
from classcoins.api.mystery_ball import router as mystery_ball_router
from classcoins.api.wallets import router as wallets_router

__all__ = [
    "catalog_router",
    "collection_router",
    "health_router",
    "mystery_ball_router",
    "wallets_router",
]
