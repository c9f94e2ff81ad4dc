from questpoints.api.gacha import router as gacha_router
from questpoints.api.health import router as health_router
from questpoints.api.items import router as items_router
from questpoints.api.rankings import router as rankings_router
from questpoints.api.users import router as users_router

__all__ = [
    "gacha_router",
    "health_router",
    "items_router",
    "rankings_router",
    "users_router",
]
