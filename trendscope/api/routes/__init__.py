from trendscope.api.routes.assets import router as assets_router
from trendscope.api.routes.health import router as health_router
from trendscope.api.routes.signals import router as signals_router
from trendscope.api.routes.status import router as status_router

__all__ = ["assets_router", "health_router", "signals_router", "status_router"]
