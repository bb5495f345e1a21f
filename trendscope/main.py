from contextlib import asynccontextmanager
import asyncio
from typing import Optional

from fastapi import FastAPI

from trendscope.api.routes import assets, health, signals, status
from trendscope.core.config import settings
from trendscope.core.logging import get_logger
from trendscope.services.aggregator import get_aggregator, init_aggregator, shutdown_aggregator


log = get_logger("app")

# Background task handle
_refresh_task: Optional[asyncio.Task] = None


async def run_refresh() -> None:
    """Re-aggregate every asset kind so the cache stays warm."""
    aggregator = get_aggregator()
    if aggregator is None:
        log.warning("Refresh skipped, aggregator not initialized")
        return
    try:
        results = await aggregator.refresh()
        for kind, result in results.items():
            if result.provenance.value == "live":
                log.info(f"Refresh {kind}: cached {result.count} records")
            else:
                log.warning(f"Refresh {kind}: no live data ({result.provenance.value})")
    except Exception as exc:
        log.exception(f"Refresh failed: {exc}")


async def scheduled_refresh_task() -> None:
    """Background task that refreshes the cache at the configured interval."""
    interval = settings.REFRESH_INTERVAL_SECONDS
    log.info(f"Scheduled refresh task started (interval: {interval}s)")

    # Run immediately on startup
    await run_refresh()

    while True:
        try:
            await asyncio.sleep(interval)
            await run_refresh()
        except asyncio.CancelledError:
            log.info("Scheduled refresh task cancelled")
            break
        except Exception as exc:
            log.exception(f"Scheduled refresh task error: {exc}")
            await asyncio.sleep(interval)


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _refresh_task

    log.info(f"Starting application in {settings.ENV.upper()} mode")
    if settings.is_production:
        log.info("Production mode: Debug disabled, docs disabled, stricter logging")
    else:
        log.info("Development mode: Debug enabled, docs available")

    # Provider clients and the cache backend are decided once, here
    init_aggregator(settings)

    if settings.REFRESH_ENABLED:
        log.info("Starting scheduled refresh background task...")
        _refresh_task = asyncio.create_task(scheduled_refresh_task())
    else:
        log.info("Scheduled refresh is disabled (REFRESH_ENABLED=false)")

    yield

    log.info("Shutting down services...")

    if _refresh_task:
        log.info("Cancelling scheduled refresh task...")
        _refresh_task.cancel()
        try:
            await _refresh_task
        except asyncio.CancelledError:
            pass
        _refresh_task = None

    await shutdown_aggregator()

    log.info("Application shutdown complete")


app = FastAPI(
    title="Trendscope",
    description="Crypto trend, sentiment and lowcap news aggregation",
    version="1.0.0",
    lifespan=lifespan,
    # Disable docs in production
    docs_url="/docs" if settings.docs_enabled else None,
    redoc_url="/redoc" if settings.docs_enabled else None,
    openapi_url="/openapi.json" if settings.docs_enabled else None,
    debug=settings.debug_enabled,
)


app.include_router(assets.router)
app.include_router(signals.router)
app.include_router(status.router)
app.include_router(health.router)
