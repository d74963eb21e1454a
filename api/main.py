import asyncio
import logging
import time
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core import db, lifecycle
from core.backoff import RetryPolicy
from core.config import Settings, load_settings
from core.ratelimit import TokenBucket
from core.tzkt import TzktClient
from delegations import repository
from delegations.router import router as delegations_router
from delegations.sync import SyncConfig, SyncEngine

HEALTH_CHECK_TIMEOUT_S = 2.0

logger = logging.getLogger(__name__)


def build_sync_engine(settings: Settings, client: TzktClient) -> SyncEngine:
    return SyncEngine(
        client=client,
        store=repository,
        config=SyncConfig(
            batch_size=settings.sync_batch_size,
            poll_interval_s=settings.sync_poll_interval_s,
            max_backoff_s=settings.sync_max_backoff_s,
            genesis=settings.sync_genesis,
        ),
    )


def build_tzkt_client(settings: Settings) -> TzktClient:
    return TzktClient(
        base_url=settings.tzkt_base_url,
        timeout_s=settings.tzkt_timeout_s,
        limiter=TokenBucket(rate=settings.tzkt_rate_per_s, burst=settings.tzkt_burst),
        retry=RetryPolicy(max_attempts=settings.tzkt_max_attempts, base_delay=1.0),
    )


def _request_shutdown(app: FastAPI) -> None:
    server = getattr(app.state, "server", None)
    if server is not None:
        server.should_exit = True


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    app.state.started_at = time.monotonic()
    app.state.sync_engine = None

    # Initialize the DB pool once per process. Failing here aborts startup.
    await db.init_pool()
    try:
        if not settings.sync_enabled:
            logger.info("sync_disabled")
            yield
            return

        async with build_tzkt_client(settings) as client:
            engine = build_sync_engine(settings, client)
            app.state.sync_engine = engine
            async with lifecycle.background_task(
                engine.run(),
                name="delegation-sync",
                grace_s=settings.shutdown_grace_s,
                on_crash=lambda _exc: _request_shutdown(app),
            ):
                yield
    finally:
        await db.close_pool()


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or load_settings()
    app = FastAPI(lifespan=lifespan)
    app.state.settings = settings
    app.state.started_at = time.monotonic()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    app.include_router(delegations_router, tags=["delegations"])

    @app.get("/health")
    async def health(request: Request) -> JSONResponse:
        checks: dict[str, str] = {}
        status = "healthy"

        try:
            await asyncio.wait_for(db.ping(), timeout=HEALTH_CHECK_TIMEOUT_S)
            checks["database"] = "healthy"
            delegations = await asyncio.wait_for(repository.count(), timeout=HEALTH_CHECK_TIMEOUT_S)
            checks["delegations"] = str(delegations)
        except Exception as e:
            checks["database"] = f"unhealthy: {type(e).__name__}: {e}"
            status = "unhealthy"

        size = db.pool_size()
        if size > 0:
            checks["database_connections"] = f"{size} open"

        engine = getattr(request.app.state, "sync_engine", None)
        if engine is not None:
            sync_status = engine.status()
            checks["sync"] = sync_status["state"]
            if sync_status["last_watermark"]:
                checks["sync_watermark"] = sync_status["last_watermark"]
            if sync_status["last_error"]:
                checks["sync_last_error"] = sync_status["last_error"]
        else:
            checks["sync"] = "disabled"

        body = {
            "status": status,
            "checks": checks,
            "uptime": format_uptime(time.monotonic() - request.app.state.started_at),
        }
        return JSONResponse(body, status_code=200 if status == "healthy" else 503)

    return app


def format_uptime(seconds: float) -> str:
    total = int(round(seconds))
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h{minutes}m{secs}s"
    if minutes:
        return f"{minutes}m{secs}s"
    return f"{secs}s"


app = create_app()


def run() -> None:
    settings: Settings = app.state.settings
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    server = uvicorn.Server(
        uvicorn.Config(
            app,
            host=settings.http_host,
            port=settings.http_port,
            timeout_graceful_shutdown=int(settings.shutdown_grace_s),
            log_config=None,
        )
    )
    app.state.server = server
    server.run()


if __name__ == "__main__":
    run()
