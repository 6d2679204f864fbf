from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from bizhub.api.v1.router import api_router
from bizhub.config import APP_VERSION, _DEFAULT_SECRET_KEYS, settings
from bizhub.core.exceptions import AccessControlError
from bizhub.core.logging_config import configure_logging
from bizhub.core.metrics import app_info, bg_task_last_success, bg_task_runs_total
from bizhub.core.permissions import validate_permission_templates
from bizhub.core.rate_limit import limiter
from bizhub.database import async_session, engine
from bizhub.models import Base
from bizhub.services.access_control_service import AccessControlService

logger = logging.getLogger(__name__)

_CLEANUP_TASK_NAME = "invitation_cleanup"


async def _cleanup_expired_invitations_loop() -> None:
    """Background loop that marks stale pending invitations as expired."""
    while True:
        try:
            await asyncio.sleep(settings.INVITATION_CLEANUP_INTERVAL_SECONDS)
            async with async_session() as db:
                expired = await AccessControlService.cleanup_expired_invitations(db)
                await db.commit()
            if expired:
                logger.info("Auto-expired %d pending invitations", expired)
            bg_task_runs_total.labels(task_name=_CLEANUP_TASK_NAME, status="success").inc()
            bg_task_last_success.labels(task_name=_CLEANUP_TASK_NAME).set(time.time())
        except asyncio.CancelledError:
            raise
        except Exception:
            bg_task_runs_total.labels(task_name=_CLEANUP_TASK_NAME, status="error").inc()
            logger.exception("Error in invitation cleanup loop")


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.ENVIRONMENT, settings.LOG_LEVEL)

    # Refuse startup with default secret key in non-development envs
    if settings.SECRET_KEY in _DEFAULT_SECRET_KEYS:
        if settings.ENVIRONMENT != "development":
            raise RuntimeError(
                "SECRET_KEY must be set to a strong random value in production. "
                'Generate one with: python -c "import secrets; print(secrets.token_urlsafe(64))"'
            )
        logger.warning(
            "Using default SECRET_KEY; acceptable for development only. "
            "Set a strong SECRET_KEY before deploying to production."
        )

    # Broken role or resource tables stop startup
    validate_permission_templates()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    app_info.info({"version": APP_VERSION, "environment": settings.ENVIRONMENT})

    cleanup_task = asyncio.create_task(_cleanup_expired_invitations_loop())

    yield

    cleanup_task.cancel()
    try:
        await cleanup_task
    except asyncio.CancelledError:
        pass
    await engine.dispose()


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=APP_VERSION,
    lifespan=lifespan,
    docs_url="/api/docs" if settings.ENVIRONMENT == "development" else None,
    redoc_url=None,
    openapi_url="/api/openapi.json" if settings.ENVIRONMENT == "development" else None,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(AccessControlError)
async def access_control_error_handler(request: Request, exc: AccessControlError):
    # Messages are pre-composed and safe to expose; detail stays in the logs
    return JSONResponse(status_code=500, content={"detail": str(exc)})


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)

app.include_router(api_router, prefix=settings.API_V1_PREFIX)


@app.get("/api/health")
async def health():
    return {"status": "ok", "version": APP_VERSION}


@app.get("/api/metrics")
async def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
