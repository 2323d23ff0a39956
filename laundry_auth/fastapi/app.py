"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import AsyncExitStack, asynccontextmanager
from datetime import datetime

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from laundry_auth import __version__
from laundry_auth.auth.models import utc_now
from laundry_auth.auth.rate_limit import RateLimiter, RateLimitMiddleware
from laundry_auth.auth.service import AuthService
from laundry_auth.core.client import S3ClientManager, S3ClientProtocol
from laundry_auth.core.settings import LaundryAuthSettings, get_settings
from laundry_auth.fastapi.error_handlers import register_error_handlers
from laundry_auth.fastapi.routes import auth_router, health_router

logger = logging.getLogger(__name__)


def create_app(
    settings: LaundryAuthSettings | None = None,
    s3_client: S3ClientProtocol | None = None,
    clock: Callable[[], datetime] = utc_now,
) -> FastAPI:
    """Create the auth API.

    Args:
        settings: Configuration (defaults to ``get_settings()``)
        s3_client: Client to use instead of opening one from settings
        clock: Source of the current UTC time for the service and limiter

    Returns:
        Configured FastAPI application
    """
    settings = settings or get_settings()
    service = AuthService(settings, clock=clock)
    limiter = RateLimiter.from_settings(settings, clock=clock)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        async with AsyncExitStack() as stack:
            client = s3_client
            if client is None:
                manager = S3ClientManager(settings)
                client = await stack.enter_async_context(manager.get_async_client())
            app.state.s3_client = client

            service.audit_writer.start()
            logger.info("%s started (bucket %s)", settings.app_name, settings.aws_bucket_name)
            try:
                yield
            finally:
                await service.audit_writer.stop()

    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.auth_service = service
    app.state.rate_limiter = limiter

    # Added first so CORS wraps it and 429s carry CORS headers
    app.add_middleware(RateLimitMiddleware, limiter=limiter)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)
    app.include_router(auth_router, prefix="/auth")
    app.include_router(health_router, prefix="/health")
    return app
