"""FastAPI application initialization."""

import asyncio
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv

# Load environment variables before anything else
load_dotenv()

import asyncpg
import redis.asyncio as redis
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from authx.api.admin import router as admin_router
from authx.api.auth import router as auth_router
from authx.api.error_handling import register_exception_handlers
from authx.api.middleware import CorrelationIdMiddleware
from authx.api.routes import router
from authx.config import Settings, get_settings
from authx.database import close_pool, create_pool, run_migrations
from authx.services.credential_service import CredentialService
from authx.services.jwt_service import JWTService
from authx.services.logging_service import configure_logging, get_logger
from authx.services.redis_service import AttemptCounterStore, close_redis, create_redis
from authx.services.session_service import SessionService
from authx.services.throttle_service import ThrottleService
from authx.services.token_service import TokenService
from authx.services.token_store import RefreshTokenStore
from authx.services.user_service import UserService


def build_services(
    app: FastAPI,
    settings: Settings,
    pool: asyncpg.Pool,
    redis_client: Optional[redis.Redis],
) -> None:
    """Wire the stores and services onto ``app.state``."""
    users = UserService(pool)
    jwt_service = JWTService(settings)
    counter_store = AttemptCounterStore(redis_client)
    throttle = ThrottleService(counter_store, settings)
    tokens = TokenService(RefreshTokenStore(pool), jwt_service, settings)

    app.state.pool = pool
    app.state.counter_store = counter_store
    app.state.token_service = tokens
    app.state.throttle_service = throttle
    app.state.session_service = SessionService(
        credentials=CredentialService(users, settings),
        tokens=tokens,
        users=users,
        jwt_service=jwt_service,
        throttle=throttle,
    )


async def purge_tokens_periodically(tokens: TokenService, interval_seconds: int) -> None:
    """Delete long-dead refresh token records until cancelled."""
    logger = get_logger("token_cleanup")
    while True:
        try:
            await asyncio.sleep(interval_seconds)
            deleted = await tokens.purge_expired()
            if deleted > 0:
                logger.info("token_cleanup_cycle", deleted=deleted)
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.warning("token_cleanup_cycle_error", error=str(e))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    # Startup
    settings = get_settings()
    configure_logging(settings.log_level)
    logger = get_logger("main")

    # Durable state is required: fail startup without it
    pool = await create_pool(settings)
    await run_migrations(pool)
    logger.info("database_initialized")

    # Redis only backs throttling, which fails open
    redis_client = await create_redis(settings)
    if redis_client is None:
        logger.warning(
            "redis_initialization_failed",
            note="Continuing without Redis - rate limiting will not be enforced",
        )
    else:
        logger.info("redis_initialized")

    build_services(app, settings, pool, redis_client)

    cleanup_task = asyncio.create_task(
        purge_tokens_periodically(app.state.token_service, settings.token_cleanup_interval_seconds)
    )
    logger.info("application_started", log_level=settings.log_level)

    yield

    # Shutdown
    cleanup_task.cancel()
    try:
        await cleanup_task
    except asyncio.CancelledError:
        pass

    await close_redis(redis_client)
    await close_pool(pool)
    logger.info("application_shutdown")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Auth Service",
        description="Credential login with rotating refresh tokens and throttling",
        version="0.1.0",
        lifespan=lifespan,
    )

    register_exception_handlers(app)

    # CORS middleware for browser clients
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Correlation ID middleware for request tracking and observability
    app.add_middleware(CorrelationIdMiddleware)

    app.include_router(auth_router)
    app.include_router(admin_router)
    app.include_router(router)
    return app


app = create_app()
