from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.cors import CORSMiddleware

from app.core.config import settings, app_logger
from app.core.db import dispose_db
from app.core.dependencies import SessionDep
from app.core.exceptions.handlers import (
    authentication_exception_handler,
    database_exception_handler,
    exception_schema,
    general_exception_handler,
    otp_exception_handler,
    rate_limit_exception_handler,
    service_unavailable_exception_handler,
    token_invalid_exception_handler,
)
from app.core.exceptions.types import (
    AppException,
    AuthenticationException,
    DatabaseException,
    OTPException,
    RateLimitExceededException,
    ServiceUnavailableException,
    TokenInvalidException,
)
from app.core.routers import admin_router, auth_router, sessions_router
from app.core.services import BrevoService, RedisService, Renderer, UserSnapshotCache
from app.core.services.event_publisher import register_publisher
from app.infrastructure.messaging import publish_event, start_consumers
from app.infrastructure.messaging.connection import close_connection
from app.infrastructure.scheduler import scheduler, initialize_scheduler


def _uses_redis() -> bool:
    return "redis" in (settings.USER_CACHE_BACKEND, settings.RATE_LIMIT_BACKEND)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app_logger.info("Starting application...")
    consumer_connection = None

    # Redis backs the user cache and the rate limiter when either is configured for it
    if _uses_redis():
        app_logger.info("Initializing Redis service...")
        await RedisService.init(settings.REDIS_URL)
        app_logger.info("Redis service initialized successfully.")

    # The user snapshot cache lives for the lifetime of the app
    app_logger.info("Starting user snapshot cache...")
    user_cache = UserSnapshotCache()
    await user_cache.start()
    app.state.user_cache = user_cache
    app_logger.info("User snapshot cache started successfully.")

    # OTP and confirmation emails are published to RabbitMQ
    register_publisher(publish_event)

    if settings.ENABLE_SCHEDULER:
        app_logger.info("Starting scheduler...")
        scheduler.start()
        app_logger.info("Scheduler started successfully.")
        initialize_scheduler()  # Schedule jobs after starting the scheduler
    else:
        app_logger.info("Scheduler disabled via ENABLE_SCHEDULER setting.")

    app_logger.info("Initializing Brevo service...")
    await BrevoService.init(
        api_key=settings.BREVO_API_KEY,
        sender_email=settings.BREVO_SENDER_EMAIL,
        sender_name=settings.BREVO_SENDER_NAME,
    )
    app_logger.info("Brevo service initialized successfully.")

    app_logger.info("Initializing template renderer...")
    Renderer.initialize()
    app_logger.info("Template renderer initialized successfully.")

    if settings.ENABLE_MESSAGING:
        app_logger.info("Starting message consumers...")
        consumer_connection = await start_consumers(keep_alive=False)
        app_logger.info("Message consumers started successfully.")
    else:
        app_logger.info("Messaging disabled via ENABLE_MESSAGING setting.")

    yield

    app_logger.info("Shutting down application...")

    if consumer_connection:
        app_logger.info("Closing message consumer connection...")
        await consumer_connection.close()
    await close_connection()

    if settings.ENABLE_SCHEDULER and scheduler.running:
        app_logger.info("Stopping scheduler...")
        scheduler.shutdown()
        app_logger.info("Scheduler stopped successfully.")

    await user_cache.stop()
    await BrevoService.aclose()

    if _uses_redis():
        app_logger.info("Closing Redis service...")
        await RedisService.aclose()
        app_logger.info("Redis service closed successfully.")

    await dispose_db()
    app_logger.info("Application shutdown complete.")


app = FastAPI(
    lifespan=lifespan,
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=settings.APP_DESCRIPTION,
    debug=settings.DEBUG,
    root_path=settings.ROOT_PATH,
    openapi_url="/openapi.json",
    docs_url="/docs",
    redoc_url="/redoc",
    responses=exception_schema,
    root_path_in_servers=False,
    servers=[
        {
            "url": f"{settings.API_DOMAIN}",
        },
    ],
)

# Register exception handlers (order matters - more specific first)
app.add_exception_handler(OTPException, otp_exception_handler)
app.add_exception_handler(RateLimitExceededException, rate_limit_exception_handler)
app.add_exception_handler(AuthenticationException, authentication_exception_handler)
app.add_exception_handler(TokenInvalidException, token_invalid_exception_handler)
app.add_exception_handler(ServiceUnavailableException, service_unavailable_exception_handler)
app.add_exception_handler(DatabaseException, database_exception_handler)
# Generic fallback
app.add_exception_handler(AppException, general_exception_handler)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ALLOW_ORIGINS,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[settings.SESSION_HEADER_NAME],
)

# Include routers
app.include_router(auth_router, prefix="/auth", tags=["Authentication"])
app.include_router(sessions_router, prefix="/sessions", tags=["Sessions"])
app.include_router(admin_router, prefix="/admin", tags=["Admin"])


@app.get("/", include_in_schema=False)
async def root(request: Request):
    base_url = str(request.base_url).rstrip("/")
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "documentations": {
            "swagger": f"{base_url}/docs",
            "redoc": f"{base_url}/redoc",
        },
        "version": settings.APP_VERSION,
    }


@app.head("/health", include_in_schema=False)
@app.get("/health")
async def health_check(session: SessionDep):
    """
    Health check endpoint to verify if the API is running.

    Checks:
        - Database connectivity
        - Redis connectivity (only when a Redis backend is configured)
    """
    health_status = {
        "status": "ok",
        "message": f"{settings.APP_NAME} is running.",
        "checks": {
            "database": "ok",
        },
    }

    try:
        async with session.begin():
            result = await session.execute(text("SELECT 1"))
            if result.scalar() != 1:
                health_status["checks"]["database"] = "unhealthy"
                health_status["status"] = "degraded"
    except SQLAlchemyError as e:
        app_logger.error(f"Database health check failed: {e}")
        health_status["checks"]["database"] = "unhealthy"
        health_status["status"] = "degraded"

    if _uses_redis():
        health_status["checks"]["redis"] = "ok"
        if not await RedisService.ping():
            health_status["checks"]["redis"] = "unhealthy"
            health_status["status"] = "degraded"

    if health_status["status"] != "ok":
        raise AppException(
            "One or more health checks failed.",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details=health_status,
        )

    return health_status
