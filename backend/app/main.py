"""
Trip Planner Backend
FastAPI application entry point

- Rate limit gate on every /api request (per-IP), username-keyed login limiter
- JWT issued in body + HttpOnly cookie, read back from the cookie
- Password reset tokens with periodic expiry sweep
- Security audit log on the "security" logger
- Error sanitization and security headers
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from app.api.routes import auth, items, users
from app.core.config import settings
from app.core.database import AsyncSessionLocal, init_db
from app.core.error_handler import ErrorSanitizationMiddleware, register_exception_handlers
from app.core.rate_limit import RateLimitMiddleware, create_rate_limiter
from app.core.security_headers import SecurityHeadersMiddleware
from app.jobs.token_cleanup import cleanup_heartbeat, token_cleanup_scheduler
from app.services.email_service import close_email_service

logger = logging.getLogger(__name__)

_token_cleanup_task: Optional[asyncio.Task] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup: optional table creation, reset token cleanup scheduler.
    Shutdown: stop the scheduler, close the HTTP client.
    """
    global _token_cleanup_task

    if settings.CREATE_TABLES_ON_STARTUP:
        await init_db()
        logger.info("Database tables ensured")

    if settings.RESET_TOKEN_CLEANUP_ENABLED:
        _token_cleanup_task = asyncio.create_task(token_cleanup_scheduler())
        logger.info("Reset token cleanup scheduler ENABLED")
    else:
        logger.info("Reset token cleanup scheduler DISABLED via config")

    yield

    if _token_cleanup_task and not _token_cleanup_task.done():
        _token_cleanup_task.cancel()
        try:
            await _token_cleanup_task
        except asyncio.CancelledError:
            logger.info("Reset token cleanup scheduler cancelled")

    await close_email_service()


app = FastAPI(
    lifespan=lifespan,
    title="Trip Planner API",
    description="""
## Trip Planner API

### Authentication
`POST /api/login` returns a JWT in the body and sets it as the `JWT` cookie
(HttpOnly, Secure, SameSite=Lax, 1 hour). Protected endpoints read the cookie.

### Rate Limits
- Login: 5 attempts/minute per username
- Register / forgot password / reset password: 10 requests/minute per IP
- Everything else under /api: 100 requests/minute per IP
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {"name": "Health", "description": "Health check endpoints"},
        {"name": "Authentication", "description": "Login and logout"},
        {"name": "Users", "description": "Registration, profile and password recovery"},
        {"name": "Items", "description": "Trip checklist items"},
    ],
)

# Rate limiter is injected here so tests can swap in an isolated instance
app.state.rate_limiter = create_rate_limiter(settings)

register_exception_handlers(app)

# Outermost last: CORS -> security headers -> error sanitization -> rate limit gate
app.add_middleware(RateLimitMiddleware)
app.add_middleware(ErrorSanitizationMiddleware)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth.router, prefix="/api", tags=["Authentication"])
app.include_router(users.router, prefix="/api/users", tags=["Users"])
app.include_router(items.router, prefix="/api/items", tags=["Items"])


@app.get("/", tags=["Health"])
async def root():
    return {
        "message": "Trip Planner API",
        "version": "1.0.0",
        "status": "operational"
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check with actual DB ping and cleanup heartbeat.
    Returns 503 if database is unreachable.
    """
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "token_cleanup": cleanup_heartbeat,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    try:
        async with AsyncSessionLocal() as db:
            await db.execute(text("SELECT 1"))
        health_status["database"] = "connected"
    except Exception as e:
        logger.error(f"Health check database ping failed: {type(e).__name__}: {e}")
        health_status["database"] = "error"
        health_status["status"] = "unhealthy"
        return JSONResponse(status_code=503, content=health_status)

    return health_status
