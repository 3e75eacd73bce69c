import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, APIRouter, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import configure_mappers
from starlette.exceptions import HTTPException as StarletteHTTPException
from datetime import datetime, timezone

from app.core.config import settings
from app.core.database import engine
from app.api.v1 import auth, clients, quotes, invoices, bank, projects, public, admin

logger = logging.getLogger(__name__)


def verify_orm_mappings() -> None:
    """
    Verify all SQLAlchemy ORM mappings are valid at startup.

    This catches relationship configuration errors early before
    any requests are processed, preventing cryptic 500 errors.
    """
    # Import all models to ensure they are registered
    from app.models import (  # noqa: F401
        User, Tenant, TenantMember, DocumentCounter,
        Client,
        Quote, QuoteItem, Invoice, InvoiceItem,
        BankAccount, BankTransaction, InvoiceBankReconciliation,
        Project, ProjectColumn, ProjectCard, ProjectGuest,
    )

    # This will raise InvalidRequestError if any relationships are misconfigured
    configure_mappers()
    logger.info("ORM mapper configuration verified successfully")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan events.

    Startup:
    - Verify ORM mappings to fail fast if models are misconfigured

    Shutdown:
    - Cleanup resources if needed
    """
    try:
        verify_orm_mappings()
    except Exception as e:
        logger.critical(f"ORM mapper configuration failed: {e}")
        raise RuntimeError(f"Application cannot start: ORM mapping error - {e}") from e

    yield

    logger.info("Application shutdown complete")


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# CORS middleware - must be added FIRST to ensure headers on all responses including errors
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_body(detail) -> dict:
    """
    Error payload: a top-level human message and code, plus the original detail.

    detail is either a plain string or {"code": ..., "message": ...}.
    """
    if isinstance(detail, dict):
        message = detail.get("message") or "Error"
        code = detail.get("code")
    else:
        message = str(detail)
        code = None
    return {"error": message, "code": code, "detail": detail}


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.detail),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Request validation failures are reported as 400."""
    detail = {
        "code": "VALIDATION_ERROR",
        "message": "Invalid request",
        "errors": jsonable_errors(exc),
    }
    return JSONResponse(status_code=400, content=_error_body(detail))


def jsonable_errors(exc: RequestValidationError) -> list:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Global exception handler to ensure JSON responses with proper CORS headers.

    Only truly unhandled exceptions reach this handler; HTTPException has
    its own handler above.
    """
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content=_error_body({"code": "INTERNAL_ERROR", "message": "Internal server error"}),
    )


# API v1 router
api_v1_router = APIRouter(prefix="/api/v1")
api_v1_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_v1_router.include_router(clients.router, tags=["clients"])
api_v1_router.include_router(quotes.router, tags=["quotes"])
api_v1_router.include_router(invoices.router, tags=["invoices"])
api_v1_router.include_router(bank.router, tags=["bank"])
api_v1_router.include_router(projects.router, tags=["projects"])
api_v1_router.include_router(public.router, tags=["public"])
api_v1_router.include_router(admin.router, prefix="/admin", tags=["admin"])

app.include_router(api_v1_router)


@app.get("/health")
async def health_check():
    """
    Health check endpoint.

    Verifies:
    - Database connectivity
    - Redis connectivity (if enabled)

    Redis is optional and won't cause health check to fail if disabled.
    """
    health = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "components": {
            "database": {"status": "unknown", "message": None},
            "redis": {"status": "unknown", "message": None},
        }
    }

    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        health["components"]["database"]["status"] = "healthy"
        health["components"]["database"]["message"] = "Connected"
    except Exception as e:
        health["components"]["database"]["status"] = "unhealthy"
        health["components"]["database"]["message"] = str(e)
        health["status"] = "unhealthy"

    if settings.redis_enabled:
        try:
            import redis.asyncio as redis
            client = redis.from_url(settings.REDIS_URL)
            await client.ping()
            await client.aclose()
            health["components"]["redis"]["status"] = "healthy"
            health["components"]["redis"]["message"] = "Connected"
        except Exception as e:
            health["components"]["redis"]["status"] = "unhealthy"
            health["components"]["redis"]["message"] = str(e)
    else:
        health["components"]["redis"]["status"] = "disabled"
        health["components"]["redis"]["message"] = "Redis not configured (REDIS_URL not set)"

    return health


@app.get("/")
async def root():
    return {
        "message": f"{settings.APP_NAME} API",
        "version": "1.0.0",
        "docs": "/docs",
    }
