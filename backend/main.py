# main.py: Keyvault API Gateway
# Features:
# - Owned connection pool created in the lifespan (app.state.database)
# - Request correlation IDs
# - Security headers
# - Uniform {data, error, message} envelope for every response, errors included
# - Health check with DB verification

import os
import uuid
import time
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from database import Database, DATABASE_URL
from errors import ErrorDefinition, STATUS_TO_CODE, find_error
from responses import Envelope
from telemetry import setup_telemetry

# Logging
logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s %(message)s",
)
logger = logging.getLogger("keyvault")

VERSION = "1.0.0"


def _check_startup_config():
    """Validate critical configuration on startup."""
    warnings = []

    jwt_key = os.getenv("JWT_SECRET_KEY", "")
    if not jwt_key or len(jwt_key) < 32:
        warnings.append("⚠️  JWT_SECRET_KEY is not set or shorter than 32 characters: caller tokens cannot be verified reliably")

    if "secure_password@localhost" in DATABASE_URL:
        warnings.append("⚠️  DATABASE_URL not set: using the local development default")

    if os.getenv("ENVIRONMENT") == "production" and os.getenv("AUTO_CREATE_SCHEMA", "false").lower() == "true":
        warnings.append("⚠️  AUTO_CREATE_SCHEMA=true in production: run Alembic migrations instead")

    for w in warnings:
        logger.warning(w)

    return len(warnings) == 0


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🚀 Starting Keyvault API v%s...", VERSION)
    _check_startup_config()
    database = Database()
    app.state.database = database
    if os.getenv("AUTO_CREATE_SCHEMA", "false").lower() == "true":
        await database.create_all()
    # Initialise OpenTelemetry (no-op if OTEL_EXPORTER_OTLP_ENDPOINT not set)
    setup_telemetry(app, database.engine)
    yield
    logger.info("🛑 Shutting down Keyvault API...")
    await database.dispose()


app = FastAPI(
    title="Keyvault",
    description="Multi-tenant secrets vault with multi-factor key custody",
    version=VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# ============================================================
# CORS
# ============================================================

ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "CORS_ORIGINS",
        "http://localhost:3000,http://localhost:5173"
    ).split(",")
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID", "X-Correlation-ID"],
    expose_headers=["X-Request-ID", "X-Correlation-ID"],
)


# ============================================================
# MIDDLEWARE: Correlation IDs + Timing
# ============================================================

@app.middleware("http")
async def correlation_id_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    correlation_id = request.headers.get("X-Correlation-ID", request_id)
    request.state.request_id = request_id
    request.state.correlation_id = correlation_id

    start = time.perf_counter()
    response = await call_next(request)
    duration = time.perf_counter() - start

    response.headers["X-Request-ID"] = request_id
    response.headers["X-Correlation-ID"] = correlation_id
    response.headers["X-Response-Time"] = f"{duration:.4f}s"

    logger.info(
        f"{request.method} {request.url.path} → {response.status_code} "
        f"({duration:.3f}s) [rid={request_id[:8]}]"
    )
    return response


# ============================================================
# MIDDLEWARE: Security Headers
# ============================================================

@app.middleware("http")
async def security_headers_middleware(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    response.headers["Referrer-Policy"] = "no-referrer"
    # Key material must never land in a shared cache
    response.headers["Cache-Control"] = "no-store"
    return response


# ============================================================
# EXCEPTION HANDLERS
# ============================================================

def _envelope_response(error: ErrorDefinition, message: str, status_code: int) -> JSONResponse:
    envelope = Envelope(data=None, error=error, message=message)
    return JSONResponse(status_code=status_code, content=envelope.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    problems = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", []) if part != "body")
        problems.append(f"{loc}: {err.get('msg', '')}" if loc else str(err.get("msg", "")))

    error = find_error("VALIDATION_ERROR")
    return _envelope_response(error, "; ".join(problems) or error.message, error.status_code)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    # Auth dependencies raise with a catalogue code as the detail
    error = find_error(str(exc.detail))
    if error is None or error.status_code != exc.status_code:
        error = ErrorDefinition(
            code=STATUS_TO_CODE.get(exc.status_code, "UNKNOWN_ERROR"),
            message=str(exc.detail),
            status_code=exc.status_code,
        )
    return _envelope_response(error, error.message, exc.status_code)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(
        f"Unhandled exception on {request.method} {request.url.path} "
        f"[rid={getattr(request.state, 'request_id', '-')}]: {exc}",
        exc_info=True,
    )
    error = find_error("INTERNAL_ERROR")
    return _envelope_response(error, "Something went wrong", error.status_code)


# ============================================================
# ROUTERS
# ============================================================

from routers import organizations, projects  # noqa: E402

app.include_router(organizations.router)
app.include_router(projects.router)


# ============================================================
# HEALTH & ROOT
# ============================================================

@app.get("/health")
async def health_check(request: Request):
    """Health check with database connectivity verification"""
    db_status = "unknown"
    database = getattr(request.app.state, "database", None)
    if database is not None:
        try:
            async with database.session() as db:
                await db.execute(text("SELECT 1"))
            db_status = "connected"
        except SQLAlchemyError as e:
            db_status = f"error: {str(e)[:100]}"

    return {
        "status": "healthy" if db_status == "connected" else "degraded",
        "version": VERSION,
        "environment": os.getenv("ENVIRONMENT", "development"),
        "database": db_status,
    }


@app.get("/")
async def root():
    return {
        "name": "Keyvault",
        "version": VERSION,
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", 8000)),
        reload=os.getenv("ENVIRONMENT") != "production",
        workers=int(os.getenv("WORKERS", 1)),
    )
