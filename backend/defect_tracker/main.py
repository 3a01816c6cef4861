"""FastAPI application."""
import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .config import DEV_JWT_SECRET, settings
from .error_responses import register_error_handlers
from .kv_store import get_store, init_store
from .routers import analytics, auth, defects, projects, users

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Production safety checks (fail closed on insecure config).
if settings.is_production and (not settings.cors_origins or any(origin == "*" for origin in settings.cors_origins)):
    raise RuntimeError("ALLOWED_ORIGINS must be explicit in production (no wildcard).")
if settings.is_production and settings.IDENTITY_PROVIDER.lower() == "local" and settings.JWT_SECRET_KEY == DEV_JWT_SECRET:
    raise RuntimeError("JWT_SECRET_KEY must be set in production when using the local identity provider.")
if settings.is_production and settings.IDENTITY_PROVIDER.lower() == "supabase" and not (
    settings.SUPABASE_URL and settings.SUPABASE_SERVICE_ROLE_KEY
):
    raise RuntimeError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set for the supabase identity provider.")


@asynccontextmanager
async def lifespan(_: FastAPI):
    init_store(get_store())
    yield


# Create app
app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="Backend API for defect tracking",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
    expose_headers=["Content-Length"],
    max_age=600,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info("%s %s %s %.0fms", request.method, request.url.path, response.status_code, elapsed_ms)
    return response


register_error_handlers(app)

# Include routers
app.include_router(auth.router, prefix=settings.API_PREFIX)
app.include_router(projects.router, prefix=settings.API_PREFIX)
app.include_router(defects.router, prefix=settings.API_PREFIX)
app.include_router(analytics.router, prefix=settings.API_PREFIX)
app.include_router(users.router, prefix=settings.API_PREFIX)


@app.get(f"{settings.API_PREFIX}/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok"}


@app.get("/")
def root():
    """Root endpoint."""
    return {
        "message": f"{settings.APP_NAME} API",
        "version": "1.0.0",
        "docs": "/docs",
    }
