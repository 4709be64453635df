"""
FILE: main.py
Clinic & Pharmacy Multi-Tenant API Entry Point
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from src.core.config import settings
from src.core.database import Backend
from src.core.errors import register_exception_handlers
from src.core.sessions import refresh_cookie_middleware
from src.auth.router import router as auth_router
from src.clinic.router import router as clinic_router
from src.pages.router import router as pages_router
from src.pharmacy.router import router as pharmacy_router
from src.users.router import router as users_router
import logging
import os

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager: owns the Backend for the process lifetime."""
    logger.info("=" * 60)
    logger.info(f"🏥 {settings.APP_NAME}")
    logger.info("=" * 60)
    # Tests install their own backend before startup
    backend = getattr(app.state, "backend", None)
    owned = backend is None
    if owned:
        backend = Backend(settings)
        try:
            backend.start()
            logger.info("✅ Database initialized")
        except Exception as e:
            logger.error(f"❌ Failed to initialize database: {e}")
            raise
        app.state.backend = backend
    logger.info("✅ Application ready!")
    yield
    logger.info("🛑 Shutting down")
    if owned:
        backend.stop()
        app.state.backend = None
        logger.info("✅ DB connections closed")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Multi-role clinic & pharmacy API: tenant-isolated, role-gated",
    lifespan=lifespan,
    docs_url="/docs" if settings.ENVIRONMENT == "development" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT == "development" else None,
)

register_exception_handlers(app)

app.middleware("http")(refresh_cookie_middleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=settings.CORS_ALLOW_METHODS,
    allow_headers=settings.CORS_ALLOW_HEADERS,
)


@app.get("/")
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
        "environment": settings.ENVIRONMENT,
    }


@app.get("/health")
async def health_check():
    backend = getattr(app.state, "backend", None)
    database = "up" if backend is not None and backend.check_connection() else "down"
    return {"status": "healthy", "version": settings.APP_VERSION, "database": database}


app.include_router(auth_router, prefix=settings.API_V1_PREFIX)
app.include_router(users_router, prefix=settings.API_V1_PREFIX)
app.include_router(pharmacy_router, prefix=settings.API_V1_PREFIX)
app.include_router(clinic_router, prefix=settings.API_V1_PREFIX)
app.include_router(pages_router)


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", settings.PORT))
    uvicorn.run("main:app", host=settings.HOST, port=port, reload=settings.RELOAD)
