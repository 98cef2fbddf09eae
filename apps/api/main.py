"""
Bonos API - FastAPI Backend
Prepaid service-hour vouchers, the interventions that consume them, and account management.
"""

from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from config import settings, validate_security_settings
from database import engine, Base, async_session_maker
import models  # noqa: F401
from routers import (
    health,
    auth,
    users,
    bonos,
    interventions,
    punctual,
    uploads,
)
from services.accounts import ensure_default_admin


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    # Startup
    print("🚀 Starting Bonos API...")
    validate_security_settings()
    if settings.AUTO_CREATE_DB_SCHEMA:
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            print("🗄️ Database schema verified.")
        except Exception as e:
            print(f"⚠️ Database bootstrap skipped: {e}")
    Path(settings.BLOB_STORAGE_DIR).mkdir(parents=True, exist_ok=True)
    try:
        async with async_session_maker() as session:
            admin = await ensure_default_admin(session)
        if admin is not None:
            print(f"👤 Default administrator ready: {admin.email}")
    except Exception as exc:
        print(f"⚠️ Default administrator bootstrap skipped: {exc}")
    yield
    # Shutdown
    await engine.dispose()
    print("👋 Shutting down API...")


app = FastAPI(
    title="Bonos API",
    description="Track prepaid service-hour vouchers and the interventions that consume them",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(auth.router, prefix="/auth", tags=["Authentication"])
app.include_router(users.router, prefix="/users", tags=["Users"])
app.include_router(bonos.router, prefix="/bonos", tags=["Bonos"])
app.include_router(interventions.router, prefix="/interventions", tags=["Interventions"])
app.include_router(punctual.router, prefix="/punctual", tags=["Punctual"])
app.include_router(uploads.router, prefix="/uploads", tags=["Uploads"])

app.mount("/blobs", StaticFiles(directory=settings.BLOB_STORAGE_DIR, check_dir=False), name="blobs")


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Bonos API",
        "version": "0.1.0",
        "status": "running"
    }
