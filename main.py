from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import os

from core.config import (
    ALLOWED_ORIGINS,
    CLEANUP_INTERVAL_MS,
    CLEANUP_MAX_AGE_MS,
    TEMP_CLEANUP_ENABLED,
    logger,
)
from services.sweeper import TempSweeper
from utils.storage import get_storage

# Routers
from routers import photos, memories

app = FastAPI(title="Moments API")

# ---- CORS setup ----
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Security headers ---
@app.middleware("http")
async def add_security_headers(request, call_next):
    response = await call_next(request)
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    response.headers.setdefault("X-Frame-Options", "DENY")
    if os.getenv("ENVIRONMENT", "").strip().lower() == "production":
        response.headers.setdefault("Strict-Transport-Security", "max-age=63072000; includeSubDomains")
    return response


app.include_router(photos.router)
app.include_router(memories.router)


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.on_event("startup")
async def _init_postgres_schema():
    from core.database import init_db
    init_db()


@app.on_event("startup")
async def _prepare_storage():
    storage = get_storage()
    storage.ensure_roots()
    logger.info(f"[storage] temp root {storage.temp_root}, permanent root {storage.permanent_root}")


@app.on_event("startup")
async def _start_temp_sweeper():
    sweeper = TempSweeper(
        temp_root=get_storage().temp_root,
        enabled=TEMP_CLEANUP_ENABLED,
        interval_ms=CLEANUP_INTERVAL_MS,
        max_age_ms=CLEANUP_MAX_AGE_MS,
    )
    app.state.temp_sweeper = sweeper
    app.state.temp_sweeper_handle = sweeper.start()


@app.on_event("shutdown")
async def _stop_temp_sweeper():
    handle = getattr(app.state, "temp_sweeper_handle", None)
    if handle is not None:
        await handle.stop()
