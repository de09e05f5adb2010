from __future__ import annotations

import logging
import os
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse

from app.adapters.postgres_store import PostgresProjectStore
from app.adapters.project_store import InMemoryProjectStore
from app.routers import health, projects

app = FastAPI(title="Project Directory API", version="1.0.0")
logger = logging.getLogger("projects.api")
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    logger.addHandler(handler)
logger.propagate = False
logger.setLevel(getattr(logging, os.getenv("LOG_LEVEL", "INFO").strip().upper(), logging.INFO))


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name, "1" if default else "").strip().lower()
    return raw in {"1", "true", "yes", "on"}


def _slow_request_ms_threshold() -> float:
    raw = os.getenv("API_SLOW_REQUEST_MS", "1500").strip()
    try:
        return max(25.0, float(raw))
    except ValueError:
        return 1500.0


def _client_identity(request: Request) -> str:
    xff = request.headers.get("x-forwarded-for")
    if xff:
        return xff.split(",", 1)[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def _build_store():
    database_url = os.getenv("DATABASE_URL")
    if database_url:
        return PostgresProjectStore(database_url)
    return InMemoryProjectStore(persist_path=os.getenv("PROJECT_STORE_PATH"))


# Configure CORS
allowed_origins_str = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000")
allowed_origins = [origin.strip() for origin in allowed_origins_str.split(",") if origin.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.project_store = _build_store()


@app.get("/", include_in_schema=False)
async def root():
    """Redirect to API documentation."""
    return RedirectResponse(url="/docs")


app.include_router(health.router, prefix="/api", tags=["health"])
app.include_router(projects.router, prefix="/api", tags=["projects"])


@app.on_event("shutdown")
async def _persist_in_memory_store() -> None:
    store = getattr(app.state, "project_store", None)
    if isinstance(store, InMemoryProjectStore):
        try:
            store.save()
        except OSError:
            logger.warning("project_store_save_failed", exc_info=True)


@app.middleware("http")
async def log_slow_requests(request: Request, call_next):
    start = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        elapsed_ms = (time.perf_counter() - start) * 1000.0
        if elapsed_ms >= _slow_request_ms_threshold() or _env_flag("API_LOG_ALL_REQUESTS") or status_code >= 500:
            logger.warning(
                "api_request method=%s path=%s status=%s elapsed_ms=%.2f client=%s",
                request.method,
                request.url.path,
                status_code,
                elapsed_ms,
                _client_identity(request),
            )
