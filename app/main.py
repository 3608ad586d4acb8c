"""
FastAPI application entry point.
Includes security middleware, global error handlers, and all routers.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from app.routers import gate, movements, allocations, buses, alerts, occupancy, health
from app.database import create_tables
from app.config import settings
from app.services.gate_session import gate_sessions
from app.utils.logger import get_logger
import time

logger = get_logger(__name__)

app = FastAPI(
    title="Depot Bay Allocation API",
    description="Bus gate identification, movement tracking, bay allocation and parking verification.",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── CORS (allow the depot dashboard to call the API) ─────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],   # Restrict to dashboard origin in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── API Key Middleware ───────────────────────────────────────────────────────
class APIKeyMiddleware(BaseHTTPMiddleware):
    """
    Optional lightweight API key auth.
    Health check and docs stay open. Set API_KEY in .env. Leave empty to disable auth.
    """
    async def dispatch(self, request: Request, call_next):
        open_paths = {"/api/v1/health", "/docs", "/redoc", "/openapi.json"}
        if request.url.path in open_paths or not settings.API_KEY:
            return await call_next(request)

        api_key = request.headers.get("X-API-Key") or request.query_params.get("api_key")
        if api_key != settings.API_KEY:
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"detail": "Invalid or missing API key"},
            )
        return await call_next(request)


if settings.API_KEY:
    app.add_middleware(APIKeyMiddleware)


# ── Request Timing Middleware ────────────────────────────────────────────────
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    duration = round((time.time() - start) * 1000, 2)
    logger.debug(f"{request.method} {request.url.path} → {response.status_code} ({duration}ms)")
    return response


# ── Global Exception Handler ─────────────────────────────────────────────────
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"ok": False, "message": "Internal server error", "error": "internal", "data": {}},
    )


# ── Routers ──────────────────────────────────────────────────────────────────
app.include_router(gate.router,        prefix="/api/v1", tags=["🚧 Gate & Identification"])
app.include_router(movements.router,   prefix="/api/v1", tags=["🚌 Movements"])
app.include_router(allocations.router, prefix="/api/v1", tags=["🅿️  Allocations"])
app.include_router(buses.router,       prefix="/api/v1", tags=["🔍 Buses"])
app.include_router(alerts.router,      prefix="/api/v1", tags=["🔔 Override Alerts"])
app.include_router(occupancy.router,   prefix="/api/v1", tags=["🧮 Occupancy"])
app.include_router(health.router,      prefix="/api/v1", tags=["💚 Health"])


# ── Startup ───────────────────────────────────────────────────────────────────
@app.on_event("startup")
async def startup():
    logger.info("🚀 Depot backend starting up...")
    create_tables()
    logger.info("✅ Database tables ready")
    logger.info(f"⏱️  RFID fallback after {settings.IDENTIFICATION_FALLBACK_SECONDS}s, "
                f"override after {settings.WRONG_ATTEMPT_THRESHOLD} wrong confirmations")
    logger.info(f"🌐 Listening on http://{settings.BACKEND_IP}:{settings.BACKEND_PORT}")
    logger.info("📖 API docs at /docs")


@app.on_event("shutdown")
async def shutdown():
    logger.info("🛑 Depot backend shutting down...")
    gate_sessions.clear()
