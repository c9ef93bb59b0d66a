"""
FastAPI application entry point.

Run with:
    uvicorn backend.app.main:app --reload --port 8000

Or from the project root:
    python -m uvicorn backend.app.main:app --reload
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# ── Core infrastructure ──
from backend.app.core.config import settings
from backend.app.core.logging_config import setup_logging, get_logger
from backend.app.core.errors import register_error_handlers
from backend.app.core.middleware import RequestLoggingMiddleware
from backend.app.core.health import HealthStatus, run_health_check
from backend.app.core.cache import close_redis
from backend.app.core.database import close_db, get_session_factory, init_db

# ── Domain ──
from backend.app.emergency.orchestrator import AlertOrchestrator
from backend.app.emergency.providers import build_provider_clients
from backend.app.emergency.seed import parse_seed_contacts, sample_hospitals
from backend.app.emergency.stores import (
    CachedHospitalStore,
    InMemoryAlertSink,
    InMemoryContactStore,
    InMemoryHospitalStore,
    InMemoryMedicalInfoStore,
    SQLAlertSink,
    SQLContactStore,
    SQLHospitalStore,
    SQLMedicalInfoStore,
    VoiceStorage,
)

# ── API routers ──
from backend.app.api.v1.emergency import router as emergency_router
from backend.app.api.v1.hospitals import router as hospitals_router
from backend.app.api.v1.history import router as history_router

# ── Initialise logging ──
setup_logging()
logger = get_logger(__name__)


async def _build_stores(app: FastAPI) -> None:
    """Attach the four stores to app.state according to STORE_BACKEND."""
    if settings.STORE_BACKEND == "database":
        await init_db()
        factory = get_session_factory()
        hospitals = SQLHospitalStore(factory)
        if settings.SEED_HOSPITALS:
            await hospitals.seed(sample_hospitals())
        app.state.contact_store = SQLContactStore(factory)
        app.state.medical_store = SQLMedicalInfoStore(factory)
        app.state.alert_sink = SQLAlertSink(factory)
    else:
        if settings.STORE_BACKEND != "memory":
            logger.warning("Unknown STORE_BACKEND %r — using memory", settings.STORE_BACKEND)
        hospitals = InMemoryHospitalStore(
            sample_hospitals() if settings.SEED_HOSPITALS else None
        )
        seeded = parse_seed_contacts(settings.SEED_CONTACTS)
        if not seeded:
            logger.warning("Memory store has no SEED_CONTACTS; every alert will be rejected")
        app.state.contact_store = InMemoryContactStore(seeded)
        app.state.medical_store = InMemoryMedicalInfoStore()
        app.state.alert_sink = InMemoryAlertSink()

    app.state.hospital_store = (
        CachedHospitalStore(hospitals, settings.HOSPITAL_CACHE_TTL)
        if settings.CACHE_ENABLED else hospitals
    )


# ── Application lifespan (startup / shutdown) ──

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage startup and shutdown events."""
    logger.info(
        "Starting %s v%s [%s] (store=%s, channels=%s)",
        settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT,
        settings.STORE_BACKEND, ",".join(settings.NOTIFICATION_CHANNELS),
    )

    # Collaborators already placed on app.state are left alone
    owned = getattr(app.state, "orchestrator", None) is None
    if owned:
        await _build_stores(app)
        app.state.clients = build_provider_clients()
        app.state.orchestrator = AlertOrchestrator(
            contacts=app.state.contact_store,
            medical=app.state.medical_store,
            hospitals=app.state.hospital_store,
            alerts=app.state.alert_sink,
            clients=app.state.clients,
            voice_storage=VoiceStorage(settings.UPLOAD_DIR),
        )

    yield

    logger.info("Shutting down %s", settings.APP_NAME)
    if owned:
        await app.state.orchestrator.drain()
        await app.state.clients.aclose()
        await close_redis()
        await close_db()


# ── Create application ──

app = FastAPI(
    title=settings.APP_NAME,
    description=(
        "Emergency SOS alert engine. "
        "Accepts an alert with optional voice clip and location, "
        "transcribes and translates the voice message, "
        "notifies every emergency contact over SMS and WhatsApp, "
        "ranks nearby hospitals by distance, "
        "and keeps an auditable alert history."
    ),
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# ── Middleware stack (outermost first) ──

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS if not settings.CORS_ALLOW_ALL else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

# ── Error handlers ──
register_error_handlers(app)

# ── Register routers ──
app.include_router(emergency_router)
app.include_router(hospitals_router)
app.include_router(history_router)


# ── Root & health endpoints ──

@app.get("/", tags=["root"])
async def root():
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "modules": [
            "emergency-alerts",
            "voice-transcription",
            "translation",
            "nearby-hospitals",
            "alert-history",
        ],
        "docs": "/docs",
    }


@app.get("/health", tags=["health"])
async def health_check(request: Request):
    """Deep health probe — checks all subsystems."""
    report = await run_health_check(getattr(request.app.state, "clients", None))
    return report.to_dict()


@app.get("/health/live", tags=["health"])
async def liveness():
    """Kubernetes liveness probe — is the process alive?"""
    return {"status": "alive"}


@app.get("/health/ready", tags=["health"])
async def readiness(request: Request):
    """Kubernetes readiness probe — can we serve traffic?"""
    report = await run_health_check(getattr(request.app.state, "clients", None))
    if report.status == HealthStatus.UNHEALTHY:
        return JSONResponse(status_code=503, content=report.to_dict())
    return report.to_dict()
