import sys
import time
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from sqlalchemy import select
from loguru import logger
from app.config import get_settings
from app.database import engine, Base, async_session
from app.routers import admin, analytics, appointments, chat, health_intelligence, patients
from app.routers import auth as auth_router
from app.services.cache_service import get_cache

settings = get_settings()

logger.remove()
logger.add(
    sys.stdout,
    format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
    level="DEBUG" if settings.debug else settings.log_level,
)

# Reference side-effect catalog. Severity must be one of mild | moderate | severe.
SIDE_EFFECT_CATALOG = [
    ("Amoxicillin", "Skin rash", "moderate"),
    ("Amoxicillin", "Anaphylaxis", "severe"),
    ("Amoxicillin", "Diarrhea", "mild"),
    ("Ibuprofen", "Stomach upset", "mild"),
    ("Ibuprofen", "Gastrointestinal bleeding", "severe"),
    ("Paracetamol", "Liver damage", "severe"),
    ("Paracetamol", "Nausea", "mild"),
    ("Metformin", "Lactic acidosis", "severe"),
    ("Metformin", "Diarrhea", "mild"),
    ("Lisinopril", "Dry cough", "mild"),
    ("Lisinopril", "Angioedema", "severe"),
    ("Salbutamol", "Tremor", "mild"),
    ("Salbutamol", "Palpitations", "moderate"),
]


async def seed_reference_data():
    """Create the admin user and the side-effect catalog if missing. Idempotent."""
    from app.models.user import User
    from app.models.medicine_side_effect import MedicineSideEffect

    async with async_session() as session:
        existing = await session.scalar(select(User).where(User.username == "admin"))
        if not existing:
            session.add(User(username="admin", display_name="Admin", role="admin"))

        result = await session.execute(
            select(MedicineSideEffect.medicine_name, MedicineSideEffect.side_effect)
        )
        known = set(result.all())
        for medicine_name, side_effect, severity in SIDE_EFFECT_CATALOG:
            if (medicine_name, side_effect) not in known:
                session.add(MedicineSideEffect(
                    medicine_name=medicine_name,
                    side_effect=side_effect,
                    severity=severity,
                ))
        await session.commit()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: create tables then seed reference data
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await seed_reference_data()
    logger.info(f"Medisync API started (risk policy: {settings.risk_scoring_policy})")
    yield
    # Shutdown
    await get_cache().close()
    await engine.dispose()


app = FastAPI(
    title="Medisync API",
    description="Appointments, prescriptions and patient health intelligence",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class NoCacheMiddleware(BaseHTTPMiddleware):
    """Middleware to add no-cache headers to prevent browser caching."""
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, proxy-revalidate, max-age=0"
        response.headers["Expires"] = "0"
        response.headers["Pragma"] = "no-cache"
        return response


app.add_middleware(NoCacheMiddleware)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)
    logger.debug(f"{request.method} {request.url.path} -> {response.status_code} ({process_time:.3f}s)")
    return response


app.include_router(auth_router.router, prefix="/api/auth", tags=["Auth"])
app.include_router(health_intelligence.router, prefix="/api/health-intelligence", tags=["Health Intelligence"])
app.include_router(appointments.router, prefix="/api/appointments", tags=["Appointments"])
app.include_router(patients.router, prefix="/api/patients", tags=["Patients"])
app.include_router(chat.router, prefix="/api/chat", tags=["Chat"])
app.include_router(analytics.router, prefix="/api/analytics", tags=["Analytics"])
app.include_router(admin.router, prefix="/api/admin", tags=["Admin"])


@app.get("/api/health")
async def health_check():
    return {"status": "healthy", "service": "medisync-api"}
