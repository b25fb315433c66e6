"""
Grocery receipts backend — FastAPI application entry-point.
"""
import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from datetime import timedelta

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from grocery_receipts.config import get_settings
from grocery_receipts.container import build_services
from grocery_receipts.database import Base
from grocery_receipts.errors import ReceiptTrackerError

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(name)-30s  %(levelname)-5s  %(message)s",
)
logger = logging.getLogger(__name__)


def _startup_maintenance(services) -> None:
    """Finish interrupted migrations, then drop abandoned temp sessions."""
    db = services.session_factory()
    try:
        services.lifecycle(db).resume_migrations()
    finally:
        db.close()
    _purge_expired_sessions(services)


def _purge_expired_sessions(services) -> list[str]:
    db = services.session_factory()
    try:
        return services.lifecycle(db).sessions.purge_expired(
            timedelta(hours=services.settings.SESSION_TTL_HOURS)
        )
    finally:
        db.close()


async def _purge_periodically(services, interval_seconds: float) -> None:
    """Keep collecting abandoned temp sessions while the server runs."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await asyncio.to_thread(_purge_expired_sessions, services)
        except (ReceiptTrackerError, SQLAlchemyError) as e:
            logger.error("Scheduled session purge failed: %s", e)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: services may be injected beforehand (tests); otherwise build from env
    owns_services = getattr(app.state, "services", None) is None
    if owns_services:
        app.state.services = build_services(get_settings())
    services = app.state.services

    # Import models so Base.metadata knows about them
    import grocery_receipts.models  # noqa: F401
    Base.metadata.create_all(bind=services.engine)
    logger.info("Database tables ready (%s)", services.engine.url)

    _startup_maintenance(services)

    purge_task = None
    interval = services.settings.SESSION_PURGE_INTERVAL_MINUTES
    if interval > 0:
        purge_task = asyncio.create_task(_purge_periodically(services, interval * 60))

    yield

    logger.info("Shutting down")
    if purge_task is not None:
        purge_task.cancel()
        with suppress(asyncio.CancelledError):
            await purge_task
    if owns_services:
        services.close()
        app.state.services = None


app = FastAPI(
    title="Grocery Receipts",
    description="Receipt upload → AI extraction → spending insights",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ReceiptTrackerError)
async def receipt_tracker_error_handler(request: Request, exc: ReceiptTrackerError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.get("/")
async def root():
    return {"service": "Grocery Receipts", "version": "0.1.0", "status": "running"}


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


# ── Register API routers ─────────────────────────────────────────────────
from grocery_receipts.routers.receipts import router as receipts_router  # noqa: E402
from grocery_receipts.routers.insights import router as insights_router  # noqa: E402
from grocery_receipts.routers.users import router as users_router  # noqa: E402

app.include_router(receipts_router, prefix="/api", tags=["Receipts"])
app.include_router(insights_router, prefix="/api", tags=["Insights"])
app.include_router(users_router, prefix="/api", tags=["Users"])
