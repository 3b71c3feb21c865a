"""
ZapAlert - Backend API
FastAPI + SQLModel + WebSocket fan-out for emergency response coordination
"""
from dotenv import load_dotenv
load_dotenv()  # Load .env before any other imports

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.v1 import announcements, realtime, reports
from config import get_settings
from domain.errors import LifecycleError
from domain.lifecycle import ReportLifecycle
from infrastructure.database import ReportStore, dispose_engine, get_session_maker, init_db
from infrastructure.realtime import EventChannel, PresenceRegistry


def configure_logging(level: str = "INFO", json_logs: bool = True) -> None:
    logging.basicConfig(level=level, format="%(message)s")
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level.upper())),
    )


settings = get_settings()
configure_logging(settings.log_level, settings.log_json)
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    store = getattr(app.state, "report_store", None)
    owns_engine = store is None
    if owns_engine:
        if settings.auto_create_tables:
            await init_db()
        store = ReportStore(get_session_maker())

    presence = PresenceRegistry()
    channel = EventChannel(presence)
    app.state.channel = channel
    app.state.lifecycle = ReportLifecycle(store, channel, settings.report_types)
    logger.info("backend_started", report_types=settings.report_types)

    yield

    # Shutdown
    presence.clear()
    if owns_engine:
        await dispose_engine()
    logger.info("backend_stopped")


app = FastAPI(
    title="ZapAlert API",
    description="Emergency reporting and responder coordination",
    version="0.1.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LifecycleError)
async def lifecycle_error_handler(request: Request, exc: LifecycleError):
    log = logger.warning if exc.status_code < 500 else logger.error
    log("request_failed", path=request.url.path, error=exc.message, status=exc.status_code)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


# Routers
app.include_router(reports.router, prefix="/api/v1/reports", tags=["reports"])
app.include_router(announcements.router, prefix="/api/v1/announcements", tags=["announcements"])
app.include_router(realtime.router, tags=["realtime"])


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "service": "zapalert-backend",
        "serverTime": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/")
async def root():
    return {"message": "ZapAlert API", "docs": "/docs"}
