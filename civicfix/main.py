"""
CivicFix - FastAPI Application Entry Point

Citizens submit municipal-issue reports; staff triage and resolve them.
Every connected client sees report changes live, without refreshing.

DESIGN PRINCIPLES:
- The database is the sole arbiter of report state
- Status changes follow a strict lifecycle, validated server-side
- One change-stream subscription per process feeds every live view
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from civicfix.core.logging_config import configure_logging
from civicfix.core.settings import settings
from civicfix.routes import admin, analytics, evidence, health, live, map, reports
from civicfix.services.persistence import PersistenceBackend, get_backend
from civicfix.services.reconciler import SubscriptionReconciler
from civicfix.services.report_store import ReportStore

configure_logging()
logger = logging.getLogger(__name__)


# Initialize FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Municipal issue reporting with live report status for citizens and staff",
    debug=settings.DEBUG
)


# Global exception handler to catch ALL exceptions
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch all unhandled exceptions and log them with full traceback."""
    logger.error(f"🔥 Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": f"Internal server error: {str(exc)}"}
    )


# Pydantic validation error handler
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Catch Pydantic validation errors and log them."""
    logger.warning(f"Validation error on {request.method} {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": exc.errors(), "body": exc.body}
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


async def start_sync(app: FastAPI, backend: PersistenceBackend) -> None:
    """
    Build the process-wide store and start its change-stream subscription.

    A failed first load does not stop startup: the reconciler stays
    suspect and keeps reconnecting in the background.
    """
    store = ReportStore(backend)
    reconciler = SubscriptionReconciler(backend, store)
    app.state.backend = backend
    app.state.store = store
    app.state.reconciler = reconciler
    try:
        await reconciler.start()
    except Exception as e:
        logger.warning(f"Initial report sync failed: {e}. Retrying in the background.")


async def stop_sync(app: FastAPI) -> None:
    reconciler = getattr(app.state, "reconciler", None)
    if reconciler is not None:
        await reconciler.stop()
    app.state.reconciler = None
    app.state.store = None


# Application lifecycle events
@app.on_event("startup")
async def startup_event():
    """
    Initialize services on application startup.
    Currently: persistence backend and the live report subscription
    """
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    try:
        backend = get_backend()
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        logger.error("The app will start but report operations will fail.")
        return
    await start_sync(app, backend)


@app.on_event("shutdown")
async def shutdown_event():
    """
    Cleanup on application shutdown.
    """
    await stop_sync(app)
    logger.info(f"Shutting down {settings.APP_NAME}")


# Include routers
app.include_router(health.router)
app.include_router(reports.router)
app.include_router(admin.router)
app.include_router(map.router)
app.include_router(analytics.router)
app.include_router(evidence.router)
app.include_router(live.router)


# Root endpoint
@app.get("/")
async def root():
    """
    Root endpoint - API information.
    """
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
        "docs": "/docs",
        "health": "/health",
        "live": "/live?user_id={user_id}"
    }
