"""FastAPI application initialization and configuration."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from .core.config import settings
from .core.database import async_session_factory, close_db, init_db
from .core.exceptions import (
    ProblemDetailsException,
    generic_exception_handler,
    problem_details_handler,
    validation_exception_handler,
)
from .core.middleware import setup_middleware
from .core.observability import (
    instrument_fastapi,
    instrument_sqlalchemy,
    setup_metrics,
    setup_structured_logging,
    setup_tracing,
)
from .realtime import RealtimeGateway, RealtimeHub
from .routers import (
    booking_router,
    departure_router,
    emergency_router,
    health_router,
    itinerary_router,
    metrics_router,
    notification_router,
    realtime_router,
    tour_router,
)
from .services.email_service import EmailDispatcher
from .workers.manager import WorkerManager

# Configure structured logging
setup_structured_logging()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan context manager.

    Handles startup and shutdown events for the FastAPI application.
    """
    # Startup
    logger.info("Starting FastAPI application")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Debug mode: {settings.debug}")
    logger.info(f"Email delivery: {'enabled' if app.state.email_dispatcher.enabled else 'disabled'}")

    try:
        # Setup observability
        setup_tracing()
        setup_metrics()
        instrument_sqlalchemy()
        logger.info("Observability setup completed")

        # Initialize database
        await init_db()
        logger.info("Database initialized successfully")

        # Start background workers
        await app.state.worker_manager.start_all()
        logger.info("Background workers started successfully")
    except Exception as e:
        logger.error(f"Failed to initialize application: {e}")
        raise

    logger.info("Application startup complete")

    yield

    # Shutdown
    logger.info("Shutting down FastAPI application")

    try:
        await app.state.worker_manager.stop_all()
        logger.info("Background workers stopped")

        await close_db()
        logger.info("Database connections closed")
    except Exception as e:
        logger.error(f"Error during application cleanup: {e}")

    logger.info("Application shutdown complete")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    The real-time hub, email dispatcher and worker manager are created here,
    one set per application, and shared through ``app.state``.
    """
    app = FastAPI(
        title="Travelcore API",
        description=(
            "RPC-over-HTTP API for seat-limited tour bookings, itineraries and "
            "emergency alerts, with real-time WebSocket notifications"
        ),
        version="1.0.0",
        debug=settings.debug,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    hub = RealtimeHub()
    email_dispatcher = EmailDispatcher.from_settings(settings)
    app.state.realtime_hub = hub
    app.state.email_dispatcher = email_dispatcher
    app.state.realtime_gateway = RealtimeGateway(hub, async_session_factory)
    app.state.worker_manager = WorkerManager(hub, email_dispatcher)

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "traceparent", "tracestate"],
    )

    # Setup custom middleware
    setup_middleware(app, enable_logging=True)

    # Instrument FastAPI with OpenTelemetry
    instrument_fastapi(app)

    # Register exception handlers
    app.add_exception_handler(ProblemDetailsException, problem_details_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    @app.get(
        "/health",
        status_code=status.HTTP_200_OK,
        tags=["Health"],
        summary="Health Check",
        description="Check if the service is healthy and responsive",
        response_model=dict,
    )
    async def health_check():
        return {
            "status": "healthy",
            "service": "travelcore-api",
            "version": "1.0.0",
            "environment": settings.environment,
            "debug": settings.debug,
        }

    @app.get(
        "/ready",
        status_code=status.HTTP_200_OK,
        tags=["Health"],
        summary="Readiness Check",
        description="Check if the service is ready to accept requests",
        response_model=dict,
    )
    async def readiness_check():
        """Report worker state and live socket count alongside readiness."""
        return {
            "status": "ready",
            "service": "travelcore-api",
            "checks": {
                "workers": app.state.worker_manager.get_worker_status(),
                "realtime_connections": app.state.realtime_hub.connection_count,
                "email": "enabled" if app.state.email_dispatcher.enabled else "disabled",
            },
        }

    @app.get(
        "/info",
        status_code=status.HTTP_200_OK,
        tags=["Info"],
        summary="Service Information",
        description="Get detailed information about the service",
        response_model=dict,
    )
    async def service_info():
        return {
            "service": "travelcore-api",
            "version": "1.0.0",
            "description": "Tour booking capacity and real-time notification core",
            "environment": settings.environment,
            "debug": settings.debug,
            "features": {
                "authentication": True,
                "realtime": True,
                "email": app.state.email_dispatcher.enabled,
                "tracing": True,
                "problem_details": True,
            },
            "endpoints": {
                "health": "/health",
                "readiness": "/ready",
                "info": "/info",
                "metrics": "/metrics",
                "websocket": "/ws",
                "docs": "/docs" if settings.debug else None,
                "redoc": "/redoc" if settings.debug else None,
            },
        }

    # Register API routers
    app.include_router(health_router)
    app.include_router(tour_router)
    app.include_router(departure_router)
    app.include_router(booking_router)
    app.include_router(itinerary_router)
    app.include_router(emergency_router)
    app.include_router(notification_router)
    app.include_router(realtime_router)
    app.include_router(metrics_router)

    logger.info("FastAPI application created and configured")

    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "travelcore.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
        access_log=True,
    )
