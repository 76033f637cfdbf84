import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__ as version, APP_TITLE, dependencies
from .background_tasks import start_unlock_sweep_thread
from .logging_utils import configure_logging, get_logger
from .routes import books, codes, test

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings = dependencies.get_settings()
    configure_logging(json_logs=settings.json_logs, level=settings.log_level)

    sweep_thread = None
    sweep_stop = None
    if settings.unlock_sweep_enabled:
        coupon_service = dependencies.get_coupon_service(
            dependencies.get_session_factory()
        )
        sweep_thread, sweep_stop = start_unlock_sweep_thread(coupon_service, settings)

    logger.info("Application startup complete")

    yield

    # Shutdown
    logger.info("Shutting down...")
    if sweep_stop is not None:
        sweep_stop.set()
        logger.info("Joining unlock_sweep worker thread...")
        sweep_thread.join()
    logger.info("Shutdown complete")


def _create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=APP_TITLE,
        description="API for issuing, assigning, locking and redeeming coupon codes",
        version=version,
        lifespan=lifespan,
        docs_url=None if os.getenv("ENV") == "prod" else "/docs",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # In production, replace with specific origins
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    return app


def _register_routers(app: FastAPI):
    """Register all application routers."""
    app.include_router(books.router, prefix="/books", tags=["books"])
    app.include_router(codes.router, prefix="/codes", tags=["codes"])

    # Test environment routers
    if os.getenv("ENV") == "test":
        app.include_router(test.router, prefix="/test", tags=["test"])


# Create the application
app = _create_app()
_register_routers(app)
