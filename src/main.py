"""School fee ledger FastAPI application."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from src.core.auth.router import router as auth_router
from src.core.config import settings
from src.core.database.session import engine
from src.core.exceptions import AppException
from src.core.exceptions.handlers import (
    app_exception_handler,
    http_exception_handler,
    sqlalchemy_db_error_handler,
    validation_exception_handler,
)
from src.modules.academic_years.router import router as academic_years_router
from src.modules.discounts.router import router as discounts_router
from src.modules.fee_catalog.router import router as fee_catalog_router
from src.modules.ledger.router import router as ledger_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting %s fee ledger (%s)", settings.school_name, settings.app_env)
    yield
    await engine.dispose()


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="Fee Ledger",
        description="Student fee ledger and payment reconciliation",
        version="0.1.0",
        debug=settings.debug,
        lifespan=lifespan,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_db_error_handler)

    @app.get("/health")
    async def health_check():
        return {"status": "healthy"}

    # Routers
    app.include_router(auth_router, prefix="/api/v1")
    app.include_router(academic_years_router, prefix="/api/v1")
    app.include_router(fee_catalog_router, prefix="/api/v1")
    app.include_router(discounts_router, prefix="/api/v1")
    app.include_router(ledger_router, prefix="/api/v1")

    return app


app = create_app()
