"""
FastAPI application - Main entry point
"""

from dotenv import load_dotenv

load_dotenv()

import logging
import os
from datetime import datetime
from typing import Callable, Optional
from urllib.parse import parse_qs, urlparse

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.api.dependencies import api_key_protection, build_services
from src.api.endpoints.activity import activity_api
from src.api.endpoints.catalog import catalog_api
from src.api.endpoints.clients import clients_api
from src.api.endpoints.commissions import commissions_api
from src.api.endpoints.dashboard import dashboard_api
from src.api.endpoints.offers import offers_api
from src.api.endpoints.policies import policies_api
from src.api.endpoints.premium import premium_api
from src.api.endpoints.renewals import renewals_api
from src.error_handler import ErrorHandler
from src.errors import BrokerageError
from src.integrations.contracts.interfaces import utcnow
from src.integrations.contracts.storage import BrokerageStore, FileStore
from src.integrations.files.local_store import LocalFileStore
from src.utils.config_loader import BrokerageConfig, load_brokerage_config

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SERVICE_NAME = "Brokerage API"
SERVICE_VERSION = "1.0.0"


def _use_sql_store() -> bool:
    return bool(os.getenv("DATABASE_URL")) and os.getenv("USE_POSTGRES_STORE", "").lower() in ("1", "true", "yes")


def _build_store(config: BrokerageConfig) -> BrokerageStore:
    # Use the SQL store when env is set, else the in-memory store
    if _use_sql_store():
        from src.database.postgres_real import BrokerageDB

        return BrokerageDB(
            connection_string=os.environ["DATABASE_URL"],
            offer_number_prefix=config.offers.number_prefix,
            policy_number_prefix=config.policies.number_prefix,
        )

    from src.database.postgres import BrokerageDB

    return BrokerageDB(
        offer_number_prefix=config.offers.number_prefix,
        policy_number_prefix=config.policies.number_prefix,
    )


def _load_config() -> BrokerageConfig:
    try:
        return load_brokerage_config()
    except FileNotFoundError as e:
        logger.warning("%s; using default brokerage settings", e)
        return BrokerageConfig()


def _log_database_target() -> None:
    """Log sanitized DB target details (no credentials) for connectivity debugging."""
    db_url = os.getenv("DATABASE_URL", "")
    if not db_url:
        logger.info("DATABASE_URL not set; using in-memory BrokerageDB")
        return
    try:
        parsed = urlparse(db_url)
        query = parse_qs(parsed.query or "")
        logger.info(
            "DATABASE_URL target: scheme=%s host=%s port=%s db=%s sslmode=%s use_postgres=%s",
            parsed.scheme,
            parsed.hostname,
            parsed.port or 5432,
            (parsed.path or "").lstrip("/"),
            (query.get("sslmode") or [""])[0],
            os.getenv("USE_POSTGRES_STORE", ""),
        )
    except ValueError as e:
        logger.warning("Could not parse DATABASE_URL for startup logging: %s", e)


def create_app(
    db: Optional[BrokerageStore] = None,
    files: Optional[FileStore] = None,
    config: Optional[BrokerageConfig] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> FastAPI:
    """Build the application. Tests pass their own store, file store, config and clock."""
    config = config or _load_config()
    db = db or _build_store(config)
    files = files or LocalFileStore(config.storage.upload_dir, max_bytes=config.storage.max_upload_bytes)

    app = FastAPI(
        title=SERVICE_NAME,
        description="Insurance brokerage backend: rating, offers, policies, payments and commissions",
        version=SERVICE_VERSION,
        dependencies=[Depends(api_key_protection)],  # protect everything by default
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.services = build_services(db, files, config, clock or utcnow)
    error_handler = ErrorHandler()

    @app.exception_handler(BrokerageError)
    async def brokerage_error_handler(request: Request, exc: BrokerageError):
        status_code, payload = error_handler.handle_exception(
            exc, {"path": request.url.path, "method": request.method}
        )
        return JSONResponse(status_code=status_code, content=payload)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        status_code, payload = error_handler.handle_exception(
            exc, {"path": request.url.path, "method": request.method}
        )
        return JSONResponse(status_code=status_code, content=payload)

    for router in (
        premium_api,
        clients_api,
        offers_api,
        policies_api,
        commissions_api,
        renewals_api,
        catalog_api,
        activity_api,
        dashboard_api,
    ):
        app.include_router(router, prefix="/api/v1")

    @app.get("/", tags=["Health"])
    async def root():
        """Health check endpoint."""
        return {"service": SERVICE_NAME, "status": "healthy", "version": SERVICE_VERSION, "timestamp": datetime.now().isoformat()}

    @app.get("/health", tags=["Health"])
    async def health_check():
        return {
            "status": "healthy",
            "database": {"store": type(db).__module__.rsplit(".", 1)[-1]},
            "timestamp": datetime.now().isoformat(),
        }

    @app.on_event("startup")
    async def startup_event():
        """Initialize on startup"""
        logger.info("Starting %s...", SERVICE_NAME)
        _log_database_target()

        # Create database tables if they don't exist
        try:
            db.create_tables()
            logger.info("Database tables initialized")
        except Exception as e:
            logger.error(f"Error initializing database: {str(e)}")

    @app.on_event("shutdown")
    async def shutdown_event():
        """Cleanup on shutdown"""
        logger.info("Shutting down %s...", SERVICE_NAME)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=os.getenv("API_HOST", "127.0.0.1"), port=int(os.getenv("API_PORT", "8000")))
