"""
Finora Account API

Main entry point: accounts, sessions, email management and newsletter.
"""

import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

# Common library imports
from common.database import MongoDB
from common.utils import APIException, error_response, success_response

# App-specific imports
from app.config import settings
from app.dependencies import (
    get_notifier,
    get_subscriber_repository,
    init_auth_services,
)
from app.pipelines.newsletter import purge_unconfirmed_pipeline
from app.repositories import AccountRepository, SubscriberRepository
from app.routers import auth_router, newsletter_router, users_router

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# =============================================================================
# Database Instance
# =============================================================================
main_db = MongoDB()


# =============================================================================
# Application Lifespan
# =============================================================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Connects the database, ensures indexes and initializes services on
    startup; waits for pending notifications and disconnects on shutdown.
    """
    logger.info("Starting Finora API...")
    settings.validate_required()

    await main_db.connect(
        uri=settings.MONGODB_URI,
        database_name=settings.MONGODB_DATABASE,
    )

    account_repository = AccountRepository(main_db.db)
    subscriber_repository = SubscriberRepository(
        main_db.db,
        unconfirmed_ttl=timedelta(hours=settings.NEWSLETTER_UNCONFIRMED_TTL_HOURS),
    )
    await account_repository.ensure_indexes()
    await subscriber_repository.ensure_indexes()

    init_auth_services(account_repository, subscriber_repository, settings)

    purge = await purge_unconfirmed_pipeline(
        get_subscriber_repository(),
        timedelta(hours=settings.NEWSLETTER_UNCONFIRMED_TTL_HOURS),
    )
    if not purge.ok:
        logger.warning("Unconfirmed subscriber sweep failed at startup")

    logger.info("Finora API started successfully!")

    yield

    logger.info("Shutting down Finora API...")
    await get_notifier().drain()
    await main_db.disconnect()
    logger.info("Finora API shut down complete.")


# =============================================================================
# FastAPI Application
# =============================================================================
app = FastAPI(
    title="Finora API",
    description="Accounts, sessions and newsletter for the Finora finance tracker",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.is_development() else None,
    redoc_url="/redoc" if settings.is_development() else None,
)

# =============================================================================
# CORS Middleware
# =============================================================================
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"],
)

# =============================================================================
# Error Responses
# =============================================================================
@app.exception_handler(APIException)
async def api_exception_handler(request: Request, exc: APIException):
    """Render API errors as {"success": false, "error": {...}}."""
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(**exc.detail),
        headers=exc.headers,
    )


# =============================================================================
# Include Routers (all under /api prefix)
# =============================================================================
API_PREFIX = "/api"

app.include_router(auth_router, prefix=API_PREFIX, tags=["Authentication"])
app.include_router(users_router, prefix=API_PREFIX, tags=["Users"])
app.include_router(newsletter_router, prefix=API_PREFIX, tags=["Newsletter"])


# =============================================================================
# Health Check Endpoint
# =============================================================================
@app.get("/health", tags=["Health"])
async def health():
    """
    Health check endpoint.

    Returns the status of the API and database connection.
    """
    return success_response({
        "status": "ok",
        "version": "1.0.0",
        "database": main_db.is_connected,
    })


# =============================================================================
# Run with Uvicorn
# =============================================================================
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.is_development(),
    )
