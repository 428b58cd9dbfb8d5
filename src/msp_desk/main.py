"""
MSP Desk - Main Application
===========================

Ticket lifecycle and SLA engine for a managed-service-provider platform.

Modules:
- Tickets: status workflow, SLA snapshot and breach tracking, expert
  assignment, messages, time logs and satisfaction surveys

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities and value objects
- Infrastructure: Database, YAML SLA defaults
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Configuration
from msp_desk.config import settings

# Infrastructure
from msp_desk.infrastructure.database import close_database, create_tables, init_database

# Shared API
from msp_desk.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    register_exception_handlers,
)

# Logging
from msp_desk.shared.infrastructure.logging import get_logger, setup_logging

# Module Routers
from msp_desk.tickets.application import HealthResponse
from msp_desk.tickets.interfaces import admin_router, company_router, expert_router

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database
    3. Create database tables

    SHUTDOWN:
    1. Close database connections
    """
    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting MSP Desk", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    logger.info("Initializing database")
    init_database()

    # Create tables (for development - use Alembic in production)
    # If the database is not reachable the server still starts;
    # ticket endpoints fail until it is.
    try:
        await create_tables()
    except Exception as e:
        logger.warning(
            "Database not available - running in degraded mode",
            extra={"error": str(e)}
        )

    logger.info("MSP Desk started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down MSP Desk")
    await close_database()
    logger.info("MSP Desk shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="MSP Desk API",
    description="""
    ## Ticket Lifecycle & SLA Engine

    Companies open tickets against contracted services, experts work and
    resolve them, administrators oversee SLA compliance.

    ### Identity

    Authentication happens upstream. Every request carries `X-User-Id` and
    `X-User-Role` (`company`, `expert`, `admin`). Admins calling company or
    expert routes name the impersonated user with `X-Act-As-CompanyUserId`
    or `X-Act-As-ExpertUserId`.

    ### Workflow

    `open → in_progress → (waiting_for_customer ⇄ in_progress) → resolved → closed`

    ### SLA

    First response and resolution targets are resolved at creation from the
    system default, the service default and the active contract override.
    """,
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)
app.state.settings = settings

# === CORS Middleware ===
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# === Custom Middleware (from shared) ===
# Added last runs first: correlation id is set before the request is logged
app.add_middleware(LoggingMiddleware)
app.add_middleware(CorrelationIDMiddleware)
register_exception_handlers(app)

# === Include Module Routers ===
app.include_router(company_router)
app.include_router(expert_router)
app.include_router(admin_router)


# === Health Check Endpoint ===

@app.get("/health", tags=["Health"], response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Health check endpoint for load balancers and orchestrators."""
    return HealthResponse(
        status="healthy",
        version=settings.app_version,
        environment=settings.environment,
        timestamp=datetime.now(timezone.utc),
    )


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information."""
    return {
        "service": "MSP Desk",
        "version": settings.app_version,
        "architecture": "Clean Architecture / Modular Monolith",
        "docs": "/docs",
        "health": "/health",
        "modules": {
            "tickets": {
                "prefixes": ["/company/tickets", "/expert/tickets", "/admin/tickets"],
            }
        }
    }


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "msp_desk.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )
