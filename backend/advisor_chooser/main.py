"""
FastAPI main application.

Handles:
- Application initialization
- Middleware and rate limiting
- Route mounting
- Startup/shutdown events
"""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from advisor_chooser.core.config import settings
from advisor_chooser.core.errors import register_exception_handlers
from advisor_chooser.core.rate_limit import limiter, rate_limit_exception, rate_limit_handler
from advisor_chooser.api.routes import advisors, coupons, matching, payments, webhooks

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Marketplace backend matching business sellers with M&A advisors",
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

app.state.limiter = limiter
app.add_exception_handler(rate_limit_exception, rate_limit_handler)
register_exception_handlers(app)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.backend_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup_event():
    """Fail fast when billing is not configured."""
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Environment: {settings.environment}")

    from advisor_chooser.services.stripe_gateway import init_gateway

    init_gateway()
    logger.info("Application startup complete")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down application")


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "app": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
        "stripe_configured": settings.stripe_configured,
    }


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "app": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs" if settings.debug else "Documentation disabled in production",
        "health": "/health",
    }


# Mount API routes
app.include_router(
    payments.router,
    prefix=f"{settings.api_v1_prefix}/payments",
    tags=["payments"]
)

app.include_router(
    coupons.router,
    prefix=f"{settings.api_v1_prefix}/coupons",
    tags=["coupons"]
)

app.include_router(
    webhooks.router,
    prefix=f"{settings.api_v1_prefix}/webhooks",
    tags=["webhooks"]
)

app.include_router(
    matching.router,
    prefix=f"{settings.api_v1_prefix}/matching",
    tags=["matching"]
)

app.include_router(
    advisors.router,
    prefix=f"{settings.api_v1_prefix}/advisors",
    tags=["advisors"]
)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "advisor_chooser.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug
    )
