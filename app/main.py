"""
ContractFlow API - Main FastAPI Application
Contract lifecycle management with multi-step approvals and an AI assistant
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime

import uvicorn
from fastapi import Depends, FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from app.api.v1.api import api_router
from app.core.circuit_breaker import reset_all_breakers
from app.core.config import settings
from app.core.health_checks import get_detailed_health_status, health_checker
from app.core.metrics import MetricsMiddleware, get_metrics
from app.core.middleware import AuditMiddleware, ErrorHandlingMiddleware
from app.db.database import SessionLocal, create_tables, get_db
from app.db.seed import seed_initial_data
from app.services.escalation_monitor import EscalationMonitor
from app.services.model_cache import PerformanceStats, build_model_cache

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def init_app_state(app: FastAPI):
    """Fresh model cache, statistics and circuit breakers for this process"""
    model_cache = build_model_cache()
    model_cache.clear()
    app.state.model_cache = model_cache
    app.state.performance_stats = PerformanceStats()
    reset_all_breakers()
    health_checker.model_cache = model_cache


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown"""
    create_tables()
    if settings.SEED_REFERENCE_DATA:
        db = SessionLocal()
        try:
            seed_initial_data(db)
        finally:
            db.close()

    init_app_state(app)

    monitor = None
    if settings.ESCALATION_ENABLED:
        monitor = EscalationMonitor()
        await monitor.start()
        health_checker.escalation_monitor = monitor
    logger.info(f"{settings.APP_NAME} started ({settings.ENVIRONMENT})")

    yield

    if monitor is not None:
        await monitor.stop()
    logger.info(f"{settings.APP_NAME} stopped")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description="Contract lifecycle management with multi-step approval workflows",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None,
    debug=settings.DEBUG,
    lifespan=lifespan,
)

# Dependencies read these before the first startup completes (e.g. in tests)
init_app_state(app)

# CORS middleware for the web client
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

if settings.PROMETHEUS_METRICS_ENABLED:
    app.add_middleware(MetricsMiddleware)

app.add_middleware(ErrorHandlingMiddleware)
app.add_middleware(AuditMiddleware)

# Include API routes
app.include_router(api_router, prefix="/v1")


@app.get("/health")
async def health_check():
    """Basic health check endpoint for load balancers and monitoring"""
    return {
        "status": "healthy",
        "service": "contractflow-api",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT,
        "timestamp": datetime.utcnow().isoformat(),
    }


@app.get("/health/detailed")
async def detailed_health_check(db: Session = Depends(get_db)):
    """Comprehensive health check with dependency verification"""
    try:
        return await get_detailed_health_status(db)
    except Exception as e:
        logger.error(f"Detailed health check failed: {str(e)}")
        return {
            "status": "degraded",
            "service": "contractflow-api",
            "version": "1.0.0",
            "environment": settings.ENVIRONMENT,
            "error": f"Detailed health check failed: {str(e)}",
            "timestamp": datetime.utcnow().isoformat(),
        }


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint"""
    return Response(
        content=get_metrics(), media_type="text/plain; version=0.0.4; charset=utf-8"
    )


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "ContractFlow API - Contract Lifecycle Management",
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",  # nosec B104
        port=8000,
        reload=settings.ENVIRONMENT == "development",
    )
