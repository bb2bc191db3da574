"""
Health Checks for Dependencies
Database, model cache backend, AI provider configuration and background tasks
"""

import logging
import time
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import text
from sqlalchemy.orm import Session

from app.core.circuit_breaker import get_provider_breaker
from app.core.config import settings
from app.db.database import get_connection_pool_stats
from app.services.model_cache import ModelCache, RedisModelCache

logger = logging.getLogger(__name__)


class HealthChecker:
    """Health checker for all system dependencies"""

    def __init__(self, model_cache: Optional[ModelCache] = None, escalation_monitor=None):
        self.model_cache = model_cache
        self.escalation_monitor = escalation_monitor
        self.started_at = time.monotonic()

    def check_database(self, db: Session) -> Dict[str, Any]:
        try:
            start_time = time.perf_counter()
            result = db.execute(text("SELECT 1")).fetchone()
            response_time = (time.perf_counter() - start_time) * 1000

            if result and result[0] == 1:
                return {
                    "status": "healthy",
                    "response_time_ms": round(response_time, 2),
                    "message": "Database connection successful",
                    "pool_stats": get_connection_pool_stats(),
                }
            return {
                "status": "unhealthy",
                "response_time_ms": round(response_time, 2),
                "message": "Database query returned unexpected result",
            }

        except Exception as e:
            logger.error(f"Database health check failed: {str(e)}")
            return {
                "status": "unhealthy",
                "error": str(e),
                "message": "Database connection failed",
            }

    def check_model_cache(self) -> Dict[str, Any]:
        if self.model_cache is None:
            return {"status": "not_configured", "message": "Model cache not initialized"}

        if isinstance(self.model_cache, RedisModelCache):
            try:
                start_time = time.perf_counter()
                self.model_cache.redis_client.ping()
                return {
                    "status": "healthy",
                    "backend": "redis",
                    "response_time_ms": round((time.perf_counter() - start_time) * 1000, 2),
                    "message": "Redis connection successful",
                }
            except Exception as e:
                logger.error(f"Redis health check failed: {str(e)}")
                return {
                    "status": "unhealthy",
                    "backend": "redis",
                    "error": str(e),
                    "message": "Redis connection failed",
                }

        return {"status": "healthy", **self.model_cache.info()}

    def check_ai_provider(self) -> Dict[str, Any]:
        """Configuration only; live probing is available through /v1/ai-settings"""
        provider = settings.AI_DEFAULT_PROVIDER
        breaker = get_provider_breaker(provider)
        return {
            "status": "configured",
            "provider": provider,
            "circuit_breaker": breaker.get_state(),
        }

    def check_escalation_monitor(self) -> Dict[str, Any]:
        if self.escalation_monitor is None or not settings.ESCALATION_ENABLED:
            return {"status": "disabled"}
        return {"status": "healthy", **self.escalation_monitor.get_status()}

    def get_system_info(self) -> Dict[str, Any]:
        return {
            "environment": settings.ENVIRONMENT,
            "version": "1.0.0",
            "service": "contractflow-api",
            "uptime_seconds": round(time.monotonic() - self.started_at),
            "timestamp": datetime.utcnow().isoformat(),
        }

    def perform_comprehensive_health_check(self, db: Session) -> Dict[str, Any]:
        health_status = {
            "overall_status": "healthy",
            "timestamp": datetime.utcnow().isoformat(),
            "checks": {
                "database": self.check_database(db),
                "model_cache": self.check_model_cache(),
                "ai_provider": self.check_ai_provider(),
                "escalation_monitor": self.check_escalation_monitor(),
            },
            "system_info": self.get_system_info(),
        }

        unhealthy_checks = [
            {**check, "service": name}
            for name, check in health_status["checks"].items()
            if check.get("status") == "unhealthy"
        ]
        if unhealthy_checks:
            health_status["overall_status"] = "unhealthy"
            health_status["issues"] = unhealthy_checks

        return health_status


# Global health checker; main wires in the app-owned cache and monitor at startup
health_checker = HealthChecker()


async def get_detailed_health_status(db: Session) -> Dict[str, Any]:
    """Get detailed health status for monitoring endpoint"""
    return health_checker.perform_comprehensive_health_check(db)
