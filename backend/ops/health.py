"""
Health check endpoints for operations monitoring.

Provides health checks for:
- Database connectivity (all configured databases)
- Redis/Celery broker connectivity
- Tenant consistency (no active users on inactive tenants)
- Integration backlog (dead letters and overdue retries)

Endpoints:
- /_health/live    - Kubernetes liveness probe (is the process running?)
- /_health/ready   - Kubernetes readiness probe (can we serve traffic?)
- /_health/full    - Full health report (for debugging/dashboards)
"""
import logging
import time
from typing import Dict, Any

import redis
from django.conf import settings
from django.db import connections, DatabaseError
from django.http import JsonResponse
from django.utils import timezone
from django.views import View

logger = logging.getLogger(__name__)


class HealthCheck:
    """Health check implementation."""

    @staticmethod
    def check_database(alias: str = "default") -> Dict[str, Any]:
        """Check database connectivity."""
        start = time.time()
        try:
            conn = connections[alias]
            conn.ensure_connection()
            with conn.cursor() as cursor:
                cursor.execute("SELECT 1")
                cursor.fetchone()
            duration_ms = (time.time() - start) * 1000
            return {
                "status": "healthy",
                "alias": alias,
                "duration_ms": round(duration_ms, 2),
            }
        except DatabaseError as e:
            duration_ms = (time.time() - start) * 1000
            logger.warning("Database health check failed", extra={"alias": alias, "error": str(e)})
            return {
                "status": "unhealthy",
                "alias": alias,
                "error": str(e),
                "duration_ms": round(duration_ms, 2),
            }

    @staticmethod
    def check_all_databases() -> Dict[str, Any]:
        """Check all configured databases."""
        results = {}
        all_healthy = True

        for alias in settings.DATABASES.keys():
            result = HealthCheck.check_database(alias)
            results[alias] = result
            if result["status"] != "healthy":
                all_healthy = False

        return {
            "status": "healthy" if all_healthy else "degraded",
            "databases": results,
        }

    @staticmethod
    def check_redis() -> Dict[str, Any]:
        """Check the Celery broker's Redis."""
        redis_url = getattr(settings, "CELERY_BROKER_URL", None)
        if not redis_url or not redis_url.startswith(("redis://", "rediss://")):
            return {"status": "skipped", "reason": "Redis not configured"}

        start = time.time()
        try:
            client = redis.from_url(redis_url, socket_connect_timeout=2)
            client.ping()
            duration_ms = (time.time() - start) * 1000
            return {
                "status": "healthy",
                "duration_ms": round(duration_ms, 2),
            }
        except redis.RedisError as e:
            duration_ms = (time.time() - start) * 1000
            return {
                "status": "unhealthy",
                "error": str(e),
                "duration_ms": round(duration_ms, 2),
            }

    @staticmethod
    def check_tenants() -> Dict[str, Any]:
        """Active users must belong to an active tenant."""
        from accounts.models import User
        from tenant.models import Tenant

        try:
            active_tenants = Tenant.objects.filter(is_active=True, deleted_at__isnull=True).count()
            orphaned = User.objects.filter(
                is_active=True,
                deleted_at__isnull=True,
                tenant__isnull=False,
            ).exclude(tenant__is_active=True).count()
        except DatabaseError as e:
            return {"status": "error", "error": str(e)}

        result = {
            "active_tenants": active_tenants,
            "users_on_inactive_tenants": orphaned,
        }
        if orphaned:
            result["status"] = "degraded"
            result["error"] = "Active users found on inactive tenants"
        else:
            result["status"] = "healthy"
        return result

    @staticmethod
    def check_integration_backlog() -> Dict[str, Any]:
        """Unprocessed dead letters and overdue retries against a threshold."""
        from integrations.models import DeadLetter, IntegrationMessage

        try:
            dead_letters = DeadLetter.objects.filter(reprocessed_at__isnull=True).count()
            overdue = IntegrationMessage.objects.filter(
                status=IntegrationMessage.Status.RETRYING,
                next_retry_at__lt=timezone.now() - timezone.timedelta(minutes=5),
            ).count()
        except DatabaseError as e:
            return {"status": "error", "error": str(e)}

        threshold = getattr(settings, "INTEGRATION_BACKLOG_THRESHOLD", 500)
        status = "healthy" if dead_letters + overdue < threshold else "degraded"
        return {
            "status": status,
            "dead_letters": dead_letters,
            "overdue_retries": overdue,
            "threshold": threshold,
        }

    @staticmethod
    def get_full_health() -> Dict[str, Any]:
        """Get comprehensive health report."""
        checks = {
            "databases": HealthCheck.check_all_databases(),
            "redis": HealthCheck.check_redis(),
            "tenants": HealthCheck.check_tenants(),
            "integration_backlog": HealthCheck.check_integration_backlog(),
        }

        statuses = [c.get("status", "unknown") for c in checks.values()]
        if all(s == "healthy" or s == "skipped" for s in statuses):
            overall = "healthy"
        elif any(s == "unhealthy" for s in statuses):
            overall = "unhealthy"
        else:
            overall = "degraded"

        return {
            "status": overall,
            "checks": checks,
            "version": getattr(settings, "VERSION", "unknown"),
            "environment": "production" if not settings.DEBUG else "development",
        }


class LivenessView(View):
    """
    Kubernetes liveness probe.

    Returns 200 if the process is running.
    """

    def get(self, request):
        return JsonResponse({"status": "alive"})


class ReadinessView(View):
    """
    Kubernetes readiness probe.

    Returns 200 if the default database answers.
    """

    def get(self, request):
        db_check = HealthCheck.check_database("default")

        if db_check["status"] == "healthy":
            return JsonResponse({
                "status": "ready",
                "database": db_check,
            })
        return JsonResponse({
            "status": "not_ready",
            "database": db_check,
        }, status=503)


class FullHealthView(View):
    """Full health report. Protect at the network level in production."""

    def get(self, request):
        health = HealthCheck.get_full_health()

        status_code = 200 if health["status"] == "healthy" else 503
        return JsonResponse(health, status=status_code)
