# planhub/routers/health.py
from datetime import datetime, timezone

from fastapi import APIRouter

from planhub.core.config import settings

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
def health():
    checks = {
        "aiGateway": bool(settings.AI_GATEWAY_URL and settings.AI_GATEWAY_API_KEY),
        "supabase": bool(settings.SUPABASE_URL and settings.SUPABASE_SERVICE_ROLE_KEY),
        "leadHub": bool(settings.LEAD_HUB_URL),
    }
    body = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": "brevo-marketing-plan",
        "version": "0.1.0",
        "environment": settings.ENV,
        "checks": checks,
    }
    # degraded is still a 200
    if not (checks["aiGateway"] and checks["supabase"]):
        body["status"] = "degraded"
        body["message"] = "Some integrations are not configured"
    return body
