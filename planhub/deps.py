# planhub/deps.py
from functools import lru_cache
from typing import Optional, Tuple

from fastapi import Depends, HTTPException, Request, Response
from supabase import create_client, Client  # supabase-py

from planhub.core.config import settings
from planhub.core.errors import ServiceNotConfiguredError
from planhub.schemas.vendors import VendorRecord
from planhub.services.agent_gateway import AiGatewayClient
from planhub.services.email_gate import JsonFileKeyValueStore
from planhub.services.lead_service import LeadCollectorClient
from planhub.services.orchestrator import GenerationOrchestrator
from planhub.services.plan_store import MemoryPlanStore, PlanStore, SupabasePlanStore
from planhub.services.rate_limit import FixedWindowRateLimiter, RateLimitResult, client_ip
from planhub.services.vendor_catalog import load_vendor_catalog


def supabase_configured() -> bool:
    return bool(settings.SUPABASE_URL and settings.SUPABASE_SERVICE_ROLE_KEY)


@lru_cache
def _supabase_client() -> Client:
    if not supabase_configured():
        raise ServiceNotConfiguredError("SUPABASE_URL or SUPABASE_SERVICE_ROLE_KEY missing from .env")

    return create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)


def get_supabase_admin() -> Client:
    # called by FastAPI through Depends
    return _supabase_client()


def get_optional_supabase() -> Optional[Client]:
    """Same client, or None when Supabase is not configured (api_logs)."""
    if not supabase_configured():
        return None
    return _supabase_client()


@lru_cache
def get_plan_store() -> PlanStore:
    if supabase_configured():
        return SupabasePlanStore(_supabase_client())
    return MemoryPlanStore()


@lru_cache
def get_agent_gateway() -> AiGatewayClient:
    return AiGatewayClient(
        create_timeout=settings.AI_CREATE_TIMEOUT_SECONDS,
        status_timeout=settings.AI_STATUS_TIMEOUT_SECONDS,
    )


@lru_cache
def get_orchestrator() -> GenerationOrchestrator:
    return GenerationOrchestrator(
        get_agent_gateway(),
        get_plan_store(),
        poll_interval=settings.PLAN_POLL_INTERVAL_SECONDS,
        max_attempts=settings.PLAN_POLL_MAX_ATTEMPTS,
    )


@lru_cache
def get_rate_limiter() -> FixedWindowRateLimiter:
    return FixedWindowRateLimiter(
        limit=settings.RATE_LIMIT_MAX_REQUESTS,
        window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
    )


@lru_cache
def get_lead_collector() -> LeadCollectorClient:
    return LeadCollectorClient(
        settings.LEAD_HUB_URL,
        api_key=settings.LEAD_HUB_API_KEY or None,
        timeout=settings.LEAD_TIMEOUT_SECONDS,
    )


@lru_cache
def get_lead_queue_store() -> JsonFileKeyValueStore:
    return JsonFileKeyValueStore(settings.LEAD_STORE_PATH)


def get_vendor_catalog() -> Tuple[VendorRecord, ...]:
    return load_vendor_catalog()


def rate_limited(
    req: Request,
    response: Response,
    limiter: FixedWindowRateLimiter = Depends(get_rate_limiter),
) -> RateLimitResult:
    """Per-IP fixed window; sets the X-RateLimit-* headers on the response."""
    result = limiter.check(client_ip(req))
    if not result.allowed:
        headers = result.headers()
        headers["Retry-After"] = str(result.retry_after)
        raise HTTPException(
            status_code=429,
            detail={"error": "Rate limit exceeded. Try again later."},
            headers=headers,
        )
    response.headers.update(result.headers())
    return result
