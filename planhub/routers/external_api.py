# planhub/routers/external_api.py
import asyncio
import logging
import time
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException
from supabase import Client

from planhub.core.config import settings
from planhub.core.errors import PlanError, to_http_exception
from planhub.deps import get_optional_supabase, get_orchestrator
from planhub.schemas.marketing_plan import (
    ExternalPlanIn,
    ExternalPlanOut,
    GenerationRequest,
    PlanPollOut,
)
from planhub.services.agent_gateway import is_valid_job_id
from planhub.services.api_logger import log_api_call
from planhub.services.domain import domain_rejection_reason, normalize_domain
from planhub.services.orchestrator import GenerationOrchestrator, GenerationRun, RunState
from planhub.services.webhooks import deliver_webhook, plan_completed_event

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/marketing-plan", tags=["external-api"])


def _plan_url(domain: str, language: str) -> str:
    return f"{settings.PUBLIC_BASE_URL.rstrip('/')}/{quote(domain)}?lang={language}"


def _require_api_key(x_api_key: Optional[str]) -> None:
    if not x_api_key or x_api_key not in settings.EXTERNAL_API_KEYS:
        raise HTTPException(
            status_code=401,
            detail={"error": "Unauthorized", "message": "Invalid or missing API key. Include x-api-key header."},
        )


async def _follow_and_notify(
    orchestrator: GenerationOrchestrator,
    run: GenerationRun,
    webhook_url: str,
    webhook_secret: Optional[str],
) -> None:
    """Background task: poll the run to the end, then call the webhook."""
    run = await orchestrator.follow(run)
    if run.state is not RunState.COMPLETE or run.plan is None:
        logger.warning(
            "Webhook %s not sent: run for %s ended %s (%s)",
            webhook_url, run.request.normalized_domain, run.state.value, run.error,
        )
        return

    event = plan_completed_event(run.request.normalized_domain, run.request.language, run.plan)
    await asyncio.to_thread(deliver_webhook, webhook_url, event, webhook_secret)


async def _record_call(background: BackgroundTasks, supa: Optional[Client], **entry) -> None:
    # background tasks are dropped when the route raises, so errors are written inline
    if entry.get("status_code", 200) < 400:
        background.add_task(log_api_call, supa, **entry)
    else:
        await asyncio.to_thread(log_api_call, supa, **entry)


@router.post("", response_model=ExternalPlanOut, response_model_exclude_none=True)
async def create_plan(
    body: ExternalPlanIn,
    background: BackgroundTasks,
    x_api_key: Optional[str] = Header(default=None, alias="x-api-key"),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
    supa: Optional[Client] = Depends(get_optional_supabase),
):
    started = time.perf_counter()
    status_code = 200
    error_message: Optional[str] = None
    domain = normalize_domain(body.domain)

    try:
        _require_api_key(x_api_key)

        reason = domain_rejection_reason(body.domain)
        if reason is not None:
            raise HTTPException(
                status_code=400,
                detail={"error": "Invalid domain", "reason": reason, "field": "domain"},
            )

        request = GenerationRequest.create(
            body.domain,
            language=body.language,
            industry=body.industry,
            force_regenerate=body.force,
        )
        run = await orchestrator.begin(request)

        if run.state is RunState.COMPLETE:
            return ExternalPlanOut(
                status="complete",
                domain=domain,
                language=body.language,
                plan=run.plan,
                plan_url=_plan_url(domain, body.language),
                source="db",
            )

        if run.state is not RunState.POLLING or run.handle is None:
            raise to_http_exception(run.error or PlanError("Plan generation could not start"))

        if body.webhook_url:
            background.add_task(_follow_and_notify, orchestrator, run, body.webhook_url, body.webhook_secret)

        return ExternalPlanOut(
            status="processing",
            domain=domain,
            language=body.language,
            job_id=run.handle.job_id,
            poll_url=f"/v1/marketing-plan/{run.handle.job_id}",
            plan_url=_plan_url(domain, body.language),
            source="ai",
        )
    except HTTPException as e:
        status_code = e.status_code
        error_message = str(e.detail)
        raise
    finally:
        await _record_call(
            background,
            supa,
            endpoint="/v1/marketing-plan",
            method="POST",
            status_code=status_code,
            response_time_ms=int((time.perf_counter() - started) * 1000),
            domain=domain,
            api_key=x_api_key,
            error_message=error_message,
            metadata={"language": body.language, "force": body.force, "webhook": bool(body.webhook_url)},
        )


@router.get("")
def describe_api():
    return {
        "status": "ok",
        "version": "1.1",
        "features": ["webhook_callback", "api_logging"],
        "endpoints": {
            "create_plan": {
                "method": "POST",
                "path": "/v1/marketing-plan",
                "description": "Create a marketing plan for a domain",
                "params": {
                    "domain": "string (required)",
                    "language": "en|fr|de|es (optional, default: en)",
                    "industry": "string (optional, auto-detected)",
                    "force": "boolean (optional, default: false)",
                    "webhook_url": "string (optional) - URL to receive callback when plan is ready",
                    "webhook_secret": "string (optional) - Secret for webhook signature",
                },
            },
            "poll_status": {
                "method": "GET",
                "path": "/v1/marketing-plan/{job_id}",
                "description": "Poll for plan generation status",
            },
        },
    }


@router.get("/{job_id}", response_model=PlanPollOut, response_model_exclude_none=True)
async def poll_plan(
    job_id: str,
    background: BackgroundTasks,
    domain: Optional[str] = None,
    language: Optional[str] = None,
    x_api_key: Optional[str] = Header(default=None, alias="x-api-key"),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
    supa: Optional[Client] = Depends(get_optional_supabase),
):
    started = time.perf_counter()
    status_code = 200
    error_message: Optional[str] = None

    try:
        _require_api_key(x_api_key)
        if not is_valid_job_id(job_id):
            raise HTTPException(status_code=400, detail={"error": "Invalid job ID format"})

        try:
            outcome = await orchestrator.resolve_job(job_id, domain, language)
        except PlanError as e:
            raise to_http_exception(e)

        return PlanPollOut(
            status=outcome.status,
            job_id=job_id,
            plan=outcome.plan,
            message=outcome.message,
            error=outcome.error,
            saved=outcome.saved,
        )
    except HTTPException as e:
        status_code = e.status_code
        error_message = str(e.detail)
        raise
    finally:
        await _record_call(
            background,
            supa,
            endpoint="/v1/marketing-plan/{job_id}",
            method="GET",
            status_code=status_code,
            response_time_ms=int((time.perf_counter() - started) * 1000),
            domain=normalize_domain(domain) if domain else None,
            api_key=x_api_key,
            error_message=error_message,
            metadata={"job_id": job_id},
        )
