# planhub/routers/marketing_plan.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from planhub.core.errors import PlanError, PersistenceError, to_http_exception
from planhub.deps import get_orchestrator, get_plan_store, rate_limited
from planhub.schemas.marketing_plan import (
    GenerationRequest,
    Language,
    PlanCreateIn,
    PlanCreateOut,
    PlanLookupOut,
    PlanPollOut,
)
from planhub.services.agent_gateway import is_valid_job_id
from planhub.services.domain import domain_rejection_reason, normalize_domain
from planhub.services.orchestrator import GenerationOrchestrator, RunState
from planhub.services.plan_store import PlanStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/marketing-plan", tags=["marketing-plan"])


@router.post("", response_model=PlanCreateOut, dependencies=[Depends(rate_limited)])
async def create_plan(
    body: PlanCreateIn,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
):
    """
    Returns the stored plan for (domain, language) when there is one,
    otherwise starts an AI job and returns its id for polling.
    """
    if not body.domain or not body.domain.strip():
        raise HTTPException(status_code=400, detail={"error": "Domain is required", "field": "domain"})

    request = GenerationRequest.create(
        body.domain,
        language=body.language,
        industry=body.industry,
        force_regenerate=body.force,
        email=body.email,
    )
    run = await orchestrator.begin(request)

    if run.state is RunState.COMPLETE:
        return PlanCreateOut(status="complete", source="db", plan=run.plan)
    if run.state is RunState.POLLING and run.handle is not None:
        return PlanCreateOut(status="created", source="ai", job_id=run.handle.job_id)

    raise to_http_exception(run.error or PlanError("Plan generation could not start"))


@router.get("/lookup", response_model=PlanLookupOut)
async def lookup_plan(
    domain: str,
    language: Language = "en",
    store: PlanStore = Depends(get_plan_store),
):
    if domain_rejection_reason(domain) is not None:
        return PlanLookupOut(found=False)

    try:
        plan = await store.lookup(normalize_domain(domain), language)
    except PersistenceError as e:
        logger.warning("Lookup failed for %s/%s: %s", domain, language, e)
        return PlanLookupOut(found=False)

    return PlanLookupOut(found=plan is not None, plan=plan)


@router.get("/{job_id}", response_model=PlanPollOut, response_model_exclude_none=True)
async def poll_plan(
    job_id: str,
    domain: Optional[str] = None,
    language: Optional[Language] = None,
    email: Optional[str] = None,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
):
    if not is_valid_job_id(job_id):
        raise HTTPException(status_code=400, detail={"error": "Invalid job ID format"})

    try:
        outcome = await orchestrator.resolve_job(job_id, domain, language, email)
    except PlanError as e:
        raise to_http_exception(e, include_debug=True)

    return PlanPollOut(
        status=outcome.status,
        job_id=job_id,
        plan=outcome.plan,
        message=outcome.message,
        error=outcome.error,
        debug=outcome.debug,
        saved=outcome.saved,
    )
