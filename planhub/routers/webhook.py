# planhub/routers/webhook.py
import json
import logging
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from pydantic import ValidationError

from planhub.core.config import settings
from planhub.deps import get_orchestrator
from planhub.schemas.marketing_plan import GatewayCallbackIn
from planhub.services.agent_gateway import normalize_status
from planhub.services.domain import normalize_domain
from planhub.services.orchestrator import GenerationOrchestrator
from planhub.services.webhooks import verify_signature

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["webhook"])


@router.post("/webhook")
async def gateway_callback(
    req: Request,
    x_webhook_signature: Optional[str] = Header(default=None, alias="x-webhook-signature"),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
):
    """
    Completion callback from the AI gateway. Parses the result and stores
    the plan under metadata.domain / metadata.language.
    """
    raw = await req.body()

    if settings.WEBHOOK_SECRET and not verify_signature(raw, x_webhook_signature, settings.WEBHOOK_SECRET):
        logger.error("Webhook rejected: invalid signature")
        raise HTTPException(status_code=401, detail={"error": "Invalid signature"})

    try:
        body = GatewayCallbackIn.model_validate(json.loads(raw or b"{}"))
    except (json.JSONDecodeError, ValidationError) as e:
        raise HTTPException(status_code=400, detail={"error": "Invalid callback body", "message": str(e)[:300]})

    logger.info(
        "Webhook callback: status=%s job=%s has_result=%s",
        body.status, body.job_id, body.result is not None,
    )

    if normalize_status(body.status) != "complete":
        return {"received": True, "processed": False, "reason": f"Status is {body.status}, not completed"}

    domain = normalize_domain(body.metadata.get("domain"))
    if not domain:
        raise HTTPException(status_code=400, detail={"error": "No domain in metadata"})
    language = body.metadata.get("language") or "en"

    outcome = await orchestrator.resolve_payload(body.result, body.metadata, domain, language)

    if outcome.status == "error":
        logger.error("Webhook for %s: %s", domain, outcome.error)
        raise HTTPException(status_code=400, detail={"error": "Failed to parse plan data", "debug": outcome.debug})
    if not outcome.saved:
        raise HTTPException(status_code=500, detail={"error": "Failed to save plan"})

    return {
        "received": True,
        "processed": True,
        "domain": domain,
        "language": language,
        "plan_url": f"{settings.PUBLIC_BASE_URL.rstrip('/')}/{quote(domain)}?lang={language}",
    }
