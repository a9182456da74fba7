# planhub/routers/leads.py
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request

from planhub.core.config import settings
from planhub.deps import get_lead_collector, get_lead_queue_store
from planhub.schemas.lead import LeadIn, LeadOut
from planhub.services.email_gate import EmailGate, GateTrigger, KeyValueStore, MemoryKeyValueStore
from planhub.services.lead_service import LeadCollectorClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["leads"])

_ERROR_MESSAGES = {
    "invalid": "Please enter a valid email address.",
    "free": "Please use your professional email address.",
    "rejected": "Your email could not be registered.",
}


@router.post("/lead", response_model=LeadOut)
def capture_lead(
    body: LeadIn,
    req: Request,
    background: BackgroundTasks,
    collector: LeadCollectorClient = Depends(get_lead_collector),
    queue: KeyValueStore = Depends(get_lead_queue_store),
):
    """
    Registers a lead from the gate form and forwards it to the lead hub.
    Hub outages never fail the request; undelivered leads wait in the queue
    and are re-sent after the next successful delivery.
    """
    gate = EmailGate(
        MemoryKeyValueStore(),
        collector,
        queue_store=queue,
        block_free_emails=settings.LEAD_BLOCK_FREE_EMAILS,
        queue_limit=settings.LEAD_QUEUE_MAX,
    )
    gate.require_unlock(
        GateTrigger(
            on_success=lambda: None,
            reason=body.trigger_reason,
            source_page=body.source_page,
            context_tags=body.context_tags,
        )
    )

    result = gate.submit_email(
        str(body.email),
        language=body.language,
        user_agent=body.user_agent or req.headers.get("user-agent", ""),
        referrer=body.referrer or req.headers.get("referer", ""),
    )

    if not result.ok:
        raise HTTPException(
            status_code=400,
            detail={"error": _ERROR_MESSAGES[result.error or "invalid"], "reason": result.error},
        )

    if result.notified:
        background.add_task(gate.retry_failed)
    else:
        logger.info("Lead %s queued for retry", result.lead.email if result.lead else None)

    return LeadOut(success=True, forwarded=bool(result.notified))
