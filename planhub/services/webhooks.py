# planhub/services/webhooks.py
from __future__ import annotations

import hashlib
import hmac
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import requests

from planhub.core.config import settings
from planhub.schemas.marketing_plan import MarketingPlan

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Signature"


def sign_payload(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, signature: Optional[str], secret: str) -> bool:
    """Accepts a bare hex digest or one prefixed with `sha256=`."""
    if not signature:
        return False
    provided = signature.strip()
    if provided.startswith("sha256="):
        provided = provided[len("sha256="):]
    return hmac.compare_digest(sign_payload(body, secret), provided)


def plan_completed_event(domain: str, language: str, plan: MarketingPlan) -> Dict[str, Any]:
    return {
        "event": "plan.completed",
        "domain": domain,
        "language": language,
        "plan": plan.model_dump(mode="json"),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def deliver_webhook(
    url: str,
    event: Dict[str, Any],
    secret: Optional[str] = None,
    timeout: Optional[float] = None,
) -> bool:
    """
    POST the event to a caller-provided URL. Runs after the response was
    sent, so failures are only logged.
    """
    body = json.dumps(event, ensure_ascii=False).encode("utf-8")
    headers = {"Content-Type": "application/json"}
    if secret:
        headers[SIGNATURE_HEADER] = sign_payload(body, secret)

    try:
        r = requests.post(url, data=body, headers=headers, timeout=timeout or settings.WEBHOOK_TIMEOUT_SECONDS)
    except requests.RequestException as e:
        logger.warning("Webhook to %s failed: %s", url, e)
        return False

    if r.status_code >= 400:
        logger.warning("Webhook to %s returned %s: %s", url, r.status_code, r.text[:200])
        return False

    logger.info("Webhook delivered to %s (%s)", url, event.get("event"))
    return True
