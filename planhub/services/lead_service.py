# planhub/services/lead_service.py
from __future__ import annotations

import logging
from datetime import timezone
from typing import Any, Dict, Optional

import requests

from planhub.core.errors import LeadRejectedError
from planhub.schemas.lead import LeadRecord

logger = logging.getLogger(__name__)


def build_lead_payload(
    record: LeadRecord,
    *,
    language: str = "en",
    user_agent: str = "",
    referrer: str = "",
) -> Dict[str, Any]:
    return {
        "email": record.email,
        "timestamp": record.captured_at.astimezone(timezone.utc).isoformat(),
        "language": language,
        "sourcePage": record.source_page,
        "triggerReason": record.trigger_reason,
        "contextTags": list(record.context_tags),
        "userAgent": user_agent or "",
        "referrer": referrer or "",
    }


class LeadCollectorClient:
    """
    Forwards captured leads to the lead hub.

    Fail-open: timeouts, connection errors and 5xx return False.
    Only a 4xx (the hub refusing the lead) raises LeadRejectedError.
    """

    def __init__(
        self,
        endpoint: str,
        api_key: Optional[str] = None,
        timeout: float = 5,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.endpoint = endpoint
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def configured(self) -> bool:
        return bool(self.endpoint)

    def submit(self, payload: Dict[str, Any]) -> bool:
        if not self.configured:
            logger.warning("LEAD_HUB_URL not configured, lead for %s kept locally", payload.get("email"))
            return False

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-API-Key"] = self.api_key

        try:
            resp = self.session.post(
                self.endpoint,
                json=payload,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.Timeout:
            logger.warning("Lead hub timed out after %ss", self.timeout)
            return False
        except requests.RequestException as e:
            logger.warning("Lead hub unreachable: %s", e)
            return False

        if 400 <= resp.status_code < 500:
            logger.error("Lead hub rejected lead: %s %s", resp.status_code, resp.text[:200])
            raise LeadRejectedError(
                f"Lead hub returned status {resp.status_code}",
                status_code=resp.status_code,
            )

        if resp.status_code >= 500:
            logger.warning("Lead hub error %s, lead queued", resp.status_code)
            return False

        return True
