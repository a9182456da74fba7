# planhub/services/api_logger.py
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from supabase import Client

from planhub.core.config import settings

logger = logging.getLogger(__name__)


def hash_api_key(api_key: Optional[str]) -> str:
    """First 8 characters only; the full key never reaches the logs."""
    if not api_key:
        return "none"
    return api_key[:8] + "..."


def log_api_call(
    supa: Optional[Client],
    *,
    endpoint: str,
    method: str,
    status_code: int,
    response_time_ms: int,
    domain: Optional[str] = None,
    api_key: Optional[str] = None,
    error_message: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> None:
    """Insert one row into api_logs. Failures are logged and dropped."""
    if supa is None:
        return

    row = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "endpoint": endpoint,
        "method": method,
        "domain": domain,
        "api_key_hash": hash_api_key(api_key),
        "status_code": status_code,
        "response_time_ms": response_time_ms,
        "error_message": error_message,
        "metadata": metadata,
    }

    try:
        supa.table(settings.API_LOGS_TABLE).insert(row).execute()
    except Exception as e:
        logger.warning("api_logs insert failed for %s %s: %s", method, endpoint, e)
