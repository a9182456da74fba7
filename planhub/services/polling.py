# planhub/services/polling.py
from __future__ import annotations

import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from planhub.core.errors import GenerationTimeoutError, UpstreamError
from planhub.schemas.marketing_plan import JobStatus

logger = logging.getLogger(__name__)

LOADING_MESSAGES = (
    "Checking for existing plan...",
    "Initializing analysis...",
    "Gathering company information...",
    "Analyzing your website...",
    "Identifying marketing opportunities...",
    "Building your customized plan...",
    "Crafting program recommendations...",
    "Finalizing your marketing strategy...",
    "Almost there...",
    "This is taking longer than usual...",
)

# (last poll count, message index)
_MESSAGE_STEPS = ((0, 0), (1, 1), (4, 2), (7, 3), (10, 4), (14, 5), (18, 6), (22, 7), (30, 8))

_INVALID_JOB_PATTERNS = (
    "404",
    "not found",
    "invalid conversation",
    "conversation not found",
    "does not exist",
)

MAX_CONSECUTIVE_ERRORS = 3


def loading_message(poll_count: int) -> str:
    for upper, index in _MESSAGE_STEPS:
        if poll_count <= upper:
            return LOADING_MESSAGES[index]
    return LOADING_MESSAGES[-1]


def progress_estimate(attempt: int, max_attempts: int) -> float:
    """Grows with each poll but stays at or below 90 until the job completes."""
    if max_attempts <= 0:
        return 90.0
    return round(min(90.0, 5 + (attempt / max_attempts) * 85), 1)


def is_invalid_job_error(message: str) -> bool:
    lower = (message or "").lower()
    return any(p in lower for p in _INVALID_JOB_PATTERNS)


def should_stop_polling(message: str, consecutive_errors: int) -> bool:
    if is_invalid_job_error(message):
        return True
    return consecutive_errors >= MAX_CONSECUTIVE_ERRORS


def describe_payload(result: Any, limit: int = 1000) -> Dict[str, Any]:
    """Shape of an AI result for operator debugging (type, keys, preview)."""
    if isinstance(result, str):
        preview: Optional[str] = result[:limit]
    else:
        try:
            preview = json.dumps(result, ensure_ascii=False, default=str)[:limit]
        except (TypeError, ValueError):
            preview = repr(result)[:limit]

    return {
        "result_type": type(result).__name__,
        "result_keys": list(result.keys())[:50] if isinstance(result, dict) else [],
        "result_preview": preview,
    }


async def poll_job_status(
    gateway: Any,
    job_id: str,
    *,
    interval: float,
    max_attempts: int,
    sleep: Callable[[float], Awaitable[Any]],
    on_attempt: Optional[Callable[[int], None]] = None,
    cancelled: Optional[Callable[[], bool]] = None,
) -> Optional[JobStatus]:
    """
    Check `job_id` every `interval` seconds, at most `max_attempts` times.

    Returns the completed status, or None once `cancelled()` turns true.
    Raises UpstreamError for an error status (no further polls) and
    GenerationTimeoutError when the budget runs out.
    """
    is_cancelled = cancelled or (lambda: False)
    consecutive_errors = 0

    for attempt in range(1, max_attempts + 1):
        await sleep(interval)
        if is_cancelled():
            return None
        if on_attempt is not None:
            on_attempt(attempt)

        try:
            status = await gateway.get_status(job_id)
        except UpstreamError as e:
            if is_cancelled():
                return None
            consecutive_errors += 1
            logger.warning("Status check %d/%d failed for %s: %s", attempt, max_attempts, job_id, e)
            if e.status_code == 404 or should_stop_polling(str(e), consecutive_errors):
                raise
            continue

        if is_cancelled():
            return None
        consecutive_errors = 0

        if status.state == "complete":
            return status
        if status.state == "error":
            raise UpstreamError(
                status.error or "Generation failed",
                debug=describe_payload(status.result),
            )

    raise GenerationTimeoutError(
        f"No result after {max_attempts} status checks",
        debug={"job_id": job_id, "attempts": max_attempts},
    )
