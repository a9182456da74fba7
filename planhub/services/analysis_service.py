# planhub/services/analysis_service.py
"""
KPI benchmark analysis: prompt building, the create/poll flow and the
streaming flow.

Stream events handed to the client, one JSON object per line:

    {"type": "log",   "message": ...}   progress notes from the agent
    {"type": "text",  "content": ...}   a piece of the report
    {"type": "done",  "content": ...}   the full report
    {"type": "error", "message": ...}
    {"type": "end"}                     always last
"""
from __future__ import annotations

import asyncio
import json
import logging
from contextlib import aclosing
from functools import lru_cache
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional

from planhub.core.config import settings
from planhub.core.errors import PlanError
from planhub.schemas.analysis import AnalysisIn, AnalysisPollOut
from planhub.schemas.marketing_plan import JobHandle
from planhub.services.agent_gateway import AgentGateway
from planhub.services.polling import poll_job_status
from planhub.services.prompts import build_analysis_prompt, format_kpi_lines

logger = logging.getLogger(__name__)

BENCHMARKS_PATH = Path(__file__).resolve().parent.parent / "data" / "benchmarks.json"
DEFAULT_BENCHMARK_INDUSTRY = "Fashion"

_TEXT_EVENTS = {"text", "token", "chunk", "delta"}
_DONE_EVENTS = {"done", "complete", "completed", "final"}


@lru_cache
def load_benchmarks() -> Dict[str, List[Dict[str, Any]]]:
    with BENCHMARKS_PATH.open("r", encoding="utf-8") as fh:
        return json.load(fh)


def benchmarks_for(industry: str) -> List[Dict[str, Any]]:
    data = load_benchmarks()
    return data.get(industry) or data[DEFAULT_BENCHMARK_INDUSTRY]


def build_kpi_prompt(body: AnalysisIn) -> str:
    lines = format_kpi_lines(benchmarks_for(body.industry), body.user_values, body.price_tier)
    return build_analysis_prompt(lines, body.industry, body.price_tier, body.language)


def analysis_metadata(body: AnalysisIn) -> Dict[str, Any]:
    return {
        "client": "kpi-analysis-web",
        "industry": body.industry,
        "price_tier": body.price_tier,
        "language": body.language,
    }


def analysis_text(result: Any) -> Optional[str]:
    """The report text out of a gateway result (string or object)."""
    if result is None:
        return None
    if isinstance(result, str):
        return result
    if isinstance(result, dict):
        for key in ("content", "text", "answer", "markdown", "output"):
            value = result.get(key)
            if isinstance(value, str) and value.strip():
                return value
    return json.dumps(result, ensure_ascii=False, default=str)


# =========================
# create / poll
# =========================

async def create_analysis(gateway: AgentGateway, body: AnalysisIn) -> JobHandle:
    return await gateway.create_job(
        build_kpi_prompt(body),
        analysis_metadata(body),
        agent_alias=settings.AI_ANALYSIS_AGENT_ALIAS,
    )


async def check_analysis(gateway: AgentGateway, job_id: str) -> AnalysisPollOut:
    status = await gateway.get_status(job_id)
    if status.state == "pending":
        return AnalysisPollOut(status="pending", job_id=job_id)
    if status.state == "error":
        return AnalysisPollOut(status="error", job_id=job_id, error=status.error or "Analysis failed")

    content = analysis_text(status.result)
    if not content:
        return AnalysisPollOut(status="error", job_id=job_id, error="Empty analysis result")
    return AnalysisPollOut(status="complete", job_id=job_id, content=content)


async def run_analysis(
    gateway: AgentGateway,
    body: AnalysisIn,
    *,
    poll_interval: float = 0,
    max_attempts: int = 0,
    sleep=asyncio.sleep,
) -> Optional[str]:
    """Create, then poll until the report is ready (60 checks by default)."""
    handle = await create_analysis(gateway, body)
    status = await poll_job_status(
        gateway,
        handle.job_id,
        interval=poll_interval or settings.PLAN_POLL_INTERVAL_SECONDS,
        max_attempts=max_attempts or settings.ANALYSIS_POLL_MAX_ATTEMPTS,
        sleep=sleep,
    )
    return analysis_text(status.result) if status is not None else None


# =========================
# stream
# =========================

def _event_text(event: Dict[str, Any]) -> str:
    for key in ("content", "text", "delta"):
        value = event.get(key)
        if isinstance(value, str):
            return value
    return ""


async def stream_analysis(
    gateway: AgentGateway,
    prompt: str,
    metadata: Dict[str, Any],
) -> AsyncIterator[Dict[str, Any]]:
    """
    Relay gateway events. The stream closes on the first terminal event
    (a done event with content, or an error). When the gateway stops
    without one, the text gathered so far is sent as the final report.
    """
    buffered: List[str] = []
    finished = False

    try:
        async with aclosing(gateway.stream(prompt, metadata, agent_alias=settings.AI_ANALYSIS_AGENT_ALIAS)) as events:
            async for event in events:
                kind = str(event.get("type") or "").lower()

                if kind == "log":
                    yield {"type": "log", "message": event.get("message") or _event_text(event)}
                elif kind in _TEXT_EVENTS:
                    chunk = _event_text(event)
                    if chunk:
                        buffered.append(chunk)
                        yield {"type": "text", "content": chunk}
                elif kind == "error":
                    yield {"type": "error", "message": event.get("message") or _event_text(event) or "Analysis failed"}
                    finished = True
                    break
                elif kind in _DONE_EVENTS:
                    content = _event_text(event) or "".join(buffered)
                    if content:
                        yield {"type": "done", "content": content}
                        finished = True
                        break
                else:
                    logger.debug("Ignoring stream event %r", kind)
    except PlanError as e:
        logger.error("Analysis stream failed: %s", e)
        yield {"type": "error", "message": e.message}
        finished = True

    if not finished and buffered:
        yield {"type": "done", "content": "".join(buffered)}

    yield {"type": "end"}
