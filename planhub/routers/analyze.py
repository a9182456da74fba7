# planhub/routers/analyze.py
import json
import logging
from typing import AsyncIterator

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from planhub.core.errors import PlanError, to_http_exception
from planhub.deps import get_agent_gateway, rate_limited
from planhub.schemas.analysis import AnalysisCreateOut, AnalysisIn, AnalysisPollOut
from planhub.services.agent_gateway import AgentGateway, is_valid_job_id
from planhub.services.analysis_service import (
    analysis_metadata,
    build_kpi_prompt,
    check_analysis,
    create_analysis,
    stream_analysis,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/analyze", tags=["analyze"])


@router.post("", response_model=AnalysisCreateOut, dependencies=[Depends(rate_limited)])
async def create(body: AnalysisIn, gateway: AgentGateway = Depends(get_agent_gateway)):
    try:
        handle = await create_analysis(gateway, body)
    except PlanError as e:
        raise to_http_exception(e)
    return AnalysisCreateOut(job_id=handle.job_id)


@router.post("/stream", dependencies=[Depends(rate_limited)])
async def stream(body: AnalysisIn, gateway: AgentGateway = Depends(get_agent_gateway)):
    """NDJSON: one event object per line, `end` last."""
    prompt = build_kpi_prompt(body)

    async def ndjson() -> AsyncIterator[bytes]:
        async for event in stream_analysis(gateway, prompt, analysis_metadata(body)):
            yield (json.dumps(event, ensure_ascii=False) + "\n").encode("utf-8")

    return StreamingResponse(ndjson(), media_type="application/x-ndjson")


@router.get("/{job_id}", response_model=AnalysisPollOut, response_model_exclude_none=True)
async def poll(job_id: str, gateway: AgentGateway = Depends(get_agent_gateway)):
    if not is_valid_job_id(job_id):
        raise HTTPException(status_code=400, detail={"error": "Invalid job ID format"})
    try:
        return await check_analysis(gateway, job_id)
    except PlanError as e:
        raise to_http_exception(e)
