# planhub/services/agent_gateway.py
from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any, AsyncIterator, Dict, Optional, Protocol

import aiohttp

from planhub.core.config import settings
from planhub.core.errors import ServiceNotConfiguredError, UpstreamError
from planhub.schemas.marketing_plan import JobHandle, JobStatus

logger = logging.getLogger(__name__)

JOB_ID_RE = re.compile(r"^[a-z]+_[a-zA-Z0-9_-]+$")

_COMPLETE = {"complete", "completed", "succeeded", "success", "done"}
_ERROR = {"error", "failed", "failure", "cancelled"}


def is_valid_job_id(job_id: str) -> bool:
    return bool(job_id) and bool(JOB_ID_RE.match(job_id))


def normalize_status(raw_status: Optional[str]) -> str:
    s = (raw_status or "").strip().lower()
    if s in _COMPLETE:
        return "complete"
    if s in _ERROR:
        return "error"
    return "pending"


class AgentGateway(Protocol):
    async def create_job(self, prompt: str, metadata: Dict[str, Any], agent_alias: Optional[str] = None) -> JobHandle: ...

    async def get_status(self, job_id: str) -> JobStatus: ...

    def stream(self, prompt: str, metadata: Dict[str, Any], agent_alias: Optional[str] = None) -> AsyncIterator[Dict[str, Any]]: ...


class AiGatewayClient:
    """HTTP client for the AI gateway (`/api/v1/analyze`)."""

    def __init__(
        self,
        base_url: str = "",
        api_key: str = "",
        *,
        agent_alias: str = "",
        create_timeout: float = 8,
        status_timeout: float = 10,
    ) -> None:
        self.base_url = (base_url or settings.AI_GATEWAY_URL).rstrip("/")
        self.api_key = api_key or settings.AI_GATEWAY_API_KEY
        self.agent_alias = agent_alias or settings.AI_AGENT_ALIAS
        self.create_timeout = create_timeout
        self.status_timeout = status_timeout

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.api_key)

    def _headers(self) -> Dict[str, str]:
        if not self.configured:
            raise ServiceNotConfiguredError("AI gateway not configured (AI_GATEWAY_URL / AI_GATEWAY_API_KEY)")
        return {"x-api-key": self.api_key, "Content-Type": "application/json"}

    async def create_job(
        self,
        prompt: str,
        metadata: Dict[str, Any],
        agent_alias: Optional[str] = None,
    ) -> JobHandle:
        headers = self._headers()
        body = {
            "agentAlias": agent_alias or self.agent_alias,
            "prompt": prompt,
            "metadata": metadata,
        }

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    f"{self.base_url}/api/v1/analyze",
                    json=body,
                    headers=headers,
                    timeout=aiohttp.ClientTimeout(total=self.create_timeout),
                ) as resp:
                    text = await resp.text()
                    if resp.status >= 400:
                        logger.error("AI gateway create failed: %s %s", resp.status, text[:300])
                        raise UpstreamError(
                            "AI service error",
                            status_code=502,
                            debug={"upstream_status": resp.status, "preview": text[:500]},
                        )
        except asyncio.TimeoutError:
            logger.error("AI gateway create timed out after %ss", self.create_timeout)
            raise UpstreamError("AI service timeout", status_code=504)
        except aiohttp.ClientError as e:
            logger.error("AI gateway unreachable: %s", e)
            raise UpstreamError("AI service unreachable", status_code=502, debug={"error": str(e)})

        try:
            data = json.loads(text) if text else {}
        except json.JSONDecodeError:
            data = {}

        job_id = None
        if isinstance(data, dict):
            job_id = data.get("jobId") or data.get("job_id")
        if not job_id:
            raise UpstreamError(
                "AI service returned no job id",
                status_code=502,
                debug={"type": type(data).__name__, "preview": text[:500]},
            )

        logger.info("AI job created: %s", job_id)
        return JobHandle(job_id=str(job_id))

    async def get_status(self, job_id: str) -> JobStatus:
        headers = self._headers()

        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(
                    f"{self.base_url}/api/v1/analyze/{job_id}",
                    headers=headers,
                    timeout=aiohttp.ClientTimeout(total=self.status_timeout),
                ) as resp:
                    if resp.status == 404:
                        raise UpstreamError("Job not found", status_code=404)
                    if resp.status >= 400:
                        text = await resp.text()
                        logger.error("AI gateway status failed: %s %s", resp.status, text[:300])
                        raise UpstreamError(
                            "AI service error",
                            status_code=502,
                            debug={"upstream_status": resp.status, "preview": text[:500]},
                        )
                    text = await resp.text()
        except asyncio.TimeoutError:
            raise UpstreamError("AI service timeout", status_code=504)
        except aiohttp.ClientError as e:
            raise UpstreamError("AI service unreachable", status_code=502, debug={"error": str(e)})

        try:
            data = json.loads(text)
        except ValueError:
            logger.error("AI gateway status for %s is not JSON: %s", job_id, text[:300])
            raise UpstreamError("Malformed status response", status_code=502, debug={"preview": text[:500]})

        if not isinstance(data, dict):
            raise UpstreamError("Malformed status response", status_code=502, debug={"type": type(data).__name__})

        raw_status = data.get("status")
        state = normalize_status(raw_status)
        error = data.get("error")
        if state == "error" and not error:
            error = data.get("message")

        return JobStatus(
            state=state,
            raw_status=raw_status,
            result=data.get("result"),
            error=error,
            metadata=data.get("metadata") or {},
        )

    async def stream(
        self,
        prompt: str,
        metadata: Dict[str, Any],
        agent_alias: Optional[str] = None,
    ) -> AsyncIterator[Dict[str, Any]]:
        """Yields the gateway's NDJSON events as dicts; non-JSON lines become text events."""
        headers = self._headers()
        body = {
            "agentAlias": agent_alias or settings.AI_ANALYSIS_AGENT_ALIAS,
            "prompt": prompt,
            "metadata": metadata,
        }

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    f"{self.base_url}/api/v1/analyze/stream",
                    json=body,
                    headers=headers,
                    timeout=aiohttp.ClientTimeout(total=None, sock_read=120),
                ) as resp:
                    if resp.status >= 400:
                        text = await resp.text()
                        raise UpstreamError(
                            "AI service error",
                            status_code=502,
                            debug={"upstream_status": resp.status, "preview": text[:500]},
                        )
                    async for line in resp.content:
                        raw = line.decode("utf-8", errors="replace").strip()
                        if not raw:
                            continue
                        if raw.startswith("data:"):
                            raw = raw[5:].strip()
                        try:
                            event = json.loads(raw)
                        except json.JSONDecodeError:
                            yield {"type": "text", "content": raw}
                            continue
                        if isinstance(event, dict):
                            yield event
        except asyncio.TimeoutError:
            raise UpstreamError("AI stream timeout", status_code=504)
        except aiohttp.ClientError as e:
            raise UpstreamError("AI service unreachable", status_code=502, debug={"error": str(e)})
