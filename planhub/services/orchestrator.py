# planhub/services/orchestrator.py
"""
Create -> poll -> resolve workflow for marketing plan generation.

A GenerationRun moves through:

    IDLE -> CHECKING -> SUBMITTING -> POLLING -> RESOLVING -> COMPLETE
                 \            \            \            \
                  +------------+------------+------------+--> FAILED

CHECKING can jump straight to COMPLETE when a stored plan exists, and
SUBMITTING/POLLING can move to CANCELLED through GenerationRun.cancel().
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Literal, Optional, Tuple

from planhub.core.config import settings
from planhub.core.errors import InvalidInputError, PersistenceError, PlanError, UpstreamError
from planhub.schemas.marketing_plan import (
    GenerationRequest,
    JobHandle,
    JobStatus,
    MarketingPlan,
)
from planhub.services.agent_gateway import AgentGateway
from planhub.services.domain import normalize_domain, validate_domain
from planhub.services.plan_store import PlanStore
from planhub.services.plan_validator import validate_plan_data
from planhub.services.polling import (
    describe_payload,
    loading_message,
    poll_job_status,
    progress_estimate,
)
from planhub.services.prompts import build_plan_prompt

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]
Clock = Callable[[], float]


class RunState(str, Enum):
    IDLE = "idle"
    CHECKING = "checking"
    SUBMITTING = "submitting"
    POLLING = "polling"
    RESOLVING = "resolving"
    COMPLETE = "complete"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES = (RunState.COMPLETE, RunState.FAILED, RunState.CANCELLED)
CANCELLABLE_STATES = (RunState.SUBMITTING, RunState.POLLING)


@dataclass
class GenerationRun:
    request: GenerationRequest
    state: RunState = RunState.IDLE
    progress: float = 0.0
    attempts: int = 0
    elapsed_seconds: float = 0.0
    message: str = ""
    handle: Optional[JobHandle] = None
    source: Optional[Literal["db", "ai"]] = None
    plan: Optional[MarketingPlan] = None
    error: Optional[PlanError] = None
    persist_error: Optional[PersistenceError] = None
    started_at: float = 0.0
    _task: Optional["asyncio.Future[GenerationRun]"] = field(default=None, repr=False)

    @property
    def done(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def cancelled(self) -> bool:
        return self.state is RunState.CANCELLED

    def cancel(self) -> bool:
        """
        Stop polling locally. Only acts in SUBMITTING or POLLING; the
        gateway job is left alone and nothing gets persisted.
        """
        if self.state not in CANCELLABLE_STATES:
            return False
        logger.info("Run for %s cancelled (job=%s)", self.request.normalized_domain,
                    self.handle.job_id if self.handle else None)
        self.state = RunState.CANCELLED
        self.handle = None
        self.message = "Cancelled"
        return True

    async def wait(self) -> "GenerationRun":
        if self._task is not None:
            await asyncio.shield(self._task)
        return self

    def _complete(self, plan: MarketingPlan, source: Literal["db", "ai"]) -> None:
        self.state = RunState.COMPLETE
        self.plan = plan
        self.source = source
        self.progress = 100.0
        self.handle = None
        self.message = "Complete"

    def _fail(self, error: PlanError) -> None:
        if self.state is RunState.CANCELLED:
            return
        self.state = RunState.FAILED
        self.error = error
        self.handle = None
        self.message = error.user_message


@dataclass
class PollOutcome:
    """Result of a single status check, as returned by the poll endpoints."""
    status: Literal["pending", "complete", "error"]
    plan: Optional[MarketingPlan] = None
    message: Optional[str] = None
    error: Optional[str] = None
    debug: Optional[Dict[str, Any]] = None
    saved: Optional[bool] = None


class GenerationOrchestrator:
    def __init__(
        self,
        gateway: AgentGateway,
        store: PlanStore,
        *,
        poll_interval: float = 5,
        max_attempts: int = 120,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = time.monotonic,
        default_email: str = settings.DEFAULT_PLAN_EMAIL,
        client_name: str = "marketing-plan-web",
    ) -> None:
        self.gateway = gateway
        self.store = store
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self._sleep = sleep
        self._clock = clock
        self.default_email = default_email
        self.client_name = client_name
        self._in_flight: Dict[Tuple[str, str], GenerationRun] = {}
        self._in_flight_begin: Dict[Tuple[str, str], "asyncio.Future[GenerationRun]"] = {}
        # runs handed out by begin() whose job is still being polled by a client
        self._polling: Dict[Tuple[str, str], GenerationRun] = {}

    # -------------------------
    # full run
    # -------------------------

    def submit(self, request: GenerationRequest) -> GenerationRun:
        """
        Schedule a run and return it right away. A second call for the same
        (domain, language) while one is in flight gets the same run back.
        """
        key = request.key
        existing = self._in_flight.get(key)
        if existing is not None and not existing.done:
            logger.info("Joining in-flight run for %s/%s", *key)
            return existing

        run = GenerationRun(request=request)
        run._task = asyncio.ensure_future(self._execute(run))
        self._in_flight[key] = run
        run._task.add_done_callback(lambda _t, k=key, r=run: self._release(k, r))
        return run

    async def start(self, request: GenerationRequest) -> GenerationRun:
        return await self.submit(request).wait()

    def _release(self, key: Tuple[str, str], run: GenerationRun) -> None:
        if self._in_flight.get(key) is run:
            del self._in_flight[key]

    async def _execute(self, run: GenerationRun) -> GenerationRun:
        try:
            await self._prepare(run)
            if run.state is RunState.POLLING:
                await self._follow(run)
        except PlanError as e:
            run._fail(e)
        except Exception as e:
            logger.exception("Unexpected failure generating plan for %s", run.request.normalized_domain)
            run._fail(PlanError(str(e) or e.__class__.__name__))
        return run

    # -------------------------
    # split run (HTTP flows)
    # -------------------------

    async def begin(self, request: GenerationRequest) -> GenerationRun:
        """
        CHECKING + SUBMITTING only. Returns a run that is COMPLETE (stored
        plan), FAILED, or POLLING with a job handle for the caller to follow.
        While that job is still being polled, later calls for the same
        (domain, language) get the same run back instead of a new job.
        """
        key = request.key
        active = self._active_polling_run(key)
        if active is not None:
            logger.info("Joining job %s for %s/%s", active.handle.job_id, *key)
            return active

        pending = self._in_flight_begin.get(key)
        if pending is None or pending.done():
            pending = asyncio.ensure_future(self._begin(request))
            self._in_flight_begin[key] = pending
            pending.add_done_callback(lambda t, k=key: self._release_begin(k, t))
        return await asyncio.shield(pending)

    def _release_begin(self, key: Tuple[str, str], fut: "asyncio.Future[GenerationRun]") -> None:
        if self._in_flight_begin.get(key) is fut:
            del self._in_flight_begin[key]

    def _active_polling_run(self, key: Tuple[str, str]) -> Optional[GenerationRun]:
        run = self._polling.get(key)
        if run is None:
            return None
        window = self.poll_interval * self.max_attempts
        if run.state is RunState.POLLING and run.handle is not None and self._clock() - run.started_at < window:
            return run
        del self._polling[key]
        return None

    def _release_job(self, job_id: str) -> None:
        for key, run in list(self._polling.items()):
            if run.handle is None or run.handle.job_id == job_id:
                del self._polling[key]

    async def _begin(self, request: GenerationRequest) -> GenerationRun:
        run = GenerationRun(request=request)
        try:
            await self._prepare(run)
        except PlanError as e:
            run._fail(e)
        if run.state is RunState.POLLING:
            self._polling[request.key] = run
        return run

    async def follow(self, run: GenerationRun) -> GenerationRun:
        """Poll and resolve a run returned by begin()."""
        if run.state is not RunState.POLLING:
            return run
        job_id = run.handle.job_id if run.handle else None
        try:
            await self._follow(run)
        except PlanError as e:
            run._fail(e)
        finally:
            if job_id:
                self._release_job(job_id)
        return run

    # -------------------------
    # steps
    # -------------------------

    async def _prepare(self, run: GenerationRun) -> None:
        request = run.request
        run.started_at = self._clock()
        run.state = RunState.CHECKING
        run.message = loading_message(0)

        # rejected domains never reach the store or the gateway
        validate_domain(request.domain)

        if not request.force_regenerate:
            stored = await self._lookup(request.normalized_domain, request.language)
            if stored is not None:
                logger.info("Stored plan found for %s/%s", request.normalized_domain, request.language)
                run._complete(stored, "db")
                return

        run.state = RunState.SUBMITTING
        run.progress = 5.0
        run.message = loading_message(1)

        prompt = build_plan_prompt(request.normalized_domain, request.language, request.industry)
        handle = await self.gateway.create_job(prompt, self._job_metadata(request))

        if run.cancelled:
            return

        run.handle = handle
        run.state = RunState.POLLING

    async def _lookup(self, domain: str, language: str) -> Optional[MarketingPlan]:
        try:
            return await self.store.lookup(domain, language)
        except PersistenceError as e:
            # a broken store must not block generation
            logger.warning("Plan lookup failed for %s/%s, generating instead: %s", domain, language, e)
            return None

    def _job_metadata(self, request: GenerationRequest) -> Dict[str, Any]:
        return {
            "client": self.client_name,
            "industry": request.industry,
            "domain": request.normalized_domain,
            "language": request.language,
            "email": request.email,
        }

    async def _follow(self, run: GenerationRun) -> None:
        status = await self.poll_job(run)
        if status is None:
            return
        await self._resolve(run, status)

    async def poll_job(self, run: GenerationRun, max_attempts: Optional[int] = None) -> Optional[JobStatus]:
        """
        Poll run.handle every `poll_interval` seconds. Returns the completed
        status, None when the run was cancelled, raises on error/timeout.
        """
        budget = max_attempts or self.max_attempts
        if run.handle is None:
            return None

        def on_attempt(attempt: int) -> None:
            run.attempts = attempt
            run.elapsed_seconds = self._clock() - run.started_at
            run.progress = progress_estimate(attempt, budget)
            run.message = loading_message(attempt)

        return await poll_job_status(
            self.gateway,
            run.handle.job_id,
            interval=self.poll_interval,
            max_attempts=budget,
            sleep=self._sleep,
            on_attempt=on_attempt,
            cancelled=lambda: run.cancelled or run.handle is None,
        )

    async def _resolve(self, run: GenerationRun, status: JobStatus) -> None:
        request = run.request
        run.state = RunState.RESOLVING
        run.progress = max(run.progress, 95.0)

        result = validate_plan_data(status.result, request.normalized_domain)
        if not result.is_valid or result.data is None:
            raise InvalidInputError(
                "The generated plan is missing required information",
                reason="incomplete_plan",
                errors=[e.model_dump() for e in result.errors],
                debug=describe_payload(status.result),
            )

        try:
            await self.store.upsert(
                request.normalized_domain,
                request.email or self.default_email,
                result.data,
                request.language,
            )
        except PersistenceError as e:
            # the plan is still shown; the caller sees persist_error
            logger.error("Plan for %s/%s generated but not saved: %s", request.normalized_domain, request.language, e)
            run.persist_error = e

        run.elapsed_seconds = self._clock() - run.started_at
        run._complete(result.data, "ai")

    # -------------------------
    # single status check (poll endpoints, gateway callback)
    # -------------------------

    async def resolve_job(
        self,
        job_id: str,
        domain: Optional[str] = None,
        language: Optional[str] = None,
        email: Optional[str] = None,
    ) -> PollOutcome:
        try:
            status = await self.gateway.get_status(job_id)
        except UpstreamError as e:
            if e.status_code == 404:
                self._release_job(job_id)
            raise

        if status.state == "pending":
            return PollOutcome(status="pending", message="Generating your marketing plan...")
        self._release_job(job_id)
        if status.state == "error":
            return PollOutcome(
                status="error",
                error=status.error or "Plan generation failed",
                debug=describe_payload(status.result),
            )
        return await self.resolve_payload(status.result, status.metadata, domain, language, email)

    async def resolve_payload(
        self,
        result: Any,
        metadata: Optional[Dict[str, Any]] = None,
        domain: Optional[str] = None,
        language: Optional[str] = None,
        email: Optional[str] = None,
    ) -> PollOutcome:
        metadata = metadata or {}
        hint = metadata.get("domain") or domain

        parsed = validate_plan_data(result, hint)
        if not parsed.is_valid or parsed.data is None:
            debug = describe_payload(result)
            debug["errors"] = [e.model_dump() for e in parsed.errors]
            return PollOutcome(status="error", error="Failed to parse AI response", debug=debug)

        plan = parsed.data
        target_domain = normalize_domain(hint or plan.company_summary.website)
        target_language = metadata.get("language") or language or "en"

        if not target_domain or target_domain == "unknown":
            logger.warning("Skipping plan save: no domain for job result")
            return PollOutcome(status="complete", plan=plan, saved=False)

        try:
            await self.store.upsert(
                target_domain,
                metadata.get("email") or email or self.default_email,
                plan,
                target_language,
            )
        except PersistenceError as e:
            logger.error("Plan for %s/%s not saved: %s", target_domain, target_language, e)
            return PollOutcome(status="complete", plan=plan, saved=False)

        return PollOutcome(status="complete", plan=plan, saved=True)
