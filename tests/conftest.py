import os
import sys
from typing import Any, Dict, List, Optional

import pytest

# Ensure the repository root is on sys.path so `import planhub` works without an install
ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

from planhub.core.errors import PersistenceError  # noqa: E402
from planhub.schemas.marketing_plan import JobHandle, JobStatus  # noqa: E402
from planhub.services.plan_store import MemoryPlanStore  # noqa: E402


class FakeGateway:
    """Scripted AI gateway: statuses are returned (or raised) in order."""

    def __init__(
        self,
        statuses: Optional[List[Any]] = None,
        job_id: str = "job_abc123",
        create_error: Optional[Exception] = None,
        events: Optional[List[Dict[str, Any]]] = None,
        stream_error: Optional[Exception] = None,
    ):
        self.statuses = list(statuses or [])
        self.job_id = job_id
        self.create_error = create_error
        self.events = list(events or [])
        self.stream_error = stream_error
        self.create_calls: List[Dict[str, Any]] = []
        self.status_calls: List[str] = []
        self.stream_calls = 0
        self.stream_closed = False

    async def create_job(self, prompt, metadata, agent_alias=None):
        self.create_calls.append({"prompt": prompt, "metadata": metadata, "agent_alias": agent_alias})
        if self.create_error is not None:
            raise self.create_error
        return JobHandle(job_id=self.job_id)

    async def get_status(self, job_id):
        self.status_calls.append(job_id)
        item = self.statuses.pop(0) if self.statuses else pending()
        if isinstance(item, Exception):
            raise item
        return item

    async def stream(self, prompt, metadata, agent_alias=None):
        self.stream_calls += 1
        try:
            for event in self.events:
                yield event
            if self.stream_error is not None:
                raise self.stream_error
        finally:
            self.stream_closed = True


class RecordingStore(MemoryPlanStore):
    def __init__(self, fail_upsert: bool = False, fail_lookup: bool = False):
        super().__init__()
        self.fail_upsert = fail_upsert
        self.fail_lookup = fail_lookup
        self.lookups: List[tuple] = []
        self.upserts: List[tuple] = []

    async def lookup(self, domain, language):
        self.lookups.append((domain, language))
        if self.fail_lookup:
            raise PersistenceError("lookup down")
        return await super().lookup(domain, language)

    async def upsert(self, domain, email, plan, language):
        self.upserts.append((domain, email, language))
        if self.fail_upsert:
            raise PersistenceError("save down")
        await super().upsert(domain, email, plan, language)


def pending() -> JobStatus:
    return JobStatus(state="pending", raw_status="running")


def complete(result: Any, metadata: Optional[Dict[str, Any]] = None) -> JobStatus:
    return JobStatus(state="complete", raw_status="completed", result=result, metadata=metadata or {})


def failed(message: str = "agent crashed") -> JobStatus:
    return JobStatus(state="error", raw_status="failed", error=message)


def plan_content() -> Dict[str, Any]:
    return {
        "company_summary": {
            "name": "Acme",
            "website": "acme.io",
            "activities": "Outdoor equipment retail",
            "target": "Hikers and climbers",
            "nb_employees": "50-200",
        },
        "programs_list": [
            {
                "program_name": "Welcome journey",
                "target": "New subscribers",
                "objective": "First purchase",
                "kpi": "Conversion rate",
                "description": "Three-step onboarding",
                "scenarios": [
                    {
                        "scenario_target": "Newsletter signups",
                        "scenario_objective": "Convert",
                        "main_messages_ideas": "Brand story, bestsellers",
                        "message_sequence": {
                            "Welcome": {"description": "Day 0"},
                            "Bestsellers": {"description": "Day 2"},
                        },
                    }
                ],
            },
            {"program_name": "Winback", "target": "Lapsed buyers", "objective": "Reactivate"},
        ],
        "introduction": "Plan for Acme",
        "how_brevo_helps_you": [
            {"scenario_name": "Welcome", "why_brevo_is_better": "Native SMS", "setup_efficiency": "1 day"}
        ],
    }


@pytest.fixture
def plan_payload() -> Dict[str, Any]:
    return {"content": plan_content()}


@pytest.fixture
def store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture
def no_sleep():
    calls: List[float] = []

    async def sleep(seconds):
        calls.append(seconds)

    sleep.calls = calls
    return sleep
