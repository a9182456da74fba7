import json
from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from conftest import FakeGateway, RecordingStore, complete, pending, plan_content
from planhub.core.errors import UpstreamError
from planhub.deps import (
    get_agent_gateway,
    get_lead_collector,
    get_lead_queue_store,
    get_optional_supabase,
    get_orchestrator,
    get_plan_store,
    get_rate_limiter,
)
from planhub.main import app
from planhub.routers import external_api, webhook
from planhub.services.email_gate import MemoryKeyValueStore
from planhub.services.lead_service import LeadCollectorClient
from planhub.services.orchestrator import GenerationOrchestrator
from planhub.services.plan_parser import parse_plan_data
from planhub.services.rate_limit import FixedWindowRateLimiter
from planhub.services.webhooks import sign_payload


async def _no_sleep(_seconds):
    return None


class Harness:
    def __init__(self):
        self.gateway = FakeGateway([])
        self.store = RecordingStore()
        self.limiter = FixedWindowRateLimiter(limit=100)
        self.collector = Mock(spec=LeadCollectorClient)
        self.collector.submit.return_value = True
        self.queue = MemoryKeyValueStore()
        self.orchestrator = GenerationOrchestrator(self.gateway, self.store, poll_interval=0, sleep=_no_sleep)


@pytest.fixture
def harness():
    h = Harness()
    app.dependency_overrides = {
        get_orchestrator: lambda: h.orchestrator,
        get_plan_store: lambda: h.store,
        get_agent_gateway: lambda: h.gateway,
        get_rate_limiter: lambda: h.limiter,
        get_lead_collector: lambda: h.collector,
        get_lead_queue_store: lambda: h.queue,
        get_optional_supabase: lambda: None,
    }
    yield h
    app.dependency_overrides = {}


@pytest.fixture
def client(harness):
    return TestClient(app)


@pytest.fixture
def api_key(monkeypatch):
    monkeypatch.setattr(
        external_api, "settings", external_api.settings.model_copy(update={"EXTERNAL_API_KEYS": ["test-key"]})
    )
    return "test-key"


def _stored_plan(store):
    plan = parse_plan_data({"content": plan_content()}, "acme.io")
    store.rows[("acme.io", "en")] = {"email": "x@acme.io", "plan": plan}
    return plan


def test_root_and_health(client):
    assert client.get("/").json() == {"message": "backend up"}

    health = client.get("/api/health")
    assert health.status_code == 200
    body = health.json()
    assert body["status"] in ("healthy", "degraded")
    assert set(body["checks"]) == {"aiGateway", "supabase", "leadHub"}


# =========================
# /api/marketing-plan
# =========================

def test_create_requires_domain(client):
    resp = client.post("/api/marketing-plan", json={})
    assert resp.status_code == 400
    assert resp.json()["detail"] == {"error": "Domain is required", "field": "domain"}


def test_placeholder_domain_rejected_without_calls(client, harness):
    resp = client.post("/api/marketing-plan", json={"domain": "https://www.example.com"})

    assert resp.status_code == 400
    assert resp.json()["detail"]["reason"] == "placeholder"
    assert harness.gateway.create_calls == []
    assert harness.store.lookups == []


def test_create_starts_job(client, harness):
    resp = client.post("/api/marketing-plan", json={"domain": "Acme.io", "language": "fr"})

    assert resp.status_code == 200
    assert resp.json() == {"status": "created", "source": "ai", "plan": None, "job_id": "job_abc123"}
    assert resp.headers["X-RateLimit-Limit"] == "100"
    assert harness.gateway.create_calls[0]["metadata"]["language"] == "fr"


def test_create_returns_stored_plan(client, harness):
    _stored_plan(harness.store)

    body = client.post("/api/marketing-plan", json={"domain": "www.acme.io"}).json()

    assert body["status"] == "complete"
    assert body["source"] == "db"
    assert body["plan"]["company_summary"]["name"] == "Acme"
    assert harness.gateway.create_calls == []


def test_create_maps_gateway_failure(client, harness):
    harness.gateway.create_error = UpstreamError("AI service error: 500", status_code=502)
    resp = client.post("/api/marketing-plan", json={"domain": "acme.io"})
    assert resp.status_code == 502


def test_rate_limit(client, harness):
    harness.limiter = FixedWindowRateLimiter(limit=2)

    codes = [client.post("/api/marketing-plan", json={"domain": "acme.io"}).status_code for _ in range(3)]

    assert codes == [200, 200, 429]
    last = client.post("/api/marketing-plan", json={"domain": "acme.io"})
    assert last.headers["X-RateLimit-Remaining"] == "0"
    assert "Retry-After" in last.headers


def test_poll_pending_then_complete(client, harness):
    harness.gateway.statuses = [pending(), complete({"content": plan_content()}, {"domain": "acme.io", "language": "en"})]

    first = client.get("/api/marketing-plan/job_abc123").json()
    assert first["status"] == "pending"

    second = client.get("/api/marketing-plan/job_abc123").json()
    assert second["status"] == "complete"
    assert second["saved"] is True
    assert second["plan"]["programs_list"][0]["program_name"] == "Welcome journey"
    assert harness.store.upserts[0][0] == "acme.io"


def test_poll_malformed_status_is_bad_gateway(client, harness):
    harness.gateway.statuses = [UpstreamError("Malformed status response", status_code=502)]

    resp = client.get("/api/marketing-plan/job_abc123")

    assert resp.status_code == 502
    assert harness.store.upserts == []


def test_poll_rejects_bad_job_id(client):
    assert client.get("/api/marketing-plan/not-a-job").status_code == 400


def test_lookup(client, harness):
    assert client.get("/api/marketing-plan/lookup", params={"domain": "acme.io"}).json() == {"found": False, "plan": None}

    _stored_plan(harness.store)
    body = client.get("/api/marketing-plan/lookup", params={"domain": "https://acme.io/"}).json()
    assert body["found"] is True

    assert client.get("/api/marketing-plan/lookup", params={"domain": "test.com"}).json()["found"] is False


# =========================
# /v1/marketing-plan
# =========================

def test_external_requires_api_key(client, api_key):
    resp = client.post("/v1/marketing-plan", json={"domain": "acme.io"})
    assert resp.status_code == 401

    resp = client.post("/v1/marketing-plan", json={"domain": "acme.io"}, headers={"x-api-key": "wrong"})
    assert resp.status_code == 401


def test_external_rejects_invalid_domain(client, api_key):
    resp = client.post("/v1/marketing-plan", json={"domain": "localhost"}, headers={"x-api-key": api_key})
    assert resp.status_code == 400
    assert resp.json()["detail"]["field"] == "domain"


def test_external_create_and_poll(client, harness, api_key):
    resp = client.post("/v1/marketing-plan", json={"domain": "acme.io", "language": "de"}, headers={"x-api-key": api_key})

    body = resp.json()
    assert body["status"] == "processing"
    assert body["poll_url"] == "/v1/marketing-plan/job_abc123"
    assert body["plan_url"].endswith("/acme.io?lang=de")

    harness.gateway.statuses = [complete({"content": plan_content()})]
    polled = client.get(
        "/v1/marketing-plan/job_abc123",
        params={"domain": "acme.io", "language": "de"},
        headers={"x-api-key": api_key},
    ).json()
    assert polled["status"] == "complete"
    assert harness.store.upserts[0][2] == "de"


def test_external_webhook_callback(client, harness, api_key, monkeypatch):
    delivered = []
    monkeypatch.setattr(external_api, "deliver_webhook", lambda url, event, secret=None: delivered.append((url, event, secret)))
    harness.gateway.statuses = [pending(), complete({"content": plan_content()})]

    resp = client.post(
        "/v1/marketing-plan",
        json={"domain": "acme.io", "webhook_url": "https://hooks.test/plan", "webhook_secret": "s3cret"},
        headers={"x-api-key": api_key},
    )

    assert resp.status_code == 200
    assert len(delivered) == 1
    url, event, secret = delivered[0]
    assert url == "https://hooks.test/plan"
    assert event["event"] == "plan.completed"
    assert event["domain"] == "acme.io"
    assert secret == "s3cret"


def test_external_describe(client):
    body = client.get("/v1/marketing-plan").json()
    assert body["status"] == "ok"
    assert "create_plan" in body["endpoints"]


# =========================
# /api/v1/webhook
# =========================

def _callback(status="completed", domain="acme.io"):
    metadata = {"language": "es"}
    if domain:
        metadata["domain"] = domain
    return {"jobId": "job_abc123", "status": status, "result": {"content": plan_content()}, "metadata": metadata}


def test_gateway_callback_saves_plan(client, harness):
    body = client.post("/api/v1/webhook", json=_callback()).json()

    assert body["processed"] is True
    assert body["language"] == "es"
    assert harness.store.upserts == [("acme.io", "ai-generated@brevo.com", "es")]


def test_gateway_callback_ignores_unfinished(client, harness):
    body = client.post("/api/v1/webhook", json=_callback(status="running")).json()
    assert body["processed"] is False
    assert harness.store.upserts == []


def test_gateway_callback_requires_domain(client):
    assert client.post("/api/v1/webhook", json=_callback(domain=None)).status_code == 400


def test_gateway_callback_signature(client, monkeypatch):
    monkeypatch.setattr(webhook, "settings", webhook.settings.model_copy(update={"WEBHOOK_SECRET": "s3cret"}))
    raw = json.dumps(_callback()).encode("utf-8")

    unsigned = client.post("/api/v1/webhook", content=raw, headers={"content-type": "application/json"})
    assert unsigned.status_code == 401

    signed = client.post(
        "/api/v1/webhook",
        content=raw,
        headers={"content-type": "application/json", "x-webhook-signature": sign_payload(raw, "s3cret")},
    )
    assert signed.status_code == 200


# =========================
# /api/lead
# =========================

def test_lead_forwarded(client, harness):
    resp = client.post("/api/lead", json={"email": "Jane@Acme.io", "sourcePage": "/plan", "triggerReason": "download"})

    assert resp.json() == {"success": True, "forwarded": True}
    payload = harness.collector.submit.call_args.args[0]
    assert payload["email"] == "jane@acme.io"
    assert payload["triggerReason"] == "download"


def test_lead_free_email_rejected(client, harness):
    resp = client.post("/api/lead", json={"email": "jane@gmail.com"})

    assert resp.status_code == 400
    assert resp.json()["detail"]["reason"] == "free"
    harness.collector.submit.assert_not_called()


def test_lead_malformed_email_rejected_as_invalid(client, harness):
    resp = client.post("/api/lead", json={"email": "not-an-email"})

    assert resp.status_code == 400
    assert resp.json()["detail"]["reason"] == "invalid"
    harness.collector.submit.assert_not_called()


def test_lead_hub_outage_queues(client, harness):
    harness.collector.submit.return_value = False

    resp = client.post("/api/lead", json={"email": "jane@acme.io"})

    assert resp.json() == {"success": True, "forwarded": False}
    assert [q["email"] for q in harness.queue.get("lead_captured_queue")] == ["jane@acme.io"]


# =========================
# /api/vendors
# =========================

def test_vendor_search(client):
    resp = client.post(
        "/api/vendors/search",
        json={"profile": {"company_size": "SMB", "primary_goal": "Retention"}, "sort": "name"},
    )

    body = resp.json()
    assert resp.status_code == 200
    assert body["vendors"]
    names = [v["vendor"]["name"] for v in body["vendors"]]
    assert names == sorted(names, key=str.casefold)
    assert body["filter_summary"][0] == "Size: SMB"


def test_vendor_search_relaxes(client):
    body = client.post("/api/vendors/search", json={"search": "no-such-vendor-zzz"}).json()
    assert body["relaxed"] is True
    assert body["relaxed_criteria"] == ["search"]


def test_vendor_detail(client):
    assert client.get("/api/vendors/brevo").json()["name"] == "Brevo"
    assert client.get("/api/vendors/nope").status_code == 404


# =========================
# /api/analyze
# =========================

ANALYSIS_BODY = {"userValues": {"cac": "35"}, "priceTier": "Budget", "industry": "Fashion"}


def test_analyze_create_and_poll(client, harness):
    created = client.post("/api/analyze", json=ANALYSIS_BODY).json()
    assert created == {"status": "created", "job_id": "job_abc123"}

    harness.gateway.statuses = [complete({"content": "# Report"})]
    polled = client.get("/api/analyze/job_abc123").json()
    assert polled == {"status": "complete", "job_id": "job_abc123", "content": "# Report"}


def test_analyze_stream(client, harness):
    harness.gateway.events = [{"type": "text", "content": "# Rep"}, {"type": "text", "content": "ort"}]

    resp = client.post("/api/analyze/stream", json=ANALYSIS_BODY)

    assert resp.headers["content-type"].startswith("application/x-ndjson")
    events = [json.loads(line) for line in resp.text.splitlines() if line]
    assert events[-2] == {"type": "done", "content": "# Report"}
    assert events[-1] == {"type": "end"}
