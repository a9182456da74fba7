from unittest.mock import Mock

import pytest
import requests

from planhub.core.errors import LeadRejectedError
from planhub.services.email_gate import (
    EmailGate,
    GateState,
    GateTrigger,
    JsonFileKeyValueStore,
    MemoryKeyValueStore,
)
from planhub.services.lead_service import LeadCollectorClient, build_lead_payload


def _collector(result=True):
    collector = Mock(spec=LeadCollectorClient)
    if isinstance(result, Exception):
        collector.submit.side_effect = result
    else:
        collector.submit.return_value = result
    return collector


def _trigger(**kwargs):
    return GateTrigger(on_success=Mock(), on_cancel=Mock(), **kwargs)


def test_starts_locked_and_opens_prompt():
    gate = EmailGate(MemoryKeyValueStore(), _collector())
    assert gate.state is GateState.LOCKED

    trigger = _trigger(reason="download")
    gate.require_unlock(trigger)

    assert gate.state is GateState.PROMPT_OPEN
    trigger.on_success.assert_not_called()


def test_valid_submission_unlocks_and_runs_pending_action():
    store = MemoryKeyValueStore()
    collector = _collector(True)
    gate = EmailGate(store, collector)
    trigger = _trigger(reason="generate_plan", source_page="/plan", context_tags=["fashion"])
    gate.require_unlock(trigger)

    result = gate.submit_email("Jane@Acme.io", language="fr", user_agent="pytest", referrer="https://ref")

    assert result.ok
    assert result.notified is True
    assert result.lead.email == "jane@acme.io"
    assert result.lead.trigger_reason == "generate_plan"
    assert gate.state is GateState.UNLOCKED
    trigger.on_success.assert_called_once()

    payload = collector.submit.call_args.args[0]
    assert payload["email"] == "jane@acme.io"
    assert payload["language"] == "fr"
    assert payload["sourcePage"] == "/plan"
    assert payload["contextTags"] == ["fashion"]
    assert gate.queued_leads() == []


def test_unlocked_gate_runs_action_immediately():
    store = MemoryKeyValueStore()
    EmailGate(store, _collector()).submit_email("jane@acme.io")

    gate = EmailGate(store, _collector())
    assert gate.state is GateState.UNLOCKED

    trigger = _trigger()
    gate.require_unlock(trigger)
    trigger.on_success.assert_called_once()


@pytest.mark.parametrize("email, error", [("not-an-email", "invalid"), ("jane@gmail.com", "free")])
def test_rejected_email_keeps_prompt_open(email, error):
    collector = _collector()
    gate = EmailGate(MemoryKeyValueStore(), collector)
    trigger = _trigger()
    gate.require_unlock(trigger)

    result = gate.submit_email(email)

    assert not result.ok
    assert result.error == error
    assert gate.state is GateState.PROMPT_OPEN
    trigger.on_success.assert_not_called()
    collector.submit.assert_not_called()


def test_free_email_accepted_when_blocking_disabled():
    gate = EmailGate(MemoryKeyValueStore(), _collector(), block_free_emails=False)
    assert gate.submit_email("jane@gmail.com").ok


def test_collector_rejection_surfaces():
    gate = EmailGate(MemoryKeyValueStore(), _collector(LeadRejectedError("bad lead")))
    gate.require_unlock(_trigger())

    result = gate.submit_email("jane@acme.io")

    assert not result.ok
    assert result.error == "rejected"
    assert gate.state is GateState.PROMPT_OPEN


def test_collector_outage_is_fail_open_and_queued():
    gate = EmailGate(MemoryKeyValueStore(), _collector(False))
    trigger = _trigger()
    gate.require_unlock(trigger)

    result = gate.submit_email("jane@acme.io")

    assert result.ok
    assert result.notified is False
    trigger.on_success.assert_called_once()
    assert [q["email"] for q in gate.queued_leads()] == ["jane@acme.io"]


def test_queue_dedupes_and_keeps_most_recent():
    store = MemoryKeyValueStore()
    collector = _collector(False)

    for i in range(4):
        gate = EmailGate(MemoryKeyValueStore(), collector, queue_store=store, queue_limit=3)
        gate.submit_email(f"user{i}@acme.io")
    gate = EmailGate(MemoryKeyValueStore(), collector, queue_store=store, queue_limit=3)
    gate.submit_email("user3@acme.io")

    assert [q["email"] for q in gate.queued_leads()] == ["user1@acme.io", "user2@acme.io", "user3@acme.io"]


def test_retry_failed_delivers_and_keeps_failures():
    store = MemoryKeyValueStore()
    collector = _collector(False)
    gate = EmailGate(MemoryKeyValueStore(), collector, queue_store=store)
    gate.submit_email("a@acme.io")
    EmailGate(MemoryKeyValueStore(), collector, queue_store=store).submit_email("b@acme.io")

    collector.submit.side_effect = lambda payload: payload["email"] == "a@acme.io"
    assert gate.retry_failed() == 1
    assert [q["email"] for q in gate.queued_leads()] == ["b@acme.io"]

    collector.submit.side_effect = None
    collector.submit.return_value = True
    assert gate.retry_failed() == 1
    assert gate.queued_leads() == []


def test_cancel_only_in_passive_mode():
    blocking = EmailGate(MemoryKeyValueStore(), _collector(), mode="blocking")
    trigger = _trigger()
    blocking.require_unlock(trigger)
    assert blocking.cancel() is False
    assert blocking.state is GateState.PROMPT_OPEN

    passive = EmailGate(MemoryKeyValueStore(), _collector(), mode="passive")
    trigger = _trigger()
    passive.require_unlock(trigger)
    assert passive.cancel() is True
    assert passive.state is GateState.LOCKED
    trigger.on_cancel.assert_called_once()
    trigger.on_success.assert_not_called()


def test_reset_locks_again():
    gate = EmailGate(MemoryKeyValueStore(), _collector())
    gate.submit_email("jane@acme.io")
    gate.reset()
    assert gate.state is GateState.LOCKED
    assert gate.lead is None


def test_unlock_survives_restart_with_file_store(tmp_path):
    path = tmp_path / "state" / "leads.json"
    EmailGate(JsonFileKeyValueStore(path), _collector()).submit_email("jane@acme.io")

    gate = EmailGate(JsonFileKeyValueStore(path), _collector())
    assert gate.state is GateState.UNLOCKED
    assert gate.lead.email == "jane@acme.io"


# =========================
# LeadCollectorClient
# =========================

def _response(status_code):
    resp = Mock()
    resp.status_code = status_code
    resp.text = "body"
    return resp


def _client(**session_kwargs):
    session = Mock(spec=requests.Session)
    for k, v in session_kwargs.items():
        setattr(session.post, k, v)
    return LeadCollectorClient("https://hub.test/capture", api_key="k", session=session), session


def test_collector_success_sends_api_key():
    client, session = _client(return_value=_response(200))
    assert client.submit({"email": "a@acme.io"}) is True
    assert session.post.call_args.kwargs["headers"]["X-API-Key"] == "k"
    assert session.post.call_args.kwargs["timeout"] == 5


@pytest.mark.parametrize(
    "kwargs",
    [
        {"return_value": _response(503)},
        {"side_effect": requests.Timeout("slow")},
        {"side_effect": requests.ConnectionError("down")},
    ],
)
def test_collector_failures_are_fail_open(kwargs):
    client, _ = _client(**kwargs)
    assert client.submit({"email": "a@acme.io"}) is False


def test_collector_4xx_raises():
    client, _ = _client(return_value=_response(422))
    with pytest.raises(LeadRejectedError):
        client.submit({"email": "a@acme.io"})


def test_unconfigured_collector_returns_false():
    assert LeadCollectorClient("").submit({"email": "a@acme.io"}) is False


def test_build_lead_payload_shape():
    gate = EmailGate(MemoryKeyValueStore(), _collector())
    record = gate.submit_email("jane@acme.io").lead
    payload = build_lead_payload(record, language="de", user_agent="ua", referrer="ref")
    assert set(payload) == {
        "email", "timestamp", "language", "sourcePage", "triggerReason", "contextTags", "userAgent", "referrer",
    }
