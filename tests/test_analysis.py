import pytest

from conftest import FakeGateway, complete, failed, pending
from planhub.core.errors import GenerationTimeoutError, UpstreamError
from planhub.schemas.analysis import AnalysisIn
from planhub.services.analysis_service import (
    analysis_text,
    build_kpi_prompt,
    check_analysis,
    run_analysis,
    stream_analysis,
)


def _body(**kwargs):
    data = {"userValues": {"cac": "35", "roas": ""}, "priceTier": "Mid-Range", "industry": "Fashion"}
    data.update(kwargs)
    return AnalysisIn.model_validate(data)


async def _collect(gateway):
    return [e async for e in stream_analysis(gateway, "prompt", {"client": "test"})]


# =========================
# prompt
# =========================

def test_kpi_prompt_includes_only_filled_values():
    prompt = build_kpi_prompt(_body())

    assert "Customer Acquisition Cost (CAC): User Value = 35€" in prompt
    assert "(Market: Low 30, Median 45, High 70)" in prompt
    assert "Blended ROAS" not in prompt
    assert "Retail Strategy" in prompt


def test_kpi_prompt_b2b_and_language():
    prompt = build_kpi_prompt(_body(industry="SaaS", language="fr"))

    assert "Marketing B2B" in prompt
    assert "Votre client" in prompt


def test_analysis_text():
    assert analysis_text("# Report") == "# Report"
    assert analysis_text({"markdown": "# Report"}) == "# Report"
    assert analysis_text(None) is None
    assert analysis_text({"other": 1}) == '{"other": 1}'


# =========================
# create / poll
# =========================

@pytest.mark.asyncio
async def test_check_analysis_states():
    gateway = FakeGateway([pending(), failed("quota"), complete({"content": "# Report"}), complete(None)])

    assert (await check_analysis(gateway, "job_1")).status == "pending"

    errored = await check_analysis(gateway, "job_1")
    assert errored.status == "error"
    assert errored.error == "quota"

    done = await check_analysis(gateway, "job_1")
    assert done.status == "complete"
    assert done.content == "# Report"

    empty = await check_analysis(gateway, "job_1")
    assert empty.status == "error"
    assert empty.error == "Empty analysis result"


@pytest.mark.asyncio
async def test_run_analysis_polls_until_complete(no_sleep):
    gateway = FakeGateway([pending(), pending(), complete("# Report")])

    report = await run_analysis(gateway, _body(), poll_interval=2, sleep=no_sleep)

    assert report == "# Report"
    assert no_sleep.calls == [2, 2, 2]
    assert gateway.create_calls[0]["agent_alias"] == "kpi-analysis"
    assert gateway.create_calls[0]["metadata"]["client"] == "kpi-analysis-web"


@pytest.mark.asyncio
async def test_run_analysis_has_its_own_budget(no_sleep):
    gateway = FakeGateway([])
    with pytest.raises(GenerationTimeoutError):
        await run_analysis(gateway, _body(), poll_interval=1, sleep=no_sleep)
    assert len(gateway.status_calls) == 60


# =========================
# stream
# =========================

@pytest.mark.asyncio
async def test_stream_relays_text_and_sends_full_report():
    gateway = FakeGateway(events=[
        {"type": "log", "message": "Reading benchmarks"},
        {"type": "text", "content": "Hello "},
        {"type": "token", "text": "world"},
        {"type": "done"},
        {"type": "text", "content": "never sent"},
    ])

    events = await _collect(gateway)

    assert events == [
        {"type": "log", "message": "Reading benchmarks"},
        {"type": "text", "content": "Hello "},
        {"type": "text", "content": "world"},
        {"type": "done", "content": "Hello world"},
        {"type": "end"},
    ]
    assert gateway.stream_closed


@pytest.mark.asyncio
async def test_stream_stops_on_error_event():
    gateway = FakeGateway(events=[
        {"type": "text", "content": "a"},
        {"type": "error", "message": "bad"},
        {"type": "text", "content": "ignored"},
    ])

    events = await _collect(gateway)

    assert events == [{"type": "text", "content": "a"}, {"type": "error", "message": "bad"}, {"type": "end"}]
    assert gateway.stream_closed


@pytest.mark.asyncio
async def test_stream_without_terminal_event_sends_buffered_text():
    events = await _collect(FakeGateway(events=[{"type": "chunk", "content": "partial"}]))

    assert events[-2:] == [{"type": "done", "content": "partial"}, {"type": "end"}]


@pytest.mark.asyncio
async def test_stream_transport_error_becomes_error_event():
    gateway = FakeGateway(
        events=[{"type": "text", "content": "a"}],
        stream_error=UpstreamError("AI stream timeout", status_code=504),
    )

    events = await _collect(gateway)

    assert events == [
        {"type": "text", "content": "a"},
        {"type": "error", "message": "AI stream timeout"},
        {"type": "end"},
    ]


@pytest.mark.asyncio
async def test_empty_stream_only_ends():
    assert await _collect(FakeGateway(events=[])) == [{"type": "end"}]
