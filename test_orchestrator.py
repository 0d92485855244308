import os
import sys

import pytest

# Add the backend to the path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "newscast_backend"))

from conftest import FakePresenters, FakeRenderService, FakeScriptWriter, FakeSearch, FakeVoice, failed, processing, ready, words
from newscast.errors import (
    ConcurrencyLimitError,
    ExternalServiceError,
    NotFoundError,
    PreflightError,
    SessionStateError,
    TimeoutExhaustedError,
    ValidationError,
)
from newscast.models import Decision, SessionState


@pytest.mark.asyncio
async def test_no_results_parks_refusal_for_approval(make_orchestrator):
    orch = make_orchestrator(search=FakeSearch(snippets=[]))
    sid = await orch.start_pipeline("owner", 2, "Obscure FC")
    session = orch.sessions.get(sid)
    assert session.state == SessionState.AWAITING_APPROVAL
    assert session.script.text == "Sorry, we have no news about Obscure FC right now. Stay tuned."
    assert session.script.word_count == 0
    assert orch.fakes["writer"].calls == []
    assert "APPROVAL REQUIRED" in orch.notifier.last("owner")


@pytest.mark.asyncio
async def test_approve_runs_audio_video_caption(make_orchestrator, sleep):
    render = FakeRenderService(statuses=[processing(), processing(), processing(), ready()])
    orch = make_orchestrator(writer=FakeScriptWriter(texts=[words(50)]), render=render)
    sid = await orch.start_pipeline("owner", 3, "Real Madrid")

    ack = await orch.decide(sid, "approve")
    assert ack.state == SessionState.APPROVED
    result = await orch.production_task(sid)

    assert result.session_id == sid
    assert result.audio_size_bytes == 150 * 1024
    assert result.audio_duration_s == 20
    assert result.generation_id == "job-123"
    assert result.audio_asset_id.startswith("audio-asset")
    assert result.image_asset_id.startswith("image-asset")
    assert result.video.size_bytes > 0
    assert result.caption.text == "Huge news! #Football"
    assert render.status_calls == 4
    assert sleep.elapsed == 30 + 300 + 3 * 30
    assert orch.sessions.get(sid) is None
    assert orch.production_task(sid) is None
    assert "VIDEO COMPLETED" in orch.notifier.last("owner")


@pytest.mark.asyncio
async def test_reject_regenerates_under_same_id(make_orchestrator):
    writer = FakeScriptWriter(texts=[words(78), words(76, last="again!")])
    orch = make_orchestrator(writer=writer)
    sid = await orch.start_pipeline("owner", 1, "City")
    first = orch.sessions.get(sid).script.text

    ack = await orch.decide(sid, Decision.REJECT)

    session = orch.sessions.get(sid)
    assert ack.state == SessionState.AWAITING_APPROVAL
    assert session.state == SessionState.AWAITING_APPROVAL
    assert session.script.text != first
    assert session.script.word_count == 76
    assert len(writer.calls) == 2
    assert orch.get_stats().total == 1


@pytest.mark.asyncio
async def test_regenerate_decision(make_orchestrator):
    writer = FakeScriptWriter(texts=[words(78), words(79)])
    orch = make_orchestrator(writer=writer)
    sid = await orch.start_pipeline("owner", 1, "City")
    await orch.decide(sid, "regenerate")
    assert orch.sessions.get(sid).script.word_count == 79


@pytest.mark.asyncio
async def test_cancel_twice(make_orchestrator):
    orch = make_orchestrator()
    sid = await orch.start_pipeline("owner", 1, "City")
    ack = await orch.decide(sid, "cancel")
    assert ack.state == SessionState.CANCELLED
    assert "no generation cost" in orch.notifier.last("owner")
    with pytest.raises(NotFoundError):
        await orch.decide(sid, "cancel")


@pytest.mark.asyncio
async def test_cap_rejects_without_creating_session(make_orchestrator):
    orch = make_orchestrator(max_active_sessions=1)
    await orch.start_pipeline("owner", 1, "City")
    with pytest.raises(ConcurrencyLimitError) as exc:
        await orch.start_pipeline("owner", 2, "United")
    assert "Concurrent session limit reached (1/1)" in exc.value.errors
    assert orch.get_stats().total == 1


@pytest.mark.asyncio
async def test_preflight_reports_every_failure(make_orchestrator):
    orch = make_orchestrator(voice=FakeVoice(healthy=False), presenters=FakePresenters(available=(1,)))
    with pytest.raises(PreflightError) as exc:
        await orch.start_pipeline("owner", 4, "City")
    assert not isinstance(exc.value, ConcurrencyLimitError)
    assert len(exc.value.errors) == 2
    assert "audio" in exc.value.errors[1]
    assert orch.get_stats().total == 0


@pytest.mark.parametrize("presenter_id,keyword", [(0, "City"), (10, "City"), (1, ""), (1, "bad$word"), (1, "x" * 51)])
@pytest.mark.asyncio
async def test_invalid_requests(make_orchestrator, presenter_id, keyword):
    orch = make_orchestrator()
    with pytest.raises(ValidationError):
        await orch.start_pipeline("owner", presenter_id, keyword)
    assert orch.get_stats().total == 0


@pytest.mark.asyncio
async def test_search_failure_creates_no_session(make_orchestrator):
    orch = make_orchestrator(search=FakeSearch(error=ExternalServiceError("search", "Search failed 503")))
    with pytest.raises(ExternalServiceError):
        await orch.start_pipeline("owner", 1, "City")
    assert orch.get_stats().total == 0
    assert "Stage: search" in orch.notifier.last("owner")


@pytest.mark.asyncio
async def test_unknown_decision(make_orchestrator):
    orch = make_orchestrator()
    sid = await orch.start_pipeline("owner", 1, "City")
    with pytest.raises(ValidationError):
        await orch.decide(sid, "maybe")


@pytest.mark.asyncio
async def test_other_owner_cannot_decide(make_orchestrator):
    orch = make_orchestrator()
    sid = await orch.start_pipeline("owner", 1, "City")
    with pytest.raises(NotFoundError):
        await orch.decide(sid, "cancel", owner_id="someone-else")
    assert orch.sessions.exists(sid)


@pytest.mark.asyncio
async def test_expired_session_cannot_be_decided(make_orchestrator, clock):
    orch = make_orchestrator()
    sid = await orch.start_pipeline("owner", 1, "City")
    clock.advance(1801)
    with pytest.raises(NotFoundError):
        await orch.decide(sid, "approve")


@pytest.mark.asyncio
async def test_approved_session_rejects_further_decisions(make_orchestrator):
    orch = make_orchestrator()
    sid = await orch.start_pipeline("owner", 1, "City")
    await orch.decide(sid, "approve")
    with pytest.raises(SessionStateError):
        await orch.decide(sid, "cancel")
    await orch.production_task(sid)


@pytest.mark.asyncio
async def test_run_production_requires_approval(make_orchestrator):
    orch = make_orchestrator()
    sid = await orch.start_pipeline("owner", 1, "City")
    with pytest.raises(SessionStateError):
        await orch.run_production(sid)


@pytest.mark.asyncio
async def test_render_failure_cleans_up_and_reports_cost(make_orchestrator):
    orch = make_orchestrator(render=FakeRenderService(statuses=[failed("bad frame")]))
    sid = await orch.start_pipeline("owner", 1, "City")
    orch.sessions.set_state(sid, SessionState.APPROVED)

    with pytest.raises(ExternalServiceError):
        await orch.run_production(sid)

    assert orch.sessions.get(sid) is None
    message = orch.notifier.last("owner")
    assert "Stage: video" in message
    assert sid in message
    assert "Generation cost was incurred" in message


@pytest.mark.asyncio
async def test_timeout_reports_job_id(make_orchestrator):
    orch = make_orchestrator(render=FakeRenderService(statuses=[processing()]), max_attempts=2)
    sid = await orch.start_pipeline("owner", 1, "City")
    await orch.decide(sid, "approve")

    assert await orch.production_task(sid) is None
    assert orch.sessions.get(sid) is None
    assert "Job ID for manual recovery: job-123" in orch.notifier.last("owner")


@pytest.mark.asyncio
async def test_timeout_error_propagates_from_run_production(make_orchestrator):
    orch = make_orchestrator(render=FakeRenderService(statuses=[processing()]), max_attempts=1)
    sid = await orch.start_pipeline("owner", 1, "City")
    orch.sessions.set_state(sid, SessionState.APPROVED)
    with pytest.raises(TimeoutExhaustedError):
        await orch.run_production(sid)


@pytest.mark.asyncio
async def test_audio_failure_incurs_no_cost(make_orchestrator):
    orch = make_orchestrator(voice=FakeVoice(error=ExternalServiceError("audio", "quota exceeded")))
    sid = await orch.start_pipeline("owner", 1, "City")
    orch.sessions.set_state(sid, SessionState.APPROVED)
    with pytest.raises(ExternalServiceError):
        await orch.run_production(sid)
    assert "No generation cost was incurred" in orch.notifier.last("owner")
    assert orch.fakes["render"].jobs == []


@pytest.mark.asyncio
async def test_audio_save_failure_after_synthesis_reports_cost(make_orchestrator, monkeypatch):
    orch = make_orchestrator()
    sid = await orch.start_pipeline("owner", 1, "City")
    orch.sessions.set_state(sid, SessionState.APPROVED)

    def disk_full(name, data):
        raise OSError("disk full")

    monkeypatch.setattr(orch.audio_stage.storage, "save_audio", disk_full)
    with pytest.raises(ExternalServiceError) as exc:
        await orch.run_production(sid)
    assert exc.value.stage == "audio_storage"
    assert len(orch.fakes["voice"].calls) == 1
    msg = orch.notifier.last("owner")
    assert "disk full" in msg
    assert "Generation cost was incurred" in msg
    assert orch.sessions.get(sid) is None


@pytest.mark.asyncio
async def test_regeneration_failure_deletes_session(make_orchestrator):
    class FlakyWriter(FakeScriptWriter):
        async def generate(self, topic, snippets):
            if self.calls:
                self.calls.append((topic, snippets))
                raise RuntimeError("model overloaded")
            return await super().generate(topic, snippets)

    orch = make_orchestrator(writer=FlakyWriter())
    sid = await orch.start_pipeline("owner", 1, "City")
    with pytest.raises(ExternalServiceError):
        await orch.decide(sid, "reject")
    assert orch.sessions.get(sid) is None
    assert "No generation cost was incurred" in orch.notifier.last("owner")


@pytest.mark.asyncio
async def test_sessions_are_independent(make_orchestrator):
    orch = make_orchestrator()
    a = await orch.start_pipeline("alice", 1, "City")
    b = await orch.start_pipeline("bob", 2, "United")
    await orch.decide(a, "cancel")
    assert orch.sessions.get(b).state == SessionState.AWAITING_APPROVAL
    assert orch.notifier.messages("alice") != orch.notifier.messages("bob")
