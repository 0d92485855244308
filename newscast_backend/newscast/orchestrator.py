"""
Pipeline orchestrator: the approval-gated state machine.

    start_pipeline -> search -> script -> AwaitingApproval
    decide(approve)              -> audio -> video -> caption -> done
    decide(reject | regenerate)  -> script again, same session id
    decide(cancel)               -> session deleted, nothing spent

The draft (search/script) and production (audio/video/caption) steps are two
small langgraph graphs. Every failure is reported to the owner with the
session id and stage, and the session is always removed afterwards.
"""
import asyncio
import logging
from typing import Dict, Optional

from langgraph.graph import END, StateGraph

from . import messages
from .commands import validate_request
from .errors import (
    ConcurrencyLimitError,
    NotFoundError,
    PipelineError,
    PreflightError,
    SessionStateError,
    TimeoutExhaustedError,
    ValidationError,
)
from .models import (
    Decision,
    DecisionAck,
    DraftState,
    PipelineResult,
    ProductionState,
    Script,
    Session,
    SessionState,
    SessionStats,
)
from .notifier import LogNotifier
from .presenters import PresenterLibrary
from .session_store import SessionStore
from .stages import assess_script

logger = logging.getLogger(__name__)

# Failures in these stages happen before anything billable completed
_FREE_STAGES = {"validation", "preflight", "search", "script", "audio"}


class PipelineOrchestrator:
    def __init__(
        self,
        sessions: SessionStore,
        validator,
        script_stage,
        audio_stage,
        video_stage,
        caption_stage=None,
        notifier=None,
    ):
        self.sessions = sessions
        self.validator = validator
        self.script_stage = script_stage
        self.audio_stage = audio_stage
        self.video_stage = video_stage
        self.caption_stage = caption_stage
        self.notifier = notifier or LogNotifier()
        self._tasks: Dict[str, asyncio.Task] = {}
        self._draft_graph = self._build_draft_graph()
        self._production_graph = self._build_production_graph()

    # --- graphs ---

    def _build_draft_graph(self):
        g = StateGraph(DraftState)
        g.add_node("search", self._node_search)
        g.add_node("write", self._node_write)
        g.add_node("refusal", self._node_refusal)
        g.set_entry_point("search")
        g.add_conditional_edges("search", self._route_after_search, {"write": "write", "refusal": "refusal"})
        g.add_edge("write", END)
        g.add_edge("refusal", END)
        return g.compile()

    def _build_production_graph(self):
        g = StateGraph(ProductionState)
        g.add_node("audio", self._node_audio)
        g.add_node("video", self._node_video)
        g.add_node("caption", self._node_caption)
        g.set_entry_point("audio")
        g.add_edge("audio", "video")
        g.add_edge("video", "caption")
        g.add_edge("caption", END)
        return g.compile()

    async def _node_search(self, state: DraftState) -> dict:
        logger.info(f"[{state.session_id}] Searching context for '{state.keyword}'")
        result = await self.script_stage.search(state.keyword)
        return {"snippets": result.raise_for_error()}

    @staticmethod
    def _route_after_search(state: DraftState) -> str:
        return "write" if state.snippets else "refusal"

    async def _node_write(self, state: DraftState) -> dict:
        logger.info(f"[{state.session_id}] Writing script from {len(state.snippets)} snippets")
        result = await self.script_stage.write(state.keyword, state.snippets)
        return {"script": result.raise_for_error()}

    async def _node_refusal(self, state: DraftState) -> dict:
        logger.info(f"[{state.session_id}] No context for '{state.keyword}', using the no-news script")
        return {"script": self.script_stage.refusal(state.keyword)}

    async def _node_audio(self, state: ProductionState) -> dict:
        await self._notify(state.owner_id, messages.GENERATING_AUDIO)
        result = await self.audio_stage.run(state.script, state.presenter_id, state.keyword)
        clip = result.raise_for_error()
        logger.info(f"[{state.session_id}] Audio generated: {clip.size_kb} KB")
        await self._notify(state.owner_id, messages.audio_ready(clip.size_kb, clip.estimated_duration_s))
        return {"audio": clip}

    async def _node_video(self, state: ProductionState) -> dict:
        await self._notify(state.owner_id, messages.GENERATING_VIDEO)

        async def progress(text: str):
            await self._notify(state.owner_id, text)

        result = await self.video_stage.run(state.presenter_id, state.audio, state.session_id, progress=progress)
        video = result.raise_for_error()
        logger.info(f"[{state.session_id}] Video generated: {video.file_name} ({video.size_mb})")
        return {"video": video}

    async def _node_caption(self, state: ProductionState) -> dict:
        if self.caption_stage is None:
            return {"caption": None}
        await self._notify(state.owner_id, messages.GENERATING_CAPTION)
        result = await self.caption_stage.run(
            state.script, state.video.file_name, PresenterLibrary.name(state.presenter_id)
        )
        return {"caption": result.value if result.success else None}

    async def _draft_script(self, session_id: str, keyword: str) -> Script:
        final_state = await self._draft_graph.ainvoke(DraftState(session_id=session_id, keyword=keyword))
        return DraftState(**final_state).script

    # --- helpers ---

    async def _notify(self, owner_id: str, text: str):
        try:
            await self.notifier.send(owner_id, text)
        except Exception as e:
            logger.error(f"Could not notify {owner_id}: {e}")

    async def _report_failure(self, owner_id: str, session_id: Optional[str], e: Exception, cost_incurred: bool):
        stage = getattr(e, "stage", None)
        logger.error(f"[{session_id}] Pipeline failed at stage {stage}: {e}", exc_info=e)
        job_id = e.job_id if isinstance(e, TimeoutExhaustedError) else None
        text = getattr(e, "message", None) or str(e)
        await self._notify(
            owner_id,
            messages.error(text, session_id=session_id, stage=stage, cost_incurred=cost_incurred, job_id=job_id),
        )

    async def _send_approval(self, session: Session):
        assessment = assess_script(session.script.text) if session.script.kind == "generated" else None
        await self._notify(
            session.owner_id,
            messages.script_approval(session.script, session.presenter_id, session.keyword, session.id, assessment),
        )

    def _get_owned(self, session_id: str, owner_id: Optional[str]) -> Session:
        session = self.sessions.get(session_id)
        if session is None or (owner_id is not None and session.owner_id != owner_id):
            raise NotFoundError(session_id)
        return session

    # --- caller surface ---

    async def start_pipeline(self, owner_id: str, presenter_id: int, keyword: str) -> str:
        """Validate, draft a script and park it for approval. Returns the session id."""
        try:
            presenter_id, keyword = validate_request(presenter_id, keyword)
        except ValidationError as e:
            await self._notify(owner_id, messages.error(e.message, stage=e.stage))
            raise

        report = await self.validator.validate(presenter_id, keyword)
        if not report.valid:
            e = ConcurrencyLimitError(report.errors) if report.concurrency_limited else PreflightError(report.errors)
            await self._report_failure(owner_id, None, e, cost_incurred=False)
            raise e

        session_id = self.sessions.generate_id()
        await self._notify(owner_id, messages.starting(presenter_id, keyword))
        try:
            script = await self._draft_script(session_id, keyword)
        except Exception as e:
            await self._report_failure(owner_id, session_id, e, cost_incurred=False)
            raise

        created = self.sessions.create(
            session_id,
            {
                "state": SessionState.AWAITING_APPROVAL,
                "presenter_id": presenter_id,
                "keyword": keyword,
                "script": script,
                "owner_id": owner_id,
            },
        )
        if not created:
            e = PipelineError("Could not store the session", stage="session")
            await self._report_failure(owner_id, session_id, e, cost_incurred=False)
            raise e
        await self._send_approval(self.sessions.get(session_id))
        logger.info(f"[{session_id}] Awaiting approval ({script.word_count} words)")
        return session_id

    async def decide(self, session_id: str, decision, owner_id: Optional[str] = None) -> DecisionAck:
        try:
            decision = Decision(decision)
        except ValueError:
            raise ValidationError(f"Unknown decision: {decision}")

        session = self._get_owned(session_id, owner_id)
        if session.state != SessionState.AWAITING_APPROVAL:
            raise SessionStateError(session_id, session.state.value)
        logger.info(f"[{session_id}] Decision: {decision.value}")

        if decision == Decision.APPROVE:
            self.sessions.set_state(session_id, SessionState.APPROVED)
            await self._notify(session.owner_id, messages.APPROVED)
            self._tasks[session_id] = asyncio.create_task(self._production_in_background(session_id))
            return DecisionAck(
                session_id=session_id, decision=decision, state=SessionState.APPROVED,
                message="Script approved, production started",
            )

        if decision == Decision.CANCEL:
            self.sessions.delete(session_id)
            await self._notify(session.owner_id, messages.CANCELLED)
            return DecisionAck(
                session_id=session_id, decision=decision, state=SessionState.CANCELLED,
                message="Generation cancelled, no generation cost was incurred",
            )

        if decision == Decision.REJECT:
            self.sessions.set_state(session_id, SessionState.REJECTED)
            await self._notify(session.owner_id, messages.REJECTED)
        else:
            self.sessions.set_state(session_id, SessionState.REGENERATING)
            await self._notify(session.owner_id, messages.REGENERATING)
        await self._regenerate(session)
        return DecisionAck(
            session_id=session_id, decision=decision, state=SessionState.AWAITING_APPROVAL,
            message="New script ready for approval",
        )

    async def _regenerate(self, session: Session):
        try:
            script = await self._draft_script(session.id, session.keyword)
            if not self.sessions.update(session.id, {"script": script, "state": SessionState.AWAITING_APPROVAL}):
                raise NotFoundError(session.id)
        except Exception as e:
            self.sessions.delete(session.id)
            await self._report_failure(session.owner_id, session.id, e, cost_incurred=False)
            raise
        await self._send_approval(self.sessions.get(session.id))

    async def run_production(self, session_id: str) -> PipelineResult:
        """Audio, video and caption for an approved session. The session is always removed."""
        session = self.sessions.get(session_id)
        if session is None:
            raise NotFoundError(session_id)
        if session.state != SessionState.APPROVED:
            raise SessionStateError(session_id, session.state.value)
        try:
            initial = ProductionState(
                session_id=session_id,
                owner_id=session.owner_id,
                presenter_id=session.presenter_id,
                keyword=session.keyword,
                script=session.script,
            )
            final_state = await self._production_graph.ainvoke(initial)
            final_state = ProductionState(**final_state)
            result = PipelineResult(
                session_id=session_id,
                presenter_id=session.presenter_id,
                keyword=session.keyword,
                script=session.script,
                audio_size_bytes=final_state.audio.size_bytes,
                audio_duration_s=final_state.audio.estimated_duration_s,
                video=final_state.video,
                caption=final_state.caption,
            )
            logger.info(f"[{session_id}] Pipeline completed: {result.video.path}")
            await self._notify(session.owner_id, messages.completed(result))
            return result
        except Exception as e:
            cost = getattr(e, "stage", None) not in _FREE_STAGES
            await self._report_failure(session.owner_id, session_id, e, cost_incurred=cost)
            raise
        finally:
            self.sessions.delete(session_id)
            self._tasks.pop(session_id, None)

    async def _production_in_background(self, session_id: str) -> Optional[PipelineResult]:
        try:
            return await self.run_production(session_id)
        except Exception:
            # already logged and reported to the owner
            return None

    def production_task(self, session_id: str) -> Optional[asyncio.Task]:
        return self._tasks.get(session_id)

    def get_session(self, session_id: str, owner_id: Optional[str] = None) -> Session:
        return self._get_owned(session_id, owner_id)

    def get_stats(self) -> SessionStats:
        return self.sessions.stats()

    async def shutdown(self):
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
