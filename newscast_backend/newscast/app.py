import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Ensure .env is loaded before importing modules that initialize API clients
from .settings import ALLOWED_ORIGINS, has_all_keys
from . import messages
from .commands import parse_command
from .elevenlabs_client import VoiceClient
from .errors import (
    ConcurrencyLimitError,
    EmptyArtifactError,
    ExternalServiceError,
    NotFoundError,
    PipelineError,
    PreflightError,
    SessionStateError,
    TimeoutExhaustedError,
    ValidationError,
)
from .hedra_client import HedraClient
from .llm import CaptionWriter, ScriptWriter
from .media import ArtifactStore
from .models import DecisionRequest, PipelineRequest, SessionState
from .notifier import InboxNotifier
from .orchestrator import PipelineOrchestrator
from .presenters import PresenterLibrary
from .rendering import VideoRenderer
from .search_client import SnippetSearch
from .session_store import SessionStore
from .stages import AudioStage, CaptionStage, ScriptStage, VideoStage
from .validator import ResourceValidator

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Most specific first
_STATUS_CODES = [
    (ValidationError, 400),
    (NotFoundError, 404),
    (SessionStateError, 409),
    (ConcurrencyLimitError, 429),
    (PreflightError, 503),
    (TimeoutExhaustedError, 504),
    (EmptyArtifactError, 502),
    (ExternalServiceError, 502),
]


def status_code_for(e: PipelineError) -> int:
    for cls, code in _STATUS_CODES:
        if isinstance(e, cls):
            return code
    return 500


def build_orchestrator() -> PipelineOrchestrator:
    """Wire the real adapters from settings."""
    presenters = PresenterLibrary()
    storage = ArtifactStore()
    search = SnippetSearch()
    script_writer = ScriptWriter()
    voice = VoiceClient()
    hedra = HedraClient()
    sessions = SessionStore()
    return PipelineOrchestrator(
        sessions=sessions,
        validator=ResourceValidator(presenters, search, script_writer, voice, hedra, sessions),
        script_stage=ScriptStage(search, script_writer),
        audio_stage=AudioStage(voice, storage),
        video_stage=VideoStage(presenters, VideoRenderer(hedra, storage)),
        caption_stage=CaptionStage(CaptionWriter(), storage),
        notifier=InboxNotifier(),
    )


_orchestrator: Optional[PipelineOrchestrator] = None


def get_orchestrator() -> PipelineOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = build_orchestrator()
    return _orchestrator


@asynccontextmanager
async def lifespan(app: FastAPI):
    orchestrator = get_orchestrator()
    orchestrator.sessions.start_sweeper()
    yield
    await orchestrator.shutdown()
    await orchestrator.sessions.stop_sweeper()


app = FastAPI(title="Newscast Backend", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS or ["*"],
    allow_credentials=True,
    allow_methods=["POST", "GET", "OPTIONS"],
    allow_headers=["*"],
)


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, e: PipelineError):
    code = status_code_for(e)
    logger.warning(f"{request.method} {request.url.path} -> {code}: {e.message}")
    body = {"error": type(e).__name__, "message": e.message, "stage": e.stage}
    if isinstance(e, PreflightError):
        body["errors"] = e.errors
    if isinstance(e, TimeoutExhaustedError):
        body["job_id"] = e.job_id
    return JSONResponse(status_code=code, content=body)


@app.get("/health")
async def health(deep: bool = False, orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    keys_ok = has_all_keys()
    logger.info(f"Health check: API keys present = {keys_ok}")
    body = {"ok": True, "has_keys": keys_ok}
    if deep:
        body["services"] = await orchestrator.validator.check_connections()
    return body


@app.post("/v1/pipelines", status_code=201)
async def start_pipeline(req: PipelineRequest, orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    if req.command:
        parsed = parse_command(req.command)
        if parsed is None:
            raise ValidationError(messages.usage())
        presenter_id, keyword = parsed
    else:
        if req.presenter_id is None or req.keyword is None:
            raise ValidationError("presenter_id and keyword (or command) are required")
        presenter_id, keyword = req.presenter_id, req.keyword
    session_id = await orchestrator.start_pipeline(req.owner_id, presenter_id, keyword)
    session = orchestrator.get_session(session_id)
    return {
        "session_id": session_id,
        "state": SessionState.AWAITING_APPROVAL.value,
        "script": session.script.model_dump(),
        "expires_at": session.expires_at.isoformat(),
    }


@app.post("/v1/sessions/{session_id}/decision")
async def decide(session_id: str, req: DecisionRequest,
                 orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    ack = await orchestrator.decide(session_id, req.decision, owner_id=req.owner_id)
    return ack.model_dump(mode="json")


@app.get("/v1/sessions/{session_id}")
async def get_session(session_id: str, owner_id: Optional[str] = None,
                      orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    return orchestrator.get_session(session_id, owner_id).model_dump(mode="json")


@app.get("/v1/stats")
async def stats(orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    return orchestrator.get_stats().model_dump()


@app.get("/v1/inbox/{owner_id}")
async def inbox(owner_id: str, orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    notifier = orchestrator.notifier
    if not isinstance(notifier, InboxNotifier):
        return {"owner_id": owner_id, "messages": []}
    return {"owner_id": owner_id, "messages": notifier.messages(owner_id)}
