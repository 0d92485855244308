from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

OPTIMAL_WORDS = (75, 80)
ACCEPTABLE_WORDS = (70, 85)

# Words per second used for the script's reading-time estimate. The audio
# stage uses its own, slower rate (see AUDIO_WORDS_PER_SECOND).
SCRIPT_WORDS_PER_SECOND = 4.0
AUDIO_WORDS_PER_SECOND = 2.5


class SessionState(str, Enum):
    AWAITING_APPROVAL = "AwaitingApproval"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    REGENERATING = "Regenerating"
    CANCELLED = "Cancelled"
    EXPIRED = "Expired"


class Decision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    REGENERATE = "regenerate"
    CANCEL = "cancel"


class JobStatus(str, Enum):
    PROCESSING = "Processing"
    READY = "Ready"
    FAILED = "Failed"
    UNKNOWN = "Unknown"


class RenderPhase(str, Enum):
    IDLE = "Idle"
    ASSETS_UPLOADING = "AssetsUploading"
    ASSETS_SYNCING = "AssetsSyncing"
    JOB_SUBMITTED = "JobSubmitted"
    POLLING = "Polling"
    EXHAUSTED = "Exhausted"
    RESCUE_ATTEMPT = "RescueAttempt"
    READY = "Ready"
    DOWNLOADED = "Downloaded"
    FAILED = "Failed"


class Snippet(BaseModel):
    text: str
    timestamp: Optional[str] = None
    vip_flag: bool = False
    vip_keyword: Optional[str] = None


class Script(BaseModel):
    text: str
    word_count: int
    source_count: int = 0
    kind: str = "generated"  # generated | no_results

    @property
    def estimated_duration_s(self) -> int:
        return round(self.word_count / SCRIPT_WORDS_PER_SECOND)

    @property
    def is_optimal_length(self) -> bool:
        return OPTIMAL_WORDS[0] <= self.word_count <= OPTIMAL_WORDS[1]

    @property
    def is_acceptable_length(self) -> bool:
        return ACCEPTABLE_WORDS[0] <= self.word_count <= ACCEPTABLE_WORDS[1]


class ScriptAssessment(BaseModel):
    word_count: int
    is_optimal_length: bool
    estimated_duration_s: int
    has_hook: bool
    has_call_to_action: bool
    quality_score: int = Field(ge=0, le=100)
    issues: List[str] = Field(default_factory=list)

    @property
    def quality(self) -> str:
        if not self.issues:
            return "excellent"
        return "good" if len(self.issues) <= 2 else "poor"


class Session(BaseModel):
    id: str
    state: SessionState = SessionState.AWAITING_APPROVAL
    presenter_id: int = Field(ge=1, le=9)
    keyword: str = Field(min_length=1, max_length=50)
    script: Script
    owner_id: str
    created_at: datetime
    expires_at: datetime

    @model_validator(mode="after")
    def _expiry_after_creation(self):
        if self.expires_at <= self.created_at:
            raise ValueError("expires_at must be later than created_at")
        return self


class SessionStats(BaseModel):
    total: int
    active: int
    expiring_soon: int
    expired: int


class StageResult(BaseModel):
    """Normalized outcome of one stage executor."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    stage: str
    success: bool
    value: Any = None
    error: Optional[str] = None
    cause: Optional[Exception] = None

    def raise_for_error(self) -> Any:
        if self.success:
            return self.value
        if self.cause is not None:
            raise self.cause
        from .errors import ExternalServiceError
        raise ExternalServiceError(self.stage, self.error or "unknown error")


class AudioClip(BaseModel):
    buffer: bytes
    file_name: str
    size_bytes: int
    estimated_duration_s: int
    path: Optional[str] = None

    @property
    def size_kb(self) -> int:
        return round(self.size_bytes / 1024)


class RemoteStatus(BaseModel):
    """One answer from the render service's status endpoint."""

    status: JobStatus
    raw_status: str = "unknown"
    result_url: Optional[str] = None
    error: Optional[str] = None


class GenerationJob(BaseModel):
    job_id: str
    image_asset_id: str
    audio_asset_id: str
    status: JobStatus = JobStatus.PROCESSING
    attempts: int = 0
    max_attempts: int = 15
    result_url: Optional[str] = None
    error: Optional[str] = None

    @model_validator(mode="after")
    def _check_invariants(self):
        if (self.result_url is not None) != (self.status == JobStatus.READY):
            raise ValueError("result_url must be set exactly when the job is Ready")
        if self.attempts > self.max_attempts:
            raise ValueError("attempts exceeded max_attempts")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobStatus.READY, JobStatus.FAILED)

    def record_attempt(self) -> None:
        if self.attempts >= self.max_attempts:
            raise ValueError(f"Job {self.job_id} already used {self.max_attempts} attempts")
        self.attempts += 1

    def mark_ready(self, url: str) -> None:
        self.status = JobStatus.READY
        self.result_url = url

    def mark_failed(self, error: str) -> None:
        self.status = JobStatus.FAILED
        self.error = error
        self.result_url = None

    def observe(self, remote: RemoteStatus) -> None:
        """Apply a status answer without breaking the Ready <=> result_url invariant."""
        if remote.status == JobStatus.READY and remote.result_url:
            self.mark_ready(remote.result_url)
        elif remote.status == JobStatus.FAILED:
            self.mark_failed(remote.error or remote.raw_status)
        elif remote.status == JobStatus.READY:
            # completed without a URL yet: keep polling
            self.status = JobStatus.PROCESSING
        else:
            self.status = remote.status


class VideoArtifact(BaseModel):
    path: str
    file_name: str
    size_bytes: int
    url: str
    generation_id: str
    image_asset_id: str
    audio_asset_id: str

    @property
    def size_mb(self) -> str:
        return f"{self.size_bytes / (1024 * 1024):.2f} MB"


class Caption(BaseModel):
    text: str
    source: str = "llm"  # llm | fallback
    path: Optional[str] = None

    @property
    def characters(self) -> int:
        return len(self.text)


class PipelineResult(BaseModel):
    session_id: str
    presenter_id: int
    keyword: str
    script: Script
    audio_size_bytes: int
    audio_duration_s: int
    video: VideoArtifact
    caption: Optional[Caption] = None
    cost_incurred: bool = True

    @property
    def generation_id(self) -> str:
        return self.video.generation_id

    @property
    def audio_asset_id(self) -> str:
        return self.video.audio_asset_id

    @property
    def image_asset_id(self) -> str:
        return self.video.image_asset_id


class DraftState(BaseModel):
    session_id: str
    keyword: str
    snippets: List[Snippet] = Field(default_factory=list)
    script: Optional[Script] = None


class ProductionState(BaseModel):
    session_id: str
    owner_id: str
    presenter_id: int
    keyword: str
    script: Script
    audio: Optional[AudioClip] = None
    video: Optional[VideoArtifact] = None
    caption: Optional[Caption] = None


class ValidationReport(BaseModel):
    valid: bool = True
    errors: List[str] = Field(default_factory=list)
    api_status: Dict[str, bool] = Field(default_factory=dict)
    concurrency_limited: bool = False


class PipelineRequest(BaseModel):
    owner_id: str
    presenter_id: Optional[int] = None
    keyword: Optional[str] = None
    command: Optional[str] = None  # e.g. "presenter3@Real Madrid"


class DecisionRequest(BaseModel):
    decision: str
    owner_id: Optional[str] = None


class DecisionAck(BaseModel):
    session_id: str
    decision: Decision
    state: SessionState
    message: str
