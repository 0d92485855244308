"""
Error taxonomy for the generation pipeline.

Every error that reaches a requester is a PipelineError so callers can report
it together with the session id and the stage that failed.
"""
from typing import List, Optional


class PipelineError(Exception):
    """Base class for every error the pipeline reports to a requester."""

    stage: Optional[str] = None

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if stage is not None:
            self.stage = stage


class ValidationError(PipelineError):
    """Bad presenter id, keyword shape or decision. Raised before any session exists."""

    stage = "validation"


class NotFoundError(PipelineError):
    """Unknown or expired session id."""

    def __init__(self, session_id: str):
        super().__init__(f"Session not found or expired: {session_id}")
        self.session_id = session_id


class SessionStateError(PipelineError):
    """The session exists but is not waiting for this decision."""

    def __init__(self, session_id: str, state: str):
        super().__init__(f"Session {session_id} is {state}, not awaiting approval")
        self.session_id = session_id
        self.state = state


class PreflightError(PipelineError):
    stage = "preflight"

    def __init__(self, errors: List[str]):
        super().__init__("; ".join(errors) or "Pre-flight validation failed")
        self.errors = list(errors)


class ConcurrencyLimitError(PreflightError):
    """Active session count reached the configured cap."""


class ExternalServiceError(PipelineError):
    """A collaborator call failed. Carries the originating stage name."""

    def __init__(self, stage: str, message: str):
        super().__init__(message, stage=stage)

    def __str__(self) -> str:
        return f"[{self.stage}] {self.message}"


class TimeoutExhaustedError(PipelineError, TimeoutError):
    """Polling budget spent without the render finishing. job_id allows manual recovery."""

    stage = "video"

    def __init__(self, job_id: str, attempts: int):
        super().__init__(f"Video not completed after {attempts} attempts. Job ID: {job_id}")
        self.job_id = job_id
        self.attempts = attempts


class EmptyArtifactError(PipelineError):
    stage = "video"

    def __init__(self, url: str):
        super().__init__(f"Downloaded artifact is empty: {url}")
        self.url = url
