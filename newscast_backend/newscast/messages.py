"""User-facing message templates sent through the notifier."""
from typing import Optional

from .models import PipelineResult, Script, ScriptAssessment

DECISIONS_HINT = "Reply with one of: approve, reject, regenerate, cancel"


def usage() -> str:
    return (
        "Unknown command.\n\n"
        "Use: presenter[1-9]@keyword\n"
        "Example: presenter3@Real Madrid"
    )


def starting(presenter_id: int, keyword: str) -> str:
    return (
        "NEWSCAST GENERATION WITH APPROVAL\n\n"
        f"Presenter: {presenter_id}\n"
        f'Keyword: "{keyword}"\n'
        "Searching sources and writing the script...\n\n"
        "You will approve the script before any video is generated."
    )


def script_approval(script: Script, presenter_id: int, keyword: str, session_id: str,
                    assessment: Optional[ScriptAssessment] = None) -> str:
    length_note = "optimal" if script.is_optimal_length else "outside the 75-80 word target"
    msg = (
        "SCRIPT READY - APPROVAL REQUIRED\n\n"
        f"Presenter: {presenter_id}\n"
        f'Keyword: "{keyword}"\n'
        f"Words: {script.word_count} ({length_note})\n"
        f"Estimated duration: ~{script.estimated_duration_s}s\n\n"
        "SCRIPT:\n"
        f'"{script.text}"\n\n'
    )
    if assessment is not None:
        msg += f"Quality score: {assessment.quality_score}/100\n"
        if assessment.issues:
            msg += "Suggestions:\n"
            msg += "".join(f"{i}. {issue}\n" for i, issue in enumerate(assessment.issues, start=1))
            msg += "You can regenerate for a better version.\n"
        msg += "\n"
    msg += f"Session: {session_id}\n{DECISIONS_HINT}"
    return msg


APPROVED = "SCRIPT APPROVED\n\nStarting audio and video generation..."
REJECTED = "SCRIPT REJECTED\n\nWriting a new script..."
REGENERATING = "REGENERATING SCRIPT\n\nWriting a new version..."
CANCELLED = (
    "GENERATION CANCELLED\n\n"
    "No content was generated and no generation cost was incurred.\n\n"
    "Use presenter[1-9]@keyword to try again."
)

GENERATING_AUDIO = "STEP 1/3: Synthesizing narration audio..."
GENERATING_VIDEO = (
    "STEP 2/3: Rendering the talking-head video...\n"
    "This step can take 8-10 minutes. You will get progress updates."
)
GENERATING_CAPTION = "STEP 3/3: Writing the social caption..."


def audio_ready(size_kb: int, duration_s: int) -> str:
    return f"Audio ready: {size_kb} KB, ~{duration_s}s\n\nMoving on to the video..."


def completed(result: PipelineResult) -> str:
    video = result.video
    msg = (
        "VIDEO COMPLETED\n\n"
        f"File: {video.file_name}\n"
        f"Size: {video.size_mb}\n"
        f"Presenter: {result.presenter_id}\n"
        f"Generation id: {result.generation_id}\n\n"
        f"Video: {video.path}\n"
    )
    if result.caption is not None:
        if result.caption.path:
            msg += f"Caption: {result.caption.path}\n"
        msg += f"\n{result.caption.text}\n"
    return msg


def error(message: str, session_id: Optional[str] = None, stage: Optional[str] = None,
          cost_incurred: bool = False, job_id: Optional[str] = None) -> str:
    msg = f"Error: {message}"
    if stage:
        msg += f"\nStage: {stage}"
    if session_id:
        msg += f"\nSession: {session_id}"
    if job_id:
        msg += f"\nJob ID for manual recovery: {job_id}"
    if cost_incurred:
        msg += "\nGeneration cost was incurred for this request."
    else:
        msg += "\nNo generation cost was incurred."
    msg += "\nPlease try again in a few minutes."
    return msg
