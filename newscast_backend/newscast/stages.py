"""
Stage executors. Each one wraps a single collaborator call and reports a
StageResult instead of raising, so the orchestrator decides what a failure
means for the session. No retries happen here.
"""
import logging
import re
import time
from typing import List, Optional

from .errors import ExternalServiceError, PipelineError
from .llm import count_words
from .media import sanitize_keyword
from .models import (
    ACCEPTABLE_WORDS,
    AUDIO_WORDS_PER_SECOND,
    OPTIMAL_WORDS,
    AudioClip,
    Caption,
    Script,
    ScriptAssessment,
    Snippet,
    StageResult,
)
from .prompts import FALLBACK_CAPTION_TEMPLATE, NO_RESULTS_TEMPLATE
from .settings import SEARCH_LIMIT

logger = logging.getLogger(__name__)

_IMPACT_WORDS = re.compile(r"(incredible|bombshell|historic|here we go|official|confirmed)", re.IGNORECASE)
_CONFIRMATION_WORDS = ("here we go", "official", "confirmed")


def _failure(stage: str, e: Exception) -> StageResult:
    if not isinstance(e, PipelineError):
        e = ExternalServiceError(stage, str(e))
    logger.error(f"{stage} stage failed: {e}")
    return StageResult(stage=stage, success=False, error=e.message, cause=e)


def assess_script(text: str) -> ScriptAssessment:
    """Score a narration for length, hook and call to action (0-100)."""
    words = count_words(text)
    has_exclamation = "!" in text
    has_question = "?" in text
    has_impact = bool(_IMPACT_WORDS.search(text))

    score = 0
    if OPTIMAL_WORDS[0] <= words <= OPTIMAL_WORDS[1]:
        score += 40
    elif ACCEPTABLE_WORDS[0] <= words <= ACCEPTABLE_WORDS[1]:
        score += 30
    elif 65 <= words <= 90:
        score += 20
    if has_exclamation:
        score += 15
    if has_question:
        score += 15
    if has_impact:
        score += 30

    issues = []
    if words < ACCEPTABLE_WORDS[0]:
        issues.append(f"Script is too short (under {ACCEPTABLE_WORDS[0]} words)")
    if words > ACCEPTABLE_WORDS[1]:
        issues.append(f"Script is too long (over {ACCEPTABLE_WORDS[1]} words)")
    lowered = text.lower()
    if not any(w in lowered for w in _CONFIRMATION_WORDS):
        issues.append("Script has no typical confirmation phrase")
    if not has_exclamation and not has_impact:
        issues.append("Script lacks emotional emphasis")

    return ScriptAssessment(
        word_count=words,
        is_optimal_length=OPTIMAL_WORDS[0] <= words <= OPTIMAL_WORDS[1],
        estimated_duration_s=round(words / 4),
        has_hook=has_exclamation and has_impact,
        has_call_to_action=has_question,
        quality_score=min(score, 100),
        issues=issues,
    )


class ScriptStage:
    """Context search followed by script generation."""

    def __init__(self, search, writer, limit: int = SEARCH_LIMIT):
        self.search_service = search
        self.writer = writer
        self.limit = limit

    async def search(self, keyword: str) -> StageResult:
        try:
            snippets = await self.search_service.search(keyword, self.limit)
        except Exception as e:
            return _failure("search", e)
        logger.info(f"Found {len(snippets)} snippets for '{keyword}'")
        return StageResult(stage="search", success=True, value=list(snippets))

    @staticmethod
    def refusal(keyword: str) -> Script:
        return Script(text=NO_RESULTS_TEMPLATE.format(topic=keyword), word_count=0, source_count=0, kind="no_results")

    async def write(self, keyword: str, snippets: List[Snippet]) -> StageResult:
        if not snippets:
            return StageResult(stage="script", success=True, value=self.refusal(keyword))
        try:
            text, words = await self.writer.generate(keyword, snippets)
        except Exception as e:
            return _failure("script", e)
        script = Script(text=text, word_count=words, source_count=len(snippets))
        if not script.is_acceptable_length:
            logger.warning(f"Script for '{keyword}' has {words} words, outside {ACCEPTABLE_WORDS}")
        return StageResult(stage="script", success=True, value=script)

    async def run(self, keyword: str) -> StageResult:
        found = await self.search(keyword)
        if not found.success:
            return found
        return await self.write(keyword, found.value)


class AudioStage:
    def __init__(self, voice, storage):
        self.voice = voice
        self.storage = storage

    @staticmethod
    def file_name(presenter_id: int, keyword: str) -> str:
        return f"presenter{presenter_id}_{sanitize_keyword(keyword)}_{int(time.time() * 1000)}"

    async def run(self, script: Script, presenter_id: int, keyword: str) -> StageResult:
        name = self.file_name(presenter_id, keyword)
        try:
            data = await self.voice.synthesize(script.text, name)
            if not data:
                raise ExternalServiceError("audio", "Voice synthesis returned no audio")
        except Exception as e:
            return _failure("audio", e)
        # synthesis has been billed from here on
        try:
            path = self.storage.save_audio(name, data)
        except Exception as e:
            return _failure("audio_storage", e)
        clip = AudioClip(
            buffer=data,
            file_name=f"{name}.mp3",
            size_bytes=len(data),
            estimated_duration_s=round(count_words(script.text) / AUDIO_WORDS_PER_SECOND),
            path=path,
        )
        logger.info(f"Audio ready: {clip.file_name} ({clip.size_kb} KB, ~{clip.estimated_duration_s}s)")
        return StageResult(stage="audio", success=True, value=clip)


class VideoStage:
    def __init__(self, presenters, renderer):
        self.presenters = presenters
        self.renderer = renderer

    async def run(self, presenter_id: int, audio: AudioClip, session_id: str, progress=None) -> StageResult:
        try:
            image = self.presenters.load_png(presenter_id)
            artifact = await self.renderer.render(
                image,
                audio.buffer,
                session_id,
                presenter_name=self.presenters.name(presenter_id),
                progress=progress,
            )
        except Exception as e:
            return _failure("video", e)
        return StageResult(stage="video", success=True, value=artifact)


class CaptionStage:
    """Social caption for the finished clip. Falls back to a fixed caption."""

    def __init__(self, writer, storage):
        self.writer = writer
        self.storage = storage

    @staticmethod
    def fallback(script: Script) -> str:
        return FALLBACK_CAPTION_TEMPLATE.format(excerpt=script.text[:100])

    async def run(self, script: Script, video_file_name: str, presenter_name: Optional[str] = None) -> StageResult:
        source = "llm"
        try:
            text = await self.writer.generate(script.text, presenter_name)
            if not text:
                raise ValueError("empty caption")
        except Exception as e:
            logger.warning(f"Caption generation failed, using fallback: {e}")
            text, source = self.fallback(script), "fallback"
        try:
            path = self.storage.save_caption(video_file_name, text)
        except OSError as e:
            logger.error(f"Could not save caption for {video_file_name}: {e}")
            path = None
        return StageResult(stage="caption", success=True, value=Caption(text=text, source=source, path=path))
