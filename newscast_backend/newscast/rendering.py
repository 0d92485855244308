"""
Asset synchronization and polling engine.

Turns a presenter image and a narration clip into one rendered talking-head
video on the remote service:

    Idle -> AssetsUploading -> AssetsSyncing -> JobSubmitted -> Polling
         -> Ready -> Downloaded
         -> Exhausted -> RescueAttempt -> Ready -> Downloaded | Failed

Only "still processing" answers are retried. An explicit failure, a network
error or a timed out status call aborts the run immediately. All waiting goes
through the injected ``sleep`` coroutine so tests can run on a simulated clock.
"""
import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Tuple

from .errors import EmptyArtifactError, ExternalServiceError, PipelineError, TimeoutExhaustedError
from .models import GenerationJob, JobStatus, RemoteStatus, RenderPhase, VideoArtifact
from .prompts import PRESENTER_PROMPT
from .settings import (
    ASSET_SETTLE_DELAY_S,
    DOWNLOAD_TIMEOUT_S,
    RENDER_ASPECT_RATIO,
    RENDER_DURATION_MS,
    RENDER_INITIAL_DELAY_S,
    RENDER_MAX_ATTEMPTS,
    RENDER_POLL_INTERVAL_S,
    RENDER_RESOLUTION,
    STATUS_TIMEOUT_S,
)

logger = logging.getLogger(__name__)

Progress = Optional[Callable[[str], Awaitable[None]]]


class RenderRun:
    """Per-run bookkeeping. Never shared between runs."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        self.phase = RenderPhase.IDLE
        self.history: List[RenderPhase] = [RenderPhase.IDLE]
        self.job: Optional[GenerationJob] = None
        self.status_checks = 0

    def enter(self, phase: RenderPhase):
        self.phase = phase
        self.history.append(phase)
        logger.info(f"[{self.session_id}] render phase -> {phase.value}")


class VideoRenderer:
    def __init__(
        self,
        service,
        storage,
        settle_delay_s: float = ASSET_SETTLE_DELAY_S,
        initial_delay_s: float = RENDER_INITIAL_DELAY_S,
        poll_interval_s: float = RENDER_POLL_INTERVAL_S,
        max_attempts: int = RENDER_MAX_ATTEMPTS,
        status_timeout_s: float = STATUS_TIMEOUT_S,
        download_timeout_s: float = DOWNLOAD_TIMEOUT_S,
        duration_ms: int = RENDER_DURATION_MS,
        aspect_ratio: str = RENDER_ASPECT_RATIO,
        resolution: str = RENDER_RESOLUTION,
        prompt: str = PRESENTER_PROMPT,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.service = service
        self.storage = storage
        self.settle_delay_s = settle_delay_s
        self.initial_delay_s = initial_delay_s
        self.poll_interval_s = poll_interval_s
        self.max_attempts = max_attempts
        self.status_timeout_s = status_timeout_s
        self.download_timeout_s = download_timeout_s
        self.duration_ms = duration_ms
        self.aspect_ratio = aspect_ratio
        self.resolution = resolution
        self.prompt = prompt
        self._sleep = sleep

    @property
    def max_wait_s(self) -> float:
        return self.initial_delay_s + self.max_attempts * self.poll_interval_s

    async def render(
        self,
        image: bytes,
        audio: bytes,
        session_id: str,
        presenter_name: str = "presenter",
        progress: Progress = None,
        run: Optional[RenderRun] = None,
    ) -> VideoArtifact:
        run = run or RenderRun(session_id)
        try:
            image_asset_id, audio_asset_id = await self._upload_assets(run, image, audio, presenter_name)

            run.enter(RenderPhase.ASSETS_SYNCING)
            await _say(progress, f"Syncing assets with the render service ({self.settle_delay_s:.0f}s)...")
            await self._sleep(self.settle_delay_s)

            job_id = await self.service.submit_job(
                image_asset_id,
                audio_asset_id,
                self.duration_ms,
                self.prompt,
                aspect_ratio=self.aspect_ratio,
                resolution=self.resolution,
            )
            run.job = GenerationJob(
                job_id=job_id,
                image_asset_id=image_asset_id,
                audio_asset_id=audio_asset_id,
                max_attempts=self.max_attempts,
            )
            run.enter(RenderPhase.JOB_SUBMITTED)
            logger.info(f"[{session_id}] Render job submitted: {job_id}")

            url = await self._poll(run, progress)
            return await self._download(run, url)
        except PipelineError:
            run.enter(RenderPhase.FAILED)
            raise

    async def _upload_one(self, kind: str, data: bytes, name: str, content_type: str) -> str:
        try:
            asset_id = await self.service.create_asset(kind, name)
            await self.service.upload_asset(asset_id, data, name, content_type)
        except ExternalServiceError as e:
            raise ExternalServiceError(f"{kind}_asset", e.message)
        except Exception as e:
            raise ExternalServiceError(f"{kind}_asset", str(e))
        return asset_id

    async def _upload_assets(self, run: RenderRun, image: bytes, audio: bytes, presenter_name: str) -> Tuple[str, str]:
        run.enter(RenderPhase.ASSETS_UPLOADING)
        image_result, audio_result = await asyncio.gather(
            self._upload_one("image", image, f"{presenter_name}.png", "image/png"),
            self._upload_one("audio", audio, f"{presenter_name}-audio.mp3", "audio/mpeg"),
            return_exceptions=True,
        )
        for result in (image_result, audio_result):
            if isinstance(result, BaseException):
                raise result
        logger.info(f"[{run.session_id}] Assets uploaded: image={image_result} audio={audio_result}")
        return image_result, audio_result

    async def _check(self, run: RenderRun) -> RemoteStatus:
        job = run.job
        if job.is_terminal:
            raise RuntimeError(f"Job {job.job_id} is already {job.status.value}")
        run.status_checks += 1
        try:
            remote = await asyncio.wait_for(self.service.get_job_status(job.job_id), timeout=self.status_timeout_s)
        except asyncio.TimeoutError:
            raise ExternalServiceError(
                "job_status", f"Status check for job {job.job_id} timed out after {self.status_timeout_s}s"
            )
        job.observe(remote)
        logger.info(f"[{run.session_id}] Job {job.job_id} status: {remote.raw_status}")
        return remote

    def _fail(self, run: RenderRun):
        job = run.job
        logger.error(f"[{run.session_id}] Render job {job.job_id} failed: {job.error}")
        raise ExternalServiceError("video", f"Render job {job.job_id} failed: {job.error}")

    async def _poll(self, run: RenderRun, progress: Progress) -> str:
        job = run.job
        await _say(progress, f"Waiting for the render ({self.initial_delay_s / 60:.1f} minutes)...")
        await self._sleep(self.initial_delay_s)

        run.enter(RenderPhase.POLLING)
        while job.attempts < job.max_attempts:
            await self._check(run)
            if job.status == JobStatus.READY:
                run.enter(RenderPhase.READY)
                return job.result_url
            if job.status == JobStatus.FAILED:
                self._fail(run)
            job.record_attempt()
            if job.attempts % 3 == 1:
                await _say(progress, f"Video still processing... attempt {job.attempts}/{job.max_attempts}")
            await self._sleep(self.poll_interval_s)

        # The service may finish just after the last scheduled poll
        run.enter(RenderPhase.EXHAUSTED)
        logger.warning(f"[{run.session_id}] Polling exhausted for job {job.job_id}, trying a direct fetch")
        run.enter(RenderPhase.RESCUE_ATTEMPT)
        await self._check(run)
        if job.status == JobStatus.READY:
            run.enter(RenderPhase.READY)
            logger.info(f"[{run.session_id}] Video found on the rescue attempt")
            return job.result_url
        if job.status == JobStatus.FAILED:
            self._fail(run)
        logger.error(f"[{run.session_id}] Video not completed after {job.attempts} attempts. Manual rescue id: {job.job_id}")
        raise TimeoutExhaustedError(job.job_id, job.attempts)

    async def _download(self, run: RenderRun, url: str) -> VideoArtifact:
        try:
            data = await asyncio.wait_for(self.service.download(url), timeout=self.download_timeout_s)
        except asyncio.TimeoutError:
            raise ExternalServiceError("download", f"Video download timed out after {self.download_timeout_s}s")
        if not data:
            raise EmptyArtifactError(url)
        path, file_name = self.storage.save_video(data)
        run.enter(RenderPhase.DOWNLOADED)
        logger.info(f"[{run.session_id}] Video saved: {path} ({len(data)} bytes)")
        job = run.job
        return VideoArtifact(
            path=path,
            file_name=file_name,
            size_bytes=len(data),
            url=url,
            generation_id=job.job_id,
            image_asset_id=job.image_asset_id,
            audio_asset_id=job.audio_asset_id,
        )


async def _say(progress: Progress, message: str):
    if progress is not None:
        await progress(message)
