import os
import sys
from datetime import datetime, timedelta, timezone

import pytest

# Add the backend to the path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "newscast_backend"))

from newscast.errors import ExternalServiceError
from newscast.llm import count_words
from newscast.media import ArtifactStore
from newscast.models import JobStatus, RemoteStatus, Snippet
from newscast.notifier import InboxNotifier
from newscast.orchestrator import PipelineOrchestrator
from newscast.rendering import VideoRenderer
from newscast.session_store import SessionStore
from newscast.stages import AudioStage, CaptionStage, ScriptStage, VideoStage
from newscast.validator import ResourceValidator


def words(n: int, last: str = "go!") -> str:
    return " ".join(["word"] * (n - 1) + [last])


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now += timedelta(seconds=seconds)


class RecordingSleep:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds: float):
        self.calls.append(seconds)

    @property
    def elapsed(self) -> float:
        return sum(self.calls)


class FakeSearch:
    def __init__(self, snippets=None, error=None, healthy=True):
        self.snippets = snippets if snippets is not None else [
            Snippet(text="Here we go! Striker joins City on a five-year deal.", timestamp="2024-01-01", vip_flag=True),
        ]
        self.error = error
        self.healthy = healthy
        self.calls = []

    async def search(self, keyword, limit=3):
        self.calls.append((keyword, limit))
        if self.error:
            raise self.error
        return self.snippets[:limit]

    async def test_connection(self):
        return self.healthy


class FakeScriptWriter:
    def __init__(self, texts=None, error=None, healthy=True):
        self.texts = list(texts or [words(78)])
        self.error = error
        self.healthy = healthy
        self.calls = []

    async def generate(self, topic, snippets):
        self.calls.append((topic, list(snippets)))
        if self.error:
            raise self.error
        text = self.texts[min(len(self.calls) - 1, len(self.texts) - 1)]
        return text, count_words(text)

    async def test_connection(self):
        return self.healthy


class FakeVoice:
    def __init__(self, data=b"\x01" * 150 * 1024, error=None, healthy=True):
        self.data = data
        self.error = error
        self.healthy = healthy
        self.calls = []

    async def synthesize(self, text, output_name):
        self.calls.append((text, output_name))
        if self.error:
            raise self.error
        return self.data

    async def test_connection(self):
        return self.healthy


class FakeRenderService:
    """Asset registry, job service and artifact fetch in one fake."""

    def __init__(self, statuses=None, video=b"\x00\x00\x00\x18ftypmp42" * 100, fail_kind=None, healthy=True):
        self.statuses = list(statuses or [RemoteStatus(status=JobStatus.READY, raw_status="complete",
                                                       result_url="https://cdn.example.com/v.mp4")])
        self.video = video
        self.fail_kind = fail_kind or set()
        self.healthy = healthy
        self.assets = []
        self.uploads = []
        self.jobs = []
        self.status_calls = 0
        self.downloads = []

    async def create_asset(self, kind, name):
        if kind in self.fail_kind:
            raise ExternalServiceError(f"{kind}_asset", f"{kind} asset rejected")
        asset_id = f"{kind}-asset-{len(self.assets) + 1}"
        self.assets.append((kind, name, asset_id))
        return asset_id

    async def upload_asset(self, asset_id, data, filename, content_type):
        self.uploads.append((asset_id, filename, content_type, len(data)))
        return {"id": asset_id}

    async def submit_job(self, image_asset_id, audio_asset_id, duration_ms, prompt, aspect_ratio="9:16",
                         resolution="720p"):
        self.jobs.append({
            "image": image_asset_id,
            "audio": audio_asset_id,
            "duration_ms": duration_ms,
            "aspect_ratio": aspect_ratio,
            "resolution": resolution,
        })
        return "job-123"

    async def get_job_status(self, job_id):
        self.status_calls += 1
        if len(self.statuses) > 1:
            return self.statuses.pop(0)
        return self.statuses[0]

    async def download(self, url):
        self.downloads.append(url)
        return self.video

    async def test_connection(self):
        return self.healthy


class FakeCaptionWriter:
    def __init__(self, text="Huge news! #Football", error=None):
        self.text = text
        self.error = error

    async def generate(self, script, presenter_name=None):
        if self.error:
            raise self.error
        return self.text


class FakePresenters:
    def __init__(self, available=(1, 2, 3)):
        self.ids = set(available)

    @staticmethod
    def name(presenter_id):
        return f"presenter{presenter_id}"

    def validate(self, presenter_id):
        if presenter_id in self.ids:
            return True, None
        return False, f"Presenter image presenter{presenter_id} not available"

    def load_png(self, presenter_id):
        if presenter_id not in self.ids:
            raise FileNotFoundError(f"Presenter image not found: presenter{presenter_id}")
        return b"\x89PNG\r\n\x1a\n" + b"\x00" * 2048


def processing():
    return RemoteStatus(status=JobStatus.PROCESSING, raw_status="processing")


def ready(url="https://cdn.example.com/v.mp4"):
    return RemoteStatus(status=JobStatus.READY, raw_status="complete", result_url=url)


def failed(error="model crashed"):
    return RemoteStatus(status=JobStatus.FAILED, raw_status="error", error=error)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def storage(tmp_path):
    return ArtifactStore(str(tmp_path / "output"))


@pytest.fixture
def make_orchestrator(clock, sleep, storage):
    """Build an orchestrator around fakes; override any collaborator by keyword."""

    def _make(search=None, writer=None, voice=None, render=None, presenters=None, caption_writer=None,
              max_active_sessions=5, max_attempts=15):
        search = search or FakeSearch()
        writer = writer or FakeScriptWriter()
        voice = voice or FakeVoice()
        render = render or FakeRenderService()
        presenters = presenters or FakePresenters()
        sessions = SessionStore(clock=clock)
        renderer = VideoRenderer(render, storage, max_attempts=max_attempts, sleep=sleep)
        orchestrator = PipelineOrchestrator(
            sessions=sessions,
            validator=ResourceValidator(presenters, search, writer, voice, render, sessions,
                                        max_active_sessions=max_active_sessions),
            script_stage=ScriptStage(search, writer),
            audio_stage=AudioStage(voice, storage),
            video_stage=VideoStage(presenters, renderer),
            caption_stage=CaptionStage(caption_writer or FakeCaptionWriter(), storage),
            notifier=InboxNotifier(),
        )
        orchestrator.fakes = {
            "search": search, "writer": writer, "voice": voice, "render": render, "presenters": presenters,
        }
        return orchestrator

    return _make
