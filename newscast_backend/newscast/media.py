import os
import re
from datetime import datetime, timezone
from typing import Tuple

from .settings import ARTIFACT_DIR


def write_bytes(path: str, data: bytes):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "wb") as f:
        f.write(data)


def write_text(path: str, text: str):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)


def sanitize_keyword(keyword: str) -> str:
    return re.sub(r"[^A-Za-z0-9_.-]", "", re.sub(r"\s+", "_", keyword.strip()))


def file_timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")


class ArtifactStore:
    """Durable storage for generated audio, video and captions on local disk."""

    def __init__(self, root: str = ARTIFACT_DIR):
        self.root = root

    def save_audio(self, file_name: str, data: bytes) -> str:
        if not file_name.endswith(".mp3"):
            file_name += ".mp3"
        path = os.path.join(self.root, "audio", file_name)
        write_bytes(path, data)
        return path

    def save_video(self, data: bytes, prefix: str = "newscast_video") -> Tuple[str, str]:
        file_name = f"{prefix}_{file_timestamp()}.mp4"
        path = os.path.join(self.root, "videos", file_name)
        write_bytes(path, data)
        return path, file_name

    def save_caption(self, video_file_name: str, text: str) -> str:
        file_name = video_file_name.replace(".mp4", "_caption.txt")
        path = os.path.join(self.root, "captions", file_name)
        write_text(path, text)
        return path
