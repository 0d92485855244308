import io
import logging
import os
from typing import List, Optional, Tuple

from PIL import Image

from .settings import PRESENTER_IMAGES_DIR

logger = logging.getLogger(__name__)

MIN_IMAGE_BYTES = 1024
MAX_IMAGE_BYTES = 10 * 1024 * 1024
IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".webp")


class PresenterLibrary:
    """Presenter base images stored as presenter<N>.<ext> in one directory."""

    def __init__(self, images_dir: str = PRESENTER_IMAGES_DIR):
        self.images_dir = images_dir

    @staticmethod
    def name(presenter_id: int) -> str:
        return f"presenter{presenter_id}"

    def path(self, presenter_id: int) -> Optional[str]:
        for ext in IMAGE_EXTENSIONS:
            candidate = os.path.join(self.images_dir, f"{self.name(presenter_id)}{ext}")
            if os.path.isfile(candidate):
                return candidate
        return None

    def exists(self, presenter_id: int) -> bool:
        return self.path(presenter_id) is not None

    def available(self) -> List[str]:
        try:
            files = sorted(os.listdir(self.images_dir))
        except OSError as e:
            logger.error(f"Cannot list presenter images in {self.images_dir}: {e}")
            return []
        return [os.path.splitext(f)[0] for f in files if f.lower().endswith(IMAGE_EXTENSIONS)]

    def validate(self, presenter_id: int) -> Tuple[bool, Optional[str]]:
        path = self.path(presenter_id)
        if path is None:
            suggestions = ", ".join(self.available()[:5]) or "none"
            return False, f"Presenter image {self.name(presenter_id)} not available (available: {suggestions})"
        size = os.path.getsize(path)
        if size < MIN_IMAGE_BYTES:
            return False, f"Presenter image {self.name(presenter_id)} is too small (under 1 KB)"
        if size > MAX_IMAGE_BYTES:
            return False, f"Presenter image {self.name(presenter_id)} is too large (over 10 MB)"
        try:
            with Image.open(path) as img:
                img.verify()
        except Exception as e:
            return False, f"Presenter image {self.name(presenter_id)} is not a readable image: {e}"
        return True, None

    def load_png(self, presenter_id: int) -> bytes:
        """Load the presenter image, converting to RGB PNG when stored in another format."""
        path = self.path(presenter_id)
        if path is None:
            raise FileNotFoundError(f"Presenter image not found: {self.name(presenter_id)}")
        with open(path, "rb") as f:
            data = f.read()
        with Image.open(io.BytesIO(data)) as img:
            if img.format == "PNG":
                return data
            logger.info(f"Converting {img.format} to PNG for {self.name(presenter_id)}")
            if img.mode in ("RGBA", "LA"):
                # flatten transparency onto white
                background = Image.new("RGB", img.size, (255, 255, 255))
                if img.mode == "LA":
                    img = img.convert("RGBA")
                background.paste(img, mask=img.split()[-1])
                img = background
            elif img.mode != "RGB":
                img = img.convert("RGB")
            buf = io.BytesIO()
            img.save(buf, format="PNG")
            return buf.getvalue()
