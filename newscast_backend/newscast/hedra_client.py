"""
Client for the Hedra rendering service: asset registry, generation jobs and
artifact download. Every call carries its own timeout.
"""
import logging
from typing import Any, Dict, Optional

import httpx

from .errors import ExternalServiceError
from .models import JobStatus, RemoteStatus
from .settings import (
    DOWNLOAD_TIMEOUT_S,
    HEALTH_TIMEOUT_S,
    HEDRA_API_KEY,
    HEDRA_BASE_URL,
    HEDRA_MODEL_ID,
    HTTP_TIMEOUT_S,
    STATUS_TIMEOUT_S,
    UPLOAD_TIMEOUT_S,
)

logger = logging.getLogger(__name__)

_READY = {"complete", "completed", "succeeded", "success"}
_FAILED = {"error", "failed", "canceled", "cancelled"}
_PROCESSING = {"queued", "pending", "processing", "in_progress", "running", "finalizing"}


def _json(stage: str, r: httpx.Response) -> Any:
    try:
        return r.json()
    except ValueError as e:
        raise ExternalServiceError(stage, f"Hedra returned invalid JSON: {e}")


def parse_status(body: Optional[Dict[str, Any]]) -> RemoteStatus:
    """Map one asset entry from the status endpoint onto a RemoteStatus."""
    body = body or {}
    raw = str(body.get("status") or "unknown").lower()
    url = (body.get("asset") or {}).get("url") or body.get("url")
    error = body.get("error") or body.get("error_message")
    if error or raw in _FAILED:
        return RemoteStatus(status=JobStatus.FAILED, raw_status=raw, error=error or raw)
    if raw in _READY:
        return RemoteStatus(status=JobStatus.READY, raw_status=raw, result_url=url)
    if raw in _PROCESSING:
        return RemoteStatus(status=JobStatus.PROCESSING, raw_status=raw)
    return RemoteStatus(status=JobStatus.UNKNOWN, raw_status=raw)


class HedraClient:
    def __init__(
        self,
        api_key: str = HEDRA_API_KEY,
        base_url: str = HEDRA_BASE_URL,
        model_id: str = HEDRA_MODEL_ID,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model_id = model_id
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        if not self.api_key:
            raise RuntimeError("HEDRA_API_KEY is not set; please configure your .env")
        return {"X-Api-Key": self.api_key}

    async def _request(self, stage: str, method: str, path: str, timeout: float, **kwargs) -> httpx.Response:
        url = path if path.startswith("http") else f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                r = await client.request(method, url, headers=self._headers(), **kwargs)
                r.raise_for_status()
                return r
        except httpx.HTTPStatusError as e:
            logger.error(f"Hedra {method} {path} failed {e.response.status_code}: {e.response.text}")
            raise ExternalServiceError(stage, f"Hedra {method} {path} failed {e.response.status_code}: {e.response.text}")
        except httpx.HTTPError as e:
            logger.error(f"Hedra {method} {path} request failed: {e!r}")
            raise ExternalServiceError(stage, f"Hedra {method} {path} request failed: {e!r}")

    # --- asset registry ---

    async def create_asset(self, kind: str, name: str) -> str:
        r = await self._request(f"{kind}_asset", "POST", "/assets", HTTP_TIMEOUT_S, json={"name": name, "type": kind})
        asset_id = _json(f"{kind}_asset", r).get("id")
        if not asset_id:
            raise ExternalServiceError(f"{kind}_asset", f"Hedra returned no asset id for {name}")
        return asset_id

    async def upload_asset(self, asset_id: str, data: bytes, filename: str, content_type: str) -> Dict[str, Any]:
        r = await self._request(
            "asset_upload",
            "POST",
            f"/assets/{asset_id}/upload",
            UPLOAD_TIMEOUT_S,
            files={"file": (filename, data, content_type)},
        )
        return _json("asset_upload", r) if r.content else {}

    # --- job service ---

    async def submit_job(
        self,
        image_asset_id: str,
        audio_asset_id: str,
        duration_ms: int,
        prompt: str,
        aspect_ratio: str = "9:16",
        resolution: str = "720p",
    ) -> str:
        body = {
            "type": "video",
            "ai_model_id": self.model_id,
            "start_keyframe_id": image_asset_id,
            "audio_id": audio_asset_id,
            "generated_video_inputs": {
                "text_prompt": prompt,
                "resolution": resolution,
                "aspect_ratio": aspect_ratio,
                "duration_ms": duration_ms,
            },
        }
        r = await self._request("job_submit", "POST", "/generations", HTTP_TIMEOUT_S, json=body)
        data = _json("job_submit", r)
        job_id = data.get("asset_id") or data.get("id")
        if not job_id:
            raise ExternalServiceError("job_submit", "Hedra returned no generation id")
        return job_id

    async def get_job_status(self, job_id: str) -> RemoteStatus:
        r = await self._request(
            "job_status", "GET", "/assets", STATUS_TIMEOUT_S, params={"type": "video", "ids": job_id}
        )
        items = _json("job_status", r)
        if not isinstance(items, list) or not items:
            return parse_status(None)
        return parse_status(items[0])

    # --- artifact fetch ---

    async def download(self, url: str) -> bytes:
        try:
            async with httpx.AsyncClient(
                timeout=DOWNLOAD_TIMEOUT_S, transport=self._transport, follow_redirects=True
            ) as client:
                r = await client.get(url)
                r.raise_for_status()
                return r.content
        except httpx.HTTPError as e:
            logger.error(f"Video download failed: {e!r}")
            raise ExternalServiceError("download", f"Video download failed: {e!r}")

    async def test_connection(self) -> bool:
        try:
            await self._request("health", "GET", "/assets", HEALTH_TIMEOUT_S, params={"type": "image", "limit": 1})
            return True
        except Exception as e:
            logger.error(f"Hedra unreachable: {e}")
            return False
