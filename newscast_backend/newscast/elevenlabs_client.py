import logging
from typing import Dict, Optional

import httpx

from .errors import ExternalServiceError
from .settings import (
    ELEVENLABS_API_KEY,
    ELEVENLABS_VOICE_ID,
    ELEVENLABS_VOICE_NAME,
    HEALTH_TIMEOUT_S,
    HTTP_TIMEOUT_S,
)

logger = logging.getLogger(__name__)

BASE_URL = "https://api.elevenlabs.io/v1"

# Expressive but stable delivery for a news presenter
VOICE_SETTINGS = {
    "stability": 0.45,
    "similarity_boost": 0.95,
    "style": 1.0,
    "use_speaker_boost": True,
}


class VoiceClient:
    def __init__(
        self,
        api_key: str = ELEVENLABS_API_KEY,
        voice_id: str = ELEVENLABS_VOICE_ID,
        voice_name: str = ELEVENLABS_VOICE_NAME,
        timeout_s: float = HTTP_TIMEOUT_S,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.voice_id = voice_id
        self.voice_name = voice_name
        self.timeout_s = timeout_s
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        if not self.api_key:
            raise RuntimeError("ELEVENLABS_API_KEY is not set; please configure your .env")
        return {"xi-api-key": self.api_key}

    async def synthesize(self, text: str, output_name: str) -> bytes:
        if not self.voice_id:
            raise RuntimeError("ELEVENLABS_VOICE_ID is not set; please configure your .env")
        payload = {
            "text": text,
            "model_id": "eleven_multilingual_v2",
            "voice_settings": VOICE_SETTINGS,
        }
        logger.info(f"Synthesizing {output_name} with voice {self.voice_name}")
        try:
            async with httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport) as client:
                r = await client.post(
                    f"{BASE_URL}/text-to-speech/{self.voice_id}",
                    headers={**self._headers(), "Accept": "audio/mpeg", "Content-Type": "application/json"},
                    json=payload,
                )
                r.raise_for_status()
                return r.content
        except httpx.HTTPStatusError as e:
            logger.error(f"ElevenLabs failed {e.response.status_code}: {e.response.text}")
            raise ExternalServiceError("audio", f"ElevenLabs failed {e.response.status_code}: {e.response.text}")
        except httpx.HTTPError as e:
            raise ExternalServiceError("audio", f"ElevenLabs request failed: {e}")

    async def test_connection(self) -> bool:
        try:
            async with httpx.AsyncClient(timeout=HEALTH_TIMEOUT_S, transport=self._transport) as client:
                r = await client.get(f"{BASE_URL}/user", headers=self._headers())
                r.raise_for_status()
            return True
        except Exception as e:
            logger.error(f"ElevenLabs unreachable: {e}")
            return False
