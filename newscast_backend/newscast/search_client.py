"""
Keyword search over the scraped news snippets stored in Supabase.

The search itself runs as the `search_tweets_by_keywords` Postgres function,
called through the PostgREST RPC endpoint.
"""
import logging
from typing import Dict, List, Optional

import httpx

from .errors import ExternalServiceError
from .models import Snippet
from .settings import HEALTH_TIMEOUT_S, HTTP_TIMEOUT_S, SUPABASE_KEY, SUPABASE_URL

logger = logging.getLogger(__name__)


class SnippetSearch:
    def __init__(
        self,
        url: str = SUPABASE_URL,
        key: str = SUPABASE_KEY,
        timeout_s: float = HTTP_TIMEOUT_S,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url.rstrip("/")
        self.key = key
        self.timeout_s = timeout_s
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        if not self.key:
            raise RuntimeError("SUPABASE_KEY is not set; please configure your .env")
        return {
            "apikey": self.key,
            "Authorization": f"Bearer {self.key}",
            "Content-Type": "application/json",
        }

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self._transport)

    async def search(self, keyword: str, limit: int = 3) -> List[Snippet]:
        try:
            async with self._client(self.timeout_s) as client:
                r = await client.post(
                    f"{self.url}/rest/v1/rpc/search_tweets_by_keywords",
                    headers=self._headers(),
                    json={"search_keywords": keyword, "limit_count": limit},
                )
                r.raise_for_status()
                rows = r.json() or []
        except httpx.HTTPStatusError as e:
            logger.error(f"Search failed {e.response.status_code}: {e.response.text}")
            raise ExternalServiceError("search", f"Search failed {e.response.status_code}: {e.response.text}")
        except httpx.HTTPError as e:
            logger.error(f"Search request failed: {e}")
            raise ExternalServiceError("search", f"Search request failed: {e}")
        except ValueError as e:
            raise ExternalServiceError("search", f"Search returned invalid JSON: {e}")

        snippets = [
            Snippet(
                text=row.get("content", ""),
                timestamp=row.get("tweet_created_at"),
                vip_flag=bool(row.get("is_vip")),
                vip_keyword=row.get("vip_keyword"),
            )
            for row in rows[:limit]
        ]
        logger.info(f"Found {len(snippets)} snippets for '{keyword}'")
        return snippets

    async def test_connection(self) -> bool:
        try:
            async with self._client(HEALTH_TIMEOUT_S) as client:
                r = await client.get(f"{self.url}/rest/v1/", headers=self._headers())
                r.raise_for_status()
            return True
        except Exception as e:
            logger.error(f"Search backend unreachable: {e}")
            return False
