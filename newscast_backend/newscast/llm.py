import logging
from typing import List, Optional, Tuple

from .models import Snippet
from .prompts import (
    CAPTION_PROMPT_TEMPLATE,
    CAPTION_SYSTEM_PROMPT,
    NO_RESULTS_TEMPLATE,
    SCRIPT_SYSTEM_PROMPT,
    SCRIPT_USER_PROMPT_TEMPLATE,
    build_context,
)
from .settings import HEALTH_TIMEOUT_S, HTTP_TIMEOUT_S, OPENAI_API_KEY, OPENAI_MODEL

logger = logging.getLogger(__name__)


def count_words(text: str) -> int:
    return len(text.split())


class _OpenAIBacked:
    def __init__(self, client=None, model: str = OPENAI_MODEL, api_key: str = OPENAI_API_KEY):
        self._client = client
        self.model = model
        self._api_key = api_key

    def _get_client(self):
        if self._client is None:
            from openai import AsyncOpenAI
            if not self._api_key:
                raise RuntimeError("OPENAI_API_KEY is not set; please configure your .env")
            self._client = AsyncOpenAI(api_key=self._api_key, timeout=HTTP_TIMEOUT_S, max_retries=0)
        return self._client

    async def _complete(self, messages, temperature: float, max_tokens: int) -> str:
        resp = await self._get_client().chat.completions.create(
            model=self.model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        return (resp.choices[0].message.content or "").strip()

    async def test_connection(self) -> bool:
        try:
            await self._get_client().with_options(timeout=HEALTH_TIMEOUT_S).models.retrieve(self.model)
            return True
        except Exception as e:
            logger.error(f"OpenAI unreachable: {e}")
            return False


class ScriptWriter(_OpenAIBacked):
    """Writes the 75-80 word narration from retrieved snippets."""

    async def generate(self, topic: str, snippets: List[Snippet]) -> Tuple[str, int]:
        if not snippets:
            return NO_RESULTS_TEMPLATE.format(topic=topic), 0
        logger.info(f"Calling OpenAI to write script for '{topic}' from {len(snippets)} snippets")
        user_prompt = SCRIPT_USER_PROMPT_TEMPLATE.format(topic=topic, context=build_context(snippets))
        text = await self._complete(
            [
                {"role": "system", "content": SCRIPT_SYSTEM_PROMPT},
                {"role": "user", "content": user_prompt},
            ],
            temperature=0.7,
            max_tokens=200,
        )
        words = count_words(text)
        logger.info(f"Script generated: {words} words")
        return text, words


class CaptionWriter(_OpenAIBacked):
    async def generate(self, script: str, presenter_name: Optional[str] = None) -> str:
        logger.info(f"Calling OpenAI to write caption ({presenter_name or 'presenter'})")
        return await self._complete(
            [
                {"role": "system", "content": CAPTION_SYSTEM_PROMPT},
                {"role": "user", "content": CAPTION_PROMPT_TEMPLATE.format(script=script)},
            ],
            temperature=0.8,
            max_tokens=300,
        )
