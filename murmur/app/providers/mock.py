"""Mock provider for local development.

Produces a deterministic stand-in rewrite without calling any external
API. Enable with ``COMPLETION_PROVIDER=mock``.
"""

import asyncio
import re
from typing import Optional

from murmur.app.providers.base import BaseProvider

_MESSAGE_BLOCK = re.compile(r'Original message:\s*"(?P<message>.*)"', re.DOTALL)

_SWAPS = {
    "i": "this writer",
    "my": "the writer's",
    "me": "the writer",
    "great": "commendable",
    "good": "satisfactory",
    "bad": "unsatisfactory",
    "really": "notably",
    "very": "quite",
}


class MockProvider(BaseProvider):
    """Mock provider that rewrites the quoted message with word swaps."""

    name = "mock"

    def __init__(
        self,
        base_url: str = "http://mock.provider",
        api_key: str = "mock-key",
        model: str = "mock-model",
        http_client: Optional[object] = None,
        timeout: float = 30.0,
        delay: float = 0.0,
    ):
        super().__init__(base_url, api_key, model, None, timeout)
        self.delay = delay

    def _rewrite(self, prompt: str) -> str:
        match = _MESSAGE_BLOCK.search(prompt)
        message = match.group("message") if match else prompt
        words = []
        for word in message.split():
            core = word.strip(".,!?;:").lower()
            words.append(_SWAPS.get(core, word.lower()))
        return "Paraphrased note: " + " ".join(words)

    async def complete(
        self,
        prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> str:
        if self.delay:
            await asyncio.sleep(self.delay)
        return self._rewrite(prompt)
