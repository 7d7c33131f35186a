"""OpenAI API provider implementation.

Compatible with OpenAI API and other OpenAI-compatible endpoints.
Uses the official SDK with automatic retries disabled; the relay never
retries a transformation on its own.
"""

from typing import Optional

import httpx
from openai import APIConnectionError, APIStatusError, APITimeoutError, AsyncOpenAI

from murmur.app.core.logging import get_logger
from murmur.app.exceptions import ProviderError
from murmur.app.providers.base import BaseProvider

logger = get_logger(__name__)


class OpenAIProvider(BaseProvider):
    """OpenAI chat completions provider."""

    name = "openai"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        model: str,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        client: Optional[AsyncOpenAI] = None,
    ):
        super().__init__(base_url, api_key, model, http_client, timeout)
        self._client = client or AsyncOpenAI(
            api_key=api_key,
            base_url=self.base_url,
            timeout=timeout,
            max_retries=0,
            http_client=http_client,
        )

    async def complete(
        self,
        prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> str:
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except APITimeoutError as e:
            raise ProviderError(f"OpenAI request timed out: {e}", error_type="network_error") from e
        except APIConnectionError as e:
            raise ProviderError(f"Failed to connect to OpenAI: {e}", error_type="network_error") from e
        except APIStatusError as e:
            retry_after = None
            header = e.response.headers.get("retry-after") if e.response is not None else None
            if header:
                try:
                    retry_after = float(header)
                except ValueError:
                    retry_after = None
            logger.warning(
                "OpenAI request failed",
                extra={"provider": self.name, "status_code": e.status_code},
            )
            raise ProviderError(
                e.message, status=e.status_code, error_type="api_error", retry_after=retry_after
            ) from e

        if not response.choices:
            raise ProviderError("No completion choices returned from API", error_type="api_error")
        return response.choices[0].message.content or ""
