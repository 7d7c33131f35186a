"""AI worker provider.

Talks to an OpenAI-compatible chat endpoint exposed at ``/api/chat``
(for example a Workers AI proxy) over the shared httpx client.
"""

from typing import Any, Dict, Optional

import httpx

from murmur.app.core.logging import get_logger
from murmur.app.exceptions import ProviderError
from murmur.app.providers.base import BaseProvider

logger = get_logger(__name__)


def _parse_retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class WorkerProvider(BaseProvider):
    """Provider for the AI worker chat API.

    The system instruction and the message travel as one user message;
    the worker models do not reliably honour a separate system role.
    """

    name = "worker"

    async def complete(
        self,
        prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> str:
        url = self._get_endpoint_url("/api/chat")
        payload = {
            "messages": [{"role": "user", "content": prompt}],
            "temperature": temperature,
            "max_tokens": max_tokens,
            "model": self.model,
        }

        try:
            async with self._client_context() as client:
                resp = await client.post(url, headers=self.headers, json=payload, timeout=self.timeout)
        except httpx.TimeoutException as e:
            raise ProviderError(
                f"Request to AI worker timed out: {e}", error_type="network_error"
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(
                f"Failed to connect to AI worker API: {e}", error_type="network_error"
            ) from e

        if resp.status_code >= 400:
            raise self._error_from_response(resp)

        try:
            data = resp.json()
        except ValueError as e:
            raise ProviderError("AI worker returned invalid JSON", status=resp.status_code,
                                error_type="api_error") from e
        return self._extract_content(data)

    def _error_from_response(self, resp: httpx.Response) -> ProviderError:
        message = f"HTTP {resp.status_code}: {resp.reason_phrase}"
        error_type = "api_error"
        try:
            body: Dict[str, Any] = resp.json()
        except ValueError:
            body = {}
        error = body.get("error") if isinstance(body, dict) else None
        if isinstance(error, dict):
            message = error.get("message") or message
            error_type = error.get("type") or error_type
        elif isinstance(error, str):
            message = error

        logger.warning(
            "AI worker request failed",
            extra={"provider": self.name, "status_code": resp.status_code},
        )
        return ProviderError(
            message,
            status=resp.status_code,
            error_type=error_type,
            retry_after=_parse_retry_after(resp),
        )
