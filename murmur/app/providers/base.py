from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import httpx

from murmur.app.exceptions import ProviderError


class BaseProvider(ABC):
    """Base class for text completion providers.

    Subclasses can accept an external httpx.AsyncClient for connection pooling,
    or create their own if not provided.

    Every implementation returns the generated text from ``complete`` or raises
    ``ProviderError`` carrying the upstream status, error type and retry hint.
    """

    name: str = "base"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        model: str,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0
    ):
        """Initialize the provider.

        Args:
            base_url: The API base URL
            api_key: The API key for authentication
            model: Model identifier sent with each request
            http_client: Optional shared HTTP client for connection pooling
            timeout: Request timeout in seconds
        """
        self._http_client = http_client
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.headers = self._build_headers()

    @property
    def http_client(self) -> Optional[httpx.AsyncClient]:
        """Get the HTTP client, if one was provided."""
        return self._http_client

    def _build_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }

    @asynccontextmanager
    async def _client_context(self):
        """Yield the shared client, or a per-request client closed afterwards."""
        if self._http_client is not None:
            yield self._http_client
            return
        client = httpx.AsyncClient(timeout=self.timeout)
        try:
            yield client
        finally:
            await client.aclose()

    def _get_endpoint_url(self, endpoint: str) -> str:
        return f"{self.base_url}{endpoint}"

    @staticmethod
    def _extract_content(data: Dict[str, Any]) -> str:
        """Pull the first choice's message content out of a chat completion body.

        Raises:
            ProviderError: If the body has no choices or no content
        """
        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices:
            raise ProviderError("No completion choices returned from API", error_type="api_error")
        message = choices[0].get("message") or {}
        content = message.get("content")
        if content is None:
            raise ProviderError("Completion choice has no content", error_type="api_error")
        return content

    @abstractmethod
    async def complete(
        self,
        prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> str:
        """Send a single-message completion request.

        Args:
            prompt: The full instruction-plus-content prompt
            temperature: Sampling temperature
            max_tokens: Output token budget

        Returns:
            The generated text, possibly empty

        Raises:
            ProviderError: On transport failures and non-2xx responses
        """
