"""Mail transports that accept a pre-encoded envelope and an access token."""

from abc import ABC, abstractmethod
from typing import Optional

import httpx

from murmur.app.core.logging import get_logger
from murmur.app.exceptions import TransportError

logger = get_logger(__name__)


class MessageTransport(ABC):
    """Sends one encoded envelope using a bearer credential."""

    name: str = "transport"

    @abstractmethod
    async def send(self, raw_envelope: str, token: str) -> Optional[str]:
        """Send the envelope.

        Args:
            raw_envelope: Unpadded base64url encoding of the RFC 5322 message
            token: Access token

        Returns:
            The transport's message id, if it reports one

        Raises:
            TransportError: If the send is rejected; ``status`` is 401 when
                the credential was not accepted
        """


class GmailTransport(MessageTransport):
    """Gmail API ``users/me/messages/send``."""

    name = "gmail"

    def __init__(
        self,
        base_url: str = "https://gmail.googleapis.com/gmail/v1",
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self._http_client = http_client
        self.timeout = timeout

    @property
    def send_url(self) -> str:
        return f"{self.base_url}/users/me/messages/send"

    async def _post(self, payload: dict, headers: dict) -> httpx.Response:
        if self._http_client is not None:
            return await self._http_client.post(
                self.send_url, json=payload, headers=headers, timeout=self.timeout
            )
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.post(self.send_url, json=payload, headers=headers)

    async def send(self, raw_envelope: str, token: str) -> Optional[str]:
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        try:
            resp = await self._post({"raw": raw_envelope}, headers)
        except httpx.HTTPError as e:
            raise TransportError(f"Gmail API request failed: {e}") from e

        if resp.status_code >= 400:
            raise TransportError(
                f"Gmail API error: {resp.status_code} - {resp.text}",
                status=resp.status_code,
            )

        try:
            return resp.json().get("id")
        except ValueError:
            return None
