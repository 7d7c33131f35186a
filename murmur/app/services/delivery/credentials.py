"""Access credentials for the mail transport.

The CredentialCache is an explicitly constructed object owned by the
delivery gateway. It holds one short-lived access token obtained from a
CredentialIssuer and refreshes it lazily, one refresh at a time.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

import httpx

from murmur.app.core.logging import get_logger
from murmur.app.exceptions import CredentialError

logger = get_logger(__name__)

DEFAULT_TOKEN_LIFETIME = 3600


@dataclass
class IssuedCredential:
    """A freshly issued access token and its validity in seconds."""
    token: str
    expires_in: int = DEFAULT_TOKEN_LIFETIME


@dataclass
class CachedCredential:
    token: str
    expires_at: float


class CredentialIssuer(ABC):
    """Exchanges long-lived refresh material for an access token."""

    @property
    def configured(self) -> bool:
        return True

    @abstractmethod
    async def issue(self) -> IssuedCredential:
        """Issue a new access token.

        Raises:
            CredentialError: If the exchange fails
        """


class GoogleOAuthIssuer(CredentialIssuer):
    """OAuth 2.0 refresh-token grant against Google's token endpoint."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        refresh_token: str,
        token_url: str = "https://oauth2.googleapis.com/token",
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_token = refresh_token
        self.token_url = token_url
        self._http_client = http_client
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.refresh_token)

    async def _post(self, data: dict) -> httpx.Response:
        if self._http_client is not None:
            return await self._http_client.post(self.token_url, data=data, timeout=self.timeout)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.post(self.token_url, data=data)

    async def issue(self) -> IssuedCredential:
        if not self.configured:
            raise CredentialError("Gmail OAuth credentials are not configured")

        try:
            resp = await self._post({
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "refresh_token": self.refresh_token,
                "grant_type": "refresh_token",
            })
        except httpx.HTTPError as e:
            raise CredentialError(f"OAuth token refresh failed: {e}") from e

        if resp.status_code >= 400:
            raise CredentialError(f"OAuth token refresh failed: {resp.status_code} - {resp.text}")

        try:
            data = resp.json()
        except ValueError as e:
            raise CredentialError("OAuth token endpoint returned invalid JSON") from e

        token = data.get("access_token")
        if not token:
            raise CredentialError("No access token received from OAuth refresh")

        try:
            expires_in = int(data.get("expires_in", DEFAULT_TOKEN_LIFETIME))
        except (TypeError, ValueError):
            expires_in = DEFAULT_TOKEN_LIFETIME
        return IssuedCredential(token=token, expires_in=expires_in)


class CredentialCache:
    """Caches one access token from an issuer.

    A token is not handed out within ``safety_margin`` seconds of its expiry.
    Refreshed tokens are recorded as expiring ``lifetime_margin`` seconds
    before the issuer says they do, so a 1-hour token is held for 55 minutes.
    Concurrent callers that find the cache stale share a single refresh.

    Args:
        issuer: Source of new tokens
        safety_margin: Seconds before expiry at which a token is no longer used
        lifetime_margin: Seconds shaved off each issued token's lifetime
        clock: Time source, in epoch seconds
    """

    def __init__(
        self,
        issuer: CredentialIssuer,
        safety_margin: int = 60,
        lifetime_margin: int = 300,
        clock: Callable[[], float] = time.time,
    ):
        self.issuer = issuer
        self.safety_margin = safety_margin
        self.lifetime_margin = lifetime_margin
        self._clock = clock
        self._cached: Optional[CachedCredential] = None
        self._refresh_lock = asyncio.Lock()
        self.refresh_count = 0

    @property
    def cached(self) -> Optional[CachedCredential]:
        return self._cached

    def _usable(self) -> Optional[str]:
        cached = self._cached
        if cached is not None and cached.expires_at > self._clock() + self.safety_margin:
            return cached.token
        return None

    async def get(self) -> str:
        """Return a usable access token, refreshing it if needed.

        Raises:
            CredentialError: If a refresh is needed and fails
        """
        token = self._usable()
        if token is not None:
            return token

        async with self._refresh_lock:
            # Another caller may have refreshed while we waited
            token = self._usable()
            if token is not None:
                return token

            issued = await self.issuer.issue()
            lifetime = max(issued.expires_in - self.lifetime_margin, 0)
            self._cached = CachedCredential(
                token=issued.token,
                expires_at=self._clock() + lifetime,
            )
            self.refresh_count += 1
            logger.info("Mail transport access token refreshed")
            return issued.token

    def invalidate(self) -> None:
        """Drop the cached token so the next get() refreshes."""
        self._cached = None
