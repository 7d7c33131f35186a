"""Fixed-window rate governor backed by the shared key-value store.

Each identity (client address plus session token) gets ``max_requests``
admissions per window. The count lives in the store under a
``rate_limit:`` key whose TTL ends at the window's reset time, so the
record disappears on its own when the window closes.

The read-modify-write in ``consume`` is not atomic. Two concurrent
requests for the same key can both read the same count and both be
admitted; the governor is a best-effort limiter under true concurrency.
"""

import math
import time
from dataclasses import dataclass
from typing import Callable, Mapping, Optional

from murmur.app.core.kv_store import KVStore
from murmur.app.core.logging import get_logger
from murmur.app.exceptions import QuotaExceededError

logger = get_logger(__name__)

KEY_PREFIX = "rate_limit:"

# Checked in order; the first present header wins
ADDRESS_HEADERS = ("CF-Connecting-IP", "X-Forwarded-For", "X-Real-IP")
SESSION_HEADER = "X-Session-ID"
UNKNOWN_ADDRESS = "unknown"
DEFAULT_SESSION = "default"


@dataclass
class RateLimitStatus:
    """Quota state for one identity."""
    remaining: int
    reset_at: float
    limit: int


def _normalize_count(raw: Optional[str]) -> int:
    """Parse a stored count; malformed or negative values count as zero."""
    if raw is None:
        return 0
    try:
        count = int(raw)
    except (TypeError, ValueError):
        return 0
    return max(count, 0)


def _parse_reset(metadata: Mapping) -> Optional[float]:
    value = metadata.get("reset_at") if metadata else None
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


class RateGovernor:
    """Fixed-window request governor.

    Example:
        >>> governor = RateGovernor(store, max_requests=10, window_seconds=60)
        >>> key = governor.identify(request.headers, session_id="abc")
        >>> status = await governor.consume(key)
    """

    def __init__(
        self,
        store: KVStore,
        max_requests: int = 10,
        window_seconds: int = 60,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock

    @staticmethod
    def identify(headers: Mapping[str, str], session_id: Optional[str] = None) -> str:
        """Derive the rate-limit key for a request.

        Args:
            headers: Request headers (case-insensitive mapping expected)
            session_id: Session token supplied by the caller; falls back to
                the X-Session-ID header, then to "default"
        """
        address = UNKNOWN_ADDRESS
        for header in ADDRESS_HEADERS:
            value = headers.get(header)
            if value and value.strip():
                # X-Forwarded-For lists every hop; the client is the first
                address = value.split(",")[0].strip()
                break

        session = session_id or headers.get(SESSION_HEADER) or DEFAULT_SESSION
        return f"{KEY_PREFIX}{address}:{session}"

    async def _read(self, key: str) -> tuple[int, Optional[float]]:
        """Return (count, reset_at) for the current window of key."""
        record = await self.store.get_with_metadata(key)
        if record is None:
            return 0, None
        reset_at = _parse_reset(record.metadata)
        if reset_at is not None and reset_at <= self._clock():
            # Window already over; the store has not evicted it yet
            return 0, None
        return _normalize_count(record.value), reset_at

    async def consume(self, key: str) -> RateLimitStatus:
        """Admit one request for key or raise QuotaExceededError.

        Raises:
            QuotaExceededError: If the window's quota is used up. The stored
                count is left unchanged.
        """
        now = self._clock()
        count, reset_at = await self._read(key)

        if count >= self.max_requests:
            raise QuotaExceededError(
                count=count,
                reset_at=reset_at if reset_at is not None else now + self.window_seconds,
                limit=self.max_requests,
            )

        if reset_at is None:
            reset_at = now + self.window_seconds
        new_count = count + 1
        ttl = max(1, math.ceil(reset_at - now))

        await self.store.put(
            key,
            str(new_count),
            ttl_seconds=ttl,
            metadata={"reset_at": reset_at},
        )

        return RateLimitStatus(
            remaining=self.max_requests - new_count,
            reset_at=reset_at,
            limit=self.max_requests,
        )

    async def peek(self, key: str) -> RateLimitStatus:
        """Current quota state for key without consuming anything."""
        count, reset_at = await self._read(key)
        return RateLimitStatus(
            remaining=max(0, self.max_requests - count),
            reset_at=reset_at if reset_at is not None else self._clock() + self.window_seconds,
            limit=self.max_requests,
        )

    async def clear(self, key: str) -> None:
        """Remove key's record unconditionally."""
        await self.store.delete(key)
