"""Cached vendor credentials and their lifecycle."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from syncbridge.outbound.config import DEFAULT_REFRESH_BUFFER_MS

logger = logging.getLogger(__name__)


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass
class VendorCredential:
    """An access token as issued by a vendor.

    Attributes:
        access_token: Bearer token sent with API calls.
        expires_in_seconds: Token lifetime. None for keys that never expire.
        issued_at_epoch_ms: When the vendor issued the token.
        refresh_token: Long-lived token for refresh-token grants.
        extra: Other token response fields the adapter needs (instance URL,
            API domain).
    """

    access_token: str = field(repr=False)
    expires_in_seconds: int | None = None
    issued_at_epoch_ms: int = field(default_factory=now_ms)
    refresh_token: str | None = field(default=None, repr=False)
    extra: dict[str, Any] = field(default_factory=dict)

    def expires_at_ms(self) -> int | None:
        if self.expires_in_seconds is None:
            return None
        return self.issued_at_epoch_ms + self.expires_in_seconds * 1000

    def is_valid(self, now: int | None = None, refresh_buffer_ms: int = DEFAULT_REFRESH_BUFFER_MS) -> bool:
        """Return True while the token is outside its refresh window.

        Valid iff ``now < issued_at + expires_in*1000 - refresh_buffer_ms``.
        """
        if not self.access_token:
            return False
        expires_at = self.expires_at_ms()
        if expires_at is None:
            return True
        now = now_ms() if now is None else now
        return now < expires_at - refresh_buffer_ms

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, raw: str) -> VendorCredential | None:
        """Parse a stored credential. Empty or malformed values yield None."""
        if not raw:
            return None
        try:
            data = json.loads(raw)
            return cls(**data)
        except (TypeError, ValueError) as e:
            logger.warning(f"Ignoring unreadable stored credential: {e}")
            return None


@runtime_checkable
class CredentialStore(Protocol):
    """Key/value persistence for cached credentials."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...


class InMemoryCredentialStore:
    """Process-local CredentialStore, mostly for tests and scripts."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._values: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def __contains__(self, key: str) -> bool:
        return key in self._values


class TokenState(str, Enum):
    ABSENT = "absent"
    VALID = "valid"
    EXPIRING = "expiring"  # Inside the refresh buffer window
    INVALIDATED = "invalidated"


TokenExchange = Callable[[VendorCredential | None], Awaitable[VendorCredential]]


class TokenLifecycle:
    """Per-adapter state machine for one cached credential.

    States move ``ABSENT -> VALID -> EXPIRING -> VALID`` as tokens are issued
    and age, and ``* -> INVALIDATED -> VALID`` when the vendor rejects the
    token and the next authenticate() replaces it. The exchange callable
    talks to the vendor; it receives the current (possibly expired)
    credential so refresh-token grants can reuse it.

    Refreshes are single-flight: concurrent authenticate() calls during an
    expiry window share one exchange.

    Example:
        lifecycle = TokenLifecycle(
            key="salesforce-token-prod",
            exchange=adapter.exchange_token,
            store=store,
        )
        token = await lifecycle.authenticate()
    """

    def __init__(
        self,
        key: str,
        exchange: TokenExchange,
        store: CredentialStore | None = None,
        refresh_buffer_ms: int = DEFAULT_REFRESH_BUFFER_MS,
        clock: Callable[[], int] = now_ms,
    ):
        self.key = key
        self._exchange = exchange
        self._store = store
        self.refresh_buffer_ms = refresh_buffer_ms
        self._clock = clock
        self._lock = asyncio.Lock()
        self._invalidated = False
        self.credential: VendorCredential | None = None
        self.refresh_count = 0

        if store is not None:
            self.credential = VendorCredential.from_json(store.get(key) or "")

    @property
    def state(self) -> TokenState:
        if self._invalidated:
            return TokenState.INVALIDATED
        if self.credential is None or not self.credential.access_token:
            return TokenState.ABSENT
        if self.credential.is_valid(self._clock(), self.refresh_buffer_ms):
            return TokenState.VALID
        return TokenState.EXPIRING

    @property
    def access_token(self) -> str | None:
        return self.credential.access_token if self.credential else None

    async def authenticate(self) -> str:
        """Return a valid access token, exchanging for a new one if needed.

        Returns the cached token immediately while VALID. Otherwise performs
        one exchange and persists the result to the store before returning.

        Raises:
            AuthenticationError: If the token exchange fails.
        """
        if self.state == TokenState.VALID:
            return self.credential.access_token  # type: ignore[union-attr]

        async with self._lock:
            # Another caller may have refreshed while we waited
            if self.state == TokenState.VALID:
                return self.credential.access_token  # type: ignore[union-attr]

            previous = self.credential
            logger.info(f"Refreshing credential {self.key} (state={self.state.value})")
            credential = await self._exchange(previous)
            self._persist(credential)
            self.credential = credential
            self._invalidated = False
            self.refresh_count += 1
            return credential.access_token

    def invalidate(self) -> None:
        """Drop the cached credential after the vendor rejected it.

        The state reads INVALIDATED until the next successful authenticate().
        """
        self._invalidated = True
        logger.info(f"Credential {self.key} invalidated")
        self.credential = None
        self._persist(None)

    def _persist(self, credential: VendorCredential | None) -> None:
        if self._store is None:
            return
        self._store.set(self.key, credential.to_json() if credential else "")
