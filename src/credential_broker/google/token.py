"""Access token lifecycle for service account authentication.

TokenManager keeps one OAuth access token available:
- Foreground: ensure_token() acquires a token on demand when none is held
  or the held one is inside the safety margin of its expiry.
- Background: every successful acquisition arms a one-shot timer at the
  token's refresh boundary. When it fires the token is re-acquired and the
  timer re-armed. A failed background refresh is logged and ends the chain;
  the next foreground acquisition starts it again.

Example:
    >>> async with httpx.AsyncClient() as http:
    ...     tokens = TokenManager(key, http)
    ...     token = await tokens.ensure_token()
    ...     headers = {"Authorization": token.authorization}
    ...     tokens.shutdown()
"""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

import httpx

from credential_broker.google.exceptions import AuthError
from credential_broker.google.service_account import (
    ASSERTION_LIFETIME,
    SHEETS_SCOPE,
    ServiceAccountKey,
    sign_assertion,
)

logger = logging.getLogger(__name__)


JWT_BEARER_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:jwt-bearer"

# Seconds subtracted from the reported expiry to get the refresh boundary
SAFETY_MARGIN = 300


@dataclass(frozen=True)
class AccessToken:
    """A bearer token and its expiry bookkeeping (Unix timestamps)."""

    value: str
    issued_at: float
    expires_at: float
    refresh_at: float
    token_type: str = "Bearer"

    def is_usable(self, now: float) -> bool:
        """Whether the token may still be handed out at ``now``."""
        return now < self.refresh_at

    @property
    def authorization(self) -> str:
        """Value for the HTTP Authorization header."""
        return f"{self.token_type} {self.value}"


class TokenManager:
    """Acquires, caches and renews a service account access token.

    Acquisitions are serialised: concurrent callers that find the token
    stale wait for a single exchange instead of each issuing their own.
    """

    def __init__(
        self,
        key: ServiceAccountKey,
        http: httpx.AsyncClient,
        scope: str = SHEETS_SCOPE,
        token_url: str | None = None,
        safety_margin: float = SAFETY_MARGIN,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the token manager.

        Args:
            key: Service account key used to sign assertions.
            http: HTTP client for the token exchange. Not closed by the manager.
            scope: OAuth scope requested for the token.
            token_url: Token endpoint. Defaults to the key's token URI.
            safety_margin: Seconds before expiry at which a token is renewed.
            clock: Source of the current Unix time.

        Raises:
            ValueError: If safety_margin is negative.
        """
        if safety_margin < 0:
            raise ValueError(f"safety_margin must not be negative, got {safety_margin}")

        self.key = key
        self.scope = scope
        self.token_url = token_url or key.token_uri
        self.safety_margin = safety_margin

        self._http = http
        self._clock = clock
        self._token: AccessToken | None = None
        self._lock = asyncio.Lock()
        self._timer: asyncio.TimerHandle | None = None
        self._background: set[asyncio.Task] = set()
        self._stopped = False

        self.last_refresh: datetime | None = None
        self.refresh_count = 0

    @property
    def token(self) -> AccessToken | None:
        """The currently held token, usable or not."""
        return self._token

    @property
    def refresh_pending(self) -> bool:
        """Whether a background refresh timer is armed."""
        return self._timer is not None

    @property
    def stopped(self) -> bool:
        """Whether shutdown() has been called."""
        return self._stopped

    async def ensure_token(self) -> AccessToken:
        """Return a usable token, acquiring a new one if needed.

        Raises:
            AuthError: If the assertion cannot be signed or the exchange fails.
        """
        token = self._token
        if token is not None and token.is_usable(self._clock()):
            return token

        async with self._lock:
            # Another caller may have finished an acquisition while we waited
            token = self._token
            if token is not None and token.is_usable(self._clock()):
                return token
            return await self._acquire()

    async def refresh(self) -> AccessToken:
        """Unconditionally acquire a new token.

        Raises:
            AuthError: If the assertion cannot be signed or the exchange fails.
        """
        async with self._lock:
            return await self._acquire()

    async def _acquire(self) -> AccessToken:
        """Sign an assertion and exchange it for an access token."""
        issued_at = self._clock()
        assertion = sign_assertion(
            self.key, int(issued_at), scope=self.scope, audience=self.token_url
        )

        try:
            response = await self._http.post(
                self.token_url,
                data={"grant_type": JWT_BEARER_GRANT_TYPE, "assertion": assertion},
            )
        except (httpx.HTTPError, RuntimeError) as e:
            # RuntimeError: the HTTP client was closed
            logger.error(f"Token request failed: {e}")
            raise AuthError(f"Token request failed: {e}") from e

        if response.is_error:
            logger.error(f"Token endpoint returned {response.status_code}: {response.text}")
            raise AuthError(
                f"Token endpoint rejected assertion: {response.text}",
                status_code=response.status_code,
            )

        token = self._parse_token(response, issued_at)

        # Replaced only after the response is fully validated
        self._token = token
        self.last_refresh = datetime.now()
        self.refresh_count += 1
        logger.info(
            f"Access token acquired for {self.key.client_email}, "
            f"refresh due in {timedelta(seconds=max(0, int(token.refresh_at - issued_at)))}"
        )

        self.schedule_background_refresh(token)
        return token

    def _parse_token(self, response: httpx.Response, issued_at: float) -> AccessToken:
        """Build an AccessToken from a token endpoint response."""
        try:
            payload: Any = response.json()
        except ValueError as e:
            logger.error(f"Token endpoint returned invalid JSON: {e}")
            raise AuthError("Token endpoint returned invalid JSON") from e

        access_token = payload.get("access_token") if isinstance(payload, dict) else None
        if not access_token:
            logger.error("Token endpoint response has no access_token")
            raise AuthError("Failed to obtain access token: response has no access_token")

        try:
            expires_in = float(payload.get("expires_in", ASSERTION_LIFETIME))
        except (TypeError, ValueError) as e:
            logger.error(f"Token endpoint returned invalid expires_in: {payload.get('expires_in')!r}")
            raise AuthError("Token endpoint returned invalid expires_in") from e

        expires_at = issued_at + expires_in
        return AccessToken(
            value=access_token,
            issued_at=issued_at,
            expires_at=expires_at,
            refresh_at=expires_at - self.safety_margin,
            token_type=payload.get("token_type", "Bearer"),
        )

    def schedule_background_refresh(self, token: AccessToken) -> None:
        """Arm the one-shot refresh timer at the token's refresh boundary.

        Replaces any timer already armed. Does nothing after shutdown(), or
        when the boundary is not after issuance (the safety margin swallows
        the whole token lifetime).
        Must be called from within a running event loop.
        """
        if self._stopped:
            logger.debug("Token manager stopped; background refresh not scheduled")
            return

        self._cancel_timer()
        if token.refresh_at <= token.issued_at:
            logger.warning(
                f"Token lifetime {token.expires_at - token.issued_at:.0f}s does not exceed "
                f"the safety margin {self.safety_margin:.0f}s; background refresh not scheduled"
            )
            return

        delay = max(token.refresh_at - self._clock(), 0)
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(delay, self._on_refresh_timer)
        logger.debug(f"Background refresh scheduled in {delay:.0f}s")

    def _on_refresh_timer(self) -> None:
        self._timer = None
        if self._stopped:
            return

        task = asyncio.ensure_future(self._background_refresh())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _background_refresh(self) -> None:
        try:
            await self.refresh()
        except Exception as e:
            # No retry: the next foreground ensure_token() restarts the chain
            logger.error(f"Error refreshing token in background: {e}")
            return
        logger.info("Token refreshed in background")

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def shutdown(self) -> None:
        """Stop background refreshing.

        Cancels the pending timer, if any. A renewal already in flight is
        allowed to finish but will not re-arm the timer. Safe to call any
        number of times.
        """
        if not self._stopped:
            logger.info("Token manager shutting down")
        self._stopped = True
        self._cancel_timer()

    async def wait_background(self) -> None:
        """Wait for in-flight background renewals to finish."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    def get_token_info(self) -> dict[str, Any]:
        """Get information about the current token.

        Returns:
            Dictionary with token status, expiry and refresh bookkeeping.
            The token value itself is never included.
        """
        if self._token is None:
            return {"status": "no_token"}

        now = self._clock()
        token = self._token
        return {
            "status": "valid" if token.is_usable(now) else "expired",
            "scope": self.scope,
            "expires_in": str(timedelta(seconds=max(0, int(token.expires_at - now)))),
            "refresh_in": str(timedelta(seconds=max(0, int(token.refresh_at - now)))),
            "refresh_pending": self.refresh_pending,
            "refresh_count": self.refresh_count,
            "last_refresh": self.last_refresh.isoformat() if self.last_refresh else None,
        }
