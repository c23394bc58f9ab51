"""Bearer-token lifecycle with single-flight refresh"""

import asyncio
import logging
import time
from typing import Callable, List, Optional, TYPE_CHECKING

from errors import AuthError
from .models import AuthState, AuthToken, Authorized, Error, Loading, Unauthorized
from .token_exchange import AuthApiClient

if TYPE_CHECKING:
    from utils.storage import TokenStorage

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_MARGIN = 60

StateListener = Callable[[AuthState], None]


class TokenLifecycleManager:
    """Hands out valid bearer tokens and refreshes them exactly once under load

    All token-producing operations take the same lock to read and decide.
    A refresh runs as one shared task: callers that arrive while it is in
    flight await that task instead of starting another, so they all see the
    same token or the same error.
    """

    def __init__(
        self,
        api_client: AuthApiClient,
        storage: "TokenStorage",
        refresh_margin: int = DEFAULT_REFRESH_MARGIN,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            api_client: Performs the credential exchange
            storage: Persists the token (save/load/clear)
            refresh_margin: Seconds before expiry at which a token is refreshed
            clock: Returns current time in epoch seconds
        """
        self.api_client = api_client
        self.storage = storage
        self.refresh_margin = refresh_margin
        self._clock = clock
        self._lock = asyncio.Lock()
        self._inflight: Optional[asyncio.Future] = None
        self._listeners: List[StateListener] = []
        self._state: AuthState = Unauthorized()
        self._load_stored_token()

    def _load_stored_token(self):
        token = self.storage.load()
        if token is None:
            logger.debug("No stored token")
            return
        if token.is_expired(self._clock()):
            logger.info("Stored token has expired")
            return
        logger.info("Restored stored token")
        self._state = Authorized(access_token=token.access_token, expires_at=token.expires_at)

    # State observation

    @property
    def state(self) -> AuthState:
        return self._state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a state listener and call it with the current state

        Returns:
            Function that removes the listener
        """
        self._listeners.append(listener)
        listener(self._state)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_state(self, state: AuthState):
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as e:
                logger.error(f"Auth state listener failed: {e}")

    def is_authenticated(self) -> bool:
        return isinstance(self._state, Authorized)

    def needs_refresh(self) -> bool:
        """Check whether a token request is due within the refresh margin"""
        state = self._state
        if not isinstance(state, Authorized):
            return True
        return self._clock() >= state.expires_at - self.refresh_margin

    def time_until_expiry(self) -> Optional[float]:
        """Seconds until the current token expires, or None without a token"""
        state = self._state
        if not isinstance(state, Authorized):
            return None
        return state.expires_at - self._clock()

    # Token operations

    async def authenticate(self) -> str:
        """Perform the credential exchange and publish the new token

        Raises:
            AuthError: If the exchange fails
        """
        async with self._lock:
            refresh = self._start_refresh()
        return await asyncio.shield(refresh)

    async def get_valid_token(self) -> str:
        """Return the cached token, refreshing it if it is missing or near expiry

        Raises:
            AuthError: If a needed refresh fails
        """
        async with self._lock:
            if not self.needs_refresh():
                return self._state.access_token
            refresh = self._start_refresh()
        return await asyncio.shield(refresh)

    async def refresh_token(self) -> str:
        """Refresh regardless of remaining validity (used after a 401)

        Raises:
            AuthError: If the refresh fails
        """
        async with self._lock:
            refresh = self._start_refresh()
        return await asyncio.shield(refresh)

    def logout(self):
        """Forget the token locally and on disk"""
        self.storage.clear()
        self._set_state(Unauthorized())
        logger.info("Logged out")

    def _start_refresh(self) -> asyncio.Future:
        """Join the in-flight refresh or start one; call with the lock held"""
        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._run_refresh())
        else:
            logger.debug("Joining in-flight token refresh")
        return self._inflight

    async def _run_refresh(self) -> str:
        self._set_state(Loading())
        try:
            token: AuthToken = await self.api_client.get_access_token()
        except AuthError as e:
            self._set_state(Error(message=e.message))
            raise
        except Exception as e:
            logger.error(f"Token exchange failed unexpectedly: {e!r}")
            error = AuthError(f"Auth request failed: {e!r}")
            self._set_state(Error(message=error.message))
            raise error from e
        finally:
            self._inflight = None

        try:
            self.storage.save(token)
        except OSError as e:
            logger.error(f"Failed to persist token: {e}")
        self._set_state(Authorized(access_token=token.access_token, expires_at=token.expires_at))
        return token.access_token
