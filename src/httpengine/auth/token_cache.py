"""Thread-safe OAuth 2.0 token cache with single-flight fetches."""

import threading
from collections.abc import Callable

import structlog

from httpengine.auth.token import Token


logger = structlog.get_logger()


class TokenCache:
    """Caches tokens per cache key.

    At most one fetch runs per key: concurrent callers asking for the same
    key wait for the in-flight fetch and reuse its token.
    """

    def __init__(self) -> None:
        self._tokens: dict[str, Token] = {}
        self._key_locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()
        self._log = logger.bind(component="auth", subcomponent="token_cache")

    def _lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._key_locks[key] = lock
            return lock

    def get(self, key: str) -> Token | None:
        """Get the cached token if it has not expired.

        Args:
            key: Cache key.

        Returns:
            A valid token, or None.
        """
        with self._guard:
            token = self._tokens.get(key)
        if token is None or token.is_expired():
            return None
        return token

    def put(self, key: str, token: Token) -> None:
        """Store a token.

        Args:
            key: Cache key.
            token: Token to store.
        """
        with self._guard:
            self._tokens[key] = token

    def invalidate(self, key: str) -> None:
        """Drop the token stored for a key."""
        with self._guard:
            self._tokens.pop(key, None)

    def get_or_fetch(self, key: str, fetch: Callable[[], Token]) -> Token:
        """Get a valid token, fetching a new one if needed.

        Args:
            key: Cache key.
            fetch: Retrieves a new token; called at most once at a time per key.

        Returns:
            A valid token.
        """
        with self._lock_for(key):
            token = self.get(key)
            if token is not None:
                return token

            self._log.debug("token_cache_miss")
            token = fetch()
            self.put(key, token)
            return token

    def __len__(self) -> int:
        with self._guard:
            return len(self._tokens)
