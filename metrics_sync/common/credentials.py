"""
Bearer token cache shared by the upstream clients.

One entry per provider. A token is reused until ``expires_at``, which is
``now + expires_in - margin`` so that a token is never sent in its last
minute of validity.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from .errors import AuthError


logger = logging.getLogger(__name__)

# Returns (access_token, expires_in_seconds)
TokenExchange = Callable[[], Tuple[str, int]]


@dataclass
class CachedToken:
    token: str
    expires_at: float


class TokenCache:
    """
    Lazily refreshed token store.

    Concurrent callers may both see an expired entry and both exchange;
    the last writer wins and either token is valid.
    """

    def __init__(self, clock: Callable[[], float] = time.time, margin_seconds: int = 60):
        self._clock = clock
        self._margin = margin_seconds
        self._tokens: Dict[str, CachedToken] = {}

    def get_token(self, provider: str, exchange: TokenExchange) -> str:
        """
        Return a valid token for ``provider``, exchanging credentials if needed.

        Args:
            provider: Cache key (e.g. 'dynamics', 'zoho')
            exchange: Callable performing the credential exchange

        Returns:
            str: Bearer token

        Raises:
            AuthError: If the exchange fails; nothing is cached
        """
        now = self._clock()
        cached = self._tokens.get(provider)
        if cached and now < cached.expires_at:
            return cached.token

        try:
            token, expires_in = exchange()
        except AuthError:
            raise
        except Exception as e:
            raise AuthError(provider, f"token exchange failed: {e}") from e

        if not token:
            raise AuthError(provider, "token exchange returned no access token")

        self._tokens[provider] = CachedToken(
            token=token,
            expires_at=now + int(expires_in or 0) - self._margin,
        )
        logger.info(f"Obtained new {provider} access token (expires in {expires_in}s)")
        return token

    def peek(self, provider: str) -> Optional[CachedToken]:
        """Cached entry for ``provider``, expired or not."""
        return self._tokens.get(provider)

    def invalidate(self, provider: str) -> None:
        self._tokens.pop(provider, None)
