"""
Retry policy for upstream calls.

Only UpstreamTransientError is retried. A rejected request (4xx) gives up
immediately. Exhaustion yields ``None`` (no data for the slice) unless the
caller asks for the last error to be raised.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from .errors import UpstreamRejectedError, UpstreamTransientError


logger = logging.getLogger(__name__)


@dataclass
class RetryPolicy:
    """
    Attempts and delays for one class of upstream call.

    backoff:
        'linear'      -> base_delay * attempt        (2s, 4s, 6s, ...)
        'exponential' -> base_delay * 2**(attempt-1) (2s, 4s, 8s, ...)
    """
    max_attempts: int = 3
    base_delay: float = 2.0
    backoff: str = 'linear'
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def delay_for(self, attempt: int) -> float:
        """Delay after failed attempt number ``attempt`` (1-based)."""
        if self.backoff == 'exponential':
            return self.base_delay * (2 ** (attempt - 1))
        return self.base_delay * attempt

    def call(
        self,
        func: Callable[..., Any],
        *args,
        description: str = '',
        raise_on_exhaustion: bool = False,
        **kwargs
    ) -> Optional[Any]:
        """
        Call ``func`` under this policy.

        Args:
            func: Callable raising UpstreamTransientError / UpstreamRejectedError
            description: Label used in log messages
            raise_on_exhaustion: Re-raise the last transient error instead of returning None

        Returns:
            The callable's result, or None if the request was rejected or
            every attempt failed

        Raises:
            UpstreamTransientError: Only when raise_on_exhaustion is set
        """
        label = description or getattr(func, '__name__', 'upstream call')

        for attempt in range(1, self.max_attempts + 1):
            try:
                return func(*args, **kwargs)

            except UpstreamRejectedError as e:
                logger.warning(f"{label}: rejected (status={e.status}), not retrying: {e}")
                return None

            except UpstreamTransientError as e:
                if attempt >= self.max_attempts:
                    logger.error(f"{label}: failed after {attempt} attempts: {e}")
                    if raise_on_exhaustion:
                        raise
                    return None

                delay = self.delay_for(attempt)
                logger.warning(
                    f"{label}: attempt {attempt}/{self.max_attempts} failed ({e}), "
                    f"retrying in {delay:g}s"
                )
                self.sleep(delay)

        return None
