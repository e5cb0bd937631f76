"""
Shared request plumbing for the upstream provider clients.
"""

import logging
from typing import Any, Optional

import requests

from ..common.credentials import TokenCache
from ..common.errors import UpstreamRejectedError, UpstreamTransientError
from ..common.http_client import HTTPClient
from ..common.retry import RetryPolicy


logger = logging.getLogger(__name__)

USER_AGENT = 'Leos-Dashboard/1.0'


def parse_json(response: requests.Response) -> Any:
    """Response body as JSON, or None when the body is empty or not JSON."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None


class UpstreamClient:
    """
    Base class for one provider.

    ``_request`` turns every failure into one of two classes so that
    RetryPolicy can decide: 4xx -> UpstreamRejectedError, network error,
    timeout or 5xx -> UpstreamTransientError.
    """

    provider = 'upstream'

    def __init__(
        self,
        http: HTTPClient,
        token_cache: TokenCache,
        retry: Optional[RetryPolicy] = None,
        timeout: int = 30
    ):
        self.http = http
        self.token_cache = token_cache
        self.retry = retry or RetryPolicy()
        self.timeout = timeout

    def _request(self, method: str, url: str, **kwargs) -> Any:
        """
        Perform one HTTP call and classify the outcome.

        Returns:
            Parsed JSON body of a 2xx/3xx response

        Raises:
            UpstreamRejectedError: 4xx response (payload attached)
            UpstreamTransientError: Network failure, timeout or 5xx response
        """
        kwargs.setdefault('timeout', self.timeout)
        try:
            response = self.http.request(method, url, **kwargs)
        except requests.exceptions.RequestException as e:
            raise UpstreamTransientError(f"{self.provider} {method} {url} failed: {e}") from e

        payload = parse_json(response)
        status = response.status_code

        if status >= 500:
            raise UpstreamTransientError(
                f"{self.provider} {method} {url} returned {status}", status=status, payload=payload
            )
        if status >= 400:
            raise UpstreamRejectedError(
                f"{self.provider} {method} {url} returned {status}", status=status, payload=payload
            )

        return payload

    def close(self):
        self.http.close()
