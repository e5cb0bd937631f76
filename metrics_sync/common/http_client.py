"""
HTTP client for upstream API calls with connection pooling.

Adapter-level retries are off by default: upstream clients classify
failures and retry through RetryPolicy instead.
"""

import logging
from typing import Dict, List, Optional, Any
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry


logger = logging.getLogger(__name__)


class HTTPClient:
    """
    HTTP client with connection pooling and optional adapter retries.

    Features:
    - Connection pooling shared by the sync worker threads
    - Configurable timeouts
    - Does not raise on HTTP status; callers inspect the response
    """

    def __init__(
        self,
        pool_connections: int = 10,
        pool_maxsize: int = 20,
        total_retries: int = 0,
        backoff_factor: float = 1.0,
        status_forcelist: Optional[List[int]] = None,
        default_timeout: int = 30,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize HTTP client with connection pooling.

        Args:
            pool_connections: Number of connection pools to cache
            pool_maxsize: Maximum number of connections per pool
            total_retries: Adapter retry attempts (0 disables them)
            backoff_factor: Backoff factor for adapter retries
            status_forcelist: HTTP status codes the adapter retries on
            default_timeout: Default timeout in seconds
            session: Pre-built session (tests inject a fake one)
        """
        self.default_timeout = default_timeout
        self.session = session or self._create_session(
            pool_connections=pool_connections,
            pool_maxsize=pool_maxsize,
            total_retries=total_retries,
            backoff_factor=backoff_factor,
            status_forcelist=status_forcelist or [429, 502, 503, 504],
        )

    def _create_session(
        self,
        pool_connections: int,
        pool_maxsize: int,
        total_retries: int,
        backoff_factor: float,
        status_forcelist: List[int],
    ) -> requests.Session:
        """
        Create requests session with connection pooling and retry configuration.

        Returns:
            requests.Session: Configured session
        """
        session = requests.Session()

        retry_strategy = Retry(
            total=total_retries,
            backoff_factor=backoff_factor,
            status_forcelist=status_forcelist,
            allowed_methods=["GET", "POST"],
            raise_on_status=False  # Don't raise exception, let caller handle
        )

        adapter = HTTPAdapter(
            max_retries=retry_strategy,
            pool_connections=pool_connections,
            pool_maxsize=pool_maxsize,
            pool_block=True  # Block when pool is full instead of creating new connections
        )

        session.mount("https://", adapter)
        session.mount("http://", adapter)

        logger.info(
            f"HTTP client initialized: pool_connections={pool_connections}, "
            f"pool_maxsize={pool_maxsize}, retries={total_retries}, timeout={self.default_timeout}s"
        )

        return session

    def request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Any] = None,
        json: Optional[Any] = None,
        timeout: Optional[int] = None,
        **kwargs
    ) -> requests.Response:
        """
        Make HTTP request.

        Args:
            method: HTTP method (GET, POST, ...)
            url: Request URL
            headers: Optional request headers
            params: Optional URL parameters
            data: Optional request body (form data)
            json: Optional JSON request body
            timeout: Optional timeout in seconds (uses default if not provided)
            **kwargs: Additional arguments passed to requests

        Returns:
            requests.Response: HTTP response, whatever its status

        Raises:
            requests.exceptions.RequestException: On connection failure or timeout
        """
        timeout = timeout or self.default_timeout
        headers = headers or {}

        try:
            response = self.session.request(
                method=method.upper(),
                url=url,
                headers=headers,
                params=params,
                data=data,
                json=json,
                timeout=timeout,
                **kwargs
            )

            logger.debug(
                f"{method.upper()} {url} -> {response.status_code} "
                f"(size: {len(response.content)} bytes)"
            )

            return response

        except requests.exceptions.Timeout:
            logger.error(f"Request timeout after {timeout}s: {method.upper()} {url}")
            raise

        except requests.exceptions.RequestException as e:
            logger.error(f"Request failed: {method.upper()} {url} - {e}")
            raise

    def get(self, url: str, **kwargs) -> requests.Response:
        """Make GET request."""
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs) -> requests.Response:
        """Make POST request."""
        return self.request("POST", url, **kwargs)

    def close(self):
        """Close the HTTP session and release connections"""
        if self.session:
            self.session.close()
            logger.info("HTTP client session closed")
