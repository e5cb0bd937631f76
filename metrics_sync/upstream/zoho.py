"""
Zoho Analytics client: collections view (synchronous) and reservations
view (bulk export job, created then polled).
"""

import json
import logging
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from ..common.config import ZohoConfig
from ..common.credentials import TokenCache
from ..common.date_utils import format_date
from ..common.errors import (
    AuthError,
    UpstreamError,
    UpstreamJobError,
    UpstreamRejectedError,
    UpstreamTimeoutError,
)
from ..common.http_client import HTTPClient
from ..common.retry import RetryPolicy
from .base import USER_AGENT, UpstreamClient
from .intake import CollectionRow, ReservationRow


logger = logging.getLogger(__name__)

# Bulk export job is still queued / still running
JOB_NOT_INITIATED = 8121
JOB_NOT_COMPLETED = 8122


class ZohoAnalyticsClient(UpstreamClient):
    """
    Zoho Analytics REST v2 client.
    """

    provider = 'zoho'

    def __init__(
        self,
        config: ZohoConfig,
        http: HTTPClient,
        token_cache: TokenCache,
        retry: Optional[RetryPolicy] = None,
        poll_interval: float = 2.0,
        poll_attempts: int = 30
    ):
        super().__init__(http, token_cache, retry, timeout=config.timeout)
        self.config = config
        self.poll_interval = poll_interval
        self.poll_attempts = poll_attempts

    # =========================================================================
    # Authentication
    # =========================================================================

    def get_token(self) -> str:
        """
        Cached access token from the refresh-token grant.

        Raises:
            AuthError: If credentials are missing or every attempt fails
        """
        return self.token_cache.get_token(self.provider, self._exchange_token)

    def _exchange_token(self) -> Tuple[str, int]:
        if not (self.config.refresh_token and self.config.client_id and self.config.client_secret):
            raise AuthError(self.provider, "ZOHO_REFRESH_TOKEN / ZOHO_CLIENT_ID / ZOHO_CLIENT_SECRET not configured")

        # 2s, 4s between attempts; 400/401 are not retried
        token_retry = RetryPolicy(
            max_attempts=self.retry.max_attempts,
            base_delay=self.retry.base_delay,
            backoff='exponential',
            sleep=self.retry.sleep,
        )
        try:
            payload = token_retry.call(
                self._request,
                'POST',
                self.config.accounts_url,
                params={
                    'refresh_token': self.config.refresh_token,
                    'client_id': self.config.client_id,
                    'client_secret': self.config.client_secret,
                    'grant_type': 'refresh_token',
                },
                headers={'User-Agent': USER_AGENT, 'Accept': 'application/json'},
                description='zoho token exchange',
                raise_on_exhaustion=True,
            )
        except UpstreamError as e:
            raise AuthError(self.provider, f"token request failed after {token_retry.max_attempts} attempts: {e}") from e

        if not payload or not payload.get('access_token'):
            raise AuthError(self.provider, "invalid response: no access token received")

        return payload['access_token'], payload.get('expires_in', 3600)

    def _headers(self, token: str) -> Dict[str, str]:
        return {
            'Authorization': f"Zoho-oauthtoken {token}",
            'ZANALYTICS-ORGID': self.config.org_id,
            'User-Agent': USER_AGENT,
            'Accept': 'application/json',
        }

    def _require(self, *fields: str) -> None:
        missing = [f for f in fields if not getattr(self.config, f)]
        if missing:
            raise UpstreamError(f"Zoho Analytics configuration missing: {', '.join(missing)}")

    # =========================================================================
    # Collections (synchronous view export)
    # =========================================================================

    def _collections(self, token: str, from_date: date, to_date: date) -> List[CollectionRow]:
        self._require('analytics_url', 'workspace_id', 'collection_view_id', 'org_id')

        config_param = json.dumps({
            'criteria': f"(\"Payment Date\">='{format_date(from_date)}' AND \"Payment Date\"<='{format_date(to_date)}')",
            'responseFormat': 'json',
        })
        url = (f"{self.config.analytics_url}workspaces/{self.config.workspace_id}"
               f"/views/{self.config.collection_view_id}/data")

        payload = self._request('GET', url, params={'CONFIG': config_param}, headers=self._headers(token))
        rows = (payload or {}).get('data') if isinstance(payload, dict) else None
        if not isinstance(rows, list):
            return []
        return [CollectionRow.from_payload(row) for row in rows]

    def fetch_collections(self, token: str, from_date: date, to_date: date) -> Optional[List[CollectionRow]]:
        """Collections rows whose payment date falls in the window."""
        return self.retry.call(
            self._collections, token, from_date, to_date,
            description=f"zoho collections {from_date}..{to_date}",
        )

    # =========================================================================
    # Reservations (bulk export job)
    # =========================================================================

    def create_export_job(self, token: str, from_date: date, to_date: date) -> str:
        """
        Start a bulk export of the reservations view.

        Returns:
            str: Job id

        Raises:
            UpstreamJobError: If Zoho does not report success
        """
        self._require('analytics_url', 'workspace_id', 'reservation_view_id', 'org_id')

        config_param = json.dumps({
            'responseFormat': 'json',
            'criteria': f"(\"Date\">='{format_date(from_date)}' AND \"Date\"<='{format_date(to_date)}')",
        })
        url = (f"{self.config.analytics_url}bulk/workspaces/{self.config.workspace_id}"
               f"/views/{self.config.reservation_view_id}/data")

        payload = self._request('GET', url, params={'CONFIG': config_param}, headers=self._headers(token)) or {}
        job_id = (payload.get('data') or {}).get('jobId') if payload.get('status') == 'success' else None
        if not job_id:
            raise UpstreamJobError(
                f"Failed to create bulk export job: {payload.get('message', 'Unknown error')}",
                payload=payload,
            )

        logger.info(f"Created Zoho bulk export job {job_id}")
        return job_id

    def poll_export_job(self, token: str, job_id: str) -> List[Dict[str, Any]]:
        """
        Poll a bulk export job until it returns data.

        Returns:
            list: Raw exported rows

        Raises:
            UpstreamJobError: Job reported failure
            UpstreamTimeoutError: Job did not finish within poll_attempts * poll_interval
        """
        self._require('analytics_url', 'workspace_id', 'org_id')
        url = f"{self.config.analytics_url}bulk/workspaces/{self.config.workspace_id}/exportjobs/{job_id}/data"

        for attempt in range(1, self.poll_attempts + 1):
            try:
                payload = self._request('GET', url, headers=self._headers(token)) or {}
            except UpstreamRejectedError as e:
                error_code = ((e.payload or {}).get('data') or {}).get('errorCode') \
                    if isinstance(e.payload, dict) else None
                if e.status == 400 and error_code in (JOB_NOT_INITIATED, JOB_NOT_COMPLETED):
                    state = 'not initiated' if error_code == JOB_NOT_INITIATED else 'not completed'
                    logger.debug(f"Export job {job_id} {state} (poll {attempt}/{self.poll_attempts})")
                    self.retry.sleep(self.poll_interval)
                    continue
                raise

            data = payload.get('data')
            if isinstance(data, list):
                logger.info(f"Export job {job_id} completed: {len(data)} rows")
                return data

            if payload.get('status') == 'failure':
                message = (data or {}).get('errorMessage', 'Job failed') if isinstance(data, dict) else 'Job failed'
                raise UpstreamJobError(f"Bulk export job failed: {message}", payload=payload)

            self.retry.sleep(self.poll_interval)

        raise UpstreamTimeoutError(
            f"Bulk export job {job_id} did not complete within "
            f"{self.poll_attempts * self.poll_interval:g} seconds"
        )

    def _reservations(self, token: str, from_date: date, to_date: date) -> List[ReservationRow]:
        job_id = self.create_export_job(token, from_date, to_date)
        rows = self.poll_export_job(token, job_id)
        return [ReservationRow.from_payload(row) for row in rows]

    def fetch_reservations(self, token: str, from_date: date, to_date: date) -> Optional[List[ReservationRow]]:
        """
        Reservation rows for the window via a bulk export job.

        Transient failures restart the whole job; job failure and polling
        timeout propagate, as does exhaustion of the retry budget.
        """
        return self.retry.call(
            self._reservations, token, from_date, to_date,
            description=f"zoho reservations {from_date}..{to_date}",
            raise_on_exhaustion=True,
        )
