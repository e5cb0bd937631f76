"""
Windsor.ai connector client (Instagram account insights, Google My Business reviews).
"""

import logging
from datetime import date
from typing import Any, Dict, List, Optional

from ..common.config import WindsorConfig
from ..common.credentials import TokenCache
from ..common.errors import AuthError
from ..common.http_client import HTTPClient
from ..common.retry import RetryPolicy
from .base import UpstreamClient
from .intake import GoogleReviewRow, InstagramSnapshot


logger = logging.getLogger(__name__)

ACCOUNT_FIELDS = 'account_id,account_name,followers_count,follows_count,media_count,name,user_name,username,website'
DAILY_FIELDS = 'date,account_name,followers_count,reach,reach_1d'
REVIEW_FIELDS = (
    'review_id,date,review_comment,review_reviewer,review_star_rating,'
    'review_average_rating_total,review_total_count'
)


class WindsorClient(UpstreamClient):
    """
    Windsor.ai uses a static API key; ``get_token`` returns it so the
    orchestrator treats every provider the same way.
    """

    provider = 'windsor'

    def __init__(
        self,
        config: WindsorConfig,
        http: HTTPClient,
        token_cache: TokenCache,
        retry: Optional[RetryPolicy] = None
    ):
        super().__init__(http, token_cache, retry, timeout=config.timeout)
        self.config = config

    def get_token(self) -> str:
        if not self.config.api_key:
            raise AuthError(self.provider, "WINDSOR_INSTAGRAM_API_KEY not configured")
        return self.config.api_key

    def _first_row(self, api_key: str, fields: str) -> Dict[str, Any]:
        payload = self._request(
            'GET',
            f"{self.config.base_url}/instagram",
            params={'api_key': api_key, 'fields': fields, 'date_preset': 'last_1d'},
        )
        rows = payload.get('data') if isinstance(payload, dict) else None
        return rows[0] if isinstance(rows, list) and rows else {}

    def _snapshot(self, api_key: str) -> InstagramSnapshot:
        account = self._first_row(api_key, ACCOUNT_FIELDS)
        daily = self._first_row(api_key, DAILY_FIELDS)
        return InstagramSnapshot.from_payloads(account, daily)

    def fetch_instagram_snapshot(self, api_key: str) -> Optional[InstagramSnapshot]:
        """All-time account totals plus the last day's reach."""
        return self.retry.call(self._snapshot, api_key, description='windsor instagram')

    def get_google_api_key(self) -> str:
        if not self.config.google_api_key:
            raise AuthError(self.provider, "WINDSOR_API_KEY not configured")
        return self.config.google_api_key

    def _reviews(self, api_key: str, from_date: date, to_date: date) -> List[GoogleReviewRow]:
        payload = self._request(
            'GET',
            f"{self.config.base_url}/google_my_business",
            params={
                'api_key': api_key,
                'date_from': from_date.isoformat(),
                'date_to': to_date.isoformat(),
                'fields': REVIEW_FIELDS,
            },
        )
        rows = payload if isinstance(payload, list) else (payload or {}).get('data') or []
        logger.info(f"Windsor returned {len(rows)} Google reviews for {from_date}..{to_date}")
        return [GoogleReviewRow.from_payload(row) for row in rows if isinstance(row, dict)]

    def fetch_google_reviews(self, api_key: str, from_date: date, to_date: date) -> Optional[List[GoogleReviewRow]]:
        """Every review dated in the range (the connector has no paging)."""
        return self.retry.call(self._reviews, api_key, from_date, to_date, description='windsor google reviews')
