"""
Google reviews sync (Windsor.ai google_my_business -> google_reviews).

The connector returns the location's whole review history in one call, so
the default window starts at REVIEW_HISTORY_START. Reviews are upserted by
their Google review id; a re-run refreshes changed ratings and comments.
"""

import logging
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..common.date_utils import today_in_tz
from ..common.errors import AuthError, ValidationSkip
from ..common.models import GoogleReview
from .base import DomainSync, SyncTask, SyncWindow, now_utc


logger = logging.getLogger(__name__)

DATA_SOURCE = 'Windsor Google Reviews'
REVIEW_HISTORY_START = date(2000, 1, 1)


class GoogleReviewSync(DomainSync):
    name = 'google_review'
    model = GoogleReview
    key_columns = ['review_id']
    data_source = DATA_SOURCE

    def default_window(self, today: Optional[date] = None) -> SyncWindow:
        return SyncWindow(REVIEW_HISTORY_START, today or today_in_tz(self.sync_config.timezone))

    def get_token(self) -> str:
        if self.client is None:
            raise AuthError(self.name, "upstream provider is not configured")
        return self.client.get_google_api_key()

    def build_tasks(self, session: Session, window: SyncWindow) -> List[SyncTask]:
        return [SyncTask(label=f"google reviews {window}")]

    def stored_scope(self, query, window: SyncWindow):
        # Undated reviews are matched by id too
        return query

    def fetch(self, token: str, task: SyncTask, window: SyncWindow) -> Any:
        return self.client.fetch_google_reviews(token, window.from_date, window.to_date)

    def transform(self, session: Session, task: SyncTask, row: Any, window: SyncWindow) -> Optional[Dict[str, Any]]:
        if not row.review_id:
            raise ValidationSkip("review without review_id")

        return {
            'review_id': row.review_id,
            'date': row.day,
            'reviewer': row.reviewer,
            'comment': row.comment,
            'star_rating': row.star_rating,
            'avg_rating': row.average_rating,
            'total_review_count': row.total_review_count,
            'sentiment': row.sentiment,
            'is_verified': False,
            'data_source': self.data_source,
            'last_synced_at': now_utc(),
        }
