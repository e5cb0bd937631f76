"""
Instagram insights sync (Windsor.ai -> social_insights).

One snapshot per day for the default entity. New followers are derived
from the most recent earlier snapshot.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from ..common.models import SocialInsight
from .base import DomainSync, SyncTask, SyncWindow, now_utc
from .dimensions import DimensionResolver


logger = logging.getLogger(__name__)

DATA_SOURCE = 'Windsor Instagram'
PLATFORM = 'INSTAGRAM'


class InstagramSync(DomainSync):
    name = 'instagram'
    model = SocialInsight
    key_columns = ['entity_id', 'platform', 'date']
    data_source = DATA_SOURCE

    def build_tasks(self, session: Session, window: SyncWindow) -> List[SyncTask]:
        entity = DimensionResolver(session, self.sync_config.default_entity_code).default_entity()
        return [SyncTask(
            label=f"{entity.entity_code} instagram {window.to_date}",
            day=window.to_date,
            entity_id=entity.id,
            entity_code=entity.entity_code,
        )]

    def fetch(self, token: str, task: SyncTask, window: SyncWindow) -> Any:
        return self.client.fetch_instagram_snapshot(token)

    def rows_of(self, task: SyncTask, data: Any) -> Iterable[Any]:
        return [data] if data is not None else []

    def previous_followers(self, session: Session, task: SyncTask) -> Optional[int]:
        previous = session.query(SocialInsight.total_followers).filter(
            SocialInsight.entity_id == task.entity_id,
            SocialInsight.platform == PLATFORM,
            SocialInsight.date < task.day,
        ).order_by(SocialInsight.date.desc()).first()
        return previous.total_followers if previous else None

    def transform(self, session: Session, task: SyncTask, row: Any, window: SyncWindow) -> Optional[Dict[str, Any]]:
        current = row.current_followers
        previous = self.previous_followers(session, task)
        new_followers = max(0, current - previous) if previous is not None else 0

        return {
            'entity_id': task.entity_id,
            'platform': PLATFORM,
            'date': task.day,
            'total_followers': current,
            'new_followers': new_followers,
            'total_reach': row.reach,
            'new_reach': row.reach_1d,
            'posts': row.posts,
            'ai_overview': (
                f"Instagram data synced for {task.day}. Total followers: {current}, "
                f"New followers: {new_followers}, Reach: {row.reach}"
            ),
            'data_source': self.data_source,
            'last_synced_at': now_utc(),
        }
