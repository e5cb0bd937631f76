"""
Sales collection sync (Zoho Analytics collections view -> sales_collection).

Single call for the whole window. Rows named "Grand Summary" or
"No Value" are sentinels: stored with entity and project NULL and
special_type set, keyed by (special_type, date). Every other row is
resolved to a project (created on first sight) and its owning entity.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..common.errors import ValidationSkip
from ..common.models import SalesCollection, SPECIAL_GRAND_SUMMARY, SPECIAL_NO_VALUE
from .base import DomainSync, SyncTask, SyncWindow, now_utc
from .dimensions import DimensionResolver


logger = logging.getLogger(__name__)

DATA_SOURCE = 'ZOHO SALES API'

_SENTINEL_PATTERNS = (
    (re.compile(r'grand\s*summary', re.IGNORECASE), SPECIAL_GRAND_SUMMARY),
    (re.compile(r'no\s*value', re.IGNORECASE), SPECIAL_NO_VALUE),
)


def classify_special_type(project_name: str) -> Optional[str]:
    """Sentinel tag for a project-name cell, or None for a real project."""
    for pattern, special_type in _SENTINEL_PATTERNS:
        if pattern.search(project_name or ''):
            return special_type
    return None


class SalesCollectionSync(DomainSync):
    name = 'sales_collection'
    model = SalesCollection
    key_columns = ['scope_key', 'date']
    data_source = DATA_SOURCE

    resolver: Optional[DimensionResolver] = None

    def build_tasks(self, session: Session, window: SyncWindow) -> List[SyncTask]:
        self.resolver = DimensionResolver(session, self.sync_config.default_entity_code)
        return [SyncTask(label=f"collections {window}")]

    def fetch(self, token: str, task: SyncTask, window: SyncWindow) -> Any:
        return self.client.fetch_collections(token, window.from_date, window.to_date)

    def transform(self, session: Session, task: SyncTask, row: Any, window: SyncWindow) -> Optional[Dict[str, Any]]:
        record = {
            'date': row.payment_date or window.from_date,
            'escrow_collection': row.escrow,
            'non_escrow_collection': row.non_escrow,
            'mtd_escrow_collection': row.mtd_escrow,
            'mtd_non_escrow_collection': row.mtd_non_escrow,
            'data_source': self.data_source,
            'last_synced_at': now_utc(),
        }

        special_type = classify_special_type(row.project_name)
        if special_type:
            record.update({
                'entity_id': None,
                'project_id': None,
                'scope_key': special_type,
                'special_type': special_type,
            })
            return record

        if not row.project_name:
            raise ValidationSkip("collection row without project name")

        project = self.resolver.find_or_create_project(row.project_name)
        record.update({
            'entity_id': project.entity_id,
            'project_id': project.id,
            'scope_key': f"{project.entity_id}:{project.id}",
            'special_type': None,
        })
        return record
