"""
Finance reserve sync (Dynamics 365 bank group summary -> finance_reserve_bank).

One call per entity per day plus one unscoped call per day for the
cross-entity total, which is stored with entity_id NULL (scope_key 'ALL').
Bank groups: ES -> escrow, NonES -> non-escrow, anything else -> other.
A zero total is not stored.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from ..common.models import FinanceReserveBank, entity_scope
from .base import DomainSync, SyncTask, SyncWindow, now_utc


logger = logging.getLogger(__name__)

DATA_SOURCE = 'MSD Bank Group Summary sync'


def summarize_bank_groups(rows) -> Dict[str, Decimal]:
    """Escrow / non-escrow / other / total for a list of BankGroupRow."""
    escrow = non_escrow = other = Decimal('0')
    for row in rows:
        if row.bank_group_id == 'ES':
            escrow += row.amount
        elif row.bank_group_id == 'NonES':
            non_escrow += row.amount
        else:
            other += row.amount
    return {
        'escrow_reserve': escrow,
        'non_escrow_reserve': non_escrow,
        'other_reserve': other,
        'total_reserve': escrow + non_escrow + other,
    }


class FinanceReserveSync(DomainSync):
    name = 'finance_reserve'
    model = FinanceReserveBank
    key_columns = ['scope_key', 'date', 'data_source']
    data_source = DATA_SOURCE

    @property
    def max_workers(self) -> int:
        return self.sync_config.finance_reserve_workers

    def build_tasks(self, session: Session, window: SyncWindow) -> List[SyncTask]:
        return self.entity_day_tasks(session, window, with_aggregate=True)

    def fetch(self, token: str, task: SyncTask, window: SyncWindow) -> Any:
        return self.client.fetch_bank_group_summary(token, task.day, task.day, task.entity_code)

    def rows_of(self, task: SyncTask, data: Any) -> Iterable[Any]:
        # All bank group lines of one call make a single record
        return [data] if data else []

    def transform(self, session: Session, task: SyncTask, row: Any, window: SyncWindow) -> Optional[Dict[str, Any]]:
        totals = summarize_bank_groups(row)
        if totals['total_reserve'] == 0:
            logger.debug(f"{task.label}: zero total reserve, not stored")
            return None

        return {
            'entity_id': task.entity_id,
            'scope_key': entity_scope(task.entity_id),
            'date': task.day,
            **totals,
            'currency': 'AED',
            'data_source': self.data_source,
            'last_synced_at': now_utc(),
        }
