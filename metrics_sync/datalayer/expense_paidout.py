"""
Expense payout sync (Dynamics 365 paidout service -> finance_expense_paidout).

Re-syncs the last 30 days (ending yesterday) for every entity plus one
unscoped call per day for the cross-entity total. An empty answer is a
real "nothing paid out" and is stored as a zero record.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from ..common.models import FinanceExpensePaidout, entity_scope
from .base import DomainSync, SyncTask, SyncWindow, now_utc


logger = logging.getLogger(__name__)

DATA_SOURCE = 'MSD Paidout API sync'


def summarize_paidout(rows) -> Dict[str, Decimal]:
    """Category totals over a list of PaidoutRow."""
    totals = {
        'ops_expense': Decimal('0'),
        'land_expense': Decimal('0'),
        'construction_expense': Decimal('0'),
        'cash_expense': Decimal('0'),
    }
    for row in rows:
        totals['ops_expense'] += row.operation
        totals['land_expense'] += row.land_purchase
        totals['construction_expense'] += row.construction
        totals['cash_expense'] += row.cash
    return totals


class ExpensePaidoutSync(DomainSync):
    name = 'expense_paidout'
    model = FinanceExpensePaidout
    key_columns = ['scope_key', 'date', 'data_source']
    data_source = DATA_SOURCE

    @property
    def max_workers(self) -> int:
        return self.sync_config.expense_paidout_workers

    def default_window(self, today: Optional[date] = None) -> SyncWindow:
        return SyncWindow.last_n_days(self.sync_config.expense_days_back, self.sync_config.timezone, today)

    def build_tasks(self, session: Session, window: SyncWindow) -> List[SyncTask]:
        return self.entity_day_tasks(session, window, with_aggregate=True)

    def fetch(self, token: str, task: SyncTask, window: SyncWindow) -> Any:
        return self.client.fetch_paidout_summary(token, task.day, task.day, task.entity_code)

    def rows_of(self, task: SyncTask, data: Any) -> Iterable[Any]:
        # None is "no answer"; [] is "nothing paid out" and still yields a record
        return [] if data is None else [data]

    def is_processed(self, task: SyncTask, data: Any, produced: int) -> bool:
        return not task.aggregate and bool(data)

    def transform(self, session: Session, task: SyncTask, row: Any, window: SyncWindow) -> Optional[Dict[str, Any]]:
        return {
            'entity_id': task.entity_id,
            'scope_key': entity_scope(task.entity_id),
            'date': task.day,
            **summarize_paidout(row),
            'currency': 'AED',
            'data_source': self.data_source,
            'last_synced_at': now_utc(),
        }
