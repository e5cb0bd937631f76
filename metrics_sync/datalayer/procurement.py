"""
Procurement sync (Dynamics 365 purchase orders -> procurement_purchase_orders).

One call per entity for the window. Purchase order ids are globally
unique and rows are never updated: anything already stored is skipped.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..common.errors import ValidationSkip
from ..common.models import ProcurementPurchaseOrder
from .base import DomainSync, SyncTask, SyncWindow, now_utc


logger = logging.getLogger(__name__)

DATA_SOURCE = 'Dynamics365'


class ProcurementSync(DomainSync):
    name = 'procurement'
    model = ProcurementPurchaseOrder
    key_columns = ['purch_id']
    data_source = DATA_SOURCE
    write_mode = 'insert'
    skip_known = True

    @property
    def max_workers(self) -> int:
        return self.sync_config.procurement_workers

    def build_tasks(self, session: Session, window: SyncWindow) -> List[SyncTask]:
        return [
            SyncTask(label=f"{code} {window}", entity_id=entity_id, entity_code=code)
            for entity_id, code in self.list_entities(session)
        ]

    def stored_scope(self, query, window: SyncWindow):
        # Orders can be re-reported on later days, so the whole table is the snapshot
        return query

    def fetch(self, token: str, task: SyncTask, window: SyncWindow) -> Any:
        return self.client.fetch_purchase_orders(token, window.from_date, window.to_date, task.entity_code)

    def transform(self, session: Session, task: SyncTask, row: Any, window: SyncWindow) -> Optional[Dict[str, Any]]:
        missing = [
            name for name, value in (
                ('PurchId', row.purch_id),
                ('vendorAccount', row.vendor_account),
                ('vendorName', row.vendor_name),
                ('totalAmount', row.total_amount),
            ) if value is None
        ]
        if missing:
            raise ValidationSkip(f"purchase order missing {', '.join(missing)}")

        # Stored naive, as reported by Dynamics (UTC)
        created = (row.created_at or now_utc()).replace(tzinfo=None)

        return {
            'purch_id': row.purch_id.upper(),
            'entity_id': task.entity_id,
            'vendor_account': row.vendor_account.upper(),
            'vendor_name': row.vendor_name,
            'total_amount': row.total_amount,
            'data_area_id': task.entity_code.upper(),
            'currency': (row.currency or 'AED').upper(),
            'purchase_order_status': row.purchase_order_status or 'None',
            'approval_status': row.approval_status or 'Draft',
            'created_timestamp': created,
            'created_date': created.date(),
            'data_source': self.data_source,
            'last_synced_at': now_utc(),
        }
