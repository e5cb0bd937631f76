"""
Revenue reservation sync (Zoho Analytics bulk export -> revenue_reservation).

The reservations view is too large for a synchronous read, so the client
creates an export job and polls it. A failed or timed-out job fails the
single task of the run.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..common.errors import ValidationSkip
from ..common.models import RevenueReservation
from .base import DomainSync, SyncTask, SyncWindow, now_utc
from .dimensions import DimensionResolver


logger = logging.getLogger(__name__)

DATA_SOURCE = 'ZohoAnalytics'


class RevenueReservationSync(DomainSync):
    name = 'revenue_reservation'
    model = RevenueReservation
    key_columns = ['project_id', 'st_name', 'date']
    data_source = DATA_SOURCE

    resolver: Optional[DimensionResolver] = None

    def build_tasks(self, session: Session, window: SyncWindow) -> List[SyncTask]:
        self.resolver = DimensionResolver(session, self.sync_config.default_entity_code)
        return [SyncTask(label=f"reservations {window}")]

    def fetch(self, token: str, task: SyncTask, window: SyncWindow) -> Any:
        return self.client.fetch_reservations(token, window.from_date, window.to_date)

    def transform(self, session: Session, task: SyncTask, row: Any, window: SyncWindow) -> Optional[Dict[str, Any]]:
        if not row.project_name or not row.st_name or row.day is None:
            raise ValidationSkip("reservation row missing Project Name, ST Name or Date")

        if row.cancelled_units > row.reserved_units or row.cancelled_amount > row.reserved_amount:
            logger.info(
                f"Cancellations exceed reservations for {row.project_name} / {row.st_name} on {row.day}: "
                f"units {row.cancelled_units} > {row.reserved_units} or "
                f"amount {row.cancelled_amount} > {row.reserved_amount}"
            )

        project = self.resolver.find_or_create_project(row.project_name)

        return {
            'project_id': project.id,
            'project_name': project.project_name,
            'project_short_name': project.project_short_name,
            'date': row.day,
            'st_name': row.st_name,
            'sales_manager_name': row.sales_manager_name or None,
            'sales_director_name': row.sales_director_name or None,
            'reserved_amount': row.reserved_amount,
            'reserved_units': row.reserved_units,
            'cancelled_amount': row.cancelled_amount,
            'cancelled_units': row.cancelled_units,
            'type': 'Reservation',
            'currency': 'AED',
            'data_source': self.data_source,
            'last_synced_at': now_utc(),
        }
