"""
Per-domain sync from the upstream providers into the metric tables.
"""

from .base import DomainSync, SyncResult, SyncTask, SyncWindow
from .dimensions import DimensionResolver, generate_project_code
from .expense_paidout import ExpensePaidoutSync
from .finance_reserve import FinanceReserveSync
from .google_review import GoogleReviewSync
from .instagram import InstagramSync
from .procurement import ProcurementSync
from .revenue_reservation import RevenueReservationSync
from .sales_collection import SalesCollectionSync, classify_special_type
from .service import DOMAIN_SYNCS, SyncService, log_sync_summary

__all__ = [
    'DomainSync',
    'SyncResult',
    'SyncTask',
    'SyncWindow',
    'DimensionResolver',
    'generate_project_code',
    'FinanceReserveSync',
    'ExpensePaidoutSync',
    'ProcurementSync',
    'SalesCollectionSync',
    'RevenueReservationSync',
    'InstagramSync',
    'GoogleReviewSync',
    'classify_special_type',
    'DOMAIN_SYNCS',
    'SyncService',
    'log_sync_summary',
]
