"""
Multi-domain sync runner used by the CLI and the scheduler.

Domains run one after the other in the configured order; a failing domain
(including a token failure) is reported and the next domain still runs.
"""

import logging
from datetime import date
from typing import Dict, List, Optional

from ..common.config import DataLayerConfig
from ..common.credentials import TokenCache
from ..common.engine import create_engine_from_config
from ..common.errors import AuthError
from ..common.session import SessionManager
from ..upstream import build_clients
from .base import DomainSync, SyncResult, SyncWindow
from .expense_paidout import ExpensePaidoutSync
from .finance_reserve import FinanceReserveSync
from .google_review import GoogleReviewSync
from .instagram import InstagramSync
from .procurement import ProcurementSync
from .revenue_reservation import RevenueReservationSync
from .sales_collection import SalesCollectionSync


logger = logging.getLogger(__name__)

# Domain -> (sync class, upstream provider)
DOMAIN_SYNCS: Dict[str, tuple] = {
    'finance_reserve': (FinanceReserveSync, 'dynamics'),
    'sales_collection': (SalesCollectionSync, 'zoho'),
    'revenue_reservation': (RevenueReservationSync, 'zoho'),
    'procurement': (ProcurementSync, 'dynamics'),
    'expense_paidout': (ExpensePaidoutSync, 'dynamics'),
    'instagram': (InstagramSync, 'windsor'),
    'google_review': (GoogleReviewSync, 'windsor'),
}


class SyncService:
    """
    Builds one DomainSync per domain over a shared session manager,
    token cache and set of upstream clients.
    """

    def __init__(
        self,
        config: DataLayerConfig,
        session_manager: Optional[SessionManager] = None,
        clients: Optional[Dict[str, object]] = None,
        token_cache: Optional[TokenCache] = None,
        show_progress: bool = True
    ):
        self.config = config
        self.db_config = config.primary_database
        if session_manager is None:
            session_manager = SessionManager(create_engine_from_config(self.db_config))
        self.session_manager = session_manager
        self.clients = clients if clients is not None else build_clients(config, token_cache=token_cache)
        self.show_progress = show_progress

    def get_sync(self, domain: str) -> DomainSync:
        """
        Raises:
            ValueError: Unknown domain
        """
        if domain not in DOMAIN_SYNCS:
            raise ValueError(f"Unknown domain: {domain}. Available: {', '.join(DOMAIN_SYNCS)}")

        sync_class, provider = DOMAIN_SYNCS[domain]
        return sync_class(
            self.session_manager,
            self.db_config.db_type,
            self.clients.get(provider),
            sync_config=self.config.sync,
            chunk_size=self.config.batch_chunk_size,
            show_progress=self.show_progress,
        )

    def default_window(self, domain: str, today: Optional[date] = None) -> SyncWindow:
        return self.get_sync(domain).default_window(today)

    def run_domain(self, domain: str, window: Optional[SyncWindow] = None) -> SyncResult:
        """
        Run one domain and always return a result.

        Args:
            domain: Domain name (see DOMAIN_SYNCS)
            window: Sync window; the domain's default when None
        """
        sync = self.get_sync(domain)
        try:
            return sync.run(window)
        except AuthError as e:
            logger.error(f"{domain}: authentication failed: {e}")
            return SyncResult(data_source=sync.data_source, errors=[f"Authentication failed: {e}"]).finalize()
        except Exception as e:
            logger.exception(f"{domain}: sync failed")
            return SyncResult(data_source=sync.data_source, errors=[f"Sync failed: {e}"]).finalize()

    def run_all(
        self,
        window: Optional[SyncWindow] = None,
        domains: Optional[List[str]] = None,
        windows: Optional[Dict[str, SyncWindow]] = None
    ) -> Dict[str, SyncResult]:
        """
        Run domains sequentially and log a summary at the end.

        Args:
            window: Window for every domain (each domain's default when None)
            domains: Domains to run, in order (configured domains when None)
            windows: Per-domain window overriding ``window``
        """
        windows = windows or {}
        results: Dict[str, SyncResult] = {}
        for domain in (domains if domains is not None else self.config.sync.domains):
            if domain not in DOMAIN_SYNCS:
                logger.warning(f"Skipping unknown domain in configuration: {domain}")
                continue
            results[domain] = self.run_domain(domain, windows.get(domain, window))
            log_domain_result(domain, results[domain])

        log_sync_summary(results)
        return results


def log_domain_result(domain: str, result: SyncResult) -> None:
    status = 'OK' if result.success else 'FAILED'
    logger.info(
        f"[{status}] {domain}: {result.records_saved} saved, {result.records_skipped} skipped, "
        f"{len(result.errors)} errors in {result.duration:.1f}s"
    )
    for error in result.errors[:3]:
        logger.warning(f"    {domain}: {error}")
    if len(result.errors) > 3:
        logger.warning(f"    {domain}: ... and {len(result.errors) - 3} more")


def log_sync_summary(results: Dict[str, SyncResult]) -> None:
    """Totals for a multi-domain run."""
    total_saved = sum(r.records_saved for r in results.values())
    total_skipped = sum(r.records_skipped for r in results.values())
    failed = [d for d, r in results.items() if not r.success]
    duration = sum(r.duration for r in results.values())

    logger.info("=" * 70)
    logger.info(f"Sync summary: {len(results)} domains in {duration:.1f}s")
    logger.info(f"  Records saved:   {total_saved}")
    logger.info(f"  Records skipped: {total_skipped}")
    if failed:
        logger.warning(f"  Failed domains:  {', '.join(failed)}")
    logger.info("=" * 70)
