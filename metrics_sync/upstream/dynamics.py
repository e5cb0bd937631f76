"""
Microsoft Dynamics 365 client: bank group summary, paidout and purchase
order custom services, all behind one client-credentials token.
"""

import logging
from datetime import date, datetime, time as dt_time
from typing import List, Optional, Tuple

from ..common.config import DynamicsConfig
from ..common.credentials import TokenCache
from ..common.date_utils import format_date
from ..common.errors import AuthError, UpstreamError, UpstreamTransientError
from ..common.http_client import HTTPClient
from ..common.retry import RetryPolicy
from .base import UpstreamClient
from .intake import BankGroupRow, PaidoutRow, PurchaseOrderRow


logger = logging.getLogger(__name__)


def _iso_z(value: datetime) -> str:
    """2026-01-18T23:59:59Z (seconds precision, literal Z)."""
    return value.strftime('%Y-%m-%dT%H:%M:%S') + 'Z'


def _extract_rows(payload, *keys: str) -> list:
    """First list found under ``keys`` (or the payload itself if it is a list)."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in keys:
            rows = payload.get(key)
            if isinstance(rows, list):
                return rows
    return []


class DynamicsClient(UpstreamClient):
    """
    Dynamics 365 custom services.

    Every ``fetch_*`` method returns a list of intake rows, ``[]`` for an
    empty answer, or ``None`` when the call was rejected or kept failing.
    """

    provider = 'dynamics'

    def __init__(
        self,
        config: DynamicsConfig,
        http: HTTPClient,
        token_cache: TokenCache,
        retry: Optional[RetryPolicy] = None
    ):
        super().__init__(http, token_cache, retry, timeout=config.timeout)
        self.config = config

    # =========================================================================
    # Authentication
    # =========================================================================

    def get_token(self) -> str:
        """
        Cached client-credentials token.

        Raises:
            AuthError: If credentials are missing or the exchange fails
        """
        return self.token_cache.get_token(self.provider, self._exchange_token)

    def _exchange_token(self) -> Tuple[str, int]:
        if not (self.config.tenant_id and self.config.client_id and self.config.client_secret):
            raise AuthError(self.provider, "MS_TENANT_ID / MS_CLIENT_ID / MS_CLIENT_SECRET not configured")

        try:
            payload = self._request(
                'POST',
                self.config.token_url,
                data={
                    'client_id': self.config.client_id,
                    'client_secret': self.config.client_secret,
                    'scope': self.config.scope or '',
                    'grant_type': 'client_credentials',
                },
                headers={'Content-Type': 'application/x-www-form-urlencoded'},
            )
        except UpstreamError as e:
            raise AuthError(self.provider, f"token request failed: {e}") from e

        payload = payload or {}
        return payload.get('access_token'), payload.get('expires_in', 3600)

    def _headers(self, token: str) -> dict:
        return {
            'Content-Type': 'application/json',
            'Accept': 'application/json',
            'Authorization': f"Bearer {token}",
        }

    # =========================================================================
    # Bank group summary (finance reserve)
    # =========================================================================

    def _bank_group_summary(
        self, token: str, from_date: date, to_date: date, scope_code: Optional[str]
    ) -> List[BankGroupRow]:
        if not self.config.bank_group_url:
            raise UpstreamError("MS_BANKGROUP_URL not configured")

        contract = {'fromDate': format_date(from_date), 'toDate': format_date(to_date)}
        if scope_code:
            contract['DataAreaId'] = scope_code

        payload = self._request(
            'POST', self.config.bank_group_url,
            json={'_contract': contract}, headers=self._headers(token),
        )
        rows = _extract_rows(payload, 'data', 'Response', 'Responses')
        return [BankGroupRow.from_payload(row) for row in rows]

    def fetch_bank_group_summary(
        self, token: str, from_date: date, to_date: date, scope_code: Optional[str] = None
    ) -> Optional[List[BankGroupRow]]:
        """
        Bank balances grouped by bank group (ES / NonES / other).

        Args:
            token: Bearer token
            from_date: First day (inclusive)
            to_date: Last day (inclusive)
            scope_code: Entity code (DataAreaId); None for the cross-entity total
        """
        return self.retry.call(
            self._bank_group_summary, token, from_date, to_date, scope_code,
            description=f"bank group summary {scope_code or 'ALL'} {from_date}",
        )

    # =========================================================================
    # Paidout (expense payout)
    # =========================================================================

    def _paidout_summary(
        self, token: str, from_date: date, to_date: date, scope_code: Optional[str]
    ) -> List[PaidoutRow]:
        if not self.config.paidout_url:
            raise UpstreamError("MS_PAIDOUT_URL not configured")

        contract = {
            'FromDate': _iso_z(datetime.combine(from_date, dt_time.min)),
            'ToDate': _iso_z(datetime.combine(to_date, dt_time.max)),
        }
        if scope_code:
            contract['DataAreaId'] = scope_code

        try:
            payload = self._request(
                'POST', self.config.paidout_url,
                json={'_contract': contract}, headers=self._headers(token),
            )
        except UpstreamTransientError as e:
            # The service answers 500 (NullReferenceException) when there is nothing to report
            if e.status == 500:
                logger.debug(f"Paidout returned 500 for {scope_code or 'ALL'} {from_date}, treating as empty")
                return []
            raise

        # 'Reponse' is how the service spells it on some deployments
        rows = _extract_rows(payload, 'Response', 'Reponse')
        return [PaidoutRow.from_payload(row) for row in rows]

    def fetch_paidout_summary(
        self, token: str, from_date: date, to_date: date, scope_code: Optional[str] = None
    ) -> Optional[List[PaidoutRow]]:
        """
        Paidout amounts by category for the given days.

        Args:
            token: Bearer token
            from_date: First day (inclusive)
            to_date: Last day (inclusive)
            scope_code: Entity code (DataAreaId); None for the cross-entity total
        """
        return self.retry.call(
            self._paidout_summary, token, from_date, to_date, scope_code,
            description=f"paidout {scope_code or 'ALL'} {from_date}",
        )

    # =========================================================================
    # Purchase orders (procurement)
    # =========================================================================

    def _purchase_orders(
        self, token: str, from_date: date, to_date: date, scope_code: Optional[str]
    ) -> List[PurchaseOrderRow]:
        if not self.config.procurement_url:
            raise UpstreamError("MS_PROCUREMENT_URL not configured")

        request = {'fromDate': format_date(from_date), 'toDate': format_date(to_date)}
        if scope_code:
            request['DataAreaId'] = scope_code

        payload = self._request(
            'POST', self.config.procurement_url,
            json={'_request': request}, headers=self._headers(token),
        )
        rows = _extract_rows(payload, 'Responses')
        return [PurchaseOrderRow.from_payload(row) for row in rows]

    def fetch_purchase_orders(
        self, token: str, from_date: date, to_date: date, scope_code: Optional[str] = None
    ) -> Optional[List[PurchaseOrderRow]]:
        """Purchase order headers created in the given days."""
        return self.retry.call(
            self._purchase_orders, token, from_date, to_date, scope_code,
            description=f"purchase orders {scope_code or 'ALL'} {from_date}",
        )
