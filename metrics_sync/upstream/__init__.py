"""
Upstream provider clients.

Each client owns its provider's token exchange and endpoints, classifies
failures for the retry policy and returns typed intake rows.
"""

from typing import Optional

from ..common.config import DataLayerConfig
from ..common.credentials import TokenCache
from ..common.http_client import HTTPClient
from ..common.retry import RetryPolicy
from .base import UpstreamClient
from .dynamics import DynamicsClient
from .intake import (
    BankGroupRow,
    PaidoutRow,
    PurchaseOrderRow,
    CollectionRow,
    ReservationRow,
    InstagramSnapshot,
    GoogleReviewRow,
)
from .windsor import WindsorClient
from .zoho import ZohoAnalyticsClient


def build_http_client(config: DataLayerConfig) -> HTTPClient:
    return HTTPClient(
        pool_connections=config.http_pool_connections,
        pool_maxsize=config.http_pool_maxsize,
        total_retries=config.http_total_retries,
        default_timeout=config.http_timeout,
    )


def build_clients(
    config: DataLayerConfig,
    token_cache: Optional[TokenCache] = None,
    http: Optional[HTTPClient] = None
) -> dict:
    """
    Clients for every configured provider, sharing one HTTP pool and token cache.

    Returns:
        dict: provider name -> client (unconfigured providers are omitted)
    """
    token_cache = token_cache or TokenCache()
    http = http or build_http_client(config)
    retry = RetryPolicy(max_attempts=config.sync.retry_attempts, base_delay=config.sync.retry_delay)

    clients = {}
    if config.dynamics:
        clients['dynamics'] = DynamicsClient(config.dynamics, http, token_cache, retry)
    if config.zoho:
        clients['zoho'] = ZohoAnalyticsClient(
            config.zoho, http, token_cache, retry,
            poll_interval=config.sync.poll_interval,
            poll_attempts=config.sync.poll_attempts,
        )
    if config.windsor:
        clients['windsor'] = WindsorClient(config.windsor, http, token_cache, retry)
    return clients


__all__ = [
    'UpstreamClient',
    'DynamicsClient',
    'ZohoAnalyticsClient',
    'WindsorClient',
    'BankGroupRow',
    'PaidoutRow',
    'PurchaseOrderRow',
    'CollectionRow',
    'ReservationRow',
    'InstagramSnapshot',
    'GoogleReviewRow',
    'build_http_client',
    'build_clients',
]
