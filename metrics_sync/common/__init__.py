"""
Common building blocks for the metrics sync (API → SQL).

- Configuration (.env via python-decouple)
- Database engine, sessions, ORM models and dialect-aware upserts
- HTTP client, token cache and retry policy for upstream providers
- Date and data conversion helpers

Example Usage:
    from metrics_sync.common import DataLayerConfig, create_engine_from_config
    from metrics_sync.common import SessionManager, UpsertOperations

    config = DataLayerConfig.from_env()
    db_config = config.primary_database
    engine = create_engine_from_config(db_config)
    session_manager = SessionManager(engine)

    with session_manager.session_scope() as session:
        upsert_ops = UpsertOperations(session, db_config.db_type)
        ...
"""

__version__ = '1.0.0'

# Configuration
from .config import (
    DataLayerConfig,
    DatabaseConfig,
    DatabaseType,
    DynamicsConfig,
    ZohoConfig,
    WindsorConfig,
    SyncConfig,
)

# Database engine and session management
from .engine import create_engine_from_config
from .session import SessionManager

# Models
from .models import Base, BaseModel, TimestampMixin
from .models import BusinessEntity, Project  # Dimension models
from .models import (
    FinanceReserveBank,
    FinanceExpensePaidout,
    SalesCollection,
    RevenueReservation,
    ProcurementPurchaseOrder,
    SocialInsight,
    GoogleReview,
)

# Operations
from .operations import UpsertOperations, BatchOperations

# Upsert strategies
from .upsert_strategies import (
    UpsertStrategy,
    UpsertFactory,
    PostgreSQLUpsertStrategy,
    SQLiteUpsertStrategy,
    MariaDBUpsertStrategy,
    AzureSQLUpsertStrategy,
)

# Upstream plumbing
from .http_client import HTTPClient
from .credentials import TokenCache
from .retry import RetryPolicy
from .errors import (
    MetricsSyncError,
    AuthError,
    UpstreamError,
    UpstreamTransientError,
    UpstreamRejectedError,
    UpstreamJobError,
    UpstreamTimeoutError,
    ValidationSkip,
    PersistenceConflict,
    PersistenceFatal,
)

# Date utilities
from .date_utils import (
    today_in_tz,
    get_yesterday,
    get_first_day_of_month,
    get_last_day_of_month,
    iter_days,
    parse_date_string,
    is_valid_date_format,
)

# Data utilities
from .data_utils import (
    convert_to_int,
    convert_to_decimal,
    convert_to_datetime,
    parse_amount,
    deduplicate_records,
)


__all__ = [
    '__version__',

    # Configuration
    'DataLayerConfig',
    'DatabaseConfig',
    'DatabaseType',
    'DynamicsConfig',
    'ZohoConfig',
    'WindsorConfig',
    'SyncConfig',

    # Database
    'create_engine_from_config',
    'SessionManager',

    # Models
    'Base',
    'BaseModel',
    'TimestampMixin',
    'BusinessEntity',
    'Project',
    'FinanceReserveBank',
    'FinanceExpensePaidout',
    'SalesCollection',
    'RevenueReservation',
    'ProcurementPurchaseOrder',
    'SocialInsight',
    'GoogleReview',

    # Operations
    'UpsertOperations',
    'BatchOperations',

    # Upsert strategies
    'UpsertStrategy',
    'UpsertFactory',
    'PostgreSQLUpsertStrategy',
    'SQLiteUpsertStrategy',
    'MariaDBUpsertStrategy',
    'AzureSQLUpsertStrategy',

    # Upstream plumbing
    'HTTPClient',
    'TokenCache',
    'RetryPolicy',

    # Errors
    'MetricsSyncError',
    'AuthError',
    'UpstreamError',
    'UpstreamTransientError',
    'UpstreamRejectedError',
    'UpstreamJobError',
    'UpstreamTimeoutError',
    'ValidationSkip',
    'PersistenceConflict',
    'PersistenceFatal',

    # Date utilities
    'today_in_tz',
    'get_yesterday',
    'get_first_day_of_month',
    'get_last_day_of_month',
    'iter_days',
    'parse_date_string',
    'is_valid_date_format',

    # Data utilities
    'convert_to_int',
    'convert_to_decimal',
    'convert_to_datetime',
    'parse_amount',
    'deduplicate_records',
]
