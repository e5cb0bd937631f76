"""
Configuration management for the metrics sync module.
Handles .env-based configuration for the database, the upstream providers
and the sync engine itself.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional
from decouple import config as env_config, Csv


class DatabaseType(Enum):
    """Supported database types"""
    AZURE_SQL = "azure_sql"
    MARIADB = "mariadb"
    POSTGRESQL = "postgresql"
    SQLITE = "sqlite"


_DEFAULT_PORTS = {
    DatabaseType.AZURE_SQL: 1433,
    DatabaseType.MARIADB: 3306,
    DatabaseType.POSTGRESQL: 5432,
    DatabaseType.SQLITE: 0,
}


@dataclass
class DatabaseConfig:
    """
    Database connection configuration.
    Supports Azure SQL Server, MariaDB, PostgreSQL and SQLite.

    For SQLite only ``database`` is used: a file path or ``:memory:``.
    """
    db_type: DatabaseType
    database: str
    host: str = ''
    port: int = 0
    username: str = ''
    password: str = ''
    driver: Optional[str] = None  # Required for Azure SQL (ODBC driver)

    # Connection pool settings
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 60
    pool_recycle: int = 1800
    pool_pre_ping: bool = True

    def __repr__(self) -> str:
        """Safe representation without password"""
        return (f"DatabaseConfig(db_type={self.db_type.value}, host={self.host}, "
                f"database={self.database}, username={self.username})")


@dataclass
class DynamicsConfig:
    """
    Microsoft Dynamics 365 configuration (client-credentials OAuth).
    One URL per exposed custom service.
    """
    tenant_id: str
    client_id: str
    client_secret: str
    scope: str
    bank_group_url: str = ''
    paidout_url: str = ''
    procurement_url: str = ''
    timeout: int = 20

    @property
    def token_url(self) -> str:
        return f"https://login.microsoftonline.com/{self.tenant_id}/oauth2/v2.0/token"

    def __repr__(self) -> str:
        """Safe representation without sensitive data"""
        return (f"DynamicsConfig(tenant_id={self.tenant_id}, client_id={self.client_id}, "
                f"scope={self.scope})")


@dataclass
class ZohoConfig:
    """
    Zoho Analytics configuration (refresh-token OAuth).
    """
    client_id: str
    client_secret: str
    refresh_token: str
    analytics_url: str = 'https://analyticsapi.zoho.com/restapi/v2/'
    accounts_url: str = 'https://accounts.zoho.com/oauth/v2/token'
    workspace_id: str = ''
    collection_view_id: str = ''
    reservation_view_id: str = ''
    org_id: str = ''
    timeout: int = 30

    def __repr__(self) -> str:
        """Safe representation without sensitive data"""
        return (f"ZohoConfig(client_id={self.client_id}, workspace_id={self.workspace_id}, "
                f"org_id={self.org_id})")


@dataclass
class WindsorConfig:
    """
    Windsor.ai connector configuration (static API keys).

    The Instagram and Google My Business connectors use separate keys.
    """
    api_key: str = ''
    google_api_key: Optional[str] = None
    base_url: str = 'https://connectors.windsor.ai'
    timeout: int = 30

    def __repr__(self) -> str:
        return f"WindsorConfig(base_url={self.base_url})"


@dataclass
class SyncConfig:
    """
    Sync engine settings: time zone, worker budgets, retry and polling.
    """
    timezone: str = 'Asia/Dubai'

    # Bounded parallelism per domain
    finance_reserve_workers: int = 6
    expense_paidout_workers: int = 20
    procurement_workers: int = 20

    expense_days_back: int = 30

    # Retry policy for upstream calls
    retry_attempts: int = 3
    retry_delay: float = 2.0

    # Bulk export job polling
    poll_interval: float = 2.0
    poll_attempts: int = 30

    default_entity_code: str = 'LDP'
    domains: List[str] = field(default_factory=lambda: [
        'finance_reserve',
        'sales_collection',
        'revenue_reservation',
        'procurement',
        'expense_paidout',
        'instagram',
        'google_review',
    ])


@dataclass
class DataLayerConfig:
    """
    Main configuration class for the metrics sync.
    Manages database, upstream providers, HTTP client and sync settings.
    """
    databases: Dict[str, DatabaseConfig] = field(default_factory=dict)

    # Batch processing settings
    batch_chunk_size: int = 500

    # HTTP client settings; retries are handled by RetryPolicy, not the adapter
    http_pool_connections: int = 10
    http_pool_maxsize: int = 20
    http_total_retries: int = 0
    http_timeout: int = 30

    dynamics: Optional[DynamicsConfig] = None
    zoho: Optional[ZohoConfig] = None
    windsor: Optional[WindsorConfig] = None
    sync: SyncConfig = field(default_factory=SyncConfig)

    @property
    def primary_database(self) -> DatabaseConfig:
        """
        Database used by the sync and the reports (first configured one).

        Raises:
            ValueError: If no database is configured
        """
        if not self.databases:
            raise ValueError("No database configured (set DATABASE_TYPE / DATABASE_NAME)")
        return next(iter(self.databases.values()))

    @classmethod
    def from_env(cls) -> 'DataLayerConfig':
        """
        Load configuration from environment variables (.env file).

        Returns:
            DataLayerConfig: Configuration loaded from environment
        """
        databases = {}

        db_type_str = env_config('DATABASE_TYPE', default='postgresql').lower()
        db_name = env_config('DATABASE_NAME', default=None)
        if db_name:
            db_type = DatabaseType(db_type_str)
            databases[db_type.value] = DatabaseConfig(
                db_type=db_type,
                database=db_name,
                host=env_config('DATABASE_HOST', default=''),
                port=env_config('DATABASE_PORT', default=_DEFAULT_PORTS[db_type], cast=int),
                username=env_config('DATABASE_USERNAME', default=''),
                password=env_config('DATABASE_PASSWORD', default=''),
                driver=env_config('DATABASE_DRIVER', default='ODBC Driver 17 for SQL Server'),
                pool_size=env_config('DB_POOL_SIZE', default=5, cast=int),
                max_overflow=env_config('DB_MAX_OVERFLOW', default=10, cast=int),
                pool_timeout=env_config('DB_POOL_TIMEOUT', default=60, cast=int),
                pool_recycle=env_config('DB_POOL_RECYCLE', default=1800, cast=int),
            )

        dynamics = None
        ms_client_id = env_config('MS_CLIENT_ID', default=None)
        if ms_client_id:
            paidout_url = env_config('MS_PAIDOUT_URL', default='')
            dynamics = DynamicsConfig(
                tenant_id=env_config('MS_TENANT_ID'),
                client_id=ms_client_id,
                client_secret=env_config('MS_CLIENT_SECRET'),
                scope=env_config('MS_SCOPE'),
                bank_group_url=env_config('MS_BANKGROUP_URL', default=''),
                paidout_url=paidout_url,
                procurement_url=env_config('MS_PROCUREMENT_URL', default=paidout_url),
                timeout=env_config('MS_TIMEOUT', default=20, cast=int),
            )

        zoho = None
        zoho_client_id = env_config('ZOHO_CLIENT_ID', default=None)
        if zoho_client_id:
            zoho = ZohoConfig(
                client_id=zoho_client_id,
                client_secret=env_config('ZOHO_CLIENT_SECRET'),
                refresh_token=env_config('ZOHO_REFRESH_TOKEN'),
                analytics_url=env_config('ZOHO_ANALYTICS_URL',
                                         default='https://analyticsapi.zoho.com/restapi/v2/'),
                workspace_id=env_config('ZOHO_WORKSPACE_ID', default=''),
                collection_view_id=env_config('ZOHO_COLLECTION_VIEW_ID', default=''),
                reservation_view_id=env_config('ZOHO_RESERVATION_VIEW_ID', default=''),
                org_id=env_config('ZOHO_ORG_ID', default=''),
            )

        windsor = None
        windsor_key = env_config('WINDSOR_INSTAGRAM_API_KEY', default=None)
        google_key = env_config('WINDSOR_API_KEY', default=None)
        if windsor_key or google_key:
            windsor = WindsorConfig(api_key=windsor_key or '', google_api_key=google_key)

        sync = SyncConfig(
            timezone=env_config('SYNC_TIMEZONE', default='Asia/Dubai'),
            finance_reserve_workers=env_config('FINANCE_RESERVE_WORKERS', default=6, cast=int),
            expense_paidout_workers=env_config('EXPENSE_PAIDOUT_WORKERS', default=20, cast=int),
            procurement_workers=env_config('PROCUREMENT_WORKERS', default=20, cast=int),
            expense_days_back=env_config('EXPENSE_DAYS_BACK', default=30, cast=int),
            retry_attempts=env_config('SYNC_RETRY_ATTEMPTS', default=3, cast=int),
            retry_delay=env_config('SYNC_RETRY_DELAY', default=2.0, cast=float),
            poll_interval=env_config('ZOHO_POLL_INTERVAL', default=2.0, cast=float),
            poll_attempts=env_config('ZOHO_POLL_ATTEMPTS', default=30, cast=int),
            default_entity_code=env_config('DEFAULT_ENTITY_CODE', default='LDP'),
        )
        domains = env_config('SYNC_DOMAINS', default='', cast=Csv())
        if domains:
            sync.domains = domains

        return cls(
            databases=databases,
            batch_chunk_size=env_config('BATCH_CHUNK_SIZE', default=500, cast=int),
            http_pool_connections=env_config('HTTP_POOL_CONNECTIONS', default=10, cast=int),
            http_pool_maxsize=env_config('HTTP_POOL_MAXSIZE', default=20, cast=int),
            http_total_retries=env_config('HTTP_TOTAL_RETRIES', default=0, cast=int),
            http_timeout=env_config('HTTP_TIMEOUT', default=30, cast=int),
            dynamics=dynamics,
            zoho=zoho,
            windsor=windsor,
            sync=sync,
        )

    @classmethod
    def from_dict(cls, config_dict: dict) -> 'DataLayerConfig':
        """
        Load configuration from dictionary.

        Args:
            config_dict: Dictionary with configuration values

        Returns:
            DataLayerConfig: Configuration loaded from dictionary
        """
        databases = {}

        for db_name, db_conf in config_dict.get('databases', {}).items():
            db_type_str = db_conf.get('db_type', '').lower()
            try:
                db_type = DatabaseType(db_type_str)
            except ValueError:
                continue

            databases[db_name] = DatabaseConfig(
                db_type=db_type,
                database=db_conf['database'],
                host=db_conf.get('host', ''),
                port=db_conf.get('port', _DEFAULT_PORTS[db_type]),
                username=db_conf.get('username', ''),
                password=db_conf.get('password', ''),
                driver=db_conf.get('driver'),
                pool_size=db_conf.get('pool_size', 5),
                max_overflow=db_conf.get('max_overflow', 10),
                pool_timeout=db_conf.get('pool_timeout', 60),
                pool_recycle=db_conf.get('pool_recycle', 1800),
            )

        dynamics = None
        if config_dict.get('dynamics'):
            dynamics = DynamicsConfig(**config_dict['dynamics'])

        zoho = None
        if config_dict.get('zoho'):
            zoho = ZohoConfig(**config_dict['zoho'])

        windsor = None
        if config_dict.get('windsor'):
            windsor = WindsorConfig(**config_dict['windsor'])

        sync = SyncConfig(**config_dict.get('sync', {}))

        return cls(
            databases=databases,
            batch_chunk_size=config_dict.get('batch_chunk_size', 500),
            http_pool_connections=config_dict.get('http_pool_connections', 10),
            http_pool_maxsize=config_dict.get('http_pool_maxsize', 20),
            http_total_retries=config_dict.get('http_total_retries', 0),
            http_timeout=config_dict.get('http_timeout', 30),
            dynamics=dynamics,
            zoho=zoho,
            windsor=windsor,
            sync=sync,
        )
