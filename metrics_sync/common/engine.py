"""
Engine factory for the metric store.

The production store is PostgreSQL, MariaDB or Azure SQL behind a
connection pool; SQLite (a file, or ``:memory:`` shared through one
connection) backs local runs and the test suite.
"""

import logging
import time
from typing import Any, Callable, Dict

from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL, Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.pool import StaticPool

from .config import DatabaseConfig, DatabaseType


logger = logging.getLogger(__name__)

# DatabaseType -> SQLAlchemy drivername
DRIVERS = {
    DatabaseType.POSTGRESQL: 'postgresql+psycopg2',
    DatabaseType.MARIADB: 'mysql+pymysql',
    DatabaseType.AZURE_SQL: 'mssql+pyodbc',
    DatabaseType.SQLITE: 'sqlite',
}


def build_url(db_config: DatabaseConfig) -> URL:
    """
    SQLAlchemy URL for a database configuration.

    Credentials are passed as URL parts, so special characters in passwords
    need no manual quoting.

    Raises:
        ValueError: Unsupported database type, or Azure SQL without an ODBC driver
    """
    if db_config.db_type not in DRIVERS:
        raise ValueError(
            f"Unsupported database type: {db_config.db_type}. "
            f"Supported types: {', '.join(t.value for t in DRIVERS)}"
        )

    if db_config.db_type == DatabaseType.SQLITE:
        return URL.create('sqlite', database=db_config.database or ':memory:')

    query = {}
    if db_config.db_type == DatabaseType.AZURE_SQL:
        if not db_config.driver:
            raise ValueError("Azure SQL requires an ODBC driver name (DATABASE_DRIVER)")
        query = {
            'driver': db_config.driver,
            'Encrypt': 'yes',
            'TrustServerCertificate': 'yes',
            'Connection Timeout': str(db_config.pool_timeout),
        }

    return URL.create(
        DRIVERS[db_config.db_type],
        username=db_config.username or None,
        password=db_config.password or None,
        host=db_config.host or None,
        port=db_config.port or None,
        database=db_config.database,
        query=query,
    )


def engine_options(db_config: DatabaseConfig) -> Dict[str, Any]:
    """Keyword arguments for create_engine (pool settings per backend)."""
    if db_config.db_type == DatabaseType.SQLITE:
        options: Dict[str, Any] = {'connect_args': {'check_same_thread': False}}
        if db_config.database in ('', ':memory:'):
            # One shared connection, otherwise every session gets its own empty database
            options['poolclass'] = StaticPool
        return options

    return {
        'pool_size': db_config.pool_size,
        'max_overflow': db_config.max_overflow,
        'pool_timeout': db_config.pool_timeout,
        'pool_recycle': db_config.pool_recycle,
        'pool_pre_ping': db_config.pool_pre_ping,
    }


def create_engine_from_config(
    db_config: DatabaseConfig,
    retries: int = 3,
    retry_delay: float = 5,
    sleep: Callable[[float], None] = time.sleep
) -> Engine:
    """
    Create an engine and check that the database answers.

    A failed connectivity check (``OperationalError``) is retried; the
    engine is disposed before each new attempt.

    Args:
        db_config: Database configuration
        retries: Connection attempts before giving up
        retry_delay: Seconds between attempts
        sleep: Sleep function (injectable for tests)

    Returns:
        Engine: Connected engine

    Raises:
        ValueError: Unsupported configuration
        OperationalError: Database still unreachable after the last attempt
    """
    url = build_url(db_config)
    label = f"{db_config.db_type.value} ({db_config.host or 'local'}/{db_config.database})"

    for attempt in range(1, retries + 1):
        engine = create_engine(url, **engine_options(db_config))
        try:
            with engine.connect() as conn:
                conn.execute(text('SELECT 1'))
        except OperationalError as e:
            engine.dispose()
            logger.error(f"Connection attempt {attempt}/{retries} to {label} failed: {e}")
            if attempt == retries:
                logger.critical(f"Giving up on {label} after {retries} attempts")
                raise
            logger.info(f"Retrying in {retry_delay}s...")
            sleep(retry_delay)
            continue

        logger.info(f"Database engine ready: {label}")
        return engine

    raise ValueError(f"retries must be at least 1, got {retries}")
