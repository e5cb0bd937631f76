"""
Shared fixtures: an in-memory SQLite store and a sync configuration with
small worker budgets.
"""

import pytest

from metrics_sync.common.config import DatabaseConfig, DatabaseType, SyncConfig
from metrics_sync.common.engine import create_engine_from_config
from metrics_sync.common.models import Base, BusinessEntity
from metrics_sync.common.session import SessionManager


@pytest.fixture
def engine():
    engine = create_engine_from_config(DatabaseConfig(db_type=DatabaseType.SQLITE, database=':memory:'))
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_manager(engine):
    return SessionManager(engine)


@pytest.fixture
def sync_config():
    return SyncConfig(
        finance_reserve_workers=3,
        expense_paidout_workers=3,
        procurement_workers=3,
        default_entity_code='LDP',
    )


@pytest.fixture
def add_entities(session_manager):
    """Insert business entities by code; returns {code: id}."""
    def _add(*codes):
        with session_manager.session_scope() as session:
            entities = [BusinessEntity(entity_code=code, entity_name=f"Entity {code}") for code in codes]
            session.add_all(entities)
            session.flush()
            ids = {e.entity_code: e.id for e in entities}
        return ids
    return _add
