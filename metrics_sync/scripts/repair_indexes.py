"""
Repair the unique indexes that back the idempotent writes.

For each fact table: remove duplicate rows on the uniqueness key (the most
recently synced row wins), then drop and recreate the named unique index
so it matches the model definition.

Usage:
    python -m metrics_sync.scripts.repair_indexes
"""

import logging
from typing import Dict, Iterable, Optional

from sqlalchemy import and_, func, inspect
from sqlalchemy.orm import Session

from ..common.models import UNIQUE_KEYS
from ..common.session import SessionManager


logger = logging.getLogger(__name__)


def remove_duplicates(session: Session, model, key_columns) -> int:
    """
    Delete all but one row per key, keeping the latest ``last_synced_at``
    (then the highest id).

    Returns:
        Number of deleted rows
    """
    columns = [getattr(model, name) for name in key_columns]
    groups = session.query(*columns) \
        .group_by(*columns) \
        .having(func.count(model.id) > 1) \
        .all()

    deleted = 0
    for values in groups:
        match = and_(*[column == value for column, value in zip(columns, values)])
        rows = session.query(model).filter(match) \
            .order_by(model.last_synced_at.desc(), model.id.desc()).all()
        for row in rows[1:]:
            session.delete(row)
            deleted += 1

    if deleted:
        session.flush()
        logger.info(f"{model.__tablename__}: removed {deleted} duplicate rows over {len(groups)} keys")
    return deleted


def _rebuild_index(connection, model, index_name: str) -> None:
    index = next((idx for idx in model.__table__.indexes if idx.name == index_name), None)
    if index is None:
        raise ValueError(f"Index {index_name} is not defined on {model.__tablename__}")

    existing = {idx['name'] for idx in inspect(connection).get_indexes(model.__tablename__)}
    if index_name in existing:
        index.drop(connection)
        logger.debug(f"Dropped {index_name}")
    index.create(connection)
    logger.info(f"Recreated unique index {index_name} on {model.__tablename__}")


def repair_indexes(session_manager: SessionManager, models: Optional[Iterable] = None) -> Dict[str, int]:
    """
    Deduplicate and rebuild the unique index of each fact table.

    Args:
        session_manager: Session manager of the target database
        models: Models to repair (every model in UNIQUE_KEYS when None)

    Returns:
        Deleted duplicate count per table name
    """
    targets = list(models) if models is not None else list(UNIQUE_KEYS)
    report: Dict[str, int] = {}

    with session_manager.session_scope() as session:
        for model in targets:
            _, key_columns = UNIQUE_KEYS[model]
            report[model.__tablename__] = remove_duplicates(session, model, key_columns)

    with session_manager.engine.begin() as connection:
        for model in targets:
            index_name, _ = UNIQUE_KEYS[model]
            _rebuild_index(connection, model, index_name)

    return report


if __name__ == "__main__":
    from ..common.config import DataLayerConfig
    from ..common.engine import create_engine_from_config

    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    manager = SessionManager(create_engine_from_config(DataLayerConfig.from_env().primary_database))
    for table, deleted in repair_indexes(manager).items():
        print(f"  {table}: {deleted} duplicates removed")
