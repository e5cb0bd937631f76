"""
Database-specific upsert strategies using the Strategy pattern.
Handles differences in upsert syntax across PostgreSQL, SQLite, MariaDB and Azure SQL.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Dict, Any, Type
from sqlalchemy.orm import Session
from sqlalchemy.dialects import postgresql, mysql, sqlite

from .config import DatabaseType
from .date_utils import utc_now


logger = logging.getLogger(__name__)

# Columns to exclude from UPDATE SET (auto-managed by database/ORM)
EXCLUDED_UPDATE_COLUMNS = {'created_at', 'updated_at'}


def _strip_managed(values_list: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [
        {k: v for k, v in record.items() if k not in EXCLUDED_UPDATE_COLUMNS}
        for record in values_list
    ]


def _touch_updated_at(model: Type, update_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Conflict updates bypass the ORM onupdate hook, so stamp updated_at here."""
    if update_dict and 'updated_at' in model.__table__.columns:
        update_dict['updated_at'] = utc_now()
    return update_dict


class UpsertStrategy(ABC):
    """Abstract base class for database-specific upsert strategies"""

    @abstractmethod
    def bulk_upsert(
        self,
        session: Session,
        model: Type,
        values_list: List[Dict[str, Any]],
        constraint_columns: List[str]
    ) -> None:
        """
        Bulk upsert multiple records.

        Args:
            session: SQLAlchemy session
            model: SQLAlchemy model class
            values_list: List of dictionaries (each dict is one record)
            constraint_columns: Columns of the unique index used for conflict resolution
        """

    def upsert(
        self,
        session: Session,
        model: Type,
        values: Dict[str, Any],
        constraint_columns: List[str]
    ) -> None:
        """Upsert single record."""
        self.bulk_upsert(session, model, [values], constraint_columns)


class _OnConflictUpsertStrategy(UpsertStrategy):
    """
    INSERT ... ON CONFLICT (key) DO UPDATE SET col = EXCLUDED.col

    Shared by PostgreSQL and SQLite, which use the same clause.
    """

    dialect_insert = None
    label = ''

    def bulk_upsert(
        self,
        session: Session,
        model: Type,
        values_list: List[Dict[str, Any]],
        constraint_columns: List[str]
    ) -> None:
        if not values_list:
            return

        filtered_values = _strip_managed(values_list)
        stmt = self.dialect_insert(model).values(filtered_values)

        excluded_cols = set(constraint_columns) | EXCLUDED_UPDATE_COLUMNS
        update_dict = {
            k: stmt.excluded[k]
            for k in filtered_values[0].keys()
            if k not in excluded_cols
        }
        update_dict = _touch_updated_at(model, update_dict)

        if update_dict:
            stmt = stmt.on_conflict_do_update(index_elements=constraint_columns, set_=update_dict)
        else:
            stmt = stmt.on_conflict_do_nothing(index_elements=constraint_columns)

        session.execute(stmt)
        logger.debug(f"{self.label} bulk upsert: {len(values_list)} records into {model.__tablename__}")


class PostgreSQLUpsertStrategy(_OnConflictUpsertStrategy):
    """PostgreSQL upsert using ON CONFLICT ... DO UPDATE."""
    dialect_insert = staticmethod(postgresql.insert)
    label = 'PostgreSQL'


class SQLiteUpsertStrategy(_OnConflictUpsertStrategy):
    """SQLite upsert using ON CONFLICT ... DO UPDATE (SQLite >= 3.24)."""
    dialect_insert = staticmethod(sqlite.insert)
    label = 'SQLite'


class MariaDBUpsertStrategy(UpsertStrategy):
    """
    MariaDB/MySQL upsert using ON DUPLICATE KEY UPDATE.

    Syntax:
        INSERT INTO table (col1, col2) VALUES (:val1, :val2)
        ON DUPLICATE KEY UPDATE col2 = VALUES(col2)
    """

    def bulk_upsert(
        self,
        session: Session,
        model: Type,
        values_list: List[Dict[str, Any]],
        constraint_columns: List[str]
    ) -> None:
        if not values_list:
            return

        filtered_values = _strip_managed(values_list)
        stmt = mysql.insert(model).values(filtered_values)

        update_dict = {
            k: stmt.inserted[k]
            for k in filtered_values[0].keys()
            if k not in constraint_columns
        }
        update_dict = _touch_updated_at(model, update_dict)

        stmt = stmt.on_duplicate_key_update(**update_dict)
        session.execute(stmt)
        logger.debug(f"MariaDB bulk upsert: {len(values_list)} records into {model.__tablename__}")


class AzureSQLUpsertStrategy(UpsertStrategy):
    """
    Azure SQL Server upsert.

    SQLAlchemy has no MERGE construct for SQL Server, so each record is
    looked up by its key and then updated or inserted.
    """

    def upsert(
        self,
        session: Session,
        model: Type,
        values: Dict[str, Any],
        constraint_columns: List[str]
    ) -> None:
        where_clause = {k: values[k] for k in constraint_columns}
        existing = session.query(model).filter_by(**where_clause).first()

        if existing:
            for key, value in values.items():
                if key not in constraint_columns and key not in EXCLUDED_UPDATE_COLUMNS:
                    setattr(existing, key, value)
            logger.debug(f"Azure SQL update: {model.__tablename__}")
        else:
            session.add(model(**values))
            logger.debug(f"Azure SQL insert: {model.__tablename__}")

    def bulk_upsert(
        self,
        session: Session,
        model: Type,
        values_list: List[Dict[str, Any]],
        constraint_columns: List[str]
    ) -> None:
        if not values_list:
            return

        for values in values_list:
            self.upsert(session, model, values, constraint_columns)

        logger.debug(f"Azure SQL bulk upsert: {len(values_list)} records into {model.__tablename__}")


class UpsertFactory:
    """Factory for creating database-specific upsert strategies"""

    _strategies = {
        DatabaseType.POSTGRESQL: PostgreSQLUpsertStrategy(),
        DatabaseType.SQLITE: SQLiteUpsertStrategy(),
        DatabaseType.MARIADB: MariaDBUpsertStrategy(),
        DatabaseType.AZURE_SQL: AzureSQLUpsertStrategy(),
    }

    @classmethod
    def get_strategy(cls, db_type: DatabaseType) -> UpsertStrategy:
        """
        Get upsert strategy for database type.

        Args:
            db_type: Database type

        Returns:
            UpsertStrategy: Database-specific upsert strategy

        Raises:
            ValueError: If database type is unsupported
        """
        strategy = cls._strategies.get(db_type)

        if strategy is None:
            raise ValueError(
                f"Unsupported database type for upsert: {db_type}. "
                f"Supported types: {', '.join([t.value for t in DatabaseType])}"
            )

        return strategy
