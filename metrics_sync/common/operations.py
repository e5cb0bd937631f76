"""
Database write operations: chunked idempotent upserts and bulk inserts.
"""

import logging
from typing import Type, List, Optional, Dict, Any, Callable
from sqlalchemy.orm import Session

from .config import DatabaseType
from .upsert_strategies import UpsertFactory


logger = logging.getLogger(__name__)


class UpsertOperations:
    """
    Database-agnostic upsert operations using strategy pattern.

    Features:
    - Single record upsert
    - Bulk upsert with chunking
    - One flush per chunk; commit/rollback is left to the caller
    """

    def __init__(self, session: Session, db_type: DatabaseType):
        """
        Initialize upsert operations.

        Args:
            session: SQLAlchemy session
            db_type: Database type (determines upsert strategy)
        """
        self.session = session
        self.db_type = db_type
        self.strategy = UpsertFactory.get_strategy(db_type)

    def upsert_single(
        self,
        model: Type,
        values: Dict[str, Any],
        constraint_columns: List[str]
    ) -> None:
        """
        Upsert single record.

        Args:
            model: SQLAlchemy model class
            values: Dictionary of column name -> value
            constraint_columns: Columns that determine uniqueness

        Example:
            upsert_ops.upsert_single(
                FinanceReserveBank,
                {'scope_key': 'ALL', 'date': day, 'data_source': source, 'total_reserve': 150},
                constraint_columns=['scope_key', 'date', 'data_source']
            )
        """
        self.strategy.upsert(self.session, model, values, constraint_columns)

    def upsert_batch(
        self,
        model: Type,
        records: List[Dict[str, Any]],
        constraint_columns: List[str],
        chunk_size: int = 500
    ) -> int:
        """
        Bulk upsert with chunking.

        Args:
            model: SQLAlchemy model class
            records: List of dictionaries (each dict is one record)
            constraint_columns: Columns that determine uniqueness
            chunk_size: Records per chunk (default: 500)

        Returns:
            int: Total number of records processed
        """
        if not records:
            return 0

        total_processed = 0
        total_chunks = (len(records) + chunk_size - 1) // chunk_size

        logger.info(
            f"Starting bulk upsert: {len(records)} records into {model.__tablename__} "
            f"(chunk_size={chunk_size}, chunks={total_chunks})"
        )

        for i in range(0, len(records), chunk_size):
            chunk = records[i:i + chunk_size]
            chunk_num = (i // chunk_size) + 1

            try:
                self.strategy.bulk_upsert(self.session, model, chunk, constraint_columns)
                self.session.flush()
                total_processed += len(chunk)

                logger.debug(
                    f"Processed chunk {chunk_num}/{total_chunks}: "
                    f"{len(chunk)} records ({total_processed}/{len(records)} total)"
                )

            except Exception as e:
                logger.error(f"Error processing chunk {chunk_num}/{total_chunks}: {e}")
                raise  # Caller rolls back

        logger.info(f"Bulk upsert completed: {total_processed} records")
        return total_processed


class BatchOperations:
    """
    Bulk inserts for insert-only tables.
    """

    def __init__(self, session: Session):
        self.session = session

    def batch_insert(
        self,
        model: Type,
        records: List[Dict[str, Any]],
        chunk_size: int = 500,
        progress_callback: Optional[Callable[[int, int], None]] = None
    ) -> int:
        """
        Bulk insert with chunking.

        Args:
            model: SQLAlchemy model class
            records: List of dictionaries (each dict is one record)
            chunk_size: Records per chunk (default: 500)
            progress_callback: Optional callback(current, total) for progress tracking

        Returns:
            int: Total number of records inserted

        Raises:
            IntegrityError: If a record violates a unique index
        """
        if not records:
            return 0

        total_inserted = 0

        logger.info(f"Starting batch insert: {len(records)} records into {model.__tablename__}")

        for i in range(0, len(records), chunk_size):
            chunk = records[i:i + chunk_size]

            try:
                self.session.add_all([model(**record) for record in chunk])
                self.session.flush()
                total_inserted += len(chunk)

                if progress_callback:
                    progress_callback(total_inserted, len(records))

                logger.debug(f"Inserted {total_inserted}/{len(records)} records")

            except Exception as e:
                logger.error(f"Error inserting chunk: {e}")
                raise  # Caller rolls back

        logger.info(f"Batch insert completed: {total_inserted} records")
        return total_inserted
