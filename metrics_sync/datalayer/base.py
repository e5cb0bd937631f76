"""
Sync orchestration shared by every metric domain.

One run of one domain:

1. Acquire the provider token (AuthError aborts the run)
2. Enumerate fan-out tasks (one per entity and day, or a single task)
3. Snapshot the rows already stored for the window once
4. Fetch every task on a bounded thread pool (workers only do HTTP)
5. Transform rows on the orchestrating thread; a record whose stored row
   already holds the same values is skipped (insert-only domains skip any
   stored key)
6. Bulk upsert (or insert) the staged records; on a duplicate-key race
   fall back to one record at a time
"""

import logging
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple, Type

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from tqdm import tqdm

from ..common.config import DatabaseType, SyncConfig
from ..common.date_utils import get_date_range_days_back, get_yesterday, iter_days, utc_now
from ..common.errors import AuthError, ValidationSkip
from ..common.models import BusinessEntity
from ..common.operations import BatchOperations, UpsertOperations
from ..common.session import SessionManager


logger = logging.getLogger(__name__)

# Audit columns that differ on every write
UNCOMPARED_COLUMNS = {'id', 'created_at', 'updated_at', 'last_synced_at'}


# =============================================================================
# Run inputs and outputs
# =============================================================================

@dataclass(frozen=True)
class SyncWindow:
    """Inclusive date range a run covers."""
    from_date: date
    to_date: date

    def __post_init__(self):
        if self.to_date < self.from_date:
            raise ValueError(f"Invalid sync window: {self.from_date} > {self.to_date}")

    @classmethod
    def single(cls, day: date) -> 'SyncWindow':
        return cls(day, day)

    @classmethod
    def yesterday(cls, tz_name: str = 'Asia/Dubai', today: Optional[date] = None) -> 'SyncWindow':
        return cls.single(get_yesterday(tz_name, today))

    @classmethod
    def last_n_days(cls, days: int, tz_name: str = 'Asia/Dubai', today: Optional[date] = None) -> 'SyncWindow':
        """``days`` days ending yesterday."""
        start, end = get_date_range_days_back(days, get_yesterday(tz_name, today))
        return cls(start, end)

    def days(self) -> List[date]:
        return iter_days(self.from_date, self.to_date)

    def __str__(self) -> str:
        if self.from_date == self.to_date:
            return str(self.from_date)
        return f"{self.from_date}..{self.to_date}"


@dataclass(frozen=True)
class SyncTask:
    """
    One unit of fan-out.

    Entity id and code are copied out of the ORM object so that worker
    threads never touch the session.
    """
    label: str
    day: Optional[date] = None
    entity_id: Optional[int] = None
    entity_code: Optional[str] = None
    aggregate: bool = False


@dataclass
class SyncResult:
    """Counts and errors of one domain run."""
    data_source: str
    success: bool = False
    items_processed: int = 0
    records_saved: int = 0
    records_skipped: int = 0
    errors: List[str] = field(default_factory=list)
    started_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None

    @property
    def entities_processed(self) -> int:
        return self.items_processed

    @property
    def duration(self) -> float:
        end = self.finished_at if self.finished_at is not None else time.time()
        return end - self.started_at

    def finalize(self) -> 'SyncResult':
        """Partial success (some saved despite errors) still counts as success."""
        self.success = not self.errors or self.records_saved > 0
        self.finished_at = time.time()
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            'dataSource': self.data_source,
            'success': self.success,
            'itemsProcessed': self.items_processed,
            'recordsSaved': self.records_saved,
            'recordsSkipped': self.records_skipped,
            'errors': list(self.errors),
            'durationSeconds': round(self.duration, 2),
        }


# =============================================================================
# Orchestrator
# =============================================================================

class DomainSync(ABC):
    """
    Base class for one domain's sync.

    Subclasses declare the target model, its uniqueness key and the data
    source tag, and implement task enumeration, fetch and transform.
    """

    name: str = ''
    model: Type = None
    key_columns: List[str] = []
    data_source: str = ''

    # 'upsert' for re-syncable metric rows, 'insert' for insert-only tables
    write_mode: str = 'upsert'

    # Skip any stored key instead of comparing values (rows are never rewritten)
    skip_known: bool = False

    # DimensionResolver of domains that create projects while transforming
    resolver = None

    def __init__(
        self,
        session_manager: SessionManager,
        db_type: DatabaseType,
        client,
        sync_config: Optional[SyncConfig] = None,
        chunk_size: int = 500,
        show_progress: bool = True
    ):
        self.session_manager = session_manager
        self.db_type = db_type
        self.client = client
        self.sync_config = sync_config or SyncConfig()
        self.chunk_size = chunk_size
        self.show_progress = show_progress

    @property
    def max_workers(self) -> int:
        return 1

    def default_window(self, today: Optional[date] = None) -> SyncWindow:
        """Window used when the caller does not pass one."""
        return SyncWindow.yesterday(self.sync_config.timezone, today)

    # -------------------------------------------------------------------------
    # Domain hooks
    # -------------------------------------------------------------------------

    @abstractmethod
    def build_tasks(self, session: Session, window: SyncWindow) -> List[SyncTask]:
        """Fan-out key set for this run."""

    @abstractmethod
    def fetch(self, token: str, task: SyncTask, window: SyncWindow) -> Any:
        """
        Upstream call for one task. Runs on a worker thread.

        Returns None for "no data for this slice".
        """

    @abstractmethod
    def transform(self, session: Session, task: SyncTask, row: Any, window: SyncWindow) -> Optional[Dict[str, Any]]:
        """
        One canonical record for ``row``, or None when there is nothing to store.

        Raises:
            ValidationSkip: Row lacks required fields
        """

    def rows_of(self, task: SyncTask, data: Any) -> Iterable[Any]:
        """Units passed to ``transform``; one per upstream row by default."""
        return data or []

    def is_processed(self, task: SyncTask, data: Any, produced: int) -> bool:
        """Whether the task counts towards items_processed."""
        return not task.aggregate and produced > 0

    def stored_scope(self, query, window: SyncWindow):
        """Restrict the stored-row snapshot to the rows this window can touch."""
        query = query.filter(
            self.model.date >= window.from_date,
            self.model.date <= window.to_date,
        )
        if 'data_source' in self.key_columns:
            query = query.filter(self.model.data_source == self.data_source)
        return query

    def compared_columns(self) -> List[str]:
        """Stored columns that decide whether a re-fetched record changed."""
        return [
            column.key for column in self.model.__table__.columns
            if column.key not in UNCOMPARED_COLUMNS and column.key not in self.key_columns
        ]

    def load_stored_rows(self, session: Session, window: SyncWindow) -> Dict[Tuple, Dict[str, Any]]:
        """
        Snapshot of the rows already stored for the window.

        Returns:
            dict: uniqueness key -> {column: value} (empty values when
            ``skip_known`` is set, since only the key matters then)
        """
        key_columns = [getattr(self.model, c) for c in self.key_columns]
        names = [] if self.skip_known else self.compared_columns()
        value_columns = [getattr(self.model, c) for c in names]

        query = self.stored_scope(session.query(*key_columns, *value_columns), window)
        width = len(key_columns)
        return {
            tuple(row[:width]): dict(zip(names, row[width:]))
            for row in query.all()
        }

    def is_unchanged(self, stored: Dict[Tuple, Dict[str, Any]], key: Tuple, record: Dict[str, Any]) -> bool:
        """
        Whether writing ``record`` would leave the stored row as it is.

        Insert-only domains (``skip_known``) treat any stored key as unchanged.
        """
        if key not in stored:
            return False
        if self.skip_known:
            return True
        values = stored[key]
        return all(
            _comparable(values[name]) == _comparable(record[name])
            for name in values if name in record
        )

    def reset_dimension_cache(self) -> None:
        """Forget cached dimension rows after a rollback."""
        if self.resolver is not None:
            self.resolver.clear()

    # -------------------------------------------------------------------------
    # Shared helpers
    # -------------------------------------------------------------------------

    def get_token(self) -> str:
        if self.client is None:
            raise AuthError(self.name, "upstream provider is not configured")
        return self.client.get_token()

    def list_entities(self, session: Session) -> List[Tuple[int, str]]:
        """(id, code) of every business entity, ordered by code."""
        rows = session.query(BusinessEntity.id, BusinessEntity.entity_code) \
            .order_by(BusinessEntity.entity_code).all()
        return [(row.id, row.entity_code) for row in rows]

    def entity_day_tasks(self, session: Session, window: SyncWindow, with_aggregate: bool = True) -> List[SyncTask]:
        """One task per entity per day, plus one aggregate task per day."""
        entities = self.list_entities(session)
        tasks = []
        for day in window.days():
            for entity_id, code in entities:
                tasks.append(SyncTask(label=f"{code} {day}", day=day, entity_id=entity_id, entity_code=code))
            if with_aggregate:
                tasks.append(SyncTask(label=f"ALL {day}", day=day, aggregate=True))
        return tasks

    def record_key(self, record: Dict[str, Any]) -> Tuple:
        return tuple(record.get(c) for c in self.key_columns)

    # -------------------------------------------------------------------------
    # Run
    # -------------------------------------------------------------------------

    def run(self, window: Optional[SyncWindow] = None) -> SyncResult:
        """
        Sync one window.

        Returns:
            SyncResult: Counts and per-task error strings

        Raises:
            AuthError: If the provider token cannot be obtained
        """
        window = window or self.default_window()
        result = SyncResult(data_source=self.data_source)

        logger.info(f"Starting {self.name} sync for {window}")
        token = self.get_token()

        with self.session_manager.session_scope() as session:
            tasks = self.build_tasks(session, window)
            stored = self.load_stored_rows(session, window)
            logger.info(f"{self.name}: {len(tasks)} tasks, {len(stored)} rows already stored")

            fetched = self._fetch_all(token, tasks, window, result)

            staged: List[Dict[str, Any]] = []
            staged_keys: Set[Tuple] = set()

            for task in tasks:
                if task not in fetched:
                    continue
                records = self._transform_task(session, task, fetched[task], window, result)

                for record in records:
                    key = self.record_key(record)
                    if key in staged_keys or self.is_unchanged(stored, key, record):
                        result.records_skipped += 1
                        continue
                    staged_keys.add(key)
                    staged.append(record)

                # Dimension rows created while transforming survive a later failure
                session.commit()

            self._persist(session, staged, result)

        result.finalize()
        logger.info(
            f"{self.name} sync finished: processed={result.items_processed} "
            f"saved={result.records_saved} skipped={result.records_skipped} "
            f"errors={len(result.errors)}"
        )
        return result

    def _transform_task(
        self,
        session: Session,
        task: SyncTask,
        data: Any,
        window: SyncWindow,
        result: SyncResult
    ) -> List[Dict[str, Any]]:
        """
        Transform one task's rows on the orchestrating thread.

        A row that raises is logged and the task's remaining rows still run;
        the task then contributes one error string. A database error rolls
        back the task's uncommitted dimension work and drops its records.
        """
        records: List[Dict[str, Any]] = []
        failures: List[Exception] = []

        for row in self.rows_of(task, data):
            try:
                record = self.transform(session, task, row, window)
            except ValidationSkip as e:
                logger.debug(f"{self.name}: skipped row in {task.label}: {e}")
                result.records_skipped += 1
                continue
            except SQLAlchemyError as e:
                session.rollback()
                self.reset_dimension_cache()
                logger.error(f"{self.name}: {task.label} failed while resolving dimensions: {e}")
                failures.append(e)
                records = []
                break
            except Exception as e:
                logger.error(f"{self.name}: row in {task.label} failed: {e}")
                failures.append(e)
                continue

            if record is not None:
                records.append(record)

        if failures:
            more = f" (and {len(failures) - 1} more rows)" if len(failures) > 1 else ''
            result.errors.append(f"Error processing {task.label}: {failures[0]}{more}")

        if self.is_processed(task, data, len(records)):
            result.items_processed += 1
        return records

    def _fetch_all(self, token: str, tasks: List[SyncTask], window: SyncWindow, result: SyncResult) -> Dict[SyncTask, Any]:
        """Run ``fetch`` for every task on a bounded pool; failures are recorded, not raised."""
        fetched: Dict[SyncTask, Any] = {}
        if not tasks:
            return fetched

        workers = max(1, min(self.max_workers, len(tasks)))

        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {executor.submit(self.fetch, token, task, window): task for task in tasks}

            with tqdm(total=len(tasks), desc=f"  Fetching {self.name}", unit="task",
                      disable=not self.show_progress) as pbar:
                for future in as_completed(futures):
                    task = futures[future]
                    try:
                        fetched[task] = future.result()
                    except Exception as e:
                        logger.error(f"{self.name}: {task.label} failed: {e}")
                        result.errors.append(f"Error processing {task.label}: {e}")
                    pbar.update(1)

        return fetched

    def _persist(self, session: Session, records: List[Dict[str, Any]], result: SyncResult) -> None:
        if not records:
            logger.info(f"{self.name}: nothing new to write")
            return

        try:
            if self.write_mode == 'insert':
                BatchOperations(session).batch_insert(self.model, records, chunk_size=self.chunk_size)
            else:
                UpsertOperations(session, self.db_type).upsert_batch(
                    self.model, records, self.key_columns, chunk_size=self.chunk_size
                )
            session.commit()
            result.records_saved += len(records)

        except IntegrityError as e:
            session.rollback()
            logger.warning(f"{self.name}: bulk write hit a duplicate key ({e.orig}), writing one record at a time")
            self._persist_one_by_one(session, records, result)

        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"{self.name}: bulk write failed: {e}")
            result.errors.append(f"Bulk write failed: {e}")

    def _persist_one_by_one(self, session: Session, records: List[Dict[str, Any]], result: SyncResult) -> None:
        upsert_ops = UpsertOperations(session, self.db_type)

        for record in records:
            try:
                if self.write_mode == 'insert':
                    session.add(self.model(**record))
                    session.flush()
                else:
                    upsert_ops.upsert_single(self.model, record, self.key_columns)
                session.commit()
                result.records_saved += 1

            except IntegrityError:
                session.rollback()
                logger.debug(f"{self.name}: duplicate {self.record_key(record)}, skipped")
                result.records_skipped += 1

            except SQLAlchemyError as e:
                session.rollback()
                result.errors.append(f"Failed to save {self.record_key(record)}: {e}")


def now_utc() -> datetime:
    """Timestamp stored in last_synced_at."""
    return utc_now()


def _comparable(value: Any) -> Any:
    # Floats from payloads against Numeric columns read back as Decimal
    if isinstance(value, float):
        return Decimal(str(value))
    return value
