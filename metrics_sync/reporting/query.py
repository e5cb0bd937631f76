"""
Query building blocks for the report views.

A date-grouped detail view is composed from small typed steps instead of
one ad hoc query:

    match(filters)  ->  count/page distinct dates  ->  load rows for the page
                    ->  summary per date (aggregate row, or sum of rows)

All functions are read-only; callers pass a session from
``SessionManager.read_scope()``.
"""

import math
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import and_, func
from sqlalchemy.orm import Session

from ..common.data_utils import convert_to_decimal
from ..common.date_utils import is_valid_date_format, parse_date_string


DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 100


class InvalidDimensionId(ValueError):
    """Entity/project id filter that cannot be an id."""


# =============================================================================
# Parsing helpers
# =============================================================================

def parse_dimension_id(value: Any) -> Optional[int]:
    """
    Parse an entity/project id filter.

    Returns:
        int or None when no filter was given

    Raises:
        InvalidDimensionId: If the value is not a positive integer
    """
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        raise InvalidDimensionId(f"Invalid id: {value!r}")
    if isinstance(value, int):
        if value <= 0:
            raise InvalidDimensionId(f"Invalid id: {value!r}")
        return value
    text = str(value).strip()
    if not text.isdigit() or int(text) <= 0:
        raise InvalidDimensionId(f"Invalid id: {value!r}")
    return int(text)


def parse_optional_date(value: Any) -> Optional[date]:
    """YYYY-MM-DD string or date; None for missing or malformed input."""
    if value is None or value == '':
        return None
    if isinstance(value, date):
        return value
    if is_valid_date_format(str(value)):
        return parse_date_string(str(value))
    return None


def normalize_page(page: Any = None, limit: Any = None) -> Tuple[int, int]:
    """(page >= 1, 1 <= limit <= MAX_LIMIT) with defaults for bad input."""
    try:
        page = int(page) if page is not None else DEFAULT_PAGE
    except (TypeError, ValueError):
        page = DEFAULT_PAGE
    try:
        limit = int(limit) if limit is not None else DEFAULT_LIMIT
    except (TypeError, ValueError):
        limit = DEFAULT_LIMIT
    return max(page, 1), min(max(limit, 1), MAX_LIMIT)


@dataclass
class DetailFilters:
    """
    Filters shared by the list and detail views.

    Dimension ids are kept raw and validated when the query is built, so an
    invalid id can short-circuit to an empty result.
    """
    entity_id: Any = None
    project_id: Any = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, params: Optional[Dict[str, Any]]) -> 'DetailFilters':
        """
        Build from request-style camelCase parameters.

        Recognized keys: entityId, projectId, startDate, endDate, minAmount,
        maxAmount; anything else is kept in ``extra``.
        """
        params = dict(params or {})
        known = {'entityId', 'projectId', 'startDate', 'endDate', 'minAmount', 'maxAmount'}
        return cls(
            entity_id=params.get('entityId'),
            project_id=params.get('projectId'),
            start_date=parse_optional_date(params.get('startDate')),
            end_date=parse_optional_date(params.get('endDate')),
            min_amount=convert_to_decimal(params.get('minAmount')),
            max_amount=convert_to_decimal(params.get('maxAmount')),
            extra={k: v for k, v in params.items() if k not in known},
        )

    def to_dict(self) -> Dict[str, Any]:
        """Applied filters, echoed back in the payload (None when unset)."""
        return {
            'entityId': self.entity_id,
            'projectId': self.project_id,
            'startDate': iso(self.start_date),
            'endDate': iso(self.end_date),
            'minAmount': to_float(self.min_amount) if self.min_amount is not None else None,
            'maxAmount': to_float(self.max_amount) if self.max_amount is not None else None,
            **self.extra,
        }


# =============================================================================
# Output helpers
# =============================================================================

def to_float(value: Any) -> float:
    """JSON-friendly number (Decimal/None -> float)."""
    if value is None:
        return 0.0
    return float(value)


def pagination(total: int, page: int, limit: int) -> Dict[str, Any]:
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        'total': total,
        'page': page,
        'limit': limit,
        'totalPages': total_pages,
        'hasNextPage': page < total_pages,
        'hasPrevPage': page > 1,
    }


def empty_page(page: int, limit: int, key: str = 'data') -> Dict[str, Any]:
    return {key: [], 'pagination': pagination(0, page, limit)}


def percent_change(current: Any, previous: Any, places: int = 2, when_new: float = 100.0) -> float:
    """
    (current - previous) / previous * 100, rounded.

    With previous == 0: ``when_new`` if current is positive, otherwise 0.
    """
    current = to_float(current)
    previous = to_float(previous)
    if previous == 0:
        return when_new if current > 0 else 0.0
    return round((current - previous) / previous * 100, places)


def format_percent(value: float) -> str:
    """Signed one-decimal percentage: '+12.5%', '-3.0%', '0.0%'."""
    if value == 0:
        return '0.0%'
    return f"{value:+.1f}%"


def iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


# =============================================================================
# Match step
# =============================================================================

def match_conditions(
    model,
    filters: DetailFilters,
    total_expr=None,
    date_column=None
) -> List:
    """
    SQL conditions for the common filters.

    Raises:
        InvalidDimensionId: Malformed entity/project id
    """
    date_column = date_column if date_column is not None else model.date
    conditions = []

    entity_id = parse_dimension_id(filters.entity_id)
    if entity_id is not None and hasattr(model, 'entity_id'):
        conditions.append(model.entity_id == entity_id)

    project_id = parse_dimension_id(filters.project_id)
    if project_id is not None and hasattr(model, 'project_id'):
        conditions.append(model.project_id == project_id)

    if filters.start_date:
        conditions.append(date_column >= filters.start_date)
    if filters.end_date:
        conditions.append(date_column <= filters.end_date)

    if total_expr is not None:
        if filters.min_amount is not None:
            conditions.append(total_expr >= filters.min_amount)
        if filters.max_amount is not None:
            conditions.append(total_expr <= filters.max_amount)

    return conditions


# =============================================================================
# Date-grouped detail
# =============================================================================

@dataclass
class DateGroupedView:
    """
    Description of one domain's detail view.

    Attributes:
        model: Metric model
        summary_fields: Output name -> numeric column summed/projected per date
        record: Row -> output dict
        detail_conditions: Conditions selecting detail (non-aggregate) rows
        aggregate_condition: Condition selecting the per-date aggregate row,
            None when the summary is the sum of the detail rows
        date_column: Grouping column (defaults to model.date)
        total_expr: Derived total used by the amount range filter
    """
    model: Any
    summary_fields: Dict[str, Any]
    record: Callable[[Any], Dict[str, Any]]
    detail_conditions: Sequence = ()
    aggregate_condition: Any = None
    date_column: Any = None
    total_expr: Any = None

    @property
    def grouping_column(self):
        return self.date_column if self.date_column is not None else self.model.date


def count_dates(session: Session, view: DateGroupedView, conditions: List) -> int:
    column = view.grouping_column
    return session.query(func.count(func.distinct(column))).filter(*conditions).scalar() or 0


def page_dates(session: Session, view: DateGroupedView, conditions: List, page: int, limit: int) -> List[date]:
    column = view.grouping_column
    rows = session.query(column).filter(*conditions).distinct() \
        .order_by(column.desc()).offset((page - 1) * limit).limit(limit).all()
    return [row[0] for row in rows]


def rows_for_dates(session: Session, view: DateGroupedView, conditions: List, dates: List[date]) -> Dict[date, list]:
    column = view.grouping_column
    rows = session.query(view.model).filter(and_(*conditions), column.in_(dates)) \
        .order_by(column.desc(), view.model.id).all()
    grouped: Dict[date, list] = {d: [] for d in dates}
    for row in rows:
        grouped[getattr(row, column.key)].append(row)
    return grouped


def aggregate_summaries(session: Session, view: DateGroupedView, dates: List[date]) -> Dict[date, Dict[str, float]]:
    column = view.grouping_column
    rows = session.query(view.model).filter(view.aggregate_condition, column.in_(dates)).all()
    return {
        getattr(row, column.key): {name: to_float(getattr(row, col.key)) for name, col in view.summary_fields.items()}
        for row in rows
    }


def summed_summary(view: DateGroupedView, rows: list) -> Dict[str, float]:
    return {
        name: to_float(sum((getattr(row, col.key) or 0) for row in rows))
        for name, col in view.summary_fields.items()
    }


def date_grouped_detail(
    session: Session,
    view: DateGroupedView,
    filters: DetailFilters,
    page: int = DEFAULT_PAGE,
    limit: int = DEFAULT_LIMIT
) -> Dict[str, Any]:
    """
    Paginated date buckets, newest first.

    Each bucket carries the date's summary (from the aggregate row, zero if
    it is missing, or summed from the detail rows) and its detail records.
    An invalid dimension id yields an empty, well-formed page.

    Returns:
        dict: {'dateGroups': [...], 'pagination': {...}}
    """
    page, limit = normalize_page(page, limit)
    try:
        conditions = list(view.detail_conditions) + match_conditions(
            view.model, filters, total_expr=view.total_expr, date_column=view.grouping_column
        )
    except InvalidDimensionId:
        return empty_page(page, limit, key='dateGroups')

    total = count_dates(session, view, conditions)
    dates = page_dates(session, view, conditions, page, limit)
    rows_by_date = rows_for_dates(session, view, conditions, dates) if dates else {}

    summaries = {}
    if view.aggregate_condition is not None and dates:
        summaries = aggregate_summaries(session, view, dates)

    zero = {name: 0.0 for name in view.summary_fields}
    groups = []
    for day in dates:
        rows = rows_by_date.get(day, [])
        if view.aggregate_condition is not None:
            summary = summaries.get(day, dict(zero))
        else:
            summary = summed_summary(view, rows)
        groups.append({
            'date': iso(day),
            'summary': summary,
            'recordCount': len(rows),
            'records': [view.record(row) for row in rows],
        })

    return {'dateGroups': groups, 'pagination': pagination(total, page, limit)}


def paginated_list(
    session: Session,
    model,
    conditions: List,
    record: Callable[[Any], Dict[str, Any]],
    page: int,
    limit: int,
    order_by: Optional[List] = None
) -> Dict[str, Any]:
    """Flat list view: {'data': [...], 'pagination': {...}}."""
    query = session.query(model).filter(*conditions)
    total = query.count()
    order_by = order_by or [model.date.desc(), model.id.desc()]
    rows = query.order_by(*order_by).offset((page - 1) * limit).limit(limit).all()
    return {'data': [record(row) for row in rows], 'pagination': pagination(total, page, limit)}


def sum_where(session: Session, column, *conditions) -> Decimal:
    """SUM(column) under conditions, 0 when no rows match."""
    value = session.query(func.coalesce(func.sum(column), 0)).filter(*conditions).scalar()
    return Decimal(str(value or 0))
