"""
Finance reserve reports: list, date-grouped detail and the liquidity card.
"""

from datetime import date
from typing import Any, Dict, Optional

from sqlalchemy import and_
from sqlalchemy.orm import Session

from ..common.date_utils import get_day_before_yesterday, get_yesterday
from ..common.models import FinanceReserveBank
from ..datalayer.finance_reserve import DATA_SOURCE
from .query import (
    DateGroupedView,
    DetailFilters,
    InvalidDimensionId,
    date_grouped_detail,
    empty_page,
    iso,
    match_conditions,
    normalize_page,
    paginated_list,
    percent_change,
    sum_where,
    to_float,
)


# Reports read the bank group summary rows only
FROM_SYNC = FinanceReserveBank.data_source == DATA_SOURCE


def serialize(row: FinanceReserveBank) -> Dict[str, Any]:
    entity = row.entity
    return {
        'id': row.id,
        'entityId': row.entity_id,
        'entityCode': entity.entity_code if entity else None,
        'entityName': entity.entity_name if entity else 'All Entities',
        'date': iso(row.date),
        'escrowReserve': to_float(row.escrow_reserve),
        'nonEscrowReserve': to_float(row.non_escrow_reserve),
        'otherReserve': to_float(row.other_reserve),
        'totalReserve': to_float(row.total_reserve),
        'currency': row.currency,
        'dataSource': row.data_source,
        'lastSyncedAt': row.last_synced_at.isoformat() if row.last_synced_at else None,
    }


DETAIL_VIEW = DateGroupedView(
    model=FinanceReserveBank,
    summary_fields={
        'escrowReserve': FinanceReserveBank.escrow_reserve,
        'nonEscrowReserve': FinanceReserveBank.non_escrow_reserve,
        'otherReserve': FinanceReserveBank.other_reserve,
        'totalReserve': FinanceReserveBank.total_reserve,
    },
    record=serialize,
    detail_conditions=(FinanceReserveBank.entity_id.is_not(None), FROM_SYNC),
    aggregate_condition=and_(FinanceReserveBank.entity_id.is_(None), FROM_SYNC),
    total_expr=FinanceReserveBank.total_reserve,
)


def list_records(session: Session, filters: DetailFilters, page=None, limit=None) -> Dict[str, Any]:
    """Every stored row, aggregate rows included, newest first."""
    page, limit = normalize_page(page, limit)
    try:
        conditions = [FROM_SYNC] + match_conditions(FinanceReserveBank, filters, total_expr=FinanceReserveBank.total_reserve)
    except InvalidDimensionId:
        return empty_page(page, limit)
    return paginated_list(session, FinanceReserveBank, conditions, serialize, page, limit)


def detail(session: Session, filters: DetailFilters, page=None, limit=None) -> Dict[str, Any]:
    return date_grouped_detail(session, DETAIL_VIEW, filters, page, limit)


def liquidity(session: Session, tz_name: str = 'Asia/Dubai', today: Optional[date] = None) -> Dict[str, Any]:
    """
    Cross-entity total reserve yesterday vs. the day before.

    changePercentage is rounded to 2 places; 100 when the previous day
    was 0 and yesterday is positive.
    """
    current_day = get_yesterday(tz_name, today)
    previous_day = get_day_before_yesterday(tz_name, today)

    aggregate = and_(FinanceReserveBank.entity_id.is_(None), FROM_SYNC)
    current = sum_where(session, FinanceReserveBank.total_reserve, aggregate, FinanceReserveBank.date == current_day)
    previous = sum_where(session, FinanceReserveBank.total_reserve, aggregate, FinanceReserveBank.date == previous_day)

    return {
        'date': iso(current_day),
        'previousDate': iso(previous_day),
        'totalReserve': to_float(current),
        'previousTotalReserve': to_float(previous),
        'change': to_float(current - previous),
        'changePercentage': percent_change(current, previous, places=2),
        'currency': 'AED',
    }
