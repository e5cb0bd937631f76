"""
Sales collection reports.

Sentinel rows (Grand Summary / No Value) never appear in the list or in
the detail records; the Grand Summary row is the detail bucket's summary.
"""

from datetime import date
from typing import Any, Dict, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..common.date_utils import get_day_before_yesterday, get_yesterday
from ..common.models import Project, SalesCollection, SPECIAL_GRAND_SUMMARY
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


TOTAL_EXPR = SalesCollection.escrow_collection + SalesCollection.non_escrow_collection
NOT_SENTINEL = SalesCollection.special_type.is_(None)


def serialize(row: SalesCollection) -> Dict[str, Any]:
    entity = row.entity
    project = row.project
    return {
        'id': row.id,
        'entityId': row.entity_id,
        'entityName': entity.entity_name if entity else None,
        'projectId': row.project_id,
        'projectName': project.project_name if project else None,
        'projectCode': project.project_code if project else None,
        'date': iso(row.date),
        'escrowCollection': to_float(row.escrow_collection),
        'nonEscrowCollection': to_float(row.non_escrow_collection),
        'totalCollection': to_float(row.total_collection),
        'mtdEscrowCollection': to_float(row.mtd_escrow_collection),
        'mtdNonEscrowCollection': to_float(row.mtd_non_escrow_collection),
        'dataSource': row.data_source,
    }


DETAIL_VIEW = DateGroupedView(
    model=SalesCollection,
    summary_fields={
        'escrowCollection': SalesCollection.escrow_collection,
        'nonEscrowCollection': SalesCollection.non_escrow_collection,
        'mtdEscrowCollection': SalesCollection.mtd_escrow_collection,
        'mtdNonEscrowCollection': SalesCollection.mtd_non_escrow_collection,
    },
    record=serialize,
    detail_conditions=(NOT_SENTINEL,),
    aggregate_condition=SalesCollection.special_type == SPECIAL_GRAND_SUMMARY,
    total_expr=TOTAL_EXPR,
)


def list_records(session: Session, filters: DetailFilters, page=None, limit=None) -> Dict[str, Any]:
    """Project rows only; minAmount/maxAmount filter the total collection."""
    page, limit = normalize_page(page, limit)
    try:
        conditions = [NOT_SENTINEL] + match_conditions(SalesCollection, filters, total_expr=TOTAL_EXPR)
    except InvalidDimensionId:
        return empty_page(page, limit)
    return paginated_list(session, SalesCollection, conditions, serialize, page, limit)


def summary(session: Session, tz_name: str = 'Asia/Dubai', today: Optional[date] = None) -> Dict[str, Any]:
    """
    Total collection yesterday vs. the day before (project rows summed).

    changePercent has one decimal and is 0 when the day before had nothing.
    """
    current_day = get_yesterday(tz_name, today)
    previous_day = get_day_before_yesterday(tz_name, today)

    current = sum_where(session, TOTAL_EXPR, NOT_SENTINEL, SalesCollection.date == current_day)
    previous = sum_where(session, TOTAL_EXPR, NOT_SENTINEL, SalesCollection.date == previous_day)
    escrow = sum_where(session, SalesCollection.escrow_collection, NOT_SENTINEL, SalesCollection.date == current_day)
    non_escrow = sum_where(
        session, SalesCollection.non_escrow_collection, NOT_SENTINEL, SalesCollection.date == current_day
    )

    return {
        'date': iso(current_day),
        'previousDate': iso(previous_day),
        'totalCollection': to_float(current),
        'escrowCollection': to_float(escrow),
        'nonEscrowCollection': to_float(non_escrow),
        'previousTotalCollection': to_float(previous),
        'change': to_float(current - previous),
        'changePercent': percent_change(current, previous, places=1, when_new=0.0),
        'currency': 'AED',
    }


def chart(session: Session, filters: DetailFilters) -> Dict[str, Any]:
    """Collections per project over the filtered range, largest first."""
    try:
        conditions = [NOT_SENTINEL] + match_conditions(SalesCollection, filters, total_expr=TOTAL_EXPR)
    except InvalidDimensionId:
        return {'data': []}

    rows = session.query(
        Project.project_name,
        func.sum(SalesCollection.escrow_collection).label('escrow'),
        func.sum(SalesCollection.non_escrow_collection).label('non_escrow'),
    ).select_from(SalesCollection).outerjoin(Project, SalesCollection.project_id == Project.id) \
        .filter(*conditions).group_by(Project.project_name).all()

    data = [
        {
            'projectName': row.project_name or 'Unassigned',
            'escrowCollection': to_float(row.escrow),
            'nonEscrowCollection': to_float(row.non_escrow),
            'totalCollection': to_float((row.escrow or 0) + (row.non_escrow or 0)),
        }
        for row in rows
    ]
    data.sort(key=lambda item: item['totalCollection'], reverse=True)
    return {'data': data}


def detail(session: Session, filters: DetailFilters, page=None, limit=None) -> Dict[str, Any]:
    result = date_grouped_detail(session, DETAIL_VIEW, filters, page, limit)
    for group in result['dateGroups']:
        s = group['summary']
        s['totalCollection'] = round(s['escrowCollection'] + s['nonEscrowCollection'], 2)
    return result
