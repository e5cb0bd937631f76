"""
Revenue reservation reports.

There is no aggregate row: totals are grouped at query time by day,
sales manager, sales director or project.
"""

from dataclasses import replace
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..common.date_utils import get_day_before_yesterday, get_first_day_of_month, get_yesterday
from ..common.models import RevenueReservation
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


TARGET_AMOUNT = 1_000_000_000
PROJECT_TARGET_FACTOR = 1.25


def serialize(row: RevenueReservation) -> Dict[str, Any]:
    return {
        'id': row.id,
        'projectId': row.project_id,
        'projectName': row.project_name,
        'projectShortName': row.project_short_name,
        'date': iso(row.date),
        'stName': row.st_name,
        'salesManagerName': row.sales_manager_name,
        'salesDirectorName': row.sales_director_name,
        'reservedAmount': to_float(row.reserved_amount),
        'reservedUnits': row.reserved_units,
        'cancelledAmount': to_float(row.cancelled_amount),
        'cancelledUnits': row.cancelled_units,
        'netAmount': to_float((row.reserved_amount or 0) - (row.cancelled_amount or 0)),
        'netUnits': (row.reserved_units or 0) - (row.cancelled_units or 0),
        'type': row.type,
        'currency': row.currency,
    }


DETAIL_VIEW = DateGroupedView(
    model=RevenueReservation,
    summary_fields={
        'reservedAmount': RevenueReservation.reserved_amount,
        'reservedUnits': RevenueReservation.reserved_units,
        'cancelledAmount': RevenueReservation.cancelled_amount,
        'cancelledUnits': RevenueReservation.cancelled_units,
    },
    record=serialize,
    total_expr=RevenueReservation.reserved_amount,
)


def _team_conditions(filters: DetailFilters) -> List:
    conditions = []
    if filters.extra.get('salesManager'):
        conditions.append(RevenueReservation.sales_manager_name == filters.extra['salesManager'])
    if filters.extra.get('salesDirector'):
        conditions.append(RevenueReservation.sales_director_name == filters.extra['salesDirector'])
    return conditions


def _conditions(filters: DetailFilters) -> List:
    return match_conditions(RevenueReservation, filters, total_expr=RevenueReservation.reserved_amount) \
        + _team_conditions(filters)


def list_records(session: Session, filters: DetailFilters, page=None, limit=None) -> Dict[str, Any]:
    page, limit = normalize_page(page, limit)
    try:
        conditions = _conditions(filters)
    except InvalidDimensionId:
        return empty_page(page, limit)
    return paginated_list(session, RevenueReservation, conditions, serialize, page, limit)


def summary(session: Session, tz_name: str = 'Asia/Dubai', today: Optional[date] = None) -> Dict[str, Any]:
    """
    Reserved amount yesterday, the day before, month-to-date and
    year-to-date (from 1 January of yesterday's year) against the yearly target.
    """
    yesterday = get_yesterday(tz_name, today)
    previous_day = get_day_before_yesterday(tz_name, today)
    month_start = get_first_day_of_month(yesterday.year, yesterday.month)
    year_start = date(yesterday.year, 1, 1)

    amount = RevenueReservation.reserved_amount
    current = sum_where(session, amount, RevenueReservation.date == yesterday)
    previous = sum_where(session, amount, RevenueReservation.date == previous_day)
    mtd = sum_where(session, amount, RevenueReservation.date >= month_start, RevenueReservation.date <= yesterday)
    ytd = sum_where(session, amount, RevenueReservation.date >= year_start, RevenueReservation.date <= yesterday)
    total = sum_where(session, amount)

    return {
        'date': iso(yesterday),
        'yesterday': to_float(current),
        'previousDay': to_float(previous),
        'change': to_float(current - previous),
        'changePercent': percent_change(current, previous, places=1),
        'totalRevenue': to_float(total),
        'monthToDate': to_float(mtd),
        'yearToDate': to_float(ytd),
        'targetAmount': TARGET_AMOUNT,
        'targetAchievementPercent': round(to_float(ytd) / TARGET_AMOUNT * 100, 2),
        'currency': 'AED',
    }


def _grouped(session: Session, filters: DetailFilters, column, label: str) -> List[Dict[str, Any]]:
    try:
        conditions = _conditions(filters)
    except InvalidDimensionId:
        return []

    rows = session.query(
        column.label('name'),
        func.sum(RevenueReservation.reserved_amount).label('reserved_amount'),
        func.sum(RevenueReservation.reserved_units).label('reserved_units'),
        func.sum(RevenueReservation.cancelled_amount).label('cancelled_amount'),
        func.sum(RevenueReservation.cancelled_units).label('cancelled_units'),
    ).filter(*conditions).group_by(column).all()

    data = []
    for row in rows:
        reserved_units = int(row.reserved_units or 0)
        cancelled_units = int(row.cancelled_units or 0)
        data.append({
            label: row.name or 'Unassigned',
            'reservedAmount': to_float(row.reserved_amount),
            'reservedUnits': reserved_units,
            'cancelledAmount': to_float(row.cancelled_amount),
            'cancelledUnits': cancelled_units,
            'netAmount': to_float((row.reserved_amount or 0) - (row.cancelled_amount or 0)),
            'cancellationRate': round(cancelled_units / reserved_units * 100, 1) if reserved_units else 0.0,
        })
    data.sort(key=lambda item: item['reservedAmount'], reverse=True)
    return data


def by_manager(session: Session, filters: DetailFilters) -> Dict[str, Any]:
    return {'data': _grouped(session, filters, RevenueReservation.sales_manager_name, 'salesManagerName')}


def by_director(session: Session, filters: DetailFilters) -> Dict[str, Any]:
    return {'data': _grouped(session, filters, RevenueReservation.sales_director_name, 'salesDirectorName')}


def by_project(session: Session, filters: DetailFilters) -> Dict[str, Any]:
    """Per project, with a target of 1.25x the reserved amount."""
    data = _grouped(session, filters, RevenueReservation.project_name, 'projectName')
    for item in data:
        target = round(item['reservedAmount'] * PROJECT_TARGET_FACTOR, 2)
        item['targetAmount'] = target
        item['achievementPercent'] = round(item['reservedAmount'] / target * 100, 1) if target else 0.0
    return {'data': data}


def detail(session: Session, filters: DetailFilters, page=None, limit=None) -> Dict[str, Any]:
    view = replace(DETAIL_VIEW, detail_conditions=tuple(_team_conditions(filters)))
    result = date_grouped_detail(session, view, filters, page, limit)
    for group in result['dateGroups']:
        s = group['summary']
        s['netAmount'] = round(s['reservedAmount'] - s['cancelledAmount'], 2)
    return result
