"""
Expense payout reports: list, month-over-month summary, category split
and date-grouped detail (with the page's dates grouped by month).
"""

from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..common.date_utils import (
    get_first_day_of_month,
    get_last_day_of_month,
    get_previous_month,
    get_yesterday,
)
from ..common.models import FinanceExpensePaidout
from .query import (
    DateGroupedView,
    DetailFilters,
    InvalidDimensionId,
    date_grouped_detail,
    empty_page,
    format_percent,
    iso,
    match_conditions,
    normalize_page,
    paginated_list,
    percent_change,
    sum_where,
    to_float,
)


CATEGORIES = (
    ('Operations', 'opsExpense', FinanceExpensePaidout.ops_expense),
    ('Land Purchase', 'landExpense', FinanceExpensePaidout.land_expense),
    ('Construction', 'constructionExpense', FinanceExpensePaidout.construction_expense),
    ('Cash', 'cashExpense', FinanceExpensePaidout.cash_expense),
)

TOTAL_EXPR = (
    FinanceExpensePaidout.ops_expense + FinanceExpensePaidout.land_expense
    + FinanceExpensePaidout.construction_expense + FinanceExpensePaidout.cash_expense
)

AGGREGATE = FinanceExpensePaidout.entity_id.is_(None)


def serialize(row: FinanceExpensePaidout) -> Dict[str, Any]:
    entity = row.entity
    return {
        'id': row.id,
        'entityId': row.entity_id,
        'entityCode': entity.entity_code if entity else None,
        'entityName': entity.entity_name if entity else 'All Entities',
        'date': iso(row.date),
        'opsExpense': to_float(row.ops_expense),
        'landExpense': to_float(row.land_expense),
        'constructionExpense': to_float(row.construction_expense),
        'cashExpense': to_float(row.cash_expense),
        'totalExpense': to_float(row.total_expense),
        'currency': row.currency,
        'dataSource': row.data_source,
    }


DETAIL_VIEW = DateGroupedView(
    model=FinanceExpensePaidout,
    summary_fields={key: column for _, key, column in CATEGORIES},
    record=serialize,
    detail_conditions=(FinanceExpensePaidout.entity_id.is_not(None),),
    aggregate_condition=AGGREGATE,
    total_expr=TOTAL_EXPR,
)


def list_records(session: Session, filters: DetailFilters, page=None, limit=None) -> Dict[str, Any]:
    page, limit = normalize_page(page, limit)
    try:
        conditions = match_conditions(FinanceExpensePaidout, filters, total_expr=TOTAL_EXPR)
    except InvalidDimensionId:
        return empty_page(page, limit)
    return paginated_list(session, FinanceExpensePaidout, conditions, serialize, page, limit)


def _month_totals(session: Session, start: date, end: date) -> Dict[str, float]:
    in_range = (AGGREGATE, FinanceExpensePaidout.date >= start, FinanceExpensePaidout.date <= end)
    totals = {key: to_float(sum_where(session, column, *in_range)) for _, key, column in CATEGORIES}
    totals['totalExpense'] = round(sum(totals.values()), 2)
    return totals


def month_over_month(session: Session, tz_name: str = 'Asia/Dubai', today: Optional[date] = None) -> Dict[str, Any]:
    """
    Month-to-date (through yesterday) vs. the whole previous month,
    from the cross-entity rows.
    """
    yesterday = get_yesterday(tz_name, today)
    month_start = get_first_day_of_month(yesterday.year, yesterday.month)
    prev_year, prev_month = get_previous_month(yesterday.year, yesterday.month)
    prev_start = get_first_day_of_month(prev_year, prev_month)
    prev_end = get_last_day_of_month(prev_year, prev_month)

    current = _month_totals(session, month_start, yesterday)
    previous = _month_totals(session, prev_start, prev_end)
    change_pct = percent_change(current['totalExpense'], previous['totalExpense'], places=1)

    return {
        'currentMonth': {'from': iso(month_start), 'to': iso(yesterday), **current},
        'previousMonth': {'from': iso(prev_start), 'to': iso(prev_end), **previous},
        'change': round(current['totalExpense'] - previous['totalExpense'], 2),
        'changePercentage': format_percent(change_pct),
        'currency': 'AED',
    }


def category_summary(
    session: Session,
    filters: DetailFilters,
    tz_name: str = 'Asia/Dubai',
    today: Optional[date] = None
) -> Dict[str, Any]:
    """
    Category split with shares of the total over a date range (default:
    current month through yesterday).
    """
    yesterday = get_yesterday(tz_name, today)
    start = filters.start_date or get_first_day_of_month(yesterday.year, yesterday.month)
    end = filters.end_date or yesterday

    totals = _month_totals(session, start, end)
    grand_total = totals['totalExpense']

    categories: List[Dict[str, Any]] = []
    for label, key, _ in CATEGORIES:
        amount = totals[key]
        categories.append({
            'category': label,
            'amount': amount,
            'share': round(amount / grand_total * 100, 1) if grand_total else 0.0,
        })

    return {'from': iso(start), 'to': iso(end), 'total': grand_total, 'categories': categories}


def detail(session: Session, filters: DetailFilters, page=None, limit=None) -> Dict[str, Any]:
    result = date_grouped_detail(session, DETAIL_VIEW, filters, page, limit)

    months: Dict[str, Dict[str, Any]] = {}
    for group in result['dateGroups']:
        summary = group['summary']
        summary['totalExpense'] = round(sum(summary.get(key, 0.0) for _, key, _ in CATEGORIES), 2)

        month_key = group['date'][:7]
        month = months.setdefault(month_key, {'month': month_key, 'totalExpense': 0.0, 'dates': []})
        month['totalExpense'] = round(month['totalExpense'] + summary['totalExpense'], 2)
        month['dates'].append(group['date'])

    result['monthGroups'] = list(months.values())
    return result
