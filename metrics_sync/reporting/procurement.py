"""
Procurement reports: purchase order list, status summary, monthly card
and detail grouped by creation date (drafts excluded).
"""

from dataclasses import replace
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ..common.date_utils import (
    get_first_day_of_month,
    get_last_day_of_month,
    get_previous_month,
    today_in_tz,
)
from ..common.models import ProcurementPurchaseOrder
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
    to_float,
)


PO = ProcurementPurchaseOrder
NOT_DRAFT = PO.approval_status != 'Draft'


def serialize(row: ProcurementPurchaseOrder) -> Dict[str, Any]:
    entity = row.entity
    return {
        'id': row.id,
        'purchId': row.purch_id,
        'entityId': row.entity_id,
        'entityName': entity.entity_name if entity else None,
        'dataAreaId': row.data_area_id,
        'vendorAccount': row.vendor_account,
        'vendorName': row.vendor_name,
        'totalAmount': to_float(row.total_amount),
        'currency': row.currency,
        'purchaseOrderStatus': row.purchase_order_status,
        'approvalStatus': row.approval_status,
        'createdTimestamp': row.created_timestamp.isoformat() if row.created_timestamp else None,
        'createdDate': iso(row.created_date),
        'dataSource': row.data_source,
    }


DETAIL_VIEW = DateGroupedView(
    model=PO,
    summary_fields={'totalAmount': PO.total_amount},
    record=serialize,
    date_column=PO.created_date,
    total_expr=PO.total_amount,
)


def _extra_conditions(filters: DetailFilters) -> List:
    """approvalStatus, purchaseOrderStatus and vendor (case-insensitive substring)."""
    conditions = []
    if filters.extra.get('approvalStatus'):
        conditions.append(PO.approval_status == filters.extra['approvalStatus'])
    if filters.extra.get('purchaseOrderStatus'):
        conditions.append(PO.purchase_order_status == filters.extra['purchaseOrderStatus'])
    vendor = (filters.extra.get('vendor') or '').strip().lower()
    if vendor:
        pattern = f"%{vendor}%"
        conditions.append(or_(func.lower(PO.vendor_name).like(pattern), func.lower(PO.vendor_account).like(pattern)))
    return conditions


def _conditions(filters: DetailFilters) -> List:
    return match_conditions(PO, filters, total_expr=PO.total_amount, date_column=PO.created_date) \
        + _extra_conditions(filters)


def list_records(session: Session, filters: DetailFilters, page=None, limit=None) -> Dict[str, Any]:
    page, limit = normalize_page(page, limit)
    try:
        conditions = _conditions(filters)
    except InvalidDimensionId:
        return empty_page(page, limit)
    return paginated_list(
        session, PO, conditions, serialize, page, limit,
        order_by=[PO.created_timestamp.desc(), PO.id.desc()],
    )


def _breakdown(session: Session, column, conditions: List) -> List[Dict[str, Any]]:
    rows = session.query(column.label('name'), func.count(PO.id).label('count'), func.sum(PO.total_amount).label('total')) \
        .filter(*conditions).group_by(column).order_by(column).all()
    return [{'status': row.name, 'count': row.count, 'totalAmount': to_float(row.total)} for row in rows]


def summary(session: Session, filters: DetailFilters) -> Dict[str, Any]:
    """Count, total, average and status/approval breakdowns."""
    try:
        conditions = _conditions(filters)
    except InvalidDimensionId:
        return {'count': 0, 'totalAmount': 0.0, 'averageAmount': 0.0, 'byStatus': [], 'byApprovalStatus': []}

    count, total = session.query(func.count(PO.id), func.coalesce(func.sum(PO.total_amount), 0)) \
        .filter(*conditions).one()

    return {
        'count': count,
        'totalAmount': to_float(total),
        'averageAmount': round(to_float(total) / count, 2) if count else 0.0,
        'byStatus': _breakdown(session, PO.purchase_order_status, conditions),
        'byApprovalStatus': _breakdown(session, PO.approval_status, conditions),
    }


def _month_totals(session: Session, start: date, end: date) -> Dict[str, Any]:
    count, total = session.query(func.count(PO.id), func.coalesce(func.sum(PO.total_amount), 0)).filter(
        NOT_DRAFT, PO.created_date >= start, PO.created_date <= end,
    ).one()
    return {'from': iso(start), 'to': iso(end), 'count': count, 'totalAmount': to_float(total)}


def card(session: Session, tz_name: str = 'Asia/Dubai', today: Optional[date] = None) -> Dict[str, Any]:
    """This month vs. last month, drafts excluded."""
    today = today or today_in_tz(tz_name)
    month_start = get_first_day_of_month(today.year, today.month)
    month_end = get_last_day_of_month(today.year, today.month)
    prev_year, prev_month = get_previous_month(today.year, today.month)

    current = _month_totals(session, month_start, month_end)
    previous = _month_totals(
        session, get_first_day_of_month(prev_year, prev_month), get_last_day_of_month(prev_year, prev_month)
    )
    change_pct = percent_change(current['totalAmount'], previous['totalAmount'], places=1)

    return {
        'currentMonth': current,
        'previousMonth': previous,
        'change': round(current['totalAmount'] - previous['totalAmount'], 2),
        'changePercentage': format_percent(change_pct),
        'currency': 'AED',
    }


def detail(session: Session, filters: DetailFilters, page=None, limit=None) -> Dict[str, Any]:
    """Buckets by created_date; drafts never appear."""
    view = replace(DETAIL_VIEW, detail_conditions=(NOT_DRAFT, *_extra_conditions(filters)))
    result = date_grouped_detail(session, view, filters, page, limit)
    for group in result['dateGroups']:
        group['summary']['orderCount'] = group['recordCount']
    return result
