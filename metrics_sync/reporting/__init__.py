"""
Read-only report views over the metric tables.

Every view takes a session (use ``SessionManager.read_scope()``) and
request-style camelCase parameters, and returns a JSON-ready dict.

Example Usage:
    from metrics_sync.reporting import get_detail

    with session_manager.read_scope() as session:
        payload = get_detail(session, 'sales_collection', {'startDate': '2026-01-01'}, page=1, limit=10)
"""

from datetime import date
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from . import (
    expense_paidout,
    finance_reserve,
    google_review,
    instagram,
    procurement,
    revenue_reservation,
    sales_collection,
)
from .query import DetailFilters, InvalidDimensionId, pagination, parse_dimension_id


DOMAINS = {
    'finance_reserve': finance_reserve,
    'expense_paidout': expense_paidout,
    'sales_collection': sales_collection,
    'revenue_reservation': revenue_reservation,
    'procurement': procurement,
    'instagram': instagram,
    'google_review': google_review,
}


def _module(domain: str):
    if domain not in DOMAINS:
        raise ValueError(f"Unknown report domain: {domain}. Available: {', '.join(DOMAINS)}")
    return DOMAINS[domain]


def _views(tz_name: str, today: Optional[date]) -> Dict[str, Dict[str, Callable[[Session, DetailFilters], Any]]]:
    """Named summary views per domain; the first one is the default summary."""
    return {
        'finance_reserve': {
            'liquidity': lambda s, f: finance_reserve.liquidity(s, tz_name, today),
        },
        'expense_paidout': {
            'month_over_month': lambda s, f: expense_paidout.month_over_month(s, tz_name, today),
            'categories': lambda s, f: expense_paidout.category_summary(s, f, tz_name, today),
        },
        'sales_collection': {
            'summary': lambda s, f: sales_collection.summary(s, tz_name, today),
            'chart': lambda s, f: sales_collection.chart(s, f),
        },
        'revenue_reservation': {
            'summary': lambda s, f: revenue_reservation.summary(s, tz_name, today),
            'by_manager': lambda s, f: revenue_reservation.by_manager(s, f),
            'by_director': lambda s, f: revenue_reservation.by_director(s, f),
            'by_project': lambda s, f: revenue_reservation.by_project(s, f),
        },
        'procurement': {
            'summary': lambda s, f: procurement.summary(s, f),
            'card': lambda s, f: procurement.card(s, tz_name, today),
        },
        'instagram': {
            'dashboard': lambda s, f: instagram.dashboard(s, tz_name, today),
            'trends': lambda s, f: instagram.trends(s, f, tz_name=tz_name, today=today),
        },
        'google_review': {
            'statistics': lambda s, f: google_review.statistics(s, f),
            'dashboard': lambda s, f: google_review.dashboard(s, tz_name, today),
        },
    }


def get_list(session: Session, domain: str, params: Optional[dict] = None, page=None, limit=None) -> Dict[str, Any]:
    """Flat paginated records: {'data': [...], 'pagination': {...}, 'filters': {...}}."""
    filters = DetailFilters.from_dict(params)
    payload = _module(domain).list_records(session, filters, page, limit)
    payload['filters'] = filters.to_dict()
    return payload


def get_detail(session: Session, domain: str, params: Optional[dict] = None, page=None, limit=None) -> Dict[str, Any]:
    """
    Date-grouped detail: {'dateGroups': [...], 'pagination': {...}, 'filters': {...}}.

    Raises:
        ValueError: Unknown domain or a domain without a detail view
    """
    module = _module(domain)
    if not hasattr(module, 'detail'):
        raise ValueError(f"No detail view for {domain}")
    filters = DetailFilters.from_dict(params)
    payload = module.detail(session, filters, page, limit)
    payload['filters'] = filters.to_dict()
    return payload


def available_views(domain: str) -> list:
    _module(domain)
    return list(_views('Asia/Dubai', None)[domain])


def get_summary(
    session: Session,
    domain: str,
    params: Optional[dict] = None,
    view: Optional[str] = None,
    tz_name: str = 'Asia/Dubai',
    today: Optional[date] = None
) -> Dict[str, Any]:
    """
    Period-over-period summary (or another named view) for a domain.

    Args:
        view: View name from ``available_views(domain)``; the domain's
            default summary when None
        today: Reference date, defaults to today in ``tz_name``
    """
    _module(domain)
    views = _views(tz_name, today)[domain]
    name = view or next(iter(views))
    if name not in views:
        raise ValueError(f"Unknown view {name!r} for {domain}. Available: {', '.join(views)}")
    return views[name](session, DetailFilters.from_dict(params))


__all__ = [
    'DOMAINS',
    'DetailFilters',
    'InvalidDimensionId',
    'available_views',
    'get_detail',
    'get_list',
    'get_summary',
    'pagination',
    'parse_dimension_id',
]
