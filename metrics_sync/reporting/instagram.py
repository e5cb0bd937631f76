"""
Instagram reports: stored snapshots, dashboard stats and daily trends.
"""

from datetime import date, timedelta
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..common.date_utils import get_first_day_of_month, get_yesterday
from ..common.models import SocialInsight
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
    sum_where,
)


PLATFORM = 'INSTAGRAM'
IS_INSTAGRAM = SocialInsight.platform == PLATFORM


def serialize(row: SocialInsight) -> Dict[str, Any]:
    return {
        'id': row.id,
        'entityId': row.entity_id,
        'platform': row.platform,
        'date': iso(row.date),
        'totalFollowers': row.total_followers,
        'newFollowers': row.new_followers,
        'totalReach': row.total_reach,
        'newReach': row.new_reach,
        'posts': row.posts,
        'aiOverview': row.ai_overview,
        'dataSource': row.data_source,
    }


def list_records(session: Session, filters: DetailFilters, page=None, limit=None) -> Dict[str, Any]:
    page, limit = normalize_page(page, limit)
    try:
        conditions = [IS_INSTAGRAM] + match_conditions(SocialInsight, filters)
    except InvalidDimensionId:
        return empty_page(page, limit)
    return paginated_list(session, SocialInsight, conditions, serialize, page, limit)


def dashboard(session: Session, tz_name: str = 'Asia/Dubai', today: Optional[date] = None) -> Dict[str, Any]:
    """Latest snapshot plus month-to-date new followers and reach."""
    latest = session.query(SocialInsight).filter(IS_INSTAGRAM) \
        .order_by(SocialInsight.date.desc(), SocialInsight.id.desc()).first()

    yesterday = get_yesterday(tz_name, today)
    month_start = get_first_day_of_month(yesterday.year, yesterday.month)
    in_month = (IS_INSTAGRAM, SocialInsight.date >= month_start, SocialInsight.date <= yesterday)

    return {
        'date': iso(latest.date) if latest else None,
        'totalFollowers': latest.total_followers if latest else 0,
        'newFollowers': latest.new_followers if latest else 0,
        'reach': latest.total_reach if latest else 0,
        'posts': latest.posts if latest else 0,
        'monthToDateNewFollowers': int(sum_where(session, SocialInsight.new_followers, *in_month)),
        'monthToDateReach': int(sum_where(session, SocialInsight.total_reach, *in_month)),
    }


def trends(
    session: Session,
    filters: DetailFilters,
    days: int = 30,
    tz_name: str = 'Asia/Dubai',
    today: Optional[date] = None
) -> Dict[str, Any]:
    """Daily series, oldest first (default: the last ``days`` days)."""
    end = filters.end_date or get_yesterday(tz_name, today)
    start = filters.start_date or end - timedelta(days=days - 1)

    rows = session.query(SocialInsight).filter(
        IS_INSTAGRAM, SocialInsight.date >= start, SocialInsight.date <= end,
    ).order_by(SocialInsight.date).all()

    return {
        'from': iso(start),
        'to': iso(end),
        'data': [
            {
                'date': iso(row.date),
                'totalFollowers': row.total_followers,
                'newFollowers': row.new_followers,
                'reach': row.total_reach,
            }
            for row in rows
        ],
    }


DETAIL_VIEW = DateGroupedView(
    model=SocialInsight,
    summary_fields={
        'newFollowers': SocialInsight.new_followers,
        'totalReach': SocialInsight.total_reach,
        'posts': SocialInsight.posts,
    },
    record=serialize,
    detail_conditions=(IS_INSTAGRAM,),
)


def detail(session: Session, filters: DetailFilters, page=None, limit=None) -> Dict[str, Any]:
    return date_grouped_detail(session, DETAIL_VIEW, filters, page, limit)
