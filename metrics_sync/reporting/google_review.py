"""
Google review reports: filtered review list, rating statistics and the
dashboard counters.
"""

from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..common.data_utils import convert_to_int
from ..common.date_utils import get_first_day_of_month, get_yesterday
from ..common.models import GoogleReview
from .query import (
    DetailFilters,
    InvalidDimensionId,
    empty_page,
    iso,
    match_conditions,
    normalize_page,
    paginated_list,
    to_float,
)


SORT_COLUMNS = {
    'date': GoogleReview.date,
    'starRating': GoogleReview.star_rating,
    'reviewer': GoogleReview.reviewer,
    'createdAt': GoogleReview.created_at,
}

STAR_KEYS = {5: 'fiveStar', 4: 'fourStar', 3: 'threeStar', 2: 'twoStar', 1: 'oneStar'}
SENTIMENTS = ('positive', 'neutral', 'negative')
DASHBOARD_LATEST = 10


def serialize(row: GoogleReview) -> Dict[str, Any]:
    return {
        'id': row.id,
        'reviewId': row.review_id,
        'date': iso(row.date),
        'reviewer': row.reviewer,
        'comment': row.comment,
        'starRating': row.star_rating,
        'avgRating': to_float(row.avg_rating),
        'totalReviewCount': row.total_review_count,
        'sentiment': row.sentiment,
        'isVerified': row.is_verified,
        'dataSource': row.data_source,
    }


def _order_by(filters: DetailFilters) -> List:
    column = SORT_COLUMNS.get(filters.extra.get('sortBy'), GoogleReview.date)
    if str(filters.extra.get('sortOrder', 'desc')).lower() == 'asc':
        return [column.asc(), GoogleReview.id.asc()]
    return [column.desc(), GoogleReview.id.desc()]


def list_records(session: Session, filters: DetailFilters, page=None, limit=None) -> Dict[str, Any]:
    """
    Reviews in the date range, optionally with at least ``minRating`` stars.

    Sorted by ``sortBy`` (date, starRating, reviewer, createdAt) in
    ``sortOrder`` (desc unless 'asc'), newest first by default.
    """
    page, limit = normalize_page(page, limit)
    try:
        conditions = match_conditions(GoogleReview, filters)
    except InvalidDimensionId:
        return empty_page(page, limit)

    min_rating = convert_to_int(filters.extra.get('minRating'))
    if min_rating is not None:
        conditions.append(GoogleReview.star_rating >= min_rating)

    return paginated_list(session, GoogleReview, conditions, serialize, page, limit, order_by=_order_by(filters))


def statistics(session: Session, filters: DetailFilters) -> Dict[str, Any]:
    """Review count, average stars and the sentiment/star breakdowns for the date range."""
    conditions = match_conditions(GoogleReview, DetailFilters(start_date=filters.start_date, end_date=filters.end_date))

    total = session.query(func.count(GoogleReview.id)).filter(*conditions).scalar() or 0
    average = session.query(func.avg(GoogleReview.star_rating)).filter(*conditions).scalar()

    by_sentiment = dict(
        session.query(GoogleReview.sentiment, func.count(GoogleReview.id))
        .filter(*conditions).group_by(GoogleReview.sentiment).all()
    )
    by_stars = dict(
        session.query(GoogleReview.star_rating, func.count(GoogleReview.id))
        .filter(*conditions).group_by(GoogleReview.star_rating).all()
    )

    return {
        'totalReviews': total,
        'averageRating': round(float(average), 2) if average is not None else 0,
        'sentimentBreakdown': {name: by_sentiment.get(name, 0) for name in SENTIMENTS},
        'ratingBreakdown': {key: by_stars.get(stars, 0) for stars, key in STAR_KEYS.items()},
        'dateRange': {
            'startDate': iso(filters.start_date),
            'endDate': iso(filters.end_date),
        },
    }


def dashboard(session: Session, tz_name: str = 'Asia/Dubai', today: Optional[date] = None) -> Dict[str, Any]:
    """Total, yesterday's and month-to-date review counts plus the latest reviews."""
    yesterday = get_yesterday(tz_name, today)
    today = yesterday + timedelta(days=1)
    month_start = get_first_day_of_month(today.year, today.month)

    def count(*conditions) -> int:
        return session.query(func.count(GoogleReview.id)).filter(*conditions).scalar() or 0

    latest = session.query(GoogleReview) \
        .order_by(GoogleReview.date.desc(), GoogleReview.id.desc()).limit(DASHBOARD_LATEST).all()

    return {
        'stats': {
            'total': count(),
            'yesterday': count(GoogleReview.date == yesterday),
            'monthToDate': count(GoogleReview.date >= month_start, GoogleReview.date <= today),
        },
        'latest': [serialize(row) for row in latest],
    }
