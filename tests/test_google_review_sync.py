from datetime import date
from decimal import Decimal

import pytest

from metrics_sync.common.config import DatabaseType
from metrics_sync.common.errors import AuthError
from metrics_sync.common.models import GoogleReview
from metrics_sync.datalayer.base import SyncWindow
from metrics_sync.datalayer.google_review import REVIEW_HISTORY_START, GoogleReviewSync
from metrics_sync.reporting import get_list, get_summary
from metrics_sync.upstream.intake import GoogleReviewRow

from .fakes import FakeWindsor


TODAY = date(2026, 1, 19)
WINDOW = SyncWindow(REVIEW_HISTORY_START, TODAY)


def review(review_id, stars, day=date(2026, 1, 18), reviewer='Jane', comment='Great'):
    return GoogleReviewRow.from_payload({
        'review_id': review_id,
        'date': day.isoformat(),
        'review_reviewer': reviewer,
        'review_comment': comment,
        'review_star_rating': stars,
        'review_average_rating_total': 4.4,
        'review_total_count': 128,
    })


def make_sync(session_manager, client, sync_config):
    return GoogleReviewSync(
        session_manager, DatabaseType.SQLITE, client,
        sync_config=sync_config, show_progress=False,
    )


def stored(session_manager):
    with session_manager.read_scope() as session:
        return {row.review_id: row for row in session.query(GoogleReview).all()}


def test_payload_normalization():
    row = GoogleReviewRow.from_payload({'review_id': 'r1', 'review_star_rating': 'four', 'review_reviewer': '  '})

    assert row.star_rating == 4
    assert row.reviewer == 'Anonymous'
    assert row.comment == ''
    assert row.total_review_count == 0
    assert row.sentiment == 'positive'


@pytest.mark.parametrize('stars, sentiment', [
    ('FIVE', 'positive'),
    ('FOUR', 'positive'),
    ('THREE', 'neutral'),
    ('TWO', 'negative'),
    ('ONE', 'negative'),
    (None, 'neutral'),
    ('STAR_RATING_UNSPECIFIED', 'neutral'),
])
def test_sentiment_follows_the_star_rating(stars, sentiment):
    assert review('r1', stars).sentiment == sentiment


def test_reviews_are_stored_by_review_id(session_manager, sync_config):
    client = FakeWindsor(reviews=[review('r1', 'FIVE'), review('r2', 'TWO'), review(None, 'FOUR')])

    result = make_sync(session_manager, client, sync_config).run(WINDOW)

    assert result.success
    assert result.records_saved == 2
    assert result.records_skipped == 1
    rows = stored(session_manager)
    assert set(rows) == {'r1', 'r2'}
    assert rows['r1'].star_rating == 5
    assert rows['r2'].sentiment == 'negative'
    assert rows['r1'].avg_rating == Decimal('4.4')
    assert rows['r1'].total_review_count == 128


def test_resync_refreshes_an_edited_review(session_manager, sync_config):
    make_sync(session_manager, FakeWindsor(reviews=[review('r1', 'TWO', comment='Slow')]), sync_config).run(WINDOW)

    edited = FakeWindsor(reviews=[review('r1', 'FIVE', comment='Sorted out, thanks')])
    result = make_sync(session_manager, edited, sync_config).run(WINDOW)

    assert result.records_saved == 1
    row = stored(session_manager)['r1']
    assert row.star_rating == 5
    assert row.sentiment == 'positive'
    assert row.comment == 'Sorted out, thanks'


def test_unchanged_reviews_are_skipped(session_manager, sync_config):
    client = FakeWindsor(reviews=[review('r1', 'FIVE'), review('r2', 'THREE')])
    sync = make_sync(session_manager, client, sync_config)

    sync.run(WINDOW)
    second = sync.run(WINDOW)

    assert second.records_saved == 0
    assert second.records_skipped == 2


def test_default_window_covers_the_whole_history(session_manager, sync_config):
    window = make_sync(session_manager, None, sync_config).default_window(TODAY)

    assert window.from_date == REVIEW_HISTORY_START
    assert window.to_date == TODAY


def test_missing_google_key_aborts_the_run(session_manager, sync_config):
    with pytest.raises(AuthError):
        make_sync(session_manager, None, sync_config).run(WINDOW)


# =============================================================================
# Reports
# =============================================================================

@pytest.fixture
def reviews(session_manager, sync_config):
    client = FakeWindsor(reviews=[
        review('r1', 'FIVE', day=date(2026, 1, 2), reviewer='Ann'),
        review('r2', 'FOUR', day=date(2025, 12, 30), reviewer='Bob'),
        review('r3', 'ONE', day=date(2026, 1, 18), reviewer='Cy'),
        review('r4', 'THREE', day=date(2026, 1, 18), reviewer='Di'),
    ])
    make_sync(session_manager, client, sync_config).run(WINDOW)


def test_review_list_filters_by_rating_and_sorts(session_manager, reviews):
    with session_manager.read_scope() as session:
        payload = get_list(session, 'google_review', {'minRating': '4', 'sortBy': 'starRating', 'sortOrder': 'asc'})

    assert [r['reviewId'] for r in payload['data']] == ['r2', 'r1']
    assert payload['pagination']['total'] == 2
    assert payload['filters']['minRating'] == '4'


def test_review_list_defaults_to_newest_first(session_manager, reviews):
    with session_manager.read_scope() as session:
        payload = get_list(session, 'google_review', {'startDate': '2026-01-01'}, page=1, limit=2)

    assert [r['date'] for r in payload['data']] == ['2026-01-18', '2026-01-18']
    assert payload['pagination']['totalPages'] == 2


def test_review_statistics(session_manager, reviews):
    with session_manager.read_scope() as session:
        stats = get_summary(session, 'google_review', {'startDate': '2026-01-01'})

    assert stats['totalReviews'] == 3
    assert stats['averageRating'] == 3.0
    assert stats['sentimentBreakdown'] == {'positive': 1, 'neutral': 1, 'negative': 1}
    assert stats['ratingBreakdown'] == {'fiveStar': 1, 'fourStar': 0, 'threeStar': 1, 'twoStar': 0, 'oneStar': 1}
    assert stats['dateRange'] == {'startDate': '2026-01-01', 'endDate': None}


def test_review_statistics_without_reviews(session_manager):
    with session_manager.read_scope() as session:
        stats = get_summary(session, 'google_review')

    assert stats['totalReviews'] == 0
    assert stats['averageRating'] == 0


def test_review_dashboard_counts(session_manager, reviews):
    with session_manager.read_scope() as session:
        payload = get_summary(session, 'google_review', view='dashboard', today=TODAY)

    assert payload['stats'] == {'total': 4, 'yesterday': 2, 'monthToDate': 3}
    assert len(payload['latest']) == 4
    assert payload['latest'][0]['date'] == '2026-01-18'
