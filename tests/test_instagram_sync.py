from datetime import date

from metrics_sync.common.config import DatabaseType
from metrics_sync.common.models import SocialInsight
from metrics_sync.datalayer.base import SyncWindow
from metrics_sync.datalayer.instagram import InstagramSync
from metrics_sync.upstream.intake import InstagramSnapshot

from .fakes import FakeWindsor


DAY = date(2026, 1, 18)


def snapshot(followers, reach=500, reach_1d=40, posts=12):
    return InstagramSnapshot.from_payloads(
        {'followers_count': followers, 'media_count': posts},
        {'followers_count': followers, 'reach': reach, 'reach_1d': reach_1d},
    )


def run(session_manager, sync_config, followers, day=DAY):
    sync = InstagramSync(
        session_manager, DatabaseType.SQLITE, FakeWindsor(snapshot(followers)),
        sync_config=sync_config, show_progress=False,
    )
    return sync.run(SyncWindow.single(day))


def stored(session_manager, day):
    with session_manager.read_scope() as session:
        return session.query(SocialInsight).filter(SocialInsight.date == day).one()


def test_first_snapshot_has_no_new_followers(session_manager, sync_config):
    result = run(session_manager, sync_config, 1000)

    assert result.records_saved == 1
    row = stored(session_manager, DAY)
    assert row.total_followers == 1000
    assert row.new_followers == 0
    assert row.total_reach == 500
    assert row.new_reach == 40
    assert row.posts == 12
    assert row.platform == 'INSTAGRAM'


def test_new_followers_come_from_the_previous_snapshot(session_manager, sync_config):
    run(session_manager, sync_config, 1000, day=date(2026, 1, 16))
    run(session_manager, sync_config, 1010)

    assert stored(session_manager, DAY).new_followers == 10


def test_follower_loss_counts_as_zero_new_followers(session_manager, sync_config):
    run(session_manager, sync_config, 1000, day=date(2026, 1, 17))
    run(session_manager, sync_config, 990)

    assert stored(session_manager, DAY).new_followers == 0


def test_daily_followers_fall_back_to_account_total():
    snap = InstagramSnapshot.from_payloads({'followers_count': 250, 'media_count': 3}, {})
    assert snap.current_followers == 250
    assert snap.reach == 0
