from datetime import date, datetime

from sqlalchemy import inspect, text

from metrics_sync.common.models import BusinessEntity, Project, SocialInsight
from metrics_sync.scripts import ENTITIES, PROJECTS, repair_indexes, seed_entities, seed_projects


INDEX = 'uq_social_insights_entity_platform_date'


def test_entity_seed_is_idempotent(session_manager):
    with session_manager.session_scope() as session:
        first = seed_entities(session)
    with session_manager.session_scope() as session:
        second = seed_entities(session)

    assert first == {'created': len(ENTITIES), 'updated': 0, 'skipped': 0}
    assert second == {'created': 0, 'updated': 0, 'skipped': len(ENTITIES)}


def test_entity_seed_refreshes_changed_names(session_manager):
    with session_manager.session_scope() as session:
        session.add(BusinessEntity(entity_code='AI', entity_name='Old name'))

    with session_manager.session_scope() as session:
        stats = seed_entities(session)

    assert stats['updated'] == 1
    assert stats['created'] == len(ENTITIES) - 1
    with session_manager.read_scope() as session:
        ai = session.query(BusinessEntity).filter_by(entity_code='AI').one()
        assert ai.entity_name == 'Asia Investment L.L.C-FZ'


def test_projects_belong_to_the_default_entity(session_manager):
    with session_manager.session_scope() as session:
        seed_entities(session)
    with session_manager.session_scope() as session:
        stats = seed_projects(session)

    assert stats['created'] == len(PROJECTS)
    with session_manager.read_scope() as session:
        owners = {p.entity.entity_code for p in session.query(Project).all()}
        windsor = session.query(Project).filter_by(project_code='P0017').one()
        assert owners == {'LDP'}
        assert windsor.project_short_name == 'WIN'


def test_repair_removes_duplicates_and_recreates_the_index(session_manager, add_entities):
    ids = add_entities('LDP')
    with session_manager.engine.begin() as connection:
        connection.execute(text(f'DROP INDEX {INDEX}'))

    with session_manager.session_scope() as session:
        for followers, synced in ((100, datetime(2026, 1, 18, 9, 0)), (120, datetime(2026, 1, 18, 10, 0))):
            session.add(SocialInsight(
                entity_id=ids['LDP'], platform='INSTAGRAM', date=date(2026, 1, 18),
                total_followers=followers, last_synced_at=synced,
            ))

    report = repair_indexes(session_manager, [SocialInsight])

    assert report == {'social_insights': 1}
    with session_manager.read_scope() as session:
        rows = session.query(SocialInsight).all()
        assert [row.total_followers for row in rows] == [120]
    indexes = {idx['name'] for idx in inspect(session_manager.engine).get_indexes('social_insights')}
    assert INDEX in indexes


def test_repair_without_duplicates_is_a_rebuild_only(session_manager):
    report = repair_indexes(session_manager)

    assert set(report.values()) == {0}
    assert len(report) == 7
