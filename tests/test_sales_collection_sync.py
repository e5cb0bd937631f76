from datetime import date
from decimal import Decimal

from metrics_sync.common.config import DatabaseType
from metrics_sync.common.models import BusinessEntity, Project, SalesCollection
from metrics_sync.datalayer.base import SyncWindow
from metrics_sync.datalayer.sales_collection import SalesCollectionSync, classify_special_type
from metrics_sync.upstream.intake import CollectionRow

from .fakes import FakeZoho


DAY = date(2026, 1, 18)
PROJECTS = ['Hadley Heights', 'Weybridge Gardens', 'Cavendish Square', 'Knightsbridge Park', 'Windsor']


def collection(name, escrow, non_escrow, day='2026-01-18'):
    return CollectionRow.from_payload({
        'Project Name': name,
        'Payment Date': day,
        'Escrow Collection (AED)': f"AED {escrow:,}",
        'Non-Escrow Collection (AED)': f"AED {non_escrow:,}",
        'MTD Escrow Collection (AED)': escrow,
        'MTD Non-Escrow Collection (AED)': non_escrow,
    })


def make_sync(session_manager, rows, sync_config):
    return SalesCollectionSync(
        session_manager, DatabaseType.SQLITE, FakeZoho(collections=rows),
        sync_config=sync_config, show_progress=False,
    )


def test_classify_special_type():
    assert classify_special_type('Grand Summary') == 'Grand Summary'
    assert classify_special_type('GRAND  SUMMARY') == 'Grand Summary'
    assert classify_special_type('No Value') == 'No Value'
    assert classify_special_type('novalue') == 'No Value'
    assert classify_special_type('Hadley Heights') is None


def test_collection_row_parses_currency_strings():
    row = collection('  Hadley   Heights ', 1500, 250)
    assert row.project_name == 'Hadley Heights'
    assert row.escrow == Decimal('1500')
    assert row.non_escrow == Decimal('250')
    assert row.payment_date == DAY


def test_grand_summary_is_stored_as_a_sentinel(session_manager, sync_config):
    rows = [collection('Grand Summary', 5000, 1000)] + [
        collection(name, 1000, 200) for name in PROJECTS
    ]

    result = make_sync(session_manager, rows, sync_config).run(SyncWindow.single(DAY))

    assert result.success
    assert result.records_saved == 6

    with session_manager.read_scope() as session:
        stored = session.query(SalesCollection).all()
        sentinels = [r for r in stored if r.special_type is not None]
        project_rows = [r for r in stored if r.special_type is None]

        assert len(sentinels) == 1
        assert sentinels[0].special_type == 'Grand Summary'
        assert sentinels[0].entity_id is None
        assert sentinels[0].project_id is None
        assert sentinels[0].escrow_collection == Decimal('5000')

        assert len(project_rows) == 5
        assert all(r.project_id is not None and r.entity_id is not None for r in project_rows)
        assert len({(r.entity_id, r.project_id, r.date) for r in project_rows}) == 5
        assert not [r for r in stored if r.project_id is not None and r.special_type is not None]

        # Projects were created on first sight under the default entity
        owner = session.query(BusinessEntity).filter(BusinessEntity.entity_code == 'LDP').one()
        projects = session.query(Project).all()
        assert sorted(p.project_name for p in projects) == sorted(PROJECTS)
        assert {p.entity_id for p in projects} == {owner.id}


def test_existing_project_is_matched_case_insensitively(session_manager, sync_config, add_entities):
    ids = add_entities('LDP')
    with session_manager.session_scope() as session:
        session.add(Project(
            project_name='Hadley Heights', project_short_name='HH', project_code='2563', entity_id=ids['LDP'],
        ))

    make_sync(session_manager, [collection('hadley heights', 10, 0)], sync_config).run(SyncWindow.single(DAY))

    with session_manager.read_scope() as session:
        assert session.query(Project).count() == 1
        row = session.query(SalesCollection).one()
        assert row.project.project_code == '2563'


def test_row_without_project_name_is_skipped(session_manager, sync_config):
    result = make_sync(session_manager, [collection('', 10, 0)], sync_config).run(SyncWindow.single(DAY))

    assert result.records_saved == 0
    assert result.records_skipped == 1
    assert result.errors == []
