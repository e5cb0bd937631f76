from datetime import date, datetime
from decimal import Decimal

from metrics_sync.common.config import DatabaseType
from metrics_sync.common.models import FinanceExpensePaidout
from metrics_sync.datalayer.base import SyncWindow
from metrics_sync.datalayer.expense_paidout import DATA_SOURCE, ExpensePaidoutSync
from metrics_sync.upstream.intake import PaidoutRow

from .fakes import FakeDynamics


DAY = date(2026, 1, 18)


def paidout(operation=0, land=0, construction=0, cash=0):
    return PaidoutRow.from_payload({
        'Company': 'LDP',
        'OperationPaidout': operation,
        'LandPurchasePaidout': land,
        'ConstructionPaidout': construction,
        'CashExpense': cash,
    })


def make_sync(session_manager, client, sync_config):
    return ExpensePaidoutSync(
        session_manager, DatabaseType.SQLITE, client,
        sync_config=sync_config, show_progress=False,
    )


def test_default_window_is_the_last_thirty_days(session_manager, sync_config):
    window = make_sync(session_manager, None, sync_config).default_window(date(2026, 1, 31))
    assert window == SyncWindow(date(2026, 1, 1), date(2026, 1, 30))


def test_empty_answer_is_stored_as_zero_and_no_answer_is_not(session_manager, sync_config, add_entities):
    ids = add_entities('A', 'B', 'C')
    client = FakeDynamics(paidout={
        ('A', DAY): [paidout(operation=100, cash=5), paidout(land=20)],
        ('B', DAY): [],
        # C and the aggregate have no answer at all
    })

    result = make_sync(session_manager, client, sync_config).run(SyncWindow.single(DAY))

    assert result.records_saved == 2
    assert result.entities_processed == 1

    with session_manager.read_scope() as session:
        rows = {r.entity_id: r for r in session.query(FinanceExpensePaidout).all()}

    assert set(rows) == {ids['A'], ids['B']}
    assert rows[ids['A']].ops_expense == Decimal('100')
    assert rows[ids['A']].land_expense == Decimal('20')
    assert rows[ids['A']].cash_expense == Decimal('5')
    assert rows[ids['A']].total_expense == Decimal('125')
    assert rows[ids['B']].total_expense == 0


def test_aggregate_row_uses_the_all_scope(session_manager, sync_config, add_entities):
    add_entities('A')
    client = FakeDynamics(paidout={(None, DAY): [paidout(construction=70)]})

    make_sync(session_manager, client, sync_config).run(SyncWindow.single(DAY))

    with session_manager.read_scope() as session:
        row = session.query(FinanceExpensePaidout).one()
        assert row.entity_id is None
        assert row.scope_key == 'ALL'
        assert row.construction_expense == Decimal('70')


def test_window_resync_updates_only_the_changed_day(session_manager, sync_config, add_entities):
    ids = add_entities('A')
    earlier = date(2026, 1, 17)
    before = FakeDynamics(paidout={('A', earlier): [paidout(operation=40)], ('A', DAY): [paidout(operation=70)]})
    after = FakeDynamics(paidout={('A', earlier): [paidout(operation=40)], ('A', DAY): [paidout(operation=75, cash=5)]})

    make_sync(session_manager, before, sync_config).run(SyncWindow(earlier, DAY))
    result = make_sync(session_manager, after, sync_config).run(SyncWindow(earlier, DAY))

    assert result.records_saved == 1
    assert result.records_skipped == 1
    assert result.errors == []
    with session_manager.read_scope() as session:
        rows = {r.date: r for r in session.query(FinanceExpensePaidout).filter(
            FinanceExpensePaidout.entity_id == ids['A'],
        ).all()}
    assert rows[earlier].total_expense == Decimal('40')
    assert rows[DAY].ops_expense == Decimal('75')
    assert rows[DAY].total_expense == Decimal('80')


def test_failing_row_does_not_roll_back_sibling_entities(session_manager, sync_config, add_entities, monkeypatch):
    add_entities('A', 'B')
    transform = ExpensePaidoutSync.transform

    def transform_failing_for_b(self, session, task, row, window):
        if task.entity_code == 'B':
            raise KeyError('Company')
        return transform(self, session, task, row, window)

    monkeypatch.setattr(ExpensePaidoutSync, 'transform', transform_failing_for_b)
    client = FakeDynamics(paidout={('A', DAY): [paidout(operation=10)], ('B', DAY): [paidout(operation=20)]})

    result = make_sync(session_manager, client, sync_config).run(SyncWindow.single(DAY))

    assert len(result.errors) == 1
    assert result.errors[0].startswith(f"Error processing B {DAY}")
    assert result.records_saved == 1
    with session_manager.read_scope() as session:
        assert session.query(FinanceExpensePaidout).one().ops_expense == Decimal('10')


def test_upsert_refreshes_updated_at_but_keeps_created_at(session_manager, sync_config, add_entities):
    ids = add_entities('A')
    stale = datetime(2020, 1, 1)
    with session_manager.session_scope() as session:
        session.add(FinanceExpensePaidout(
            entity_id=ids['A'], scope_key=str(ids['A']), date=DAY,
            ops_expense=Decimal('1'), land_expense=Decimal('0'), construction_expense=Decimal('0'),
            cash_expense=Decimal('0'), data_source=DATA_SOURCE, created_at=stale, updated_at=stale,
        ))

    client = FakeDynamics(paidout={('A', DAY): [paidout(operation=2)]})
    result = make_sync(session_manager, client, sync_config).run(SyncWindow.single(DAY))

    assert result.records_saved == 1
    with session_manager.read_scope() as session:
        row = session.query(FinanceExpensePaidout).one()
        assert row.ops_expense == Decimal('2')
        assert row.created_at == stale
        assert row.updated_at > stale
