from datetime import date, datetime
from decimal import Decimal

from metrics_sync.common.config import DatabaseType
from metrics_sync.common.models import ProcurementPurchaseOrder
from metrics_sync.datalayer.base import SyncWindow
from metrics_sync.datalayer.procurement import ProcurementSync
from metrics_sync.upstream.intake import PurchaseOrderRow

from .fakes import FakeDynamics


DAY = date(2026, 1, 18)


def purchase_order(purch_id, **overrides):
    payload = {
        'PurchId': purch_id,
        'vendorAccount': 'v-100',
        'vendorName': 'Gulf Steel Trading',
        'totalAmount': '12,500.50',
        'Currency': 'aed',
        'PurchaseOrderStatus': 'Backorder',
        'ApprovalStatus': 'Approved',
        'CreatedDateTime': '2026-01-18T08:30:00Z',
    }
    payload.update(overrides)
    return PurchaseOrderRow.from_payload(payload)


def make_sync(session_manager, client, sync_config):
    return ProcurementSync(
        session_manager, DatabaseType.SQLITE, client,
        sync_config=sync_config, show_progress=False,
    )


def test_purchase_orders_are_normalized_and_inserted(session_manager, sync_config, add_entities):
    ids = add_entities('ldp')
    client = FakeDynamics(purchase_orders={('ldp', DAY): [purchase_order('po-001')]})

    result = make_sync(session_manager, client, sync_config).run(SyncWindow.single(DAY))

    assert result.records_saved == 1
    with session_manager.read_scope() as session:
        order = session.query(ProcurementPurchaseOrder).one()
        assert order.purch_id == 'PO-001'
        assert order.vendor_account == 'V-100'
        assert order.data_area_id == 'LDP'
        assert order.currency == 'AED'
        assert order.entity_id == ids['ldp']
        assert order.total_amount == Decimal('12500.50')
        assert order.created_timestamp == datetime(2026, 1, 18, 8, 30)
        assert order.created_date == DAY
        assert order.data_source == 'Dynamics365'


def test_missing_required_fields_are_skipped_not_errors(session_manager, sync_config, add_entities):
    add_entities('LDP')
    client = FakeDynamics(purchase_orders={('LDP', DAY): [
        purchase_order('PO-1', vendorName=None),
        purchase_order('PO-2', totalAmount=None),
        purchase_order('PO-3', PurchaseOrderStatus=None, ApprovalStatus=None),
    ]})

    result = make_sync(session_manager, client, sync_config).run(SyncWindow.single(DAY))

    assert result.records_saved == 1
    assert result.records_skipped == 2
    assert result.errors == []
    with session_manager.read_scope() as session:
        order = session.query(ProcurementPurchaseOrder).one()
        assert order.purchase_order_status == 'None'
        assert order.approval_status == 'Draft'


def test_known_purchase_orders_are_never_rewritten(session_manager, sync_config, add_entities):
    add_entities('LDP')
    client = FakeDynamics(purchase_orders={('LDP', DAY): [purchase_order('PO-1')]})
    sync = make_sync(session_manager, client, sync_config)
    sync.run(SyncWindow.single(DAY))

    client.purchase_orders[('LDP', DAY)] = [purchase_order('PO-1', totalAmount='1')]
    second = sync.run(SyncWindow.single(DAY))

    assert second.records_saved == 0
    assert second.records_skipped == 1
    with session_manager.read_scope() as session:
        assert session.query(ProcurementPurchaseOrder).one().total_amount == Decimal('12500.50')


def test_duplicate_key_race_falls_back_to_single_inserts(session_manager, sync_config, add_entities, monkeypatch):
    ids = add_entities('LDP')
    # Another writer stored PO-1 after the snapshot was taken
    monkeypatch.setattr(ProcurementSync, 'load_stored_rows', lambda self, session, window: {})
    with session_manager.session_scope() as session:
        session.add(ProcurementPurchaseOrder(
            purch_id='PO-1', entity_id=ids['LDP'], vendor_account='V-1', vendor_name='Other',
            total_amount=Decimal('1'), data_area_id='LDP',
            created_timestamp=datetime(2026, 1, 18), created_date=DAY,
        ))

    client = FakeDynamics(purchase_orders={('LDP', DAY): [purchase_order('PO-1'), purchase_order('PO-2')]})
    result = make_sync(session_manager, client, sync_config).run(SyncWindow.single(DAY))

    assert result.records_saved == 1
    assert result.records_skipped == 1
    assert result.errors == []
    with session_manager.read_scope() as session:
        ids_stored = sorted(o.purch_id for o in session.query(ProcurementPurchaseOrder).all())
        assert ids_stored == ['PO-1', 'PO-2']
