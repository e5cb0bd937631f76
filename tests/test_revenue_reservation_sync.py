from datetime import date
from decimal import Decimal

from metrics_sync.common.config import DatabaseType
from metrics_sync.common.models import Project, RevenueReservation
from metrics_sync.datalayer.base import SyncWindow
from metrics_sync.datalayer.revenue_reservation import RevenueReservationSync
from metrics_sync.upstream.intake import ReservationRow

from .fakes import FakeZoho


DAY = date(2026, 1, 18)


def reservation(project, team, day='2026-01-18', reserved='AED 2,000,000', units=2, cancelled=0, cancelled_units=0):
    return ReservationRow.from_payload({
        'Project Name': project,
        'ST Name': team,
        'Date': day,
        'Reserved AED': reserved,
        'Reserved Units': units,
        'Cancelled AED': cancelled,
        'Cancelled Units': cancelled_units,
        'Sales Manager Name': 'Jane Doe',
        'Sales Director Name': 'Sam Roe',
    })


def make_sync(session_manager, rows, sync_config):
    return RevenueReservationSync(
        session_manager, DatabaseType.SQLITE, FakeZoho(reservations=rows),
        sync_config=sync_config, show_progress=False,
    )


def test_reservations_are_keyed_by_project_team_and_date(session_manager, sync_config):
    rows = [
        reservation("Regent's Park", 'Team A'),
        reservation("Regent's Park", 'Team B', units=1, reserved='1000000'),
        reservation('Windsor', 'Team A', cancelled='500000', cancelled_units=3),
    ]

    result = make_sync(session_manager, rows, sync_config).run(SyncWindow.single(DAY))

    assert result.records_saved == 3
    with session_manager.read_scope() as session:
        stored = session.query(RevenueReservation).all()
        assert len({(r.project_id, r.st_name, r.date) for r in stored}) == 3
        regent = session.query(Project).filter(Project.project_name == "Regent's Park").one()
        assert regent.project_code == 'REGENTSPAR'
        team_a = [r for r in stored if r.project_id == regent.id and r.st_name == 'Team A'][0]
        assert team_a.reserved_amount == Decimal('2000000')
        assert team_a.reserved_units == 2
        assert team_a.sales_manager_name == 'Jane Doe'
        assert team_a.type == 'Reservation'


def test_rows_missing_required_fields_are_skipped(session_manager, sync_config):
    rows = [
        reservation('Windsor', ''),
        reservation('', 'Team A'),
        reservation('Windsor', 'Team A', day=None),
    ]

    result = make_sync(session_manager, rows, sync_config).run(SyncWindow.single(DAY))

    assert result.records_saved == 0
    assert result.records_skipped == 3
    assert result.errors == []
