import math
from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from metrics_sync.common.models import (
    FinanceExpensePaidout,
    FinanceReserveBank,
    ProcurementPurchaseOrder,
    Project,
    RevenueReservation,
    SalesCollection,
)
from metrics_sync.reporting import available_views, get_detail, get_list, get_summary
from metrics_sync.reporting.query import (
    DetailFilters,
    InvalidDimensionId,
    format_percent,
    normalize_page,
    pagination,
    parse_dimension_id,
    percent_change,
)


START = date(2026, 1, 1)


def reserve(entity_id, day, total):
    return FinanceReserveBank(
        entity_id=entity_id,
        scope_key='ALL' if entity_id is None else str(entity_id),
        date=day,
        escrow_reserve=Decimal(total),
        non_escrow_reserve=Decimal('0'),
        other_reserve=Decimal('0'),
        total_reserve=Decimal(total),
        data_source='MSD Bank Group Summary sync',
    )


@pytest.fixture
def reserves(session_manager, add_entities):
    """Seven days of reserves for two entities plus the aggregate row."""
    ids = add_entities('AI', 'LDP')
    with session_manager.session_scope() as session:
        for offset in range(7):
            day = START + timedelta(days=offset)
            session.add(reserve(ids['AI'], day, 100 + offset))
            session.add(reserve(ids['LDP'], day, 200))
            session.add(reserve(None, day, 300 + offset))
    return ids


# =============================================================================
# Query helpers
# =============================================================================

def test_parse_dimension_id():
    assert parse_dimension_id(None) is None
    assert parse_dimension_id('') is None
    assert parse_dimension_id('12') == 12
    for bad in ('abc', '0', '-3', '1.5', True):
        with pytest.raises(InvalidDimensionId):
            parse_dimension_id(bad)


def test_normalize_page_clamps_bad_input():
    assert normalize_page(None, None) == (1, 10)
    assert normalize_page('0', '500') == (1, 100)
    assert normalize_page('x', 'y') == (1, 10)


def test_pagination_flags():
    assert pagination(25, 3, 10) == {
        'total': 25, 'page': 3, 'limit': 10, 'totalPages': 3, 'hasNextPage': False, 'hasPrevPage': True,
    }


def test_percent_change_and_formatting():
    assert percent_change(150, 100) == 50.0
    assert percent_change(10, 0) == 100.0
    assert percent_change(0, 0) == 0.0
    assert percent_change(10, 0, when_new=0.0) == 0.0
    assert format_percent(12.345) == '+12.3%'
    assert format_percent(-3.0) == '-3.0%'
    assert format_percent(0) == '0.0%'


def test_filters_from_request_parameters():
    filters = DetailFilters.from_dict({
        'entityId': '3', 'startDate': '2026-01-05', 'endDate': 'not-a-date', 'minAmount': '10.5', 'vendor': 'gulf',
    })
    assert filters.entity_id == '3'
    assert filters.start_date == date(2026, 1, 5)
    assert filters.end_date is None
    assert filters.min_amount == Decimal('10.5')
    assert filters.extra == {'vendor': 'gulf'}


# =============================================================================
# Date-grouped detail
# =============================================================================

def test_detail_pages_cover_every_date_once(session_manager, reserves):
    limit = 3
    with session_manager.read_scope() as session:
        first = get_detail(session, 'finance_reserve', {}, page=1, limit=limit)
        total_pages = first['pagination']['totalPages']
        assert first['pagination']['total'] == 7
        assert total_pages == math.ceil(7 / limit)

        dates = []
        for page in range(1, total_pages + 1):
            payload = get_detail(session, 'finance_reserve', {}, page=page, limit=limit)
            dates.extend(group['date'] for group in payload['dateGroups'])

    expected = [(START + timedelta(days=offset)).isoformat() for offset in reversed(range(7))]
    assert dates == expected


def test_detail_summary_comes_from_the_aggregate_row(session_manager, reserves):
    with session_manager.read_scope() as session:
        payload = get_detail(session, 'finance_reserve', {}, page=1, limit=1)

    group = payload['dateGroups'][0]
    assert group['date'] == '2026-01-07'
    assert group['summary']['totalReserve'] == 306.0
    assert group['recordCount'] == 2
    assert {r['entityCode'] for r in group['records']} == {'AI', 'LDP'}


def test_detail_entity_filter_keeps_the_aggregate_summary(session_manager, reserves):
    params = {'entityId': str(reserves['AI']), 'startDate': '2026-01-03', 'endDate': '2026-01-03'}
    with session_manager.read_scope() as session:
        payload = get_detail(session, 'finance_reserve', params)

    assert payload['pagination']['total'] == 1
    group = payload['dateGroups'][0]
    assert [r['totalReserve'] for r in group['records']] == [102.0]
    assert group['summary']['totalReserve'] == 302.0


def test_detail_summary_is_zero_when_the_aggregate_row_is_missing(session_manager, add_entities):
    ids = add_entities('AI')
    with session_manager.session_scope() as session:
        session.add(reserve(ids['AI'], START, 50))

    with session_manager.read_scope() as session:
        group = get_detail(session, 'finance_reserve', {})['dateGroups'][0]

    assert group['summary']['totalReserve'] == 0.0
    assert group['recordCount'] == 1


def test_invalid_dimension_id_gives_an_empty_page(session_manager, reserves):
    with session_manager.read_scope() as session:
        detail = get_detail(session, 'finance_reserve', {'entityId': 'abc'}, page=2, limit=5)
        listing = get_list(session, 'sales_collection', {'projectId': '-1'})

    assert detail['dateGroups'] == []
    assert detail['pagination'] == pagination(0, 2, 5)
    assert detail['filters']['entityId'] == 'abc'
    assert listing['data'] == []
    assert listing['pagination']['total'] == 0


def test_list_amount_range_filters_the_total(session_manager, reserves):
    with session_manager.read_scope() as session:
        payload = get_list(session, 'finance_reserve', {'minAmount': '300', 'maxAmount': '303'}, limit=100)

    assert sorted(r['totalReserve'] for r in payload['data']) == [300.0, 301.0, 302.0, 303.0]
    assert all(r['entityName'] == 'All Entities' for r in payload['data'])


def test_expense_detail_summary_and_month_groups(session_manager, add_entities):
    ids = add_entities('AI')
    with session_manager.session_scope() as session:
        for entity_id, scope, ops in ((ids['AI'], str(ids['AI']), 40), (None, 'ALL', 90)):
            session.add(FinanceExpensePaidout(
                entity_id=entity_id, scope_key=scope, date=START, ops_expense=Decimal(ops),
                land_expense=Decimal('0'), construction_expense=Decimal('10'), cash_expense=Decimal('0'),
                data_source='MSD Paidout API sync',
            ))

    with session_manager.read_scope() as session:
        payload = get_detail(session, 'expense_paidout', {})

    summary = payload['dateGroups'][0]['summary']
    assert summary['opsExpense'] == 90.0
    assert summary['totalExpense'] == 100.0
    assert payload['monthGroups'] == [{'month': '2026-01', 'totalExpense': 100.0, 'dates': ['2026-01-01']}]


# =============================================================================
# Sales collection
# =============================================================================

@pytest.fixture
def collections(session_manager, add_entities):
    ids = add_entities('LDP')
    with session_manager.session_scope() as session:
        hh = Project(project_name='Hadley Heights', project_short_name='HH', project_code='HH', entity_id=ids['LDP'])
        wg = Project(project_name='Weybridge Gardens', project_short_name='WG', project_code='WG', entity_id=ids['LDP'])
        session.add_all([hh, wg])
        session.flush()
        for day, amounts in ((date(2026, 1, 18), (100, 50)), (date(2026, 1, 17), (60, 40))):
            for project, amount in zip((hh, wg), amounts):
                session.add(SalesCollection(
                    entity_id=ids['LDP'], project_id=project.id, scope_key=f"{ids['LDP']}:{project.id}",
                    date=day, escrow_collection=Decimal(amount), non_escrow_collection=Decimal('0'),
                ))
            session.add(SalesCollection(
                scope_key='Grand Summary', special_type='Grand Summary', date=day,
                escrow_collection=Decimal(sum(amounts)), non_escrow_collection=Decimal('0'),
            ))


def test_sales_detail_hides_sentinels_and_uses_grand_summary(session_manager, collections):
    with session_manager.read_scope() as session:
        payload = get_detail(session, 'sales_collection', {})

    newest = payload['dateGroups'][0]
    assert newest['date'] == '2026-01-18'
    assert newest['recordCount'] == 2
    assert newest['summary']['totalCollection'] == 150.0
    assert {r['projectName'] for r in newest['records']} == {'Hadley Heights', 'Weybridge Gardens'}


def test_sales_summary_day_over_day(session_manager, collections):
    with session_manager.read_scope() as session:
        payload = get_summary(session, 'sales_collection', today=date(2026, 1, 19))

    assert payload['totalCollection'] == 150.0
    assert payload['previousTotalCollection'] == 100.0
    assert payload['changePercent'] == 50.0


def test_sales_chart_is_sorted_by_total(session_manager, collections):
    with session_manager.read_scope() as session:
        payload = get_summary(session, 'sales_collection', view='chart')

    assert [p['projectName'] for p in payload['data']] == ['Hadley Heights', 'Weybridge Gardens']
    assert payload['data'][0]['totalCollection'] == 160.0


# =============================================================================
# Summaries
# =============================================================================

def test_liquidity_compares_the_last_two_days(session_manager, reserves):
    with session_manager.read_scope() as session:
        payload = get_summary(session, 'finance_reserve', today=date(2026, 1, 7))

    assert payload['date'] == '2026-01-06'
    assert payload['totalReserve'] == 305.0
    assert payload['previousTotalReserve'] == 304.0
    assert payload['change'] == 1.0
    assert payload['changePercentage'] == round(1 / 304 * 100, 2)


def test_liquidity_ignores_rows_from_other_sources(session_manager, reserves):
    with session_manager.session_scope() as session:
        stray = reserve(None, date(2026, 1, 6), 9000)
        stray.data_source = 'Manual upload'
        session.add(stray)

    with session_manager.read_scope() as session:
        payload = get_summary(session, 'finance_reserve', today=date(2026, 1, 7))
        listed = get_list(session, 'finance_reserve', {'startDate': '2026-01-06', 'endDate': '2026-01-06'})

    assert payload['totalReserve'] == 305.0
    assert all(r['dataSource'] == 'MSD Bank Group Summary sync' for r in listed['data'])
    assert listed['pagination']['total'] == 3


def test_revenue_year_to_date_uses_the_current_year(session_manager, add_entities):
    ids = add_entities('LDP')
    with session_manager.session_scope() as session:
        project = Project(project_name='Windsor', project_short_name='WIN', project_code='P0017', entity_id=ids['LDP'])
        session.add(project)
        session.flush()
        for day, amount in ((date(2025, 12, 31), 5), (date(2026, 1, 5), 7), (date(2026, 2, 10), 11)):
            session.add(RevenueReservation(
                project_id=project.id, project_name='Windsor', project_short_name='WIN', date=day,
                st_name='Team A', reserved_amount=Decimal(amount), reserved_units=1,
            ))

    with session_manager.read_scope() as session:
        payload = get_summary(session, 'revenue_reservation', today=date(2026, 2, 11))

    assert payload['yesterday'] == 11.0
    assert payload['monthToDate'] == 11.0
    assert payload['yearToDate'] == 18.0
    assert payload['totalRevenue'] == 23.0


def test_procurement_card_excludes_drafts(session_manager, add_entities):
    ids = add_entities('LDP')
    with session_manager.session_scope() as session:
        for purch_id, status, day, amount in (
            ('PO-1', 'Approved', date(2026, 1, 10), 100),
            ('PO-2', 'Draft', date(2026, 1, 11), 999),
            ('PO-3', 'Approved', date(2025, 12, 5), 50),
        ):
            session.add(ProcurementPurchaseOrder(
                purch_id=purch_id, entity_id=ids['LDP'], vendor_account='V-1', vendor_name='Vendor',
                total_amount=Decimal(amount), data_area_id='LDP', approval_status=status,
                created_timestamp=datetime.combine(day, datetime.min.time()), created_date=day,
            ))

    with session_manager.read_scope() as session:
        payload = get_summary(session, 'procurement', view='card', today=date(2026, 1, 20))

    assert payload['currentMonth']['count'] == 1
    assert payload['currentMonth']['totalAmount'] == 100.0
    assert payload['previousMonth']['totalAmount'] == 50.0
    assert payload['changePercentage'] == '+100.0%'


def test_unknown_domain_and_view_are_rejected(session_manager):
    assert available_views('revenue_reservation') == ['summary', 'by_manager', 'by_director', 'by_project']
    with session_manager.read_scope() as session:
        with pytest.raises(ValueError):
            get_detail(session, 'weather', {})
        with pytest.raises(ValueError):
            get_summary(session, 'sales_collection', view='nope')


def _expense(entity_id, day, ops, construction=0):
    return FinanceExpensePaidout(
        entity_id=entity_id, scope_key='ALL' if entity_id is None else str(entity_id), date=day,
        ops_expense=Decimal(ops), land_expense=Decimal('0'), construction_expense=Decimal(construction),
        cash_expense=Decimal('0'), data_source='MSD Paidout API sync',
    )


def test_expense_month_over_month_and_categories(session_manager, add_entities):
    ids = add_entities('AI')
    with session_manager.session_scope() as session:
        session.add(_expense(None, date(2026, 1, 10), 100))
        session.add(_expense(None, date(2026, 2, 1), 120, 30))
        session.add(_expense(ids['AI'], date(2026, 2, 1), 999))

    with session_manager.read_scope() as session:
        mom = get_summary(session, 'expense_paidout', today=date(2026, 2, 3))
        categories = get_summary(session, 'expense_paidout', view='categories', today=date(2026, 2, 3))

    assert mom['currentMonth']['from'] == '2026-02-01'
    assert mom['currentMonth']['totalExpense'] == 150.0
    assert mom['previousMonth']['totalExpense'] == 100.0
    assert mom['changePercentage'] == '+50.0%'

    assert categories['total'] == 150.0
    shares = {c['category']: c['share'] for c in categories['categories']}
    assert shares == {'Operations': 80.0, 'Land Purchase': 0.0, 'Construction': 20.0, 'Cash': 0.0}
