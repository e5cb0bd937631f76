from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from metrics_sync.common.data_utils import (
    convert_to_date,
    convert_to_int,
    deduplicate_records,
    first_present,
    parse_amount,
)
from metrics_sync.common.date_utils import (
    get_last_day_of_month,
    get_previous_month,
    is_valid_date_format,
    iter_days,
    parse_date_string,
    utc_now,
)
from metrics_sync.common.models import Project
from metrics_sync.datalayer.dimensions import DimensionResolver, generate_project_code


# =============================================================================
# Conversions
# =============================================================================

@pytest.mark.parametrize('value, expected', [
    ('AED 739,451.37', Decimal('739451.37')),
    ('-1,200', Decimal('-1200')),
    (12.5, Decimal('12.5')),
    (None, Decimal('0')),
    ('', Decimal('0')),
    ('n/a', Decimal('0')),
])
def test_parse_amount(value, expected):
    assert parse_amount(value) == expected


def test_convert_to_int():
    assert convert_to_int('42') == 42
    assert convert_to_int('3.9') == 3
    assert convert_to_int('') is None
    assert convert_to_int('many', default=0) == 0
    assert convert_to_int('inf', default=0) == 0
    assert convert_to_int(float('-inf')) is None


def test_convert_to_date():
    assert convert_to_date('2026-01-18T10:15:00Z') == date(2026, 1, 18)
    assert convert_to_date(datetime(2026, 1, 18, 23, 59)) == date(2026, 1, 18)
    assert convert_to_date('not a date') is None


def test_first_present_skips_blanks():
    assert first_present({'a': '', 'b': None, 'c': 0}, 'a', 'b', 'c') == 0
    assert first_present({}, 'a') is None


def test_deduplicate_keeps_last_occurrence():
    records = [
        {'scope_key': 'ALL', 'date': 1, 'v': 'first'},
        {'scope_key': '3', 'date': 1, 'v': 'other'},
        {'scope_key': 'ALL', 'date': 1, 'v': 'last'},
    ]

    result = deduplicate_records(records, ['scope_key', 'date'])

    assert [r['v'] for r in result] == ['last', 'other']


# =============================================================================
# Dates
# =============================================================================

def test_iter_days_crosses_month_boundary():
    assert iter_days(date(2026, 1, 30), date(2026, 2, 1)) == [date(2026, 1, 30), date(2026, 1, 31), date(2026, 2, 1)]
    assert iter_days(date(2026, 2, 1), date(2026, 1, 30)) == []


def test_is_valid_date_format():
    assert is_valid_date_format('2026-02-28')
    assert not is_valid_date_format('2026-02-30')
    assert not is_valid_date_format('18/01/2026')
    assert not is_valid_date_format(None)


def test_month_helpers():
    assert get_previous_month(2026, 1) == (2025, 12)
    assert get_last_day_of_month(2028, 2) == date(2028, 2, 29)
    assert parse_date_string('2026-01-18T00:00:00') == date(2026, 1, 18)


# =============================================================================
# Projects
# =============================================================================

def test_generate_project_code():
    assert generate_project_code("Regent's Park") == 'REGENTSPAR'
    assert generate_project_code('Hadley Heights 2') == 'HADLEYHEIG'
    assert generate_project_code('') == 'PROJECT'
    assert generate_project_code('---') == 'PROJECT'


def test_find_or_create_project_adds_suffix_on_code_collision(session_manager, add_entities):
    ids = add_entities('LDP')
    with session_manager.session_scope() as session:
        resolver = DimensionResolver(session)
        first = resolver.find_or_create_project("Regent's Park")
        second = resolver.find_or_create_project('Regents Parkway')
        again = resolver.find_or_create_project("  REGENT'S PARK ")

        assert first.project_code == 'REGENTSPAR'
        assert second.project_code == 'REGENTSPAR2'
        assert again is first
        assert first.entity_id == ids['LDP']

    with session_manager.read_scope() as session:
        assert session.query(Project).count() == 2


def test_default_entity_is_created_when_missing(session_manager):
    with session_manager.session_scope() as session:
        project = DimensionResolver(session).find_or_create_project('Windsor')
        assert project.entity.entity_code == 'LDP'
        assert project.project_type == 'Residential'
        assert project.status == 'Planning'


def test_blank_project_name_is_rejected(session_manager):
    with session_manager.session_scope() as session:
        with pytest.raises(ValueError):
            DimensionResolver(session).find_or_create_project('   ')


def test_utc_now_is_naive_utc():
    before = datetime.now(timezone.utc).replace(tzinfo=None)
    stamp = utc_now()

    assert stamp.tzinfo is None
    assert before <= stamp <= datetime.now(timezone.utc).replace(tzinfo=None)
