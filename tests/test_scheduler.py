from datetime import date, datetime

import pytest

from metrics_sync.scheduler import DomainSchedule, SchedulerConfig, SyncScheduler


YAML = """
scheduler:
  engine:
    timezone: ${SYNC_TIMEZONE}
    job_defaults:
      misfire_grace_time: 600
  daily_sync:
    cron: '0 6 * * 1-5'
  domains:
    finance_reserve:
      enabled: true
    instagram:
      enabled: false
    expense_paidout:
      days_back: 7
"""


def test_defaults():
    config = SchedulerConfig()

    assert config.timezone == 'Asia/Dubai'
    assert config.cron == '30 9 * * *'
    assert config.enabled_domains[0] == 'finance_reserve'
    assert config.enabled_domains[-1] == 'google_review'
    assert len(config.enabled_domains) == 7
    assert config.windows() == {}


def test_missing_file_keeps_defaults(tmp_path):
    config = SchedulerConfig.from_yaml(str(tmp_path / 'absent.yaml'))

    assert config.to_dict() == SchedulerConfig().to_dict()


def test_from_yaml_resolves_environment(tmp_path, monkeypatch):
    monkeypatch.setenv('SYNC_TIMEZONE', 'Europe/London')
    path = tmp_path / 'scheduler.yaml'
    path.write_text(YAML)

    config = SchedulerConfig.from_yaml(str(path))

    assert config.timezone == 'Europe/London'
    assert config.cron == '0 6 * * 1-5'
    assert config.misfire_grace_time == 600
    assert config.coalesce is True
    assert config.enabled_domains == ['finance_reserve', 'expense_paidout']


def test_unset_timezone_variable_falls_back_to_default(tmp_path, monkeypatch):
    monkeypatch.delenv('SYNC_TIMEZONE', raising=False)
    path = tmp_path / 'scheduler.yaml'
    path.write_text(YAML)

    assert SchedulerConfig.from_yaml(str(path)).timezone == 'Asia/Dubai'


def test_days_back_override_builds_a_window():
    config = SchedulerConfig(domains=[DomainSchedule('finance_reserve'), DomainSchedule('expense_paidout', days_back=7)])

    windows = config.windows(today=date(2026, 1, 18))

    assert list(windows) == ['expense_paidout']
    assert windows['expense_paidout'].from_date == date(2026, 1, 11)
    assert windows['expense_paidout'].to_date == date(2026, 1, 17)


def test_upcoming_run_uses_the_configured_time_zone():
    scheduler = SyncScheduler(SchedulerConfig(), run_all=lambda: None)

    before = scheduler.upcoming_run(datetime(2026, 1, 18, 8, 0))
    after = scheduler.upcoming_run(datetime(2026, 1, 18, 10, 0))

    assert before.replace(tzinfo=None) == datetime(2026, 1, 18, 9, 30)
    assert after.replace(tzinfo=None) == datetime(2026, 1, 19, 9, 30)
    assert before.utcoffset().total_seconds() == 4 * 3600


def test_invalid_cron_expression():
    scheduler = SyncScheduler(SchedulerConfig(cron='30 9 * *'), run_all=lambda: None)

    with pytest.raises(ValueError):
        scheduler.upcoming_run()


def test_run_now_and_trigger_domain():
    calls = []
    scheduler = SyncScheduler(
        SchedulerConfig(),
        run_all=lambda: calls.append('all') or 'done',
        run_domain=lambda domain: calls.append(domain) or domain,
    )

    assert scheduler.run_now() == 'done'
    assert scheduler.trigger_domain('procurement') == 'procurement'
    assert calls == ['all', 'procurement']

    with pytest.raises(ValueError):
        scheduler.trigger_domain('weather')


def test_trigger_domain_without_runner():
    scheduler = SyncScheduler(SchedulerConfig(), run_all=lambda: None)

    with pytest.raises(ValueError):
        scheduler.trigger_domain('procurement')


def test_start_and_stop():
    scheduler = SyncScheduler(SchedulerConfig(), run_all=lambda: None)
    assert scheduler.next_run_time() is None

    scheduler.start()
    try:
        assert scheduler.is_running
        assert scheduler.next_run_time() is not None
        assert [job['id'] for job in scheduler.get_jobs()] == ['daily_sync']
    finally:
        scheduler.stop(wait=False)

    assert not scheduler.is_running
