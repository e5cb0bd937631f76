"""
Scheduler configuration management.
Follows the same pattern as common/config.py: dataclasses with defaults,
loaded from config/scheduler.yaml where ${VAR_NAME} references are
resolved from the environment.
"""

import re
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from decouple import config as env_config

from ..datalayer.base import SyncWindow

# Project root (parent of the metrics_sync package)
BASE_DIR = Path(__file__).resolve().parent.parent.parent

DEFAULT_DOMAIN_ORDER = [
    'finance_reserve',
    'sales_collection',
    'revenue_reservation',
    'procurement',
    'expense_paidout',
    'instagram',
    'google_review',
]


@dataclass
class DomainSchedule:
    """One domain inside the daily run."""
    name: str
    enabled: bool = True
    days_back: Optional[int] = None  # None: the domain's own default window

    def window(self, tz_name: str, today: Optional[date] = None) -> Optional[SyncWindow]:
        if not self.days_back:
            return None
        return SyncWindow.last_n_days(self.days_back, tz_name, today)


@dataclass
class SchedulerConfig:
    """
    Daily sync schedule.
    Can be loaded from a YAML file or built from defaults.
    """
    # APScheduler settings
    timezone: str = 'Asia/Dubai'
    cron: str = '30 9 * * *'            # 09:30 every day
    coalesce: bool = True               # Combine missed runs
    max_instances: int = 1              # Never overlap two daily runs
    misfire_grace_time: int = 3600      # Allow 1 hour late
    executor_max_workers: int = 2       # Daily job + one manual trigger

    # Graceful shutdown
    wait_for_jobs: bool = True

    domains: List[DomainSchedule] = field(
        default_factory=lambda: [DomainSchedule(name) for name in DEFAULT_DOMAIN_ORDER]
    )

    @property
    def enabled_domains(self) -> List[str]:
        return [d.name for d in self.domains if d.enabled]

    def windows(self, today: Optional[date] = None) -> Dict[str, SyncWindow]:
        """Per-domain windows for domains that override days_back."""
        result = {}
        for domain in self.domains:
            window = domain.window(self.timezone, today)
            if window is not None:
                result[domain.name] = window
        return result

    @classmethod
    def from_yaml(cls, path: Optional[str] = None) -> 'SchedulerConfig':
        """
        Load configuration from YAML.
        Missing file or keys keep the defaults.

        Args:
            path: YAML file (defaults to config/scheduler.yaml under the project root)
        """
        config = cls()
        config_file = Path(path) if path else BASE_DIR / 'config' / 'scheduler.yaml'

        if not config_file.exists():
            return config

        with open(config_file) as f:
            data = yaml.safe_load(f) or {}

        sched = data.get('scheduler') or {}

        if 'engine' in sched:
            e = sched['engine'] or {}
            config.timezone = _resolve_env(e.get('timezone', config.timezone)) or config.timezone
            if 'job_defaults' in e:
                jd = e['job_defaults'] or {}
                config.coalesce = jd.get('coalesce', config.coalesce)
                config.max_instances = jd.get('max_instances', config.max_instances)
                config.misfire_grace_time = jd.get('misfire_grace_time', config.misfire_grace_time)
            if 'executor' in e:
                config.executor_max_workers = e['executor'].get('max_workers', config.executor_max_workers)

        if 'daily_sync' in sched:
            ds = sched['daily_sync'] or {}
            config.cron = _resolve_env(ds.get('cron', config.cron)) or config.cron
            config.wait_for_jobs = ds.get('wait_for_jobs', config.wait_for_jobs)

        if sched.get('domains'):
            config.domains = [
                DomainSchedule(
                    name=name,
                    enabled=bool((ddef or {}).get('enabled', True)),
                    days_back=(ddef or {}).get('days_back'),
                )
                for name, ddef in sched['domains'].items()
            ]

        return config

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timezone': self.timezone,
            'cron': self.cron,
            'coalesce': self.coalesce,
            'max_instances': self.max_instances,
            'misfire_grace_time': self.misfire_grace_time,
            'domains': [
                {'name': d.name, 'enabled': d.enabled, 'days_back': d.days_back}
                for d in self.domains
            ],
        }


def _resolve_env(value: Any) -> Any:
    """Resolve ${VAR_NAME} references in string values."""
    if not isinstance(value, str):
        return value

    pattern = r'\$\{([^}]+)\}'

    def replace(match):
        var_name = match.group(1)
        return env_config(var_name, default='')

    return re.sub(pattern, replace, value)
