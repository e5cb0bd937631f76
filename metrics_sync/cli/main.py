"""
Metrics Sync CLI - Main entry point.
Built with Click for a rich command-line interface.
"""

import json
import logging
import sys

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from .. import __version__

console = Console()


def get_config():
    """Load data layer configuration from the environment."""
    from ..common.config import DataLayerConfig
    return DataLayerConfig.from_env()


def get_scheduler_config(path):
    """Load scheduler configuration."""
    from ..scheduler.config import SchedulerConfig
    return SchedulerConfig.from_yaml(path)


def get_session_manager(config):
    from ..common.engine import create_engine_from_config
    from ..common.session import SessionManager
    return SessionManager(create_engine_from_config(config.primary_database))


def parse_day(value, option_name):
    if value is None:
        return None
    from ..common.date_utils import parse_date_string
    try:
        return parse_date_string(value)
    except ValueError:
        raise click.BadParameter(f"expected YYYY-MM-DD, got {value!r}", param_hint=option_name)


def build_window(day, from_date, to_date, days, tz_name):
    """SyncWindow from the mutually exclusive window options (None: domain default)."""
    from ..datalayer.base import SyncWindow

    day = parse_day(day, '--date')
    from_date = parse_day(from_date, '--from')
    to_date = parse_day(to_date, '--to')

    if day and (from_date or to_date or days):
        raise click.UsageError("--date cannot be combined with --from/--to/--days")
    if days and (from_date or to_date):
        raise click.UsageError("--days cannot be combined with --from/--to")

    if day:
        return SyncWindow.single(day)
    if days:
        return SyncWindow.last_n_days(days, tz_name)
    if from_date or to_date:
        try:
            return SyncWindow(from_date or to_date, to_date or from_date)
        except ValueError as e:
            raise click.UsageError(str(e))
    return None


def print_results(results):
    """Render per-domain SyncResults as a table."""
    table = Table(title="Sync Results")
    table.add_column("Domain", style="cyan")
    table.add_column("Status", style="green")
    table.add_column("Entities", style="magenta")
    table.add_column("Saved", style="green")
    table.add_column("Skipped", style="yellow")
    table.add_column("Errors", style="red")
    table.add_column("Duration", style="blue")

    for domain, result in results.items():
        status = "[green]OK[/green]" if result.success else "[red]FAILED[/red]"
        table.add_row(
            domain,
            status,
            str(result.entities_processed),
            str(result.records_saved),
            str(result.records_skipped),
            str(len(result.errors)),
            f"{result.duration:.1f}s",
        )

    console.print(table)

    for domain, result in results.items():
        for error in result.errors[:5]:
            console.print(f"  [red]{domain}[/red]: {error}")
        if len(result.errors) > 5:
            console.print(f"  [dim]{domain}: ... and {len(result.errors) - 5} more[/dim]")


def print_json(payload):
    console.print_json(json.dumps(payload, default=str))


@click.group()
@click.version_option(version=__version__, prog_name='metrics-sync')
@click.option('--config', '-c', default=None,
              help='Path to scheduler config file (default: config/scheduler.yaml)')
@click.option('--log-level', '-l', default='INFO',
              type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False),
              help='Logging level')
@click.pass_context
def cli(ctx, config, log_level):
    """Metrics Sync - Ingest business metrics into SQL and query reports."""
    load_dotenv()
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config


# =============================================================================
# Database Commands
# =============================================================================

@cli.group()
def db():
    """Create tables, seed dimensions and repair indexes."""
    pass


@db.command('init')
def db_init():
    """Create all tables and indexes that do not exist yet."""
    from ..common.models import Base

    manager = get_session_manager(get_config())
    console.print("[yellow]Creating tables...[/yellow]")
    Base.metadata.create_all(manager.engine)
    console.print(f"[green]{len(Base.metadata.tables)} tables ready[/green]")


@db.command('seed-entities')
def db_seed_entities():
    """Seed the business entity dimension."""
    from ..scripts.seed_entities import seed_entities

    manager = get_session_manager(get_config())
    with manager.session_scope() as session:
        stats = seed_entities(session)
    console.print(
        f"[green]Entities: {stats['created']} created, {stats['updated']} updated, "
        f"{stats['skipped']} unchanged[/green]"
    )


@db.command('seed-projects')
@click.option('--entity', '-e', default=None, help='Owning entity code (default: DEFAULT_ENTITY_CODE)')
def db_seed_projects(entity):
    """Seed the project dimension."""
    from ..scripts.seed_projects import seed_projects

    config = get_config()
    manager = get_session_manager(config)
    with manager.session_scope() as session:
        stats = seed_projects(session, entity_code=entity or config.sync.default_entity_code)
    console.print(
        f"[green]Projects: {stats['created']} created, {stats['updated']} updated, "
        f"{stats['skipped']} unchanged[/green]"
    )


@db.command('repair-indexes')
def db_repair_indexes():
    """Remove duplicate rows and rebuild the unique indexes."""
    from ..scripts.repair_indexes import repair_indexes

    manager = get_session_manager(get_config())
    console.print("[yellow]Repairing unique indexes...[/yellow]")
    report = repair_indexes(manager)

    table = Table(title="Index Repair")
    table.add_column("Table", style="cyan")
    table.add_column("Duplicates Removed", style="yellow")
    for name, deleted in report.items():
        table.add_row(name, str(deleted))
    console.print(table)


# =============================================================================
# Sync Commands
# =============================================================================

@cli.group()
def sync():
    """Run domain syncs now."""
    pass


@sync.command('run')
@click.argument('domain')
@click.option('--date', '-d', 'day', help='Single day (YYYY-MM-DD)')
@click.option('--from', 'from_date', help='Window start (YYYY-MM-DD)')
@click.option('--to', 'to_date', help='Window end (YYYY-MM-DD)')
@click.option('--days', type=int, help='Last N days ending yesterday')
@click.option('--no-progress', is_flag=True, help='Hide progress bars')
def sync_run(domain, day, from_date, to_date, days, no_progress):
    """Sync one domain (default window: the domain's own)."""
    from ..datalayer.service import DOMAIN_SYNCS, SyncService

    if domain not in DOMAIN_SYNCS:
        console.print(f"[red]Unknown domain: {domain}[/red]")
        console.print(f"Available: {', '.join(DOMAIN_SYNCS)}")
        sys.exit(2)

    config = get_config()
    window = build_window(day, from_date, to_date, days, config.sync.timezone)

    service = SyncService(config, show_progress=not no_progress)
    console.print(f"[yellow]Syncing {domain} ({window or service.default_window(domain)})...[/yellow]")
    result = service.run_domain(domain, window)
    print_results({domain: result})

    if not result.success:
        sys.exit(1)


@sync.command('all')
@click.option('--date', '-d', 'day', help='Single day for every domain (YYYY-MM-DD)')
@click.option('--from', 'from_date', help='Window start (YYYY-MM-DD)')
@click.option('--to', 'to_date', help='Window end (YYYY-MM-DD)')
@click.option('--days', type=int, help='Last N days ending yesterday')
@click.option('--domain', '-D', 'domains', multiple=True, help='Restrict to these domains (repeatable)')
@click.option('--no-progress', is_flag=True, help='Hide progress bars')
@click.pass_context
def sync_all(ctx, day, from_date, to_date, days, domains, no_progress):
    """Sync every enabled domain, sequentially."""
    from ..datalayer.service import SyncService

    config = get_config()
    sched_config = get_scheduler_config(ctx.obj['config_path'])
    window = build_window(day, from_date, to_date, days, config.sync.timezone)

    service = SyncService(config, show_progress=not no_progress)
    selected = list(domains) if domains else sched_config.enabled_domains

    console.print(f"[yellow]Syncing {len(selected)} domains...[/yellow]")
    results = service.run_all(
        window=window,
        domains=selected,
        windows=None if window else sched_config.windows(),
    )
    print_results(results)

    if any(not r.success for r in results.values()):
        sys.exit(1)


# =============================================================================
# Scheduler Commands
# =============================================================================

def build_scheduler(config_path, show_progress=False):
    from ..datalayer.service import SyncService
    from ..scheduler.engine import SyncScheduler

    sched_config = get_scheduler_config(config_path)
    service = SyncService(get_config(), show_progress=show_progress)

    def run_all():
        return service.run_all(domains=sched_config.enabled_domains, windows=sched_config.windows())

    def run_domain(domain):
        return service.run_domain(domain, sched_config.windows().get(domain))

    return SyncScheduler(sched_config, run_all, run_domain)


@cli.group()
def scheduler():
    """Run the daily sync scheduler."""
    pass


@scheduler.command('start')
@click.option('--foreground', '-f', is_flag=True, help='Keep the process attached until Ctrl+C')
@click.pass_context
def scheduler_start(ctx, foreground):
    """Start the daily sync scheduler."""
    engine = build_scheduler(ctx.obj['config_path'])

    console.print("[yellow]Starting scheduler...[/yellow]")
    engine.start()
    console.print(
        f"[green]Scheduler started: '{engine.config.cron}' ({engine.config.timezone}), "
        f"next run {engine.next_run_time()}[/green]"
    )

    if not foreground:
        return

    console.print("[green]Running in foreground mode. Press Ctrl+C to stop.[/green]")

    import signal
    import time

    def signal_handler(signum, frame):
        console.print("\n[yellow]Shutting down...[/yellow]")
        engine.stop(wait=True)
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    # Keep running
    while engine.is_running:
        time.sleep(1)


@scheduler.command('next')
@click.pass_context
def scheduler_next(ctx):
    """Show the schedule and its next fire time."""
    from ..scheduler.engine import SyncScheduler

    sched_config = get_scheduler_config(ctx.obj['config_path'])
    engine = SyncScheduler(sched_config, run_all=lambda: None)

    table = Table(title="Daily Sync Schedule")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Cron", sched_config.cron)
    table.add_row("Time Zone", sched_config.timezone)
    table.add_row("Next Run", str(engine.upcoming_run()))
    for domain in sched_config.domains:
        enabled = "[green]Yes[/green]" if domain.enabled else "[red]No[/red]"
        window = f"last {domain.days_back} days" if domain.days_back else "default"
        table.add_row(f"Domain: {domain.name}", f"{enabled} ({window})")
    console.print(table)


@scheduler.command('trigger')
@click.argument('domain', required=False)
@click.pass_context
def scheduler_trigger(ctx, domain):
    """Run the scheduled job now (all domains, or one DOMAIN)."""
    engine = build_scheduler(ctx.obj['config_path'], show_progress=True)

    if domain:
        try:
            results = {domain: engine.trigger_domain(domain)}
        except ValueError as e:
            console.print(f"[red]{e}[/red]")
            sys.exit(2)
    else:
        results = engine.run_now()
    print_results(results)


# =============================================================================
# Report Commands
# =============================================================================

def report_options(func):
    """Filter options shared by the report commands."""
    options = [
        click.option('--entity-id', help='Entity id'),
        click.option('--project-id', help='Project id'),
        click.option('--start-date', help='Start date (YYYY-MM-DD)'),
        click.option('--end-date', help='End date (YYYY-MM-DD)'),
        click.option('--min-amount', help='Minimum amount'),
        click.option('--max-amount', help='Maximum amount'),
        click.option('--param', '-p', 'extra', multiple=True,
                     help='Extra filter as key=value (e.g. salesManager=Jane)'),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def build_params(entity_id, project_id, start_date, end_date, min_amount, max_amount, extra):
    params = {
        'entityId': entity_id,
        'projectId': project_id,
        'startDate': start_date,
        'endDate': end_date,
        'minAmount': min_amount,
        'maxAmount': max_amount,
    }
    params = {k: v for k, v in params.items() if v is not None}
    for item in extra:
        if '=' not in item:
            raise click.BadParameter(f"expected key=value, got {item!r}", param_hint='--param')
        key, value = item.split('=', 1)
        params[key.strip()] = value.strip()
    return params


@cli.group()
def report():
    """Query stored metrics (JSON output)."""
    pass


@report.command('list')
@click.argument('domain')
@report_options
@click.option('--page', type=int, default=1, help='Page number')
@click.option('--limit', type=int, default=10, help='Page size (max 100)')
def report_list(domain, page, limit, **filters):
    """Flat paginated records for DOMAIN."""
    from ..reporting import get_list

    manager = get_session_manager(get_config())
    try:
        with manager.read_scope() as session:
            payload = get_list(session, domain, build_params(**filters), page, limit)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(2)
    print_json(payload)


@report.command('detail')
@click.argument('domain')
@report_options
@click.option('--page', type=int, default=1, help='Page number (of dates)')
@click.option('--limit', type=int, default=10, help='Dates per page (max 100)')
def report_detail(domain, page, limit, **filters):
    """Date-grouped detail for DOMAIN."""
    from ..reporting import get_detail

    manager = get_session_manager(get_config())
    try:
        with manager.read_scope() as session:
            payload = get_detail(session, domain, build_params(**filters), page, limit)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(2)
    print_json(payload)


@report.command('summary')
@click.argument('domain')
@report_options
@click.option('--view', '-v', default=None, help='Named view (default: the domain summary)')
@click.option('--today', default=None, help='Reference date (YYYY-MM-DD, default: today)')
def report_summary(domain, view, today, **filters):
    """Period-over-period summary (or another named view) for DOMAIN."""
    from ..reporting import available_views, get_summary

    config = get_config()
    reference = parse_day(today, '--today')
    manager = get_session_manager(config)
    try:
        with manager.read_scope() as session:
            payload = get_summary(
                session, domain, build_params(**filters), view=view,
                tz_name=config.sync.timezone, today=reference,
            )
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        if domain in _report_domains():
            console.print(f"Views: {', '.join(available_views(domain))}")
        sys.exit(2)
    print_json(payload)


def _report_domains():
    from ..reporting import DOMAINS
    return DOMAINS


def main():
    cli(obj={})


if __name__ == '__main__':
    main()
