#!/usr/bin/env python3
"""
CLI for the Statistics Engine

Commands:
    warm-up      - Precompute statistics and charts for a user's scope
    invalidate   - Drop cached statistics for a district, a user, or everything
    show         - Print statistics for a user and period as JSON
    cache-stats  - Print cache hit/miss counters and store info

Usage:
    python cli.py warm-up --user-id 1
    python cli.py warm-up --user-id 1 --period today --period week
    python cli.py invalidate --district-id 3
    python cli.py invalidate --all
    python cli.py show --user-id 1 --period custom --from 2025-01-01 --to 2025-03-31
    python cli.py show --user-id 1 --period week --group cases
    python cli.py cache-stats
"""

import json
import logging
import sys

import click

from constants import PERIOD_TOKENS, WARM_UP_PERIODS, STATS_GROUPS, DASHBOARD_GROUPS


def get_app_context():
    """Get Flask app context for database access."""
    from app import create_app
    app = create_app()
    return app.app_context()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    # Reduce noise from libraries
    logging.getLogger('sqlalchemy').setLevel(logging.WARNING)


def _load_caller(user_id: int):
    from models.database import db
    from models.user import User
    from services.statistics.access_scope import Caller

    user = db.session.get(User, user_id)
    if user is None:
        click.echo(f"Error: user {user_id} not found", err=True)
        sys.exit(1)
    return Caller.from_user(user)


@click.group()
@click.version_option(version="1.0.0", prog_name="statistics-cli")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
def cli(verbose):
    """Statistics Engine CLI - warm, inspect and invalidate cached statistics."""
    _configure_logging(verbose)


@cli.command("warm-up")
@click.option("--user-id", type=int, required=True, help="User whose scope is warmed")
@click.option("--period", "periods", multiple=True, type=click.Choice(PERIOD_TOKENS),
              help="Period to warm (repeatable, default: today/week/month/year)")
def warm_up(user_id, periods):
    """Precompute the statistics and chart bundles for a user."""
    from app import get_statistics_service

    with get_app_context():
        caller = _load_caller(user_id)
        service = get_statistics_service()
        results = service.warm_up(caller, list(periods) or list(WARM_UP_PERIODS))

    failed = [period for period, status in results.items() if status != 'ok']
    for period, status in results.items():
        click.echo(f"  {period:<8} {status}")
    if failed:
        sys.exit(1)


@cli.command("invalidate")
@click.option("--district-id", type=int, default=None, help="Drop entries computed over this district")
@click.option("--user-id", type=int, default=None, help="Drop entries computed for this user")
@click.option("--all", "drop_all", is_flag=True, help="Drop every statistics entry")
def invalidate(district_id, user_id, drop_all):
    """Drop cached statistics."""
    from app import get_statistics_cache
    from services.statistics.invalidation import on_case_changed, on_user_changed

    if district_id is None and user_id is None and not drop_all:
        raise click.UsageError("Give --district-id, --user-id or --all")

    with get_app_context():
        cache = get_statistics_cache()
        deleted = 0
        if drop_all:
            deleted += cache.forget_all()
        if district_id is not None:
            deleted += on_case_changed(cache, district_id)
        if user_id is not None:
            deleted += on_user_changed(cache, user_id)

    click.echo(f"Deleted {deleted} cache entries")


@cli.command("show")
@click.option("--user-id", type=int, required=True, help="User whose scope is reported")
@click.option("--period", type=click.Choice(PERIOD_TOKENS), default="month", show_default=True)
@click.option("--from", "date_from", default=None, help="Custom period start (YYYY-MM-DD)")
@click.option("--to", "date_to", default=None, help="Custom period end (YYYY-MM-DD)")
@click.option("--district-id", type=int, default=None, help="Narrow an unrestricted user to one district")
@click.option("--group", "group", type=click.Choice(STATS_GROUPS + DASHBOARD_GROUPS + ["charts", "comparison"]),
              default=None, help="Single group (default: full statistics bundle)")
def show(user_id, period, date_from, date_to, district_id, group):
    """Print statistics as JSON."""
    from app import get_statistics_service
    from services.statistics.errors import InvalidPeriodError

    with get_app_context():
        caller = _load_caller(user_id)
        service = get_statistics_service()
        try:
            if group is None:
                result = service.get_all_stats(caller, period, date_from, date_to, district_id=district_id)
            elif group == "charts":
                result = service.get_all_charts(caller, district_id=district_id)
            elif group == "comparison":
                result = service.compare_periods(caller, period, date_from, date_to, district_id=district_id)
            elif group == "kpis":
                result = service.get_dashboard_kpis(caller, district_id=district_id)
            elif group == "alerts":
                result = service.get_alerts(caller, district_id=district_id)
            else:
                result = service.get_group(caller, group, period, date_from, date_to, district_id=district_id)
        except InvalidPeriodError as e:
            raise click.BadParameter(str(e), param_hint=f"--{e.field}" if e.field else None)

    click.echo(json.dumps(result, indent=2, default=str))


@cli.command("cache-stats")
def cache_stats():
    """Print cache statistics."""
    from app import get_statistics_cache

    with get_app_context():
        stats = get_statistics_cache().stats()
    click.echo(json.dumps(stats, indent=2, default=str))


if __name__ == "__main__":
    cli()
