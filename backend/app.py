"""
Flask Application Factory - Statistics Engine

No routes: the back office owns HTTP. The app only carries the database
binding (Flask-SQLAlchemy) and one process-wide StatisticsCache, so the
back office and the CLI share the same configuration.

Usage:
    from app import create_app, get_statistics_service

    app = create_app()
    with app.app_context():
        service = get_statistics_service()
        stats = service.get_all_stats(caller, period='month')
"""
import logging

from flask import Flask, current_app

from models.database import db
from services.statistics.cache import StatisticsCache, create_cache_store
from services.statistics.service import StatisticsService, start_background_warm_up

logger = logging.getLogger('statistics')

EXTENSION_KEY = 'statistics_cache'


def create_app(config_object=None):
    """
    Create the Flask app.

    Args:
        config_object: Config class to load (default: config.Config, which
                       requires DATABASE_URL)
    """
    app = Flask(__name__)

    if config_object is None:
        from config import Config
        config_object = Config
    app.config.from_object(config_object)

    db.init_app(app)

    store = create_cache_store(
        app.config.get('STATS_CACHE_URL'),
        max_entries=app.config.get('STATS_CACHE_MAX_ENTRIES', 2000),
    )
    app.extensions[EXTENSION_KEY] = StatisticsCache(store)

    logger.info(
        f"Statistics engine ready (timezone={app.config.get('REPORTING_TIMEZONE')}, "
        f"cache={type(store).__name__})"
    )
    return app


def get_statistics_cache(app=None) -> StatisticsCache:
    app = app or current_app
    return app.extensions[EXTENSION_KEY]


def get_statistics_service(app=None) -> StatisticsService:
    """Service bound to db.session and the app's cache. Needs an app context."""
    app = app or current_app
    return StatisticsService(
        db.session,
        get_statistics_cache(app),
        timezone_name=app.config.get('REPORTING_TIMEZONE'),
    )


def warm_up_in_background(caller, periods=None, app=None):
    """
    Start a background warm-up for a caller (e.g. right after login).

    The thread opens its own session from the job engine; it never touches
    db.session, which is bound to the request context.

    Returns:
        The started thread, or None if a warm-up is already running
    """
    from db.engine import get_session_factory

    app = app or current_app
    return start_background_warm_up(
        get_statistics_cache(app),
        caller,
        lambda: get_session_factory("job")(),
        periods,
        timezone_name=app.config.get('REPORTING_TIMEZONE'),
    )
