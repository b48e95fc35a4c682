"""
Canonical database engine factory for all non-Flask contexts.

Flask uses db.init_app(app) with Config.SQLALCHEMY_ENGINE_OPTIONS.
Everything else (CLI commands, the background cache warm-up thread) uses
this factory.

Usage:
    from db.engine import get_engine, get_session_factory

    # For CLI / warm-up runs (uses NullPool - no connection pooling)
    engine = get_engine("job")

    Session = get_session_factory("job")
    session = Session()
    try:
        ...
    finally:
        session.close()

Warmup with retry:
    - Exponential backoff (0.75s, 1.5s, 3s, 6s)
    - Fails fast after 4 attempts with clear error
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

log = logging.getLogger(__name__)

# Module-level engine cache (per-process singletons)
_ENGINES: Dict[str, Engine] = {}


def _base_options() -> Dict[str, Any]:
    """
    Get base engine options from Config.SQLALCHEMY_ENGINE_OPTIONS.

    Keeps the statement_timeout applied to statistics queries identical
    inside and outside Flask.
    """
    from config import Config

    opts = dict(getattr(Config, "SQLALCHEMY_ENGINE_OPTIONS", {}) or {})
    return opts


def _warmup(engine: Engine, attempts: int = 4, base_sleep: float = 0.75) -> None:
    """
    Warm up database connection with exponential backoff retry.

    Raises:
        OperationalError: If all attempts fail
    """
    last_error: Optional[Exception] = None

    for i in range(attempts):
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            log.info("db_warmup_success attempt=%d", i + 1)
            return
        except OperationalError as e:
            last_error = e
            sleep_s = base_sleep * (2 ** i)
            log.warning(
                "db_warmup_retry attempt=%d/%d sleep_s=%.2f err=%s",
                i + 1, attempts, sleep_s, str(e)[:100]
            )
            time.sleep(sleep_s)

    log.error("db_warmup_failed after %d attempts", attempts)
    raise last_error  # type: ignore[misc]


def get_engine(kind: str = "job") -> Engine:
    """
    Get a database engine configured for the specified use case.

    Args:
        kind: Engine type
            - "job": CLI commands and warm-up runs. NullPool, each session
                     opens and closes its own connection.

    Returns:
        SQLAlchemy Engine instance (cached per-process)

    Raises:
        ValueError: If kind is not "job"
        OperationalError: If database connection fails after retries
    """
    if kind != "job":
        raise ValueError("kind must be 'job'")

    if kind in _ENGINES:
        return _ENGINES[kind]

    from config import get_database_url
    database_url = get_database_url()

    opts = _base_options()
    connect_args = dict(opts.pop("connect_args", {}) or {})
    connect_args.setdefault("connect_timeout", 30)

    engine = create_engine(
        database_url,
        poolclass=NullPool,
        connect_args=connect_args,
        pool_pre_ping=opts.get("pool_pre_ping", True),
    )
    log.info("db_engine_created kind=job poolclass=NullPool")

    _warmup(engine)

    _ENGINES[kind] = engine
    return engine


def get_session_factory(kind: str = "job") -> sessionmaker:
    """Session factory bound to the engine of the given kind."""
    return sessionmaker(bind=get_engine(kind))


def dispose_engines() -> None:
    """
    Dispose all cached engines (for testing/cleanup).
    """
    for kind in list(_ENGINES):
        engine = _ENGINES.pop(kind)
        try:
            engine.dispose()
        except OperationalError as e:
            log.warning("db_engine_dispose_failed kind=%s err=%s", kind, str(e)[:100])

    log.info("db_engines_disposed")
