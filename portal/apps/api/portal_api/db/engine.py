"""Database engine builder.

- Default pool: NullPool (client-side pooling disabled)
- ENV: PORTAL_DB_POOL=nullpool|queuepool (default: nullpool)
- ENV: PORTAL_DB_POOL_SIZE / PORTAL_DB_MAX_OVERFLOW (queuepool only)
- Bare postgresql:// URLs are pinned to the psycopg2 driver
- SQLite URLs (tests, local tooling) get foreign key enforcement switched on
  so ON DELETE CASCADE behaves as it does in Postgres.
"""

import logging
import os
import re
from typing import Any

from sqlalchemy import Engine, NullPool, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from portal_api.config.env import get_database_url

logger = logging.getLogger(__name__)


def _mask_password(url: str) -> str:
    """Mask password in database URL for safe logging."""
    return re.sub(r"://([^:]+):([^@]+)@", r"://\1:***@", url)


def _pin_postgres_driver(url: str) -> str:
    """Pin bare ``postgresql://`` / ``postgres://`` URLs to the psycopg2 driver."""
    return re.sub(r"^postgres(ql)?://", "postgresql+psycopg2://", url)


def enable_sqlite_foreign_keys(engine: Engine) -> None:
    """Turn on ``PRAGMA foreign_keys`` for every new SQLite connection."""

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):  # noqa: ARG001
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def build_engine(database_url: str | None = None) -> Engine:
    """
    Build SQLAlchemy engine.

    Args:
        database_url: Database URL. If None, resolved via config.env.get_database_url().

    Returns:
        SQLAlchemy Engine instance.

    Raises:
        ValueError: If PORTAL_DB_POOL holds an unknown value.
        RuntimeError: If DATABASE_URL is missing in production.

    Environment Variables:
        PORTAL_DB_POOL: Pool mode - "nullpool" (default) | "queuepool"
        PORTAL_DB_POOL_SIZE: QueuePool size (default: 5, only for queuepool)
        PORTAL_DB_MAX_OVERFLOW: QueuePool overflow (default: 10, only for queuepool)
        PORTAL_DB_APPLICATION_NAME: Postgres application_name tag
    """
    url = _pin_postgres_driver(database_url or get_database_url())
    is_sqlite = url.startswith("sqlite")

    connect_args: dict[str, Any] = {}
    if is_sqlite:
        connect_args["check_same_thread"] = False
    else:
        app_name = os.getenv("PORTAL_DB_APPLICATION_NAME", "portal-api")
        if app_name:
            connect_args["application_name"] = app_name

    pool_mode = (os.getenv("PORTAL_DB_POOL") or "nullpool").lower()

    if pool_mode == "nullpool":
        engine = create_engine(
            url,
            poolclass=NullPool,
            pool_pre_ping=True,
            connect_args=connect_args,
        )
    elif pool_mode == "queuepool":
        pool_size = int(os.getenv("PORTAL_DB_POOL_SIZE", "5"))
        max_overflow = int(os.getenv("PORTAL_DB_MAX_OVERFLOW", "10"))
        engine = create_engine(
            url,
            pool_pre_ping=True,
            pool_size=pool_size,
            max_overflow=max_overflow,
            connect_args=connect_args,
        )
    else:
        raise ValueError(
            f"Invalid PORTAL_DB_POOL value: {pool_mode}. "
            "Must be 'nullpool' or 'queuepool'."
        )

    if is_sqlite:
        enable_sqlite_foreign_keys(engine)

    logger.debug(
        "Database engine created: pool=%s, url=%s",
        engine.pool.__class__.__name__,
        _mask_password(url),
    )

    return engine


def build_sessionmaker(engine: Engine) -> sessionmaker[Session]:
    """
    Build SQLAlchemy sessionmaker.

    Args:
        engine: SQLAlchemy Engine instance.

    Returns:
        sessionmaker instance configured with autocommit=False, autoflush=False.
    """
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)
