"""Token Retention Loop.

Periodically deletes session tokens that expired more than
PORTAL_TOKEN_RETENTION_DAYS ago. Expired tokens already fail validation;
this only keeps the tokens table from growing without bound.
"""

import logging
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.orm import Session

from portal_api.config.env import (
    get_retention_batch_size,
    get_retention_loop_interval_seconds,
    get_token_retention_days,
)
from portal_api.db.models import Token
from portal_api.db.repository import Repository, commit

logger = logging.getLogger(__name__)


def run_token_retention_cleanup(
    session: Session,
    cutoff_days: int,
    batch_size: int = 500,
    now: Optional[datetime] = None,
) -> int:
    """Run one iteration of token retention cleanup.

    Args:
        session: Database session
        cutoff_days: Days past expiry before a token is deleted
        batch_size: Maximum number of tokens deleted per iteration
        now: Reference time (default: current UTC time)

    Returns:
        Number of tokens deleted
    """
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(days=cutoff_days)

    tokens = Repository(session, Token)
    expired = tokens.get_all_by_condition(Token.expires_at < cutoff, limit=batch_size)
    if not expired:
        logger.debug("retention.tokens.none", extra={"event": "retention.tokens.none"})
        return 0

    deleted = tokens.delete_by_condition(Token.id.in_([t.id for t in expired]))
    commit(session)

    logger.info(
        "retention.tokens.deleted",
        extra={
            "event": "retention.tokens.deleted",
            "deleted": deleted,
            "cutoff": cutoff.isoformat(),
        },
    )
    return deleted


def token_retention_loop(
    session_factory,
    interval_seconds: Optional[int] = None,
    cutoff_days: Optional[int] = None,
    batch_size: Optional[int] = None,
    stop_event: Optional[threading.Event] = None,
) -> None:
    """Token retention loop (runs in background thread).

    Args:
        session_factory: SQLAlchemy sessionmaker
        interval_seconds: Loop interval (default: PORTAL_RETENTION_LOOP_INTERVAL_SECONDS)
        cutoff_days: Retention cutoff (default: PORTAL_TOKEN_RETENTION_DAYS)
        batch_size: Tokens per iteration (default: PORTAL_RETENTION_BATCH_SIZE)
        stop_event: Set to end the loop after the current iteration (at least one always runs)
    """
    if interval_seconds is None:
        interval_seconds = get_retention_loop_interval_seconds()
    if cutoff_days is None:
        cutoff_days = get_token_retention_days()
    if batch_size is None:
        batch_size = get_retention_batch_size()

    logger.info(
        "retention.loop.started",
        extra={
            "event": "retention.loop.started",
            "interval_seconds": interval_seconds,
            "cutoff_days": cutoff_days,
            "batch_size": batch_size,
        },
    )

    while True:
        try:
            with session_factory() as session:
                # Drain full batches before sleeping
                while run_token_retention_cleanup(session, cutoff_days, batch_size) == batch_size:
                    pass
        except Exception as e:
            logger.error(
                "retention.loop.error",
                exc_info=True,
                extra={"event": "retention.loop.error", "error_type": type(e).__name__},
            )

        if stop_event is None:
            time.sleep(interval_seconds)
        elif stop_event.wait(interval_seconds):
            break

    logger.info("retention.loop.stopped", extra={"event": "retention.loop.stopped"})
