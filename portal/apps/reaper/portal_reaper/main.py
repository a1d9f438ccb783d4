"""Portal Reaper main entry point.

Runs the token retention loop: tokens expired for longer than
PORTAL_TOKEN_RETENTION_DAYS are deleted every
PORTAL_RETENTION_LOOP_INTERVAL_SECONDS (default: 24 hours).
"""

import logging
import threading
from pathlib import Path

from portal_api.config.env import (
    get_database_url,
    get_log_level,
    get_retention_batch_size,
    get_retention_loop_interval_seconds,
    get_token_retention_days,
)
from portal_api.db.engine import build_engine, build_sessionmaker
from portal_api.utils import configure_json_logging
from portal_reaper.loops.token_retention_loop import token_retention_loop

configure_json_logging(log_level=get_log_level())
logger = logging.getLogger(__name__)

READY_FILE_PATH = Path("/tmp/portal-reaper-ready")


def main() -> None:
    """Main entry point for the reaper."""
    READY_FILE_PATH.unlink(missing_ok=True)

    # Fail-fast in production when DATABASE_URL is unset
    engine = build_engine(get_database_url())
    SessionLocal = build_sessionmaker(engine)

    retention_thread = threading.Thread(
        target=token_retention_loop,
        kwargs={
            "session_factory": SessionLocal,
            "interval_seconds": get_retention_loop_interval_seconds(),
            "cutoff_days": get_token_retention_days(),
            "batch_size": get_retention_batch_size(),
        },
        name="TokenRetentionLoop",
        daemon=False,
    )

    try:
        logger.info("reaper.starting", extra={"event": "reaper.starting"})
        retention_thread.start()

        # Readiness file for the k8s readinessProbe
        READY_FILE_PATH.write_text("ready\n")

        retention_thread.join()
    except KeyboardInterrupt:
        logger.info("reaper.interrupted", extra={"event": "reaper.interrupted"})
    finally:
        READY_FILE_PATH.unlink(missing_ok=True)
        engine.dispose()
        logger.info("reaper.stopped", extra={"event": "reaper.stopped"})


if __name__ == "__main__":
    main()
