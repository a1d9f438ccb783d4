"""Database session management.

The engine is built once per process from DATABASE_URL; request handlers
receive a fresh Session through the ``get_db`` dependency.
"""

from typing import Generator

from sqlalchemy.orm import Session

from portal_api.config.env import get_database_url
from portal_api.db.engine import build_engine, build_sessionmaker

DATABASE_URL = get_database_url()

engine = build_engine(DATABASE_URL)

SessionLocal = build_sessionmaker(engine)


def get_db() -> Generator[Session, None, None]:
    """
    Get database session.

    Yields:
        Session: SQLAlchemy session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
