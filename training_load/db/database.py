"""Engine and session lifecycle for the training load store.

One ``Database`` wraps one SQLAlchemy engine. Activities and wellness are the
primary records; ``metrics`` only ever holds derived values and can be
rebuilt from them at any time (see ``clear_derived``).
"""

import logging
from typing import Dict, Generator, List, Optional
from contextlib import contextmanager
from sqlalchemy import create_engine, func, inspect, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from ..config import config
from .models import Base, Metric

logger = logging.getLogger(__name__)

# Tables whose rows are recomputed from activities and settings
DERIVED_TABLES = (Metric.__table__,)


def _build_engine(database_url: str) -> Engine:
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, echo=False)

    # Stream backfill hands results over from another thread
    options = {"connect_args": {"check_same_thread": False}}
    if ":memory:" in database_url or database_url.rstrip("/") == "sqlite:":
        # A private in-memory database lives only as long as its one connection
        options["poolclass"] = StaticPool
    return create_engine(database_url, echo=False, **options)


class Database:
    """Training load store: engine, schema and sessions."""

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url or config.DATABASE_URL
        self.engine = _build_engine(self.database_url)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    def missing_tables(self) -> List[str]:
        existing = set(inspect(self.engine).get_table_names())
        return [name for name in Base.metadata.tables if name not in existing]

    def create_tables(self) -> List[str]:
        """Create any missing tables.

        Returns:
            Names of the tables that were created
        """
        missing = self.missing_tables()
        if missing:
            Base.metadata.create_all(bind=self.engine)
            logger.info(f"Created tables: {', '.join(missing)}")
        return missing

    def reset(self) -> None:
        """Drop and recreate every table. All stored data is lost."""
        logger.warning(f"Resetting database {self.engine.url!r}")
        Base.metadata.drop_all(bind=self.engine)
        Base.metadata.create_all(bind=self.engine)

    def clear_derived(self) -> int:
        """Delete derived rows so the next analysis rebuilds them.

        Returns:
            Number of rows deleted
        """
        deleted = 0
        with self.engine.begin() as connection:
            for table in DERIVED_TABLES:
                deleted += connection.execute(table.delete()).rowcount or 0
        logger.debug(f"Cleared {deleted} derived rows")
        return deleted

    def table_counts(self) -> Dict[str, int]:
        """Row count per table."""
        with self.engine.connect() as connection:
            return {
                name: connection.execute(select(func.count()).select_from(table)).scalar_one()
                for name, table in Base.metadata.tables.items()
            }

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Session that commits on success and rolls back on any error."""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            logger.debug("Rolling back database session")
            session.rollback()
            raise
        finally:
            session.close()

    def close(self):
        self.engine.dispose()


_db: Optional[Database] = None


def get_db(database_url: Optional[str] = None) -> Database:
    """Shared database, reopened when a different URL is requested."""
    global _db
    url = database_url or config.DATABASE_URL
    if _db is not None and _db.database_url != url:
        close_db()
    if _db is None:
        _db = Database(url)
        _db.create_tables()
    return _db


def close_db():
    global _db
    if _db is not None:
        _db.close()
        _db = None
