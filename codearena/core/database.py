"""Database configuration and session management"""

from sqlalchemy import create_engine, text, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from fastapi import Request
from typing import Generator
import logging

from codearena.config import Settings

logger = logging.getLogger(__name__)

# Create base class for models
Base = declarative_base()


class Database:
    """
    Process-wide connection pool and session factory.

    Created once at process start and handed to every component that needs
    database access; disposed at shutdown.
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self.session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        url = settings.get_database_url()
        if url.startswith("sqlite"):
            engine = create_engine(
                url,
                connect_args={"check_same_thread": False, "timeout": 30},
                echo=settings.DEBUG,
            )
        else:
            engine = create_engine(
                url,
                pool_size=settings.DATABASE_POOL_SIZE,
                max_overflow=settings.DATABASE_MAX_OVERFLOW,
                pool_timeout=30,
                pool_recycle=3600,
                pool_pre_ping=True,
                echo=settings.DEBUG,
            )
        return cls(engine)

    def session(self) -> Session:
        return self.session_factory()

    def dispose(self) -> None:
        """Drain the pool; checked-out connections close as they are returned."""
        self.engine.dispose()
        logger.info("Database pool disposed")


# Import models after Base is defined so metadata is populated.
from codearena import models  # noqa: E402,F401


def get_db(request: Request) -> Generator[Session, None, None]:
    """
    Dependency for getting database session

    Yields:
        Session: Database session bound to the application's pool
    """
    db = request.app.state.database.session()
    try:
        yield db
    finally:
        db.close()


def init_db(database: Database, mode: str, require_head: bool = True) -> None:
    """
    Initialize database according to configured strategy.

    DB_INIT_MODE:
      - migrate: require alembic_version table (migration-first discipline)
      - create_all: legacy behavior for local/dev bootstrap
      - off: skip initialization check
    """
    engine = database.engine
    mode = mode.lower().strip()
    if mode == "off":
        logger.info("DB initialization check skipped (DB_INIT_MODE=off)")
        return

    if mode == "create_all":
        Base.metadata.create_all(bind=engine)
        logger.warning("Using create_all database initialization (recommended only for local development).")
        return

    if mode == "migrate":
        with engine.connect() as conn:
            if engine.dialect.name == "postgresql":
                exists = bool(conn.execute(text("SELECT to_regclass('public.alembic_version')")).scalar())
            else:
                exists = "alembic_version" in inspect(conn).get_table_names()
            if require_head and not exists:
                raise RuntimeError(
                    "Migration table missing. Run Alembic migrations before starting the API."
                )
        logger.info("Migration metadata detected.")
        return

    raise RuntimeError(f"Unknown DB_INIT_MODE: {mode}")
