"""
FILE: src/core/database.py
Database connection and session management.
The Backend owns the engine for the lifetime of the process; it is built
explicitly in the app lifespan and handed out through app.state.
"""

from sqlmodel import create_engine, Session, SQLModel  # type: ignore
from sqlalchemy import text  # type: ignore
from sqlalchemy.engine import Engine
from fastapi import Request
from typing import Generator, Optional
from src.core.config import Settings
import logging

logger = logging.getLogger(__name__)


class Backend:
    """Process-wide database handle. Read-only after start()."""

    def __init__(self, config: Settings, engine: Optional[Engine] = None):
        self.config = config
        # A pre-built engine (tests) is adopted as-is
        self._engine: Optional[Engine] = engine

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("Backend not started")
        return self._engine

    def start(self) -> None:
        if self._engine is not None:
            self.create_db_and_tables()
            return
        url = self.config.DATABASE_URL
        kwargs: dict = {"echo": self.config.DB_ECHO, "pool_pre_ping": True}
        if url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
        else:
            kwargs.update(
                pool_size=self.config.DB_POOL_SIZE,
                max_overflow=self.config.DB_MAX_OVERFLOW,
                pool_recycle=3600,
            )
        self._engine = create_engine(url, **kwargs)
        self.create_db_and_tables()

    def stop(self) -> None:
        """Close database connections."""
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None

    def create_db_and_tables(self) -> None:
        """Create all database tables. Safe to run multiple times."""
        try:
            logger.info("🔨 Creating database tables...")
            SQLModel.metadata.create_all(self.engine)
            logger.info(f"📊 Available tables: {', '.join(SQLModel.metadata.tables.keys())}")
        except Exception as e:
            logger.error(f"❌ Error creating database tables: {e}")
            raise

    def session(self) -> Session:
        return Session(self.engine)

    def check_connection(self) -> bool:
        try:
            with Session(self.engine) as session:
                session.exec(text("SELECT 1"))  # type: ignore
            return True
        except Exception as e:
            logger.error(f"❌ Database connection failed: {e}")
            return False


def get_session(request: Request) -> Generator[Session, None, None]:
    """Get database session: use as FastAPI dependency"""
    backend: Backend = request.app.state.backend
    with backend.session() as session:
        try:
            yield session
        except Exception as e:
            logger.error(f"Database error: {e}")
            session.rollback()
            raise
