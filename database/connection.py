from sqlalchemy import create_engine, text
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import QueuePool, StaticPool
from contextlib import contextmanager
import logging
from typing import Dict, Generator, Optional
from config import config, ConfigurationError
from database.models import Base

logger = logging.getLogger(__name__)


def engine_options(database_url: str) -> Dict:
    """Pool settings for the scanner's database URL."""
    if make_url(database_url).get_backend_name() == "sqlite":
        # One shared connection, so in-memory databases survive across sessions
        return {
            "poolclass": StaticPool,
            "connect_args": {"check_same_thread": False},
        }
    return {
        "poolclass": QueuePool,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
        "connect_args": {"connect_timeout": 10, "application_name": "csp_scanner"},
    }


class DatabaseManager:
    """Owns the engine and hands out transactional sessions to the stores."""

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url or config.DATABASE_URL
        if not self.database_url:
            raise ConfigurationError("DATABASE_URL is not configured in environment variables")

        url = make_url(self.database_url)
        logger.info(f"Connecting to database: {url.render_as_string(hide_password=True)}")
        self.engine = create_engine(self.database_url, echo=False, **engine_options(self.database_url))
        self.SessionLocal = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """One unit of work: commit on success, roll back and re-raise on error."""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Database session error: {e}")
            raise
        finally:
            session.close()

    def test_connection(self) -> bool:
        try:
            with self.engine.connect() as connection:
                connection.execute(text("SELECT 1"))
            logger.info("Database connection successful")
            return True
        except Exception as e:
            logger.error(f"Database connection failed: {e}")
            return False

    def create_tables(self):
        """Create the watchlist, scan result, trade and position tables if missing."""
        Base.metadata.create_all(bind=self.engine)
        logger.info(f"Database tables ready: {', '.join(sorted(Base.metadata.tables))}")
