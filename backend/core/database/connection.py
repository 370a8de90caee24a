# ------------------------------ IMPORTS ------------------------------
from contextlib import contextmanager
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from typing import Generator, Dict, Any
import logging

from core.config.settings import settings, DatabaseConfig

# ------------------------------ LOGGING ------------------------------
logger = logging.getLogger(__name__)

# ------------------------------ BASE CLASS ------------------------------
Base = declarative_base()

# ------------------------------ DATABASE ENGINE ------------------------------

def build_engine(config: DatabaseConfig = None):
    """Create the SQLAlchemy engine for the configured database."""
    config = config or settings.database
    options: Dict[str, Any] = {"pool_pre_ping": True, "echo": False}

    if config.is_sqlite:
        options["connect_args"] = {"check_same_thread": False}
    else:
        options["pool_size"] = config.pool_size
        options["max_overflow"] = config.max_overflow

    return create_engine(config.database_url, **options)

engine = build_engine()

# ------------------------------ SESSION FACTORY ------------------------------
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)

# ------------------------------ DATABASE FUNCTIONS ------------------------------

@contextmanager
def get_db_session(session_factory: sessionmaker = SessionLocal) -> Generator[Session, None, None]:
    """Context manager for database sessions with automatic commit/rollback."""
    db = session_factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

def init_db(bind=None) -> None:
    """Initialize database - create all tables."""
    try:
        from core.database.models import TenantSessionRecord  # noqa: F401
        Base.metadata.create_all(bind=bind or engine)
        logger.info("Database tables created successfully")

    except Exception as e:
        logger.error(f"Error initializing database: {e}")
        raise

# ------------------------------ END OF FILE ------------------------------
