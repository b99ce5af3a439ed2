"""Database connection and session management."""

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from src.database.models import Base
from src.utils.config import config


def build_engine(database_url: str, echo: bool = False):
    """Create an engine, allowing SQLite connections to be shared across threads."""
    return create_engine(
        database_url,
        echo=echo,
        connect_args={"check_same_thread": False} if "sqlite" in database_url else {},
    )


# Create database engine
engine = build_engine(config.database.database_url, echo=config.database.echo)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind=None):
    """Initialize database schema."""
    Base.metadata.create_all(bind=bind or engine)


def get_db() -> Session:
    """Get database session for dependency injection."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
