"""
Database configuration and session management for PostgreSQL
"""
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import declarative_base, sessionmaker

from projectfiles.core.config import settings
from projectfiles.core.exceptions import ConfigurationError, StorageFailureError

DATABASE_URL = settings.DATABASE_URL


def build_engine(url: str):
    """
    Create the SQLAlchemy engine with connection and statement timeouts.
    For connection pooling with PgBouncer, use pool_pre_ping.
    """
    if url.startswith("postgresql"):
        return create_engine(
            url,
            pool_pre_ping=True,
            pool_size=10,
            max_overflow=20,
            echo=False,
            connect_args={
                "connect_timeout": 10,  # 10 second connection timeout
                "options": "-c statement_timeout=30000"  # 30 second statement timeout
            }
        )
    return create_engine(url, pool_pre_ping=True, echo=False)


engine = build_engine(DATABASE_URL) if DATABASE_URL else None

# Create SessionLocal class for database sessions
if engine:
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
else:
    SessionLocal = None

# Create Base class for declarative models
Base = declarative_base()


def get_db():
    """
    Dependency function to get database session
    Usage in FastAPI routes:
        @router.get("/items/")
        def read_items(db: Session = Depends(get_db)):
            ...
    """
    if SessionLocal is None:
        raise ConfigurationError(
            "Database is not configured. Please set DATABASE_URL environment variable."
        )

    db = SessionLocal()
    try:
        yield db
    except Exception as e:
        db.rollback()
        if isinstance(e, OperationalError):
            raise StorageFailureError(
                f"Database connection failed: {str(e)}. Please check your database configuration and network connectivity."
            )
        raise
    finally:
        db.close()
