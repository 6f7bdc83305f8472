from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from core.settings import Settings
from db.models import Base

# Global engine singleton
_engine = None

# Session factory, bound to the engine on first use
SessionLocal = sessionmaker(autocommit=False, autoflush=False)


def reset_engines():
    """Reset the global engine singleton. Used for testing."""
    global _engine
    if _engine:
        _engine.dispose()
        _engine = None


def get_engine(settings: Settings):
    """Get or create SQLAlchemy engine."""
    global _engine
    if _engine is None:
        if settings.DATABASE_URL.startswith("postgresql"):
            _engine = create_engine(
                settings.DATABASE_URL,
                future=True,
                echo=settings.DEBUG,
                poolclass=QueuePool,
                pool_size=settings.DATABASE_POOL_SIZE,
                max_overflow=settings.DATABASE_MAX_OVERFLOW,
                pool_timeout=settings.DATABASE_POOL_TIMEOUT,
                pool_recycle=settings.DATABASE_POOL_RECYCLE,
                pool_pre_ping=True,  # Verify connections before use
            )
        else:
            # SQLite fallback for tests and local runs
            is_sqlite = settings.DATABASE_URL.startswith("sqlite")
            _engine = create_engine(
                settings.DATABASE_URL,
                future=True,
                echo=settings.DEBUG,
                connect_args={"check_same_thread": False} if is_sqlite else {},
                poolclass=StaticPool if is_sqlite else None,
            )
    return _engine


def get_session_factory(settings: Settings) -> sessionmaker:
    """Return the module session factory bound to the configured engine."""
    SessionLocal.configure(bind=get_engine(settings))
    return SessionLocal


def init_db(settings: Settings) -> None:
    """Create any missing tables; Alembic owns schema changes in deployed databases."""
    Base.metadata.create_all(get_engine(settings))
