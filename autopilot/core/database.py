"""Database configuration and session management."""

from contextlib import contextmanager

from sqlalchemy import create_engine, text
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import NullPool
from sqlmodel import SQLModel

from autopilot.core.config import settings
from autopilot.core.errors import StoreUnavailableError

_engine = None
_session_maker = None


def get_engine():
    """Get or create the engine."""
    global _engine, _session_maker

    if _engine is None:
        database_url = settings.database_url

        engine_kwargs = {}
        if settings.env == "test":
            engine_kwargs["poolclass"] = NullPool
        if database_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False, "timeout": 30}

        _engine = create_engine(
            database_url,
            echo=False,
            pool_pre_ping=True,
            **engine_kwargs,
        )

        _session_maker = sessionmaker(
            bind=_engine,
            class_=Session,
            expire_on_commit=False,
            autocommit=False,
            autoflush=False,
        )

    return _engine


@contextmanager
def get_session():
    """Get database session.

    Connectivity failures are re-raised as StoreUnavailableError so callers can
    tell an unreachable store apart from ordinary errors.
    """
    get_engine()  # Ensure engine is initialized

    with _session_maker() as session:
        try:
            yield session
            session.commit()
        except (OperationalError, InterfaceError) as e:
            session.rollback()
            raise StoreUnavailableError(f"Database unavailable: {e}") from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


def check_store() -> None:
    """Probe the database with a trivial query.

    Raises:
        StoreUnavailableError: If the database cannot be reached
    """
    with get_session() as session:
        session.execute(text("SELECT 1"))


def create_tables() -> None:
    """Create all database tables."""
    import autopilot.models  # noqa: F401  registers table metadata

    engine = get_engine()
    SQLModel.metadata.create_all(engine)


def clean_database() -> None:
    """Clean all tables before each test."""
    engine = get_engine()
    tables = list(reversed(SQLModel.metadata.sorted_tables))
    with get_session() as session:
        if engine.dialect.name == "postgresql":
            table_names = [f'"{table.name}"' for table in tables]
            if table_names:
                truncate_stmt = (
                    "TRUNCATE " + ", ".join(table_names) + " RESTART IDENTITY CASCADE"
                )
                session.execute(text(truncate_stmt))
        else:
            for table in tables:
                session.execute(table.delete())


def close_db() -> None:
    """Close database connections."""
    global _engine, _session_maker

    if _engine:
        _engine.dispose()
        _engine = None
        _session_maker = None
