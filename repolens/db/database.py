from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from repolens.config.settings import get_settings

from .models import Base


def build_engine(database_url: str) -> Engine:
    """Create an engine; SQLite URLs are made safe for use from worker threads."""
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **kwargs)
    return create_engine(database_url, pool_pre_ping=True)


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    Base.metadata.create_all(engine)


_engine = None
_session_factory = None


def get_session_factory() -> sessionmaker:
    """Process-wide session factory for the configured DATABASE_URL."""
    global _engine, _session_factory
    if _session_factory is None:
        _engine = build_engine(get_settings().DATABASE_URL)
        init_db(_engine)
        _session_factory = build_session_factory(_engine)
    return _session_factory

