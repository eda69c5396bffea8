"""Engine and session factory helpers."""

from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from spendly.core.config import get_settings


def build_engine(database_url: Optional[str] = None, **kwargs) -> Engine:
    """Create an engine for the configured database."""
    url = database_url or get_settings().database_url
    return create_engine(url, future=True, **kwargs)


def build_session_factory(engine: Engine) -> sessionmaker:
    """Session factory used by the orchestrator (one session per attempt)."""
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create all tables."""
    from spendly.db.base import Base
    import spendly.db.models  # noqa: F401  (registers the mappers)

    Base.metadata.create_all(engine)
