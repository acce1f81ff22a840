from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import settings

Base = declarative_base()


def build_engine(database_url: str = None):
    """Create an engine for the state database of the active environment."""
    url = database_url or settings.database_url
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(
        url,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_recycle=3600,
        pool_pre_ping=True
    )


def build_session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine):
    """Create the state tables if they do not exist yet."""
    # Registers the mapped tables on Base.metadata
    from . import orm_models  # noqa: F401
    Base.metadata.create_all(bind=engine)
