from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from dodone.config import settings
from dodone.db.base import Base
from dodone.db.models import *  # noqa: F401,F403 - ensure all models loaded


def init_schema(engine: Engine) -> None:
    Base.metadata.create_all(engine)


def create_cache_engine(url: str | None = None) -> Engine:
    """Engine for the local cache database. Creates the schema on first use."""
    engine = create_engine(url or settings.CACHE_DATABASE_URL, echo=False)
    init_schema(engine)
    return engine


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(engine, expire_on_commit=False)
