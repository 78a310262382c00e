from __future__ import annotations

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from relay_service.infrastructure.db.base import Base


def make_engine(url: str) -> Engine:
    return create_engine(url, pool_pre_ping=True, echo=False)


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def create_schema(engine: Engine) -> None:
    import relay_service.infrastructure.db.models  # noqa: F401

    Base.metadata.create_all(engine)
