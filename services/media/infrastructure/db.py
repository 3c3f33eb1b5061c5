from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker


def _engine_options(url: str):
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_pre_ping": True,
    }


class Base(DeclarativeBase):
    pass


def create_session_factory(url: str):
    engine = create_engine(url, **_engine_options(url))
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, expire_on_commit=False)
