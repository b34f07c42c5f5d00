"""Database engine for the conversation store."""
from typing import Optional

from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine
from sqlalchemy.engine import Engine

from revot.config import settings


def build_engine(url: Optional[str] = None) -> Engine:
    """
    Create a SQLModel engine.

    SQLite connections are shared across threads because store calls run
    in the threadpool; in-memory SQLite additionally needs a single
    connection or every checkout would see an empty database.
    """
    url = url or settings.DATABASE_URL
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url == "sqlite://":
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)
    return create_engine(url, pool_pre_ping=True)


def init_db(engine: Engine) -> None:
    """Create the sessions and message history tables if missing."""
    from revot.models.conversation import ChatSessionRecord, ChatHistoryRecord  # noqa: F401

    SQLModel.metadata.create_all(engine)
