"""SQLModel definitions for the two remote collections.

Tables:
- chat_sessions: conversation sessions owned by a user
- n8n_chat_histories: per-session message history written by the reply service
"""
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from revot.config import settings


class ChatSessionRecord(SQLModel, table=True):
    """
    Conversation session row.

    Ownership: each session belongs to exactly one user via user_id.
    All listings MUST filter by user_id.
    """
    __tablename__ = "chat_sessions"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    user_id: str = Field(index=True, nullable=False)
    title: str = Field(
        default_factory=lambda: settings.DEFAULT_SESSION_TITLE, max_length=255
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), index=True
    )


class ChatHistoryRecord(SQLModel, table=True):
    """
    Message history row.

    The message column holds the reply service's own shape:
    {"type": "human" | "ai" | ..., "content": "..."}.
    Row id is the sole ordering key within a session.
    """
    __tablename__ = "n8n_chat_histories"

    id: Optional[int] = Field(default=None, primary_key=True)
    session_id: str = Field(index=True, nullable=False)
    message: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
