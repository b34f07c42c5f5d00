"""Conversation store client.

Handles:
- Session listing, creation, rename and deletion (owner scoped)
- Ordered message history retrieval and translation to display messages

All operations run synchronously on a short-lived SQLModel session inside
the threadpool so the caller's event loop is never blocked.
"""
from typing import Any, Callable, Dict, List, TypeVar
import logging

from fastapi.concurrency import run_in_threadpool
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from revot.core.exceptions import StoreError
from revot.models.conversation import ChatHistoryRecord, ChatSessionRecord
from revot.schemas.chat import ChatMessage, ConversationSession, Role

logger = logging.getLogger(__name__)

T = TypeVar("T")

HUMAN_TYPE = "human"


def to_session(record: ChatSessionRecord) -> ConversationSession:
    return ConversationSession(
        id=record.id,
        owner_id=record.user_id,
        title=record.title,
        created_at=record.created_at,
    )


def to_message(record: ChatHistoryRecord) -> ChatMessage:
    """
    Translate a stored history row into a display message.

    The nested message object's type tag decides the role: "human" is the
    user, anything else is the assistant. Content is copied verbatim.
    """
    payload = record.message if isinstance(record.message, dict) else {}
    role = Role.USER if payload.get("type") == HUMAN_TYPE else Role.ASSISTANT
    content = payload.get("content")
    if content is None:
        content = ""
    elif not isinstance(content, str):
        content = str(content)
    return ChatMessage(id=record.id, role=role, content=content)


class ConversationStore:
    """CRUD client for the sessions and message history collections."""

    def __init__(self, engine: Engine):
        """Initialize store client with a database engine."""
        self.engine = engine

    async def _run(self, operation: str, func: Callable[[Session], T]) -> T:
        """
        Run func with a fresh session in the threadpool.

        Raises:
            StoreError: If the database operation fails
        """
        def call() -> T:
            with Session(self.engine) as session:
                return func(session)

        try:
            return await run_in_threadpool(call)
        except SQLAlchemyError as e:
            logger.debug(f"Store operation {operation} failed: {e!r}")
            raise StoreError(f"{operation} failed: {e.__class__.__name__}") from e

    async def list_sessions(self, owner_id: str) -> List[ConversationSession]:
        """
        List sessions for an owner, newest first.

        Args:
            owner_id: Authenticated user ID

        Returns:
            Sessions ordered by created_at descending
        """
        def query(session: Session) -> List[ConversationSession]:
            statement = select(ChatSessionRecord).where(
                ChatSessionRecord.user_id == owner_id
            ).order_by(ChatSessionRecord.created_at.desc())
            return [to_session(record) for record in session.exec(statement).all()]

        return await self._run("list_sessions", query)

    async def create_session(self, owner_id: str) -> ConversationSession:
        """
        Create a new session with a server-assigned id and default title.

        Args:
            owner_id: Authenticated user ID

        Returns:
            The stored session
        """
        def insert(session: Session) -> ConversationSession:
            record = ChatSessionRecord(user_id=owner_id)
            session.add(record)
            session.commit()
            session.refresh(record)
            return to_session(record)

        return await self._run("create_session", insert)

    async def rename_session(self, session_id: str, title: str) -> None:
        """
        Update a session's title.

        Raises:
            StoreError: If the session does not exist or the update fails
        """
        def update(session: Session) -> bool:
            record = session.get(ChatSessionRecord, session_id)
            if record is None:
                return False
            record.title = title
            session.add(record)
            session.commit()
            return True

        if not await self._run("rename_session", update):
            raise StoreError(f"Session {session_id} not found")

    async def delete_session(self, session_id: str) -> None:
        """
        Delete a session and its message history.

        Raises:
            StoreError: If the session does not exist or the delete fails
        """
        def remove(session: Session) -> bool:
            record = session.get(ChatSessionRecord, session_id)
            if record is None:
                return False
            history = session.exec(
                select(ChatHistoryRecord).where(ChatHistoryRecord.session_id == session_id)
            ).all()
            for row in history:
                session.delete(row)
            session.delete(record)
            session.commit()
            return True

        if not await self._run("delete_session", remove):
            raise StoreError(f"Session {session_id} not found")

    async def fetch_history(self, session_id: str) -> List[ChatMessage]:
        """
        Load a session's messages ordered by ascending row id.

        Args:
            session_id: Session ID

        Returns:
            Display messages, oldest first
        """
        def query(session: Session) -> List[ChatMessage]:
            statement = select(ChatHistoryRecord).where(
                ChatHistoryRecord.session_id == session_id
            ).order_by(ChatHistoryRecord.id)
            return [to_message(record) for record in session.exec(statement).all()]

        return await self._run("fetch_history", query)

    async def append_history(
        self, session_id: str, message_type: str, content: str, **extra: Any
    ) -> ChatMessage:
        """
        Store one history row in the reply service's shape.

        Used for seeding and for deployments where the reply service does
        not persist turns itself.
        """
        def insert(session: Session) -> ChatMessage:
            payload: Dict[str, Any] = {"type": message_type, "content": content, **extra}
            record = ChatHistoryRecord(session_id=session_id, message=payload)
            session.add(record)
            session.commit()
            session.refresh(record)
            return to_message(record)

        return await self._run("append_history", insert)
