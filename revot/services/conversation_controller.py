"""Conversation controller.

Owns the in-memory session list and displayed messages for the signed-in
user and keeps them consistent with the conversation store and the reply
gateway.

Flow:
1. Identity change loads (or tears down) the user's sessions
2. Selecting a session clears the display and fetches its history
3. Sending appends the user message optimistically, awaits the reply
   gateway and appends the reply (or a failure notice)

Results of history fetches and replies are only applied while the
selection they were started under is still current.
"""
from typing import Callable, List, Optional
import logging
import time

from revot.core.exceptions import StoreError, TransportError
from revot.schemas.chat import (
    ChatMessage,
    ConversationSession,
    DisplayState,
    Phase,
    Role,
    UserIdentity,
)
from revot.services.conversation_store import ConversationStore
from revot.services.identity_gateway import IdentityGateway, Subscription
from revot.services.reply_gateway import ReplyGateway

logger = logging.getLogger(__name__)


def wall_clock_ms() -> int:
    return int(time.time() * 1000)


class LocalClock:
    """
    Temporary ids for optimistic messages.

    Ids come from the wall clock in milliseconds but never repeat and never
    go backwards, even if the wall clock does.
    """

    def __init__(self, source: Callable[[], int] = wall_clock_ms):
        self._source = source
        self._last = 0

    def next_id(self, floor: int = 0) -> int:
        """Return an id greater than floor and than every id handed out so far."""
        value = max(self._source(), self._last + 1, floor + 1)
        self._last = value
        return value


class ConversationController:
    """Single owner of session and message state for one client."""

    def __init__(
        self,
        identity: IdentityGateway,
        store: ConversationStore,
        replies: ReplyGateway,
        failure_notice: str,
        clock: Optional[LocalClock] = None,
    ):
        """Initialize controller with its three collaborators."""
        self.identity = identity
        self.store = store
        self.replies = replies
        self.failure_notice = failure_notice
        self.clock = clock or LocalClock()

        self.user: Optional[UserIdentity] = None
        self.sessions: List[ConversationSession] = []
        self.current_session_id: Optional[str] = None
        self.messages: List[ChatMessage] = []
        self.draft = ""
        self.loading = False
        self.sending = False

        self._selection_token = 0
        self._subscription: Optional[Subscription] = None

    async def __aenter__(self) -> "ConversationController":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.stop()

    async def start(self) -> None:
        """Subscribe to identity changes and load the current user."""
        if self._subscription is None:
            self._subscription = self.identity.on_change(self.handle_identity_change)
        await self.handle_identity_change(await self.identity.get_current_user())

    def stop(self) -> None:
        """Release the identity subscription."""
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    @property
    def phase(self) -> Phase:
        if self.current_session_id is None:
            return Phase.NO_SESSION_SELECTED
        return Phase.HISTORY_LOADING if self.loading else Phase.HISTORY_LOADED

    def snapshot(self) -> DisplayState:
        return DisplayState(
            user=self.user,
            sessions=list(self.sessions),
            current_session_id=self.current_session_id,
            phase=self.phase,
            loading=self.loading,
            sending=self.sending,
            messages=list(self.messages),
        )

    def _reset(self) -> None:
        self.sessions = []
        self._deselect()
        self.draft = ""

    def _deselect(self) -> None:
        self._selection_token += 1
        self.current_session_id = None
        self.messages = []
        self.loading = False

    async def handle_identity_change(self, user: Optional[UserIdentity]) -> None:
        """
        React to sign-in, sign-out and token refresh.

        Loss of identity tears down all session and message state; a
        different user starts from scratch; the same user keeps everything.
        """
        previous = self.user
        self.user = user
        if user is None:
            if previous is not None:
                logger.info(f"Identity lost, clearing state for user={previous.id}")
            self._reset()
            return
        if previous is not None and previous.id == user.id:
            return
        self._reset()
        await self.refresh_sessions()

    async def refresh_sessions(self) -> None:
        """Reload the session list; on failure the previous list is kept."""
        if self.user is None:
            return
        owner_id = self.user.id
        try:
            sessions = await self.store.list_sessions(owner_id)
        except StoreError as e:
            logger.error(f"Error fetching sessions for user {owner_id}: {e.message}")
            return
        if self.user is None or self.user.id != owner_id:
            logger.info(f"Discarding session list for previous user {owner_id}")
            return
        self.sessions = sessions

    async def create_session(self) -> Optional[ConversationSession]:
        """
        Create a session, prepend it and select it.

        Returns:
            The new session, or None if the store refused
        """
        if self.user is None:
            return None
        try:
            session = await self.store.create_session(self.user.id)
        except StoreError as e:
            logger.error(f"Error creating session for user {self.user.id}: {e.message}")
            return None
        self.sessions = [session] + self.sessions
        await self.select_session(session.id)
        return session

    async def rename_session(self, session_id: str, title: str) -> bool:
        """Rename a session in the store, then in place in the local list."""
        try:
            await self.store.rename_session(session_id, title)
        except StoreError as e:
            logger.error(f"Error updating title of session {session_id}: {e.message}")
            return False
        self.sessions = [
            s.model_copy(update={"title": title}) if s.id == session_id else s
            for s in self.sessions
        ]
        return True

    async def delete_session(self, session_id: str, confirmed: bool = False) -> bool:
        """
        Delete a session after explicit user confirmation.

        Deleting the selected session clears the selection.
        """
        if not confirmed:
            logger.debug(f"Delete of session {session_id} not confirmed")
            return False
        try:
            await self.store.delete_session(session_id)
        except StoreError as e:
            logger.error(f"Error deleting session {session_id}: {e.message}")
            return False
        self.sessions = [s for s in self.sessions if s.id != session_id]
        if self.current_session_id == session_id:
            self._deselect()
        return True

    async def select_session(self, session_id: Optional[str]) -> None:
        """
        Make session_id the current selection and load its history.

        Selecting the already-selected session is a no-op. Failure to load
        history leaves an empty list; the loading flag is cleared either way.
        """
        if session_id == self.current_session_id:
            return
        if session_id is None:
            self._deselect()
            return

        self._selection_token += 1
        token = self._selection_token
        self.current_session_id = session_id
        self.messages = []
        self.loading = True

        try:
            history = await self.store.fetch_history(session_id)
        except StoreError as e:
            logger.error(f"Error fetching history for session {session_id}: {e.message}")
            history = []

        if token != self._selection_token:
            logger.info(f"Discarding stale history for session {session_id}")
            return
        self.messages = list(history)
        self.loading = False

    def _append(self, role: Role, content: str) -> ChatMessage:
        tail = self.messages[-1].id if self.messages else 0
        message = ChatMessage(id=self.clock.next_id(tail), role=role, content=content)
        self.messages.append(message)
        return message

    async def send(self, text: Optional[str] = None) -> bool:
        """
        Send the draft (or text) to the reply gateway.

        Preconditions: non-empty input after trimming, nothing in flight,
        history loaded, a session selected. A failed precondition is a
        silent no-op.

        Returns:
            True if the send was accepted
        """
        if text is not None:
            self.draft = text
        content = self.draft.strip()
        if not content or self.sending or self.loading or self.current_session_id is None:
            return False

        session_id = self.current_session_id
        token = self._selection_token
        self._append(Role.USER, content)
        self.draft = ""
        self.sending = True

        try:
            reply = await self.replies.send_utterance(session_id, content)
        except TransportError as e:
            logger.error(f"Error sending message to session {session_id}: {e.message}")
            reply = self.failure_notice
        finally:
            self.sending = False

        if token != self._selection_token:
            logger.info(f"Discarding reply for session {session_id}, no longer selected")
            return True
        self._append(Role.ASSISTANT, reply)
        return True
