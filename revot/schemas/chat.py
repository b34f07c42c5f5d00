"""Domain types shared by the gateways, the controller and the HTTP layer."""
from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class Phase(str, Enum):
    """Display lifecycle of the selected session."""
    NO_SESSION_SELECTED = "no_session_selected"
    HISTORY_LOADING = "history_loading"
    HISTORY_LOADED = "history_loaded"


class UserIdentity(BaseModel):
    """Authenticated user as reported by the identity provider."""
    id: str
    email: Optional[str] = None


class ConversationSession(BaseModel):
    """A titled, owned container for an ordered sequence of messages."""
    id: str
    owner_id: str
    title: str
    created_at: datetime


class ChatMessage(BaseModel):
    """
    A displayed message.

    id is the server row id for persisted messages and a local clock value
    for optimistic entries.
    """
    id: int
    role: Role
    content: str


class DisplayState(BaseModel):
    """Read-only view of the controller for the HTTP layer."""
    user: Optional[UserIdentity] = None
    sessions: List[ConversationSession] = Field(default_factory=list)
    current_session_id: Optional[str] = None
    phase: Phase = Phase.NO_SESSION_SELECTED
    loading: bool = False
    sending: bool = False
    messages: List[ChatMessage] = Field(default_factory=list)


class SendRequest(BaseModel):
    message: str


class SendResponse(BaseModel):
    accepted: bool
    state: DisplayState


class CredentialsRequest(BaseModel):
    email: str
    password: str


class SignUpResponse(BaseModel):
    user: Optional[UserIdentity] = None
    confirmation_required: bool


class RenameRequest(BaseModel):
    title: str


class SelectionRequest(BaseModel):
    session_id: Optional[str] = None


class ThemeRequest(BaseModel):
    theme: Literal["dark", "light"]


class ThemeResponse(BaseModel):
    theme: Literal["dark", "light"]
