"""Shared fakes for the external services."""
import asyncio
import itertools
import json
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import httpx
import pytest

from revot.core.exceptions import StoreError
from revot.schemas.chat import ChatMessage, ConversationSession, Role
from revot.services.conversation_controller import ConversationController, LocalClock
from revot.services.identity_gateway import IdentityGateway

AUTH_URL = "http://auth.test"
FAILURE_NOTICE = "Error comunicando con el agente. Por favor inténtalo de nuevo."


def run(coro):
    return asyncio.run(coro)


class FakeAuthProvider:
    """In-memory stand-in for the auth REST API, served through MockTransport."""

    def __init__(self, confirm_signups: bool = False):
        self.accounts: Dict[str, str] = {}
        self.ids: Dict[str, str] = {}
        self.tokens: Dict[str, str] = {}
        self.confirm_signups = confirm_signups
        self.offline = False
        self.calls: List[str] = []
        self._counter = itertools.count(1)

    def add_account(self, email: str, password: str) -> str:
        self.accounts[email] = password
        self.ids[email] = f"user-{len(self.ids) + 1}"
        return self.ids[email]

    def _session(self, email: str) -> dict:
        n = next(self._counter)
        access, refresh = f"access-{n}", f"refresh-{n}"
        self.tokens[access] = email
        self.tokens[refresh] = email
        return {
            "access_token": access,
            "refresh_token": refresh,
            "user": {"id": self.ids[email], "email": email},
        }

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls.append(path)
        if self.offline:
            raise httpx.ConnectError("offline", request=request)
        body = json.loads(request.content or b"{}")
        grant = request.url.params.get("grant_type")

        if path == "/auth/v1/token" and grant == "password":
            if self.accounts.get(body.get("email")) != body.get("password"):
                return httpx.Response(
                    400,
                    json={"error": "invalid_grant", "error_description": "Invalid login credentials"},
                )
            return httpx.Response(200, json=self._session(body["email"]))

        if path == "/auth/v1/token" and grant == "refresh_token":
            email = self.tokens.pop(body.get("refresh_token"), None)
            if email is None:
                return httpx.Response(400, json={"error_description": "Invalid Refresh Token"})
            return httpx.Response(200, json=self._session(email))

        if path == "/auth/v1/signup":
            if body["email"] in self.accounts:
                return httpx.Response(422, json={"msg": "User already registered"})
            if len(body.get("password", "")) < 6:
                return httpx.Response(422, json={"msg": "Password should be at least 6 characters"})
            self.add_account(body["email"], body["password"])
            if self.confirm_signups:
                return httpx.Response(200, json={"id": self.ids[body["email"]], "email": body["email"]})
            return httpx.Response(200, json=self._session(body["email"]))

        token = request.headers.get("Authorization", "").removeprefix("Bearer ")
        if path == "/auth/v1/logout":
            if self.tokens.pop(token, None) is None:
                return httpx.Response(401, json={"msg": "invalid JWT"})
            return httpx.Response(204)

        if path == "/auth/v1/user":
            email = self.tokens.get(token)
            if email is None:
                return httpx.Response(401, json={"msg": "invalid JWT"})
            return httpx.Response(200, json={"id": self.ids[email], "email": email})

        return httpx.Response(404)

    def gateway(self) -> IdentityGateway:
        client = httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
        return IdentityGateway(AUTH_URL, api_key="anon-key", client=client)


class FakeStore:
    """In-memory conversation store with switchable failures and gates."""

    def __init__(self):
        self.sessions: List[ConversationSession] = []
        self.history: Dict[str, List[ChatMessage]] = {}
        self.failing: set = set()
        self.gates: Dict[str, asyncio.Event] = {}
        self.fetches: List[str] = []
        self._ids = itertools.count(1)
        self._created = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def _check(self, operation: str) -> None:
        if operation in self.failing:
            raise StoreError(f"{operation} failed")

    def add_session(self, owner_id: str, title: str = "Nuevo Chat") -> ConversationSession:
        self._created += timedelta(minutes=1)
        session = ConversationSession(
            id=f"s{next(self._ids)}", owner_id=owner_id, title=title, created_at=self._created
        )
        self.sessions.append(session)
        self.history[session.id] = []
        return session

    def add_message(self, session_id: str, role: Role, content: str) -> ChatMessage:
        message = ChatMessage(id=next(self._ids), role=role, content=content)
        self.history[session_id].append(message)
        return message

    async def list_sessions(self, owner_id: str) -> List[ConversationSession]:
        self._check("list_sessions")
        owned = [s for s in self.sessions if s.owner_id == owner_id]
        return sorted(owned, key=lambda s: s.created_at, reverse=True)

    async def create_session(self, owner_id: str) -> ConversationSession:
        self._check("create_session")
        return self.add_session(owner_id)

    async def rename_session(self, session_id: str, title: str) -> None:
        self._check("rename_session")
        for i, s in enumerate(self.sessions):
            if s.id == session_id:
                self.sessions[i] = s.model_copy(update={"title": title})
                return
        raise StoreError(f"Session {session_id} not found")

    async def delete_session(self, session_id: str) -> None:
        self._check("delete_session")
        before = len(self.sessions)
        self.sessions = [s for s in self.sessions if s.id != session_id]
        if len(self.sessions) == before:
            raise StoreError(f"Session {session_id} not found")
        self.history.pop(session_id, None)

    async def fetch_history(self, session_id: str) -> List[ChatMessage]:
        self.fetches.append(session_id)
        gate = self.gates.get(session_id)
        if gate is not None:
            await gate.wait()
        self._check("fetch_history")
        return list(self.history.get(session_id, []))


class FakeReplies:
    """Reply gateway returning queued texts or raising queued errors."""

    def __init__(self):
        self.outcomes: List[object] = []
        self.calls: List[tuple] = []
        self.gate: Optional[asyncio.Event] = None

    async def send_utterance(self, session_id: str, text: str) -> str:
        self.calls.append((session_id, text))
        if self.gate is not None:
            await self.gate.wait()
        outcome = self.outcomes.pop(0) if self.outcomes else f"echo: {text}"
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class TickSource:
    """Deterministic millisecond source for LocalClock."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now


@pytest.fixture
def auth_provider():
    provider = FakeAuthProvider()
    provider.add_account("ana@example.com", "secret123")
    return provider


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def replies():
    return FakeReplies()


@pytest.fixture
def controller(auth_provider, store, replies):
    return ConversationController(
        identity=auth_provider.gateway(),
        store=store,
        replies=replies,
        failure_notice=FAILURE_NOTICE,
        clock=LocalClock(TickSource()),
    )
