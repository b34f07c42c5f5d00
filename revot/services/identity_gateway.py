"""Identity session gateway.

Wraps a Supabase-compatible auth REST API:
- password sign-in / sign-up / sign-out
- current user lookup and token refresh
- change notifications to subscribers (controller teardown on sign-out)
"""
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union
import inspect
import logging

import httpx
from pydantic import BaseModel

from revot.core.exceptions import AuthError
from revot.schemas.chat import UserIdentity

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[Optional[UserIdentity]], Union[None, Awaitable[None]]]

# Provider error bodies are not uniform across endpoints.
ERROR_KEYS = ("error_description", "msg", "message", "error")


class AuthSession(BaseModel):
    """Tokens and user held for the signed-in session."""
    access_token: str
    refresh_token: Optional[str] = None
    user: UserIdentity


class Subscription:
    """Handle returned by on_change; releases the listener exactly once."""

    def __init__(self, gateway: "IdentityGateway", callback: ChangeCallback):
        self._gateway = gateway
        self._callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self._gateway._listeners.remove(self._callback)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.unsubscribe()


def _user_from(payload: Any) -> UserIdentity:
    try:
        return UserIdentity(id=str(payload["id"]), email=payload.get("email"))
    except (KeyError, TypeError, AttributeError) as e:
        raise AuthError("Identity provider returned an incomplete user") from e


def _json_object(response: httpx.Response) -> Dict[str, Any]:
    """
    Decode a success body.

    Raises:
        AuthError: If the body is not a JSON object
    """
    try:
        body = response.json()
    except ValueError as e:
        raise AuthError("Identity provider returned invalid JSON") from e
    if not isinstance(body, dict):
        raise AuthError("Identity provider returned an unexpected body")
    return body


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ERROR_KEYS:
            if body.get(key):
                return str(body[key])
    return f"Authentication failed ({response.status_code})"


class IdentityGateway:
    """Client for the identity provider holding the current session."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 15.0,
    ):
        """Initialize gateway; an owned client is created when none is given."""
        self.auth_url = base_url.rstrip("/") + "/auth/v1"
        self.api_key = api_key
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self.session: Optional[AuthSession] = None
        self._listeners: List[ChangeCallback] = []

    @property
    def current_user(self) -> Optional[UserIdentity]:
        return self.session.user if self.session else None

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    def on_change(self, callback: ChangeCallback) -> Subscription:
        """
        Subscribe to sign-in, sign-out and token refresh events.

        Returns:
            Subscription; call unsubscribe() (or leave its with-block) to release
        """
        self._listeners.append(callback)
        return Subscription(self, callback)

    async def _notify(self, user: Optional[UserIdentity]) -> None:
        for callback in list(self._listeners):
            result = callback(user)
            if inspect.isawaitable(result):
                await result

    def _headers(self, access_token: Optional[str] = None) -> Dict[str, str]:
        headers = {}
        if self.api_key:
            headers["apikey"] = self.api_key
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        return headers

    async def _post(
        self,
        path: str,
        body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
        access_token: Optional[str] = None,
    ) -> httpx.Response:
        try:
            return await self.client.post(
                self.auth_url + path,
                json=body or {},
                params=params,
                headers=self._headers(access_token),
            )
        except httpx.HTTPError as e:
            raise AuthError(f"Identity provider unreachable: {e.__class__.__name__}") from e

    def _session_from(self, payload: Dict[str, Any]) -> AuthSession:
        try:
            return AuthSession(
                access_token=payload["access_token"],
                refresh_token=payload.get("refresh_token"),
                user=_user_from(payload.get("user")),
            )
        except (KeyError, TypeError) as e:
            raise AuthError("Identity provider returned an incomplete session") from e

    async def get_current_user(self) -> Optional[UserIdentity]:
        """
        Return the signed-in user, validating the held token.

        An expired or revoked token clears the held session without a
        notification; nobody was observing a signed-in state yet.
        """
        if self.session is None:
            return None

        try:
            response = await self.client.get(
                self.auth_url + "/user",
                headers=self._headers(self.session.access_token),
            )
        except httpx.HTTPError as e:
            logger.warning(f"Could not validate session, keeping cached user: {e!r}")
            return self.session.user

        if response.status_code in (401, 403):
            logger.info("Held session is no longer valid")
            self.session = None
            return None
        if not response.is_success:
            return self.session.user

        try:
            self.session.user = _user_from(_json_object(response))
        except AuthError as e:
            logger.warning(f"Could not read user, keeping cached user: {e.message}")
        return self.session.user

    async def sign_in(self, email: str, password: str) -> UserIdentity:
        """
        Sign in with email and password.

        Raises:
            AuthError: On invalid credentials or transport failure
        """
        response = await self._post(
            "/token", {"email": email, "password": password}, params={"grant_type": "password"}
        )
        if not response.is_success:
            raise AuthError(_error_message(response))

        self.session = self._session_from(_json_object(response))
        logger.info(f"Signed in: user={self.session.user.id}")
        await self._notify(self.session.user)
        return self.session.user

    async def sign_up(self, email: str, password: str) -> Optional[UserIdentity]:
        """
        Register a new account.

        Returns:
            The signed-in user, or None when email confirmation is pending

        Raises:
            AuthError: On policy violation (weak password, duplicate account)
        """
        response = await self._post("/signup", {"email": email, "password": password})
        if not response.is_success:
            raise AuthError(_error_message(response))

        payload = _json_object(response)
        if not payload.get("access_token"):
            logger.info(f"Sign-up pending email confirmation: email={email}")
            return None

        self.session = self._session_from(payload)
        await self._notify(self.session.user)
        return self.session.user

    async def sign_out(self) -> None:
        """
        Sign out and notify subscribers.

        Raises:
            AuthError: Only on transport failure
        """
        if self.session is None:
            return

        response = await self._post("/logout", access_token=self.session.access_token)
        # 401/404: token already invalid on the provider side
        if not response.is_success and response.status_code not in (401, 404):
            raise AuthError(_error_message(response))

        logger.info(f"Signed out: user={self.session.user.id}")
        self.session = None
        await self._notify(None)

    async def refresh(self) -> UserIdentity:
        """
        Exchange the refresh token for a new session.

        Raises:
            AuthError: If there is nothing to refresh or the provider refuses;
                a refused refresh signs the user out
        """
        if self.session is None or not self.session.refresh_token:
            raise AuthError("No session to refresh")

        response = await self._post(
            "/token",
            {"refresh_token": self.session.refresh_token},
            params={"grant_type": "refresh_token"},
        )
        if not response.is_success:
            message = _error_message(response)
            logger.warning(f"Token refresh refused: {message}")
            self.session = None
            await self._notify(None)
            raise AuthError(message)

        self.session = self._session_from(_json_object(response))
        await self._notify(self.session.user)
        return self.session.user
