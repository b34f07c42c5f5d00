"""Reply gateway for the external automation webhook.

Sends one user utterance plus the session id and resolves the webhook's
heterogeneous JSON answer into plain text.
"""
from typing import Any, Callable, List, NamedTuple, Optional
import json
import logging

import httpx

from revot.core.exceptions import TransportError

logger = logging.getLogger(__name__)


class ReplyRule(NamedTuple):
    """One response shape: a matcher and the extractor applied on match."""
    name: str
    matches: Callable[[Any], bool]
    extract: Callable[[Any], Any]


def _has(payload: Any, key: str) -> bool:
    return isinstance(payload, dict) and bool(payload.get(key))


def _first_has_output(payload: Any) -> bool:
    return isinstance(payload, list) and len(payload) > 0 and _has(payload[0], "output")


def dump_json(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


# Tried in order; the first match wins.
REPLY_RULES: List[ReplyRule] = [
    ReplyRule("string", lambda p: isinstance(p, str), lambda p: p),
    ReplyRule("output", lambda p: _has(p, "output"), lambda p: p["output"]),
    ReplyRule("list_output", _first_has_output, lambda p: p[0]["output"]),
    ReplyRule("message", lambda p: _has(p, "message"), lambda p: p["message"]),
    ReplyRule("fallback", lambda p: True, dump_json),
]


def resolve_reply(payload: Any, rules: Optional[List[ReplyRule]] = None) -> str:
    """
    Resolve a decoded webhook response into reply text.

    Args:
        payload: Decoded JSON (string, object, array or anything else)
        rules: Rule table, defaults to REPLY_RULES

    Returns:
        Reply text; non-string extracted values are serialized as JSON
    """
    for rule in rules or REPLY_RULES:
        if rule.matches(payload):
            value = rule.extract(payload)
            logger.debug(f"Reply resolved by rule '{rule.name}'")
            return value if isinstance(value, str) else dump_json(value)
    return dump_json(payload)


class ReplyGateway:
    """Client for the reply endpoint."""

    def __init__(
        self,
        url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 60.0,
    ):
        """Initialize gateway; an owned client is created when none is given."""
        self.url = url
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def send_utterance(self, session_id: str, text: str) -> str:
        """
        Send a user utterance and return the resolved reply text.

        Args:
            session_id: Selected conversation session ID
            text: Trimmed user input

        Returns:
            Reply text

        Raises:
            TransportError: On network failure, non-2xx status or a body
                that is not JSON
        """
        if not self.url:
            raise TransportError("Reply endpoint is not configured")

        try:
            response = await self.client.post(
                self.url,
                json={"chatInput": text, "sessionId": session_id},
            )
        except httpx.HTTPError as e:
            raise TransportError(f"Reply endpoint unreachable: {e.__class__.__name__}") from e

        if not response.is_success:
            raise TransportError(
                f"Reply endpoint returned {response.status_code}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise TransportError("Reply endpoint returned invalid JSON") from e

        return resolve_reply(payload)
