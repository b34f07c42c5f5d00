"""Tests for the identity session gateway against a fake auth API."""
import httpx
import pytest

from revot.core.exceptions import AuthError
from revot.services.identity_gateway import IdentityGateway

from conftest import AUTH_URL, FakeAuthProvider, run


@pytest.fixture
def events():
    return []


@pytest.fixture
def gateway(auth_provider, events):
    gateway = auth_provider.gateway()
    gateway.on_change(events.append)
    return gateway


def test_no_user_before_sign_in(gateway):
    assert run(gateway.get_current_user()) is None
    assert gateway.current_user is None


def test_sign_in_notifies_once(gateway, events):
    user = run(gateway.sign_in("ana@example.com", "secret123"))

    assert user.id == "user-1"
    assert user.email == "ana@example.com"
    assert events == [user]
    assert run(gateway.get_current_user()) == user


def test_sign_in_sends_api_key(auth_provider):
    seen = []
    original = auth_provider.handler

    def handler(request):
        seen.append(request.headers.get("apikey"))
        return original(request)

    auth_provider.handler = handler
    run(auth_provider.gateway().sign_in("ana@example.com", "secret123"))
    assert seen == ["anon-key"]


def test_invalid_credentials_raise_provider_message(gateway, events):
    with pytest.raises(AuthError) as info:
        run(gateway.sign_in("ana@example.com", "wrong"))

    assert info.value.message == "Invalid login credentials"
    assert events == []
    assert gateway.current_user is None


def test_unreachable_provider_raises_auth_error(auth_provider, gateway):
    auth_provider.offline = True

    with pytest.raises(AuthError):
        run(gateway.sign_in("ana@example.com", "secret123"))


def test_sign_up_signs_in_when_provider_auto_confirms(gateway, events):
    user = run(gateway.sign_up("luis@example.com", "secret456"))

    assert user is not None
    assert events == [user]


def test_sign_up_pending_confirmation_does_not_notify(events):
    provider = FakeAuthProvider(confirm_signups=True)
    gateway = provider.gateway()
    gateway.on_change(events.append)

    assert run(gateway.sign_up("luis@example.com", "secret456")) is None
    assert events == []
    assert gateway.current_user is None


@pytest.mark.parametrize(
    "email, password, message",
    [
        ("ana@example.com", "secret123", "User already registered"),
        ("nuevo@example.com", "123", "Password should be at least 6 characters"),
    ],
)
def test_sign_up_policy_violations(gateway, email, password, message):
    with pytest.raises(AuthError) as info:
        run(gateway.sign_up(email, password))
    assert info.value.message == message


def test_sign_out_notifies_none_once(gateway, events):
    async def scenario():
        await gateway.sign_in("ana@example.com", "secret123")
        await gateway.sign_out()

    run(scenario())
    assert events[-1] is None
    assert events.count(None) == 1
    assert gateway.current_user is None


def test_sign_out_with_revoked_token_still_signs_out(auth_provider, gateway, events):
    async def scenario():
        await gateway.sign_in("ana@example.com", "secret123")
        auth_provider.tokens.clear()
        await gateway.sign_out()

    run(scenario())
    assert gateway.current_user is None
    assert events[-1] is None


def test_sign_out_transport_failure_keeps_session(auth_provider, gateway):
    async def scenario():
        await gateway.sign_in("ana@example.com", "secret123")
        auth_provider.offline = True
        await gateway.sign_out()

    with pytest.raises(AuthError):
        run(scenario())
    assert gateway.current_user is not None


def test_revoked_token_clears_current_user(auth_provider, gateway):
    async def scenario():
        await gateway.sign_in("ana@example.com", "secret123")
        auth_provider.tokens.clear()
        return await gateway.get_current_user()

    assert run(scenario()) is None
    assert gateway.session is None


def test_refresh_notifies_same_user(gateway, events):
    async def scenario():
        first = await gateway.sign_in("ana@example.com", "secret123")
        second = await gateway.refresh()
        return first, second

    first, second = run(scenario())
    assert first == second
    assert events == [first, second]


def test_refused_refresh_signs_out(auth_provider, gateway, events):
    async def scenario():
        await gateway.sign_in("ana@example.com", "secret123")
        auth_provider.tokens.clear()
        await gateway.refresh()

    with pytest.raises(AuthError):
        run(scenario())
    assert gateway.current_user is None
    assert events[-1] is None


def test_unsubscribe_stops_notifications(auth_provider):
    gateway = auth_provider.gateway()
    seen = []

    with gateway.on_change(seen.append) as subscription:
        run(gateway.sign_in("ana@example.com", "secret123"))
    subscription.unsubscribe()
    run(gateway.sign_out())

    assert len(seen) == 1
    assert subscription.active is False


def test_async_callbacks_are_awaited(auth_provider):
    gateway = auth_provider.gateway()
    seen = []

    async def callback(user):
        seen.append(user)

    gateway.on_change(callback)
    run(gateway.sign_in("ana@example.com", "secret123"))
    assert len(seen) == 1


def gateway_answering(auth_provider, path, response):
    """Gateway whose provider answers `path` with a fixed response."""
    def handler(request):
        if request.url.path == path:
            return response
        return auth_provider.handler(request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return IdentityGateway(AUTH_URL, api_key="anon-key", client=client)


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, text="<html>maintenance</html>"),
        httpx.Response(200, json=["x"]),
        httpx.Response(200, json={"access_token": "a", "user": "ana"}),
    ],
)
def test_unreadable_sign_in_body_is_auth_error(auth_provider, response):
    gateway = gateway_answering(auth_provider, "/auth/v1/token", response)
    seen = []
    gateway.on_change(seen.append)

    with pytest.raises(AuthError):
        run(gateway.sign_in("ana@example.com", "secret123"))
    assert gateway.current_user is None
    assert seen == []


@pytest.mark.parametrize(
    "response",
    [httpx.Response(200, text="<html>maintenance</html>"), httpx.Response(200, json=["x"])],
)
def test_unreadable_sign_up_body_is_auth_error(auth_provider, response):
    gateway = gateway_answering(auth_provider, "/auth/v1/signup", response)

    with pytest.raises(AuthError):
        run(gateway.sign_up("new@example.com", "123456"))
    assert gateway.current_user is None


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, text="<html>maintenance</html>"),
        httpx.Response(200, json=["x"]),
        httpx.Response(200, json={"email": "no-id@example.com"}),
    ],
)
def test_unreadable_user_body_keeps_cached_user(auth_provider, response):
    gateway = gateway_answering(auth_provider, "/auth/v1/user", response)

    async def scenario():
        signed_in = await gateway.sign_in("ana@example.com", "secret123")
        return signed_in, await gateway.get_current_user()

    signed_in, current = run(scenario())
    assert current == signed_in
    assert gateway.session is not None


def test_unreadable_refresh_body_is_auth_error(auth_provider):
    def handler(request):
        if request.url.params.get("grant_type") == "refresh_token":
            return httpx.Response(200, text="<html>maintenance</html>")
        return auth_provider.handler(request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    gateway = IdentityGateway(AUTH_URL, api_key="anon-key", client=client)

    async def scenario():
        await gateway.sign_in("ana@example.com", "secret123")
        await gateway.refresh()

    with pytest.raises(AuthError) as info:
        run(scenario())
    assert "invalid JSON" in info.value.message
