import base64
import hashlib
from unittest.mock import AsyncMock
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from bob_python_backend.errors import ConfigurationError, StateError, TransportError, ValidationError
from bob_python_backend.services.kv_store import InMemoryStore
from bob_python_backend.services.oauth_service import (
    ACCESS_TOKEN_KEY,
    OAuthExchanger,
    code_challenge_for,
    generate_code_verifier,
    state_key,
)

TOKEN_URL = "https://api.twitter.com/2/oauth2/token"


def _exchanger(store, transport, clock, client_secret="secret"):
    return OAuthExchanger(
        store,
        client_id="client-id",
        client_secret=client_secret,
        redirect_uri="http://localhost:3000/callback",
        scopes="tweet.read users.read offline.access",
        authorize_url="https://twitter.com/i/oauth2/authorize",
        token_url=TOKEN_URL,
        http_client=transport.client(),
        clock=clock,
    )


def _token_reply(request):
    return httpx.Response(
        200,
        json={"access_token": "at-1", "refresh_token": "rt-1", "expires_in": 7200, "token_type": "bearer"},
    )


def test_code_verifier_is_long_enough():
    assert len(generate_code_verifier()) >= 43


def test_code_challenge_is_unpadded_sha256():
    verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
    expected = base64.urlsafe_b64encode(hashlib.sha256(verifier.encode()).digest()).decode().rstrip("=")
    assert code_challenge_for(verifier) == expected
    assert code_challenge_for(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"


@pytest.mark.asyncio
async def test_start_authorization_builds_url_and_stores_state(recording_transport, clock):
    store = InMemoryStore(clock=clock)
    exchanger = _exchanger(store, recording_transport(_token_reply), clock)

    request = await exchanger.start_authorization()

    query = parse_qs(urlparse(request.url).query)
    assert request.url.startswith("https://twitter.com/i/oauth2/authorize?")
    assert query["response_type"] == ["code"]
    assert query["client_id"] == ["client-id"]
    assert query["state"] == [request.state]
    assert query["code_challenge_method"] == ["S256"]
    assert query["scope"] == ["tweet.read users.read offline.access"]

    record = await store.get(state_key(request.state))
    assert record["expires_at"] == clock.now + 600
    assert query["code_challenge"] == [code_challenge_for(record["code_verifier"])]


@pytest.mark.asyncio
async def test_start_authorization_purges_abandoned_states(recording_transport, clock):
    store = InMemoryStore(clock=clock)
    exchanger = _exchanger(store, recording_transport(_token_reply), clock)
    abandoned = [(await exchanger.start_authorization()).state for _ in range(3)]
    clock.advance(601)
    store.purge_expired = AsyncMock(wraps=store.purge_expired)

    fresh = await exchanger.start_authorization()

    store.purge_expired.assert_awaited_once()
    assert len(store) == 1
    for state in abandoned:
        assert await store.get(state_key(state)) is None
    assert await store.get(state_key(fresh.state)) is not None


@pytest.mark.asyncio
async def test_start_authorization_requires_client_id(recording_transport, clock):
    exchanger = _exchanger(InMemoryStore(clock=clock), recording_transport(_token_reply), clock)
    exchanger.client_id = ""

    with pytest.raises(ConfigurationError):
        await exchanger.start_authorization()


@pytest.mark.asyncio
async def test_exchange_code_sends_verifier_and_stores_tokens(recording_transport, clock):
    store = InMemoryStore(clock=clock)
    transport = recording_transport(_token_reply)
    exchanger = _exchanger(store, transport, clock)
    request = await exchanger.start_authorization()
    verifier = (await store.get(state_key(request.state)))["code_verifier"]

    tokens = await exchanger.exchange_code("the-code", request.state)

    assert tokens.access_token == "at-1"
    assert tokens.refresh_token == "rt-1"
    assert tokens.expires_in == 7200

    sent = transport.requests[0]
    assert str(sent.url) == TOKEN_URL
    assert sent.headers["Authorization"].startswith("Basic ")
    form = parse_qs(sent.content.decode())
    assert form["grant_type"] == ["authorization_code"]
    assert form["code"] == ["the-code"]
    assert form["code_verifier"] == [verifier]

    stored = await store.get(ACCESS_TOKEN_KEY)
    assert stored["access_token"] == "at-1"
    assert stored["expires_at"] == clock.now + 7200


@pytest.mark.asyncio
async def test_public_client_sends_no_basic_auth(recording_transport, clock):
    store = InMemoryStore(clock=clock)
    transport = recording_transport(_token_reply)
    exchanger = _exchanger(store, transport, clock, client_secret="")
    request = await exchanger.start_authorization()

    await exchanger.exchange_code("the-code", request.state)

    assert "Authorization" not in transport.requests[0].headers


@pytest.mark.asyncio
@pytest.mark.parametrize("code,state", [("", "s"), ("c", ""), (None, None)])
async def test_exchange_code_requires_both_parameters(recording_transport, clock, code, state):
    transport = recording_transport(_token_reply)
    exchanger = _exchanger(InMemoryStore(clock=clock), transport, clock)

    with pytest.raises(ValidationError) as exc_info:
        await exchanger.exchange_code(code, state)
    assert exc_info.value.error == "Missing parameters"
    assert transport.requests == []


@pytest.mark.asyncio
async def test_unknown_state_is_rejected_before_token_request(recording_transport, clock):
    transport = recording_transport(_token_reply)
    exchanger = _exchanger(InMemoryStore(clock=clock), transport, clock)

    with pytest.raises(StateError) as exc_info:
        await exchanger.exchange_code("the-code", "forged-state")

    assert exc_info.value.status_code == 400
    assert transport.requests == []


@pytest.mark.asyncio
async def test_state_cannot_be_replayed(recording_transport, clock):
    transport = recording_transport(_token_reply)
    exchanger = _exchanger(InMemoryStore(clock=clock), transport, clock)
    request = await exchanger.start_authorization()
    await exchanger.exchange_code("the-code", request.state)

    with pytest.raises(StateError):
        await exchanger.exchange_code("the-code", request.state)
    assert len(transport.requests) == 1


@pytest.mark.asyncio
async def test_expired_state_is_rejected(recording_transport, clock):
    transport = recording_transport(_token_reply)
    exchanger = _exchanger(InMemoryStore(clock=clock), transport, clock)
    request = await exchanger.start_authorization()
    clock.advance(601)

    with pytest.raises(StateError):
        await exchanger.exchange_code("the-code", request.state)
    assert transport.requests == []


@pytest.mark.asyncio
async def test_token_endpoint_error_is_transport_error(recording_transport, clock):
    transport = recording_transport(
        lambda request: httpx.Response(400, json={"error": "invalid_grant", "error_description": "Value passed was invalid"})
    )
    exchanger = _exchanger(InMemoryStore(clock=clock), transport, clock)
    request = await exchanger.start_authorization()

    with pytest.raises(TransportError) as exc_info:
        await exchanger.exchange_code("bad-code", request.state)

    assert exc_info.value.error == "Failed to exchange token"
    assert exc_info.value.upstream_status == 400
    assert "Value passed was invalid" in exc_info.value.details


@pytest.mark.asyncio
async def test_refresh_replaces_access_token_and_keeps_refresh_token(recording_transport, clock):
    store = InMemoryStore(clock=clock)
    await store.set(ACCESS_TOKEN_KEY, {"access_token": "old", "refresh_token": "rt-old", "expires_at": clock.now})
    transport = recording_transport(lambda request: httpx.Response(200, json={"access_token": "new", "expires_in": 60}))
    exchanger = _exchanger(store, transport, clock)

    assert await exchanger.refresh() == "new"

    form = parse_qs(transport.requests[0].content.decode())
    assert form["grant_type"] == ["refresh_token"]
    assert form["refresh_token"] == ["rt-old"]
    current = await exchanger.current_token()
    assert current.access_token == "new"
    assert current.refresh_token == "rt-old"
    assert current.expires_at == clock.now + 60


@pytest.mark.asyncio
async def test_failed_refresh_leaves_stored_token_untouched(recording_transport, clock):
    store = InMemoryStore(clock=clock)
    original = {"access_token": "old", "refresh_token": "rt-old", "expires_at": clock.now + 10}
    await store.set(ACCESS_TOKEN_KEY, original)
    transport = recording_transport(lambda request: httpx.Response(401, json={"error": "invalid_request"}))
    exchanger = _exchanger(store, transport, clock)

    with pytest.raises(TransportError):
        await exchanger.refresh()

    assert await store.get(ACCESS_TOKEN_KEY) == original


@pytest.mark.asyncio
async def test_refresh_without_stored_refresh_token(recording_transport, clock):
    transport = recording_transport(_token_reply)
    exchanger = _exchanger(InMemoryStore(clock=clock), transport, clock)

    with pytest.raises(StateError) as exc_info:
        await exchanger.refresh()

    assert exc_info.value.error == "No refresh token"
    assert transport.requests == []
