"""Tests for connecting providers and handing out valid access tokens."""

import asyncio
import json
from datetime import timedelta
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from dashsync.auth.exchange import ExchangeServiceClient
from dashsync.auth.manager import OAuthManager
from dashsync.auth.models import OAuthConnection, OAuthProvider, OAuthService, OAuthTokens
from dashsync.auth.session import OAUTH_SUCCESS, AuthMessage, MessageChannel, PopupHandle, PopupLauncher
from dashsync.auth.settings import OAuthManagerConfig, ProviderClientConfig
from dashsync.exceptions import (
    ExchangeServiceUnavailableError,
    NoConnectionError,
    ProviderNotConfiguredError,
    RefreshTokenMissingError,
    SessionExpiredError,
    SyncError,
)

ORIGIN = "http://localhost:5173"


class FakeBackend:
    """Exchange service and Google profile endpoint behind one MockTransport."""

    def __init__(self):
        self.exchange_calls = []
        self.refresh_calls = []
        self.refresh_response = httpx.Response(200, json={"access_token": "access-2", "expires_in": 3600})
        self.profile_response = httpx.Response(200, json={"id": "1", "email": "ada@example.com", "name": "Ada"})
        self.exchange_down = False

    def handler(self, request):
        if request.url.host == "exchange.test":
            if self.exchange_down:
                raise httpx.ConnectError("connection refused", request=request)
            body = json.loads(request.content)
            if request.url.path == "/api/oauth/exchange":
                self.exchange_calls.append(body)
                return httpx.Response(200, json={
                    "access_token": "access-1", "refresh_token": "refresh-1", "expires_in": 3600,
                })
            self.refresh_calls.append(body)
            return self.refresh_response
        return self.profile_response


class ApprovingPopup(PopupHandle):
    def __init__(self):
        self._closed = False

    @property
    def closed(self):
        return self._closed

    def close(self):
        self._closed = True


class ApprovingLauncher(PopupLauncher):
    """Launcher whose user approves immediately, echoing the request state."""

    def __init__(self):
        self.urls = []

    def open(self, url, channel):
        self.urls.append(url)
        state = parse_qs(urlparse(url).query)["state"][0]
        message = AuthMessage(type=OAUTH_SUCCESS, code="auth-code", state=state)
        asyncio.get_running_loop().create_task(channel.post(message, ORIGIN))
        return ApprovingPopup()


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def manager(backend, token_store, clock):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(backend.handler))
    config = OAuthManagerConfig(
        exchange_service_url="http://exchange.test",
        app_origin=ORIGIN,
        google=ProviderClientConfig(client_id="g-client", redirect_uri=f"{ORIGIN}/oauth/google/callback"),
    )
    return OAuthManager.from_config(
        config,
        token_store,
        exchange_client=ExchangeServiceClient("http://exchange.test", http_client=http_client, clock=clock),
        launcher=ApprovingLauncher(),
        channel=MessageChannel(),
        http_client=http_client,
    )


class TestConnect:
    """The interactive connect flow."""

    async def test_connect_stores_tokens_and_profile(self, manager, backend, clock):
        connection = await manager.connect(OAuthProvider.GOOGLE, OAuthService.GOOGLE_TASKS)

        assert connection.tokens.access_token == "access-1"
        assert connection.tokens.expires_at == clock() + timedelta(hours=1)
        assert connection.user.email == "ada@example.com"
        assert connection.connected_at == clock()
        assert manager.is_connected(OAuthProvider.GOOGLE)
        assert backend.exchange_calls == [{
            "code": "auth-code",
            "provider": "google",
            "redirect_uri": f"{ORIGIN}/oauth/google/callback",
        }]

    async def test_profile_failure_is_not_fatal(self, manager, backend):
        backend.profile_response = httpx.Response(500)

        connection = await manager.connect(OAuthProvider.GOOGLE, OAuthService.GOOGLE_CALENDAR)

        assert connection.user is None
        assert manager.is_connected(OAuthProvider.GOOGLE)

    async def test_unconfigured_provider(self, manager):
        with pytest.raises(ProviderNotConfiguredError):
            await manager.connect(OAuthProvider.NOTION, OAuthService.NOTION_API)

    async def test_service_of_other_provider(self, manager):
        with pytest.raises(ValueError):
            await manager.connect(OAuthProvider.GOOGLE, OAuthService.MICROSOFT_CALENDAR)

    def test_only_configured_providers_are_registered(self, manager):
        assert manager.configured_providers() == [OAuthProvider.GOOGLE]

    async def test_disconnect(self, manager, token_store, google_connection):
        token_store.save_connection(google_connection)
        manager.disconnect(OAuthProvider.GOOGLE)
        manager.disconnect(OAuthProvider.GOOGLE)

        assert not manager.is_connected(OAuthProvider.GOOGLE)
        assert manager.get_all_connections() == []


class TestGetValidAccessToken:
    """Token freshness and refresh handling."""

    async def test_fresh_token_needs_no_network(self, manager, backend, token_store, google_connection):
        token_store.save_connection(google_connection)

        token = await manager.get_valid_access_token(OAuthProvider.GOOGLE)

        assert token == "access-1"
        assert backend.refresh_calls == []

    async def test_expiring_token_is_refreshed_once_and_persisted(
            self, manager, backend, token_store, google_connection, clock):
        google_connection.tokens.expires_at = clock() + timedelta(minutes=2)
        token_store.save_connection(google_connection)

        token = await manager.get_valid_access_token(OAuthProvider.GOOGLE)

        assert token == "access-2"
        assert backend.refresh_calls == [{"provider": "google", "refresh_token": "refresh-1"}]
        stored = token_store.get_connection(OAuthProvider.GOOGLE)
        assert stored.tokens.access_token == "access-2"
        assert stored.tokens.refresh_token == "refresh-1"
        assert stored.tokens.expires_at == clock() + timedelta(hours=1)

        # The refreshed token is now fresh
        assert await manager.get_valid_access_token(OAuthProvider.GOOGLE) == "access-2"
        assert len(backend.refresh_calls) == 1

    async def test_forced_refresh(self, manager, backend, token_store, google_connection):
        token_store.save_connection(google_connection)

        token = await manager.get_valid_access_token(OAuthProvider.GOOGLE, force_refresh=True)

        assert token == "access-2"
        assert len(backend.refresh_calls) == 1

    async def test_not_connected(self, manager):
        with pytest.raises(NoConnectionError):
            await manager.get_valid_access_token(OAuthProvider.GOOGLE)

    async def test_expired_without_refresh_token(self, manager, token_store, clock):
        token_store.save_connection(OAuthConnection(
            provider=OAuthProvider.GOOGLE,
            tokens=OAuthTokens(access_token="old", expires_at=clock() - timedelta(minutes=1)),
        ))

        with pytest.raises(RefreshTokenMissingError):
            await manager.get_valid_access_token(OAuthProvider.GOOGLE)
        assert manager.is_connected(OAuthProvider.GOOGLE)

    async def test_invalid_grant_removes_connection(self, manager, backend, token_store, google_connection, clock):
        google_connection.tokens.expires_at = clock() - timedelta(minutes=1)
        token_store.save_connection(google_connection)
        backend.refresh_response = httpx.Response(400, json={"error": "invalid_grant"})

        with pytest.raises(SessionExpiredError):
            await manager.get_valid_access_token(OAuthProvider.GOOGLE)
        assert not manager.is_connected(OAuthProvider.GOOGLE)

    async def test_reconnect_message_removes_connection(self, manager, backend, token_store, google_connection, clock):
        google_connection.tokens.expires_at = clock() - timedelta(minutes=1)
        token_store.save_connection(google_connection)
        backend.refresh_response = httpx.Response(500, json={"error": "Token has been expired or revoked."})

        with pytest.raises(SessionExpiredError):
            await manager.get_valid_access_token(OAuthProvider.GOOGLE)
        assert not manager.is_connected(OAuthProvider.GOOGLE)

    async def test_other_refresh_failure_keeps_connection(self, manager, backend, token_store, google_connection, clock):
        google_connection.tokens.expires_at = clock() - timedelta(minutes=1)
        token_store.save_connection(google_connection)
        backend.refresh_response = httpx.Response(502, text="bad gateway")

        with pytest.raises(SyncError) as exc_info:
            await manager.get_valid_access_token(OAuthProvider.GOOGLE)
        assert not isinstance(exc_info.value, SessionExpiredError)
        assert manager.is_connected(OAuthProvider.GOOGLE)

    async def test_exchange_outage_keeps_connection(self, manager, backend, token_store, google_connection, clock):
        google_connection.tokens.expires_at = clock() - timedelta(minutes=1)
        token_store.save_connection(google_connection)
        backend.exchange_down = True

        with pytest.raises(ExchangeServiceUnavailableError):
            await manager.get_valid_access_token(OAuthProvider.GOOGLE)
        assert manager.is_connected(OAuthProvider.GOOGLE)
