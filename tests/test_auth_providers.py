"""Tests for provider authorization URLs and profile lookups."""

from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from dashsync.auth.exchange import ExchangeServiceClient
from dashsync.auth.models import OAuthService
from dashsync.auth.providers import GoogleAuthProvider, MicrosoftAuthProvider, NotionAuthProvider
from dashsync.auth.settings import OAuthSettings, ProviderClientConfig
from dashsync.exceptions import AuthExpiredError, ProviderNotConfiguredError, RefreshNotSupportedError, RemoteApiError

ORIGIN = "http://localhost:5173"


def make_provider(provider_cls, handler=None, tenant=None, launcher=None):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler or (lambda r: httpx.Response(404))))
    return provider_cls(
        ProviderClientConfig(client_id="client-123", redirect_uri=f"{ORIGIN}/oauth/callback", tenant=tenant),
        ExchangeServiceClient("http://exchange.test", http_client=http_client),
        app_origin=ORIGIN,
        launcher=launcher,
        http_client=http_client,
    )


def query_of(url):
    return {k: v[0] for k, v in parse_qs(urlparse(url).query).items()}


class TestAuthorizationUrls:
    """Authorization URL parameters per provider."""

    def test_google_requests_offline_access(self):
        url = make_provider(GoogleAuthProvider).build_auth_url(OAuthService.GOOGLE_TASKS, "state-1")
        params = query_of(url)

        assert url.startswith("https://accounts.google.com/o/oauth2/v2/auth?")
        assert params["client_id"] == "client-123"
        assert params["redirect_uri"] == f"{ORIGIN}/oauth/callback"
        assert params["response_type"] == "code"
        assert params["access_type"] == "offline"
        assert params["prompt"] == "consent"
        assert params["state"] == "state-1"
        assert "https://www.googleapis.com/auth/tasks" in params["scope"].split()
        assert "https://www.googleapis.com/auth/userinfo.email" in params["scope"].split()

    def test_google_calendar_scopes(self):
        url = make_provider(GoogleAuthProvider).build_auth_url(OAuthService.GOOGLE_CALENDAR)
        scopes = query_of(url)["scope"].split()

        assert "https://www.googleapis.com/auth/calendar" in scopes
        assert "https://www.googleapis.com/auth/tasks" not in scopes

    def test_microsoft_uses_tenant_authority(self):
        provider = make_provider(MicrosoftAuthProvider, tenant="contoso.onmicrosoft.com")
        url = provider.build_auth_url(OAuthService.MICROSOFT_CALENDAR, "s")
        params = query_of(url)

        assert url.startswith("https://login.microsoftonline.com/contoso.onmicrosoft.com/oauth2/v2.0/authorize?")
        assert params["response_mode"] == "query"
        assert "offline_access" in params["scope"].split()

    def test_microsoft_defaults_to_common_tenant(self):
        url = make_provider(MicrosoftAuthProvider).build_auth_url(OAuthService.MICROSOFT_CALENDAR)
        assert "/common/oauth2/v2.0/authorize" in url

    def test_notion_asks_for_user_owner(self):
        params = query_of(make_provider(NotionAuthProvider).build_auth_url(OAuthService.NOTION_API))
        assert params["owner"] == "user"
        assert "scope" not in params

    def test_unsupported_service_is_rejected(self):
        with pytest.raises(ValueError):
            make_provider(NotionAuthProvider).build_auth_url(OAuthService.GOOGLE_TASKS)

    async def test_authenticate_requires_launcher(self):
        with pytest.raises(ProviderNotConfiguredError):
            await make_provider(GoogleAuthProvider).authenticate(OAuthService.GOOGLE_TASKS)

    async def test_notion_refresh_is_not_supported(self):
        with pytest.raises(RefreshNotSupportedError):
            await make_provider(NotionAuthProvider).refresh_access_token("anything")


class TestUserInfo:
    """Profile lookups normalize provider payloads."""

    async def test_google_profile(self):
        def handler(request):
            assert request.headers["Authorization"] == "Bearer tok"
            return httpx.Response(200, json={
                "id": 7, "email": "ada@example.com", "name": "Ada", "picture": "http://pic",
            })

        user = await make_provider(GoogleAuthProvider, handler).get_user_info("tok")
        assert (user.id, user.email, user.name, user.picture) == ("7", "ada@example.com", "Ada", "http://pic")

    async def test_microsoft_falls_back_to_principal_name(self):
        def handler(request):
            return httpx.Response(200, json={
                "id": "m1", "mail": None, "userPrincipalName": "ada@contoso.com", "displayName": "Ada L",
            })

        user = await make_provider(MicrosoftAuthProvider, handler).get_user_info("tok")
        assert user.email == "ada@contoso.com"
        assert user.name == "Ada L"

    async def test_notion_profile_sends_version_header(self):
        seen = {}

        def handler(request):
            seen["version"] = request.headers.get("Notion-Version")
            return httpx.Response(200, json={
                "id": "n1", "name": "Ada", "avatar_url": "http://a", "person": {"email": "ada@example.com"},
            })

        user = await make_provider(NotionAuthProvider, handler).get_user_info("tok")
        assert seen["version"] == "2022-06-28"
        assert user.email == "ada@example.com"
        assert user.picture == "http://a"

    async def test_rejected_token(self):
        provider = make_provider(GoogleAuthProvider, lambda r: httpx.Response(401))
        with pytest.raises(AuthExpiredError):
            await provider.get_user_info("tok")

    async def test_server_error(self):
        provider = make_provider(GoogleAuthProvider, lambda r: httpx.Response(503))
        with pytest.raises(RemoteApiError) as exc_info:
            await provider.get_user_info("tok")
        assert exc_info.value.status_code == 503


class TestOAuthSettings:
    """Client configuration from the environment."""

    def test_unset_providers_are_not_configured(self, monkeypatch):
        for name in ("GOOGLE", "MICROSOFT", "NOTION"):
            monkeypatch.delenv(f"DASHSYNC_{name}_CLIENT_ID", raising=False)
        config = OAuthSettings(_env_file=None).to_manager_config("http://exchange.test", ORIGIN)

        assert config.google is None
        assert config.microsoft is None
        assert config.notion is None

    def test_redirect_uri_defaults_from_origin(self, monkeypatch):
        monkeypatch.setenv("DASHSYNC_GOOGLE_CLIENT_ID", "g-client")
        monkeypatch.delenv("DASHSYNC_GOOGLE_REDIRECT_URI", raising=False)
        config = OAuthSettings(_env_file=None).to_manager_config("http://exchange.test", ORIGIN + "/")

        assert config.google.client_id == "g-client"
        assert config.google.redirect_uri == f"{ORIGIN}/oauth/google/callback"

    def test_blank_values_count_as_unset(self, monkeypatch):
        monkeypatch.setenv("DASHSYNC_NOTION_CLIENT_ID", "   ")
        monkeypatch.setenv("DASHSYNC_MICROSOFT_CLIENT_ID", "ms-client")
        monkeypatch.setenv("DASHSYNC_MICROSOFT_TENANT", "")
        config = OAuthSettings(_env_file=None).to_manager_config("http://exchange.test", ORIGIN)

        assert config.notion is None
        assert config.microsoft.tenant == "common"
