"""Base class for OAuth authentication providers."""

import logging
import secrets
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import httpx

from ...exceptions import (
    AuthExpiredError,
    ProviderNotConfiguredError,
    RemoteApiError,
    TransientNetworkError,
)
from ..exchange import ExchangeServiceClient
from ..models import OAuthProvider, OAuthService, OAuthTokens, OAuthUser
from ..session import (
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_TIMEOUT_SECONDS,
    AuthorizationSession,
    MessageChannel,
    PopupLauncher,
)
from ..settings import ProviderClientConfig


logger = logging.getLogger(__name__)


class AuthProvider(ABC):
    """Drives the authorization code flow for one provider.

    Subclasses describe the provider: its authorization endpoint, the scopes
    each service needs, extra query parameters and how to read the user
    profile. Code exchange and refresh always go through the trusted
    exchange service.
    """

    provider: OAuthProvider
    AUTHORIZE_URL: str = ""
    SERVICES: tuple = ()

    def __init__(self, client_config: ProviderClientConfig,
                 exchange_client: ExchangeServiceClient,
                 app_origin: str,
                 launcher: Optional[PopupLauncher] = None,
                 channel: Optional[MessageChannel] = None,
                 http_client: Optional[httpx.AsyncClient] = None,
                 auth_timeout: float = DEFAULT_TIMEOUT_SECONDS,
                 poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS):
        """Initialize the provider.

        Args:
            client_config: Public client id and redirect URI
            exchange_client: Client for the trusted exchange service
            app_origin: Origin the callback page posts from
            launcher: Opens authorization windows; required for authenticate()
            channel: Channel the callback page reports on
            http_client: Optional client used for profile requests
            auth_timeout: Seconds before an authorization attempt expires
            poll_interval: Seconds between closed-window checks
        """
        self.client_config = client_config
        self.exchange_client = exchange_client
        self.app_origin = app_origin
        self.launcher = launcher
        self.channel = channel or MessageChannel()
        self.http_client = http_client
        self.auth_timeout = auth_timeout
        self.poll_interval = poll_interval
        self.logger = logging.getLogger(f"{self.__class__.__module__}.{self.__class__.__name__}")

    @property
    def redirect_uri(self) -> str:
        return self.client_config.redirect_uri

    def supports(self, service: OAuthService) -> bool:
        return service in self.SERVICES

    @abstractmethod
    def scopes_for_service(self, service: OAuthService) -> List[str]:
        """Return the OAuth scopes needed for ``service``."""
        pass

    def extra_auth_params(self, service: OAuthService) -> Dict[str, str]:
        """Provider-specific query parameters for the authorization URL."""
        return {}

    def authorize_endpoint(self) -> str:
        return self.AUTHORIZE_URL

    def build_auth_url(self, service: OAuthService, state: Optional[str] = None) -> str:
        """Build the authorization URL for ``service``.

        Raises:
            ValueError: If the provider does not serve ``service``
        """
        if not self.supports(service):
            raise ValueError(f"{self.provider.value} does not provide {service.value}")

        params = {
            "client_id": self.client_config.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
        }
        scopes = self.scopes_for_service(service)
        if scopes:
            params["scope"] = " ".join(scopes)
        params.update(self.extra_auth_params(service))
        if state:
            params["state"] = state

        return f"{self.authorize_endpoint()}?{urlencode(params)}"

    async def authenticate(self, service: OAuthService) -> OAuthTokens:
        """Run the interactive consent flow and return the issued tokens.

        Raises:
            ProviderNotConfiguredError: If no popup launcher is available
            PopupBlockedError: If the window could not be opened
            AuthorizationDeniedError: If the provider reported an error
            UserCancelledError: If the user closed the window
            AuthExpiredError: If the flow timed out
        """
        if self.launcher is None:
            raise ProviderNotConfiguredError(
                f"No authorization window launcher configured for {self.provider.value}"
            )

        state = secrets.token_urlsafe(16)
        url = self.build_auth_url(service, state)
        session = AuthorizationSession(
            self.channel,
            expected_origin=self.app_origin,
            on_code=self.exchange_code,
            expected_state=state,
            timeout=self.auth_timeout,
            poll_interval=self.poll_interval,
        )

        self.logger.info(f"Starting authorization for {service.value}")
        tokens = await session.run(lambda: self.launcher.open(url, self.channel))
        self.logger.info(f"Authorization for {service.value} completed")
        return tokens

    async def exchange_code(self, code: str) -> OAuthTokens:
        return await self.exchange_client.exchange_code(self.provider, code, self.redirect_uri)

    async def refresh_access_token(self, refresh_token: str) -> OAuthTokens:
        return await self.exchange_client.refresh(self.provider, refresh_token)

    @abstractmethod
    async def get_user_info(self, access_token: str) -> OAuthUser:
        """Fetch the profile of the account behind ``access_token``."""
        pass

    async def _get_json(self, url: str, access_token: str,
                        headers: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        request_headers = {"Authorization": f"Bearer {access_token}"}
        request_headers.update(headers or {})

        try:
            if self.http_client is not None:
                response = await self.http_client.get(url, headers=request_headers)
            else:
                async with httpx.AsyncClient(timeout=30.0) as client:
                    response = await client.get(url, headers=request_headers)
        except httpx.RequestError as e:
            raise TransientNetworkError(f"Profile request failed: {e}", original_error=e) from e

        if response.status_code == 401:
            raise AuthExpiredError(f"{self.provider.value} rejected the access token")
        if not response.is_success:
            raise RemoteApiError(
                f"Failed to fetch {self.provider.value} user info: HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return response.json()
