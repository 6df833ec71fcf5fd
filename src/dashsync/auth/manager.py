"""OAuth connection manager.

The manager owns the lifecycle of every provider connection: interactive
connect, access token freshness with refresh, and cleanup when a session
can no longer be renewed.
"""

import logging
from datetime import datetime
from typing import Callable, Dict, List, Mapping, Optional

import httpx

from ..exceptions import (
    ExchangeServiceUnavailableError,
    NoConnectionError,
    ProviderNotConfiguredError,
    RefreshTokenMissingError,
    SessionExpiredError,
    SyncError,
    is_reconnect_message,
)
from ..utils.datetime import now_utc
from .exchange import ExchangeServiceClient
from .models import OAuthConnection, OAuthProvider, OAuthService
from .providers import AuthProvider, GoogleAuthProvider, MicrosoftAuthProvider, NotionAuthProvider
from .session import MessageChannel, PopupLauncher
from .settings import OAuthManagerConfig
from .token_store import TokenStore


logger = logging.getLogger(__name__)


class OAuthManager:
    """Connects providers and hands out valid access tokens."""

    def __init__(self, token_store: TokenStore,
                 providers: Mapping[OAuthProvider, AuthProvider],
                 clock: Callable[[], datetime] = now_utc):
        """Initialize the manager.

        Args:
            token_store: Persistence for connections
            providers: Configured authentication providers by key
            clock: Source of the current time
        """
        self.token_store = token_store
        self.providers: Dict[OAuthProvider, AuthProvider] = dict(providers)
        self.clock = clock
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_config(cls, config: OAuthManagerConfig, token_store: TokenStore,
                    exchange_client: Optional[ExchangeServiceClient] = None,
                    launcher: Optional[PopupLauncher] = None,
                    channel: Optional[MessageChannel] = None,
                    http_client: Optional[httpx.AsyncClient] = None) -> "OAuthManager":
        """Build a manager with every provider that has a client id."""
        exchange_client = exchange_client or ExchangeServiceClient(config.exchange_service_url)
        channel = channel or MessageChannel()
        provider_classes = (
            (config.google, GoogleAuthProvider),
            (config.microsoft, MicrosoftAuthProvider),
            (config.notion, NotionAuthProvider),
        )

        providers: Dict[OAuthProvider, AuthProvider] = {}
        for client_config, provider_cls in provider_classes:
            if client_config is None:
                continue
            providers[provider_cls.provider] = provider_cls(
                client_config,
                exchange_client,
                app_origin=config.app_origin,
                launcher=launcher,
                channel=channel,
                http_client=http_client,
            )

        return cls(token_store, providers, clock=token_store.clock)

    def configured_providers(self) -> List[OAuthProvider]:
        return list(self.providers)

    def _get_provider(self, provider: OAuthProvider) -> AuthProvider:
        auth_provider = self.providers.get(provider)
        if auth_provider is None:
            raise ProviderNotConfiguredError(f"Provider {provider.value} is not configured")
        return auth_provider

    async def connect(self, provider: OAuthProvider, service: OAuthService) -> OAuthConnection:
        """Run the interactive flow and store the resulting connection.

        The profile lookup is best effort; a failure leaves ``user`` empty
        but the connection is still saved.

        Args:
            provider: Provider to connect
            service: Service whose scopes are requested

        Returns:
            The saved connection

        Raises:
            ProviderNotConfiguredError: If no AuthProvider is set up for ``provider``
            ValueError: If ``service`` belongs to another provider
        """
        auth_provider = self._get_provider(provider)
        if service.provider != provider:
            raise ValueError(f"Service {service.value} is not provided by {provider.value}")

        tokens = await auth_provider.authenticate(service)

        user = None
        try:
            user = await auth_provider.get_user_info(tokens.access_token)
        except (SyncError, httpx.HTTPError, ValueError) as e:
            self.logger.warning(f"Could not fetch {provider.value} user profile: {e}")

        connection = OAuthConnection(
            provider=provider,
            tokens=tokens,
            user=user,
            connected_at=self.clock(),
        )
        self.token_store.save_connection(connection)
        self.logger.info(f"Connected {provider.value}" + (f" as {user.email}" if user and user.email else ""))
        return connection

    def disconnect(self, provider: OAuthProvider) -> None:
        """Forget the connection for ``provider``; idempotent."""
        self.token_store.remove_connection(provider)
        self.logger.info(f"Disconnected {provider.value}")

    def is_connected(self, provider: OAuthProvider) -> bool:
        return self.token_store.get_connection(provider) is not None

    def get_connection(self, provider: OAuthProvider) -> Optional[OAuthConnection]:
        return self.token_store.get_connection(provider)

    def get_all_connections(self) -> List[OAuthConnection]:
        return self.token_store.get_all_connections()

    def touch_last_sync(self, provider: OAuthProvider) -> None:
        self.token_store.touch_last_sync(provider)

    async def get_valid_access_token(self, provider: OAuthProvider, force_refresh: bool = False) -> str:
        """Return an access token that is valid for at least five more minutes.

        A token that is not about to expire is returned without any network
        call. Otherwise the token is refreshed once and the new tokens are
        persisted before being returned.

        Args:
            provider: Provider whose token is requested
            force_refresh: Refresh even if the stored token looks valid, used
                after the provider rejected it

        Returns:
            Access token

        Raises:
            NoConnectionError: If the provider is not connected
            RefreshTokenMissingError: If the token expired and cannot be refreshed
            SessionExpiredError: If the refresh grant is no longer valid; the
                stored connection is removed
            ExchangeServiceUnavailableError: If the exchange service is down;
                the connection is kept
        """
        connection = self.token_store.get_connection(provider)
        if connection is None:
            raise NoConnectionError(f"No connection found for {provider.value}")

        if not force_refresh and not self.token_store.is_token_expired(connection, self.clock()):
            return connection.tokens.access_token

        if not connection.tokens.refresh_token:
            raise RefreshTokenMissingError(
                f"Access token for {provider.value} expired and no refresh token is available"
            )

        auth_provider = self._get_provider(provider)
        try:
            tokens = await auth_provider.refresh_access_token(connection.tokens.refresh_token)
        except SessionExpiredError:
            self.logger.warning(f"Session for {provider.value} expired, removing stored connection")
            self.token_store.remove_connection(provider)
            raise
        except SyncError as e:
            if isinstance(e, ExchangeServiceUnavailableError) or not is_reconnect_message(str(e)):
                raise
            self.logger.warning(f"Refresh for {provider.value} requires reconnecting, removing stored connection")
            self.token_store.remove_connection(provider)
            raise SessionExpiredError(f"Session expired, please reconnect ({e})", original_error=e) from e

        updated = self.token_store.update_tokens(provider, tokens)
        self.logger.info(f"Refreshed access token for {provider.value}")
        return updated.tokens.access_token
