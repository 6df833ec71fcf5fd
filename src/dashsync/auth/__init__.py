"""OAuth connection lifecycle: authorization, token storage and refresh."""

from .exchange import ExchangeServiceClient
from .manager import OAuthManager
from .models import OAuthConnection, OAuthProvider, OAuthService, OAuthTokens, OAuthUser
from .session import AuthorizationSession, MessageChannel, PopupHandle, PopupLauncher
from .settings import OAuthManagerConfig, OAuthSettings, ProviderClientConfig
from .token_store import TokenStore

__all__ = [
    "AuthorizationSession",
    "ExchangeServiceClient",
    "MessageChannel",
    "OAuthConnection",
    "OAuthManager",
    "OAuthManagerConfig",
    "OAuthProvider",
    "OAuthService",
    "OAuthSettings",
    "OAuthTokens",
    "OAuthUser",
    "PopupHandle",
    "PopupLauncher",
    "ProviderClientConfig",
    "TokenStore",
]
