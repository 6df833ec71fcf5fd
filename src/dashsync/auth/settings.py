"""OAuth client configuration.

Client identifiers come from the environment (``DASHSYNC_GOOGLE_CLIENT_ID``
and friends, or a ``.env`` file). Client secrets never reach this process;
they stay with the trusted exchange service.
"""

from dataclasses import dataclass
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


@dataclass(frozen=True)
class ProviderClientConfig:
    """Public OAuth client settings for one provider."""

    client_id: str
    redirect_uri: str
    tenant: Optional[str] = None


@dataclass(frozen=True)
class OAuthManagerConfig:
    """Immutable provider configuration handed to the OAuth manager."""

    exchange_service_url: str
    app_origin: str
    google: Optional[ProviderClientConfig] = None
    microsoft: Optional[ProviderClientConfig] = None
    notion: Optional[ProviderClientConfig] = None


class OAuthSettings(BaseSettings):
    """OAuth client ids and redirect URIs read from the environment."""

    model_config = SettingsConfigDict(
        env_prefix="DASHSYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    google_client_id: Optional[str] = None
    google_redirect_uri: Optional[str] = None

    microsoft_client_id: Optional[str] = None
    microsoft_redirect_uri: Optional[str] = None
    microsoft_tenant: str = "common"

    notion_client_id: Optional[str] = None
    notion_redirect_uri: Optional[str] = None

    @field_validator(
        "google_client_id", "microsoft_client_id", "notion_client_id",
        "google_redirect_uri", "microsoft_redirect_uri", "notion_redirect_uri",
    )
    @classmethod
    def blank_to_none(cls, v):
        if v is not None and not v.strip():
            return None
        return v

    @field_validator("microsoft_tenant")
    @classmethod
    def validate_tenant(cls, v):
        if not v or not v.strip():
            return "common"
        return v.strip()

    def to_manager_config(self, exchange_service_url: str, app_origin: str) -> OAuthManagerConfig:
        """Build the immutable manager configuration.

        Providers without a client id are left unconfigured. Redirect URIs
        default to ``<app_origin>/oauth/<provider>/callback``.
        """
        origin = app_origin.rstrip("/")

        def client(name: str, client_id: Optional[str], redirect_uri: Optional[str],
                   tenant: Optional[str] = None) -> Optional[ProviderClientConfig]:
            if not client_id:
                return None
            return ProviderClientConfig(
                client_id=client_id,
                redirect_uri=redirect_uri or f"{origin}/oauth/{name}/callback",
                tenant=tenant,
            )

        return OAuthManagerConfig(
            exchange_service_url=exchange_service_url,
            app_origin=origin,
            google=client("google", self.google_client_id, self.google_redirect_uri),
            microsoft=client(
                "microsoft", self.microsoft_client_id, self.microsoft_redirect_uri,
                tenant=self.microsoft_tenant,
            ),
            notion=client("notion", self.notion_client_id, self.notion_redirect_uri),
        )
