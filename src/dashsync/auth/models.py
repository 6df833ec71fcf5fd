"""Data models for OAuth connections."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from ..utils.datetime import now_utc, parse_iso_datetime, to_iso_string


class OAuthProvider(Enum):
    """Providers that require delegated access."""
    GOOGLE = "google"
    MICROSOFT = "microsoft"
    NOTION = "notion"


class OAuthService(Enum):
    """Service scopes a connection can be requested for."""
    GOOGLE_CALENDAR = "google-calendar"
    GOOGLE_TASKS = "google-tasks"
    MICROSOFT_CALENDAR = "microsoft-calendar"
    NOTION_API = "notion-api"

    @property
    def provider(self) -> OAuthProvider:
        """Provider that serves this scope set."""
        return OAuthProvider(self.value.split("-", 1)[0])


@dataclass
class OAuthTokens:
    """Token set issued by a provider."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    token_type: str = "Bearer"
    scope: Optional[str] = None

    def merged_with(self, update: "OAuthTokens") -> "OAuthTokens":
        """Return a copy with every non-empty field of ``update`` applied."""
        changes = {
            name: getattr(update, name)
            for name in ("access_token", "refresh_token", "expires_at", "token_type", "scope")
            if getattr(update, name) is not None
        }
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": to_iso_string(self.expires_at),
            "token_type": self.token_type,
            "scope": self.scope,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OAuthTokens":
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires_at=parse_iso_datetime(data.get("expires_at")),
            token_type=data.get("token_type") or "Bearer",
            scope=data.get("scope"),
        )


@dataclass
class OAuthUser:
    """Profile of the account behind a connection."""

    id: str
    email: str
    name: Optional[str] = None
    picture: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "email": self.email, "name": self.name, "picture": self.picture}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OAuthUser":
        return cls(
            id=str(data.get("id", "")),
            email=data.get("email", ""),
            name=data.get("name"),
            picture=data.get("picture"),
        )


@dataclass
class OAuthConnection:
    """Persisted credential and profile record for one provider."""

    provider: OAuthProvider
    tokens: OAuthTokens
    user: Optional[OAuthUser] = None
    connected_at: datetime = field(default_factory=now_utc)
    last_sync_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "provider": self.provider.value,
            "tokens": self.tokens.to_dict(),
            "user": self.user.to_dict() if self.user else None,
            "connected_at": to_iso_string(self.connected_at),
            "last_sync_at": to_iso_string(self.last_sync_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OAuthConnection":
        """Create from dictionary representation."""
        return cls(
            provider=OAuthProvider(data["provider"]),
            tokens=OAuthTokens.from_dict(data["tokens"]),
            user=OAuthUser.from_dict(data["user"]) if data.get("user") else None,
            connected_at=parse_iso_datetime(data.get("connected_at")) or now_utc(),
            last_sync_at=parse_iso_datetime(data.get("last_sync_at")),
        )
