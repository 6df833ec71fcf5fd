"""Notion public integration provider."""

from typing import Dict, List

from ...exceptions import RefreshNotSupportedError
from ..models import OAuthProvider, OAuthService, OAuthTokens, OAuthUser
from .base import AuthProvider


NOTION_VERSION = "2022-06-28"


class NotionAuthProvider(AuthProvider):
    """Notion workspaces.

    Notion access tokens carry no expiry and there is no refresh grant.
    """

    provider = OAuthProvider.NOTION
    AUTHORIZE_URL = "https://api.notion.com/v1/oauth/authorize"
    USERINFO_URL = "https://api.notion.com/v1/users/me"
    SERVICES = (OAuthService.NOTION_API,)

    def scopes_for_service(self, service: OAuthService) -> List[str]:
        # Capabilities are chosen when the integration is created
        return []

    def extra_auth_params(self, service: OAuthService) -> Dict[str, str]:
        return {"owner": "user"}

    async def refresh_access_token(self, refresh_token: str) -> OAuthTokens:
        raise RefreshNotSupportedError("Notion does not support token refresh; reconnect instead")

    async def get_user_info(self, access_token: str) -> OAuthUser:
        data = await self._get_json(self.USERINFO_URL, access_token, headers={"Notion-Version": NOTION_VERSION})
        person = data.get("person") or {}
        return OAuthUser(
            id=str(data.get("id", "")),
            email=person.get("email", ""),
            name=data.get("name"),
            picture=data.get("avatar_url"),
        )
