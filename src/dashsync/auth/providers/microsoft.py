"""Microsoft identity platform provider (Outlook calendar)."""

from typing import Dict, List

from ..models import OAuthProvider, OAuthService, OAuthUser
from .base import AuthProvider


class MicrosoftAuthProvider(AuthProvider):
    """Microsoft accounts through a tenant-scoped authority.

    Refresh tokens are issued for the ``offline_access`` scope rather than an
    ``access_type`` parameter.
    """

    provider = OAuthProvider.MICROSOFT
    AUTHORITY_TEMPLATE = "https://login.microsoftonline.com/{tenant}/oauth2/v2.0/authorize"
    USERINFO_URL = "https://graph.microsoft.com/v1.0/me"
    SERVICES = (OAuthService.MICROSOFT_CALENDAR,)

    BASE_SCOPES = ["User.Read"]
    SERVICE_SCOPES = {
        OAuthService.MICROSOFT_CALENDAR: ["Calendars.ReadWrite", "offline_access"],
    }

    @property
    def tenant(self) -> str:
        return self.client_config.tenant or "common"

    def authorize_endpoint(self) -> str:
        return self.AUTHORITY_TEMPLATE.format(tenant=self.tenant)

    def scopes_for_service(self, service: OAuthService) -> List[str]:
        return self.BASE_SCOPES + self.SERVICE_SCOPES.get(service, [])

    def extra_auth_params(self, service: OAuthService) -> Dict[str, str]:
        return {"response_mode": "query", "prompt": "consent"}

    async def get_user_info(self, access_token: str) -> OAuthUser:
        data = await self._get_json(self.USERINFO_URL, access_token)
        return OAuthUser(
            id=str(data.get("id", "")),
            email=data.get("mail") or data.get("userPrincipalName") or "",
            name=data.get("displayName"),
        )
