"""Google OAuth provider (Calendar and Tasks)."""

from typing import Dict, List

from ..models import OAuthProvider, OAuthService, OAuthUser
from .base import AuthProvider


class GoogleAuthProvider(AuthProvider):
    """Google accounts, requesting offline access so a refresh token is issued."""

    provider = OAuthProvider.GOOGLE
    AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
    SERVICES = (OAuthService.GOOGLE_CALENDAR, OAuthService.GOOGLE_TASKS)

    BASE_SCOPES = ["https://www.googleapis.com/auth/userinfo.email"]
    SERVICE_SCOPES = {
        OAuthService.GOOGLE_CALENDAR: [
            "https://www.googleapis.com/auth/calendar",
            "https://www.googleapis.com/auth/calendar.events",
        ],
        OAuthService.GOOGLE_TASKS: [
            "https://www.googleapis.com/auth/tasks",
        ],
    }

    def scopes_for_service(self, service: OAuthService) -> List[str]:
        return self.BASE_SCOPES + self.SERVICE_SCOPES.get(service, [])

    def extra_auth_params(self, service: OAuthService) -> Dict[str, str]:
        return {"access_type": "offline", "prompt": "consent"}

    async def get_user_info(self, access_token: str) -> OAuthUser:
        data = await self._get_json(self.USERINFO_URL, access_token)
        return OAuthUser(
            id=str(data.get("id", "")),
            email=data.get("email", ""),
            name=data.get("name"),
            picture=data.get("picture"),
        )
