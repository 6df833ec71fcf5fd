"""Client for the trusted token exchange service.

The exchange service holds the OAuth client secrets. It turns authorization
codes into tokens (``POST /api/oauth/exchange``) and renews access tokens
(``POST /api/oauth/refresh``).
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

import httpx

from ..exceptions import (
    ExchangeServiceUnavailableError,
    SessionExpiredError,
    SyncError,
    TransientNetworkError,
    is_reconnect_message,
)
from ..utils.datetime import now_utc, seconds_from_now
from .models import OAuthProvider, OAuthTokens


logger = logging.getLogger(__name__)


class ExchangeServiceClient:
    """HTTP client for the code exchange and refresh endpoints."""

    EXCHANGE_PATH = "/api/oauth/exchange"
    REFRESH_PATH = "/api/oauth/refresh"

    def __init__(self, base_url: str = "http://localhost:3001",
                 http_client: Optional[httpx.AsyncClient] = None,
                 timeout: float = 30.0,
                 clock: Callable[[], datetime] = now_utc):
        """Initialize the exchange client.

        Args:
            base_url: Root URL of the exchange service
            http_client: Optional shared client; one is created when omitted
            timeout: Request timeout in seconds for an owned client
            clock: Source of the current time for computing expiries
        """
        self.base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self.client = http_client or httpx.AsyncClient(timeout=timeout)
        self.clock = clock
        self.logger = logging.getLogger(__name__)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def _post(self, path: str, payload: Dict[str, Any]) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            return await self.client.post(url, json=payload)
        except (httpx.ConnectError, httpx.ConnectTimeout) as e:
            raise ExchangeServiceUnavailableError(
                f"Token exchange service at {self.base_url} is unreachable: {e}",
                original_error=e,
            ) from e
        except httpx.TimeoutException as e:
            raise TransientNetworkError(f"Token exchange service timed out: {e}", original_error=e) from e
        except httpx.RequestError as e:
            raise TransientNetworkError(f"Token exchange request failed: {e}", original_error=e) from e

    @staticmethod
    def _error_body(response: httpx.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {"error": response.text or f"HTTP {response.status_code}"}
        return body if isinstance(body, dict) else {"error": str(body)}

    def _parse_tokens(self, body: Dict[str, Any], previous_refresh_token: Optional[str] = None) -> OAuthTokens:
        access_token = body.get("access_token")
        if not access_token:
            raise SyncError("Token exchange service returned no access token")

        return OAuthTokens(
            access_token=access_token,
            refresh_token=body.get("refresh_token") or previous_refresh_token,
            expires_at=seconds_from_now(body.get("expires_in"), self.clock()),
            token_type=body.get("token_type") or "Bearer",
            scope=body.get("scope"),
        )

    async def exchange_code(self, provider: OAuthProvider, code: str, redirect_uri: str) -> OAuthTokens:
        """Exchange an authorization code for tokens.

        Args:
            provider: Provider that issued the code
            code: Authorization code from the callback
            redirect_uri: Redirect URI used in the authorization request

        Returns:
            Token set with an absolute expiry

        Raises:
            ExchangeServiceUnavailableError: If the service cannot be reached
            SyncError: If the service rejects the exchange
        """
        response = await self._post(self.EXCHANGE_PATH, {
            "code": code,
            "provider": provider.value,
            "redirect_uri": redirect_uri,
        })

        if not response.is_success:
            body = self._error_body(response)
            message = body.get("error_description") or body.get("error") or "Token exchange failed"
            self.logger.error(f"Code exchange for {provider.value} failed with HTTP {response.status_code}")
            raise SyncError(f"Token exchange failed: {message}")

        self.logger.debug(f"Exchanged authorization code for {provider.value}")
        return self._parse_tokens(response.json())

    async def refresh(self, provider: OAuthProvider, refresh_token: str) -> OAuthTokens:
        """Renew an access token.

        Args:
            provider: Provider that issued the refresh token
            refresh_token: Refresh token of the stored connection

        Returns:
            New token set; the old refresh token is kept when none is returned

        Raises:
            SessionExpiredError: If the grant is invalid or expired (HTTP 400/401
                or an ``invalid_grant`` error body)
            ExchangeServiceUnavailableError: If the service cannot be reached
            SyncError: For any other rejection
        """
        response = await self._post(self.REFRESH_PATH, {
            "provider": provider.value,
            "refresh_token": refresh_token,
        })

        if not response.is_success:
            body = self._error_body(response)
            error = str(body.get("error") or "")
            message = body.get("error_description") or error or f"HTTP {response.status_code}"

            if response.status_code in (400, 401) or error == "invalid_grant" or is_reconnect_message(error):
                self.logger.warning(f"Refresh for {provider.value} rejected, session expired")
                raise SessionExpiredError(f"Session expired, please reconnect ({message})")

            self.logger.error(f"Token refresh for {provider.value} failed with HTTP {response.status_code}")
            raise SyncError(f"Token refresh failed: {message}")

        return self._parse_tokens(response.json(), previous_refresh_token=refresh_token)
