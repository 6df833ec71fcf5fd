"""Shared HTTP plumbing for Google REST APIs."""

import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from ...exceptions import (
    AuthExpiredError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
    RemoteApiError,
    SyncErrorCode,
    TransientNetworkError,
)


logger = logging.getLogger(__name__)

TokenProvider = Callable[[bool], Awaitable[str]]


class GoogleApiClient:
    """Authenticated Google API client.

    Access tokens come from ``token_provider``; after a 401 the token is
    refreshed once and the request retried once.
    """

    BASE_URL = ""
    SERVICE_NAME = "Google API"

    def __init__(self, token_provider: TokenProvider,
                 http_client: Optional[httpx.AsyncClient] = None,
                 timeout: float = 30.0):
        """Initialize the API client.

        Args:
            token_provider: Coroutine returning an access token; called with
                True to force a refresh
            http_client: Optional shared client; one is created when omitted
            timeout: Request timeout in seconds for an owned client
        """
        self.token_provider = token_provider
        self._owns_client = http_client is None
        self.client = http_client or httpx.AsyncClient(timeout=timeout)
        self.logger = logging.getLogger(f"{self.__class__.__module__}.{self.__class__.__name__}")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def _send(self, method: str, url: str, access_token: str,
                    params: Optional[Dict[str, Any]], data: Optional[Dict[str, Any]]) -> httpx.Response:
        headers = {"Authorization": f"Bearer {access_token}"}
        try:
            return await self.client.request(method, url, headers=headers, params=params, json=data)
        except httpx.TimeoutException as e:
            raise TransientNetworkError(
                f"{self.SERVICE_NAME} request timed out",
                code=SyncErrorCode.NETWORK_TIMEOUT,
                original_error=e,
            ) from e
        except httpx.RequestError as e:
            raise TransientNetworkError(f"{self.SERVICE_NAME} request failed: {e}", original_error=e) from e

    def _error_message(self, response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or f"HTTP {response.status_code}"
        error = body.get("error") if isinstance(body, dict) else None
        if isinstance(error, dict):
            return error.get("message") or f"HTTP {response.status_code}"
        return str(error or body)

    async def _make_request(self, method: str, endpoint: str,
                            params: Optional[Dict[str, Any]] = None,
                            data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Make an authenticated request.

        Args:
            method: HTTP method
            endpoint: Path relative to BASE_URL
            params: Query parameters
            data: JSON body

        Returns:
            Decoded JSON body, empty for 204 responses

        Raises:
            AuthExpiredError: If the token is rejected even after a refresh
            NotFoundError: On 404
            PermissionDeniedError: On 403
            RateLimitError: On 429
            TransientNetworkError: On 5xx or transport failures
            RemoteApiError: On any other client error
        """
        url = f"{self.BASE_URL}/{endpoint.lstrip('/')}"
        params = {k: v for k, v in (params or {}).items() if v is not None}

        response = await self._send(method, url, await self.token_provider(False), params, data)
        if response.status_code == 401:
            self.logger.info(f"{self.SERVICE_NAME} rejected the access token, refreshing once")
            response = await self._send(method, url, await self.token_provider(True), params, data)

        status = response.status_code
        if status == 401:
            raise AuthExpiredError(f"{self.SERVICE_NAME} rejected the refreshed access token")
        if status == 403:
            raise PermissionDeniedError(f"{self.SERVICE_NAME} access forbidden: {self._error_message(response)}")
        if status == 404:
            raise NotFoundError(f"{self.SERVICE_NAME} resource not found: {endpoint}")
        if status == 429:
            raise RateLimitError(f"{self.SERVICE_NAME} rate limit exceeded")
        if status >= 500:
            raise TransientNetworkError(
                f"{self.SERVICE_NAME} server error {status}: {self._error_message(response)}",
                code=SyncErrorCode.SERVER_ERROR,
            )
        if status >= 400:
            raise RemoteApiError(
                f"{self.SERVICE_NAME} error {status}: {self._error_message(response)}",
                status_code=status,
            )

        if status == 204 or not response.content:
            return {}
        return response.json()
