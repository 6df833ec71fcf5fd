"""Interactive authorization session.

An authorization window reports back through a :class:`MessageChannel` with
one of two messages, ``OAUTH_SUCCESS {code, state}`` or
``OAUTH_ERROR {error, errorDescription}``. :class:`AuthorizationSession`
turns that out-of-band exchange into a single awaitable with three guards:
an origin and state check on incoming messages, detection of the window
being closed early, and a wall-clock timeout. Whichever path settles the
session first retires all of them.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from ..exceptions import AuthExpiredError, AuthorizationDeniedError, PopupBlockedError, UserCancelledError


logger = logging.getLogger(__name__)

OAUTH_SUCCESS = "OAUTH_SUCCESS"
OAUTH_ERROR = "OAUTH_ERROR"

DEFAULT_TIMEOUT_SECONDS = 300.0
DEFAULT_POLL_INTERVAL_SECONDS = 0.5


@dataclass
class AuthMessage:
    """Message posted by the authorization callback page."""

    type: str
    code: Optional[str] = None
    state: Optional[str] = None
    error: Optional[str] = None
    error_description: Optional[str] = None
    provider: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Union["AuthMessage", Dict[str, Any]]) -> "AuthMessage":
        if isinstance(payload, AuthMessage):
            return payload
        return cls(
            type=str(payload.get("type", "")),
            code=payload.get("code"),
            state=payload.get("state"),
            error=payload.get("error"),
            error_description=payload.get("errorDescription") or payload.get("error_description"),
            provider=payload.get("provider"),
        )

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"type": self.type}
        if self.type == OAUTH_SUCCESS:
            payload.update(code=self.code, state=self.state)
        else:
            payload.update(error=self.error, errorDescription=self.error_description)
        if self.provider:
            payload["provider"] = self.provider
        return payload


MessageHandler = Callable[[AuthMessage, str], Awaitable[None]]


class MessageChannel:
    """In-process broadcast channel between callback pages and sessions."""

    def __init__(self):
        self._handlers: List[MessageHandler] = []

    def subscribe(self, handler: MessageHandler) -> None:
        if handler not in self._handlers:
            self._handlers.append(handler)

    def unsubscribe(self, handler: MessageHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    @property
    def subscriber_count(self) -> int:
        return len(self._handlers)

    async def post(self, message: Union[AuthMessage, Dict[str, Any]], origin: str) -> None:
        """Deliver a message to every current subscriber."""
        parsed = AuthMessage.from_payload(message)
        for handler in list(self._handlers):
            await handler(parsed, origin)


class PopupHandle(ABC):
    """Window showing the provider's consent page."""

    @property
    @abstractmethod
    def closed(self) -> bool:
        pass

    @abstractmethod
    def close(self) -> None:
        pass


class PopupLauncher(ABC):
    """Opens authorization windows."""

    @abstractmethod
    def open(self, url: str, channel: MessageChannel) -> Optional[PopupHandle]:
        """Open ``url`` in a new window.

        Args:
            url: Provider authorization URL
            channel: Channel the window's callback page reports on

        Returns:
            Handle to the window, or None if it could not be opened
        """
        pass


class AuthorizationSession:
    """One pending authorization request with a single-fulfillment guard."""

    def __init__(self, channel: MessageChannel, expected_origin: str,
                 on_code: Callable[[str], Awaitable[Any]],
                 expected_state: Optional[str] = None,
                 timeout: float = DEFAULT_TIMEOUT_SECONDS,
                 poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS):
        """Initialize a session.

        Args:
            channel: Channel the callback page posts on
            expected_origin: Only messages from this origin are considered
            on_code: Coroutine exchanging the authorization code; its result
                becomes the session result
            expected_state: When set, success messages carrying another state
                are ignored
            timeout: Seconds before the session fails with AuthExpiredError
            poll_interval: Seconds between checks for a closed window
        """
        self.channel = channel
        self.expected_origin = expected_origin.rstrip("/")
        self.on_code = on_code
        self.expected_state = expected_state
        self.timeout = timeout
        self.poll_interval = poll_interval

        self.is_exchanging = False
        self._future: Optional[asyncio.Future] = None
        self._popup: Optional[PopupHandle] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._watcher: Optional[asyncio.Task] = None
        self.logger = logging.getLogger(__name__)

    @property
    def settled(self) -> bool:
        return self._future is not None and self._future.done()

    async def run(self, open_popup: Callable[[], Optional[PopupHandle]]) -> Any:
        """Open the window and wait for the session to settle.

        The channel listener is installed before the window is opened so no
        early message is missed.

        Args:
            open_popup: Callable opening the authorization window

        Returns:
            Result of ``on_code`` for the first accepted code

        Raises:
            PopupBlockedError: If the window could not be opened
            AuthorizationDeniedError: If the provider reported an error
            UserCancelledError: If the window was closed without a result
            AuthExpiredError: If nothing arrived before the timeout
        """
        loop = asyncio.get_running_loop()
        self._future = loop.create_future()
        self.channel.subscribe(self._handle_message)

        try:
            self._popup = open_popup()
            if self._popup is None:
                raise PopupBlockedError("Authorization window could not be opened")

            self._timer = loop.call_later(self.timeout, self._on_timeout)
            self._watcher = loop.create_task(self._watch_popup())
            return await self._future
        finally:
            self._retire()

    async def _handle_message(self, message: AuthMessage, origin: str) -> None:
        if origin.rstrip("/") != self.expected_origin:
            self.logger.debug(f"Ignoring authorization message from unexpected origin {origin}")
            return
        if self._future is None or self._future.done():
            return

        if message.type == OAUTH_SUCCESS:
            if self.is_exchanging:
                self.logger.debug("Authorization code already being exchanged, ignoring duplicate")
                return
            if self.expected_state and message.state and message.state != self.expected_state:
                self.logger.warning("Ignoring authorization message with mismatched state")
                return
            if not message.code:
                self._reject(AuthorizationDeniedError("missing_code", "No authorization code received"))
                return

            self.is_exchanging = True
            try:
                result = await self.on_code(message.code)
            except Exception as e:
                self._reject(e)
            else:
                self._resolve(result)

        elif message.type == OAUTH_ERROR:
            self._reject(AuthorizationDeniedError(message.error or "unknown_error", message.error_description))

    async def _watch_popup(self) -> None:
        while self._future is not None and not self._future.done():
            await asyncio.sleep(self.poll_interval)
            if self._popup is not None and self._popup.closed and not self.is_exchanging:
                self._reject(UserCancelledError("Authorization window closed by the user"))
                return

    def _on_timeout(self) -> None:
        self._reject(AuthExpiredError(f"Authorization timed out after {self.timeout:.0f} seconds"))

    def _resolve(self, value: Any) -> None:
        if self._future is not None and not self._future.done():
            self._future.set_result(value)

    def _reject(self, error: BaseException) -> None:
        if self._future is not None and not self._future.done():
            self._future.set_exception(error)

    def _retire(self) -> None:
        self.channel.unsubscribe(self._handle_message)
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._watcher is not None and not self._watcher.done():
            self._watcher.cancel()
        if self._popup is not None and not self._popup.closed:
            self._popup.close()
