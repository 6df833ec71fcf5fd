"""Terminal stand-in for the authorization popup.

The consent page opens in the user's browser. After approving, the user
pastes the URL they were redirected to, which is turned into the same
message the web callback page would post.
"""

import asyncio
import logging
import threading
import webbrowser
from typing import Callable, Dict, Optional
from urllib.parse import parse_qs, urlparse

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt

from .session import OAUTH_ERROR, OAUTH_SUCCESS, AuthMessage, MessageChannel, PopupHandle, PopupLauncher


logger = logging.getLogger(__name__)


def parse_callback_response(response: str) -> Optional[AuthMessage]:
    """Turn a pasted redirect URL (or bare code) into a callback message.

    Args:
        response: Text entered by the user

    Returns:
        Success or error message, or None when nothing usable was entered
    """
    text = (response or "").strip()
    if not text:
        return None

    if "?" not in text and "=" not in text:
        return AuthMessage(type=OAUTH_SUCCESS, code=text)

    query = urlparse(text).query if "?" in text else text
    params: Dict[str, str] = {k: v[0] for k, v in parse_qs(query).items() if v}

    if "error" in params:
        return AuthMessage(
            type=OAUTH_ERROR,
            error=params["error"],
            error_description=params.get("error_description"),
        )
    if "code" in params:
        return AuthMessage(type=OAUTH_SUCCESS, code=params["code"], state=params.get("state"))
    return None


class ConsolePopup(PopupHandle):
    """Browser window plus a terminal prompt for the redirect URL."""

    def __init__(self, url: str, channel: MessageChannel, origin: str,
                 console: Console, ask: Callable[[], str]):
        self.url = url
        self.channel = channel
        self.origin = origin
        self.console = console
        self._ask = ask
        self._closed = False
        self._task: Optional[asyncio.Task] = None

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        self._closed = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def start(self) -> None:
        self._task = asyncio.get_running_loop().create_task(self._collect())

    async def _read_line(self) -> str:
        # Daemon thread so an abandoned prompt never blocks interpreter exit
        loop = asyncio.get_running_loop()
        future = loop.create_future()

        def worker():
            try:
                value = self._ask()
            except (EOFError, KeyboardInterrupt):
                value = ""
            if not loop.is_closed():
                loop.call_soon_threadsafe(lambda: future.done() or future.set_result(value))

        threading.Thread(target=worker, name="dashsync-auth-prompt", daemon=True).start()
        return await future

    async def _collect(self) -> None:
        response = await self._read_line()
        message = parse_callback_response(response)
        if message is None:
            self.console.print("[yellow]No authorization response entered[/yellow]")
        else:
            await self.channel.post(message, self.origin)
        self._closed = True


class ConsolePopupLauncher(PopupLauncher):
    """Launcher used by the command line interface."""

    def __init__(self, origin: str, console: Optional[Console] = None,
                 open_browser: bool = True, ask: Optional[Callable[[], str]] = None):
        self.origin = origin
        self.console = console or Console()
        self.open_browser = open_browser
        self._ask = ask or (lambda: Prompt.ask("Paste the URL you were redirected to", console=self.console))

    def open(self, url: str, channel: MessageChannel) -> Optional[PopupHandle]:
        opened = False
        if self.open_browser:
            try:
                opened = webbrowser.open(url)
            except webbrowser.Error as e:
                logger.warning(f"Could not open browser: {e}")

        hint = "A browser window was opened." if opened else "Open this URL in your browser:"
        self.console.print(Panel(f"{hint}\n\n[link={url}]{url}[/link]", title="Authorize dashsync"))

        popup = ConsolePopup(url, channel, self.origin, self.console, self._ask)
        popup.start()
        return popup
