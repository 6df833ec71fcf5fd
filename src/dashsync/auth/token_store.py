"""Persistence of OAuth connections.

All connections live in one JSON list under a single key of a
:class:`~dashsync.storage.KeyValueStore`, with at most one entry per provider.
"""

import json
import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from ..exceptions import NoConnectionError
from ..storage import KeyValueStore
from ..utils.datetime import now_utc
from .models import OAuthConnection, OAuthProvider, OAuthTokens


logger = logging.getLogger(__name__)

EXPIRY_MARGIN = timedelta(minutes=5)


class TokenStore:
    """Stores one OAuthConnection per provider."""

    STORAGE_KEY = "oauth:connections"

    def __init__(self, store: KeyValueStore, clock: Callable[[], datetime] = now_utc):
        self.store = store
        self.clock = clock
        self.logger = logging.getLogger(__name__)

    def get_all_connections(self) -> List[OAuthConnection]:
        """Load every stored connection.

        A missing or unreadable payload yields an empty list; unreadable
        entries are dropped individually.
        """
        raw = self.store.get(self.STORAGE_KEY)
        if not raw:
            return []

        try:
            items = json.loads(raw)
        except json.JSONDecodeError as e:
            self.logger.error(f"Stored OAuth connections are corrupted: {e}")
            return []

        if not isinstance(items, list):
            self.logger.error("Stored OAuth connections are not a list, ignoring them")
            return []

        connections = []
        for item in items:
            try:
                connections.append(OAuthConnection.from_dict(item))
            except (KeyError, TypeError, ValueError) as e:
                self.logger.warning(f"Skipping unreadable OAuth connection entry: {e}")
        return connections

    def _save_all(self, connections: List[OAuthConnection]) -> None:
        payload = json.dumps([conn.to_dict() for conn in connections])
        self.store.set(self.STORAGE_KEY, payload)

    def get_connection(self, provider: OAuthProvider) -> Optional[OAuthConnection]:
        for connection in self.get_all_connections():
            if connection.provider == provider:
                return connection
        return None

    def save_connection(self, connection: OAuthConnection) -> None:
        """Insert or replace the connection for its provider."""
        connections = [c for c in self.get_all_connections() if c.provider != connection.provider]
        connections.append(connection)
        self._save_all(connections)
        self.logger.debug(f"Saved OAuth connection for {connection.provider.value}")

    def remove_connection(self, provider: OAuthProvider) -> None:
        """Delete the connection for ``provider``; a no-op when absent."""
        connections = self.get_all_connections()
        remaining = [c for c in connections if c.provider != provider]
        if len(remaining) != len(connections):
            self._save_all(remaining)
            self.logger.debug(f"Removed OAuth connection for {provider.value}")

    def is_token_expired(self, connection: OAuthConnection, now: Optional[datetime] = None) -> bool:
        """Check whether the access token is expired or about to expire.

        Tokens without an expiry are treated as always valid.

        Args:
            connection: Connection to inspect
            now: Reference instant, defaults to the store clock

        Returns:
            True once ``now`` is within five minutes of the expiry
        """
        expires_at = connection.tokens.expires_at
        if expires_at is None:
            return False
        return (now or self.clock()) >= expires_at - EXPIRY_MARGIN

    def update_tokens(self, provider: OAuthProvider, tokens: OAuthTokens) -> OAuthConnection:
        """Merge refreshed tokens into the stored connection.

        Args:
            provider: Provider whose connection is updated
            tokens: New token values; empty fields keep the stored value

        Returns:
            The updated connection

        Raises:
            NoConnectionError: If no connection is stored for the provider
        """
        connection = self.get_connection(provider)
        if connection is None:
            raise NoConnectionError(f"No connection found for provider {provider.value}")

        connection.tokens = connection.tokens.merged_with(tokens)
        self.save_connection(connection)
        return connection

    def touch_last_sync(self, provider: OAuthProvider) -> None:
        """Record that a sync with ``provider`` just completed."""
        connection = self.get_connection(provider)
        if connection is None:
            return
        connection.last_sync_at = self.clock()
        self.save_connection(connection)
