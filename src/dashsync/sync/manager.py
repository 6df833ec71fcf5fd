"""Multi-provider sync orchestration."""

import logging
from typing import Dict, Iterable, List, Optional

from ..exceptions import SyncError, reconnect_required
from ..sync_config import SyncConfigManager
from .models import SyncResult, SyncSummary
from .providers.base import SyncProvider


logger = logging.getLogger(__name__)


class SyncManager:
    """Runs every enabled sync provider and aggregates their results.

    Providers run one after the other. A provider that fails, or even
    raises, never prevents the remaining providers from running.
    """

    def __init__(self, providers: Optional[Iterable[SyncProvider]] = None,
                 config_manager: Optional[SyncConfigManager] = None):
        """Initialize the manager.

        Args:
            providers: Providers to register
            config_manager: Persists enabled flags; when given, registered
                providers take their enabled state from it
        """
        self.config_manager = config_manager
        self.providers: Dict[str, SyncProvider] = {}
        self.logger = logging.getLogger(__name__)

        for provider in providers or []:
            self.add_provider(provider)

    def add_provider(self, provider: SyncProvider) -> None:
        if self.config_manager is not None and provider.key in self.config_manager.providers:
            provider.enabled = self.config_manager.is_enabled(provider.key)
        self.providers[provider.key] = provider
        self.logger.debug(f"Registered sync provider {provider.key}")

    def remove_provider(self, key: str) -> bool:
        return self.providers.pop(key, None) is not None

    def get_provider(self, key: str) -> Optional[SyncProvider]:
        return self.providers.get(key)

    def get_all_providers(self) -> List[SyncProvider]:
        return list(self.providers.values())

    def get_enabled_providers(self) -> List[SyncProvider]:
        return [p for p in self.providers.values() if p.enabled]

    def set_enabled(self, key: str, enabled: bool) -> None:
        """Enable or disable a provider, persisting the choice.

        Raises:
            KeyError: If no provider is registered under ``key``
        """
        provider = self.providers.get(key)
        if provider is None:
            raise KeyError(f"Unknown sync provider: {key}")
        provider.enabled = enabled
        if self.config_manager is not None:
            self.config_manager.set_enabled(key, enabled)

    async def _run(self, provider: SyncProvider) -> SyncResult:
        try:
            return await provider.sync()
        except Exception as e:
            error = SyncError.from_error(e)
            self.logger.error(f"Provider {provider.key} raised during sync: {error}")
            result = SyncResult(provider=provider.key)
            result.add_error(str(error))
            result.reconnect_required = reconnect_required(error)
            result.complete()
            return result

    async def sync_provider(self, key: str) -> SyncResult:
        provider = self.providers.get(key)
        if provider is None:
            raise KeyError(f"Unknown sync provider: {key}")
        return await self._run(provider)

    async def sync_all(self) -> SyncSummary:
        """Sync every enabled provider.

        Returns:
            Summary holding one result per enabled provider
        """
        summary = SyncSummary()
        enabled = self.get_enabled_providers()
        if not enabled:
            self.logger.info("No sync providers enabled")
            return summary

        for provider in enabled:
            result = await self._run(provider)
            summary.results[provider.key] = result
            if result.success:
                self.logger.info(f"{provider.key}: synced {result.synced_count} items")
            else:
                self.logger.warning(f"{provider.key}: sync failed ({'; '.join(result.errors)})")

        return summary
