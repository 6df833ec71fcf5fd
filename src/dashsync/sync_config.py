"""Per-provider sync settings with YAML persistence."""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, field_validator


logger = logging.getLogger(__name__)


class ProviderSettings(BaseModel):
    """Settings for a specific sync provider."""

    enabled: bool = False

    # Local collection synced by default (task list or calendar name)
    default_collection: Optional[str] = None

    # Provider-specific settings
    settings: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("default_collection")
    @classmethod
    def validate_default_collection(cls, v):
        if v is not None and not v.strip():
            raise ValueError("default_collection must not be blank")
        return v


class SyncConfigManager:
    """Manages sync provider settings with file-based persistence."""

    CONFIG_FILE = "sync.yaml"

    def __init__(self, config_dir: Path):
        """Initialize config manager.

        Args:
            config_dir: Directory holding the settings file
        """
        self.config_dir = Path(config_dir)
        self.config_file = self.config_dir / self.CONFIG_FILE
        self.providers: Dict[str, ProviderSettings] = {}
        self.logger = logging.getLogger(__name__)

        self.load()

    def load(self):
        """Load configuration from file."""
        if not self.config_file.exists():
            self.logger.debug("No sync config file found, using defaults")
            return

        try:
            with open(self.config_file, 'r') as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            self.logger.error(f"Failed to load sync config: {e}")
            return

        for key, provider_data in ((data or {}).get('providers') or {}).items():
            try:
                self.providers[key] = ProviderSettings(**(provider_data or {}))
            except ValueError as e:
                self.logger.warning(f"Invalid settings for provider {key}: {e}")

        self.logger.debug(f"Loaded sync config from {self.config_file}")

    def save(self):
        """Save configuration to file."""
        data = {
            'providers': {key: settings.model_dump() for key, settings in self.providers.items()},
            '_metadata': {
                'version': '1.0',
                'updated_at': datetime.now(timezone.utc).isoformat(),
            },
        }

        self.config_file.parent.mkdir(parents=True, exist_ok=True)

        # Write with atomic operation
        temp_file = self.config_file.with_suffix('.tmp')
        with open(temp_file, 'w') as f:
            yaml.dump(data, f, default_flow_style=False, indent=2, sort_keys=True)
        temp_file.replace(self.config_file)

        self.logger.debug(f"Saved sync config to {self.config_file}")

    def get_provider_settings(self, key: str) -> ProviderSettings:
        return self.providers.get(key, ProviderSettings())

    def set_provider_settings(self, key: str, settings: ProviderSettings):
        self.providers[key] = settings
        self.save()

    def set_enabled(self, key: str, enabled: bool):
        settings = self.get_provider_settings(key).model_copy(update={"enabled": enabled})
        self.set_provider_settings(key, settings)

    def is_enabled(self, key: str) -> bool:
        return self.get_provider_settings(key).enabled
