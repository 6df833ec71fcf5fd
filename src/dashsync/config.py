"""Configuration management for dashsync."""

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

import yaml


logger = logging.getLogger(__name__)

TOKEN_BACKENDS = ("file", "keyring", "memory")


@dataclass
class ConfigModel:
    """Global configuration model for dashsync."""

    # File paths
    data_dir: str = "~/.dashsync"

    # Trusted token exchange service holding the client secrets
    exchange_service_url: str = "http://localhost:3001"
    exchange_timeout_seconds: float = 30.0

    # Origin that authorization callbacks must come from
    app_origin: str = "http://localhost:5173"

    # Where OAuth connections are persisted: file, keyring or memory
    token_backend: str = "file"

    # Sync behaviour
    default_task_list: str = "Dashboard"
    calendar_window_months: int = 3

    # Logging
    log_level: str = "WARNING"

    def __post_init__(self):
        """Post-initialization setup."""
        self.data_dir = os.path.expanduser(self.data_dir)
        if self.token_backend not in TOKEN_BACKENDS:
            raise ValueError(
                f"token_backend must be one of {', '.join(TOKEN_BACKENDS)}, got {self.token_backend!r}"
            )
        if self.calendar_window_months < 1:
            raise ValueError("calendar_window_months must be at least 1")

    def to_yaml(self) -> str:
        """Serialize config to YAML."""
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        return yaml.dump(data, default_flow_style=False)

    @classmethod
    def from_yaml(cls, yaml_str: str) -> "ConfigModel":
        """Deserialize config from YAML, ignoring unknown keys."""
        data = yaml.safe_load(yaml_str) or {}
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {', '.join(sorted(unknown))}")
        return cls(**{k: v for k, v in data.items() if k in known})

    def ensure_data_dir(self) -> Path:
        """Create the data directory if needed and return it."""
        path = Path(self.data_dir)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def get_config_path(self) -> Path:
        """Get the config file path."""
        return Path(self.data_dir) / "config.yaml"

    def get_tokens_path(self) -> Path:
        """Get the file used by the file token backend."""
        return Path(self.data_dir) / "tokens.json"

    def get_state_path(self) -> Path:
        """Get the file holding list mappings and other small state."""
        return Path(self.data_dir) / "state.json"

    def get_tasks_path(self) -> Path:
        return Path(self.data_dir) / "tasks.json"

    def get_events_path(self) -> Path:
        return Path(self.data_dir) / "events.json"


class Config:
    """Configuration loader caching one ConfigModel per process."""

    _instance: Optional[ConfigModel] = None

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> ConfigModel:
        """Load configuration from file or create default."""
        if cls._instance is not None:
            return cls._instance

        config = ConfigModel()

        if config_path is None:
            config_path = config.get_config_path()

        if config_path.exists():
            try:
                with open(config_path, 'r') as f:
                    config = ConfigModel.from_yaml(f.read())
                logger.debug(f"Loaded configuration from {config_path}")
            except (OSError, yaml.YAMLError, TypeError, ValueError) as e:
                logger.warning(f"Failed to load config from {config_path}: {e}; using defaults")
        else:
            cls.save(config, config_path)
            logger.info(f"Created default configuration at {config_path}")

        cls._instance = config
        return config

    @classmethod
    def save(cls, config: ConfigModel, config_path: Optional[Path] = None) -> None:
        """Save configuration to file."""
        if config_path is None:
            config_path = config.get_config_path()

        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, 'w') as f:
            f.write(config.to_yaml())
        logger.debug(f"Configuration saved to {config_path}")

    @classmethod
    def get(cls) -> ConfigModel:
        """Get the current configuration instance."""
        if cls._instance is None:
            cls._instance = cls.load()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Forget the cached configuration."""
        cls._instance = None


def load_config(config_path: Optional[Path] = None) -> ConfigModel:
    """Load configuration from file."""
    return Config.load(config_path)
