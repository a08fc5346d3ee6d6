"""
Configuration management for brainly.

The configuration is stored as a TOML file in the config directory:
- $BRAINLY_CONFIG_DIR, or
- $XDG_CONFIG_HOME/brainly, or
- ~/.config/brainly

Environment variables BRAINLY_API_URL and BRAINLY_TOKEN override the file.
"""

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import tomli_w


CONFIG_FILENAME = "brainly.toml"
CONFIG_VERSION = 1

DEFAULT_API_URL = "https://api.brainly.app"

# Timings and limits of the search/poll pipeline
DEFAULT_SEARCH_LIMIT = 3
DEFAULT_DEBOUNCE_SECONDS = 0.35
DEFAULT_POLL_INTERVAL = 3.0
DEFAULT_CACHE_TTL = 300.0  # 5 minutes
DEFAULT_SUMMARY_BODY_LIMIT = 5000
DEFAULT_TIMEOUT = 30.0


def get_config_dir() -> Path:
    """Get the config directory."""
    if env_dir := os.environ.get("BRAINLY_CONFIG_DIR"):
        return Path(env_dir)
    base = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return base / "brainly"


def get_log_dir() -> Path:
    """Directory for the error and operations logs: $BRAINLY_HOME or ~/.brainly."""
    if home := os.environ.get("BRAINLY_HOME"):
        return Path(home)
    return Path.home() / ".brainly"


@dataclass
class ClientConfig:
    """Complete client configuration."""
    api_url: str = DEFAULT_API_URL
    token: Optional[str] = None
    version: int = CONFIG_VERSION

    search_limit: int = DEFAULT_SEARCH_LIMIT
    debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS
    poll_interval: float = DEFAULT_POLL_INTERVAL
    cache_ttl: float = DEFAULT_CACHE_TTL
    summary_body_limit: int = DEFAULT_SUMMARY_BODY_LIMIT
    timeout: float = DEFAULT_TIMEOUT

    def to_dict(self) -> dict[str, Any]:
        """TOML structure. The token is only written when set."""
        client: dict[str, Any] = {
            "version": self.version,
            "api_url": self.api_url,
        }
        if self.token:
            client["token"] = self.token
        return {
            "client": client,
            "search": {
                "limit": self.search_limit,
                "debounce_seconds": self.debounce_seconds,
                "cache_ttl": self.cache_ttl,
                "summary_body_limit": self.summary_body_limit,
            },
            "poll": {"interval": self.poll_interval},
            "http": {"timeout": self.timeout},
        }


def _apply_env(config: ClientConfig) -> ClientConfig:
    if api_url := os.environ.get("BRAINLY_API_URL"):
        config.api_url = api_url
    if token := os.environ.get("BRAINLY_TOKEN"):
        config.token = token
    return config


def load_config(config_dir: Optional[Path] = None) -> ClientConfig:
    """
    Load configuration, falling back to defaults when no file exists.

    Environment overrides are applied last.

    Raises:
        ValueError: If config is invalid or from a newer version
    """
    config_path = (config_dir or get_config_dir()) / CONFIG_FILENAME

    if not config_path.exists():
        return _apply_env(ClientConfig())

    with open(config_path, "rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid config file {config_path}: {e}") from e

    client = data.get("client", {})
    version = client.get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    search = data.get("search", {})
    poll = data.get("poll", {})
    http = data.get("http", {})

    config = ClientConfig(
        api_url=client.get("api_url", DEFAULT_API_URL),
        token=client.get("token"),
        version=version,
        search_limit=int(search.get("limit", DEFAULT_SEARCH_LIMIT)),
        debounce_seconds=float(search.get("debounce_seconds", DEFAULT_DEBOUNCE_SECONDS)),
        cache_ttl=float(search.get("cache_ttl", DEFAULT_CACHE_TTL)),
        summary_body_limit=int(search.get("summary_body_limit", DEFAULT_SUMMARY_BODY_LIMIT)),
        poll_interval=float(poll.get("interval", DEFAULT_POLL_INTERVAL)),
        timeout=float(http.get("timeout", DEFAULT_TIMEOUT)),
    )
    return _apply_env(config)


def save_config(config: ClientConfig, config_dir: Optional[Path] = None) -> Path:
    """
    Save configuration to the config directory.

    Creates the directory if it doesn't exist. Returns the file path.
    """
    config_dir = config_dir or get_config_dir()
    config_dir.mkdir(parents=True, exist_ok=True)
    config_path = config_dir / CONFIG_FILENAME

    with open(config_path, "wb") as f:
        tomli_w.dump(config.to_dict(), f)
    if config.token:
        # Bearer credential on disk
        config_path.chmod(0o600)
    return config_path
