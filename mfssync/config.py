"""Configuration management for mfssync.

Settings are resolved in this order: environment variables, the config
file at ``~/.config/mfssync/config`` (a dotenv file), built-in
defaults.
"""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import dotenv_values

from .exceptions import MfsConfigError
from .utils import DEFAULT_API_HOST, DEFAULT_API_PORT

logger = logging.getLogger(__name__)

ENV_API_HOST = "MFSSYNC_API_HOST"
ENV_API_PORT = "MFSSYNC_API_PORT"
ENV_CONFIG_DIR = "MFSSYNC_CONFIG_DIR"


def parse_port(value: str) -> int:
    """Parse a TCP port number.

    Raises:
        MfsConfigError: If the value is not an integer in 1..65535
    """
    try:
        port = int(str(value).strip())
    except ValueError as e:
        raise MfsConfigError(f"Could not parse API port: {value!r}") from e
    if not 0 < port < 65536:
        raise MfsConfigError(f"API port out of range: {port}")
    return port


class Config:
    """Resolves store daemon connection settings."""

    def __init__(self, config_dir: Optional[Path] = None):
        """Initialize configuration.

        Args:
            config_dir: Directory holding the config file. Defaults to
                $MFSSYNC_CONFIG_DIR or ~/.config/mfssync
        """
        if config_dir is None:
            env_dir = os.environ.get(ENV_CONFIG_DIR)
            config_dir = (
                Path(env_dir) if env_dir else Path.home() / ".config" / "mfssync"
            )
        self.config_dir = config_dir
        self._file_values: Optional[dict[str, str]] = None

    def get_config_path(self) -> Path:
        """Get the path of the config file."""
        return self.config_dir / "config"

    def _load_file(self) -> dict[str, str]:
        """Read KEY=VALUE pairs from the config file (cached)."""
        if self._file_values is not None:
            return self._file_values

        values: dict[str, str] = {}
        config_path = self.get_config_path()
        if config_path.exists():
            try:
                parsed = dotenv_values(config_path, encoding="utf-8")
            except OSError as e:
                logger.warning(f"Failed to read config file {config_path}: {e}")
            else:
                values = {k: v for k, v in parsed.items() if v is not None}
        self._file_values = values
        return values

    def _get(self, key: str) -> Optional[str]:
        value = os.environ.get(key)
        if value:
            return value
        return self._load_file().get(key)

    @property
    def api_host(self) -> str:
        """Store daemon API host."""
        return self._get(ENV_API_HOST) or DEFAULT_API_HOST

    @property
    def api_port(self) -> int:
        """Store daemon API port."""
        value = self._get(ENV_API_PORT)
        if value is None:
            return DEFAULT_API_PORT
        return parse_port(value)

    @property
    def api_url(self) -> str:
        """Base URL of the daemon's RPC API."""
        return build_api_url(self.api_host, self.api_port)

    def save(self, api_host: str, api_port: int) -> None:
        """Persist connection settings to the config file."""
        self.config_dir.mkdir(parents=True, exist_ok=True)
        config_path = self.get_config_path()
        config_path.write_text(
            f"{ENV_API_HOST}={api_host}\n{ENV_API_PORT}={api_port}\n",
            encoding="utf-8",
        )
        self._file_values = None
        logger.debug(f"Saved configuration to {config_path}")


def build_api_url(api_host: str, api_port: int) -> str:
    """Build the RPC base URL for a host/port pair."""
    return f"http://{api_host}:{api_port}/api/v0"


config = Config()
