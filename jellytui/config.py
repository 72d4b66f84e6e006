"""Configuration management for jellytui."""

import os
import stat
from pathlib import Path
from typing import Optional

import yaml


class ConfigError(Exception):
    """Configuration error."""

    pass


class Config:
    """Manages jellytui configuration."""

    def __init__(self, data_dir: Optional[Path] = None):
        """Initialize config with data directory."""
        if data_dir is None:
            data_dir = Path.home() / ".jellytui"
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)

        self.config_path = self.data_dir / "config.yaml"
        self.cache_path = self.data_dir / "cache.json"
        self.log_path = self.data_dir / "jellytui.log"

        # Server connection
        self.server_url: Optional[str] = None
        self.accept_self_signed: bool = False

        # Jellyfin credentials, kept so expired tokens can be renewed
        self.username: Optional[str] = None
        self.password: Optional[str] = None

        # Player settings
        self.player_path: str = "mpv"

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()

    def set_server(self, server_url: str, accept_self_signed: bool = False) -> None:
        """Set server URL and TLS policy."""
        if not server_url.startswith(("http://", "https://")):
            raise ConfigError(f"Invalid server URL: {server_url}")
        self.server_url = server_url.rstrip("/")
        self.accept_self_signed = accept_self_signed

    def set_credentials(self, username: str, password: str) -> None:
        """Set Jellyfin username and password."""
        self.username = username
        self.password = password

    def save(self) -> None:
        """Save configuration to YAML file."""
        data = {
            "server": {
                "url": self.server_url,
                "accept_self_signed": self.accept_self_signed,
            },
            "auth": {
                "username": self.username,
                "password": self.password,
            },
            "player": {
                "path": self.player_path,
            },
        }

        with open(self.config_path, "w") as f:
            yaml.dump(data, f, default_flow_style=False)

        # Set file permissions to 0600 (owner read/write only)
        if os.name != "nt":
            os.chmod(self.config_path, stat.S_IRUSR | stat.S_IWUSR)

    def load(self) -> None:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise ConfigError(
                f"Config file not found: {self.config_path}\n"
                "Run 'jellytui setup' to configure."
            )

        with open(self.config_path) as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid config file {self.config_path}: {e}")

        if not isinstance(data, dict):
            raise ConfigError(f"Invalid config file: {self.config_path}")

        server = data.get("server") or {}
        self.server_url = server.get("url")
        self.accept_self_signed = bool(server.get("accept_self_signed", False))

        auth = data.get("auth") or {}
        self.username = auth.get("username")
        self.password = auth.get("password") or ""

        player = data.get("player") or {}
        self.player_path = player.get("path") or "mpv"

        if not self.server_url or not self.username:
            raise ConfigError(
                f"Incomplete config file: {self.config_path}\n"
                "Run 'jellytui setup' to configure."
            )
