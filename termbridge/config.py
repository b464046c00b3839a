"""
Configuration management for termbridge.

Settings come from (lowest to highest priority): dataclass defaults, a
JSON config file, then environment variables. A ``.env`` file in the
working directory is loaded into the environment first.
"""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from .errors import ConfigError
from .types import BridgeMode

CONFIG_ENV_VAR = "TERMBRIDGE_CONFIG"
DEFAULT_CONFIG_PATH = Path("termbridge.json")


def _filter_dataclass_fields(data: dict[str, Any], cls: type) -> dict[str, Any]:
    """Filter dict to only include fields that exist in the dataclass."""
    valid_fields = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in valid_fields}


def load_environment(env_file: Path | None = None) -> bool:
    """Load a .env file (default: ./.env) if one exists."""
    env_file = env_file or Path.cwd() / ".env"
    if env_file.exists():
        return load_dotenv(env_file)
    return False


@dataclass
class ModelConfig:
    """Model service settings."""

    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 4096
    # None = provider default
    temperature: float | None = None


@dataclass
class ServerConfig:
    """Listener settings."""

    host: str = "0.0.0.0"
    port: int = 2222
    telnet: bool = True  # negotiate echo/SGA and escape IAC bytes
    read_size: int = 4096


@dataclass
class SessionConfig:
    """Per-connection session behaviour."""

    mode: BridgeMode = BridgeMode.CALLS
    stateful: bool = True
    history_window: int = 80
    greeting: str = "[operator connected]"
    prompt_template: str = "{cwd} > "
    farewell: str = "Connection closed."
    exit_commands: list[str] = field(default_factory=lambda: ["exit", "logout", "quit"])
    # None = every registered tool
    enabled_tools: list[str] | None = None
    world_path: str | None = None

    def __post_init__(self):
        if not isinstance(self.mode, BridgeMode):
            try:
                self.mode = BridgeMode(self.mode)
            except ValueError as e:
                raise ConfigError(f"Unknown bridge mode: {self.mode!r}") from e
        if self.history_window < 2:
            raise ConfigError("history_window must be at least 2")


@dataclass
class BridgeConfig:
    """Complete bridge configuration."""

    model: ModelConfig = field(default_factory=ModelConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    session: SessionConfig = field(default_factory=SessionConfig)

    @classmethod
    def load(cls, path: Path | None = None, env: dict[str, str] | None = None) -> "BridgeConfig":
        """
        Load configuration from file, then apply environment overrides.

        Args:
            path: Config file (default: $TERMBRIDGE_CONFIG or ./termbridge.json)
            env: Environment mapping (default: os.environ)

        Returns:
            BridgeConfig; defaults when no file exists

        Raises:
            ConfigError: If the file exists but is not valid JSON
        """
        env = os.environ if env is None else env
        if path is None:
            path = Path(env.get(CONFIG_ENV_VAR, DEFAULT_CONFIG_PATH))

        data: dict[str, Any] = {}
        if path.exists():
            try:
                data = json.loads(path.read_text())
            except json.JSONDecodeError as e:
                raise ConfigError(f"Invalid config file {path}: {e}") from e

        config = cls(
            model=ModelConfig(**_filter_dataclass_fields(data.get("model", {}), ModelConfig)),
            server=ServerConfig(**_filter_dataclass_fields(data.get("server", {}), ServerConfig)),
            session=SessionConfig(**_filter_dataclass_fields(data.get("session", {}), SessionConfig)),
        )
        config.apply_env(env)
        return config

    def apply_env(self, env: dict[str, str]) -> None:
        """Apply environment variable overrides in place."""
        port = env.get("TERMBRIDGE_PORT") or env.get("PORT")
        if port:
            try:
                self.server.port = int(port)
            except ValueError as e:
                raise ConfigError(f"Invalid port: {port!r}") from e
        if env.get("TERMBRIDGE_HOST"):
            self.server.host = env["TERMBRIDGE_HOST"]
        if env.get("TERMBRIDGE_MODEL"):
            self.model.model = env["TERMBRIDGE_MODEL"]
        if env.get("TERMBRIDGE_MODE"):
            try:
                self.session.mode = BridgeMode(env["TERMBRIDGE_MODE"])
            except ValueError as e:
                raise ConfigError(f"Unknown bridge mode: {env['TERMBRIDGE_MODE']!r}") from e

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["session"]["mode"] = self.session.mode.value
        return data

    def save(self, path: Path | None = None) -> None:
        """Save configuration to file."""
        path = path or DEFAULT_CONFIG_PATH
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)


# Default configuration instance
default_config = BridgeConfig()


__all__ = [
    "BridgeConfig",
    "ModelConfig",
    "ServerConfig",
    "SessionConfig",
    "default_config",
    "load_environment",
]
