"""Configuration management for mcpskill.

Loads the MCP server description from a JSON file (passed with --config)
and derives the per-config state directory that holds the session
registry, daemon logs and materialized output.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union

from dotenv import dotenv_values

from mcpskill.core.errors import ConfigError

CONFIG_ENV_VAR = "MCP_SKILL_CONFIG"
STATE_DIR_NAME = ".mcp-client"
TRANSPORTS = ("stdio", "http", "sse")


@dataclass
class ServerConfig:
    name: str
    transport: str
    config_path: Path
    command: Optional[str] = None
    args: List[str] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)
    url: Optional[str] = None

    @property
    def config_dir(self) -> Path:
        return self.config_path.parent

    @property
    def state_dir(self) -> Path:
        return self.config_dir / STATE_DIR_NAME

    @property
    def registry_path(self) -> Path:
        return self.state_dir / "sessions.json"

    def log_path(self, session_name: str) -> Path:
        return self.state_dir / "logs" / f"{session_name}.log"

    def output_dir(self, session_name: str) -> Path:
        return self.state_dir / "output" / session_name


def resolve_config_path(path: Optional[Union[str, Path]] = None) -> Path:
    """
    Resolve the config file location.

    Falls back to the MCP_SKILL_CONFIG environment variable when no
    explicit path is given.

    Raises:
        ConfigError: If no path is available or the file does not exist
    """
    raw = path or os.environ.get(CONFIG_ENV_VAR)
    if not raw:
        raise ConfigError(f"--config is required (or set {CONFIG_ENV_VAR})")

    resolved = Path(raw).expanduser().resolve()
    if not resolved.is_file():
        raise ConfigError(f"Config file not found: {resolved}")
    return resolved


def load_config(path: Optional[Union[str, Path]] = None) -> ServerConfig:
    """
    Load and validate a server config file.

    Expected format:
        {
            "name": "my-mcp-server",
            "transport": "stdio",            # or "http" / "sse"
            "command": "npx",                # stdio only
            "args": ["@org/mcp-server"],
            "env": {"KEY": "value"},
            "envFile": ".env",               # optional, relative to config
            "url": "http://localhost:8931/mcp"   # http/sse only
        }

    Raises:
        ConfigError: If the file is missing, unreadable or invalid
    """
    config_path = resolve_config_path(path)

    try:
        raw = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Cannot read config {config_path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"Config {config_path} must be a JSON object")

    transport = str(raw.get("transport", "stdio")).strip().lower()
    if transport not in TRANSPORTS:
        raise ConfigError(
            f"Unknown transport: {transport}. Expected one of: {', '.join(TRANSPORTS)}"
        )

    args = raw.get("args") or []
    if not isinstance(args, list):
        raise ConfigError("'args' must be a list")

    env = _load_env(raw, config_path.parent)

    config = ServerConfig(
        name=str(raw.get("name") or config_path.stem),
        transport=transport,
        config_path=config_path,
        command=raw.get("command"),
        args=[str(a) for a in args],
        env=env,
        url=raw.get("url"),
    )

    if transport == "stdio" and not config.command:
        raise ConfigError("stdio transport requires 'command'")
    if transport in ("http", "sse") and not config.url:
        raise ConfigError(f"{transport} transport requires 'url'")

    return config


def _load_env(raw: Dict, config_dir: Path) -> Dict[str, str]:
    """Merge the optional envFile with the inline env block (inline wins)."""
    env: Dict[str, str] = {}

    env_file = raw.get("envFile")
    if env_file:
        env_path = (config_dir / env_file).resolve()
        if not env_path.is_file():
            raise ConfigError(f"envFile not found: {env_path}")
        env.update({k: v for k, v in dotenv_values(env_path).items() if v is not None})

    inline = raw.get("env") or {}
    if not isinstance(inline, dict):
        raise ConfigError("'env' must be an object")
    env.update({str(k): str(v) for k, v in inline.items()})
    return env
