"""Configuration management for hookwire.

Loads YAML settings (settings.yaml) and environment variables (.env)
into a typed Config object. Property getters provide safe access with
sensible defaults for every subsystem: environment, logging, the HTTP
hook server, persistence and the list of bots to run.

Bot, transport and collaborator settings live in top-level sections
named by a config key (e.g. ``jenkinsBot:``, ``jenkins:``), which
components consume through ``get_section``.

Key classes:
    Config: Central configuration manager.

Key functions:
    get_config: Singleton accessor for the global Config instance.
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog
import yaml
from dotenv import load_dotenv

from .exceptions import ConfigurationError

logger = structlog.get_logger("hookwire.bot")

DEFAULT_ENV = "development"
DEFAULT_PORT = 3000


class Config:
    """Central configuration manager for hookwire.

    Loads settings.yaml and .env from the config directory. Provides
    typed property accessors for every configurable subsystem.

    Args:
        config_dir: Path to the config directory. Defaults to
            ``<repo_root>/config/``.
    """

    def __init__(self, config_dir: Optional[Path] = None):
        if config_dir is None:
            config_dir = Path(__file__).parent.parent / "config"
        self.config_dir = Path(config_dir)

        env_file = self.config_dir / ".env"
        if env_file.exists():
            load_dotenv(env_file)

        self.settings = self._load_yaml("settings.yaml")

    def _load_yaml(self, filename: str) -> dict:
        """Load a YAML configuration file."""
        filepath = self.config_dir / filename
        if filepath.exists():
            with open(filepath, "r") as f:
                return yaml.safe_load(f) or {}
        return {}

    def get_section(self, key: Optional[str]) -> Dict[str, Any]:
        """Return a copy of the top-level settings section named ``key``.

        Raises:
            ConfigurationError: If ``key`` is given but absent from settings.
        """
        if not key:
            logger.warning("config_key_missing")
            return {}
        section = self.settings.get(key)
        if not isinstance(section, dict):
            raise ConfigurationError(
                f"Given config key ({key}) does not exist in config!",
                setting_name=key,
            )
        return dict(section)

    @staticmethod
    def resolve_secret(section: Dict[str, Any], name: str) -> str:
        """Read ``name`` from a section, or from the env var named by ``<name>_env``."""
        value = section.get(name)
        if value:
            return str(value)
        env_var = section.get(f"{name}_env")
        if env_var:
            value = os.environ.get(env_var, "")
            if not value:
                logger.warning("config_secret_env_empty", env_var=env_var)
            return value
        return ""

    def validate(self):
        """Validate critical settings at startup.

        Logs warnings/errors but does not raise; misconfigured bots
        fail later, when their section is consumed.
        """
        names = self.bot_names
        if not names:
            logger.warning("no_bots_configured", msg="Nothing will be started")
        if len(set(names)) != len(names):
            logger.error("duplicate_bot_names", bots=names)

        for name in names:
            section = self.settings.get(name)
            if not isinstance(section, dict):
                logger.error("bot_section_missing", bot=name)
                continue
            for uri_key in ("interactive_uri", "options_load_uri", "slash_command_uri"):
                uri = section.get(uri_key)
                if uri is not None and (not isinstance(uri, str) or not uri.startswith("/")):
                    logger.error(
                        "config_invalid_value",
                        key=f"{name}.{uri_key}",
                        value=uri,
                        valid="path starting with /",
                    )

        port = self.web_server_port
        if not isinstance(port, int) or not 0 < port < 65536:
            logger.error("config_invalid_value", key="web_server.port", value=port)

    @property
    def env(self) -> str:
        """Runtime environment. Env var HOOKWIRE_ENV takes precedence."""
        return (
            os.environ.get("HOOKWIRE_ENV")
            or self.settings.get("env")
            or DEFAULT_ENV
        )

    @property
    def log_dir(self) -> Path:
        """Get log directory path."""
        configured = self.settings.get("log_dir")
        if configured:
            return Path(configured).expanduser()
        return Path(__file__).parent.parent / "logs"

    @property
    def logging_level(self) -> str:
        """Global log level (default INFO). Controls console and combined file."""
        log_config = self.settings.get("logging", {})
        return log_config.get("level", "INFO")

    @property
    def logging_subsystem_levels(self) -> dict:
        """Per-subsystem log level overrides. E.g. {"listeners": "DEBUG"}."""
        log_config = self.settings.get("logging", {})
        return log_config.get("subsystem_levels", {})

    @property
    def logging_max_file_size_mb(self) -> int:
        """Max size per log file in MB before rotation (default 10)."""
        log_config = self.settings.get("logging", {})
        return log_config.get("max_file_size_mb", 10)

    @property
    def logging_backup_count(self) -> int:
        """Number of rotated log files to keep (default 5)."""
        log_config = self.settings.get("logging", {})
        return log_config.get("backup_count", 5)

    @property
    def web_server_host(self) -> str:
        """Interface the hook server binds to (default 0.0.0.0)."""
        server_config = self.settings.get("web_server", {})
        return server_config.get("host", "0.0.0.0")

    @property
    def web_server_port(self) -> int:
        """Hook server port. Env var PORT takes precedence (PaaS style)."""
        env_port = os.environ.get("PORT")
        if env_port:
            try:
                return int(env_port)
            except ValueError:
                logger.warning("config_invalid_port_env", value=env_port)
        server_config = self.settings.get("web_server", {})
        return server_config.get("port", DEFAULT_PORT)

    @property
    def db_path(self) -> Path:
        """SQLite file used by the default db adapter, one per environment."""
        configured = self.settings.get("db_path")
        if configured:
            return Path(configured).expanduser()
        return Path(self.config_dir).parent / "data" / f"{self.env}.db"

    @property
    def bot_names(self) -> List[str]:
        """Config keys of the bots to start."""
        names = self.settings.get("bots", [])
        if not isinstance(names, list):
            logger.error("bots_invalid_type", type=type(names).__name__)
            return []
        return names


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create the global config instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config
