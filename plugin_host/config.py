"""Configuration for the plugin host.

Values come from environment variables, optionally loaded from a ``.env``
file first:

    PLUGIN_HOST_CONFIG_DIR   Directory holding plugin-permissions.yaml
                             (default: ~/.config/plugin-host)
    PLUGIN_HOST_PLUGIN_DIR   Root searched for plugin-manifest.yaml files
                             (default: <config dir>/plugins)
    PLUGIN_DEFAULT_TIMEOUT   Seconds per call when none is requested (30)
    PLUGIN_MAX_TIMEOUT       Upper bound for any call timeout (300)
    PLUGIN_RETRY_BASE_DELAY  First retry backoff in seconds (1.0)
    PLUGIN_DISCOVERY_STRICT  Stop discovery at the first bad manifest (false)
    PLUGIN_APPROVER          console, auto or deny (console)
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from .plugins.executor import (
    DEFAULT_RETRY_BASE_DELAY,
    DEFAULT_TIMEOUT,
    MAX_TIMEOUT,
    ExecutorConfig,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = "~/.config/plugin-host"


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %s", name, raw, default)
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes")


def _default_config_dir() -> str:
    return os.path.expanduser(os.environ.get("PLUGIN_HOST_CONFIG_DIR") or DEFAULT_CONFIG_DIR)


@dataclass
class PluginHostConfig:
    """Settings for PluginHost; defaults are read from the environment."""
    config_dir: str = field(default_factory=_default_config_dir)
    plugin_dir: str = field(default_factory=lambda: os.environ.get("PLUGIN_HOST_PLUGIN_DIR", ""))
    default_timeout: float = field(default_factory=lambda: _env_float("PLUGIN_DEFAULT_TIMEOUT", DEFAULT_TIMEOUT))
    max_timeout: float = field(default_factory=lambda: _env_float("PLUGIN_MAX_TIMEOUT", MAX_TIMEOUT))
    retry_base_delay: float = field(default_factory=lambda: _env_float("PLUGIN_RETRY_BASE_DELAY", DEFAULT_RETRY_BASE_DELAY))
    discovery_strict: bool = field(default_factory=lambda: _env_bool("PLUGIN_DISCOVERY_STRICT"))
    approver: str = field(default_factory=lambda: os.environ.get("PLUGIN_APPROVER", "console"))

    def __post_init__(self):
        self.config_dir = os.path.expanduser(self.config_dir)
        if not self.plugin_dir:
            self.plugin_dir = os.path.join(self.config_dir, "plugins")
        self.plugin_dir = os.path.expanduser(self.plugin_dir)

    def executor_config(self) -> ExecutorConfig:
        """Executor settings, with unusable values replaced by defaults."""
        return ExecutorConfig(
            default_timeout=self.default_timeout,
            max_timeout=self.max_timeout,
            retry_base_delay=self.retry_base_delay,
        ).normalized()


def load_config(env_file: Optional[str] = None) -> PluginHostConfig:
    """Load a ``.env`` file (if any) and build the config from the environment.

    Variables already set in the environment take precedence over the file.

    Args:
        env_file: Path to the .env file. None searches from the current
            directory upward, as python-dotenv does.
    """
    load_dotenv(env_file)
    config = PluginHostConfig()
    logger.debug(
        "Loaded config: config_dir=%s plugin_dir=%s approver=%s",
        config.config_dir, config.plugin_dir, config.approver,
    )
    return config
