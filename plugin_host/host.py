"""PluginHost: wires the permission manager, executor and registry together."""

import logging
from typing import Dict, List, Optional

from .config import PluginHostConfig
from .plugins.base import PluginInfo
from .plugins.cancel import CancelToken
from .plugins.exec import ExecPlugin
from .plugins.executor import PluginExecutor
from .plugins.permission import PermissionApprover, PermissionManager, create_approver
from .plugins.registry import PluginRegistry
from .plugins.stats import ExecutionStats, StatsCollector
from .plugins.types import PluginInput, PluginOutput

logger = logging.getLogger(__name__)


class PluginHost:
    """Entry point for a CLI that runs plugins.

    Owns one instance of each component, built from the given config. The
    host's own cancel token is the parent of every call made without an
    explicit token; ``shutdown()`` cancels it.

    Usage:
        host = PluginHost(load_config())
        host.discover()
        output = host.execute("exec", PluginInput(command="echo", args=["hi"]))
    """

    def __init__(
        self,
        config: Optional[PluginHostConfig] = None,
        approver: Optional[PermissionApprover] = None,
    ):
        self._config = config or PluginHostConfig()
        if approver is None:
            approver = create_approver(self._config.approver)

        self._token = CancelToken()
        self._stats = StatsCollector()
        self._permissions = PermissionManager(self._config.config_dir, approver=approver)
        self._executor = PluginExecutor(self._config.executor_config(), stats=self._stats)
        self._registry = PluginRegistry(
            self._config.plugin_dir,
            permission_manager=self._permissions,
            executor=self._executor,
            discovery_strict=self._config.discovery_strict,
        )
        self._registry.register(ExecPlugin())

    @property
    def config(self) -> PluginHostConfig:
        return self._config

    @property
    def registry(self) -> PluginRegistry:
        return self._registry

    @property
    def permissions(self) -> PermissionManager:
        return self._permissions

    @property
    def executor(self) -> PluginExecutor:
        return self._executor

    def discover(self) -> List[str]:
        """Load external plugins from the configured plugin directory."""
        return self._registry.discover_plugins()

    def execute(
        self,
        name: str,
        plugin_input: PluginInput,
        token: Optional[CancelToken] = None,
    ) -> PluginOutput:
        """Run a registered plugin by name.

        Without a token the call runs under the host's token, so it is
        cancelled by ``shutdown()``.
        """
        return self._registry.execute(token or self._token, name, plugin_input)

    def plugin_info(self) -> List[PluginInfo]:
        return self._registry.list_plugin_info()

    def stats(self) -> Dict[str, ExecutionStats]:
        return self._stats.get_all_stats()

    def shutdown(self) -> None:
        """Cancel every call still running under the host's token."""
        logger.debug("Shutting down plugin host")
        self._token.cancel()
