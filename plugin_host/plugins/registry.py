"""Plugin registry for discovering, validating and dispatching plugins.

The registry owns every registered plugin and its manifest. It is the
single entry point through which callers run a named plugin: each call is
checked against the permission manager before it is dispatched.
"""

import logging
import os
import threading
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from .base import Plugin, PluginInfo, PluginStatus
from .binary import create_binary_plugin
from .cancel import CancelledException, CancelToken
from .errors import (
    ManifestValidationError,
    PermissionDeniedError,
    PermissionValidationError,
    PluginDiscoveryError,
    PluginError,
    PluginNotFoundError,
    PluginRegistrationError,
    PluginTimeoutError,
)
from .executor import PluginExecutor
from .permission.manager import PermissionManager
from .permission.matching import validate_permission
from .types import PluginInput, PluginManifest, PluginOutput, PluginType

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "plugin-manifest.yaml"


def validate_manifest(manifest: PluginManifest) -> None:
    """Check that a manifest has everything needed to load its plugin.

    Raises:
        ManifestValidationError: Naming the first field that is missing
            or invalid.
    """
    if not manifest.name:
        raise ManifestValidationError("", "name", "plugin name is required")
    if not manifest.version:
        raise ManifestValidationError(manifest.name, "version", "plugin version is required")
    if manifest.type is None:
        raise ManifestValidationError(manifest.name, "type", "plugin type is required")

    if manifest.type == PluginType.BINARY and not manifest.executable:
        raise ManifestValidationError(
            manifest.name, "executable", "binary plugins require an executable path"
        )
    if manifest.type == PluginType.WASM and not manifest.entrypoint:
        raise ManifestValidationError(
            manifest.name, "entrypoint", "wasm plugins require an entrypoint"
        )

    for perm in manifest.permissions:
        try:
            validate_permission(str(perm))
        except PermissionValidationError as exc:
            raise ManifestValidationError(manifest.name, "permissions", str(exc)) from exc


def load_manifest(manifest_path: Path) -> PluginManifest:
    """Parse and validate one ``plugin-manifest.yaml`` file.

    Relative executable paths are resolved against the manifest's
    directory.

    Raises:
        ManifestValidationError: If the manifest is invalid.
        ValueError: If the file is not a YAML mapping.
        OSError: If the file cannot be read.
        yaml.YAMLError: If the file is not valid YAML.
    """
    content = manifest_path.read_text(encoding="utf-8")
    data = yaml.safe_load(content)
    if not isinstance(data, dict):
        raise ValueError("manifest must be a YAML mapping")

    try:
        manifest = PluginManifest.from_dict(data)
    except PermissionValidationError as exc:
        raise ManifestValidationError(
            str(data.get("name") or ""), "permissions", str(exc)
        ) from exc

    validate_manifest(manifest)

    if manifest.executable and not os.path.isabs(manifest.executable):
        manifest.executable = str(manifest_path.parent / manifest.executable)
    return manifest


class PluginRegistry:
    """Holds registered plugins and runs them by name.

    Usage:
        registry = PluginRegistry("~/.config/mycli/plugins", permission_manager=manager)
        registry.register(ExecPlugin())
        registry.discover_plugins()

        output = registry.execute(token, "aws-helper", PluginInput(command="whoami"))
    """

    def __init__(
        self,
        plugin_dir: str = "",
        permission_manager: Optional[PermissionManager] = None,
        executor: Optional[PluginExecutor] = None,
        discovery_strict: bool = False,
    ):
        self._plugin_dir = Path(plugin_dir).expanduser() if plugin_dir else None
        self._permission_manager = permission_manager
        self._executor = executor
        self._discovery_strict = discovery_strict
        self._plugins: Dict[str, Plugin] = {}
        self._manifests: Dict[str, PluginManifest] = {}
        self._lock = threading.RLock()

    @property
    def plugin_dir(self) -> Optional[Path]:
        return self._plugin_dir

    def register(self, plugin: Plugin) -> None:
        """Validate a plugin and add it under its manifest name.

        Raises:
            PluginRegistrationError: If the plugin fails validation, has no
                name, claims a built-in name without being built-in, or a
                plugin with the same name is registered.
        """
        try:
            plugin.validate()
        except Exception as exc:
            raise PluginRegistrationError(f"plugin validation failed: {exc}") from exc

        manifest = plugin.describe().manifest
        if not manifest.name:
            raise PluginRegistrationError("plugin name cannot be empty")
        if manifest.type != PluginType.BUILTIN and self._is_reserved(manifest.name):
            raise PluginRegistrationError(
                f"plugin name '{manifest.name}' is reserved for a built-in plugin"
            )

        with self._lock:
            if manifest.name in self._plugins:
                raise PluginRegistrationError(
                    f"plugin '{manifest.name}' is already registered"
                )
            self._plugins[manifest.name] = plugin
            self._manifests[manifest.name] = manifest

        logger.debug("Registered plugin '%s' (%s)", manifest.name, manifest.version)

    def unregister(self, name: str) -> None:
        """Remove a plugin and its manifest.

        Raises:
            PluginNotFoundError: If no plugin is registered under the name.
        """
        with self._lock:
            if name not in self._plugins:
                raise PluginNotFoundError(name)
            del self._plugins[name]
            self._manifests.pop(name, None)

    def get(self, name: str) -> Plugin:
        """Raises PluginNotFoundError for unknown names."""
        with self._lock:
            plugin = self._plugins.get(name)
        if plugin is None:
            raise PluginNotFoundError(name)
        return plugin

    def list(self) -> List[str]:
        """Names of all registered plugins, sorted."""
        with self._lock:
            return sorted(self._plugins)

    def get_manifest(self, name: str) -> PluginManifest:
        """Raises PluginNotFoundError for unknown names."""
        with self._lock:
            manifest = self._manifests.get(name)
        if manifest is None:
            raise PluginNotFoundError(name, what="manifest for plugin")
        return manifest

    def execute(
        self,
        cancel_token: CancelToken,
        name: str,
        plugin_input: PluginInput,
    ) -> PluginOutput:
        """Check a plugin's permissions and run it.

        Raises:
            PluginNotFoundError: If the plugin is not registered.
            PermissionDeniedError: If its permissions were not approved.
            PluginTimeoutError: If the executor's deadline passed.
            CancelledException: If the token was cancelled.
            PluginError: "execution failed", wrapping any other failure.
        """
        with self._lock:
            plugin = self._plugins.get(name)
            manifest = self._manifests.get(name)
        if plugin is None or manifest is None:
            raise PluginNotFoundError(name)

        if self._permission_manager is not None:
            try:
                self._permission_manager.check_permissions(
                    name, manifest.permissions, manifest.version
                )
            except PermissionDeniedError as exc:
                raise PermissionDeniedError(name, "permission denied", cause=exc) from exc

        try:
            if self._executor is not None:
                return self._executor.execute(cancel_token, plugin, plugin_input)
            return plugin.execute(cancel_token, plugin_input)
        except (PluginTimeoutError, CancelledException):
            raise
        except Exception as exc:
            raise PluginError(
                name,
                "execution failed",
                cause=exc,
                recoverable=getattr(exc, "recoverable", False),
            ) from exc

    def discover_plugins(self, strict: Optional[bool] = None) -> List[str]:
        """Load external plugins from ``plugin-manifest.yaml`` files.

        Walks the plugin directory recursively in sorted order. A missing
        directory is not an error. A manifest that cannot be loaded is
        logged and skipped, unless ``strict`` (or the registry's
        ``discovery_strict``) is set, in which case discovery stops there.

        Returns:
            Names of the plugins registered by this call.

        Raises:
            PluginDiscoveryError: In strict mode, for the first bad manifest.
        """
        if strict is None:
            strict = self._discovery_strict

        root = self._plugin_dir
        if root is None or not root.is_dir():
            logger.debug("Plugin directory %s does not exist; nothing to discover", root)
            return []

        discovered: List[str] = []
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames.sort()
            if MANIFEST_FILENAME not in filenames:
                continue

            manifest_path = Path(dirpath) / MANIFEST_FILENAME
            try:
                name = self._load_external_plugin(manifest_path)
            except Exception as exc:
                if strict:
                    raise PluginDiscoveryError(str(manifest_path), exc) from exc
                logger.warning("Skipping plugin manifest %s: %s", manifest_path, exc)
                continue
            discovered.append(name)

        logger.info("Discovered %d external plugin(s) in %s", len(discovered), root)
        return discovered

    def _load_external_plugin(self, manifest_path: Path) -> str:
        manifest = load_manifest(manifest_path)

        # Built-ins skip approval, so their names cannot come from disk.
        if self._is_reserved(manifest.name):
            raise PluginError(manifest.name, "name is reserved for a built-in plugin")

        if manifest.type == PluginType.BINARY:
            plugin = create_binary_plugin(manifest)
        elif manifest.type == PluginType.WASM:
            raise PluginError(manifest.name, "WASM plugins are not yet supported")
        else:
            raise PluginError(manifest.name, "builtin plugins cannot be loaded from a manifest")

        self.register(plugin)
        return manifest.name

    def _is_reserved(self, name: str) -> bool:
        return self._permission_manager is not None and self._permission_manager.is_builtin(name)

    def get_plugin_info(self, name: str) -> PluginInfo:
        """Describe a plugin, reporting ``pending_approval`` while any of its
        declared permissions has not been approved.

        Nothing is written to the permission store.
        """
        plugin = self.get(name)
        info = plugin.describe().copy()

        if (
            self._permission_manager is not None
            and info.status == PluginStatus.READY
            and not self._permission_manager.is_builtin(name)
        ):
            approved = self._permission_manager.get_approved_permissions(name) or []
            missing = PermissionManager.find_missing_permissions(
                info.manifest.permissions, approved
            )
            if missing:
                info.status = PluginStatus.PENDING_APPROVAL

        return info

    def list_plugin_info(self) -> List[PluginInfo]:
        """Describe every registered plugin, skipping ones that fail to."""
        infos: List[PluginInfo] = []
        for name in self.list():
            try:
                infos.append(self.get_plugin_info(name))
            except Exception as exc:
                logger.warning("Failed to describe plugin '%s': %s", name, exc)
        return infos
