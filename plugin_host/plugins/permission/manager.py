"""Permission manager: gates plugin execution on approved capabilities.

Built-in plugins are trusted unconditionally. Every other plugin may only
run once each permission it declares has been approved, either earlier
(persisted in the permission store) or interactively through the
configured approver.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Dict, FrozenSet, Iterable, List, Optional

from ..errors import PermissionDeniedError
from ..types import Permission
from .approvers import PermissionApprover
from .matching import match_permission
from .store import ApprovedPlugin, PermissionStore

logger = logging.getLogger(__name__)

# Plugins compiled into the host; never prompted for.
BUILTIN_PLUGINS: FrozenSet[str] = frozenset({
    "exec",
    "file-ops",
    "validators",
    "transformers",
})


class PermissionManager:
    """Checks, grants and persists plugin permissions.

    All reads and writes of the store, including the file rewrite, happen
    under one lock, so a process has at most one writer. Nothing protects
    the file against concurrent writers in other processes.

    Usage:
        manager = PermissionManager("~/.config/mycli", approver=ConsoleApprover())
        manager.check_permissions("aws-helper", manifest.permissions)
    """

    def __init__(
        self,
        config_dir: str,
        approver: Optional[PermissionApprover] = None,
        builtin_plugins: Iterable[str] = BUILTIN_PLUGINS,
    ):
        """
        Raises:
            PermissionStoreError: If an existing permissions file is corrupt.
        """
        self._store = PermissionStore(config_dir)
        self._approver = approver
        self._builtin_plugins = frozenset(builtin_plugins)
        # Reentrant: check_permissions grants while holding the lock.
        self._lock = threading.RLock()
        self._store.load()

    @property
    def approver(self) -> Optional[PermissionApprover]:
        return self._approver

    def set_approver(self, approver: Optional[PermissionApprover]) -> None:
        with self._lock:
            self._approver = approver

    def is_builtin(self, plugin_name: str) -> bool:
        return plugin_name in self._builtin_plugins

    def check_permissions(
        self,
        plugin_name: str,
        permissions: List[Permission],
        version: str = "",
    ) -> None:
        """Ensure every declared permission is approved.

        Missing permissions are sent to the approver; approved ones are
        persisted together with the earlier grants. A successful check
        also refreshes the plugin's ``last_used`` time.

        Args:
            plugin_name: Plugin about to run.
            permissions: Permissions declared in its manifest.
            version: Plugin version, recorded with new grants.

        Raises:
            PermissionDeniedError: If approval is denied, fails, or no
                approver is configured.
        """
        if self.is_builtin(plugin_name):
            return

        with self._lock:
            approved = self._store.plugins.get(plugin_name)
            approved_strs = approved.approved_permissions if approved else []
            missing = self.find_missing_permissions(permissions, approved_strs)

            if missing:
                self._request_approval(plugin_name, missing)
                self._grant_locked(plugin_name, missing, version)

            record = self._store.plugins.get(plugin_name)
            if record is None:
                record = self._store.plugins[plugin_name] = ApprovedPlugin(version=version)
            record.last_used = datetime.now(timezone.utc)
            self._save_quietly("update last used time")

    def grant_permissions(
        self,
        plugin_name: str,
        permissions: List[Permission],
        version: str = "",
    ) -> None:
        """Grant permissions to a plugin without asking.

        Granting the same permission twice stores it once.
        """
        with self._lock:
            self._grant_locked(plugin_name, permissions, version)

    def revoke_permissions(self, plugin_name: str) -> bool:
        """Forget every permission approved for a plugin.

        Returns:
            True if the plugin had approved permissions.
        """
        with self._lock:
            existed = self._store.plugins.pop(plugin_name, None) is not None
            self._save_quietly("revoke permissions")
            return existed

    def list_approved_plugins(self) -> Dict[str, ApprovedPlugin]:
        """Return copies of every approved-plugin record."""
        with self._lock:
            return {name: entry.copy() for name, entry in self._store.plugins.items()}

    def get_approved_permissions(self, plugin_name: str) -> Optional[List[str]]:
        """Return the approved permission strings, or None if never approved."""
        with self._lock:
            approved = self._store.plugins.get(plugin_name)
            if approved is None:
                return None
            return list(approved.approved_permissions)

    def has_permission(self, plugin_name: str, request: str) -> bool:
        """Check a concrete request (e.g. ``execute:aws``) against stored grants.

        Stored grants may contain ``*`` wildcards; they are interpreted here
        and nowhere else.
        """
        if self.is_builtin(plugin_name):
            return True
        with self._lock:
            approved = self._store.plugins.get(plugin_name)
            if approved is None:
                return False
            return any(match_permission(p, request) for p in approved.approved_permissions)

    @staticmethod
    def find_missing_permissions(
        required: Iterable[Permission],
        approved: Iterable[str],
    ) -> List[Permission]:
        """Return required permissions whose canonical string is not approved."""
        approved_set = set(approved)
        missing: List[Permission] = []
        seen = set()
        for perm in required:
            key = str(perm)
            if key in approved_set or key in seen:
                continue
            seen.add(key)
            missing.append(perm)
        return missing

    def _request_approval(self, plugin_name: str, missing: List[Permission]) -> None:
        if self._approver is None:
            raise PermissionDeniedError(plugin_name, "no permission approver configured")

        try:
            granted = self._approver.request_approval(plugin_name, missing)
        except Exception as exc:
            raise PermissionDeniedError(
                plugin_name, "failed to request approval", cause=exc
            ) from exc

        if not granted:
            logger.info("Permissions for plugin '%s' denied by user", plugin_name)
            raise PermissionDeniedError(plugin_name, "permission denied by user")

    def _grant_locked(
        self,
        plugin_name: str,
        permissions: List[Permission],
        version: str,
    ) -> None:
        approved = self._store.plugins.get(plugin_name)
        if approved is None:
            approved = ApprovedPlugin()
            self._store.plugins[plugin_name] = approved

        for perm in permissions:
            approved.add(str(perm))

        approved.approved_at = datetime.now(timezone.utc)
        if version:
            approved.version = version

        logger.debug(
            "Granted %s to plugin '%s'",
            ", ".join(str(p) for p in permissions) or "no permissions", plugin_name,
        )
        self._save_quietly("save granted permissions")

    def _save_quietly(self, action: str) -> None:
        # Write failures are logged, never raised.
        try:
            self._store.save()
        except OSError as exc:
            logger.warning("Failed to %s: %s", action, exc)
