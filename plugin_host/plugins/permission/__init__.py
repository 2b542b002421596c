"""Capability-based permission system for plugins.

Plugins declare the permissions they need in their manifest; the
PermissionManager makes sure the user approved them before the plugin
runs, asking through a PermissionApprover when needed, and remembers the
answer in a YAML file in the configuration directory.

Usage:
    from plugin_host.plugins.permission import PermissionManager, ConsoleApprover

    manager = PermissionManager(config_dir, approver=ConsoleApprover())
    manager.check_permissions("aws-helper", manifest.permissions)
"""

from .approvers import (
    AutoApprover,
    ConsoleApprover,
    DenyApprover,
    PermissionApprover,
    create_approver,
)
from .manager import BUILTIN_PLUGINS, PermissionManager
from .matching import match_permission, validate_permission
from .store import PERMISSIONS_FILENAME, ApprovedPlugin, PermissionStore

__all__ = [
    'ApprovedPlugin',
    'AutoApprover',
    'BUILTIN_PLUGINS',
    'ConsoleApprover',
    'DenyApprover',
    'PERMISSIONS_FILENAME',
    'PermissionApprover',
    'PermissionManager',
    'PermissionStore',
    'create_approver',
    'match_permission',
    'validate_permission',
]
