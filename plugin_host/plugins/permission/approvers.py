"""Approver protocol and implementations for interactive permission grants.

Approvers are consulted by the PermissionManager when a plugin declares
permissions the user has not approved yet. They can prompt the user, or
answer automatically (tests, non-interactive pipelines).
"""

import logging
import sys
from abc import ABC, abstractmethod
from typing import List, Optional, TextIO

from rich.console import Console
from rich.prompt import Confirm
from rich.text import Text

from ..types import Permission

logger = logging.getLogger(__name__)


class PermissionApprover(ABC):
    """Base class for permission approvers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Approver type identifier (e.g., "console")."""
        ...

    @abstractmethod
    def request_approval(self, plugin_name: str, permissions: List[Permission]) -> bool:
        """Ask whether the plugin may be granted the given permissions.

        Args:
            plugin_name: Plugin requesting the permissions.
            permissions: Only the permissions not approved yet.

        Returns:
            True if every listed permission is granted.

        Raises:
            Exception: If the approval could not be obtained at all; the
                manager reports this as a denial.
        """
        ...


class ConsoleApprover(PermissionApprover):
    """Approver that prompts the user in the terminal.

    The request is rendered on stderr so that plugin output on stdout
    stays clean. Anything but an explicit yes (including end of input or
    Ctrl-C) counts as a denial.
    """

    def __init__(self, console: Optional[Console] = None, stream: Optional[TextIO] = None):
        """
        Args:
            console: Console to render on (defaults to a stderr console).
            stream: Optional input stream to read the answer from (tests).
        """
        self._console = console or Console(stderr=True, highlight=False)
        self._stream = stream

    @property
    def name(self) -> str:
        return "console"

    def request_approval(self, plugin_name: str, permissions: List[Permission]) -> bool:
        console = self._console
        console.print()
        console.print(
            Text.assemble(
                ("Plugin ", "bold"),
                (f"'{plugin_name}'", "bold yellow"),
                (" requests the following permissions:", "bold"),
            )
        )
        console.print()
        for perm in permissions:
            line = Text("  • ")
            line.append(str(perm), style="cyan")
            if perm.description:
                line.append(f" - {perm.description}", style="dim")
            console.print(line)
        console.print()

        try:
            granted = Confirm.ask(
                "Grant these permissions?",
                console=console,
                default=False,
                stream=self._stream,
            )
        except (EOFError, KeyboardInterrupt):
            console.print()
            granted = False

        logger.debug("Console approval for '%s': %s", plugin_name, granted)
        return bool(granted)


class AutoApprover(PermissionApprover):
    """Approves everything. Intended for tests and trusted automation."""

    @property
    def name(self) -> str:
        return "auto"

    def request_approval(self, plugin_name: str, permissions: List[Permission]) -> bool:
        logger.info(
            "Auto-approving %d permission(s) for plugin '%s'",
            len(permissions), plugin_name,
        )
        return True


class DenyApprover(PermissionApprover):
    """Denies everything. Useful for non-interactive runs."""

    @property
    def name(self) -> str:
        return "deny"

    def request_approval(self, plugin_name: str, permissions: List[Permission]) -> bool:
        logger.info(
            "Denying %d unapproved permission(s) for plugin '%s'",
            len(permissions), plugin_name,
        )
        return False


_APPROVER_TYPES = {
    "console": ConsoleApprover,
    "auto": AutoApprover,
    "deny": DenyApprover,
}


def create_approver(kind: str = "console") -> PermissionApprover:
    """Factory function to create an approver by type name.

    A console approver is only useful with a terminal attached; when stdin
    is not a TTY it is replaced by a DenyApprover.

    Raises:
        ValueError: If the approver type is unknown.
    """
    kind = (kind or "console").lower()
    if kind not in _APPROVER_TYPES:
        raise ValueError(
            f"Unknown approver type: {kind}. Available: {sorted(_APPROVER_TYPES)}"
        )
    if kind == "console" and not sys.stdin.isatty():
        logger.warning("stdin is not a terminal; denying unapproved permissions")
        return DenyApprover()
    return _APPROVER_TYPES[kind]()
