"""Base protocol for plugins."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import List, Optional, Protocol, runtime_checkable

from .cancel import CancelToken
from .types import PluginInput, PluginManifest, PluginOutput


class PluginStatus(Enum):
    """Operational status reported by describe()."""
    READY = "ready"
    DISABLED = "disabled"
    ERROR = "error"
    PENDING_APPROVAL = "pending_approval"


@dataclass
class PluginInfo:
    """Self-description of a plugin.

    Attributes:
        manifest: The plugin's manifest.
        capabilities: Free-form capability tags (e.g., "execute").
        status: Current operational status.
        last_used: When the plugin last ran, if known.
    """
    manifest: PluginManifest
    capabilities: List[str] = field(default_factory=list)
    status: PluginStatus = PluginStatus.READY
    last_used: Optional[datetime] = None

    def copy(self) -> 'PluginInfo':
        return replace(self, capabilities=list(self.capabilities))


@runtime_checkable
class Plugin(Protocol):
    """Interface that all plugins must implement.

    The registry and executor only ever talk to plugins through these three
    methods, whatever the plugin variant (built-in, binary, wasm).
    """

    def execute(self, cancel_token: CancelToken, plugin_input: PluginInput) -> PluginOutput:
        """Run the plugin once.

        Implementations should watch ``cancel_token`` (poll it, wait on it, or
        register an on_cancel callback) and stop promptly when it fires.

        Raises:
            PluginError: On failure; set ``recoverable`` if a retry may help.
        """
        ...

    def validate(self) -> None:
        """Check that the plugin is configured and ready to execute.

        Raises:
            Exception: Describing why the plugin cannot run.
        """
        ...

    def describe(self) -> PluginInfo:
        """Return metadata about the plugin, including its manifest."""
        ...
