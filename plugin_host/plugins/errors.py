"""Error taxonomy for plugin registration, authorization and execution.

- Validation errors (manifest fields, permission strings) are fatal and
  never retried.
- Permission-denied errors are fatal and carry the plugin name.
- Execution errors may be flagged recoverable by the plugin or the caller;
  only those are retried by the executor.
- Timeout errors are execution errors with a remediation suggestion.
- Discovery errors wrap a failure to load one external manifest.
"""

from typing import Optional


class PluginError(Exception):
    """An error raised on behalf of a named plugin.

    Attributes:
        plugin_name: Name of the plugin the error belongs to.
        message: Short description of what failed.
        cause: Underlying exception, if any.
        recoverable: Whether the executor may retry the call.
        suggestion: Optional hint for resolving the error.
    """

    def __init__(
        self,
        plugin_name: str,
        message: str,
        cause: Optional[BaseException] = None,
        recoverable: bool = False,
        suggestion: str = "",
    ):
        self.plugin_name = plugin_name
        self.message = message
        self.cause = cause
        self.recoverable = recoverable
        self.suggestion = suggestion
        super().__init__(self._format())
        if cause is not None:
            self.__cause__ = cause

    def _format(self) -> str:
        if self.cause is not None:
            return f"plugin '{self.plugin_name}': {self.message}: {self.cause}"
        return f"plugin '{self.plugin_name}': {self.message}"

    def with_suggestion(self, suggestion: str) -> 'PluginError':
        """Attach a suggestion and return self for chaining."""
        self.suggestion = suggestion
        return self

    def as_recoverable(self) -> 'PluginError':
        """Mark the error as retry-eligible and return self for chaining."""
        self.recoverable = True
        return self


class PermissionDeniedError(PluginError):
    """The plugin's declared permissions were not approved."""

    def __init__(self, plugin_name: str, message: str = "permission denied",
                 cause: Optional[BaseException] = None):
        super().__init__(plugin_name, message, cause=cause, recoverable=False)

    def as_recoverable(self) -> 'PluginError':
        # Denials are never retried.
        return self


class PluginTimeoutError(PluginError):
    """The plugin did not finish before its execution deadline."""

    DEFAULT_SUGGESTION = "Increase timeout or simplify the operation"

    def __init__(self, plugin_name: str, timeout: float,
                 cause: Optional[BaseException] = None):
        self.timeout = timeout
        super().__init__(
            plugin_name,
            f"execution timed out after {timeout:g}s",
            cause=cause,
            suggestion=self.DEFAULT_SUGGESTION,
        )


class PluginNotFoundError(LookupError):
    """No plugin (or manifest) is registered under the requested name."""

    def __init__(self, name: str, what: str = "plugin"):
        self.name = name
        super().__init__(f"{what} '{name}' not found")


class PluginRegistrationError(ValueError):
    """A plugin could not be added to the registry."""


class PluginDiscoveryError(Exception):
    """An external plugin manifest could not be loaded."""

    def __init__(self, manifest_path: str, cause: BaseException):
        self.manifest_path = manifest_path
        self.cause = cause
        super().__init__(f"failed to load plugin from {manifest_path}: {cause}")
        self.__cause__ = cause


class ValidationError(ValueError):
    """A plugin failed validation on a specific field."""

    def __init__(self, plugin: str, field: str, message: str):
        self.plugin = plugin
        self.field = field
        self.message = message
        super().__init__(
            f"plugin '{plugin}': validation failed for '{field}': {message}"
        )


class ManifestValidationError(ValidationError):
    """A plugin manifest is missing a field or declares invalid values."""


class PermissionValidationError(ValueError):
    """A permission string is malformed."""


class PermissionStoreError(Exception):
    """The approved-permissions file could not be read or parsed."""
