"""Value types shared across the plugin host.

These dataclasses describe what crosses the plugin capability boundary:
permissions, manifests, and the per-call input and output objects. They
carry no behavior beyond conversion to and from plain dicts (for YAML
manifests and the binary plugin wire protocol).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .errors import ManifestValidationError, PermissionValidationError


class PluginType(Enum):
    """Closed set of plugin variants."""
    BUILTIN = "builtin"   # Compiled into the host
    BINARY = "binary"     # External executable speaking JSON-RPC over stdio
    WASM = "wasm"         # Reserved; manifests validate but cannot run


class PermissionType(Enum):
    """Capabilities a plugin can request."""
    EXECUTE = "execute"
    READ_ENV = "read-env"
    WRITE_ENV = "write-env"
    READ_FILE = "read-file"
    WRITE_FILE = "write-file"
    NETWORK = "network"
    CREDENTIAL = "credential"

    @property
    def requires_resource(self) -> bool:
        return self is not PermissionType.CREDENTIAL


@dataclass(frozen=True)
class Permission:
    """A capability request, e.g. ``execute:aws``.

    The canonical string form (``str(permission)``) is what gets compared
    and stored; the description only helps the user decide.
    """
    type: PermissionType
    resource: str = ""
    description: str = ""

    def __str__(self) -> str:
        if self.resource:
            return f"{self.type.value}:{self.resource}"
        return self.type.value

    @classmethod
    def parse(cls, text: str, description: str = "") -> 'Permission':
        """Build a Permission from its canonical string form.

        Raises:
            PermissionValidationError: If the string is malformed.
        """
        from .permission.matching import validate_permission

        validate_permission(text)
        type_str, _, resource = text.partition(":")
        return cls(PermissionType(type_str), resource, description)

    @classmethod
    def from_dict(cls, data: Any) -> 'Permission':
        """Build a Permission from a manifest entry.

        Accepts either a canonical string or a mapping with ``type``,
        ``resource`` and ``description`` keys.
        """
        if isinstance(data, str):
            return cls.parse(data)
        if not isinstance(data, dict):
            raise PermissionValidationError(f"invalid permission entry: {data!r}")
        type_str = str(data.get("type") or "")
        resource = str(data.get("resource") or "")
        text = f"{type_str}:{resource}" if resource else type_str
        return cls.parse(text, description=str(data.get("description") or ""))

    def to_dict(self) -> Dict[str, str]:
        result = {"type": self.type.value}
        if self.resource:
            result["resource"] = self.resource
        if self.description:
            result["description"] = self.description
        return result


@dataclass
class PluginManifest:
    """Metadata and requirements of a plugin.

    Built by a plugin's describe() (built-ins) or parsed from a
    ``plugin-manifest.yaml`` file (external plugins).
    """
    name: str
    version: str
    type: Optional[PluginType] = None
    description: str = ""
    author: str = ""
    executable: str = ""
    entrypoint: str = ""
    permissions: List[Permission] = field(default_factory=list)
    metadata: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PluginManifest':
        """Create a manifest from parsed YAML.

        Missing fields become empty values so that validation can report
        them by name.

        Raises:
            ManifestValidationError: If the plugin type is unknown.
            PermissionValidationError: If a permission entry is malformed.
        """
        name = str(data.get("name") or "")
        type_str = data.get("type")
        try:
            plugin_type = PluginType(type_str) if type_str else None
        except ValueError:
            raise ManifestValidationError(name, "type", f"unknown plugin type: {type_str}")

        return cls(
            name=name,
            version=str(data.get("version") or ""),
            type=plugin_type,
            description=str(data.get("description") or ""),
            author=str(data.get("author") or ""),
            executable=str(data.get("executable") or ""),
            entrypoint=str(data.get("entrypoint") or ""),
            permissions=[Permission.from_dict(p) for p in data.get("permissions") or []],
            metadata={str(k): str(v) for k, v in (data.get("metadata") or {}).items()},
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "name": self.name,
            "version": self.version,
            "type": self.type.value if self.type else "",
            "permissions": [p.to_dict() for p in self.permissions],
        }
        for key in ("description", "author", "executable", "entrypoint"):
            value = getattr(self, key)
            if value:
                result[key] = value
        if self.metadata:
            result["metadata"] = dict(self.metadata)
        return result


@dataclass
class PluginInput:
    """Input passed to a plugin for a single call.

    Attributes:
        command: Plugin command to execute.
        args: Command-line arguments.
        env: Environment variables to set for the call.
        data: Arbitrary structured input.
        files: Named file paths for file operations.
        stdin: Text fed to standard input.
        timeout: Requested timeout in seconds (0 means use the default).
        working_dir: Working directory for the call.
    """
    command: str = ""
    args: List[str] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)
    data: Dict[str, Any] = field(default_factory=dict)
    files: Dict[str, str] = field(default_factory=dict)
    stdin: str = ""
    timeout: float = 0.0
    working_dir: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for the JSON-RPC ``params`` field, omitting empty values."""
        result: Dict[str, Any] = {}
        for key in ("command", "args", "env", "data", "files", "stdin", "working_dir"):
            value = getattr(self, key)
            if value:
                result[key] = value
        if self.timeout:
            result["timeout"] = self.timeout
        return result


@dataclass
class PluginOutput:
    """Result of a plugin call.

    Attributes:
        stdout: Standard output.
        stderr: Standard error output.
        exit_code: Exit code (for command execution).
        data: Structured output data.
        error: Error text if the call failed.
        duration: Wall-clock duration in seconds, stamped by the executor.
        metadata: Additional execution metadata.
    """
    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0
    data: Dict[str, Any] = field(default_factory=dict)
    error: str = ""
    duration: float = 0.0
    metadata: Dict[str, str] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.exit_code == 0 and self.error == ""

    def _get(self, key: str, types: Tuple[type, ...]) -> Tuple[Any, bool]:
        if not self.data or key not in self.data:
            return None, False
        value = self.data[key]
        # bool is an int subclass; keep the two apart.
        if isinstance(value, bool) and bool not in types:
            return None, False
        if isinstance(value, types):
            return value, True
        return None, False

    def get_string(self, key: str) -> Tuple[str, bool]:
        value, ok = self._get(key, (str,))
        return (value, True) if ok else ("", False)

    def get_int(self, key: str) -> Tuple[int, bool]:
        value, ok = self._get(key, (int, float))
        return (int(value), True) if ok else (0, False)

    def get_bool(self, key: str) -> Tuple[bool, bool]:
        value, ok = self._get(key, (bool,))
        return (value, True) if ok else (False, False)

    def get_map(self, key: str) -> Tuple[Dict[str, Any], bool]:
        value, ok = self._get(key, (dict,))
        return (value, True) if ok else ({}, False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stdout": self.stdout,
            "stderr": self.stderr,
            "exit_code": self.exit_code,
            "data": dict(self.data),
            "error": self.error,
            "duration": self.duration,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PluginOutput':
        """Build an output from a JSON-RPC ``result`` object.

        Raises:
            ValueError: If ``exit_code`` is present but not an integer.
        """
        raw_data = data.get("data")
        raw_meta = data.get("metadata")
        exit_code = data.get("exit_code")
        if exit_code is None:
            exit_code = 0
        elif isinstance(exit_code, bool) or not isinstance(exit_code, int):
            raise ValueError(f"exit_code must be an integer, got {exit_code!r}")
        return cls(
            stdout=str(data.get("stdout") or ""),
            stderr=str(data.get("stderr") or ""),
            exit_code=exit_code,
            data=raw_data if isinstance(raw_data, dict) else {},
            error=str(data.get("error") or ""),
            metadata={str(k): str(v) for k, v in raw_meta.items()} if isinstance(raw_meta, dict) else {},
        )
