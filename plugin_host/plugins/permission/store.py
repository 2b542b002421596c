"""Persistence for approved plugin permissions.

The store is the only durable artifact of the permission system: a YAML
document in the configuration directory mapping plugin names to the
permission strings the user approved.

File layout (``<config_dir>/plugin-permissions.yaml``)::

    plugins:
      aws-helper:
        approved_permissions:
          - execute:aws
          - read-env:AWS_PROFILE
        approved_at: '2024-05-01T10:00:00+00:00'
        last_used: '2024-05-02T08:30:00+00:00'
        version: 1.2.0
"""

import logging
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ..errors import PermissionStoreError

logger = logging.getLogger(__name__)

PERMISSIONS_FILENAME = "plugin-permissions.yaml"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


@dataclass
class ApprovedPlugin:
    """Permissions the user approved for one plugin.

    ``approved_permissions`` holds canonical permission strings, each at
    most once, in the order they were granted.
    """
    approved_permissions: List[str] = field(default_factory=list)
    approved_at: datetime = field(default_factory=_now)
    last_used: Optional[datetime] = None
    version: str = ""

    def add(self, permission: str) -> bool:
        """Add a permission string; returns False if it was already present."""
        if permission in self.approved_permissions:
            return False
        self.approved_permissions.append(permission)
        return True

    def copy(self) -> 'ApprovedPlugin':
        return ApprovedPlugin(
            approved_permissions=list(self.approved_permissions),
            approved_at=self.approved_at,
            last_used=self.last_used,
            version=self.version,
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "approved_permissions": list(self.approved_permissions),
            "approved_at": self.approved_at.isoformat(),
        }
        if self.last_used is not None:
            result["last_used"] = self.last_used.isoformat()
        if self.version:
            result["version"] = self.version
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ApprovedPlugin':
        approved: List[str] = []
        for perm in data.get("approved_permissions") or []:
            perm = str(perm)
            if perm not in approved:
                approved.append(perm)
        return cls(
            approved_permissions=approved,
            approved_at=_parse_timestamp(data.get("approved_at")) or _now(),
            last_used=_parse_timestamp(data.get("last_used")),
            version=str(data.get("version") or ""),
        )


class PermissionStore:
    """In-memory view of the permissions file plus load/save.

    The store itself is not synchronized; ``PermissionManager`` owns the
    lock that serializes every access and rewrite.
    """

    def __init__(self, config_dir: str):
        self._config_dir = Path(config_dir).expanduser()
        self.plugins: Dict[str, ApprovedPlugin] = {}

    @property
    def path(self) -> Path:
        """Location of the permissions file."""
        return self._config_dir / PERMISSIONS_FILENAME

    def load(self) -> None:
        """Replace the in-memory state with the file contents.

        A missing file leaves the store empty.

        Raises:
            PermissionStoreError: If the file cannot be read or parsed.
        """
        if not self.path.exists():
            logger.debug("No permissions file at %s", self.path)
            self.plugins = {}
            return

        try:
            content = self.path.read_text(encoding="utf-8")
            data = yaml.safe_load(content) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise PermissionStoreError(
                f"failed to load permissions from {self.path}: {exc}"
            ) from exc

        if not isinstance(data, dict):
            raise PermissionStoreError(
                f"permissions file {self.path} must contain a mapping"
            )

        plugins: Dict[str, ApprovedPlugin] = {}
        try:
            for name, entry in (data.get("plugins") or {}).items():
                if isinstance(entry, dict):
                    plugins[str(name)] = ApprovedPlugin.from_dict(entry)
        except (AttributeError, TypeError, ValueError) as exc:
            raise PermissionStoreError(
                f"failed to parse permissions file {self.path}: {exc}"
            ) from exc

        self.plugins = plugins
        logger.debug("Loaded approved permissions for %d plugin(s)", len(plugins))

    def save(self) -> None:
        """Rewrite the whole file with owner-only permissions.

        The directory is created with mode 0700 if needed; the file is
        written to a temporary sibling and moved into place.

        Raises:
            OSError: If the directory or file cannot be written.
        """
        self._config_dir.mkdir(mode=0o700, parents=True, exist_ok=True)

        document = {
            "plugins": {name: entry.to_dict() for name, entry in self.plugins.items()}
        }
        content = yaml.safe_dump(document, default_flow_style=False, sort_keys=True)

        fd, tmp_path = tempfile.mkstemp(
            prefix=".plugin-permissions-", suffix=".yaml", dir=str(self._config_dir)
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
