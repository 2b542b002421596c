"""Tests for PermissionManager."""

from typing import List
from unittest.mock import MagicMock

import pytest

from ...errors import PermissionDeniedError, PermissionStoreError
from ...types import Permission, PermissionType
from ..approvers import AutoApprover, PermissionApprover
from ..manager import BUILTIN_PLUGINS, PermissionManager
from ..store import PERMISSIONS_FILENAME


class RecordingApprover(PermissionApprover):
    """Approver that answers from a fixed value and remembers each request."""

    def __init__(self, answer: bool = True, error: Exception = None):
        self.answer = answer
        self.error = error
        self.requests: List[tuple] = []

    @property
    def name(self) -> str:
        return "recording"

    def request_approval(self, plugin_name, permissions):
        self.requests.append((plugin_name, [str(p) for p in permissions]))
        if self.error is not None:
            raise self.error
        return self.answer


PERMS = [
    Permission(PermissionType.EXECUTE, "aws", "Run the AWS CLI"),
    Permission(PermissionType.READ_ENV, "AWS_PROFILE"),
]


class TestBuiltins:

    @pytest.mark.parametrize("name", sorted(BUILTIN_PLUGINS))
    def test_builtins_never_prompt(self, tmp_path, name):
        approver = RecordingApprover(answer=False)
        manager = PermissionManager(str(tmp_path), approver=approver)

        manager.check_permissions(name, PERMS)

        assert approver.requests == []
        assert manager.get_approved_permissions(name) is None

    def test_builtin_has_every_permission(self, tmp_path):
        manager = PermissionManager(str(tmp_path))
        assert manager.has_permission("exec", "network:anywhere")

    def test_custom_builtin_list(self, tmp_path):
        manager = PermissionManager(str(tmp_path), builtin_plugins=["mine"])
        assert manager.is_builtin("mine")
        assert not manager.is_builtin("exec")


class TestCheckPermissions:

    def test_first_check_grants_exactly_declared(self, tmp_path):
        manager = PermissionManager(str(tmp_path), approver=AutoApprover())

        manager.check_permissions("aws-helper", PERMS, version="1.2.0")

        assert manager.get_approved_permissions("aws-helper") == [str(p) for p in PERMS]
        record = manager.list_approved_plugins()["aws-helper"]
        assert record.version == "1.2.0"
        assert record.last_used is not None

    def test_only_missing_permissions_requested(self, tmp_path):
        approver = RecordingApprover()
        manager = PermissionManager(str(tmp_path), approver=approver)
        manager.grant_permissions("aws-helper", PERMS[:1])

        manager.check_permissions("aws-helper", PERMS)

        assert approver.requests == [("aws-helper", ["read-env:AWS_PROFILE"])]

    def test_approved_plugin_not_prompted_again(self, tmp_path):
        approver = RecordingApprover()
        manager = PermissionManager(str(tmp_path), approver=approver)

        manager.check_permissions("p", PERMS)
        manager.check_permissions("p", PERMS)

        assert len(approver.requests) == 1

    def test_check_refreshes_last_used(self, tmp_path):
        manager = PermissionManager(str(tmp_path), approver=AutoApprover())
        manager.check_permissions("p", PERMS)
        first = manager.list_approved_plugins()["p"].last_used

        manager.check_permissions("p", PERMS)

        assert manager.list_approved_plugins()["p"].last_used >= first

    def test_check_without_permissions_creates_record(self, tmp_path):
        manager = PermissionManager(str(tmp_path))

        manager.check_permissions("quiet", [])

        assert manager.get_approved_permissions("quiet") == []

    def test_denial_grants_nothing(self, tmp_path):
        manager = PermissionManager(str(tmp_path), approver=RecordingApprover(answer=False))

        with pytest.raises(PermissionDeniedError) as exc_info:
            manager.check_permissions("p", PERMS)

        assert exc_info.value.plugin_name == "p"
        assert not exc_info.value.recoverable
        assert "denied by user" in str(exc_info.value)
        assert manager.get_approved_permissions("p") is None

    def test_no_approver(self, tmp_path):
        manager = PermissionManager(str(tmp_path))

        with pytest.raises(PermissionDeniedError, match="no permission approver configured"):
            manager.check_permissions("p", PERMS)

    def test_approver_failure(self, tmp_path):
        approver = RecordingApprover(error=RuntimeError("terminal gone"))
        manager = PermissionManager(str(tmp_path), approver=approver)

        with pytest.raises(PermissionDeniedError, match="failed to request approval") as exc_info:
            manager.check_permissions("p", PERMS)
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    def test_set_approver(self, tmp_path):
        manager = PermissionManager(str(tmp_path))
        manager.set_approver(AutoApprover())
        manager.check_permissions("p", PERMS)
        assert manager.get_approved_permissions("p") is not None


class TestGrantAndRevoke:

    def test_grant_is_idempotent(self, tmp_path):
        manager = PermissionManager(str(tmp_path))

        manager.grant_permissions("p", PERMS)
        manager.grant_permissions("p", PERMS)

        assert manager.get_approved_permissions("p") == [str(p) for p in PERMS]

    def test_grants_survive_a_new_manager(self, tmp_path):
        PermissionManager(str(tmp_path)).grant_permissions("p", PERMS, version="2.0.0")

        second = PermissionManager(str(tmp_path))

        assert second.get_approved_permissions("p") == [str(p) for p in PERMS]
        assert second.list_approved_plugins()["p"].version == "2.0.0"

    def test_revoke(self, tmp_path):
        manager = PermissionManager(str(tmp_path))
        manager.grant_permissions("p", PERMS)

        assert manager.revoke_permissions("p")
        assert not manager.revoke_permissions("p")
        assert manager.get_approved_permissions("p") is None
        assert PermissionManager(str(tmp_path)).get_approved_permissions("p") is None

    def test_list_returns_copies(self, tmp_path):
        manager = PermissionManager(str(tmp_path))
        manager.grant_permissions("p", PERMS)

        manager.list_approved_plugins()["p"].approved_permissions.clear()

        assert len(manager.get_approved_permissions("p")) == 2

    def test_write_failure_does_not_fail_grant(self, tmp_path, caplog):
        manager = PermissionManager(str(tmp_path))
        manager._store.save = MagicMock(side_effect=OSError("read-only file system"))

        manager.grant_permissions("p", PERMS)

        assert manager.get_approved_permissions("p") == [str(p) for p in PERMS]
        assert "read-only file system" in caplog.text

    def test_corrupt_store_raises(self, tmp_path):
        (tmp_path / PERMISSIONS_FILENAME).write_text("plugins: [unclosed\n")
        with pytest.raises(PermissionStoreError):
            PermissionManager(str(tmp_path))


class TestHasPermission:

    def test_wildcard_grant_matches_request(self, tmp_path):
        manager = PermissionManager(str(tmp_path))
        manager.grant_permissions("p", [Permission(PermissionType.EXECUTE, "*")])

        assert manager.has_permission("p", "execute:aws")
        assert not manager.has_permission("p", "network:aws")

    def test_unknown_plugin(self, tmp_path):
        assert not PermissionManager(str(tmp_path)).has_permission("p", "execute:aws")


class TestFindMissingPermissions:

    def test_exact_match_only(self):
        missing = PermissionManager.find_missing_permissions(
            PERMS, ["execute:*", "read-env:AWS_PROFILE"]
        )
        assert [str(p) for p in missing] == ["execute:aws"]

    def test_duplicates_collapsed(self):
        missing = PermissionManager.find_missing_permissions(PERMS + PERMS, [])
        assert len(missing) == 2
