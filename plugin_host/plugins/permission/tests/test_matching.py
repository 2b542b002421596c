"""Tests for permission string validation and wildcard matching."""

import pytest

from ...errors import PermissionValidationError
from ..matching import match_permission, validate_permission


class TestValidatePermission:

    @pytest.mark.parametrize("permission", [
        "execute:aws",
        "read-env:HOME",
        "write-env:PATH",
        "read-file:/etc/hosts",
        "write-file:/tmp/*",
        "network:api.example.com",
        "credential",
        "credential:aws",
    ])
    def test_valid(self, permission):
        validate_permission(permission)

    def test_empty(self):
        with pytest.raises(PermissionValidationError, match="empty"):
            validate_permission("")

    def test_unknown_type(self):
        with pytest.raises(PermissionValidationError, match="invalid permission type: teleport"):
            validate_permission("teleport:moon")

    @pytest.mark.parametrize("permission", ["execute", "network:", "read-file"])
    def test_missing_resource(self, permission):
        with pytest.raises(PermissionValidationError, match="requires a resource"):
            validate_permission(permission)


class TestMatchPermission:

    def test_exact(self):
        assert match_permission("execute:aws", "execute:aws")

    def test_trailing_wildcard(self):
        assert match_permission("execute:*", "execute:aws")

    def test_inner_wildcard(self):
        assert match_permission("read:file:/home/*/data", "read:file:/home/user/data")

    def test_no_partial_token_match(self):
        assert not match_permission("execute:aw", "execute:aws")

    def test_multiple_wildcards_in_order(self):
        assert match_permission("read-file:/*/logs/*.log", "read-file:/var/logs/app.log")
        assert not match_permission("read-file:/*/logs/*.log", "read-file:/var/app.log")

    def test_wildcard_matches_empty(self):
        assert match_permission("execute:aws*", "execute:aws")

    def test_prefix_and_suffix_do_not_overlap(self):
        assert not match_permission("ab*ba", "aba")

    def test_different_type(self):
        assert not match_permission("execute:*", "network:aws")

    def test_star_only(self):
        assert match_permission("*", "anything:at-all")

    def test_no_escaping(self):
        assert match_permission("execute:\\*", "execute:\\anything")
