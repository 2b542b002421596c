"""Permission string validation and wildcard matching."""

from ..errors import PermissionValidationError
from ..types import PermissionType


def validate_permission(permission: str) -> None:
    """Check that a permission string is well formed.

    The format is ``type[:resource]``. Every type except ``credential``
    needs a non-empty resource.

    Raises:
        PermissionValidationError: If the string is empty, names an unknown
            type, or lacks a required resource.
    """
    if not permission:
        raise PermissionValidationError("empty permission string")

    type_str, sep, resource = permission.partition(":")
    try:
        perm_type = PermissionType(type_str)
    except ValueError:
        raise PermissionValidationError(f"invalid permission type: {type_str}") from None

    if perm_type.requires_resource and not (sep and resource):
        raise PermissionValidationError(
            f"permission type {perm_type.value} requires a resource"
        )


def match_permission(pattern: str, request: str) -> bool:
    """Check whether a stored permission pattern covers a request.

    ``*`` matches any run of characters (including none). There is no
    escaping and there are no character classes.

    Examples:
        match_permission("execute:*", "execute:aws")      -> True
        match_permission("execute:aw", "execute:aws")     -> False
    """
    if pattern == request:
        return True
    if "*" not in pattern:
        return False
    return _match_wildcard(pattern, request)


def _match_wildcard(pattern: str, text: str) -> bool:
    parts = pattern.split("*")
    head, tail = parts[0], parts[-1]

    if not text.startswith(head):
        return False
    text = text[len(head):]

    # Prefix and suffix must not overlap.
    if len(text) < len(tail) or not text.endswith(tail):
        return False
    text = text[:len(text) - len(tail)]

    for part in parts[1:-1]:
        idx = text.find(part)
        if idx < 0:
            return False
        text = text[idx + len(part):]

    return True
