"""
auth/policy.py -- Role- and ownership-based authorization decisions.

Every authorization rule in the application is answered by is_allowed().
The named helpers (can_read_single, can_delete_annotation, ...) are thin
wrappers over it so call sites read naturally while the rule set stays in
one table.

Pure functions: no I/O, no persistence, no ambient "current user". The
caller is always passed in explicitly.

Field-level visibility:
  project_for_role() returns a role-filtered copy of a resource view. The
  sensitive fields are omitted entirely for non-admins (not set to None), so
  a client cannot distinguish "hidden" from "absent". Projection is
  idempotent -- projecting an already projected view changes nothing.

Layer rule: no imports from api/ or deals/. Resources and notes are accepted
structurally (anything with owner_id / user_id).
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any, Optional, Protocol

from auth.models import Caller, Role
from core.errors import AccessDenied

# Fields only ADMIN may see or write.
SENSITIVE_FIELDS: frozenset[str] = frozenset({"deal_value"})


class Capability(str, Enum):
    READ_RESOURCE = "read_resource"
    MODIFY_RESOURCE = "modify_resource"
    DELETE_RESOURCE = "delete_resource"
    LIST_ALL_RESOURCES = "list_all_resources"
    WRITE_SENSITIVE_FIELD = "write_sensitive_field"
    DELETE_ANNOTATION = "delete_annotation"
    MANAGE_USERS = "manage_users"


# Capabilities granted to the owner of the object in question. Everything
# not listed here is ADMIN-only; ADMIN holds every capability.
_OWNER_CAPABILITIES: frozenset[Capability] = frozenset(
    {
        Capability.READ_RESOURCE,
        Capability.MODIFY_RESOURCE,
        Capability.DELETE_ANNOTATION,
    }
)


class OwnedResource(Protocol):
    owner_id: int


class Annotation(Protocol):
    user_id: int


def is_allowed(caller: Caller, capability: Capability, owner_id: Optional[int] = None) -> bool:
    """Return True if caller holds capability over an object owned by owner_id."""
    if caller.role is Role.ADMIN:
        return True
    if capability in _OWNER_CAPABILITIES:
        return owner_id is not None and caller.user_id == owner_id
    return False


def require(caller: Caller, capability: Capability, owner_id: Optional[int] = None, message: str | None = None) -> None:
    """Raise AccessDenied unless is_allowed()."""
    if not is_allowed(caller, capability, owner_id):
        raise AccessDenied(message)


# ---------------------------------------------------------------------------
# Named checks
# ---------------------------------------------------------------------------


def can_read_single(resource: OwnedResource, caller: Caller) -> bool:
    return is_allowed(caller, Capability.READ_RESOURCE, resource.owner_id)


def can_modify(resource: OwnedResource, caller: Caller) -> bool:
    return is_allowed(caller, Capability.MODIFY_RESOURCE, resource.owner_id)


def can_write_sensitive_field(caller: Caller) -> bool:
    return is_allowed(caller, Capability.WRITE_SENSITIVE_FIELD)


def can_delete_annotation(annotation: Annotation, caller: Caller) -> bool:
    return is_allowed(caller, Capability.DELETE_ANNOTATION, annotation.user_id)


# ---------------------------------------------------------------------------
# Projection
# ---------------------------------------------------------------------------


def project_for_role(view: Mapping[str, Any], role: Role) -> dict[str, Any]:
    """Return the role-appropriate copy of a resource view."""
    if Role(role) is Role.ADMIN:
        return dict(view)
    return {key: value for key, value in view.items() if key not in SENSITIVE_FIELDS}
