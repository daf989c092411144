# Overview: Role-name canonicalisation, role-table loading and permission checks.

"""
Permission Resolution and Denial Auditing

WHY: Role names reach us from an external identity service and from older
data, spelled many ways ("QA Tester", "qa_tester", "QA-Testers"). Names are
canonicalised ONCE when the role table is built, so a lookup is a single
dict hit on the canonical key.

DESIGN PRINCIPLES:
- Fail closed: no roles, unknown roles, or empty permission lists grant nothing
- A check succeeds if ANY of the caller's roles grants the permission
- Database roles override built-in roles with the same canonical key
- Log denials only: permission grants are not logged
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, Mapping

from ..extensions import db
from ..models import Role, RolePermission, AuditEvent
from ..permissions import (
    DEFAULT_ROLE_PERMISSIONS,
    ADMIN_PERMISSION_IDENTIFIERS,
    validate_permission_code,
)
from ..validation import ValidationError
from certflow.time_utils import utcnow


logger = logging.getLogger(__name__)

_SEPARATORS = re.compile(r"[\s\-]+")
_REPEATED_UNDERSCORES = re.compile(r"_+")


class PermissionDeniedError(Exception):
    """Raised when user lacks required permission."""
    pass


def canonical_role_key(name: str | None) -> str:
    """
    Normalise a role name to its lookup key.

    lowercase, trim, hyphens/whitespace -> "_", collapse "__", strip edge
    underscores, then drop one trailing plural "s" (but not from "...ss").

        "QA Tester" -> "qa_tester"
        "QA-Testers" -> "qa_tester"
        "  hr  admin " -> "hr_admin"
    """
    if not name:
        return ""
    key = _SEPARATORS.sub("_", name.strip().lower())
    key = _REPEATED_UNDERSCORES.sub("_", key).strip("_")
    if len(key) > 1 and key.endswith("s") and not key.endswith("ss"):
        key = key[:-1]
    return key


class RoleTable:
    """
    Immutable mapping canonical role key -> frozenset of permission codes.

    Build with RoleTable.build(); rows whose names collapse to the same key
    are merged (union of permissions) and a warning is logged.
    """

    def __init__(self, entries: Mapping[str, frozenset[str]], names: Mapping[str, str] | None = None):
        self._entries = dict(entries)
        self._names = dict(names or {})

    @classmethod
    def build(cls, rows: Iterable[tuple[str, Iterable[str]]]) -> "RoleTable":
        entries: dict[str, set[str]] = {}
        names: dict[str, str] = {}
        for name, permissions in rows:
            key = canonical_role_key(name)
            if not key:
                logger.warning("Skipping role with empty name")
                continue
            if key in entries:
                logger.warning(
                    "Roles %r and %r share canonical key %r; merging permissions",
                    names[key], name, key,
                )
                entries[key].update(permissions or ())
            else:
                entries[key] = set(permissions or ())
                names[key] = name
        return cls({k: frozenset(v) for k, v in entries.items()}, names)

    def overlay(self, other: "RoleTable") -> "RoleTable":
        """Return a table where other's entries replace ours key by key."""
        entries = dict(self._entries)
        entries.update(other._entries)
        names = dict(self._names)
        names.update(other._names)
        return RoleTable(entries, names)

    def permissions_for(self, role_name: str | None) -> frozenset[str]:
        return self._entries.get(canonical_role_key(role_name), frozenset())

    def display_name(self, key: str) -> str:
        return self._names.get(key, key)

    def keys(self) -> list[str]:
        return sorted(self._entries)

    def __contains__(self, role_name: str) -> bool:
        return canonical_role_key(role_name) in self._entries

    def __len__(self) -> int:
        return len(self._entries)


def default_role_table() -> RoleTable:
    """Role table made of the built-in roles only."""
    return RoleTable.build(DEFAULT_ROLE_PERMISSIONS.items())


def load_role_table() -> RoleTable:
    """
    Built-in roles overlaid with every role stored in the database.

    A stored role replaces the built-in role with the same canonical key
    entirely (permissions are not unioned across the two sources).
    """
    stored = db.session.query(Role).order_by(Role.id.asc()).all()
    db_table = RoleTable.build((role.name, role.permission_codes()) for role in stored)
    return default_role_table().overlay(db_table)


def resolve_permissions(user_roles: Iterable[str] | None, role_table: RoleTable) -> frozenset[str]:
    """Union of permissions granted by every role the caller holds."""
    granted: set[str] = set()
    for role_name in user_roles or ():
        granted |= role_table.permissions_for(role_name)
    return frozenset(granted)


def has_permission(user_roles: Iterable[str] | None, permission: str, role_table: RoleTable) -> bool:
    """
    True if ANY of user_roles grants permission.

    Zero roles, unknown roles and empty permission lists all return False.
    """
    if not permission:
        return False
    return any(permission in role_table.permissions_for(name) for name in user_roles or ())


def is_admin(permissions: Iterable[str]) -> bool:
    return any(code in ADMIN_PERMISSION_IDENTIFIERS for code in permissions)


def log_audit_event(
    user_id: str | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
) -> AuditEvent:
    """
    Append an audit row and commit it.

    event_type examples:
    - PERMISSION_DENIED
    - TRANSITION_DENIED
    """
    event = AuditEvent(
        user_id=user_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        occurred_at=utcnow(),
    )

    db.session.add(event)
    db.session.commit()

    return event


def require_permission(
    caller,
    permission_code: str,
    resource: str | None = None,
    ip_address: str | None = None,
    role_table: RoleTable | None = None,
) -> None:
    """
    Require caller to hold permission, raise PermissionDeniedError if not.

    Denials are written to audit_events; grants are not.

    Usage:
        require_permission(g.caller, "requests:approve", resource=request.path)
    """
    table = role_table if role_table is not None else load_role_table()

    if not has_permission(caller.roles, permission_code, table):
        log_audit_event(
            user_id=caller.id,
            event_type="PERMISSION_DENIED",
            success=False,
            resource=resource,
            action=permission_code,
            reason=f"Missing permission: {permission_code}",
            ip_address=ip_address,
        )
        raise PermissionDeniedError(f"Permission denied: {permission_code}")


def save_role(name: str, permission_codes: Iterable[str], description: str | None = None) -> Role:
    """
    Create or replace a stored role, matched by canonical key.

    Unknown permission codes are rejected so a typo cannot silently grant
    nothing.
    """
    key = canonical_role_key(name)
    if not key:
        raise ValidationError("name is required")

    codes = sorted(set(permission_codes or ()))
    unknown = [code for code in codes if not validate_permission_code(code)]
    if unknown:
        raise ValidationError(f"Unknown permission codes: {', '.join(unknown)}")

    role = db.session.query(Role).filter_by(canonical_key=key).first()
    if role is None:
        role = Role(name=name.strip(), canonical_key=key, description=description)
        db.session.add(role)
    else:
        role.name = name.strip()
        if description is not None:
            role.description = description
        role.permissions.clear()
        db.session.flush()

    for code in codes:
        role.permissions.append(RolePermission(permission_code=code))

    db.session.commit()
    return role


def initialize_roles() -> int:
    """
    Store every built-in role that has no database row yet.

    Idempotent: safe to run multiple times. Returns the number created.
    """
    created_count = 0

    for role_name, permission_codes in DEFAULT_ROLE_PERMISSIONS.items():
        key = canonical_role_key(role_name)
        if db.session.query(Role).filter_by(canonical_key=key).first():
            continue
        role = Role(name=role_name, canonical_key=key)
        for code in sorted(set(permission_codes)):
            role.permissions.append(RolePermission(permission_code=code))
        db.session.add(role)
        created_count += 1

    db.session.commit()
    return created_count
