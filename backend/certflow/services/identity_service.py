# Overview: Caller identity taken from upstream gateway headers, mirrored into users.

"""
Identity Input

Authentication happens upstream. The gateway forwards:

    X-User-Id      opaque id (required)
    X-User-Name    display name
    X-User-Email   email address
    X-User-Roles   comma-separated role names

Each authenticated call upserts the caller into the users table so that
recipient lookups for notifications can run against the store.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ..extensions import db
from ..models import User
from certflow.time_utils import utcnow


@dataclass(frozen=True)
class Caller:
    id: str
    name: str = ""
    email: str | None = None
    roles: tuple[str, ...] = field(default_factory=tuple)


def parse_roles_header(value: str | None) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(part.strip() for part in value.split(",") if part.strip())


def caller_from_headers(headers) -> Caller | None:
    """Build a Caller from request headers; None when X-User-Id is absent."""
    user_id = (headers.get("X-User-Id") or "").strip()
    if not user_id:
        return None
    return Caller(
        id=user_id,
        name=(headers.get("X-User-Name") or "").strip(),
        email=(headers.get("X-User-Email") or "").strip() or None,
        roles=parse_roles_header(headers.get("X-User-Roles")),
    )


def sync_user(caller: Caller) -> User:
    """Insert or refresh the users row for caller and commit."""
    user = db.session.get(User, caller.id)
    if user is None:
        user = User(id=caller.id)
        db.session.add(user)

    user.name = caller.name or user.name or ""
    if caller.email:
        user.email = caller.email
    user.roles = list(caller.roles)
    user.role = caller.roles[0] if caller.roles else user.role
    user.is_active = True
    user.last_seen_at = utcnow()

    db.session.commit()
    return user
