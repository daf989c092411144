from __future__ import annotations

from ..extensions import db
from certflow.time_utils import to_utc_z


class User(db.Model):
    """
    Local mirror of identities issued by the upstream identity service.

    Rows are upserted from request headers on every authenticated call so
    that recipient lookups (e.g. "everyone who may approve requests") can
    run against the store.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.Index("ix_users_active", "is_active"),
    )

    # External identity id (opaque string issued upstream)
    id = db.Column(db.String(128), primary_key=True)

    name = db.Column(db.String(255), nullable=False, default="")
    email = db.Column(db.String(255), nullable=True, index=True)

    # Legacy single-role field kept alongside the role list
    role = db.Column(db.String(64), nullable=True)
    roles = db.Column(db.JSON, nullable=False, default=list)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_seen_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def role_names(self) -> list[str]:
        names = list(self.roles or [])
        if self.role and self.role not in names:
            names.append(self.role)
        return names

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "roles": list(self.roles or []),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "last_seen_at": to_utc_z(self.last_seen_at) if self.last_seen_at else None,
        }


class Role(db.Model):
    """
    Named permission bundle.

    canonical_key is the normalized form of name ("QA Testers" -> "qa_tester")
    and is what lookups are keyed on; it is unique so two spellings of the
    same role cannot coexist in the table.
    """
    __tablename__ = "roles"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False)
    canonical_key = db.Column(db.String(64), nullable=False, unique=True, index=True)
    description = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    permissions = db.relationship(
        "RolePermission",
        backref="role",
        lazy=True,
        cascade="all, delete-orphan",
    )

    def permission_codes(self) -> list[str]:
        return sorted(rp.permission_code for rp in self.permissions)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "canonical_key": self.canonical_key,
            "description": self.description,
            "permissions": self.permission_codes(),
            "created_at": to_utc_z(self.created_at),
        }


class RolePermission(db.Model):
    """Many-to-many: Role grants permission code."""
    __tablename__ = "role_permissions"
    __table_args__ = (
        db.UniqueConstraint("role_id", "permission_code", name="uq_role_permissions_role_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    role_id = db.Column(db.Integer, db.ForeignKey("roles.id"), nullable=False, index=True)
    permission_code = db.Column(db.String(64), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
