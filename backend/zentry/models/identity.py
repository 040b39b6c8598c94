from __future__ import annotations

from ..extensions import db
from zentry.time_utils import to_utc_z


class Identity(db.Model):
    """
    Credential record held by the identity provider.

    WHY: Authentication is kept apart from the tenant records. An identity
    carries only what the provider knows (login, secret hash, role claim) and
    points at the staff/business profile it signs in as.

    login is the staff ID for staff, the business ID for owners and a plain
    username for super admins. Owners may also sign in with their email.
    """
    __tablename__ = "identities"
    __table_args__ = (
        db.Index("ix_identities_email", "email"),
        db.Index("ix_identities_staff_id", "staff_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    uid = db.Column(db.String(36), nullable=False, unique=True, index=True)
    login = db.Column(db.String(128), nullable=False, unique=True, index=True)
    email = db.Column(db.String(255), nullable=True)

    # Bcrypt hashed password (or PIN for self-enrolled staff)
    password_hash = db.Column(db.String(255), nullable=False)

    # "super_admin", "owner" or "staff"
    role_claim = db.Column(db.String(32), nullable=False, default="staff")

    staff_id = db.Column(db.String(16), nullable=True)
    business_id = db.Column(db.String(64), nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<Identity uid={self.uid} login={self.login!r} role={self.role_claim}>"

    def to_dict(self) -> dict:
        return {
            "uid": self.uid,
            "login": self.login,
            "email": self.email,
            "role": self.role_claim,
            "staff_id": self.staff_id,
            "business_id": self.business_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }


class IdentitySession(db.Model):
    """
    Persisted bearer-token session.

    SECURITY: Only the SHA-256 hash of the token is stored. Super-admin
    sessions are never written here.
    """
    __tablename__ = "identity_sessions"
    __table_args__ = (
        db.Index("ix_identity_sessions_identity_id", "identity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    identity_id = db.Column(db.Integer, db.ForeignKey("identities.id"), nullable=False)
    token_hash = db.Column(db.String(64), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_reason = db.Column(db.String(255), nullable=True)

    user_agent = db.Column(db.String(255), nullable=True)
    ip_address = db.Column(db.String(64), nullable=True)

    identity = db.relationship("Identity", backref=db.backref("sessions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "created_at": to_utc_z(self.created_at),
            "last_used_at": to_utc_z(self.last_used_at),
            "expires_at": to_utc_z(self.expires_at),
            "is_revoked": self.is_revoked,
        }
