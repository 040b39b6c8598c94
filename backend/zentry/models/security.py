from __future__ import annotations

from ..extensions import db
from zentry.time_utils import to_utc_z


class SecurityEvent(db.Model):
    """
    Sign-in audit trail.

    WHY: Failed and successful sign-ins are recorded per login so repeated
    failures can lock that login for a while (see login_throttle_service).
    Rows are append-only.
    """
    __tablename__ = "security_events"
    __table_args__ = (
        db.Index("ix_security_events_login_type", "login", "event_type"),
        db.Index("ix_security_events_occurred", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Nullable: failures for unknown logins are recorded too
    identity_id = db.Column(db.Integer, db.ForeignKey("identities.id"), nullable=True, index=True)

    # LOGIN_FAILED, LOGIN_SUCCESS
    event_type = db.Column(db.String(64), nullable=False, index=True)
    login = db.Column(db.String(255), nullable=False)

    success = db.Column(db.Boolean, nullable=False)
    reason = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "identity_id": self.identity_id,
            "event_type": self.event_type,
            "login": self.login,
            "success": self.success,
            "reason": self.reason,
            "ip_address": self.ip_address,
            "occurred_at": to_utc_z(self.occurred_at),
        }
