# Overview: Service-layer sign-in throttling: lockout after repeated failures per login.

"""
Login Throttling Service

WHY: Prevent brute-force attacks on sign-in. Self-enrolled staff use 4-digit
PINs, so without a limit the whole PIN space can be tried in minutes. After
too many failures the login is temporarily locked.

SECURITY FEATURES:
- Tracks failed attempts per login (staff ID, business ID, email or username)
- Lockout after MAX_FAILED_ATTEMPTS failures within LOCKOUT_WINDOW
- Lockout duration: LOCKOUT_DURATION minutes
- Uses the security_events table for tracking
- A successful sign-in clears the failed count
"""

from datetime import timedelta

from ..extensions import db
from ..models import SecurityEvent
from zentry.time_utils import utcnow


# Configuration constants
MAX_FAILED_ATTEMPTS = 10  # Lock after 10 failed attempts
LOCKOUT_WINDOW = timedelta(minutes=15)  # Within 15 minutes
LOCKOUT_DURATION = timedelta(minutes=15)  # Lockout for 15 minutes

LOGIN_FAILED = "LOGIN_FAILED"
LOGIN_SUCCESS = "LOGIN_SUCCESS"


def normalize_login(login: str) -> str:
    """Emails are case-insensitive; other logins arrive already normalized."""
    login = (login or "").strip()
    return login.lower() if "@" in login else login


def get_recent_failed_attempts(identifier: str) -> int:
    """
    Count failed attempts for a login within LOCKOUT_WINDOW and after its
    most recent successful sign-in.
    """
    cutoff = utcnow() - LOCKOUT_WINDOW

    last_success = db.session.query(db.func.max(SecurityEvent.occurred_at)).filter(
        SecurityEvent.event_type == LOGIN_SUCCESS,
        SecurityEvent.login == identifier,
    ).scalar()

    query = db.session.query(SecurityEvent).filter(
        SecurityEvent.event_type == LOGIN_FAILED,
        SecurityEvent.login == identifier,
        SecurityEvent.occurred_at >= cutoff,
    )
    if last_success is not None:
        query = query.filter(SecurityEvent.occurred_at > last_success)

    return query.count()


def is_account_locked(identifier: str) -> tuple[bool, int | None]:
    """
    Check if a login is currently locked due to too many failed attempts.

    Returns:
    - (True, seconds_remaining) if locked
    - (False, None) if not locked
    """
    if get_recent_failed_attempts(identifier) < MAX_FAILED_ATTEMPTS:
        return False, None

    most_recent = db.session.query(SecurityEvent).filter(
        SecurityEvent.event_type == LOGIN_FAILED,
        SecurityEvent.login == identifier,
    ).order_by(SecurityEvent.occurred_at.desc()).first()

    if most_recent:
        lockout_end = most_recent.occurred_at + LOCKOUT_DURATION
        now = utcnow()
        if now < lockout_end:
            return True, int((lockout_end - now).total_seconds())

    return False, None


def record_failed_attempt(
    identifier: str,
    identity_id: int | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    reason: str = "Invalid credentials",
) -> int:
    """
    Record a failed sign-in.

    Returns the number of recent failed attempts, this one included.
    """
    db.session.add(SecurityEvent(
        identity_id=identity_id,
        event_type=LOGIN_FAILED,
        login=identifier,
        success=False,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=utcnow(),
    ))
    db.session.commit()

    return get_recent_failed_attempts(identifier)


def record_successful_login(
    identity_id: int,
    identifier: str,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> None:
    db.session.add(SecurityEvent(
        identity_id=identity_id,
        event_type=LOGIN_SUCCESS,
        login=identifier,
        success=True,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=utcnow(),
    ))
    db.session.commit()


def get_lockout_status(identifier: str) -> dict:
    """
    Lockout status for a login.

    Returns dict with:
    - locked: bool
    - failed_attempts: int
    - max_attempts: int
    - seconds_until_unlock: int | None
    """
    failed_count = get_recent_failed_attempts(identifier)
    is_locked, seconds_remaining = is_account_locked(identifier)

    return {
        "locked": is_locked,
        "failed_attempts": failed_count,
        "max_attempts": MAX_FAILED_ATTEMPTS,
        "seconds_until_unlock": seconds_remaining,
        "lockout_window_minutes": int(LOCKOUT_WINDOW.total_seconds() / 60),
        "lockout_duration_minutes": int(LOCKOUT_DURATION.total_seconds() / 60),
    }
