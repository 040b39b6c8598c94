# Overview: Flask API routes for sign-in, sign-out and page-load session restore.

# backend/zentry/routes/auth.py
"""
Authentication API routes

Three sign-in doors, one per kind of principal:
- POST /login/staff        staff ID + password or PIN
- POST /login/business     business ID (or company email) + password
- POST /login/super-admin  username + password; never persisted

Repeated failures lock a login for a while (429, see login_throttle_service);
GET /lockout-status/<login> reports where a login stands.

GET /session is what a page load calls: it restores whatever survives for
the bearer token and always answers 200, unauthenticated when nothing does.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import bearer_token, require_session
from ..errors import AccountLockedError, ZentryError
from ..runtime import client_namespace, get_runtime
from ..services import login_throttle_service
from ..services.context_service import SessionContext


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _signed_in(manager, context):
    get_runtime().adopt(manager)
    return jsonify({
        "token": manager.token,
        "session": context.to_dict(),
        "landing_route": context.landing_route,
        "message": "Login successful",
    }), 200


def _error_response(exc: ZentryError):
    body = {"error": exc.message}
    if isinstance(exc, AccountLockedError):
        seconds = exc.retry_after_seconds
        body.update({
            "locked": True,
            "retry_after_seconds": seconds,
            "retry_after_minutes": (seconds // 60) + 1 if seconds else 15,
        })
    return jsonify(body), exc.status_code


@auth_bp.post("/login/staff")
def login_staff_route():
    try:
        data = request.get_json(silent=True) or {}
        staff_id = data.get("staff_id")
        secret = data.get("password") or data.get("pin")

        if not all([staff_id, secret]):
            return jsonify({"error": "staff_id and password (or pin) required"}), 400

        manager = get_runtime().login_manager()
        context = manager.login_staff(
            staff_id,
            secret,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        return _signed_in(manager, context)

    except ZentryError as exc:
        return _error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to sign in staff member")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/login/business")
def login_business_route():
    try:
        data = request.get_json(silent=True) or {}
        login = data.get("business_id") or data.get("email") or data.get("login")
        password = data.get("password")

        if not all([login, password]):
            return jsonify({"error": "business_id (or email) and password required"}), 400

        manager = get_runtime().login_manager()
        context = manager.login_business(
            login,
            password,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        return _signed_in(manager, context)

    except ZentryError as exc:
        return _error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to sign in business owner")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/login/super-admin")
def login_super_admin_route():
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username")
        password = data.get("password")

        if not all([username, password]):
            return jsonify({"error": "username and password required"}), 400

        manager = get_runtime().login_manager()
        context = manager.login_super_admin(
            username,
            password,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        return _signed_in(manager, context)

    except ZentryError as exc:
        return _error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to sign in super admin")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_session
def logout_route():
    try:
        g.session_manager.logout()
        get_runtime().drop_volatile(g.client_namespace)
        return jsonify({"message": "Logged out"}), 200
    except Exception:
        current_app.logger.exception("Failed to sign out")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/session")
def session_route():
    """Page-load restore. Never fails; unauthenticated is a valid answer."""
    try:
        context = SessionContext()
        token = bearer_token()
        if token:
            runtime = get_runtime()
            namespace = client_namespace(token)
            manager = runtime.session_manager(namespace)
            restored = manager.restore()
            if restored.is_authenticated and manager.token == token:
                context = restored
            else:
                runtime.drop_volatile(namespace)
        return jsonify(context.to_dict()), 200
    except Exception:
        current_app.logger.exception("Failed to restore session")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/lockout-status/<path:login>")
def lockout_status_route(login: str):
    """
    Lockout status for a login (staff and business IDs in upper case, as
    issued). Public, so a locked-out user can see when to retry.
    """
    try:
        identifier = login_throttle_service.normalize_login(login)
        return jsonify(login_throttle_service.get_lockout_status(identifier)), 200
    except Exception:
        current_app.logger.exception("Failed to read lockout status")
        return jsonify({"error": "Internal server error"}), 500
