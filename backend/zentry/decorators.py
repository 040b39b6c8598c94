# Overview: Request decorators that restore the client's session and gate routes by role.

from functools import wraps
from flask import request, jsonify, g

from .runtime import client_namespace, get_runtime


def bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_session(f):
    """
    Restore the client's session, as a page load would.

    Sets the following Flask g attributes:
    - g.session_manager: the client's SessionManager
    - g.session_context: the restored SessionContext snapshot
    - g.principal: who is signed in
    - g.client_namespace: the client's storage namespace

    Returns 401 if:
    - No Authorization header
    - The token does not restore to an authenticated session (expired,
      revoked, or a super-admin session lost to a restart)
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        runtime = get_runtime()
        namespace = client_namespace(token)
        manager = runtime.session_manager(namespace)
        context = manager.restore()

        if not context.is_authenticated or manager.token != token:
            runtime.drop_volatile(namespace)
            return jsonify({"error": "Invalid or expired session"}), 401

        g.session_manager = manager
        g.session_context = context
        g.principal = context.identity
        g.client_namespace = namespace

        return f(*args, **kwargs)

    return decorated_function


def require_role(*kinds):
    """Require the restored principal to be one of the given RoleKinds. Use after @require_session."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            principal = getattr(g, "principal", None)
            if principal is None:
                return jsonify({"error": "Authentication required"}), 401
            if principal.kind not in kinds:
                return jsonify({
                    "error": "Access denied",
                    "required_roles": [kind.value for kind in kinds],
                }), 403
            return f(*args, **kwargs)

        return decorated_function
    return decorator
