# Overview: Flask API routes for staff creation, enrollment, approval, profile updates and property access.

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_session
from ..errors import ZentryError
from ..roles import can_manage_staff
from ..runtime import get_runtime


staff_bp = Blueprint("staff", __name__, url_prefix="/api/staff")


@staff_bp.post("")
@require_session
def create_staff_route():
    try:
        principal = g.principal
        data = request.get_json(silent=True) or {}
        business_id = data.get("business_id") or principal.business_id
        if not business_id:
            return jsonify({"error": "business_id required"}), 400

        staff = get_runtime().staff.create_staff(
            business_id,
            data.get("full_name"),
            data.get("role"),
            data.get("password") or data.get("pin"),
            actor=principal,
            email=data.get("email"),
            phone=data.get("phone"),
            property_access=data.get("property_access") or [],
        )
        return jsonify({"staff": staff.to_dict(), "staff_id": staff.staff_id}), 201
    except ZentryError as exc:
        return jsonify({"error": exc.message}), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to create staff member")
        return jsonify({"error": "Internal server error"}), 500


@staff_bp.post("/enroll")
def enroll_staff_route():
    """Public: self-enrollment with a property connection code."""
    try:
        data = request.get_json(silent=True) or {}
        if not all([data.get("connection_code"), data.get("full_name"), data.get("pin")]):
            return jsonify({"error": "connection_code, full_name and pin required"}), 400

        staff = get_runtime().staff.enroll_staff(
            data.get("connection_code"),
            data.get("full_name"),
            data.get("pin"),
            requested_role=data.get("requested_role") or "employee",
            email=data.get("email"),
            phone=data.get("phone"),
        )
        return jsonify({
            "staff_id": staff.staff_id,
            "pending": not staff.is_approved,
            "staff": staff.to_dict(),
        }), 201
    except ZentryError as exc:
        return jsonify({"error": exc.message}), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to enroll staff member")
        return jsonify({"error": "Internal server error"}), 500


@staff_bp.get("/pending")
@require_session
def pending_staff_route():
    try:
        principal = g.principal
        business_id = request.args.get("business_id") or principal.business_id
        if not business_id:
            return jsonify({"error": "business_id required"}), 400
        pending = get_runtime().staff.list_pending_staff(business_id, principal)
        return jsonify({"staff": [s.to_dict() for s in pending]}), 200
    except ZentryError as exc:
        return jsonify({"error": exc.message}), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to list pending staff")
        return jsonify({"error": "Internal server error"}), 500


@staff_bp.post("/<staff_id>/approve")
@require_session
def approve_staff_route(staff_id: str):
    try:
        data = request.get_json(silent=True) or {}
        staff = get_runtime().staff.approve_staff(
            staff_id,
            g.principal,
            assigned_properties=data.get("assigned_properties"),
        )
        return jsonify(staff.to_dict()), 200
    except ZentryError as exc:
        return jsonify({"error": exc.message}), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to approve staff member")
        return jsonify({"error": "Internal server error"}), 500


@staff_bp.patch("/<staff_id>")
@require_session
def update_staff_route(staff_id: str):
    """Name, email, phone or role; owners and managers of the business only."""
    try:
        data = request.get_json(silent=True) or {}
        staff = get_runtime().staff.update_staff(staff_id, data, g.principal)
        return jsonify(staff.to_dict()), 200
    except ZentryError as exc:
        return jsonify({"error": exc.message}), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to update staff member")
        return jsonify({"error": "Internal server error"}), 500


@staff_bp.post("/<staff_id>/deactivate")
@require_session
def deactivate_staff_route(staff_id: str):
    try:
        staff = get_runtime().staff.deactivate_staff(staff_id, g.principal)
        return jsonify(staff.to_dict()), 200
    except ZentryError as exc:
        return jsonify({"error": exc.message}), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to deactivate staff member")
        return jsonify({"error": "Internal server error"}), 500


@staff_bp.get("/<staff_id>/properties")
@require_session
def staff_properties_route(staff_id: str):
    """A staff member's own accessible properties; managers may look up their staff."""
    try:
        runtime = get_runtime()
        principal = g.principal
        staff = runtime.staff.get_staff(staff_id)
        is_self = principal.staff_id == staff.staff_id
        manages = can_manage_staff(principal.role) and principal.business_id == staff.business_id
        if not (is_self or manages or principal.is_super_admin):
            return jsonify({"error": f"You cannot view access of staff member {staff.staff_id}"}), 403

        props = runtime.access.get_accessible_properties(staff.staff_id)
        return jsonify({
            "staff_id": staff.staff_id,
            "properties": [p.to_dict() for p in props],
        }), 200
    except ZentryError as exc:
        return jsonify({"error": exc.message}), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to list staff properties")
        return jsonify({"error": "Internal server error"}), 500


@staff_bp.post("/<staff_id>/access")
@require_session
def grant_access_route(staff_id: str):
    try:
        data = request.get_json(silent=True) or {}
        property_code = data.get("property_code")
        if not property_code:
            return jsonify({"error": "property_code required"}), 400
        staff = get_runtime().staff.grant_access(staff_id, property_code, g.principal)
        return jsonify(staff.to_dict()), 200
    except ZentryError as exc:
        return jsonify({"error": exc.message}), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to grant property access")
        return jsonify({"error": "Internal server error"}), 500


@staff_bp.delete("/<staff_id>/access/<property_code>")
@require_session
def revoke_access_route(staff_id: str, property_code: str):
    try:
        revoked = get_runtime().staff.revoke_access(staff_id, property_code, g.principal)
        return jsonify({"revoked": revoked}), 200
    except ZentryError as exc:
        return jsonify({"error": exc.message}), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to revoke property access")
        return jsonify({"error": "Internal server error"}), 500
