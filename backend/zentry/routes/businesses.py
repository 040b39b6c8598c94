# Overview: Flask API routes for business registration, profile, settings, backup and properties.

from flask import Blueprint, request, jsonify, current_app, g

from .. import identifiers
from ..decorators import require_session, require_role
from ..errors import ZentryError
from ..roles import RoleKind
from ..runtime import get_runtime
from ..services.business_service import backup_filename


businesses_bp = Blueprint("businesses", __name__, url_prefix="/api/businesses")


@businesses_bp.url_value_preprocessor
def normalize_path_ids(endpoint, values):
    """Business IDs in the path are matched case-insensitively."""
    if values and "business_id" in values:
        values["business_id"] = identifiers.normalize_identifier(values["business_id"])


def can_administer(principal, business_id: str) -> bool:
    """Super admins administer every business; owners only their own."""
    if principal.is_super_admin:
        return True
    return principal.kind == RoleKind.OWNER and principal.business_id == business_id


@businesses_bp.post("")
def register_business_route():
    """Public: create a business, its main property and the owner account."""
    try:
        data = request.get_json(silent=True) or {}
        result = get_runtime().businesses.register_business(
            company_name=data.get("company_name"),
            business_type=data.get("business_type"),
            owner_name=data.get("owner_name"),
            email=data.get("email"),
            password=data.get("password"),
            phone=data.get("phone"),
            address=data.get("address"),
            property_name=data.get("property_name"),
            settings=data.get("settings"),
        )
        return jsonify(result.to_dict()), 201
    except ZentryError as exc:
        return jsonify({"error": exc.message}), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to register business")
        return jsonify({"error": "Internal server error"}), 500


@businesses_bp.get("")
@require_session
@require_role(RoleKind.SUPER_ADMIN)
def list_businesses_route():
    try:
        include_inactive = request.args.get("include_inactive", "false").lower() == "true"
        businesses = get_runtime().businesses.list_businesses(include_inactive=include_inactive)
        return jsonify({"businesses": [b.to_dict() for b in businesses]}), 200
    except ZentryError as exc:
        return jsonify({"error": exc.message}), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to list businesses")
        return jsonify({"error": "Internal server error"}), 500


@businesses_bp.get("/stats")
@require_session
@require_role(RoleKind.SUPER_ADMIN)
def system_stats_route():
    try:
        return jsonify(get_runtime().businesses.system_stats()), 200
    except ZentryError as exc:
        return jsonify({"error": exc.message}), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to compute system stats")
        return jsonify({"error": "Internal server error"}), 500


@businesses_bp.get("/<business_id>")
@require_session
def get_business_route(business_id: str):
    try:
        principal = g.principal
        if not principal.is_super_admin and principal.business_id != business_id:
            return jsonify({"error": f"You do not have access to business {business_id}"}), 403
        business = get_runtime().businesses.get_business(business_id)
        return jsonify(business.to_dict()), 200
    except ZentryError as exc:
        return jsonify({"error": exc.message}), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to get business")
        return jsonify({"error": "Internal server error"}), 500


@businesses_bp.patch("/<business_id>")
@require_session
def update_business_route(business_id: str):
    """Company name, contact email and phone, address."""
    try:
        if not can_administer(g.principal, business_id):
            return jsonify({"error": f"You cannot change business {business_id}"}), 403
        data = request.get_json(silent=True) or {}
        business = get_runtime().businesses.update_business_profile(business_id, data)
        return jsonify(business.to_dict()), 200
    except ZentryError as exc:
        return jsonify({"error": exc.message}), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to update business")
        return jsonify({"error": "Internal server error"}), 500


@businesses_bp.get("/<business_id>/export")
@require_session
def export_business_route(business_id: str):
    """Umbrella-account backup of the business, its properties and staff."""
    try:
        principal = g.principal
        if not can_administer(principal, business_id):
            return jsonify({"error": f"You cannot export business {business_id}"}), 403
        snapshot = get_runtime().businesses.export_business(
            business_id,
            exported_by=principal.staff_id or principal.uid,
        )
        response = jsonify(snapshot)
        filename = backup_filename(snapshot["business"]["business_id"], snapshot["exported_at"])
        response.headers["Content-Disposition"] = f'attachment; filename="{filename}"'
        return response, 200
    except ZentryError as exc:
        return jsonify({"error": exc.message}), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to export business")
        return jsonify({"error": "Internal server error"}), 500


@businesses_bp.patch("/<business_id>/settings")
@require_session
def update_settings_route(business_id: str):
    try:
        if not can_administer(g.principal, business_id):
            return jsonify({"error": f"You cannot change settings of business {business_id}"}), 403
        data = request.get_json(silent=True) or {}
        business = get_runtime().businesses.update_business_settings(business_id, data)
        return jsonify(business.to_dict()), 200
    except ZentryError as exc:
        return jsonify({"error": exc.message}), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to update business settings")
        return jsonify({"error": "Internal server error"}), 500


@businesses_bp.post("/<business_id>/deactivate")
@require_session
@require_role(RoleKind.SUPER_ADMIN)
def deactivate_business_route(business_id: str):
    try:
        business = get_runtime().businesses.deactivate_business(business_id)
        return jsonify(business.to_dict()), 200
    except ZentryError as exc:
        return jsonify({"error": exc.message}), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to deactivate business")
        return jsonify({"error": "Internal server error"}), 500


@businesses_bp.get("/<business_id>/properties")
@require_session
def list_properties_route(business_id: str):
    """Administrators see every active property; everyone else sees their own access list."""
    try:
        runtime = get_runtime()
        principal = g.principal
        if can_administer(principal, business_id):
            props = runtime.businesses.list_properties(business_id)
        else:
            props = runtime.access.get_switchable_properties(principal, business_id)
        return jsonify({"properties": [p.to_dict() for p in props]}), 200
    except ZentryError as exc:
        return jsonify({"error": exc.message}), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to list properties")
        return jsonify({"error": "Internal server error"}), 500


@businesses_bp.post("/<business_id>/properties")
@require_session
def add_property_route(business_id: str):
    try:
        principal = g.principal
        if not can_administer(principal, business_id):
            return jsonify({"error": f"You cannot add properties to business {business_id}"}), 403

        data = request.get_json(silent=True) or {}
        prop = get_runtime().businesses.add_property(
            business_id,
            data.get("property_name"),
            business_type=data.get("business_type"),
            address=data.get("address"),
            phone=data.get("phone"),
            is_main=bool(data.get("is_main", False)),
            created_by=None if principal.is_super_admin else principal.staff_id,
        )
        return jsonify(prop.to_dict()), 201
    except ZentryError as exc:
        return jsonify({"error": exc.message}), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to add property")
        return jsonify({"error": "Internal server error"}), 500
