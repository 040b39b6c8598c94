# Overview: Flask API routes for property maintenance (update, main flag, deactivate, delete).

from flask import Blueprint, request, jsonify, current_app, g

from .. import identifiers
from ..decorators import require_session
from ..errors import ZentryError
from ..runtime import get_runtime
from .businesses import can_administer


properties_bp = Blueprint("properties", __name__, url_prefix="/api/properties")


@properties_bp.url_value_preprocessor
def normalize_path_codes(endpoint, values):
    """Property codes in the path are matched case-insensitively."""
    if values and "property_code" in values:
        values["property_code"] = identifiers.normalize_identifier(values["property_code"])


def _administered_property(property_code: str):
    """Fetch the property and check the caller administers its business. Raises NotFoundError."""
    prop = get_runtime().businesses.get_property(property_code)
    return prop, can_administer(g.principal, prop.business_id)


@properties_bp.patch("/<property_code>")
@require_session
def update_property_route(property_code: str):
    try:
        prop, allowed = _administered_property(property_code)
        if not allowed:
            return jsonify({"error": f"You cannot modify property {property_code}"}), 403
        data = request.get_json(silent=True) or {}
        prop = get_runtime().businesses.update_property(property_code, data)
        return jsonify(prop.to_dict()), 200
    except ZentryError as exc:
        return jsonify({"error": exc.message}), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to update property")
        return jsonify({"error": "Internal server error"}), 500


@properties_bp.post("/<property_code>/main")
@require_session
def set_main_property_route(property_code: str):
    try:
        prop, allowed = _administered_property(property_code)
        if not allowed:
            return jsonify({"error": f"You cannot modify property {property_code}"}), 403
        prop = get_runtime().businesses.set_main_property(property_code)
        return jsonify(prop.to_dict()), 200
    except ZentryError as exc:
        return jsonify({"error": exc.message}), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to set main property")
        return jsonify({"error": "Internal server error"}), 500


@properties_bp.post("/<property_code>/deactivate")
@require_session
def deactivate_property_route(property_code: str):
    try:
        prop, allowed = _administered_property(property_code)
        if not allowed:
            return jsonify({"error": f"You cannot modify property {property_code}"}), 403
        prop = get_runtime().businesses.deactivate_property(property_code)
        return jsonify(prop.to_dict()), 200
    except ZentryError as exc:
        return jsonify({"error": exc.message}), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to deactivate property")
        return jsonify({"error": "Internal server error"}), 500


@properties_bp.delete("/<property_code>")
@require_session
def delete_property_route(property_code: str):
    try:
        prop, allowed = _administered_property(property_code)
        if not allowed:
            return jsonify({"error": f"You cannot delete property {property_code}"}), 403
        get_runtime().businesses.delete_property(property_code)
        return jsonify({"message": f"Property {property_code} deleted"}), 200
    except ZentryError as exc:
        return jsonify({"error": exc.message}), exc.status_code
    except Exception:
        current_app.logger.exception("Failed to delete property")
        return jsonify({"error": "Internal server error"}), 500
