# Overview: Flask API routes for reading and switching the session's business/property context.

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_session
from ..runtime import get_runtime


context_bp = Blueprint("context", __name__, url_prefix="/api/context")


def _switch_response(switcher, ok: bool):
    if not ok:
        return jsonify({"error": switcher.last_error}), switcher.last_status or 400
    return jsonify(switcher.manager.context.to_dict()), 200


@context_bp.get("")
@require_session
def get_context_route():
    return jsonify(g.session_context.to_dict()), 200


@context_bp.get("/businesses")
@require_session
def available_businesses_route():
    try:
        switcher = get_runtime().switcher(g.session_manager)
        return jsonify({"businesses": [b.to_dict() for b in switcher.available_businesses()]}), 200
    except Exception:
        current_app.logger.exception("Failed to list available businesses")
        return jsonify({"error": "Internal server error"}), 500


@context_bp.get("/properties")
@require_session
def available_properties_route():
    try:
        switcher = get_runtime().switcher(g.session_manager)
        return jsonify({"properties": [p.to_dict() for p in switcher.available_properties()]}), 200
    except Exception:
        current_app.logger.exception("Failed to list available properties")
        return jsonify({"error": "Internal server error"}), 500


@context_bp.post("/business")
@require_session
def switch_business_route():
    try:
        data = request.get_json(silent=True) or {}
        business_id = data.get("business_id")
        if not business_id:
            return jsonify({"error": "business_id required"}), 400
        switcher = get_runtime().switcher(g.session_manager)
        return _switch_response(switcher, switcher.switch_business(business_id))
    except Exception:
        current_app.logger.exception("Failed to switch business")
        return jsonify({"error": "Internal server error"}), 500


@context_bp.post("/property")
@require_session
def switch_property_route():
    try:
        data = request.get_json(silent=True) or {}
        property_code = data.get("property_code")
        if not property_code:
            return jsonify({"error": "property_code required"}), 400
        switcher = get_runtime().switcher(g.session_manager)
        return _switch_response(switcher, switcher.switch_property(property_code))
    except Exception:
        current_app.logger.exception("Failed to switch property")
        return jsonify({"error": "Internal server error"}), 500


@context_bp.post("/connect")
@require_session
def connect_route():
    try:
        data = request.get_json(silent=True) or {}
        connection_code = data.get("connection_code")
        if not connection_code:
            return jsonify({"error": "connection_code required"}), 400
        switcher = get_runtime().switcher(g.session_manager)
        return _switch_response(switcher, switcher.connect_to_property(connection_code))
    except Exception:
        current_app.logger.exception("Failed to connect to property")
        return jsonify({"error": "Internal server error"}), 500
