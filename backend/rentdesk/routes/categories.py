# Overview: Flask API routes for category maintenance; parses input and returns JSON responses.

# backend/rentdesk/routes/categories.py
"""
Category routes, scoped to the caller's organization (g.org_id).

DELETE deactivates a category (products and bookings keep it); POST
/<id>/restore reactivates it. Inactive categories are hidden from the list
unless include_inactive=true.
"""
from flask import Blueprint, request, g, jsonify, current_app
from ..services.products_service import (
    list_categories,
    get_category,
    create_category,
    update_category,
    delete_category,
    restore_category,
)
from ..errors import RentalError
from ..models import Category
from ..validation import ModelValidationPolicy, validate_payload, ValidationError
from ..decorators import require_auth

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "is_active"},
    required_on_create={"name"},
)

categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


@categories_bp.get("")
@require_auth
def list_categories_route():
    """Query params: search (name/description), include_inactive."""
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    result = list_categories(
        g.org_id,
        search=request.args.get("search") or None,
        include_inactive=include_inactive,
    )
    return jsonify(result), 200


@categories_bp.get("/<int:category_id>")
@require_auth
def get_category_route(category_id: int):
    try:
        category = get_category(category_id, g.org_id)
    except RentalError as e:
        return jsonify(e.to_dict()), e.status_code
    return category.to_dict(), 200


@categories_bp.post("")
@require_auth
def create_category_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)
        created = create_category(g.org_id, patch["name"], patch.get("description"))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except RentalError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create category")
        return jsonify({"error": "Internal server error"}), 500

    return created.to_dict(), 201


@categories_bp.put("/<int:category_id>")
@require_auth
def update_category_route(category_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=True)
        updated = update_category(category_id, patch=patch, org_id=g.org_id)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except RentalError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update category")
        return jsonify({"error": "Internal server error"}), 500

    return updated.to_dict(), 200


@categories_bp.delete("/<int:category_id>")
@require_auth
def delete_category_route(category_id: int):
    try:
        deleted = delete_category(category_id, g.org_id)
    except RentalError as e:
        return jsonify(e.to_dict()), e.status_code

    return {"ok": True, "category": deleted.to_dict()}, 200


@categories_bp.post("/<int:category_id>/restore")
@require_auth
def restore_category_route(category_id: int):
    try:
        restored = restore_category(category_id, g.org_id)
    except RentalError as e:
        return jsonify(e.to_dict()), e.status_code

    return {"ok": True, "category": restored.to_dict()}, 200
