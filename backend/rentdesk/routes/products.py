# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/rentdesk/routes/products.py
"""
Product management routes with multi-tenant support.

MULTI-TENANT: All product operations are scoped to the caller's organization.
The org_id is derived from g.org_id (set by @require_auth) and passed
explicitly to the service.

DELETE is a soft delete: the product is deactivated and can no longer be
booked, existing bookings keep referencing it. POST /restore undoes it.
"""
from datetime import date

from flask import Blueprint, request, g, jsonify, current_app
from ..services.products_service import (
    list_products as list_products_service,
    get_product,
    create_product,
    update_product,
    delete_product,
    restore_product,
)
from ..services import booking_service
from ..errors import RentalError
from ..models import Product
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    ValidationError,
)
from ..decorators import require_auth

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"code", "title", "description", "category_id", "default_rent_cents", "is_active"},
    required_on_create={"code", "title", "default_rent_cents"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products():
    """
    List products with optional pagination.

    Query params:
    - include_inactive: "true" to include deactivated products
    - category_id: int (optional)
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    category_id = request.args.get("category_id", type=int)
    page = request.args.get("page", type=int)
    per_page = request.args.get("per_page", type=int)

    result = list_products_service(
        org_id=g.org_id,
        include_inactive=include_inactive,
        category_id=category_id,
        page=page,
        per_page=per_page,
    )
    return result


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        product = get_product(product_id, g.org_id)
    except RentalError as e:
        return jsonify(e.to_dict()), e.status_code
    return product.to_dict(), 200


@products_bp.post("")
@require_auth
def create_product_route():
    """Create a new product in the caller's organization."""
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        created = create_product(patch=patch, org_id=g.org_id)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except RentalError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500

    return created.to_dict(), 201


@products_bp.put("/<int:product_id>")
@require_auth
def update_product_route(product_id: int):
    """
    Update a product.

    Changing default_rent_cents does not touch existing bookings; they keep
    the snapshot taken when they were created.
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
        updated = update_product(product_id, patch=patch, org_id=g.org_id)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except RentalError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500

    return updated.to_dict(), 200


@products_bp.delete("/<int:product_id>")
@require_auth
def delete_product_route(product_id: int):
    try:
        deleted = delete_product(product_id, g.org_id)
    except RentalError as e:
        return jsonify(e.to_dict()), e.status_code

    return {"ok": True, "product": deleted.to_dict()}, 200


@products_bp.post("/<int:product_id>/restore")
@require_auth
def restore_product_route(product_id: int):
    try:
        restored = restore_product(product_id, g.org_id)
    except RentalError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to restore product")
        return jsonify({"error": "Internal server error"}), 500

    return {"ok": True, "product": restored.to_dict()}, 200


@products_bp.get("/<int:product_id>/bookings")
@require_auth
def list_product_bookings_route(product_id: int):
    """
    Booking history of a product, every status included.

    Query params:
    - date: YYYY-MM-DD (optional) - only bookings touching that UTC day
    - page, per_page: optional pagination
    """
    raw_date = (request.args.get("date") or "").strip()
    try:
        on_date = date.fromisoformat(raw_date) if raw_date else None
    except ValueError:
        return jsonify({"error": "date must be YYYY-MM-DD"}), 400

    try:
        result = booking_service.list_product_bookings(
            product_id,
            g.org_id,
            on_date=on_date,
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
    except RentalError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list product bookings")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(result), 200
