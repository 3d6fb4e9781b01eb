# Overview: Flask API routes for order operations; parses input and returns JSON responses.

"""
Order API Routes

MULTI-TENANT: every call passes g.org_id to order_service; an order of
another organization is a 404.

Money fields on an order (total_amount_cents, total_received_cents,
remaining_amount_cents, status) are read-only here; they follow the
order's bookings.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..errors import RentalError
from ..services import order_service, refund_service
from ..validation import (
    ValidationError,
    parse_booking_create,
    parse_bool,
    parse_cents,
    parse_text,
    parse_transfers,
)


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")

NOTE_MAX = 500


@orders_bp.get("")
@require_auth
def list_orders_route():
    """Query params: status, search (customer name/phone), page, per_page."""
    try:
        result = order_service.list_orders(
            g.org_id,
            status=request.args.get("status") or None,
            search=request.args.get("search") or None,
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("")
@require_auth
def create_order_route():
    """
    Create an order, optionally with bookings.

    Request body:
    {
        "customer_name": "Jane Doe",
        "customer_phone": "+1 201-555-0123",  (optional, stored as E.164)
        "bookings": [  (optional; all succeed or nothing is saved)
            {"product_id": 3, "from_datetime": "...", "to_datetime": "...",
             "decided_rent_cents": 100000, "advance_amount_cents": 30000}
        ]
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        customer_name = parse_text(data, "customer_name", max_length=200, required=True)
        customer_phone = parse_text(data, "customer_phone", max_length=32)

        raw_bookings = data.get("bookings") or []
        if not isinstance(raw_bookings, list):
            raise ValidationError("bookings must be a list")
        bookings = [parse_booking_create(item, require_order=False) for item in raw_bookings]

        order = order_service.create_order(
            g.org_id,
            customer_name,
            customer_phone,
            bookings=bookings,
            actor=g.actor,
        )
        return jsonify(order.to_dict(include_bookings=True)), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except RentalError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(order_id, g.org_id)
        return jsonify(order.to_dict(include_bookings=True)), 200
    except RentalError as e:
        return jsonify(e.to_dict()), e.status_code


@orders_bp.put("/<int:order_id>")
@require_auth
def update_order_route(order_id: int):
    """Request body: {"customer_name": "...", "customer_phone": "..."}"""
    try:
        data = request.get_json(silent=True) or {}
        patch = {}
        for key in data:
            if key not in order_service.ORDER_MUTABLE_FIELDS:
                raise ValidationError(f"Field not allowed: {key}")
        if "customer_name" in data:
            patch["customer_name"] = parse_text(data, "customer_name", max_length=200, required=True)
        if "customer_phone" in data:
            patch["customer_phone"] = parse_text(data, "customer_phone", max_length=32)

        order = order_service.update_order(order_id, g.org_id, patch)
        return jsonify(order.to_dict(include_bookings=True)), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except RentalError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/bookings")
@require_auth
def add_order_booking_route(order_id: int):
    """Same body as POST /api/bookings, without order_id."""
    try:
        fields = parse_booking_create(request.get_json(silent=True) or {}, require_order=False)
        booking = order_service.add_booking_to_order(order_id, g.org_id, actor=g.actor, **fields)
        return jsonify(booking.to_dict()), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except RentalError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add booking to order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/payments")
@require_auth
def collect_order_payment_route(order_id: int):
    """
    Spread one payment across the order's bookings.

    Request body: {"amount_cents": 50000, "note": "..."}

    Returns:
        200: Updated order with bookings
        422: Amount above the order's outstanding total
    """
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.collect_order_payment(
            order_id,
            g.org_id,
            parse_cents(data, "amount_cents", required=True, positive=True),
            note=parse_text(data, "note", max_length=NOTE_MAX),
            actor=g.actor,
        )
        return jsonify(order.to_dict(include_bookings=True)), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except RentalError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to collect order payment")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/cancel")
@require_auth
def cancel_order_route(order_id: int):
    """
    Cancel the order and all of its bookings.

    Request body (all optional):
    {
        "should_refund": true,
        "refund_amount_cents": 40000,  (default: everything paid)
        "should_transfer": false,  (must be false; nothing to transfer to)
        "note": "..."
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.cancel_order(
            order_id,
            g.org_id,
            should_transfer=parse_bool(data, "should_transfer"),
            transfers=parse_transfers(data),
            should_refund=parse_bool(data, "should_refund", default=True),
            refund_amount_cents=parse_cents(data, "refund_amount_cents"),
            note=parse_text(data, "note", max_length=NOTE_MAX),
            actor=g.actor,
        )
        return jsonify(order.to_dict(include_bookings=True)), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except RentalError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>/preview-cancellation-refund")
@require_auth
def preview_order_cancellation_route(order_id: int):
    """Query params: refund_amount_cents (optional, default everything paid)."""
    try:
        preview = refund_service.preview_order_cancellation(
            order_id,
            g.org_id,
            refund_amount_cents=parse_cents(request.args, "refund_amount_cents"),
        )
        return jsonify(preview), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except RentalError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to preview order cancellation")
        return jsonify({"error": "Internal server error"}), 500
