# Overview: Flask API routes for booking operations; parses input and returns JSON responses.

"""
Booking API Routes

Thin layer over booking_service / refund_service: parse JSON, pass
g.org_id and g.actor explicitly, translate domain errors.

ERRORS:
- ValidationError             -> 400
- NotFoundError               -> 404
- ConflictError               -> 409 (details.conflicts)
- InvalidStateTransitionError -> 409
- ConcurrentUpdateError       -> 409
- OverpaymentError            -> 422
- InsufficientFundsError      -> 422
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..errors import RentalError
from ..services import booking_service, refund_service
from ..services.conflict_service import detect_conflicts
from ..services.ledger_service import get_booking_ledger
from ..services.products_service import get_product
from ..validation import (
    ValidationError,
    parse_booking_create,
    parse_booking_patch,
    parse_bool,
    parse_cents,
    parse_datetime,
    parse_id,
    parse_text,
    parse_transfers,
    require_interval,
)


bookings_bp = Blueprint("bookings", __name__, url_prefix="/api/bookings")

NOTE_MAX = 500


# =============================================================================
# CONFLICTS
# =============================================================================

@bookings_bp.post("/check-conflicts")
@require_auth
def check_conflicts_route():
    """
    Check a product/interval for overlapping bookings without writing.

    Request body:
    {
        "product_id": 3,
        "from_datetime": "2024-01-02T10:00:00Z",
        "to_datetime": "2024-01-04T10:00:00Z",
        "exclude_booking_id": 12  (optional, when editing)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        product_id = parse_id(data, "product_id", required=True)
        from_dt = parse_datetime(data, "from_datetime", required=True)
        to_dt = parse_datetime(data, "to_datetime", required=True)
        exclude_id = parse_id(data, "exclude_booking_id")
        require_interval(from_dt, to_dt)

        get_product(product_id, g.org_id)
        conflicts = detect_conflicts(g.org_id, product_id, from_dt, to_dt, exclude_booking_id=exclude_id)

        return jsonify({
            "has_conflicts": bool(conflicts),
            "conflicts": [c.to_dict() for c in conflicts],
        }), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except RentalError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to check booking conflicts")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# BOOKING CRUD
# =============================================================================

@bookings_bp.get("")
@require_auth
def list_bookings_route():
    """
    Query params: status, product_id, order_id, from, to (overlap window),
    page, per_page.
    """
    try:
        args = request.args
        result = booking_service.list_bookings(
            g.org_id,
            status=args.get("status") or None,
            product_id=args.get("product_id", type=int),
            order_id=args.get("order_id", type=int),
            window_from=parse_datetime(args, "from"),
            window_to=parse_datetime(args, "to"),
            page=args.get("page", type=int),
            per_page=args.get("per_page", type=int),
        )
        return jsonify(result), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list bookings")
        return jsonify({"error": "Internal server error"}), 500


@bookings_bp.post("")
@require_auth
def create_booking_route():
    """
    Create a booking inside an existing order.

    Request body:
    {
        "order_id": 1,
        "product_id": 3,
        "from_datetime": "2024-01-01T10:00:00Z",
        "to_datetime": "2024-01-03T10:00:00Z",
        "decided_rent_cents": 100000,
        "advance_amount_cents": 30000,  (optional)
        "category_id": 2,  (optional, defaults to the product's)
        "additional_items_description": "2 batteries",  (optional)
        "override_conflicts": false  (optional)
    }

    Returns:
        201: Booking created
        409: Overlapping bookings (details.conflicts) or order cancelled
    """
    try:
        fields = parse_booking_create(request.get_json(silent=True) or {})
        booking = booking_service.create_booking(g.org_id, actor=g.actor, **fields)
        return jsonify(booking.to_dict()), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except RentalError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create booking")
        return jsonify({"error": "Internal server error"}), 500


@bookings_bp.get("/<int:booking_id>")
@require_auth
def get_booking_route(booking_id: int):
    try:
        booking = booking_service.get_booking(booking_id, g.org_id)
        return jsonify(booking.to_dict()), 200
    except RentalError as e:
        return jsonify(e.to_dict()), e.status_code


@bookings_bp.get("/<int:booking_id>/ledger")
@require_auth
def get_booking_ledger_route(booking_id: int):
    try:
        booking = booking_service.get_booking(booking_id, g.org_id)
        return jsonify(get_booking_ledger(booking)), 200
    except RentalError as e:
        return jsonify(e.to_dict()), e.status_code


@bookings_bp.put("/<int:booking_id>")
@require_auth
def update_booking_route(booking_id: int):
    """Edit a BOOKED booking. Only the keys sent are changed."""
    try:
        patch, override = parse_booking_patch(request.get_json(silent=True) or {})
        booking = booking_service.update_booking(
            booking_id, g.org_id, patch, override_conflicts=override, actor=g.actor,
        )
        return jsonify(booking.to_dict()), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except RentalError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update booking")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# TRANSITIONS
# =============================================================================

@bookings_bp.post("/<int:booking_id>/issue")
@require_auth
def issue_booking_route(booking_id: int):
    """
    Request body (all optional):
    {"payment_amount_cents": 70000, "note": "...", "override_conflicts": false}
    """
    try:
        data = request.get_json(silent=True) or {}
        booking = booking_service.issue_booking(
            booking_id,
            g.org_id,
            payment_amount_cents=parse_cents(data, "payment_amount_cents"),
            note=parse_text(data, "note", max_length=NOTE_MAX),
            override_conflicts=parse_bool(data, "override_conflicts"),
            actor=g.actor,
        )
        return jsonify(booking.to_dict()), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except RentalError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to issue booking")
        return jsonify({"error": "Internal server error"}), 500


@bookings_bp.post("/<int:booking_id>/return")
@require_auth
def return_booking_route(booking_id: int):
    """Request body (all optional): {"payment_amount_cents": 0, "note": "..."}"""
    try:
        data = request.get_json(silent=True) or {}
        booking = booking_service.return_booking(
            booking_id,
            g.org_id,
            payment_amount_cents=parse_cents(data, "payment_amount_cents"),
            note=parse_text(data, "note", max_length=NOTE_MAX),
            actor=g.actor,
        )
        return jsonify(booking.to_dict()), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except RentalError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to return booking")
        return jsonify({"error": "Internal server error"}), 500


@bookings_bp.post("/<int:booking_id>/cancel")
@require_auth
def cancel_booking_route(booking_id: int):
    """
    Cancel a BOOKED booking.

    Request body (all optional):
    {
        "should_refund": true,
        "refund_amount_cents": 20000,  (default: everything not transferred)
        "transfers": [{"booking_id": 13, "amount_cents": 10000}],
        "note": "Customer changed plans"
    }

    Returns:
        200: Booking cancelled
        422: Refund/transfers exceed what was paid, or a target would be overpaid
    """
    try:
        data = request.get_json(silent=True) or {}
        booking = booking_service.cancel_booking(
            booking_id,
            g.org_id,
            refund_amount_cents=parse_cents(data, "refund_amount_cents"),
            should_refund=parse_bool(data, "should_refund", default=True),
            transfers=parse_transfers(data),
            note=parse_text(data, "note", max_length=NOTE_MAX),
            actor=g.actor,
        )
        return jsonify(booking.to_dict()), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except RentalError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel booking")
        return jsonify({"error": "Internal server error"}), 500


@bookings_bp.get("/<int:booking_id>/preview-cancellation-refund")
@require_auth
def preview_cancellation_route(booking_id: int):
    try:
        return jsonify(refund_service.preview_booking_cancellation(booking_id, g.org_id)), 200
    except RentalError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to preview booking cancellation")
        return jsonify({"error": "Internal server error"}), 500


@bookings_bp.post("/<int:booking_id>/settle-pending-refund")
@require_auth
def settle_pending_refund_route(booking_id: int):
    """Request body (all optional): {"amount_cents": 5000, "note": "..."}"""
    try:
        data = request.get_json(silent=True) or {}
        booking = refund_service.settle_pending_refund(
            booking_id,
            g.org_id,
            amount_cents=parse_cents(data, "amount_cents", positive=True),
            note=parse_text(data, "note", max_length=NOTE_MAX),
            actor=g.actor,
        )
        return jsonify(booking.to_dict()), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except RentalError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to settle pending refund")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# PAYMENTS
# =============================================================================

@bookings_bp.post("/<int:booking_id>/payments")
@require_auth
def add_payment_route(booking_id: int):
    """
    Append a ledger entry.

    Request body:
    {
        "payment_type": "PAYMENT_RECEIVED",  (ADVANCE, PAYMENT_RECEIVED, RENT_REMAINING, REFUND)
        "amount_cents": 10000,
        "note": "..."  (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        payment_type = parse_text(data, "payment_type", max_length=24, required=True)
        booking = booking_service.add_payment(
            booking_id,
            g.org_id,
            payment_type,
            parse_cents(data, "amount_cents", required=True, positive=True),
            note=parse_text(data, "note", max_length=NOTE_MAX),
            actor=g.actor,
        )
        return jsonify(booking.to_dict()), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except RentalError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add booking payment")
        return jsonify({"error": "Internal server error"}), 500
