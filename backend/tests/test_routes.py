# Overview: Pytest coverage for the HTTP API (request parsing, status codes, error bodies).

"""
API Route Tests

Exercises the Flask blueprints end to end with the test client: JSON in,
JSON out, domain errors mapped to status codes.
"""

from conftest import auth_headers


def _create_order(client, token, bookings=None, name="Jane Doe"):
    body = {"customer_name": name, "customer_phone": "+1 201-555-0123"}
    if bookings is not None:
        body["bookings"] = bookings
    return client.post("/api/orders", json=body, headers=auth_headers(token))


def _booking_body(product_id, start="2024-01-01T10:00:00Z", end="2024-01-03T10:00:00Z", **extra):
    body = {
        "product_id": product_id,
        "from_datetime": start,
        "to_datetime": end,
        "decided_rent_cents": 100000,
    }
    body.update(extra)
    return body


class TestSystemRoutes:

    def test_health(self, client, db_session):
        response = client.get("/api/health")

        assert response.status_code == 200
        data = response.get_json()
        assert data["status"] == "healthy"
        assert data["checks"]["database"]["status"] == "healthy"


class TestProductRoutes:
    """Product CRUD."""

    def test_create_and_list(self, client, db_session, token_a):
        response = client.post(
            "/api/products",
            json={"code": "TRIPOD-1", "title": "Tripod", "default_rent_cents": 2500},
            headers=auth_headers(token_a),
        )
        assert response.status_code == 201
        assert response.get_json()["default_rent_cents"] == 2500

        listing = client.get("/api/products", headers=auth_headers(token_a)).get_json()
        assert [p["code"] for p in listing["items"]] == ["TRIPOD-1"]

    def test_create_validation(self, client, db_session, token_a):
        response = client.post(
            "/api/products",
            json={"code": "X", "title": "No rent"},
            headers=auth_headers(token_a),
        )
        assert response.status_code == 400

        response = client.post(
            "/api/products",
            json={"code": "X", "title": "Bad", "default_rent_cents": -5},
            headers=auth_headers(token_a),
        )
        assert response.status_code == 400

    def test_duplicate_code_rejected(self, client, db_session, token_a, product_a):
        response = client.post(
            "/api/products",
            json={"code": product_a.code, "title": "Dup", "default_rent_cents": 1},
            headers=auth_headers(token_a),
        )
        assert response.status_code == 400

    def test_delete_deactivates(self, client, db_session, token_a, product_a):
        response = client.delete(f"/api/products/{product_a.id}", headers=auth_headers(token_a))

        assert response.status_code == 200
        assert response.get_json()["product"]["is_active"] is False

    def test_restore_reactivates(self, client, db_session, token_a, product_a):
        client.delete(f"/api/products/{product_a.id}", headers=auth_headers(token_a))

        response = client.post(f"/api/products/{product_a.id}/restore", headers=auth_headers(token_a))

        assert response.status_code == 200
        assert response.get_json()["product"]["is_active"] is True
        listing = client.get("/api/products", headers=auth_headers(token_a)).get_json()
        assert [p["code"] for p in listing["items"]] == [product_a.code]

    def test_product_booking_history(self, client, db_session, token_a, product_a):
        _create_order(client, token_a, [_booking_body(product_a.id)])
        _create_order(
            client, token_a,
            [_booking_body(product_a.id, "2024-02-01T10:00:00Z", "2024-02-02T10:00:00Z")],
            name="John Roe",
        )

        history = client.get(f"/api/products/{product_a.id}/bookings", headers=auth_headers(token_a))
        assert history.status_code == 200
        assert history.get_json()["count"] == 2

        one_day = client.get(
            f"/api/products/{product_a.id}/bookings?date=2024-01-02", headers=auth_headers(token_a),
        ).get_json()
        assert [b["from_datetime"] for b in one_day["items"]] == ["2024-01-01T10:00:00Z"]

        bad = client.get(f"/api/products/{product_a.id}/bookings?date=02/01/2024", headers=auth_headers(token_a))
        assert bad.status_code == 400

    def test_booking_history_of_other_tenant_is_404(self, client, db_session, token_b, product_a):
        response = client.get(f"/api/products/{product_a.id}/bookings", headers=auth_headers(token_b))
        assert response.status_code == 404


class TestCategoryRoutes:
    """Category maintenance."""

    def test_create_list_update(self, client, db_session, token_a):
        response = client.post(
            "/api/categories",
            json={"name": " Lighting ", "description": "Panels and stands"},
            headers=auth_headers(token_a),
        )
        assert response.status_code == 201
        category = response.get_json()
        assert category["name"] == "Lighting"
        assert category["is_active"] is True

        response = client.put(
            f"/api/categories/{category['id']}",
            json={"name": "Lights"},
            headers=auth_headers(token_a),
        )
        assert response.status_code == 200
        assert response.get_json()["name"] == "Lights"

        listing = client.get("/api/categories?search=panel", headers=auth_headers(token_a)).get_json()
        assert [c["name"] for c in listing["items"]] == ["Lights"]

    def test_create_validation(self, client, db_session, token_a, category_a):
        response = client.post("/api/categories", json={}, headers=auth_headers(token_a))
        assert response.status_code == 400

        response = client.post("/api/categories", json={"name": category_a.name}, headers=auth_headers(token_a))
        assert response.status_code == 400

        response = client.post("/api/categories", json={"name": "X", "org_id": 2}, headers=auth_headers(token_a))
        assert response.status_code == 400

    def test_delete_hides_and_restore_returns(self, client, db_session, token_a, category_a):
        response = client.delete(f"/api/categories/{category_a.id}", headers=auth_headers(token_a))
        assert response.status_code == 200
        assert response.get_json()["category"]["is_active"] is False
        assert client.get("/api/categories", headers=auth_headers(token_a)).get_json()["count"] == 0

        everything = client.get("/api/categories?include_inactive=true", headers=auth_headers(token_a)).get_json()
        assert everything["count"] == 1

        response = client.post(f"/api/categories/{category_a.id}/restore", headers=auth_headers(token_a))
        assert response.status_code == 200
        assert response.get_json()["category"]["is_active"] is True

    def test_other_tenant_category_is_404(self, client, db_session, token_b, category_a):
        assert client.get(f"/api/categories/{category_a.id}", headers=auth_headers(token_b)).status_code == 404
        assert client.delete(f"/api/categories/{category_a.id}", headers=auth_headers(token_b)).status_code == 404


class TestOrderRoutes:
    """Order creation and order-level operations."""

    def test_create_order_with_bookings(self, client, db_session, token_a, product_a):
        response = _create_order(client, token_a, [_booking_body(product_a.id, advance_amount_cents=30000)])

        assert response.status_code == 201
        data = response.get_json()
        assert data["status"] == "INITIATED"
        assert data["total_amount_cents"] == 100000
        assert data["remaining_amount_cents"] == 70000
        assert data["bookings"][0]["payments"][0]["recorded_by"] == "front-desk-a"

    def test_create_order_conflict_saves_nothing(self, client, db_session, token_a, product_a):
        _create_order(client, token_a, [_booking_body(product_a.id)])

        response = _create_order(
            client, token_a,
            [_booking_body(product_a.id, "2024-01-02T10:00:00Z", "2024-01-04T10:00:00Z")],
            name="John Roe",
        )

        assert response.status_code == 409
        orders = client.get("/api/orders", headers=auth_headers(token_a)).get_json()
        assert orders["count"] == 1

    def test_invalid_interval_is_400(self, client, db_session, token_a, product_a):
        response = _create_order(
            client, token_a,
            [_booking_body(product_a.id, "2024-01-03T10:00:00Z", "2024-01-01T10:00:00Z")],
        )
        assert response.status_code == 400

    def test_collect_payment_and_overpayment(self, client, db_session, token_a, product_a):
        order_id = _create_order(client, token_a, [_booking_body(product_a.id)]).get_json()["id"]

        response = client.post(
            f"/api/orders/{order_id}/payments", json={"amount_cents": 40000}, headers=auth_headers(token_a),
        )
        assert response.status_code == 200
        assert response.get_json()["remaining_amount_cents"] == 60000

        response = client.post(
            f"/api/orders/{order_id}/payments", json={"amount_cents": 60001}, headers=auth_headers(token_a),
        )
        assert response.status_code == 422
        assert response.get_json()["code"] == "OVERPAYMENT"

    def test_cancel_order_with_preview(self, client, db_session, token_a, product_a):
        order_id = _create_order(
            client, token_a, [_booking_body(product_a.id, advance_amount_cents=30000)],
        ).get_json()["id"]

        preview = client.get(
            f"/api/orders/{order_id}/preview-cancellation-refund?refund_amount_cents=10000",
            headers=auth_headers(token_a),
        ).get_json()
        assert preview["refund_cents"] == 10000
        assert preview["pending_refund_cents"] == 20000

        response = client.post(
            f"/api/orders/{order_id}/cancel", json={"refund_amount_cents": 10000}, headers=auth_headers(token_a),
        )
        assert response.status_code == 200
        data = response.get_json()
        assert data["status"] == "CANCELLED"
        assert data["bookings"][0]["pending_refund_cents"] == 20000

        response = client.post(f"/api/orders/{order_id}/cancel", json={}, headers=auth_headers(token_a))
        assert response.status_code == 409

    def test_add_booking_to_order(self, client, db_session, token_a, product_a):
        order_id = _create_order(client, token_a).get_json()["id"]

        response = client.post(
            f"/api/orders/{order_id}/bookings", json=_booking_body(product_a.id), headers=auth_headers(token_a),
        )

        assert response.status_code == 201
        assert response.get_json()["order_id"] == order_id

    def test_update_order_rejects_derived_fields(self, client, db_session, token_a):
        order_id = _create_order(client, token_a).get_json()["id"]

        response = client.put(
            f"/api/orders/{order_id}", json={"status": "FULLY_DONE"}, headers=auth_headers(token_a),
        )
        assert response.status_code == 400

    def test_unknown_order_is_404(self, client, db_session, token_a):
        response = client.get("/api/orders/99999", headers=auth_headers(token_a))
        assert response.status_code == 404


class TestBookingRoutes:
    """Conflicts, lifecycle and ledger endpoints."""

    def _order(self, client, token):
        return _create_order(client, token).get_json()["id"]

    def test_check_conflicts(self, client, db_session, token_a, product_a):
        order_id = self._order(client, token_a)
        booking_id = client.post(
            "/api/bookings", json=_booking_body(product_a.id, order_id=order_id), headers=auth_headers(token_a),
        ).get_json()["id"]

        response = client.post(
            "/api/bookings/check-conflicts",
            json={
                "product_id": product_a.id,
                "from_datetime": "2024-01-02T10:00:00Z",
                "to_datetime": "2024-01-04T10:00:00Z",
            },
            headers=auth_headers(token_a),
        )
        data = response.get_json()
        assert response.status_code == 200
        assert data["has_conflicts"] is True
        assert data["conflicts"][0]["booking_id"] == booking_id
        assert data["conflicts"][0]["customer_name"] == "Jane Doe"

        response = client.post(
            "/api/bookings/check-conflicts",
            json={
                "product_id": product_a.id,
                "from_datetime": "2024-01-03T10:00:00Z",
                "to_datetime": "2024-01-04T10:00:00Z",
            },
            headers=auth_headers(token_a),
        )
        assert response.get_json()["has_conflicts"] is False

    def test_conflict_409_then_override_201(self, client, db_session, token_a, product_a):
        order_id = self._order(client, token_a)
        client.post(
            "/api/bookings", json=_booking_body(product_a.id, order_id=order_id), headers=auth_headers(token_a),
        )
        overlapping = _booking_body(
            product_a.id, "2024-01-02T10:00:00Z", "2024-01-04T10:00:00Z", order_id=order_id,
        )

        response = client.post("/api/bookings", json=overlapping, headers=auth_headers(token_a))
        assert response.status_code == 409
        body = response.get_json()
        assert body["code"] == "CONFLICT"
        assert len(body["details"]["conflicts"]) == 1

        overlapping["override_conflicts"] = True
        response = client.post("/api/bookings", json=overlapping, headers=auth_headers(token_a))
        assert response.status_code == 201
        assert response.get_json()["is_conflict_overridden"] is True

    def test_issue_with_payment_then_overpayment(self, client, db_session, token_a, product_a):
        order_id = self._order(client, token_a)
        booking_id = client.post(
            "/api/bookings",
            json=_booking_body(product_a.id, order_id=order_id, advance_amount_cents=30000),
            headers=auth_headers(token_a),
        ).get_json()["id"]

        response = client.post(
            f"/api/bookings/{booking_id}/issue",
            json={"payment_amount_cents": 70000},
            headers=auth_headers(token_a),
        )
        assert response.status_code == 200
        assert response.get_json()["status"] == "ISSUED"
        assert response.get_json()["remaining_amount_cents"] == 0

        response = client.post(
            f"/api/bookings/{booking_id}/payments",
            json={"payment_type": "RENT_REMAINING", "amount_cents": 100},
            headers=auth_headers(token_a),
        )
        assert response.status_code == 422
        assert response.get_json()["code"] == "OVERPAYMENT"

        ledger = client.get(f"/api/bookings/{booking_id}/ledger", headers=auth_headers(token_a)).get_json()
        assert ledger["net_paid_cents"] == 100000
        assert [e["payment_type"] for e in ledger["entries"]] == ["ADVANCE", "PAYMENT_RECEIVED"]

    def test_return_requires_issue(self, client, db_session, token_a, product_a):
        order_id = self._order(client, token_a)
        booking_id = client.post(
            "/api/bookings", json=_booking_body(product_a.id, order_id=order_id), headers=auth_headers(token_a),
        ).get_json()["id"]

        response = client.post(f"/api/bookings/{booking_id}/return", json={}, headers=auth_headers(token_a))

        assert response.status_code == 409
        assert response.get_json()["code"] == "INVALID_STATE_TRANSITION"

    def test_cancel_with_transfer_and_settle(self, client, db_session, token_a, product_a):
        order_id = self._order(client, token_a)
        source_id = client.post(
            "/api/bookings",
            json=_booking_body(product_a.id, order_id=order_id, advance_amount_cents=50000),
            headers=auth_headers(token_a),
        ).get_json()["id"]
        target_id = client.post(
            "/api/bookings",
            json=_booking_body(product_a.id, "2024-02-01T10:00:00Z", "2024-02-02T10:00:00Z", order_id=order_id),
            headers=auth_headers(token_a),
        ).get_json()["id"]

        preview = client.get(
            f"/api/bookings/{source_id}/preview-cancellation-refund", headers=auth_headers(token_a),
        ).get_json()
        assert preview["max_refund_cents"] == 50000
        assert preview["suggested_transfers"][0]["booking_id"] == target_id

        response = client.post(
            f"/api/bookings/{source_id}/cancel",
            json={
                "transfers": [{"booking_id": target_id, "amount_cents": 20000}],
                "refund_amount_cents": 10000,
            },
            headers=auth_headers(token_a),
        )
        assert response.status_code == 200
        assert response.get_json()["status"] == "CANCELLED"
        assert response.get_json()["pending_refund_cents"] == 20000

        response = client.post(
            f"/api/bookings/{source_id}/settle-pending-refund", json={}, headers=auth_headers(token_a),
        )
        assert response.status_code == 200
        assert response.get_json()["pending_refund_cents"] == 0

        target = client.get(f"/api/bookings/{target_id}", headers=auth_headers(token_a)).get_json()
        assert target["remaining_amount_cents"] == 80000

    def test_refund_above_paid_is_422(self, client, db_session, token_a, product_a):
        order_id = self._order(client, token_a)
        booking_id = client.post(
            "/api/bookings",
            json=_booking_body(product_a.id, order_id=order_id, advance_amount_cents=50000),
            headers=auth_headers(token_a),
        ).get_json()["id"]

        response = client.post(
            f"/api/bookings/{booking_id}/cancel",
            json={"refund_amount_cents": 60000},
            headers=auth_headers(token_a),
        )

        assert response.status_code == 422
        assert response.get_json()["code"] == "INSUFFICIENT_FUNDS"

    def test_update_booking(self, client, db_session, token_a, product_a):
        order_id = self._order(client, token_a)
        booking_id = client.post(
            "/api/bookings", json=_booking_body(product_a.id, order_id=order_id), headers=auth_headers(token_a),
        ).get_json()["id"]

        response = client.put(
            f"/api/bookings/{booking_id}",
            json={"decided_rent_cents": 90000, "advance_amount_cents": 10000},
            headers=auth_headers(token_a),
        )
        assert response.status_code == 200
        assert response.get_json()["remaining_amount_cents"] == 80000

        response = client.put(
            f"/api/bookings/{booking_id}", json={"status": "ISSUED"}, headers=auth_headers(token_a),
        )
        assert response.status_code == 400

    def test_list_bookings_window(self, client, db_session, token_a, product_a):
        order_id = self._order(client, token_a)
        client.post(
            "/api/bookings", json=_booking_body(product_a.id, order_id=order_id), headers=auth_headers(token_a),
        )

        inside = client.get(
            "/api/bookings?from=2024-01-02T00:00:00Z&to=2024-01-02T12:00:00Z", headers=auth_headers(token_a),
        ).get_json()
        outside = client.get(
            "/api/bookings?from=2024-01-03T10:00:00Z&to=2024-01-05T00:00:00Z", headers=auth_headers(token_a),
        ).get_json()

        assert inside["count"] == 1
        assert outside["count"] == 0


class TestUnexpectedErrors:
    """Unexpected service failures surface as a logged 500 with a JSON body."""

    def _boom(self, *args, **kwargs):
        raise RuntimeError("database went away")

    def test_list_bookings_returns_500(self, client, db_session, token_a, monkeypatch):
        from rentdesk.services import booking_service
        monkeypatch.setattr(booking_service, "list_bookings", self._boom)

        response = client.get("/api/bookings", headers=auth_headers(token_a))

        assert response.status_code == 500
        assert response.get_json() == {"error": "Internal server error"}

    def test_list_orders_returns_500(self, client, db_session, token_a, monkeypatch):
        from rentdesk.services import order_service
        monkeypatch.setattr(order_service, "list_orders", self._boom)

        response = client.get("/api/orders", headers=auth_headers(token_a))

        assert response.status_code == 500
        assert response.get_json() == {"error": "Internal server error"}

    def test_cancellation_previews_return_500(self, client, db_session, token_a, monkeypatch):
        from rentdesk.services import refund_service
        monkeypatch.setattr(refund_service, "preview_booking_cancellation", self._boom)
        monkeypatch.setattr(refund_service, "preview_order_cancellation", self._boom)

        booking = client.get("/api/bookings/1/preview-cancellation-refund", headers=auth_headers(token_a))
        order = client.get("/api/orders/1/preview-cancellation-refund", headers=auth_headers(token_a))

        assert booking.status_code == 500
        assert order.status_code == 500
