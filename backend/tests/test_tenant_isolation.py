# Overview: Pytest coverage for tenant isolation behavior.

"""
Multi-Tenant Isolation Tests

SECURITY TESTS: Prove that cross-tenant access is denied for core resources.

Two organizations share one database. Every service call takes org_id
explicitly; a row owned by the other organization must look exactly like a
row that does not exist (NotFoundError / 404), never like a forbidden one.

Test Coverage:
- Tokens: resolution, revocation, deactivated organization
- Products: cross-tenant read/book blocked
- Bookings: cross-tenant read/transition/payment blocked
- Orders: cross-tenant read/booking blocked
- Conflicts: detection never sees the other tenant's bookings
"""

import pytest
from conftest import auth_headers, dt

from rentdesk.errors import NotFoundError
from rentdesk.services import booking_service, order_service, refund_service, tenant_service
from rentdesk.services.conflict_service import detect_conflicts
from rentdesk.services.products_service import get_product


@pytest.fixture
def booking_a(db_session, org_a, product_a, order_a):
    return booking_service.create_booking(
        org_a.id, order_a.id, product_a.id,
        dt("2024-01-01T10:00"), dt("2024-01-03T10:00"), 100000, 30000,
    )


class TestTokenResolution:
    """tenant_service.resolve_token."""

    def test_token_resolves_to_its_org(self, db_session, org_a, token_a):
        context = tenant_service.resolve_token(token_a)

        assert context.org_id == org_a.id
        assert context.actor == "front-desk-a"

    def test_unknown_token(self, db_session):
        assert tenant_service.resolve_token("not-a-token") is None
        assert tenant_service.resolve_token("") is None

    def test_revoked_token(self, db_session, org_a):
        token, plaintext = tenant_service.issue_token(org_a.id, "temp")
        tenant_service.revoke_token(token.id, org_a.id)

        assert tenant_service.resolve_token(plaintext) is None

    def test_inactive_org_token(self, db_session, org_a, token_a):
        org_a.is_active = False
        db_session.commit()

        assert tenant_service.resolve_token(token_a) is None

    def test_token_hash_only_is_stored(self, db_session, org_a):
        token, plaintext = tenant_service.issue_token(org_a.id, "hashed")

        assert token.token_hash != plaintext
        assert token.token_hash == tenant_service.hash_token(plaintext)

    def test_revoke_other_orgs_token_not_found(self, db_session, org_a, org_b):
        token, _ = tenant_service.issue_token(org_a.id, "a-only")

        with pytest.raises(NotFoundError):
            tenant_service.revoke_token(token.id, org_b.id)


class TestServiceIsolation:
    """Service calls with the wrong org_id."""

    def test_product_of_other_org_not_found(self, db_session, org_a, product_b):
        with pytest.raises(NotFoundError):
            get_product(product_b.id, org_a.id)

    def test_cannot_book_other_orgs_product(self, db_session, org_a, product_b, order_a):
        with pytest.raises(NotFoundError):
            booking_service.create_booking(
                org_a.id, order_a.id, product_b.id,
                dt("2024-01-01T10:00"), dt("2024-01-03T10:00"), 1000,
            )

    def test_cannot_book_into_other_orgs_order(self, db_session, org_b, product_b, order_a):
        with pytest.raises(NotFoundError):
            booking_service.create_booking(
                org_b.id, order_a.id, product_b.id,
                dt("2024-01-01T10:00"), dt("2024-01-03T10:00"), 1000,
            )

    def test_booking_of_other_org_not_found(self, db_session, org_b, booking_a):
        with pytest.raises(NotFoundError):
            booking_service.get_booking(booking_a.id, org_b.id)
        with pytest.raises(NotFoundError):
            booking_service.issue_booking(booking_a.id, org_b.id)
        with pytest.raises(NotFoundError):
            booking_service.add_payment(booking_a.id, org_b.id, "PAYMENT_RECEIVED", 1000)
        with pytest.raises(NotFoundError):
            booking_service.cancel_booking(booking_a.id, org_b.id)
        with pytest.raises(NotFoundError):
            refund_service.preview_booking_cancellation(booking_a.id, org_b.id)

    def test_order_of_other_org_not_found(self, db_session, org_b, order_a):
        with pytest.raises(NotFoundError):
            order_service.get_order(order_a.id, org_b.id)
        with pytest.raises(NotFoundError):
            order_service.collect_order_payment(order_a.id, org_b.id, 1000)
        with pytest.raises(NotFoundError):
            order_service.cancel_order(order_a.id, org_b.id)

    def test_listings_are_scoped(self, db_session, org_a, org_b, booking_a):
        assert booking_service.list_bookings(org_b.id)["count"] == 0
        assert order_service.list_orders(org_b.id)["count"] == 0
        assert booking_service.list_bookings(org_a.id)["count"] == 1

    def test_booking_a_untouched_after_foreign_attempts(self, db_session, org_a, org_b, booking_a):
        with pytest.raises(NotFoundError):
            booking_service.issue_booking(booking_a.id, org_b.id, payment_amount_cents=70000)

        booking = booking_service.get_booking(booking_a.id, org_a.id)
        assert booking.status == "BOOKED"
        assert booking.remaining_amount_cents == 70000


class TestConflictIsolation:
    """Conflict detection is scoped to the organization."""

    def test_other_org_bookings_never_conflict(self, db_session, org_a, org_b, product_a, booking_a):
        assert detect_conflicts(org_b.id, product_a.id, dt("2024-01-01T10:00"), dt("2024-01-03T10:00")) == []
        assert len(detect_conflicts(org_a.id, product_a.id, dt("2024-01-01T10:00"), dt("2024-01-03T10:00"))) == 1


class TestHttpIsolation:
    """Same guarantees through the API."""

    def test_missing_token_is_401(self, client, db_session):
        response = client.get("/api/orders")
        assert response.status_code == 401

    def test_invalid_token_is_401(self, client, db_session):
        response = client.get("/api/orders", headers=auth_headers("bogus"))
        assert response.status_code == 401

    def test_other_orgs_booking_is_404(self, client, db_session, token_b, booking_a):
        response = client.get(f"/api/bookings/{booking_a.id}", headers=auth_headers(token_b))
        assert response.status_code == 404
        assert response.get_json()["code"] == "NOT_FOUND"

        response = client.post(f"/api/bookings/{booking_a.id}/issue", json={}, headers=auth_headers(token_b))
        assert response.status_code == 404

    def test_other_orgs_order_is_404(self, client, db_session, token_b, order_a):
        response = client.get(f"/api/orders/{order_a.id}", headers=auth_headers(token_b))
        assert response.status_code == 404

    def test_other_orgs_product_is_404(self, client, db_session, token_a, product_b):
        response = client.get(f"/api/products/{product_b.id}", headers=auth_headers(token_a))
        assert response.status_code == 404

    def test_own_booking_is_visible(self, client, db_session, token_a, booking_a):
        response = client.get(f"/api/bookings/{booking_a.id}", headers=auth_headers(token_a))
        assert response.status_code == 200
        assert response.get_json()["remaining_amount_cents"] == 70000
