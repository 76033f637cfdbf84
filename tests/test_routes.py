import pytest
from fastapi.testclient import TestClient
from unittest.mock import (
    Mock,
)

from coupon_engine.dependencies import get_coupon_service
from coupon_engine.exceptions import LockFailed
from coupon_engine.main import app

from conftest import OWNER_ID


OWNER_HEADERS = {"X-Owner-Id": OWNER_ID}
USER_HEADERS = {"X-Owner-Id": OWNER_ID, "X-User-Id": "alice@example.com"}


@pytest.fixture
def client(coupon_service):
    app.dependency_overrides[get_coupon_service] = lambda: coupon_service
    # Lifespan is not entered, so no sweep thread is started
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def book(client):
    response = client.post(
        "/books/",
        json={"name": "Summer", "max_codes_per_user": 1, "max_redeem_count_per_user": 1},
        headers=OWNER_HEADERS,
    )
    assert response.status_code == 200
    return response.json()["book_id"]


class TestBookRoutes:
    def test_owner_header_is_required(self, client):
        response = client.post(
            "/books/",
            json={"name": "Summer", "max_codes_per_user": 1},
        )

        assert response.status_code == 401

    def test_negative_quota_is_rejected(self, client):
        response = client.post(
            "/books/",
            json={"name": "Summer", "max_codes_per_user": -1},
            headers=OWNER_HEADERS,
        )

        assert response.status_code == 422

    def test_get_book(self, client, book):
        response = client.get(f"/books/{book}", headers=OWNER_HEADERS)

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == book
        assert data["max_codes_per_user"] == 1
        assert data["max_redeem_count_per_user"] == 1

    def test_book_of_another_owner_is_not_found(self, client, book):
        response = client.get(f"/books/{book}", headers={"X-Owner-Id": "partner-2"})

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "book_not_found"

    def test_add_codes_requires_a_source(self, client, book):
        response = client.post(f"/books/{book}/codes", json={}, headers=OWNER_HEADERS)

        assert response.status_code == 422

    def test_manual_code_with_whitespace_is_rejected(self, client, book):
        response = client.post(
            f"/books/{book}/codes",
            json={"manual": [{"code": "BAD CODE"}]},
            headers=OWNER_HEADERS,
        )

        assert response.status_code == 422

    def test_manual_collision_is_a_conflict(self, client, book):
        body = {"manual": [{"code": "X1"}]}
        client.post(f"/books/{book}/codes", json=body, headers=OWNER_HEADERS)

        response = client.post(f"/books/{book}/codes", json=body, headers=OWNER_HEADERS)

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "manual_collision"

    def test_generate_codes(self, client, book):
        response = client.post(
            f"/books/{book}/codes",
            json={"generated": {"amount": 3, "prefix": "W-", "code_length": 5}},
            headers=OWNER_HEADERS,
        )

        assert response.status_code == 200
        codes = [item["code"] for item in response.json()]
        assert len(codes) == 3
        assert all(code.startswith("W-") and len(code) == 7 for code in codes)

    def test_assign_needs_a_user(self, client, book):
        response = client.post(f"/books/{book}/assign", json={}, headers=OWNER_HEADERS)

        assert response.status_code == 422

    def test_assign_user_from_body(self, client, book):
        client.post(f"/books/{book}/codes", json={"manual": [{"code": "X1"}]}, headers=OWNER_HEADERS)

        response = client.post(
            f"/books/{book}/assign",
            json={"user_id": "bob@example.com"},
            headers=OWNER_HEADERS,
        )

        assert response.status_code == 200
        assert response.json() == {"code": "X1"}
        listing = client.get(f"/books/{book}/users/bob@example.com/codes", headers=OWNER_HEADERS)
        assert [item["code"] for item in listing.json()] == ["X1"]

    def test_assign_from_empty_book(self, client, book):
        response = client.post(f"/books/{book}/assign", json={}, headers=USER_HEADERS)

        assert response.status_code == 409
        assert response.json()["detail"] == {
            "kind": "conflict",
            "code": "no_codes_available",
            "message": "No codes available in this book",
        }


class TestCodeRoutes:
    def test_full_flow(self, client, book):
        client.post(f"/books/{book}/codes", json={"manual": [{"code": "X1"}]}, headers=OWNER_HEADERS)

        assigned = client.post(f"/books/{book}/assign", json={"code": "X1"}, headers=USER_HEADERS)
        assert assigned.status_code == 200

        locked = client.post("/codes/lock", json={"code": "X1"}, headers=USER_HEADERS)
        assert locked.status_code == 200
        assert locked.json()["locked_until"].startswith("2030-01-01T12:10:00")

        relocked = client.post("/codes/lock", json={"code": "X1"}, headers=USER_HEADERS)
        assert relocked.status_code == 409
        assert relocked.json()["detail"]["code"] == "already_locked"

        redeemed = client.post(
            "/codes/redeem",
            json={"code": "X1", "book_id": book},
            headers=USER_HEADERS,
        )
        assert redeemed.status_code == 200
        assert redeemed.json() == {"success": True}

        history = client.get(f"/books/{book}/codes/X1/redemptions", headers=OWNER_HEADERS)
        assert history.status_code == 200
        assert [item["redeemed_by"] for item in history.json()] == ["alice@example.com"]

        again = client.post("/codes/lock", json={"code": "X1"}, headers=USER_HEADERS)
        assert again.status_code == 409
        assert again.json()["detail"]["code"] == "redeem_limit_reached"

    def test_user_header_is_required(self, client):
        response = client.post("/codes/lock", json={"code": "X1"}, headers=OWNER_HEADERS)

        assert response.status_code == 401

    def test_redeem_without_lock_is_not_found(self, client, book):
        client.post(f"/books/{book}/codes", json={"manual": [{"code": "X1"}]}, headers=OWNER_HEADERS)
        client.post(f"/books/{book}/assign", json={"code": "X1"}, headers=USER_HEADERS)

        response = client.post("/codes/redeem", json={"code": "X1"}, headers=USER_HEADERS)

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "code_not_assigned_or_not_locked"

    def test_transient_failure_is_a_server_error(self, client):
        coupon_service = Mock()
        coupon_service.lock.side_effect = LockFailed()
        app.dependency_overrides[get_coupon_service] = lambda: coupon_service

        response = client.post("/codes/lock", json={"code": "X1"}, headers=USER_HEADERS)

        assert response.status_code == 500
        assert response.json()["detail"]["code"] == "lock_failed"


class TestSweepRoute:
    def test_sweep_route_reports_unlocked_count(self, client, book, clock):
        client.post(f"/books/{book}/codes", json={"manual": [{"code": "X1"}]}, headers=OWNER_HEADERS)
        client.post(f"/books/{book}/assign", json={"code": "X1"}, headers=USER_HEADERS)
        client.post("/codes/lock", json={"code": "X1"}, headers=USER_HEADERS)
        clock.advance(minutes=11)

        response = client.post("/test/sweep")

        assert response.status_code == 200
        assert response.json() == {"unlocked": 1}
