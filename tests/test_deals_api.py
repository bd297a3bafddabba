"""
tests/test_deals_api.py -- Integration tests for the deal endpoints.

Covers:
  - 401 without a token
  - create: stage LEAD, owner is the caller; USER-supplied deal_value discarded
  - projection: USER responses never contain the deal_value key; ADMIN's do
  - list: pagination shape, stage/sector filters, unknown stage -> 422,
    page number past the limit -> 422
  - /my, /admin (403 for USER)
  - single read: owner and admin 200, other user 403, unknown 404
  - update: owner may change stage, other user 403, deal_value in body ignored
  - /value and DELETE are admin only
  - notes: add, delete by author, delete by non-author 403

Fixtures used (from conftest.py):
  - api_client: (client, admin_token, user_token)
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from deals.service import MAX_PAGE, MAX_PAGE_SIZE


def _auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope="module")
def other_token(api_client: tuple[TestClient, str, str]) -> str:
    """Access token for a second USER, created through the admin API."""
    client, admin_token, _ = api_client
    client.post(
        "/api/v1/users",
        json={"username": "outsider", "email": "outsider@example.com", "password": "outsider123"},
        headers=_auth(admin_token),
    )
    resp = client.post("/api/v1/auth/login", json={"username": "outsider", "password": "outsider123"})
    return resp.json()["accessToken"]


def _create_deal(client: TestClient, token: str, **fields) -> dict:
    body = {"title": "Acme buyout", "sector": "Industrials", "deal_type": "M_AND_A", **fields}
    resp = client.post("/api/v1/deals", json=body, headers=_auth(token))
    assert resp.status_code == 201, resp.text
    return resp.json()


class TestAuthRequired:
    def test_list_unauthenticated(self, api_client: tuple[TestClient, str, str]) -> None:
        client, _, _ = api_client
        assert client.get("/api/v1/deals").status_code == 401

    def test_create_unauthenticated(self, api_client: tuple[TestClient, str, str]) -> None:
        client, _, _ = api_client
        assert client.post("/api/v1/deals", json={"title": "x"}).status_code == 401


class TestCreateAndProjection:
    def test_user_create_discards_value(self, api_client: tuple[TestClient, str, str]) -> None:
        client, admin_token, user_token = api_client
        deal = _create_deal(client, user_token, deal_value=500000)
        assert deal["stage"] == "LEAD"
        assert "deal_value" not in deal

        as_admin = client.get(f"/api/v1/deals/{deal['id']}", headers=_auth(admin_token)).json()
        assert as_admin["deal_value"] is None

    def test_admin_create_keeps_value(self, api_client: tuple[TestClient, str, str]) -> None:
        client, admin_token, user_token = api_client
        deal = _create_deal(client, admin_token, title="Globex IPO", deal_type="IPO", deal_value=750000)
        assert deal["deal_value"] == 750000

        listed = client.get("/api/v1/deals", params={"size": 100}, headers=_auth(user_token)).json()
        assert all("deal_value" not in item for item in listed["items"])

    def test_unknown_deal_type_is_422(self, api_client: tuple[TestClient, str, str]) -> None:
        client, _, user_token = api_client
        resp = client.post("/api/v1/deals", json={"title": "x", "deal_type": "SPAC"}, headers=_auth(user_token))
        assert resp.status_code == 422


class TestListing:
    def test_page_shape(self, api_client: tuple[TestClient, str, str]) -> None:
        client, _, user_token = api_client
        _create_deal(client, user_token, title="Paged")
        data = client.get("/api/v1/deals", params={"page": 0, "size": 1}, headers=_auth(user_token)).json()
        assert set(data) == {"items", "page", "size", "total"}
        assert data["page"] == 0
        assert data["size"] == 1
        assert len(data["items"]) == 1
        assert data["total"] >= 1

    def test_filters(self, api_client: tuple[TestClient, str, str]) -> None:
        client, _, user_token = api_client
        _create_deal(client, user_token, title="Filtered", sector="Biotech")
        data = client.get("/api/v1/deals", params={"sector": "Biotech"}, headers=_auth(user_token)).json()
        assert data["total"] >= 1
        assert all(item["sector"] == "Biotech" for item in data["items"])

        leads = client.get("/api/v1/deals", params={"stage": "LEAD"}, headers=_auth(user_token)).json()
        assert all(item["stage"] == "LEAD" for item in leads["items"])

    def test_unknown_stage_is_422(self, api_client: tuple[TestClient, str, str]) -> None:
        client, _, user_token = api_client
        resp = client.get("/api/v1/deals", params={"stage": "MAYBE"}, headers=_auth(user_token))
        assert resp.status_code == 422

    @pytest.mark.parametrize("path", ["/api/v1/deals", "/api/v1/deals/my", "/api/v1/deals/admin"])
    def test_page_beyond_limit_is_422(self, api_client: tuple[TestClient, str, str], path: str) -> None:
        client, admin_token, _ = api_client
        resp = client.get(path, params={"page": 10**20}, headers=_auth(admin_token))
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"

    def test_last_allowed_page_is_empty(self, api_client: tuple[TestClient, str, str]) -> None:
        client, _, user_token = api_client
        resp = client.get("/api/v1/deals", params={"page": MAX_PAGE, "size": MAX_PAGE_SIZE}, headers=_auth(user_token))
        assert resp.status_code == 200
        assert resp.json()["items"] == []

    def test_my_deals(self, api_client: tuple[TestClient, str, str], other_token: str) -> None:
        client, _, _ = api_client
        _create_deal(client, other_token, title="Outsider deal")
        data = client.get("/api/v1/deals/my", headers=_auth(other_token)).json()
        assert [item["title"] for item in data["items"]] == ["Outsider deal"]

    def test_admin_listing(self, api_client: tuple[TestClient, str, str]) -> None:
        client, admin_token, user_token = api_client
        assert client.get("/api/v1/deals/admin", headers=_auth(user_token)).status_code == 403
        data = client.get("/api/v1/deals/admin", headers=_auth(admin_token)).json()
        assert data["size"] == 10
        assert all("deal_value" in item for item in data["items"])


class TestSingleDeal:
    def test_read_permissions(self, api_client: tuple[TestClient, str, str], other_token: str) -> None:
        client, admin_token, user_token = api_client
        deal = _create_deal(client, user_token)
        path = f"/api/v1/deals/{deal['id']}"
        assert client.get(path, headers=_auth(user_token)).status_code == 200
        assert client.get(path, headers=_auth(admin_token)).status_code == 200
        denied = client.get(path, headers=_auth(other_token))
        assert denied.status_code == 403
        assert denied.json()["error"]["code"] == "forbidden"

    def test_unknown_deal(self, api_client: tuple[TestClient, str, str]) -> None:
        client, _, user_token = api_client
        assert client.get("/api/v1/deals/999999", headers=_auth(user_token)).status_code == 404

    def test_owner_updates_stage(self, api_client: tuple[TestClient, str, str]) -> None:
        client, admin_token, user_token = api_client
        deal = _create_deal(client, user_token)
        path = f"/api/v1/deals/{deal['id']}"
        resp = client.patch(path, json={"stage": "CLOSED", "deal_value": 1}, headers=_auth(user_token))
        assert resp.status_code == 200
        assert resp.json()["stage"] == "CLOSED"
        assert client.get(path, headers=_auth(admin_token)).json()["deal_value"] is None

    def test_other_user_cannot_update(self, api_client: tuple[TestClient, str, str], other_token: str) -> None:
        client, _, user_token = api_client
        deal = _create_deal(client, user_token)
        resp = client.patch(f"/api/v1/deals/{deal['id']}", json={"title": "Mine now"}, headers=_auth(other_token))
        assert resp.status_code == 403

    def test_value_is_admin_only(self, api_client: tuple[TestClient, str, str]) -> None:
        client, admin_token, user_token = api_client
        deal = _create_deal(client, user_token)
        path = f"/api/v1/deals/{deal['id']}/value"
        assert client.patch(path, json={"deal_value": 42}, headers=_auth(user_token)).status_code == 403
        resp = client.patch(path, json={"deal_value": 42}, headers=_auth(admin_token))
        assert resp.status_code == 200
        assert resp.json()["deal_value"] == 42

    def test_delete_is_admin_only(self, api_client: tuple[TestClient, str, str]) -> None:
        client, admin_token, user_token = api_client
        deal = _create_deal(client, user_token)
        path = f"/api/v1/deals/{deal['id']}"
        assert client.delete(path, headers=_auth(user_token)).status_code == 403
        assert client.delete(path, headers=_auth(admin_token)).status_code == 204
        assert client.get(path, headers=_auth(admin_token)).status_code == 404


class TestNotes:
    def test_add_and_remove_own_note(self, api_client: tuple[TestClient, str, str], other_token: str) -> None:
        client, _, user_token = api_client
        deal = _create_deal(client, user_token)
        resp = client.post(
            f"/api/v1/deals/{deal['id']}/notes",
            json={"note": "Board meets Friday"},
            headers=_auth(other_token),
        )
        assert resp.status_code == 201
        notes = resp.json()["notes"]
        assert len(notes) == 1
        note_id = notes[0]["note_id"]

        # The deal owner is not the note's author
        path = f"/api/v1/deals/{deal['id']}/notes/{note_id}"
        assert client.delete(path, headers=_auth(user_token)).status_code == 403
        removed = client.delete(path, headers=_auth(other_token))
        assert removed.status_code == 200
        assert removed.json()["notes"] == []

    def test_admin_removes_any_note(self, api_client: tuple[TestClient, str, str]) -> None:
        client, admin_token, user_token = api_client
        deal = _create_deal(client, user_token)
        note_id = client.post(
            f"/api/v1/deals/{deal['id']}/notes", json={"note": "hello"}, headers=_auth(user_token)
        ).json()["notes"][0]["note_id"]
        resp = client.delete(f"/api/v1/deals/{deal['id']}/notes/{note_id}", headers=_auth(admin_token))
        assert resp.status_code == 200

    def test_unknown_note_is_404(self, api_client: tuple[TestClient, str, str]) -> None:
        client, _, user_token = api_client
        deal = _create_deal(client, user_token)
        resp = client.delete(f"/api/v1/deals/{deal['id']}/notes/nope", headers=_auth(user_token))
        assert resp.status_code == 404
