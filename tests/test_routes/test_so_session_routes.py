"""
Tests for the /api/so-sessions endpoints and the admin session tools.

Admins run sessions; SO asset users scan and edit entries; viewers
only read.
"""

import pytest

SESSION = {"name": "SO 2024", "year": 2024, "startDate": "2024-01-01", "endDate": "2024-12-31"}


@pytest.fixture
def asset_ids(client, admin_headers):
    ids = []
    for number, name in (("A-1", "Laptop"), ("A-2", "Printer")):
        response = client.post(
            "/api/assets", json={"noAsset": number, "name": name}, headers=admin_headers
        )
        ids.append(response.get_json()["asset"]["id"])
    return ids


@pytest.fixture
def session_id(client, admin_headers, asset_ids):
    response = client.post("/api/so-sessions", json=SESSION, headers=admin_headers)
    assert response.status_code == 201
    return response.get_json()["session"]["id"]


class TestSessions:
    def test_only_admins_create(self, client, editor_headers):
        response = client.post("/api/so-sessions", json=SESSION, headers=editor_headers)
        assert response.status_code == 403

    def test_list_and_detail(self, client, viewer_headers, session_id):
        sessions = client.get("/api/so-sessions", headers=viewer_headers).get_json()["sessions"]
        assert [s["id"] for s in sessions] == [session_id]

        detail = client.get(f"/api/so-sessions/{session_id}", headers=viewer_headers)
        assert detail.get_json()["session"]["stats"]["unscanned"] == 2

    def test_unknown_session(self, client, viewer_headers):
        assert client.get("/api/so-sessions/missing", headers=viewer_headers).status_code == 404


class TestScanning:
    def test_scan_and_repeat(self, client, editor_headers, session_id):
        url = f"/api/so-sessions/{session_id}/scan"
        first = client.post(url, json={"noAsset": "A-1"}, headers=editor_headers)
        assert first.status_code == 200
        assert first.get_json()["success"] is True

        again = client.post(url, json={"noAsset": "A-1"}, headers=editor_headers)
        assert again.status_code == 200
        assert again.get_json()["success"] is False

    def test_viewer_cannot_scan(self, client, viewer_headers, session_id):
        response = client.post(
            f"/api/so-sessions/{session_id}/scan", json={"noAsset": "A-1"}, headers=viewer_headers
        )
        assert response.status_code == 403

    def test_edit_entry_and_list(self, client, editor_headers, viewer_headers, session_id):
        entry = client.post(
            f"/api/so-sessions/{session_id}/scan", json={"noAsset": "A-1"}, headers=editor_headers
        ).get_json()["entry"]

        response = client.put(
            f"/api/so-sessions/{session_id}/entries/{entry['id']}",
            json={"tempName": "Laptop X1", "isCrucial": True, "crucialNotes": "Dented"},
            headers=editor_headers,
        )
        assert response.status_code == 200
        assert response.get_json()["entry"]["tempName"] == "Laptop X1"

        listing = client.get(
            f"/api/so-sessions/{session_id}/entries", headers=viewer_headers
        ).get_json()
        assert listing["pagination"]["total"] == 1
        assert listing["pagination"]["hasNext"] is False

        unscanned = client.get(
            f"/api/so-sessions/{session_id}/unidentified-assets", headers=viewer_headers
        ).get_json()
        assert [a["noAsset"] for a in unscanned["assets"]] == ["A-2"]

    def test_staged_number_of_another_asset(self, client, editor_headers, session_id):
        entry = client.post(
            f"/api/so-sessions/{session_id}/scan", json={"noAsset": "A-1"}, headers=editor_headers
        ).get_json()["entry"]
        response = client.put(
            f"/api/so-sessions/{session_id}/entries/{entry['id']}",
            json={"tempNoAsset": "A-2"},
            headers=editor_headers,
        )
        assert response.status_code == 409

    def test_staged_unknown_site(self, client, editor_headers, session_id):
        entry = client.post(
            f"/api/so-sessions/{session_id}/scan", json={"noAsset": "A-1"}, headers=editor_headers
        ).get_json()["entry"]
        response = client.put(
            f"/api/so-sessions/{session_id}/entries/{entry['id']}",
            json={"tempSiteId": "no-such-site"},
            headers=editor_headers,
        )
        assert response.status_code == 400

    def test_notes(self, client, editor_headers, viewer_headers, session_id):
        url = f"/api/so-sessions/{session_id}/notes"
        saved = client.put(url, json={"notes": "Floor 2 pending"}, headers=editor_headers)
        assert saved.get_json() == {"notes": "Floor 2 pending"}
        assert client.get(url, headers=viewer_headers).get_json() == {"notes": "Floor 2 pending"}


class TestClosing:
    def test_complete_writes_back(self, client, admin_headers, editor_headers, session_id, asset_ids):
        entry = client.post(
            f"/api/so-sessions/{session_id}/scan", json={"noAsset": "A-1"}, headers=editor_headers
        ).get_json()["entry"]
        client.put(
            f"/api/so-sessions/{session_id}/entries/{entry['id']}",
            json={"tempName": "Laptop X1"},
            headers=editor_headers,
        )

        response = client.post(
            f"/api/so-sessions/{session_id}/complete",
            json={"completionNotes": "Done"},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.get_json()["updatedAssets"] == 1

        asset = client.get(f"/api/assets/{asset_ids[0]}", headers=admin_headers).get_json()
        assert asset["asset"]["name"] == "Laptop X1"

        again = client.post(f"/api/so-sessions/{session_id}/complete", headers=admin_headers)
        assert again.status_code == 409

    def test_cancel_then_delete(self, client, admin_headers, session_id):
        assert client.delete(f"/api/so-sessions/{session_id}", headers=admin_headers).status_code == 409
        cancelled = client.post(f"/api/so-sessions/{session_id}/cancel", headers=admin_headers)
        assert cancelled.get_json()["session"]["status"] == "Cancelled"
        assert client.delete(f"/api/so-sessions/{session_id}", headers=admin_headers).status_code == 200


class TestAdminSessionTools:
    def test_admin_action(self, client, admin_headers, session_id):
        listed = client.get("/api/admin/sessions", headers=admin_headers).get_json()
        assert len(listed["sessions"]) == 1

        response = client.put(
            f"/api/admin/sessions/{session_id}",
            json={"action": "update", "name": "Renamed"},
            headers=admin_headers,
        )
        assert response.get_json()["session"]["name"] == "Renamed"

    def test_unknown_action(self, client, admin_headers, session_id):
        response = client.put(
            f"/api/admin/sessions/{session_id}", json={"action": "archive"}, headers=admin_headers
        )
        assert response.status_code == 400
