"""
Tests for the /api/check-outs endpoints and the asset history route.
"""

import pytest


@pytest.fixture
def ids(client, admin_headers):
    asset = client.post(
        "/api/assets", json={"noAsset": "CAM-1", "name": "Camera"}, headers=admin_headers
    ).get_json()["asset"]
    employee = client.post(
        "/api/employees", json={"employeeId": "E-1", "name": "Dewi"}, headers=admin_headers
    ).get_json()["employee"]
    return asset["id"], employee["id"]


def _check_out(client, headers, ids):
    asset_id, employee_id = ids
    return client.post(
        "/api/check-outs",
        json={"assetId": asset_id, "assignToId": employee_id, "checkoutDate": "2024-06-01"},
        headers=headers,
    )


class TestCheckOuts:
    def test_check_out_and_return(self, client, editor_headers, viewer_headers, ids):
        response = _check_out(client, editor_headers, ids)
        assert response.status_code == 201
        checkout_id = response.get_json()["checkout"]["id"]

        single = client.get(f"/api/check-outs?id={checkout_id}", headers=viewer_headers)
        assert single.get_json()["checkout"]["status"] == "OUT"

        returned = client.post(
            f"/api/check-outs/{checkout_id}/return",
            json={"returnNotes": "All good"},
            headers=editor_headers,
        )
        assert returned.status_code == 200
        assert returned.get_json()["checkout"]["status"] == "RETURNED"

        history = client.get(f"/api/assets/{ids[0]}/history", headers=viewer_headers)
        assert len(history.get_json()["history"]) == 2

    def test_double_check_out(self, client, editor_headers, ids):
        _check_out(client, editor_headers, ids)
        assert _check_out(client, editor_headers, ids).status_code == 409

    def test_viewer_cannot_check_out(self, client, viewer_headers, ids):
        assert _check_out(client, viewer_headers, ids).status_code == 403

    def test_list_filters(self, client, editor_headers, viewer_headers, ids):
        _check_out(client, editor_headers, ids)
        listed = client.get(
            f"/api/check-outs?assetId={ids[0]}&status=RETURNED", headers=viewer_headers
        ).get_json()
        assert listed == {"checkouts": []}

    def test_unknown_record(self, client, viewer_headers):
        assert client.get("/api/check-outs?id=missing", headers=viewer_headers).status_code == 404
