"""
Tests for so_session_service: the stock-opname lifecycle.

Covers session creation, scanning, staging edits on entries and the
two ways a session ends: completion (identified entries are written
back to their assets) and cancellation (entries are discarded).
"""

import json

import pytest

from app.exceptions import ConflictError, NotFoundError, ValidationError
from app.models.asset import EVENT_SO_UPDATE, AssetEvent
from app.models.stock_opname import SESSION_CANCELLED, SESSION_COMPLETED, SOAssetEntry
from app.models.user import ROLE_SO_ASSET_USER, User
from app.services import asset_service, lookup_service, so_session_service

SESSION_DATA = {
    "name": "SO 2024",
    "year": 2024,
    "startDate": "2024-01-01",
    "endDate": "2024-01-31",
}


@pytest.fixture
def auditor(db_session):
    user = User(
        email="auditor@example.com",
        name="Auditor",
        password="x",
        role=ROLE_SO_ASSET_USER,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def assets(db_session):
    return [
        asset_service.create_asset(
            {"name": "Laptop", "noAsset": "A-1", "brand": "Lenovo", "cost": 100}
        ),
        asset_service.create_asset({"name": "Printer", "noAsset": "A-2"}),
        asset_service.create_asset({"name": "Desk", "noAsset": "A-3"}),
    ]


@pytest.fixture
def session(assets):
    return so_session_service.create_session(SESSION_DATA)


class TestCreateSession:
    def test_captures_asset_count(self, session):
        assert session.status == "Active"
        assert session.total_assets == 3
        assert session.scanned_assets == 0

    def test_required_fields(self, db_session):
        with pytest.raises(
            ValidationError, match="Name, year, start date, and end date are required"
        ):
            so_session_service.create_session({"name": "SO"})

    def test_end_before_start(self, db_session):
        with pytest.raises(ValidationError, match="End date must be after start date"):
            so_session_service.create_session(
                {**SESSION_DATA, "startDate": "2024-02-01", "endDate": "2024-01-01"}
            )

    def test_year_must_be_numeric(self, db_session):
        with pytest.raises(ValidationError, match="Year must be a number"):
            so_session_service.create_session({**SESSION_DATA, "year": "twenty"})


class TestListAndStats:
    def test_list_reports_live_totals(self, session, assets):
        so_session_service.scan_asset(session.id, asset_id=assets[0].id)
        asset_service.create_asset({"name": "Extra"})

        listed = so_session_service.list_sessions()
        assert len(listed) == 1
        assert listed[0]["entryCount"] == 1
        assert listed[0]["totalAssets"] == 4

    def test_status_filter(self, session):
        assert so_session_service.list_sessions(status="Completed") == []
        assert len(so_session_service.list_sessions(status="all")) == 1

    def test_stats(self, session, assets):
        so_session_service.scan_asset(session.id, asset_id=assets[0].id)
        stats = so_session_service.get_session_with_stats(session.id)["stats"]
        assert stats == {
            "scanned": 1,
            "verified": 1,
            "unscanned": 2,
            "completionRate": 33.33,
        }

    def test_unknown_session(self, db_session):
        with pytest.raises(NotFoundError, match="SO Session not found"):
            so_session_service.get_session_with_stats("missing")


class TestScan:
    def test_entry_copies_asset_values(self, session, assets, auditor):
        result = so_session_service.scan_asset(session.id, asset_id=assets[0].id, actor=auditor)
        assert result["success"] is True
        entry = result["entry"]
        assert entry["tempName"] == "Laptop"
        assert entry["tempBrand"] == "Lenovo"
        assert entry["tempCost"] == 100
        assert entry["isIdentified"] is True
        assert entry["status"] == "Scanned"

    def test_scan_by_number(self, session):
        result = so_session_service.scan_asset(session.id, no_asset="A-2")
        assert result["asset"]["noAsset"] == "A-2"

    def test_duplicate_scan_returns_existing_entry(self, session, assets):
        first = so_session_service.scan_asset(session.id, asset_id=assets[0].id)
        second = so_session_service.scan_asset(session.id, asset_id=assets[0].id)
        assert second["success"] is False
        assert second["entry"]["id"] == first["entry"]["id"]
        assert SOAssetEntry.query.count() == 1
        assert so_session_service.get_session(session.id).scanned_assets == 1

    def test_requires_an_identifier(self, session):
        with pytest.raises(ValidationError):
            so_session_service.scan_asset(session.id)

    def test_unknown_asset(self, session):
        with pytest.raises(NotFoundError, match="Asset not found"):
            so_session_service.scan_asset(session.id, no_asset="NOPE")

    def test_closed_session_rejects_scans(self, session, assets):
        so_session_service.cancel_session(session.id)
        with pytest.raises(ConflictError, match="SO Session is not active"):
            so_session_service.scan_asset(session.id, asset_id=assets[0].id)


class TestUpdateEntry:
    @pytest.fixture
    def entry_id(self, session, assets):
        return so_session_service.scan_asset(session.id, asset_id=assets[0].id)["entry"]["id"]

    def test_temp_and_bare_keys(self, session, entry_id):
        entry = so_session_service.update_entry(
            session.id, entry_id, {"tempName": "Laptop X1", "brand": "Lenovo Think"}
        )
        assert entry.temp_name == "Laptop X1"
        assert entry.temp_brand == "Lenovo Think"

    def test_temp_key_wins(self, session, entry_id):
        entry = so_session_service.update_entry(
            session.id, entry_id, {"tempModel": "T14", "model": "T480"}
        )
        assert entry.temp_model == "T14"

    def test_unparseable_cost_clears_value(self, session, entry_id):
        entry = so_session_service.update_entry(session.id, entry_id, {"tempCost": "n/a"})
        assert entry.temp_cost is None

    def test_identified_defaults_to_true(self, session, entry_id):
        so_session_service.update_entry(session.id, entry_id, {"isIdentified": False})
        entry = so_session_service.update_entry(session.id, entry_id, {"tempNotes": "ok"})
        assert entry.is_identified is True

    def test_clearing_crucial_clears_notes(self, session, entry_id):
        so_session_service.update_entry(
            session.id, entry_id, {"isCrucial": True, "crucialNotes": "Screen cracked"}
        )
        entry = so_session_service.update_entry(session.id, entry_id, {"isCrucial": False})
        assert entry.is_crucial is False
        assert entry.crucial_notes is None

    def test_changes_recorded_as_event(self, session, entry_id, auditor):
        so_session_service.update_entry(
            session.id, entry_id, {"tempName": "Laptop X1"}, actor=auditor
        )
        event = AssetEvent.query.filter_by(type=EVENT_SO_UPDATE).one()
        payload = json.loads(event.payload)
        assert event.actor == "Auditor"
        assert payload["sessionName"] == "SO 2024"
        assert payload["changes"] == [
            {"field": "tempName", "before": "Laptop", "after": "Laptop X1"}
        ]

    def test_no_changes_no_event(self, session, entry_id):
        so_session_service.update_entry(session.id, entry_id, {"tempName": "Laptop"})
        assert AssetEvent.query.count() == 0

    def test_entry_from_other_session(self, session, entry_id):
        other = so_session_service.create_session({**SESSION_DATA, "name": "SO 2025"})
        with pytest.raises(ValidationError, match="Entry does not belong to this session"):
            so_session_service.update_entry(other.id, entry_id, {"tempName": "x"})

    def test_number_of_another_asset_is_rejected(self, session, entry_id):
        with pytest.raises(ConflictError, match='"A-2" already exists'):
            so_session_service.update_entry(
                session.id, entry_id, {"tempNoAsset": "A-2", "tempName": "Renamed"}
            )
        _session, entry = so_session_service.get_entry(session.id, entry_id)
        assert entry.temp_no_asset is None
        assert entry.temp_name == "Laptop"

    def test_own_number_is_allowed(self, session, entry_id):
        entry = so_session_service.update_entry(session.id, entry_id, {"tempNoAsset": "A-1"})
        assert entry.temp_no_asset == "A-1"

    def test_unknown_references_are_rejected(self, session, entry_id):
        with pytest.raises(ValidationError, match="tempSiteId does not reference"):
            so_session_service.update_entry(session.id, entry_id, {"tempSiteId": "no-such-site"})
        with pytest.raises(ValidationError, match="PIC employee not found"):
            so_session_service.update_entry(session.id, entry_id, {"picId": "ghost"})
        _session, entry = so_session_service.get_entry(session.id, entry_id)
        assert entry.temp_site_id is None
        assert entry.temp_pic_id is None

    def test_unknown_status_is_rejected(self, session, entry_id):
        with pytest.raises(ValidationError, match="Invalid status 'Bogus'"):
            so_session_service.update_entry(session.id, entry_id, {"tempStatus": "Bogus"})


class TestCompleteSession:
    def test_writes_back_identified_entries(self, session, assets):
        site = lookup_service.create("sites", {"name": "Gudang"})
        first = so_session_service.scan_asset(session.id, asset_id=assets[0].id)["entry"]
        second = so_session_service.scan_asset(session.id, asset_id=assets[1].id)["entry"]
        so_session_service.update_entry(
            session.id,
            first["id"],
            {"tempName": "Laptop (checked)", "tempSiteId": site.id, "tempCost": 0},
        )
        so_session_service.update_entry(
            session.id, second["id"], {"tempName": "Ignored", "isIdentified": False}
        )

        result = so_session_service.complete_session(session.id, "All good")

        assert result["updatedAssets"] == 1
        assert result["session"]["status"] == SESSION_COMPLETED
        assert result["session"]["verifiedAssets"] == 1
        assert result["session"]["completionNotes"] == "All good"
        laptop = asset_service.get_asset_by_id(assets[0].id)
        assert laptop.name == "Laptop (checked)"
        assert laptop.site_id == site.id
        assert laptop.cost == 0
        assert asset_service.get_asset_by_id(assets[1].id).name == "Printer"

    def test_blank_temp_values_do_not_erase(self, session, assets):
        entry = so_session_service.scan_asset(session.id, asset_id=assets[0].id)["entry"]
        so_session_service.update_entry(session.id, entry["id"], {"tempBrand": ""})
        so_session_service.complete_session(session.id)
        assert asset_service.get_asset_by_id(assets[0].id).brand == "Lenovo"

    def test_only_once(self, session):
        so_session_service.complete_session(session.id)
        with pytest.raises(ConflictError):
            so_session_service.complete_session(session.id)

    def test_number_taken_after_staging(self, session, assets):
        entry = so_session_service.scan_asset(session.id, asset_id=assets[0].id)["entry"]
        so_session_service.update_entry(session.id, entry["id"], {"tempNoAsset": "A-9"})
        asset_service.create_asset({"name": "Late arrival", "noAsset": "A-9"})

        with pytest.raises(ConflictError, match='Cannot complete session: .*"A-9"'):
            so_session_service.complete_session(session.id)

        assert asset_service.get_asset_by_id(assets[0].id).no_asset == "A-1"
        assert so_session_service.get_session(session.id).status == "Active"

    def test_same_number_staged_twice(self, session, assets):
        for asset in assets[:2]:
            entry = so_session_service.scan_asset(session.id, asset_id=asset.id)["entry"]
            so_session_service.update_entry(session.id, entry["id"], {"tempNoAsset": "A-7"})
        with pytest.raises(ConflictError, match="staged for more than one asset"):
            so_session_service.complete_session(session.id)

    def test_lookup_deleted_after_staging(self, session, assets):
        site = lookup_service.create("sites", {"name": "Gudang"})
        entry = so_session_service.scan_asset(session.id, asset_id=assets[0].id)["entry"]
        so_session_service.update_entry(session.id, entry["id"], {"tempSiteId": site.id})
        lookup_service.delete("sites", site.id)

        with pytest.raises(ConflictError, match="tempSiteId does not reference"):
            so_session_service.complete_session(session.id)
        assert asset_service.get_asset_by_id(assets[0].id).site_id is None


class TestCancelAndDelete:
    def test_cancel_discards_entries(self, session, assets):
        so_session_service.scan_asset(session.id, asset_id=assets[0].id)
        so_session_service.scan_asset(session.id, asset_id=assets[1].id)

        result = so_session_service.cancel_session(session.id)

        assert result["discardedEntries"] == 2
        assert result["session"]["status"] == SESSION_CANCELLED
        assert SOAssetEntry.query.count() == 0
        assert asset_service.get_asset_by_id(assets[0].id).name == "Laptop"

    def test_active_session_cannot_be_deleted(self, session):
        with pytest.raises(ConflictError, match="cancel it first"):
            so_session_service.delete_session(session.id)

    def test_delete_finished_session(self, session, assets):
        so_session_service.scan_asset(session.id, asset_id=assets[0].id)
        so_session_service.complete_session(session.id)
        so_session_service.delete_session(session.id)
        assert so_session_service.get_session(session.id) is None
        assert SOAssetEntry.query.count() == 0


class TestAdminAction:
    def test_update(self, session):
        result = so_session_service.admin_action(session.id, {"action": "update", "name": "Renamed"})
        assert result["session"]["name"] == "Renamed"

    def test_complete(self, session):
        result = so_session_service.admin_action(session.id, {"action": "complete"})
        assert result["session"]["status"] == SESSION_COMPLETED

    def test_unknown(self, session):
        with pytest.raises(ValidationError, match="Unknown action"):
            so_session_service.admin_action(session.id, {"action": "archive"})


class TestNotesAndUnidentified:
    def test_notes_are_truncated(self, session):
        saved = so_session_service.update_notes(session.id, "x" * 6000)
        assert len(saved) == 5000
        assert so_session_service.get_notes(session.id) == saved

    def test_unidentified_assets(self, session, assets):
        so_session_service.scan_asset(session.id, asset_id=assets[0].id)
        page = so_session_service.get_unidentified_assets(session.id)
        assert [a.no_asset for a in page.items] == ["A-2", "A-3"]

    def test_entries_search(self, session, assets):
        so_session_service.scan_asset(session.id, asset_id=assets[0].id)
        so_session_service.scan_asset(session.id, asset_id=assets[1].id)
        _, page = so_session_service.get_entries(session.id, search="print")
        assert [e.asset_id for e in page.items] == [assets[1].id]
