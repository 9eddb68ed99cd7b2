"""
Tests for asset_service: numbering, CRUD, search and bulk import.
"""

import pytest

from app.exceptions import ConflictError, NotFoundError, ValidationError
from app.models.asset import ASSET_STATUSES, Asset, AssetCheckout
from app.models.audit import AuditLog
from app.models.lookup import Category, Site
from app.services import asset_service, employee_service, lookup_service


@pytest.fixture
def lookups(db_session):
    """Categories and sites created out of alphabetical order."""
    categories = {
        name: lookup_service.create("categories", {"name": name})
        for name in ("Vehicles", "Computers", "Furniture")
    }
    sites = {
        name: lookup_service.create("sites", {"name": name})
        for name in ("Jakarta", "Bandung")
    }
    return categories, sites


class TestRomanNumerals:
    @pytest.mark.parametrize(
        "value, numeral",
        [(1, "I"), (4, "IV"), (9, "IX"), (14, "XIV"), (40, "XL"), (1994, "MCMXCIV")],
    )
    def test_conversion(self, value, numeral):
        assert asset_service.to_roman(value) == numeral

    def test_zero_is_one(self):
        assert asset_service.to_roman(0) == "I"


class TestGenerateAssetNumber:
    """Positions come from name order, not insertion order."""

    def test_category_and_site_positions(self, lookups):
        categories, sites = lookups
        result = asset_service.generate_asset_number(
            categories["Vehicles"].id, sites["Jakarta"].id
        )
        assert result["assetNumber"] == "FA001/III/02"
        assert result["categoryRoman"] == "III"
        assert result["siteNumber"] == "02"

    def test_defaults_without_lookups(self, db_session):
        assert asset_service.generate_asset_number()["assetNumber"] == "FA001/I/01"

    def test_sequence_follows_asset_count(self, lookups):
        asset_service.create_asset({"name": "Desk", "noAsset": "X-1"})
        asset_service.create_asset({"name": "Chair", "noAsset": "X-2"})
        assert asset_service.generate_asset_number()["assetNumber"] == "FA003/I/01"

    def test_skips_numbers_already_taken(self, db_session):
        asset_service.create_asset({"name": "Desk", "noAsset": "FA002/I/01"})
        # Count is 1 so FA002 is proposed first, but it is taken.
        assert asset_service.generate_asset_number()["assetNumber"] == "FA003/I/01"

    def test_unknown_lookup_ids_fall_back(self, db_session):
        result = asset_service.generate_asset_number("missing", "missing")
        assert result["assetNumber"] == "FA001/I/01"


class TestCreateAsset:
    def test_generates_number_when_omitted(self, lookups):
        categories, sites = lookups
        asset = asset_service.create_asset(
            {
                "name": "Laptop",
                "categoryId": categories["Computers"].id,
                "siteId": sites["Bandung"].id,
            }
        )
        assert asset.no_asset == "FA001/I/01"
        assert asset.status == "Active"

    def test_duplicate_number(self, db_session):
        asset_service.create_asset({"name": "Desk", "noAsset": "A-1"})
        with pytest.raises(ConflictError, match='"A-1" already exists'):
            asset_service.create_asset({"name": "Other", "noAsset": "A-1"})

    def test_name_required(self, db_session):
        with pytest.raises(ValidationError, match="Asset name is required"):
            asset_service.create_asset({"noAsset": "A-1"})

    def test_invalid_status(self, db_session):
        with pytest.raises(ValidationError, match="Invalid status"):
            asset_service.create_asset({"name": "Desk", "status": "Stolen"})

    def test_unknown_lookup_reference(self, db_session):
        with pytest.raises(ValidationError, match="siteId does not reference"):
            asset_service.create_asset({"name": "Desk", "siteId": "nope"})

    def test_pic_name_follows_linked_employee(self, db_session):
        employee = employee_service.create_employee(
            {"employeeId": "E-01", "name": "Sari Dewi"}
        )
        asset = asset_service.create_asset({"name": "Phone", "picId": employee.id})
        assert asset.pic == "Sari Dewi"

    def test_creation_is_audited(self, db_session):
        asset = asset_service.create_asset({"name": "Desk"})
        entry = AuditLog.query.filter_by(message=f"CREATE asset:{asset.id}").first()
        assert entry is not None


class TestUpdateAndDelete:
    def test_partial_update(self, db_session):
        asset = asset_service.create_asset({"name": "Desk", "brand": "IKEA"})
        updated = asset_service.update_asset(asset.id, {"cost": "1,500"})
        assert updated.cost == 1500.0
        assert updated.brand == "IKEA"

    def test_number_collision_on_update(self, db_session):
        asset_service.create_asset({"name": "Desk", "noAsset": "A-1"})
        other = asset_service.create_asset({"name": "Chair", "noAsset": "A-2"})
        with pytest.raises(ConflictError):
            asset_service.update_asset(other.id, {"noAsset": "A-1"})

    def test_status_cannot_be_blank(self, db_session):
        asset = asset_service.create_asset({"name": "Desk"})
        with pytest.raises(ValidationError, match="Status cannot be empty"):
            asset_service.update_asset(asset.id, {"status": ""})

    def test_update_unknown(self, db_session):
        with pytest.raises(NotFoundError):
            asset_service.update_asset("missing", {"name": "x"})

    def test_delete_removes_checkouts(self, db_session):
        asset = asset_service.create_asset({"name": "Desk"})
        employee = employee_service.create_employee({"employeeId": "E-1", "name": "Budi"})
        db_session.add(
            AssetCheckout(
                asset_id=asset.id,
                assign_to_id=employee.id,
                checkout_date=asset.date_created,
            )
        )
        db_session.commit()

        asset_service.delete_asset(asset.id)
        assert db_session.get(Asset, asset.id) is None
        assert AssetCheckout.query.count() == 0

    def test_bulk_delete_counts_existing_only(self, db_session):
        first = asset_service.create_asset({"name": "Desk"})
        second = asset_service.create_asset({"name": "Chair"})
        assert asset_service.bulk_delete([first.id, second.id, "ghost"]) == 2
        assert Asset.query.count() == 0

    def test_bulk_delete_needs_ids(self, db_session):
        with pytest.raises(ValidationError):
            asset_service.bulk_delete([])


class TestGetAssets:
    @pytest.fixture
    def register(self, lookups):
        categories, sites = lookups
        employee = employee_service.create_employee(
            {"employeeId": "E-77", "name": "Rina Wati", "department": "Finance"}
        )
        asset_service.create_asset(
            {
                "name": "Toyota Avanza",
                "noAsset": "V-1",
                "categoryId": categories["Vehicles"].id,
                "siteId": sites["Jakarta"].id,
            }
        )
        asset_service.create_asset(
            {
                "name": "ThinkPad",
                "noAsset": "C-1",
                "categoryId": categories["Computers"].id,
                "picId": employee.id,
                "status": "Broken",
            }
        )
        asset_service.create_asset({"name": "Office Chair", "noAsset": "F-1"})
        return categories, sites

    def test_search_matches_lookup_names(self, register):
        page = asset_service.get_assets(search="jakarta")
        assert [a.no_asset for a in page.items] == ["V-1"]

    def test_search_matches_pic_employee(self, register):
        page = asset_service.get_assets(search="finance")
        assert [a.no_asset for a in page.items] == ["C-1"]

    def test_filter_by_status_and_category_name(self, register):
        assert asset_service.get_assets(filters={"status": "Broken"}).total == 1
        assert asset_service.get_assets(filters={"category": "Vehicles"}).total == 1

    def test_sort_by_name(self, register):
        page = asset_service.get_assets(sort="name", order="asc")
        assert [a.name for a in page.items] == ["Office Chair", "ThinkPad", "Toyota Avanza"]

    def test_pagination(self, register):
        page = asset_service.get_assets(page=2, per_page=2)
        assert page.total == 3
        assert len(page.items) == 1

    def test_check_duplicates(self, register):
        duplicates = asset_service.check_duplicates(["V-1", "NEW", " C-1 "])
        assert sorted(duplicates) == ["C-1", "V-1"]

    def test_check_duplicates_needs_list(self, register):
        with pytest.raises(ValidationError, match="Invalid request format"):
            asset_service.check_duplicates("V-1")


class TestImportAssets:
    def test_creates_lookups_by_name(self, db_session):
        result = asset_service.import_assets(
            [
                {
                    "noAsset": "IMP-1",
                    "name": "Projector",
                    "category": "Electronics",
                    "site": "Surabaya",
                    "purchaseDate": "05-Agu-21",
                    "cost": "2,500,000",
                }
            ]
        )
        assert result == {"imported": 1, "skipped": 0, "errors": []}
        asset = asset_service.get_asset_by_number("IMP-1")
        assert asset.category.name == "Electronics"
        assert asset.site.name == "Surabaya"
        assert asset.cost == 2500000.0
        assert asset.purchase_date.year == 2021

    def test_existing_and_repeated_numbers_are_skipped(self, db_session):
        asset_service.create_asset({"name": "Desk", "noAsset": "D-1"})
        result = asset_service.import_assets(
            [
                {"noAsset": "D-1", "name": "Desk again"},
                {"noAsset": "D-2", "name": "New desk"},
                {"noAsset": "D-2", "name": "Repeat in file"},
            ]
        )
        assert result["imported"] == 1
        assert result["skipped"] == 2
        assert "Asset number D-1 already exists" in result["errors"]

    def test_bad_cost_reports_row(self, db_session):
        result = asset_service.import_assets([{"noAsset": "B-1", "name": "X", "cost": "lots"}])
        assert result["imported"] == 0
        assert result["errors"] == ['Row 1: Invalid cost "lots" (expected numeric value)']

    def test_unknown_status_reports_row(self, db_session):
        result = asset_service.import_assets(
            [
                {"noAsset": "S-1", "name": "Chair", "status": "Disposed"},
                {"noAsset": "S-2", "name": "Table", "status": "Vanished", "category": "Furniture"},
            ]
        )
        assert result["imported"] == 1
        assert result["errors"] == [
            "Row 2: Invalid status 'Vanished'. Must be one of: "
            + ", ".join(ASSET_STATUSES)
        ]
        assert asset_service.get_asset_by_number("S-2") is None
        assert Category.query.count() == 0

    def test_skipped_rows_do_not_create_lookups(self, db_session):
        asset_service.import_assets([{"noAsset": "B-1", "category": "Ghost"}])
        assert Category.query.count() == 0

    def test_question_marks_are_empty(self, db_session):
        asset_service.import_assets(
            [{"noAsset": "Q-1", "name": "Scanner", "serialNo": "?", "site": "?"}]
        )
        asset = asset_service.get_asset_by_number("Q-1")
        assert asset.serial_no is None
        assert Site.query.count() == 0

    def test_bulk_create_vocabulary(self, db_session):
        result = asset_service.bulk_create([{"noAsset": "B-1", "name": "Bench"}, {"name": "?"}])
        assert result["successCount"] == 1
        assert result["failedCount"] == 1

    def test_bulk_create_needs_rows(self, db_session):
        with pytest.raises(ValidationError, match="Assets array is required"):
            asset_service.bulk_create([])
